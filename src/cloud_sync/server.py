"""MCP server exposing Cloud Sync backup, restore and status."""

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from . import crypto
from .backup import BackupOrchestrator
from .db import SqliteStore
from .errors import CloudSyncError
from .logging import get_logger
from .metadata import SyncMetadataStore
from .models import BackupResponse, ErrorResponse, RestoreResponse, StatusResponse
from .restore import RestoreOrchestrator
from .safety import SafetyBackupStore
from .transport import HttpTransport, Transport

log = get_logger("cloud_sync.server")

app = Server("cloud-sync")


def get_store() -> SqliteStore:
    store = SqliteStore()
    store.init_db()
    return store


def get_transport() -> Transport:
    return HttpTransport()


def _error(exc: CloudSyncError) -> ErrorResponse:
    return ErrorResponse(error=exc.user_message or str(exc), code=exc.code)


@app.list_tools()
async def list_tools() -> list[Tool]:
    """List available tools."""
    return [
        Tool(
            name="sync_backup",
            description="""Encrypt all local data with a passphrase and upload it.

The passphrase never leaves this machine; the server only sees ciphertext and
a SHA-256 derived storage key. A lost passphrase cannot be recovered.""",
            inputSchema={
                "type": "object",
                "properties": {
                    "passphrase": {
                        "type": "string",
                        "description": "Backup passphrase (at least 12 characters)",
                    },
                    "confirmation": {
                        "type": "string",
                        "description": "The passphrase typed a second time",
                    },
                },
                "required": ["passphrase", "confirmation"],
            },
        ),
        Tool(
            name="sync_restore",
            description="""Download the backup for a passphrase and replace all local data with it.

Current local data is saved as a safety backup first and put back if the
restore fails.""",
            inputSchema={
                "type": "object",
                "properties": {
                    "passphrase": {
                        "type": "string",
                        "description": "Passphrase the backup was created with",
                    },
                },
                "required": ["passphrase"],
            },
        ),
        Tool(
            name="sync_status",
            description="Show the outcome of the last backup/restore and the retained safety backups.",
            inputSchema={"type": "object", "properties": {}},
        ),
    ]


@app.call_tool()
async def call_tool(name: str, arguments: dict) -> list[TextContent]:
    """Handle tool calls."""
    try:
        if name == "sync_backup":
            result = await handle_sync_backup(arguments)
        elif name == "sync_restore":
            result = await handle_sync_restore(arguments)
        elif name == "sync_status":
            result = await handle_sync_status()
        else:
            result = ErrorResponse(error=f"Unknown tool: {name}")

        return [TextContent(type="text", text=result.model_dump_json(indent=2))]

    except Exception as e:
        log.exception("tool_failed", tool=name)
        error = ErrorResponse(error=str(e))
        return [TextContent(type="text", text=error.model_dump_json(indent=2))]


async def handle_sync_backup(args: dict) -> BackupResponse | ErrorResponse:
    """Handle sync_backup tool."""
    passphrase = args["passphrase"]
    confirmation = args.get("confirmation", "")

    validation = crypto.validate_passphrase(passphrase, confirmation)
    if not validation.valid:
        return ErrorResponse(error=validation.error, code="INVALID_PASSPHRASE")

    orchestrator = BackupOrchestrator(get_store(), get_transport(), SyncMetadataStore())
    try:
        result = await orchestrator.create_backup(passphrase)
    except CloudSyncError as exc:
        return _error(exc)

    return BackupResponse(
        success=True,
        blob_size_bytes=result.blob_size,
        storage_key_hash=result.storage_key_hash,
        uploaded_at=result.uploaded_at,
    )


async def handle_sync_restore(args: dict) -> RestoreResponse | ErrorResponse:
    """Handle sync_restore tool."""
    passphrase = args["passphrase"]

    orchestrator = RestoreOrchestrator(
        get_store(), get_transport(), SyncMetadataStore(), SafetyBackupStore()
    )
    try:
        report = await orchestrator.restore_backup(passphrase)
    except CloudSyncError as exc:
        return _error(exc)

    warnings = [f"Table not in local schema, skipped: {t}" for t in report.skipped_tables]
    return RestoreResponse(
        success=True,
        tables_restored=report.tables_restored,
        rows_restored=report.rows_restored,
        safety_backup_id=report.safety_backup_id,
        warnings=warnings,
    )


async def handle_sync_status() -> StatusResponse:
    """Handle sync_status tool."""
    return StatusResponse(
        metadata=SyncMetadataStore().get(),
        safety_backups=SafetyBackupStore().list_backups(),
    )


def main():
    """Run the MCP server."""
    import asyncio

    get_store()

    async def run():
        async with stdio_server() as (read_stream, write_stream):
            await app.run(read_stream, write_stream, app.create_initialization_options())

    asyncio.run(run())


if __name__ == "__main__":
    main()

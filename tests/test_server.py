"""Tests for MCP server handlers."""

import json

import pytest

from cloud_sync import server
from cloud_sync.crypto import derive_storage_key
from cloud_sync.db import SqliteStore
from cloud_sync.errors import ServiceUnavailableError
from cloud_sync.server import (
    call_tool,
    handle_sync_backup,
    handle_sync_restore,
    handle_sync_status,
)

PASSPHRASE = "correct-horse-battery"


@pytest.fixture(autouse=True)
def sync_env(tmp_path, monkeypatch, transport):
    """Point every handler at temporary databases and an in-memory transport."""
    monkeypatch.setenv("CLOUD_SYNC_DB", str(tmp_path / "data.db"))
    monkeypatch.setenv("CLOUD_SYNC_STATE_DB", str(tmp_path / "state.db"))
    monkeypatch.setattr(server, "get_transport", lambda: transport)

    local = SqliteStore()
    local.init_db()
    local.put_rows("users", [{"id": "user-1", "name": "Ada"}])
    local.put_rows("foods", [{"id": "food-1", "name": "Dairy"}])
    return local


@pytest.mark.asyncio
class TestSyncBackupHandler:
    async def test_backup(self, transport):
        result = await handle_sync_backup({"passphrase": PASSPHRASE, "confirmation": PASSPHRASE})
        assert result.success is True
        assert result.storage_key_hash == derive_storage_key(PASSPHRASE)[:8]
        assert result.blob_size_bytes == len(transport.blobs[derive_storage_key(PASSPHRASE)])

    async def test_short_passphrase(self, transport):
        result = await handle_sync_backup({"passphrase": "short", "confirmation": "short"})
        assert result.success is False
        assert result.code == "INVALID_PASSPHRASE"
        assert "12 characters" in result.error
        assert transport.blobs == {}

    async def test_confirmation_mismatch(self):
        result = await handle_sync_backup({
            "passphrase": PASSPHRASE,
            "confirmation": PASSPHRASE + "!",
        })
        assert result.success is False
        assert result.error == "Passphrases do not match"

    async def test_upload_error_reported(self, transport):
        transport.upload_error = ServiceUnavailableError()
        result = await handle_sync_backup({"passphrase": PASSPHRASE, "confirmation": PASSPHRASE})
        assert result.success is False
        assert result.code == "SERVICE_UNAVAILABLE"
        assert result.error.startswith("Upload failed: ")


@pytest.mark.asyncio
class TestSyncRestoreHandler:
    async def test_restore_after_backup(self, sync_env):
        await handle_sync_backup({"passphrase": PASSPHRASE, "confirmation": PASSPHRASE})
        sync_env.put_rows("users", [{"id": "user-2", "name": "Grace"}])

        result = await handle_sync_restore({"passphrase": PASSPHRASE})

        assert result.success is True
        assert result.rows_restored == 2
        assert result.warnings == []
        assert sync_env.get_rows("users") == [{"id": "user-1", "name": "Ada"}]

    async def test_wrong_passphrase(self, sync_env):
        result = await handle_sync_restore({"passphrase": "not-the-right-one"})
        assert result.success is False
        assert result.code == "BLOB_NOT_FOUND"
        assert sync_env.get_rows("foods") == [{"id": "food-1", "name": "Dairy"}]


@pytest.mark.asyncio
class TestSyncStatusHandler:
    async def test_empty(self):
        result = await handle_sync_status()
        assert result.metadata is None
        assert result.safety_backups == []

    async def test_after_restore(self):
        await handle_sync_backup({"passphrase": PASSPHRASE, "confirmation": PASSPHRASE})
        restored = await handle_sync_restore({"passphrase": PASSPHRASE})

        result = await handle_sync_status()
        assert result.metadata.operation == "restore"
        assert result.metadata.last_attempt_success is True
        assert [b.id for b in result.safety_backups] == [restored.safety_backup_id]


@pytest.mark.asyncio
class TestCallTool:
    async def test_dispatch_returns_json(self):
        content = await call_tool("sync_status", {})
        assert json.loads(content[0].text)["safety_backups"] == []

    async def test_unknown_tool(self):
        content = await call_tool("sync_everything", {})
        assert json.loads(content[0].text) == {
            "success": False,
            "error": "Unknown tool: sync_everything",
            "code": None,
        }

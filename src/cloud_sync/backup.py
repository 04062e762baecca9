"""Backup orchestration: export, encrypt, upload."""

import asyncio
import time
from datetime import datetime, timezone
from typing import Optional

from . import crypto, envelope
from .db import LocalStore
from .errors import CloudSyncError, EmptyPassphraseError, SyncFailedError, user_message
from .logging import get_logger
from .metadata import SyncMetadataStore
from .models import ProgressCallback, SyncMetadata, UploadMetadata, UploadResult
from .progress import emit
from .transport import Transport

log = get_logger("cloud_sync.backup")


def _now_ms() -> int:
    return int(time.time() * 1000)


def record_failure(metadata_store: SyncMetadataStore, operation: str, message: str):
    """Persist a failed attempt. A failure to persist is logged; the original error wins."""
    try:
        metadata_store.save(
            SyncMetadata(
                operation=operation,
                last_attempt_timestamp=_now_ms(),
                last_attempt_success=False,
                blob_size_bytes=0,
                storage_key_hash="",
                error_message=message,
            )
        )
    except Exception:
        log.exception("sync_metadata_save_failed", operation=operation)


def record_success(
    metadata_store: SyncMetadataStore,
    operation: str,
    blob_size_bytes: int,
    storage_key: str,
):
    """Persist a completed attempt.

    The operation has already taken effect remotely or locally, so a failure
    to persist is logged and does not turn it into a failed operation.
    """
    try:
        metadata_store.save(
            SyncMetadata(
                operation=operation,
                last_attempt_timestamp=_now_ms(),
                last_attempt_success=True,
                blob_size_bytes=blob_size_bytes,
                storage_key_hash=storage_key[:8],
            )
        )
    except Exception:
        log.exception("sync_metadata_save_failed", operation=operation)


def wrap_unexpected(error: Exception, message: str) -> SyncFailedError:
    """Wrap an exception that is not part of the Cloud Sync taxonomy."""
    return SyncFailedError(str(error) or type(error).__name__, user_message=message)


class BackupOrchestrator:
    """Produces an encrypted snapshot of the local store and uploads it."""

    def __init__(
        self,
        store: LocalStore,
        transport: Transport,
        metadata_store: SyncMetadataStore,
    ):
        self.store = store
        self.transport = transport
        self.metadata_store = metadata_store

    async def create_backup(
        self,
        passphrase: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> UploadResult:
        """Export (0-30%), encrypt (30-60%), upload (60-100%).

        SyncMetadata is written whether the backup succeeds or fails. No
        retries; callers must not run two backups of one store at once.

        Raises:
            CloudSyncError: With `user_message` set to the mapped message.
        """
        try:
            if not passphrase:
                raise EmptyPassphraseError("Passphrase cannot be empty")

            emit(on_progress, "export", 0, "Exporting local data...")
            tables = self.store.export_all_tables()
            plaintext = envelope.serialize_backup_payload(
                tables, self.store.current_schema_version()
            )
            emit(on_progress, "export", 30, "Data exported successfully")

            emit(on_progress, "encrypt", 30, "Encrypting backup with your passphrase...")
            blob = await asyncio.to_thread(crypto.encrypt, plaintext, passphrase)
            del plaintext
            emit(on_progress, "encrypt", 60, "Encryption complete")

            emit(on_progress, "upload", 60, "Uploading to cloud storage...")
            storage_key = crypto.derive_storage_key(passphrase)
            result = await self.transport.upload(
                blob,
                storage_key,
                UploadMetadata(
                    timestamp=datetime.now(timezone.utc).isoformat(),
                    original_size=len(blob),
                ),
            )
            emit(on_progress, "upload", 100, "Upload complete!")
        except Exception as exc:
            message = user_message(exc, "backup")
            log.error("backup_failed", error_code=getattr(exc, "code", type(exc).__name__))
            record_failure(self.metadata_store, "backup", message)
            if isinstance(exc, CloudSyncError):
                exc.user_message = message
                raise
            raise wrap_unexpected(exc, message) from exc

        record_success(self.metadata_store, "backup", result.blob_size, storage_key)
        log.info("backup_completed", size=result.blob_size, storage_key_hash=storage_key[:8])
        return result

"""Restore orchestration: download, decrypt, validate, safety-backup, apply."""

import asyncio
from enum import Enum
from typing import Any, Iterable, Optional

from . import crypto, envelope
from .backup import record_failure, record_success, wrap_unexpected
from .db import LocalStore
from .errors import (
    CloudSyncError,
    EmptyPassphraseError,
    RestoreFailedError,
    RestoreFailedRolledBackError,
    SafetyBackupNotFoundError,
    user_message,
)
from .logging import get_logger
from .metadata import SyncMetadataStore
from .models import ProgressCallback, RestoreReport
from .progress import emit
from .safety import SafetyBackupStore
from .transport import Transport

log = get_logger("cloud_sync.restore")


class RestoreState(str, Enum):
    DOWNLOAD = "download"
    EXTRACT_METADATA = "extract_metadata"
    DECRYPT = "decrypt"
    VALIDATE = "validate"
    BACKUP_LOCAL = "backup_local"
    APPLY_RESTORE = "apply_restore"
    COMMIT = "commit"
    ROLLED_BACK = "rolled_back"


class RestoreOrchestrator:
    """Replaces the local store with the contents of a remote backup.

    Nothing local is touched before the payload has been decrypted and
    validated. The apply step is a single store transaction; if it fails,
    the safety backup taken just before is re-applied explicitly.
    """

    def __init__(
        self,
        store: LocalStore,
        transport: Transport,
        metadata_store: SyncMetadataStore,
        safety_store: SafetyBackupStore,
        critical_tables: Iterable[str] = envelope.CRITICAL_TABLES,
    ):
        self.store = store
        self.transport = transport
        self.metadata_store = metadata_store
        self.safety_store = safety_store
        self.critical_tables = tuple(critical_tables)
        self.state: Optional[RestoreState] = None

    def _enter(self, state: RestoreState):
        log.debug("restore_state", state=state.value, previous=getattr(self.state, "value", None))
        self.state = state

    async def restore_backup(
        self,
        passphrase: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> RestoreReport:
        """Run the restore state machine.

        Returns:
            RestoreReport describing what was written.

        Raises:
            CloudSyncError: With `user_message` set. A failed apply raises
                RestoreFailedRolledBackError when local data was put back,
                RestoreFailedError when it could not be.
        """
        self.state = None
        try:
            if not passphrase:
                raise EmptyPassphraseError("Passphrase cannot be empty")

            self._enter(RestoreState.DOWNLOAD)
            emit(on_progress, "download", 0, "Downloading backup from cloud...")
            storage_key = crypto.derive_storage_key(passphrase)
            blob = await self.transport.download(storage_key)
            emit(on_progress, "download", 30, "Download complete")

            self._enter(RestoreState.EXTRACT_METADATA)
            emit(on_progress, "decrypt", 30, "Decrypting backup with your passphrase...")
            envelope.decode_envelope(blob)

            self._enter(RestoreState.DECRYPT)
            plaintext = await asyncio.to_thread(crypto.decrypt, blob, passphrase)
            emit(on_progress, "decrypt", 50, "Decryption complete")

            self._enter(RestoreState.VALIDATE)
            emit(on_progress, "validate", 50, "Validating backup data...")
            payload = envelope.validate_backup_payload(
                envelope.parse_backup_payload(plaintext), self.critical_tables
            )
            del plaintext
            emit(on_progress, "validate", 60, "Validation complete")

            self._enter(RestoreState.BACKUP_LOCAL)
            emit(on_progress, "restore", 60, "Backing up current data...")
            snapshot = self.store.export_all_tables()
            safety_backup_id = self.safety_store.save(
                snapshot, self.store.current_schema_version()
            )
            emit(on_progress, "restore", 70, "Current data backed up")

            self._enter(RestoreState.APPLY_RESTORE)
            emit(on_progress, "restore", 70, "Restoring data...")
            try:
                skipped = self.store.restore_transaction(payload.data)
            except Exception as exc:
                self._enter(RestoreState.ROLLED_BACK)
                raise self._roll_back(snapshot, safety_backup_id, exc) from exc

            self._enter(RestoreState.COMMIT)
            emit(on_progress, "restore", 100, "Restore complete!")
        except Exception as exc:
            if self.state is RestoreState.VALIDATE:
                self._enter(RestoreState.ROLLED_BACK)
            message = user_message(exc, "restore")
            log.error(
                "restore_failed",
                state=getattr(self.state, "value", None),
                error_code=getattr(exc, "code", type(exc).__name__),
            )
            record_failure(self.metadata_store, "restore", message)
            if isinstance(exc, CloudSyncError):
                exc.user_message = message
                raise
            raise wrap_unexpected(exc, message) from exc

        record_success(self.metadata_store, "restore", len(blob), storage_key)

        restored = {name: rows for name, rows in payload.data.items() if name not in skipped}
        report = RestoreReport(
            tables_restored=len(restored),
            rows_restored=sum(len(rows) for rows in restored.values()),
            skipped_tables=skipped,
            safety_backup_id=safety_backup_id,
            blob_size_bytes=len(blob),
            backup_timestamp=payload.timestamp,
        )
        log.info(
            "restore_completed",
            tables=report.tables_restored,
            rows=report.rows_restored,
            safety_backup_id=safety_backup_id,
        )
        return report

    def _roll_back(
        self,
        snapshot: dict[str, list[dict[str, Any]]],
        safety_backup_id: str,
        cause: Exception,
    ) -> CloudSyncError:
        """Re-apply the safety backup after a failed apply transaction."""
        log.warning("restore_apply_failed", error=str(cause), safety_backup_id=safety_backup_id)
        try:
            self.store.restore_transaction(snapshot)
        except Exception as rollback_exc:
            log.exception("restore_rollback_failed", safety_backup_id=safety_backup_id)
            return RestoreFailedError(
                f"Restore failed ({cause}); rollback failed ({rollback_exc})",
                safety_backup_id=safety_backup_id,
            )
        log.info("restore_rolled_back", safety_backup_id=safety_backup_id)
        return RestoreFailedRolledBackError(
            f"Restore transaction failed: {cause}",
            safety_backup_id=safety_backup_id,
        )

    def rollback_restore(self, safety_backup_id: str) -> list[str]:
        """Re-apply a retained safety backup through the same atomic transaction.

        The safety backup is deleted once it has been applied.

        Returns:
            Tables skipped because the local schema no longer has them.
        """
        backup = self.safety_store.load(safety_backup_id)
        if backup is None:
            raise SafetyBackupNotFoundError(f"Safety backup not found: {safety_backup_id}")
        log.info("rollback_started", safety_backup_id=safety_backup_id)
        skipped = self.store.restore_transaction(backup.tables)
        self.safety_store.delete(safety_backup_id)
        log.info("rollback_completed", safety_backup_id=safety_backup_id)
        return skipped

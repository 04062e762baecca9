"""Error taxonomy for Cloud Sync and the user-facing message mapping."""

import math
from typing import Optional


class CloudSyncError(Exception):
    """Base class for every backup/restore failure."""

    code = "SYNC_ERROR"

    def __init__(self, message: str = "", *, user_message: Optional[str] = None):
        super().__init__(message or self.code)
        self.user_message = user_message


# Input validation


class EmptyPassphraseError(CloudSyncError):
    code = "EMPTY_PASSPHRASE"


class EmptyPlaintextError(CloudSyncError):
    code = "EMPTY_PLAINTEXT"


class InvalidStorageKeyLengthError(CloudSyncError):
    code = "INVALID_STORAGE_KEY"


# Envelope / cipher


class MalformedBlobError(CloudSyncError):
    code = "MALFORMED_BLOB"


class WrongPassphraseOrCorruptBlobError(CloudSyncError):
    """Authentication tag did not verify.

    Raised for a wrong passphrase and for a tampered or corrupted blob alike;
    AES-GCM cannot tell the two apart.
    """

    code = "WRONG_PASSPHRASE"


# Structural validation


class UnsupportedEnvelopeVersionError(CloudSyncError):
    code = "UNSUPPORTED_VERSION"


class MissingCriticalTableError(CloudSyncError):
    code = "MISSING_CRITICAL_TABLE"

    def __init__(self, table: str):
        super().__init__(f"MissingCriticalTable: {table}")
        self.table = table


class InvalidBackupPayloadError(CloudSyncError):
    code = "INVALID_PAYLOAD"


# Transport


class BlobNotFoundError(CloudSyncError):
    code = "BLOB_NOT_FOUND"


class RateLimitedError(CloudSyncError):
    code = "RATE_LIMIT"

    def __init__(self, retry_after_seconds: int):
        super().__init__(f"RATE_LIMIT:{retry_after_seconds}")
        self.retry_after_seconds = retry_after_seconds


class ServiceUnavailableError(CloudSyncError):
    code = "SERVICE_UNAVAILABLE"


class QuotaExceededError(CloudSyncError):
    code = "QUOTA_EXCEEDED"


class InvalidRequestError(CloudSyncError):
    code = "INVALID_REQUEST"


class NetworkError(CloudSyncError):
    code = "NETWORK_ERROR"


# Restore outcome


class RestoreFailedRolledBackError(CloudSyncError):
    """The restore transaction failed but local data was put back from the safety backup."""

    code = "RESTORE_ROLLED_BACK"

    def __init__(self, message: str = "", *, safety_backup_id: Optional[str] = None):
        super().__init__(message)
        self.safety_backup_id = safety_backup_id


class RestoreFailedError(CloudSyncError):
    """The restore transaction failed and so did the rollback from the safety backup."""

    code = "RESTORE_FAILED"

    def __init__(self, message: str = "", *, safety_backup_id: Optional[str] = None):
        super().__init__(message)
        self.safety_backup_id = safety_backup_id


class SafetyBackupNotFoundError(CloudSyncError):
    code = "SAFETY_BACKUP_NOT_FOUND"


class SyncFailedError(CloudSyncError):
    """Wraps an unexpected exception raised inside an orchestrator."""

    code = "SYNC_FAILED"


def _wait_minutes(retry_after_seconds: int) -> int:
    return max(1, math.ceil(retry_after_seconds / 60))


def user_message(error: BaseException, operation: str = "backup") -> str:
    """Map an error to the message shown to the user.

    Args:
        error: Any exception raised by a backup or restore.
        operation: "backup" or "restore"; selects the message prefix.

    Returns:
        Human-readable, actionable message. Never contains secrets.
    """
    prefix = "Upload failed" if operation == "backup" else "Restore failed"

    if isinstance(error, EmptyPassphraseError):
        return f"{prefix}: Please enter your passphrase."
    if isinstance(error, EmptyPlaintextError):
        return f"{prefix}: There is no data to back up."
    if isinstance(error, InvalidStorageKeyLengthError):
        return f"{prefix}: Invalid storage key. This shouldn't happen - contact support."
    if isinstance(error, MalformedBlobError):
        return f"{prefix}: Backup file is corrupted. Try a different backup or contact support."
    if isinstance(error, WrongPassphraseOrCorruptBlobError):
        return f"{prefix}: Wrong passphrase. Please check and try again."
    if isinstance(
        error,
        (UnsupportedEnvelopeVersionError, MissingCriticalTableError, InvalidBackupPayloadError),
    ):
        return f"{prefix}: Backup is corrupted or incompatible with this version of the app."
    if isinstance(error, BlobNotFoundError):
        return (
            f"{prefix}: No backup found for this passphrase. "
            "Check your passphrase or create a backup on another device."
        )
    if isinstance(error, RateLimitedError):
        minutes = _wait_minutes(error.retry_after_seconds)
        noun = "uploads" if operation == "backup" else "downloads"
        return f"{prefix}: Too many {noun}. Please try again in {minutes} minutes."
    if isinstance(error, ServiceUnavailableError):
        return f"{prefix}: Cloud storage temporarily unavailable. Please try again shortly."
    if isinstance(error, QuotaExceededError):
        return f"{prefix}: Backup exceeds the storage size limit. Reduce your data size and try again."
    if isinstance(error, InvalidRequestError):
        return f"{prefix}: Invalid backup request. This shouldn't happen - contact support."
    if isinstance(error, NetworkError):
        return f"{prefix}: Network error ({error}). Check your internet connection and try again."
    if isinstance(error, RestoreFailedRolledBackError):
        return "Restore failed, but your data was not changed."
    if isinstance(error, RestoreFailedError):
        return (
            "Restore failed and your previous data could not be put back automatically. "
            "A safety backup was kept - contact support."
        )
    if isinstance(error, SafetyBackupNotFoundError):
        return f"{prefix}: That safety backup no longer exists."
    return f"{prefix}: An unexpected error occurred. Please try again or contact support."

"""Pydantic models for Cloud Sync."""

from typing import Any, Callable, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

ENVELOPE_VERSION = 1

Stage = Literal["export", "encrypt", "upload", "download", "decrypt", "validate", "restore"]
Operation = Literal["backup", "restore"]


class ProgressEvent(BaseModel):
    """One progress update from a backup or restore."""

    stage: Stage
    percent: int
    message: str


ProgressCallback = Callable[[ProgressEvent], None]


class BackupPayload(BaseModel):
    """Plaintext snapshot of the local store, before encryption."""

    model_config = ConfigDict(populate_by_name=True)

    version: int = ENVELOPE_VERSION
    timestamp: int
    schema_version: Optional[int] = Field(default=None, alias="schemaVersion")
    data: dict[str, list[dict[str, Any]]]


class UploadMetadata(BaseModel):
    """Metadata sent alongside an upload."""

    model_config = ConfigDict(populate_by_name=True)

    timestamp: str
    original_size: int = Field(alias="originalSize")


class UploadResult(BaseModel):
    """Server acknowledgment of an upload."""

    model_config = ConfigDict(populate_by_name=True)

    uploaded_at: str = Field(alias="uploadedAt")
    blob_size: int = Field(alias="blobSize")
    storage_key_hash: str = Field(alias="storageKeyHash")


class SyncMetadata(BaseModel):
    """Outcome of the last backup or restore attempt."""

    id: Literal["primary"] = "primary"
    operation: Operation
    last_attempt_timestamp: int
    last_attempt_success: bool
    blob_size_bytes: int = 0
    storage_key_hash: str = ""
    error_message: Optional[str] = None


class PassphraseValidation(BaseModel):
    """Result of checking a new passphrase."""

    valid: bool
    error: Optional[str] = None


class SafetyBackup(BaseModel):
    """A local snapshot taken right before a restore."""

    id: str
    created_at: int
    schema_version: int
    tables: dict[str, list[dict[str, Any]]]


class SafetyBackupSummary(BaseModel):
    """Listing entry for a retained safety backup."""

    id: str
    created_at: int
    row_count: int


class RestoreReport(BaseModel):
    """Result of a successful restore."""

    tables_restored: int
    rows_restored: int
    skipped_tables: list[str] = Field(default_factory=list)
    safety_backup_id: str
    blob_size_bytes: int
    backup_timestamp: int


# Tool response models


class BackupResponse(BaseModel):
    """Response from sync_backup."""

    success: bool
    blob_size_bytes: int
    storage_key_hash: str
    uploaded_at: str
    warnings: list[str] = Field(default_factory=list)


class RestoreResponse(BaseModel):
    """Response from sync_restore."""

    success: bool
    tables_restored: int = 0
    rows_restored: int = 0
    safety_backup_id: Optional[str] = None
    warnings: list[str] = Field(default_factory=list)


class StatusResponse(BaseModel):
    """Response from sync_status."""

    metadata: Optional[SyncMetadata] = None
    safety_backups: list[SafetyBackupSummary] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    """Error response for failed tool calls."""

    success: bool = False
    error: str
    code: Optional[str] = None

"""Environment-driven configuration for Cloud Sync."""

import os
from pathlib import Path

DEFAULT_HOME = Path.home() / ".cloud_sync"


def get_db_path() -> Path:
    """Path of the local data store."""
    db_path = os.environ.get("CLOUD_SYNC_DB")
    if db_path:
        return Path(db_path)
    return DEFAULT_HOME / "data.db"


def get_state_db_path() -> Path:
    """Path of the database holding sync metadata and safety backups."""
    db_path = os.environ.get("CLOUD_SYNC_STATE_DB")
    if db_path:
        return Path(db_path)
    return DEFAULT_HOME / "state.db"


def get_sync_url() -> str:
    """Base URL of the upload/download endpoints."""
    return os.environ.get("CLOUD_SYNC_URL", "http://localhost:3000").rstrip("/")


def get_timeout() -> float:
    """Transport timeout in seconds."""
    return float(os.environ.get("CLOUD_SYNC_TIMEOUT", "60"))


def get_log_path() -> Path:
    """Log file used when debug logging is off."""
    log_path = os.environ.get("CLOUD_SYNC_LOG")
    if log_path:
        return Path(log_path)
    return DEFAULT_HOME / "cloud_sync.log"


def debug_enabled() -> bool:
    """Check if logs go to stderr instead of the log file."""
    return os.environ.get("CLOUD_SYNC_DEBUG", "false").lower() == "true"

"""Persistence of the last backup/restore outcome."""

from pathlib import Path
from typing import Optional

from . import config
from .db import get_connection
from .models import SyncMetadata

PRIMARY_ID = "primary"


class SyncMetadataStore:
    """Single-row status cache keyed by "primary". Not an audit log."""

    def __init__(self, db_path: Optional[Path] = None):
        self.db_path = Path(db_path) if db_path else config.get_state_db_path()
        with get_connection(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS sync_metadata (
                    id TEXT PRIMARY KEY,
                    record JSON NOT NULL
                )
            """)

    def save(self, metadata: SyncMetadata):
        """Upsert the record, replacing whatever was there."""
        with get_connection(self.db_path) as conn:
            conn.execute(
                "INSERT OR REPLACE INTO sync_metadata (id, record) VALUES (?, ?)",
                (PRIMARY_ID, metadata.model_dump_json()),
            )

    def get(self) -> Optional[SyncMetadata]:
        """Current record, or None if nothing was ever saved."""
        with get_connection(self.db_path) as conn:
            row = conn.execute(
                "SELECT record FROM sync_metadata WHERE id = ?", (PRIMARY_ID,)
            ).fetchone()
        if row is None:
            return None
        return SyncMetadata.model_validate_json(row["record"])

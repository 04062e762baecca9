"""Local safety backups taken right before a restore overwrites data."""

import json
import time
import uuid
from pathlib import Path
from typing import Any, Optional

from . import config
from .db import get_connection
from .logging import get_logger
from .models import SafetyBackup, SafetyBackupSummary

log = get_logger("cloud_sync.safety")

MAX_SAFETY_BACKUPS = 3


class SafetyBackupStore:
    """Persisted snapshots with count-based retention.

    Each save evicts the oldest snapshots beyond `keep`.
    """

    def __init__(self, db_path: Optional[Path] = None, keep: int = MAX_SAFETY_BACKUPS):
        self.db_path = Path(db_path) if db_path else config.get_state_db_path()
        self.keep = keep
        with get_connection(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS safety_backups (
                    id TEXT PRIMARY KEY,
                    created_at INTEGER NOT NULL,
                    schema_version INTEGER NOT NULL,
                    row_count INTEGER NOT NULL,
                    data JSON NOT NULL
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_safety_created ON safety_backups(created_at)"
            )

    def save(self, tables: dict[str, list[dict[str, Any]]], schema_version: int) -> str:
        """Store a snapshot and apply retention in the same transaction.

        Returns:
            The new backup id.
        """
        created_at = int(time.time() * 1000)
        backup_id = f"backup-{created_at}-{uuid.uuid4().hex[:8]}"
        row_count = sum(len(rows) for rows in tables.values())

        with get_connection(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO safety_backups (id, created_at, schema_version, row_count, data)
                VALUES (?, ?, ?, ?, ?)
                """,
                (backup_id, created_at, schema_version, row_count, json.dumps(tables)),
            )
            stale = conn.execute(
                """
                SELECT id FROM safety_backups
                ORDER BY created_at DESC, rowid DESC
                LIMIT -1 OFFSET ?
                """,
                (self.keep,),
            ).fetchall()
            for row in stale:
                conn.execute("DELETE FROM safety_backups WHERE id = ?", (row["id"],))

        if stale:
            log.info("safety_backups_evicted", count=len(stale))
        log.info("safety_backup_saved", backup_id=backup_id, rows=row_count)
        return backup_id

    def load(self, backup_id: str) -> Optional[SafetyBackup]:
        with get_connection(self.db_path) as conn:
            row = conn.execute(
                "SELECT id, created_at, schema_version, data FROM safety_backups WHERE id = ?",
                (backup_id,),
            ).fetchone()
        if row is None:
            return None
        return SafetyBackup(
            id=row["id"],
            created_at=row["created_at"],
            schema_version=row["schema_version"],
            tables=json.loads(row["data"]),
        )

    def list_backups(self) -> list[SafetyBackupSummary]:
        """Retained snapshots, newest first."""
        with get_connection(self.db_path) as conn:
            rows = conn.execute(
                """
                SELECT id, created_at, row_count FROM safety_backups
                ORDER BY created_at DESC, rowid DESC
                """
            ).fetchall()
        return [
            SafetyBackupSummary(id=r["id"], created_at=r["created_at"], row_count=r["row_count"])
            for r in rows
        ]

    def delete(self, backup_id: str) -> bool:
        with get_connection(self.db_path) as conn:
            cursor = conn.execute("DELETE FROM safety_backups WHERE id = ?", (backup_id,))
            return cursor.rowcount > 0

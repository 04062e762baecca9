"""SQLite local data store for Cloud Sync."""

import json
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterable, Optional, Protocol

from . import config
from .logging import get_logger

log = get_logger("cloud_sync.db")

# Data model version stamped into every backup payload.
SCHEMA_VERSION = 32

TABLE_NAMES = (
    "users",
    "symptoms",
    "symptomInstances",
    "medications",
    "medicationEvents",
    "triggers",
    "triggerEvents",
    "treatments",
    "treatmentEvents",
    "uxEvents",
    "dailyEntries",
    "dailyLogs",
    "attachments",
    "bodyMapLocations",
    "bodyMapPreferences",
    "photoAttachments",
    "photoComparisons",
    "bodyMarkers",
    "bodyMarkerEvents",
    "bodyMarkerLocations",
    "analysisResults",
    "foods",
    "foodEvents",
    "foodCombinations",
    "moodEntries",
    "sleepEntries",
    "correlations",
    "patternDetections",
    "treatmentEffectiveness",
    "treatmentAlerts",
)

# Tables whose rows are not keyed by "id".
PRIMARY_KEYS = {
    "bodyMapPreferences": "userId",
}


def primary_key(table: str) -> str:
    return PRIMARY_KEYS.get(table, "id")


class LocalStore(Protocol):
    """What the orchestrators need from the local data store."""

    def export_all_tables(self) -> dict[str, list[dict[str, Any]]]: ...

    def restore_transaction(self, tables: dict[str, list[dict[str, Any]]]) -> list[str]: ...

    def current_schema_version(self) -> int: ...


@contextmanager
def get_connection(db_path: Path):
    """Get a database connection; commits on success, rolls back on error."""
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(str(db_path))
    conn.row_factory = sqlite3.Row

    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def _quote(table: str) -> str:
    return '"' + table.replace('"', '""') + '"'


def _records(table: str, rows: list[dict[str, Any]]) -> list[tuple[str, str]]:
    """(key, JSON) pairs; KeyError if a row lacks the table's primary key."""
    key = primary_key(table)
    return [(str(row[key]), json.dumps(row)) for row in rows]


class SqliteStore:
    """Local store with one JSON-document table per application table.

    Every row is a JSON object keyed by its `id` field, or by the field
    named in PRIMARY_KEYS for the few tables that differ.
    """

    def __init__(
        self,
        db_path: Optional[Path] = None,
        tables: Iterable[str] = TABLE_NAMES,
        schema_version: int = SCHEMA_VERSION,
    ):
        self.db_path = Path(db_path) if db_path else config.get_db_path()
        self.tables = tuple(tables)
        self.schema_version = schema_version

    def init_db(self):
        """Create every table that does not exist yet."""
        with get_connection(self.db_path) as conn:
            conn.executescript(
                "\n".join(
                    f"CREATE TABLE IF NOT EXISTS {_quote(name)} "
                    "(id TEXT PRIMARY KEY, record JSON NOT NULL);"
                    for name in self.tables
                )
            )

    def current_schema_version(self) -> int:
        return self.schema_version

    def _check_table(self, table: str):
        if table not in self.tables:
            raise KeyError(f"Unknown table: {table}")

    def put_rows(self, table: str, rows: list[dict[str, Any]]):
        """Insert or replace rows in one table."""
        self._check_table(table)
        with get_connection(self.db_path) as conn:
            conn.executemany(
                f"INSERT OR REPLACE INTO {_quote(table)} (id, record) VALUES (?, ?)",
                _records(table, rows),
            )

    def get_rows(self, table: str) -> list[dict[str, Any]]:
        """All rows of one table in insertion order."""
        self._check_table(table)
        with get_connection(self.db_path) as conn:
            cursor = conn.execute(f"SELECT record FROM {_quote(table)} ORDER BY rowid")
            return [json.loads(r["record"]) for r in cursor.fetchall()]

    def export_all_tables(self) -> dict[str, list[dict[str, Any]]]:
        """Every known table's full row set, empty tables included."""
        exported = {}
        with get_connection(self.db_path) as conn:
            for table in self.tables:
                cursor = conn.execute(f"SELECT record FROM {_quote(table)} ORDER BY rowid")
                exported[table] = [json.loads(r["record"]) for r in cursor.fetchall()]
        log.info(
            "tables_exported",
            tables=len(exported),
            rows=sum(len(rows) for rows in exported.values()),
        )
        return exported

    def restore_transaction(self, tables: dict[str, list[dict[str, Any]]]) -> list[str]:
        """Replace the contents of every table in `tables`, all-or-nothing.

        Tables unknown to the local schema are skipped.

        Returns:
            Names of the skipped tables.
        """
        skipped = [name for name in tables if name not in self.tables]
        for name in skipped:
            log.warning("restore_table_unknown", table=name)

        with get_connection(self.db_path) as conn:
            conn.execute("BEGIN IMMEDIATE")
            for table, rows in tables.items():
                if table in skipped:
                    continue
                conn.execute(f"DELETE FROM {_quote(table)}")
                # Plain INSERT: a duplicate id aborts the whole transaction.
                conn.executemany(
                    f"INSERT INTO {_quote(table)} (id, record) VALUES (?, ?)",
                    _records(table, rows),
                )
        log.info("restore_transaction_committed", tables=len(tables) - len(skipped))
        return skipped

"""
Record Store — the load/save boundary for graph and ledger state.

Each persisted record set lives under one key:
  entities, relationships          (GraphStore)
  tracking_codes, outreach_status,
  response_metrics                 (OutreachLedger)

Behavioral Contract:
- Values are JSON-compatible (dicts, lists, scalars).
- write() replaces the whole value stored under a key.
- read() of a missing key returns None, never raises.
"""

import json
import sqlite3
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, List, Optional

import structlog

from contact_kernel.core.config import KernelConfig

logger = structlog.get_logger(__name__)


class RecordStore(ABC):
    """Key/value persistence for JSON-compatible record sets."""

    @abstractmethod
    def read(self, key: str) -> Optional[Any]:
        """Return the value stored under ``key``, or None."""

    @abstractmethod
    def write(self, key: str, value: Any) -> None:
        """Replace the value stored under ``key``."""

    @abstractmethod
    def keys(self) -> List[str]:
        """All keys currently stored."""

    def close(self) -> None:
        """Release any underlying resources."""


class JsonFileRecordStore(RecordStore):
    """
    One pretty-printed JSON file per key inside a directory.
    Writes go to a temporary sibling first and are renamed into place.
    """

    def __init__(self, directory: Path):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def read(self, key: str) -> Optional[Any]:
        path = self._path(key)
        if not path.exists():
            return None
        with path.open("r", encoding="utf-8") as f:
            return json.load(f)

    def write(self, key: str, value: Any) -> None:
        path = self._path(key)
        tmp_path = path.with_suffix(".json.tmp")
        with tmp_path.open("w", encoding="utf-8") as f:
            json.dump(value, f, indent=2, ensure_ascii=False, default=str)
        tmp_path.replace(path)
        logger.debug("record_written", key=key, path=str(path))

    def keys(self) -> List[str]:
        return sorted(p.stem for p in self.directory.glob("*.json"))


class SqliteRecordStore(RecordStore):
    """
    Key/value records in a single SQLite table.
    Defaults to an in-memory database (tests, throwaway sessions).
    """

    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._init_schema()

    def _init_schema(self) -> None:
        """Create the records table if it doesn't exist."""
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS records (
                key TEXT PRIMARY KEY,
                record_json TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        self._conn.commit()

    def read(self, key: str) -> Optional[Any]:
        row = self._conn.execute(
            "SELECT record_json FROM records WHERE key = ?", (key,)
        ).fetchone()
        return json.loads(row["record_json"]) if row else None

    def write(self, key: str, value: Any) -> None:
        self._conn.execute(
            """
            INSERT INTO records (key, record_json, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET
                record_json = excluded.record_json,
                updated_at = excluded.updated_at
            """,
            (
                key,
                json.dumps(value, ensure_ascii=False, default=str),
                datetime.now(timezone.utc).isoformat(),
            ),
        )
        self._conn.commit()
        logger.debug("record_written", key=key, db_path=self.db_path)

    def keys(self) -> List[str]:
        rows = self._conn.execute("SELECT key FROM records ORDER BY key").fetchall()
        return [r["key"] for r in rows]

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()


def open_record_store(config: KernelConfig) -> RecordStore:
    """Build the record store selected by ``config.storage_backend``."""
    if config.storage_backend == "sqlite":
        config.data_dir.mkdir(parents=True, exist_ok=True)
        return SqliteRecordStore(db_path=str(config.data_dir / "contact_kernel.db"))
    return JsonFileRecordStore(config.data_dir)

"""Keyed record store with an SQLite-backed implementation."""

from __future__ import annotations

import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import closing
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Type, TypeVar, Union

from .models import ActionPackRun, ExtractionResult, LLMResult, OCRArtifact, ScreenRecord

Record = Union[ScreenRecord, OCRArtifact, LLMResult, ExtractionResult, ActionPackRun]
R = TypeVar("R", ScreenRecord, OCRArtifact, LLMResult, ExtractionResult, ActionPackRun)

# table name, column definitions (the id column is always the primary key)
_SCHEMA: Dict[type, Tuple[str, Tuple[Tuple[str, str], ...]]] = {
    ScreenRecord: (
        "screens",
        (
            ("source", "TEXT NOT NULL"),
            ("image_path", "TEXT NOT NULL"),
            ("image_width", "INTEGER NOT NULL"),
            ("image_height", "INTEGER NOT NULL"),
            ("processing_version", "TEXT NOT NULL"),
            ("scenario", "TEXT NOT NULL"),
            ("scenario_confidence", "REAL NOT NULL"),
            ("created_at", "TEXT NOT NULL"),
            ("last_opened_at", "TEXT"),
        ),
    ),
    OCRArtifact: (
        "ocr_artifacts",
        (
            ("screen_id", "TEXT NOT NULL"),
            ("engine_version", "TEXT NOT NULL"),
            ("blocks_json_path", "TEXT NOT NULL"),
            ("language_hint", "TEXT"),
            ("created_at", "TEXT NOT NULL"),
        ),
    ),
    LLMResult: (
        "llm_results",
        (
            ("screen_id", "TEXT NOT NULL"),
            ("model", "TEXT NOT NULL"),
            ("prompt_version", "TEXT NOT NULL"),
            ("resolution", "TEXT NOT NULL"),
            ("raw_response_json_path", "TEXT NOT NULL"),
            ("validated_json_path", "TEXT NOT NULL"),
            ("created_at", "TEXT NOT NULL"),
        ),
    ),
    ExtractionResult: (
        "extraction_results",
        (
            ("screen_id", "TEXT NOT NULL"),
            ("schema_version", "TEXT NOT NULL"),
            ("entities_json_path", "TEXT NOT NULL"),
            ("intent_graph_json_path", "TEXT NOT NULL"),
            ("user_overrides_json_path", "TEXT"),
            ("created_at", "TEXT NOT NULL"),
        ),
    ),
    ActionPackRun: (
        "action_pack_runs",
        (
            ("screen_id", "TEXT NOT NULL"),
            ("pack_id", "TEXT NOT NULL"),
            ("pack_version", "TEXT NOT NULL"),
            ("input_params_json_path", "TEXT NOT NULL"),
            ("trace_json_path", "TEXT NOT NULL"),
            ("status", "TEXT NOT NULL"),
            ("created_at", "TEXT NOT NULL"),
        ),
    ),
}


class RecordRepository(ABC):
    """Point lookup, full listing and upsert keyed by each record's stable id."""

    @abstractmethod
    def upsert(self, record: R) -> R:
        ...

    @abstractmethod
    def fetch(self, record_type: Type[R], record_id: str) -> Optional[R]:
        ...

    @abstractmethod
    def list(self, record_type: Type[R], *, screen_id: Optional[str] = None) -> List[R]:
        """Return records newest first, optionally restricted to one screen."""

    def close(self) -> None:
        pass


class SQLiteRecordRepository(RecordRepository):
    """Persist pipeline records in SQLite, one table per record kind."""

    def __init__(self, db_path: str | Path = ":memory:") -> None:
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        with self._lock, closing(self.conn.cursor()) as cur:
            for table, columns in _SCHEMA.values():
                column_sql = ",\n".join(f"{name} {kind}" for name, kind in columns)
                cur.execute(
                    f"""
                    CREATE TABLE IF NOT EXISTS {table} (
                        id TEXT PRIMARY KEY,
                        {column_sql}
                    )
                    """
                )
                cur.execute(
                    f"CREATE INDEX IF NOT EXISTS idx_{table}_created ON {table}(created_at)"
                )
            self.conn.commit()

    def upsert(self, record: R) -> R:
        table, columns = self._table_for(type(record))
        row = record.to_row()
        names = ["id", *(name for name, _ in columns)]
        placeholders = ", ".join("?" for _ in names)
        updates = ",\n".join(f"{name}=excluded.{name}" for name, _ in columns)
        with self._lock, closing(self.conn.cursor()) as cur:
            cur.execute(
                f"""
                INSERT INTO {table} ({", ".join(names)})
                VALUES ({placeholders})
                ON CONFLICT(id) DO UPDATE SET
                    {updates}
                """,
                [row[name] for name in names],
            )
            self.conn.commit()
        return record

    def fetch(self, record_type: Type[R], record_id: str) -> Optional[R]:
        table, _ = self._table_for(record_type)
        with self._lock, closing(self.conn.cursor()) as cur:
            cur.execute(f"SELECT * FROM {table} WHERE id = ?", (record_id,))
            row = cur.fetchone()
        if not row:
            return None
        return record_type.from_row(row)

    def list(self, record_type: Type[R], *, screen_id: Optional[str] = None) -> List[R]:
        table, columns = self._table_for(record_type)
        query = f"SELECT * FROM {table}"
        params: tuple = ()
        if screen_id is not None:
            if not any(name == "screen_id" for name, _ in columns):
                raise ValueError(f"{record_type.__name__} records are not keyed by screen")
            query += " WHERE screen_id = ?"
            params = (screen_id,)
        query += " ORDER BY created_at DESC, id ASC"
        with self._lock, closing(self.conn.cursor()) as cur:
            cur.execute(query, params)
            rows = cur.fetchall()
        return [record_type.from_row(row) for row in rows]

    @staticmethod
    def _table_for(record_type: type) -> Tuple[str, Tuple[Tuple[str, str], ...]]:
        try:
            return _SCHEMA[record_type]
        except KeyError:
            raise TypeError(f"unsupported record type: {record_type.__name__}") from None

    def close(self) -> None:
        self.conn.close()

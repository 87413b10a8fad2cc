# finbud/store.py
from __future__ import annotations

import json
import logging
import sqlite3
from abc import ABC, abstractmethod
from importlib import import_module
from pathlib import Path
from typing import Any, Dict, List, Tuple

from finbud.errors import StoreError

logger = logging.getLogger(__name__)

STORE_BACKENDS: Dict[str, str] = {
    "sqlite": "finbud.store.SQLiteRecordStore",
    "memory": "finbud.store.MemoryRecordStore",
}


class RecordStore(ABC):
    """Persistent mapping from string keys to JSON values."""

    @abstractmethod
    def get(self, key: str) -> Any | None:
        """Return the value stored under ``key`` or None."""

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove ``key``. Missing keys are ignored."""

    @abstractmethod
    def get_by_prefix(self, prefix: str) -> List[Tuple[str, Any]]:
        """Return ``(key, value)`` pairs whose key starts with ``prefix``."""


class MemoryRecordStore(RecordStore):
    def __init__(self, config: dict | None = None) -> None:
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Any | None:
        raw = self._data.get(key)
        return json.loads(raw) if raw is not None else None

    def set(self, key: str, value: Any) -> None:
        self._data[key] = json.dumps(value)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def get_by_prefix(self, prefix: str) -> List[Tuple[str, Any]]:
        return [
            (key, json.loads(raw))
            for key, raw in self._data.items()
            if key.startswith(prefix)
        ]


def _init_db(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS kv_store (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        )
        """
    )
    conn.commit()


class SQLiteRecordStore(RecordStore):
    """Key-value records kept as JSON text in a single SQLite table."""

    def __init__(self, config: dict | None = None, db_path: str | None = None) -> None:
        cfg = config or {}
        self.db_path = str(db_path or cfg.get("db_path") or "finbud.db")

    def _connect(self) -> sqlite3.Connection:
        path = Path(self.db_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(path)
        _init_db(conn)
        return conn

    def get(self, key: str) -> Any | None:
        try:
            conn = self._connect()
            try:
                row = conn.execute(
                    "SELECT value FROM kv_store WHERE key = ?", (key,)
                ).fetchone()
            finally:
                conn.close()
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to read {key}") from exc
        return json.loads(row[0]) if row else None

    def set(self, key: str, value: Any) -> None:
        try:
            conn = self._connect()
            try:
                conn.execute(
                    "INSERT OR REPLACE INTO kv_store (key, value) VALUES (?, ?)",
                    (key, json.dumps(value)),
                )
                conn.commit()
            finally:
                conn.close()
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to write {key}") from exc

    def delete(self, key: str) -> None:
        try:
            conn = self._connect()
            try:
                conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
                conn.commit()
            finally:
                conn.close()
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to delete {key}") from exc

    def get_by_prefix(self, prefix: str) -> List[Tuple[str, Any]]:
        try:
            conn = self._connect()
            try:
                rows = conn.execute(
                    "SELECT key, value FROM kv_store WHERE substr(key, 1, ?) = ? ORDER BY key",
                    (len(prefix), prefix),
                ).fetchall()
            finally:
                conn.close()
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to scan {prefix}") from exc
        logger.debug("Scanned %d record(s) with prefix %s", len(rows), prefix)
        return [(key, json.loads(value)) for key, value in rows]


def get_store(config: dict) -> RecordStore:
    path = STORE_BACKENDS[config.get("store", "sqlite")]
    module_name, cls_name = path.rsplit(".", 1)
    mod = import_module(module_name)
    return getattr(mod, cls_name)(config)

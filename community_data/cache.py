"""Key-value cache backends (SQLite and in-memory) with optional TTLs."""
from __future__ import annotations

import json
import sqlite3
import threading
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Protocol, Tuple, runtime_checkable


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


@runtime_checkable
class KeyValueCache(Protocol):
    def get(self, key: str) -> Optional[Any]:
        ...

    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        ...


class MemoryKeyValueCache:
    def __init__(self, clock=time.time) -> None:
        self._clock = clock
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            payload, expires_at = entry
            if expires_at is not None and expires_at <= self._clock():
                del self._data[key]
                return None
        return json.loads(payload)

    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        expires_at = self._clock() + ttl_seconds if ttl_seconds else None
        payload = json.dumps(value)
        with self._lock:
            self._data[key] = (payload, expires_at)

    def keys(self):
        with self._lock:
            return sorted(self._data)


class SqliteKeyValueCache:
    def __init__(self, db_path: str, clock=time.time) -> None:
        self.db_path = db_path
        self._clock = clock
        self._lock = threading.Lock()
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self._configure_conn()
        self._init_db()

    def _configure_conn(self) -> None:
        cur = self.conn.cursor()
        try:
            cur.execute("PRAGMA journal_mode=WAL")
            cur.fetchone()
        except sqlite3.DatabaseError:
            pass
        try:
            cur.execute("PRAGMA synchronous=NORMAL")
        except sqlite3.DatabaseError:
            pass

    def _init_db(self) -> None:
        cur = self.conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS kv_cache (
                key TEXT PRIMARY KEY,
                value_json TEXT,
                expires_at REAL,
                updated_at TEXT
            )
            """
        )
        self.conn.commit()

    def close(self) -> None:
        with self._lock:
            self.conn.close()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            cur = self.conn.cursor()
            cur.execute("SELECT value_json, expires_at FROM kv_cache WHERE key = ?", (key,))
            row = cur.fetchone()
            if not row:
                return None
            if row["expires_at"] is not None and row["expires_at"] <= self._clock():
                cur.execute("DELETE FROM kv_cache WHERE key = ?", (key,))
                self.conn.commit()
                return None
            return json.loads(row["value_json"])

    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        expires_at = self._clock() + ttl_seconds if ttl_seconds else None
        with self._lock:
            cur = self.conn.cursor()
            cur.execute(
                """
                INSERT OR REPLACE INTO kv_cache (key, value_json, expires_at, updated_at)
                VALUES (?, ?, ?, ?)
                """,
                (key, json.dumps(value), expires_at, utc_now_iso()),
            )
            self.conn.commit()

    def purge_expired(self) -> int:
        with self._lock:
            cur = self.conn.cursor()
            cur.execute(
                "DELETE FROM kv_cache WHERE expires_at IS NOT NULL AND expires_at <= ?",
                (self._clock(),),
            )
            self.conn.commit()
            return cur.rowcount

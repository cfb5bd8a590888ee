"""
Persistent response cache.

Entries map a request fingerprint to a serialized response. They are written
as soon as a call succeeds and are never invalidated by cvscan itself: delete
the database file to start from scratch.
"""

from __future__ import annotations

import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Protocol

from .errors import CacheError


_SCHEMA = """
CREATE TABLE IF NOT EXISTS responses (
    fingerprint TEXT PRIMARY KEY,
    payload TEXT NOT NULL,
    created_at TEXT NOT NULL
)
"""


class ResponseCache(Protocol):
    def get(self, fingerprint: str) -> Optional[str]: ...

    def set(self, fingerprint: str, payload: str) -> None: ...

    def close(self) -> None: ...


class MemoryResponseCache:
    def __init__(self):
        self._entries: dict[str, str] = {}

    def get(self, fingerprint: str) -> Optional[str]:
        return self._entries.get(fingerprint)

    def set(self, fingerprint: str, payload: str) -> None:
        self._entries[fingerprint] = payload

    def close(self) -> None:
        pass

    def __len__(self) -> int:
        return len(self._entries)


class SQLiteResponseCache:
    def __init__(self, path: str):
        self.path = Path(path)
        self._lock = threading.Lock()
        self._conn: Optional[sqlite3.Connection] = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(self.path), check_same_thread=False)
            self._conn.execute("PRAGMA journal_mode = WAL")
            self._conn.execute(_SCHEMA)
            self._conn.commit()
        except (OSError, sqlite3.Error) as e:
            self.close()
            raise CacheError(f"failed to open response cache {self.path}: {e}") from e

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError(f"response cache {self.path} is closed")
        return self._conn

    def get(self, fingerprint: str) -> Optional[str]:
        with self._lock:
            row = self._connection().execute(
                "SELECT payload FROM responses WHERE fingerprint = ?", (fingerprint,)
            ).fetchone()
        return row[0] if row else None

    def set(self, fingerprint: str, payload: str) -> None:
        with self._lock:
            conn = self._connection()
            conn.execute(
                "INSERT OR REPLACE INTO responses (fingerprint, payload, created_at) VALUES (?, ?, ?)",
                (fingerprint, payload, datetime.now(timezone.utc).isoformat()),
            )
            conn.commit()

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def __len__(self) -> int:
        with self._lock:
            return self._connection().execute("SELECT COUNT(*) FROM responses").fetchone()[0]

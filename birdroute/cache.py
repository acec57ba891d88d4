"""SQLite cache for reverse-geocoded addresses."""
from __future__ import annotations

import sqlite3
import time
from typing import Callable, Optional


def make_coord_key(lat: float, lng: float, precision: int = 4) -> str:
    return f"{round(lat, precision):.{precision}f},{round(lng, precision):.{precision}f}"


class AddressCache:
    """Address lookups keyed by rounded coordinates.

    Entries older than ``ttl_seconds`` (measured with the injected ``clock``)
    read as misses; ``ttl_seconds=None`` keeps entries forever. Inserts are
    idempotent and the last write for a key wins.
    """

    def __init__(
        self,
        db_path: str,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.time,
        commit_every: int = 50,
    ) -> None:
        self.db_path = db_path
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self.conn = sqlite3.connect(self.db_path)
        self.conn.row_factory = sqlite3.Row
        self._pending_writes = 0
        self._commit_every = max(1, int(commit_every))
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
            CREATE TABLE IF NOT EXISTS address_cache (
                key TEXT PRIMARY KEY,
                address TEXT,
                created_at REAL
            )
            """
        )
        self.conn.commit()

    def _mark_dirty(self) -> None:
        self._pending_writes += 1
        if self._pending_writes >= self._commit_every:
            self.commit()

    def commit(self) -> None:
        if self._pending_writes:
            self.conn.commit()
            self._pending_writes = 0

    def close(self) -> None:
        self.commit()
        self.conn.close()

    def __enter__(self) -> "AddressCache":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def get(self, key: str) -> Optional[str]:
        cur = self.conn.cursor()
        cur.execute("SELECT address, created_at FROM address_cache WHERE key = ?", (key,))
        row = cur.fetchone()
        if not row:
            return None
        if self.ttl_seconds is not None and self.clock() - float(row["created_at"]) > self.ttl_seconds:
            return None
        return row["address"]

    def set(self, key: str, address: str) -> None:
        cur = self.conn.cursor()
        cur.execute(
            """
            INSERT OR REPLACE INTO address_cache (key, address, created_at)
            VALUES (?, ?, ?)
            """,
            (key, address, float(self.clock())),
        )
        self._mark_dirty()

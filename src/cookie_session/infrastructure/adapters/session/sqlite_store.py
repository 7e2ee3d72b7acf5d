from __future__ import annotations

import json
import sqlite3
from collections.abc import Iterable
from pathlib import Path

from cookie_session.application.ports.cookie_store_port import CookieStorePort
from cookie_session.domain.clock import Clock, SystemClock
from cookie_session.domain.cookie import Cookie

SCHEMA = """
CREATE TABLE IF NOT EXISTS cookie_session (
  id INTEGER PRIMARY KEY CHECK (id = 1),
  cookies TEXT NOT NULL,
  saved_at TEXT
);
INSERT OR IGNORE INTO cookie_session (id, cookies, saved_at) VALUES (1, '[]', NULL);
"""


class SQLiteCookieStore(CookieStorePort):
    """SQLite-backed cookie store. Persists the jar across restarts.

    File path configurable; creates schema on first use.
    """

    def __init__(self, db_path: str = ".cookie_session.sqlite", clock: Clock | None = None) -> None:
        self._path = Path(db_path)
        self.clock = clock or SystemClock()
        self._conn = sqlite3.connect(self._path)
        self._conn.execute("PRAGMA journal_mode=WAL;")
        self._conn.executescript(SCHEMA)
        self._conn.commit()

    def load(self) -> list[Cookie]:
        cur = self._conn.execute("SELECT cookies FROM cookie_session WHERE id=1")
        row = cur.fetchone()
        if not row:
            return []
        try:
            records = json.loads(row[0] or "[]")
        except json.JSONDecodeError:
            return []
        now = self.clock.now()
        cookies = [Cookie.from_dict(r) for r in records if isinstance(r, dict)]
        return [c for c in cookies if not c.is_expired(now)]

    def save(self, cookies: Iterable[Cookie]) -> None:
        payload = json.dumps([c.to_dict() for c in cookies])
        self._conn.execute(
            "UPDATE cookie_session SET cookies=?, saved_at=? WHERE id=1",
            (payload, self.clock.now().isoformat()),
        )
        self._conn.commit()

    def clear(self) -> None:
        self._conn.execute("UPDATE cookie_session SET cookies='[]', saved_at=NULL WHERE id=1")
        self._conn.commit()

    def close(self) -> None:
        self._conn.close()

from __future__ import annotations
from datetime import timedelta

from cookie_session.domain.cookie import Cookie
from cookie_session.infrastructure.adapters.session.memory_store import InMemoryCookieStore
from cookie_session.infrastructure.adapters.session.sqlite_store import SQLiteCookieStore
from tests.unit._fakes_http import NOW, FixedClock

FRESH = Cookie("sid", "abc", ".example.org", "/", NOW + timedelta(hours=1), secure=True, http_only=True)
STALE = Cookie("old", "x", "example.org", "/", NOW - timedelta(hours=1))
SESSION = Cookie("pref", "1", "example.org")


def test_sqlite_store_round_trip_drops_expired(tmp_path):
    path = str(tmp_path / "cookies.sqlite")
    store = SQLiteCookieStore(db_path=path, clock=FixedClock())
    store.save([FRESH, STALE, SESSION])
    store.close()

    reopened = SQLiteCookieStore(db_path=path, clock=FixedClock())
    assert reopened.load() == [FRESH, SESSION]


def test_sqlite_store_starts_empty_and_clears(tmp_path):
    store = SQLiteCookieStore(db_path=str(tmp_path / "c.sqlite"), clock=FixedClock())
    assert store.load() == []
    store.save([FRESH])
    store.clear()
    assert store.load() == []


def test_memory_store():
    store = InMemoryCookieStore(clock=FixedClock())
    store.save([FRESH, STALE])
    assert store.load() == [FRESH]
    store.clear()
    assert store.load() == []

from __future__ import annotations

from collections.abc import Iterable

from cookie_session.application.ports.cookie_store_port import CookieStorePort
from cookie_session.domain.clock import Clock, SystemClock
from cookie_session.domain.cookie import Cookie


class InMemoryCookieStore(CookieStorePort):
    """Simple in-memory store for development. Not persistent."""

    def __init__(self, clock: Clock | None = None) -> None:
        self._cookies: list[Cookie] = []
        self.clock = clock or SystemClock()

    def load(self) -> list[Cookie]:
        now = self.clock.now()
        return [c for c in self._cookies if not c.is_expired(now)]

    def save(self, cookies: Iterable[Cookie]) -> None:
        self._cookies = list(cookies)

    def clear(self) -> None:
        self._cookies = []

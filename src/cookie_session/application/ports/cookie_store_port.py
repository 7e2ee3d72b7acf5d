from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol

from cookie_session.domain.cookie import Cookie


class CookieStorePort(Protocol):
    """Abstract persistence for session cookies between runs."""

    def load(self) -> list[Cookie]:
        """
        Returns:
            cookies: stored cookies that have not expired yet, usable as seed cookies
        """
        ...

    def save(self, cookies: Iterable[Cookie]) -> None:
        """Replace the stored cookies."""
        ...

    def clear(self) -> None:
        """Forget every stored cookie (e.g., after the server rejected the session)."""
        ...

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

import httpx

from cookie_session.domain.cookie import Cookie


@runtime_checkable
class CookieJarPort(Protocol):
    """Cookie container shared between the middleware and, optionally, its caller."""

    def set_cookie(self, cookie: Cookie) -> bool: ...
    def count(self) -> int: ...
    def cookie_header(self, url: httpx.URL | str) -> str: ...
    def extract_cookies(self, request: Any, response: Any) -> None: ...
    def to_list(self) -> list[Cookie]: ...

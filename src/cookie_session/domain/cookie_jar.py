from __future__ import annotations

import http.cookiejar
from collections.abc import Iterable, Iterator
from typing import Any

import httpx

from cookie_session.domain.clock import Clock, SystemClock
from cookie_session.domain.cookie import Cookie, from_timestamp

_HTTP_ONLY = ("HttpOnly", "httponly", "Httponly", "HTTPOnly", "HTTPONLY")


def to_jar_cookie(cookie: Cookie) -> http.cookiejar.Cookie:
    domain = (cookie.domain or "").lower()
    return http.cookiejar.Cookie(
        version=0,
        name=cookie.name,
        value=cookie.value,
        port=None,
        port_specified=False,
        domain=domain,
        domain_specified=True,
        domain_initial_dot=domain.startswith("."),
        path=cookie.path,
        path_specified=True,
        secure=cookie.secure,
        expires=int(cookie.expires_at.timestamp()) if cookie.expires_at else None,
        discard=cookie.expires_at is None,
        comment=None,
        comment_url=None,
        rest={"HttpOnly": None} if cookie.http_only else {},
    )


def from_jar_cookie(cookie: http.cookiejar.Cookie) -> Cookie:
    return Cookie(
        name=cookie.name,
        value=cookie.value,
        domain=cookie.domain,
        path=cookie.path,
        expires_at=from_timestamp(cookie.expires),
        secure=bool(cookie.secure),
        http_only=any(cookie.has_nonstandard_attr(k) for k in _HTTP_ONLY),
    )


class ClockCookiePolicy(http.cookiejar.DefaultCookiePolicy):
    """Default policy, except that expiry on send is judged by ``clock``."""

    def __init__(self, clock: Clock) -> None:
        super().__init__()
        self.clock = clock

    def return_ok_expires(self, cookie: http.cookiejar.Cookie, request: Any) -> bool:
        return not cookie.is_expired(int(self.clock.now().timestamp()))


class _ClockCookieJar(http.cookiejar.CookieJar):
    def __init__(self, clock: Clock) -> None:
        super().__init__(policy=ClockCookiePolicy(clock))
        self.clock = clock

    def clear_expired_cookies(self) -> None:
        now = int(self.clock.now().timestamp())
        for cookie in list(self):
            if cookie.is_expired(now):
                self.clear(cookie.domain, cookie.path, cookie.name)


class CookieJar:
    """Session cookie jar backed by ``httpx.Cookies``.

    Set-Cookie parsing, domain and path matching and the Cookie header come
    from ``http.cookiejar`` through httpx. What is sent and what
    ``clear_expired`` drops follows ``clock``; Set-Cookie expiry at receipt is
    judged by ``http.cookiejar`` on the wall clock.

    A cookie with an empty value is never held: storing or receiving one
    deletes the cookie with the same name, domain and path.

    Not thread-safe: a jar shared between several middlewares must be
    coordinated by its owner.
    """

    def __init__(self, cookies: Iterable[Cookie] = (), *, clock: Clock | None = None) -> None:
        self.clock = clock or SystemClock()
        self.cookies = httpx.Cookies(_ClockCookieJar(self.clock))
        for cookie in cookies:
            self.set_cookie(cookie)

    @property
    def jar(self) -> http.cookiejar.CookieJar:
        return self.cookies.jar

    def set_cookie(self, cookie: Cookie) -> bool:
        """Inserts or replaces a cookie.

        Returns:
            bool: False when the cookie was rejected (invalid) or, being already
            expired or empty, only removed its stored counterpart.
        """
        if cookie.validate() is not None:
            return False
        if cookie.value == "" or cookie.is_expired(self.clock.now()):
            self.remove(domain=cookie.domain, path=cookie.path, name=cookie.name)
            return False
        self.jar.set_cookie(to_jar_cookie(cookie))
        return True

    def remove(self, domain: str | None = None, path: str | None = None, name: str | None = None) -> None:
        """Removes the cookies matching every given criterion (domain compared without a leading dot)."""
        wanted_domain = domain.lstrip(".").lower() if domain else None
        for cookie in list(self.jar):
            if wanted_domain is not None and cookie.domain.lstrip(".") != wanted_domain:
                continue
            if path is not None and cookie.path != path:
                continue
            if name is not None and cookie.name != name:
                continue
            self.jar.clear(cookie.domain, cookie.path, cookie.name)

    def clear(self) -> None:
        self.cookies.clear()

    def clear_expired(self) -> None:
        self.jar.clear_expired_cookies()

    def count(self) -> int:
        return len(self.jar)

    def __len__(self) -> int:
        return len(self.jar)

    def __iter__(self) -> Iterator[Cookie]:
        return iter(self.to_list())

    def to_list(self) -> list[Cookie]:
        return [from_jar_cookie(c) for c in self.jar]

    def cookie_header(self, url: httpx.URL | str) -> str:
        """Cookie header value for a request to ``url`` ('' if nothing matches or the URL is relative)."""
        url = httpx.URL(url)
        if url.is_relative_url:
            return ""
        scratch = httpx.Request("GET", url)
        self.cookies.set_cookie_header(scratch)
        return scratch.headers.get("Cookie", "")

    def extract_cookies(self, request: Any, response: Any) -> None:
        """Stores every ``Set-Cookie`` of ``response`` relative to ``request.url``."""
        url = httpx.URL(request.url)
        if url.is_relative_url:
            return
        exchange = httpx.Response(
            response.status_code,
            headers=[("Set-Cookie", v) for v in response.headers.get_list("set-cookie")],
            request=httpx.Request(request.method, url),
        )
        self.cookies.extract_cookies(exchange)
        for cookie in list(self.jar):
            if not cookie.value:
                self.jar.clear(cookie.domain, cookie.path, cookie.name)

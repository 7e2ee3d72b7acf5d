from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Literal, Protocol, TypeAlias
import json

import httpx

if TYPE_CHECKING:
    from cookie_session.application.ports.cookie_jar_port import CookieJarPort
    from cookie_session.application.use_cases.login_request import LoginRequest


class HttpRequest:
    """Immutable-by-convention outbound request; use ``with_header`` to derive copies."""

    def __init__(
        self,
        method: str,
        url: httpx.URL | str,
        *,
        headers: Mapping[str, str] | httpx.Headers | list[tuple[str, str]] | None = None,
        content: bytes | None = None,
    ) -> None:
        self.method = method.upper()
        self.url = httpx.URL(url)
        self.headers = httpx.Headers(headers)
        self.content = content

    def with_header(self, name: str, value: str) -> HttpRequest:
        headers = self.headers.copy()
        headers[name] = value
        return HttpRequest(self.method, self.url, headers=headers, content=self.content)

    def __repr__(self) -> str:
        return f"<HttpRequest [{self.method}] {self.url}>"


class HttpResponse:
    def __init__(
        self,
        status_code: int,
        text: str,
        url: str,
        headers: Mapping[str, str] | httpx.Headers | list[tuple[str, str]],
        *,
        raw: Any | None = None,
        request: HttpRequest | None = None,
        history: list[HttpResponse] | None = None,
    ) -> None:
        self.status_code = status_code
        self.text = text
        self.url = url
        # httpx.Headers keeps repeated Set-Cookie lines apart
        self.headers = httpx.Headers(headers)
        self._raw = raw
        self._request = request
        # responses of the redirect hops that led here, oldest first
        self.history = list(history or [])

    @property
    def request(self) -> HttpRequest:
        if self._request is None:
            raise AttributeError("request not available")
        return self._request

    def json(self) -> Any:
        if self._raw is not None and hasattr(self._raw, "json"):
            return self._raw.json()
        return json.loads(self.text)

    def __repr__(self) -> str:
        return f"<HttpResponse [{self.status_code}] {self.url}>"


@dataclass(frozen=True)
class AuthCookieOptions:
    on_before_login: Callable[[LoginRequest], LoginRequest | Literal[False]] | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> AuthCookieOptions:
        hook = data.get("on_before_login", data.get("onBeforeLogin"))
        return cls(on_before_login=hook)


@dataclass(frozen=True)
class RequestOptions:
    """Per-call options threaded through the handler chain.

    ``auth == "cookie"`` opts a request into cookie authentication. ``auth_cookie``
    is consumed by the cookie middleware and never reaches the transport.
    ``cookie_jar`` is set by the cookie middleware: redirect hops take their
    Cookie header from it and store their Set-Cookie headers in it.
    """

    auth: str | None = None
    base_uri: str | None = None
    debug: bool = False
    allow_redirects: bool = True
    timeout: float | None = None
    auth_cookie: AuthCookieOptions | None = None
    cookie_jar: CookieJarPort | None = None
    extra: Mapping[str, Any] = field(default_factory=dict)

    _KNOWN = ("auth", "base_uri", "debug", "allow_redirects", "timeout")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> RequestOptions:
        if not data:
            return cls()
        known = {k: data[k] for k in cls._KNOWN if k in data}
        auth_cookie = data.get("auth-cookie", data.get("auth_cookie"))
        if isinstance(auth_cookie, Mapping):
            auth_cookie = AuthCookieOptions.from_mapping(auth_cookie)
        extra = {
            k: v
            for k, v in data.items()
            if k not in cls._KNOWN and k not in ("auth-cookie", "auth_cookie")
        }
        if "base_uri" in known and known["base_uri"] is not None:
            known["base_uri"] = str(known["base_uri"])
        return cls(auth_cookie=auth_cookie, extra=extra, **known)

    @property
    def wants_cookie_auth(self) -> bool:
        return self.auth == "cookie"

    def without_auth_cookie(self) -> RequestOptions:
        if self.auth_cookie is None:
            return self
        return replace(self, auth_cookie=None)


Handler: TypeAlias = Callable[[HttpRequest, RequestOptions], Awaitable[HttpResponse]]


class TransportPort(Protocol):
    """Sends one request and returns its response.

    Transports keep no cookies of their own. Redirect hops carry cookies only
    from ``options.cookie_jar``, and their Set-Cookie headers are stored there.
    """

    async def send(self, request: HttpRequest, options: RequestOptions) -> HttpResponse: ...

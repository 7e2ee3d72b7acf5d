from __future__ import annotations

import logging
from dataclasses import replace

import httpx

from cookie_session.application.ports.cookie_jar_port import CookieJarPort
from cookie_session.application.ports.http_client_port import (
    Handler,
    HttpRequest,
    HttpResponse,
    RequestOptions,
    TransportPort,
)
from cookie_session.application.use_cases.login_request import LoginRequest
from cookie_session.domain.clock import Clock, SystemClock
from cookie_session.domain.cookie_jar import CookieJar
from cookie_session.domain.login_config import LoginConfig, LoginMethod
from cookie_session.domain.seed import SeedCookies, iter_seed_cookies

logger = logging.getLogger(__name__)


class CookieSessionMiddleware:
    """Cookie based authentication for requests sent with ``auth="cookie"``.

    Before such a request is sent a login call is made (once, lazily) to obtain
    the session cookies, which are then attached to the request. Cookies set by
    the response are stored back into the jar.
    """

    def __init__(
        self,
        uri: str,
        fields: object,
        method: str | LoginMethod = "POST",
        cookies: CookieJarPort | SeedCookies = None,
        *,
        transport: TransportPort,
        clock: Clock | None = None,
    ) -> None:
        """
        Args:
            uri (str): Login URL.
            fields (object): Fields sent on login, usually a mapping of name to value.
            method (str | LoginMethod, optional): "POST", "GET" or "JSON". Defaults to "POST".
            cookies (optional): An existing jar to share, or seed cookies (a
                Set-Cookie string, a Cookie, a record mapping, or nested sequences of those).
            transport (TransportPort): Transport used for the login call.
            clock (Clock | None, optional): Time source for cookie expiry.
        """
        self.config = LoginConfig(uri=uri, fields=fields, method=LoginMethod.parse(method))
        self.transport = transport
        self.clock = clock or SystemClock()
        self.login_completed = False

        if isinstance(cookies, CookieJarPort):
            self.cookie_jar: CookieJarPort = cookies
        else:
            jar = CookieJar(clock=self.clock)
            now = self.clock.now()
            accepted = sum(1 for cookie in iter_seed_cookies(cookies, now=now) if jar.set_cookie(cookie))
            self.cookie_jar = jar
            if accepted > 0:
                self.login_completed = True
            self._log(f"seeded jar with {accepted} cookie(s)")

    def _log(self, msg: str, level: int = logging.DEBUG) -> None:
        logger.log(level, "[CookieSessionMiddleware] %s", msg)

    def intercept(self, next_handler: Handler) -> Handler:
        async def handler(request: HttpRequest, options: RequestOptions) -> HttpResponse:
            if not options.wants_cookie_auth:
                return await next_handler(request, options)

            options = await self.ensure_session(options)
            request = self.attach_cookies(request, options)
            response = await next_handler(request, replace(options, cookie_jar=self.cookie_jar))
            return self.absorb_cookies(request, response, base_uri=options.base_uri)

        return handler

    async def ensure_session(self, options: RequestOptions) -> RequestOptions:
        """Logs in unless a session is already held.

        Returns:
            RequestOptions: ``options`` without the consumed ``auth-cookie`` entry.
        """
        if self.cookie_jar.count() <= 0 or not self.login_completed:
            await self.perform_login(options, options.base_uri)
        return options.without_auth_cookie()

    async def perform_login(self, options: RequestOptions, base_uri: str | None = None) -> None:
        """Issues the login call; Set-Cookie headers of its response land in the jar.

        Transport errors propagate unchanged and leave ``login_completed`` untouched.
        """
        login = LoginRequest.from_config(self.config, base_uri=base_uri, debug=options.debug, timeout=options.timeout)

        hook = options.auth_cookie.on_before_login if options.auth_cookie else None
        if hook is not None:
            result = hook(login)
            if result is False:
                self._log("login skipped by on_before_login hook", logging.INFO)
                return
            login = result

        request = login.to_http_request()
        self._log(f"logging in: {request.method} {request.url}", logging.INFO)
        response = await self.transport.send(request, login.to_options())
        self.cookie_jar.extract_cookies(request, response)
        self.login_completed = True
        self._log(f"login done -> status={response.status_code} cookies={self.cookie_jar.count()}", logging.INFO)

    def attach_cookies(self, request: HttpRequest, options: RequestOptions | None = None) -> HttpRequest:
        """Returns a copy of ``request`` carrying the matching cookies in a Cookie header."""
        base_uri = options.base_uri if options else None
        header = self.cookie_jar.cookie_header(self._scoped_url(request.url, base_uri))
        if not header:
            return request
        return request.with_header("Cookie", header)

    def absorb_cookies(
        self,
        request: HttpRequest,
        response: HttpResponse,
        base_uri: str | None = None,
    ) -> HttpResponse:
        url = self._scoped_url(request.url, base_uri)
        if response.history:
            # the final response came from the last redirect target
            url = httpx.URL(response.url)
        if url is not request.url:
            request = HttpRequest(request.method, url, headers=request.headers, content=request.content)
        self.cookie_jar.extract_cookies(request, response)
        return response

    @staticmethod
    def _scoped_url(url: httpx.URL, base_uri: str | None) -> httpx.URL:
        # base_uri only scopes cookie matching for relative URLs, the request target is untouched
        if base_uri is not None and url.is_relative_url:
            return httpx.URL(base_uri).join(url)
        return url

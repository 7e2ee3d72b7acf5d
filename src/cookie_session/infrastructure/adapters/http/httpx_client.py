from __future__ import annotations

import http.cookiejar
import logging
from types import TracebackType
from typing import TYPE_CHECKING, Mapping

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential_jitter
from tenacity.wait import wait_base

from cookie_session.application.ports.http_client_port import HttpRequest, HttpResponse, RequestOptions, TransportPort
from cookie_session.errors import TransportError

if TYPE_CHECKING:
    from cookie_session.application.ports.cookie_jar_port import CookieJarPort

logger = logging.getLogger(__name__)


class HttpxTransport(TransportPort):
    def __init__(
        self,
        timeout: float = 45.0,
        *,
        attempts: int = 1,
        retry_wait: wait_base | None = None,
        headers: Mapping[str, str] | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Transport adapter backed by a persistent httpx.AsyncClient.

        - The client's own cookie jar refuses every cookie, the middleware owns cookies
        - Redirects are followed hop by hop so each hop gets its cookies from ``options.cookie_jar``
        - Relative URLs are resolved against ``options.base_uri``
        - Adds lightweight diagnostics for cookies and Set-Cookie headers

        Args:
            timeout (float, optional): Timeout for requests. Defaults to 45.0.
            attempts (int, optional): Tries per request on transport errors. Defaults to 1 (no retry).
            retry_wait (wait_base | None, optional): Tenacity wait strategy between tries.
            headers (Mapping[str, str] | None, optional): Default headers of the client.
            client (httpx.AsyncClient | None, optional): Preconfigured client (tests, proxies).
                Its cookie jar is replaced.
        """
        self._client = client or httpx.AsyncClient(
            timeout=timeout,
            headers=headers or {"User-Agent": "cookie-session/0.1 httpx"},
        )
        self._client.cookies = httpx.Cookies(
            http.cookiejar.CookieJar(http.cookiejar.DefaultCookiePolicy(allowed_domains=[]))
        )
        self._send = retry(
            reraise=True,
            stop=stop_after_attempt(max(1, attempts)),
            wait=retry_wait or wait_exponential_jitter(initial=1, max=8),
            retry=retry_if_exception_type(TransportError),
        )(self._send_once)

    def _log(self, msg: str, debug: bool = False) -> None:
        logger.log(logging.INFO if debug else logging.DEBUG, "[HttpxTransport] %s", msg)

    async def send(self, request: HttpRequest, options: RequestOptions) -> HttpResponse:
        """Sends the request, retrying transport errors up to ``attempts`` times.

        Args:
            request (HttpRequest): Request to send.
            options (RequestOptions): base_uri, allow_redirects, timeout, cookie_jar and debug are honoured.

        Returns:
            HttpResponse: Final response from the server, whatever its status code.
        """
        return await self._send(request, options)

    async def _send_once(self, request: HttpRequest, options: RequestOptions) -> HttpResponse:
        url = request.url
        if options.base_uri is not None and url.is_relative_url:
            url = httpx.URL(options.base_uri).join(url)
        timeout = httpx.Timeout(options.timeout) if options.timeout is not None else self._client.timeout
        headers = self._client.headers.copy()
        headers.update(request.headers)

        outbound = httpx.Request(
            request.method,
            url,
            headers=headers,
            content=request.content,
            extensions={"timeout": timeout.as_dict()},
        )
        history: list[HttpResponse] = []
        try:
            resp = await self._send_hop(outbound, options)
            while options.allow_redirects and resp.next_request is not None:
                if len(history) >= self._client.max_redirects:
                    raise httpx.TooManyRedirects("Exceeded maximum allowed redirects.", request=resp.next_request)
                history.append(self._wrap(resp))
                outbound = self._next_hop(resp, options.cookie_jar)
                resp = await self._send_hop(outbound, options)
        except httpx.HTTPError as e:
            raise TransportError(f"{request.method} {url} failed: {e}") from e
        return HttpResponse(
            resp.status_code, resp.text, str(resp.url), resp.headers, raw=resp, request=request, history=history
        )

    async def _send_hop(self, outbound: httpx.Request, options: RequestOptions) -> httpx.Response:
        cookie = outbound.headers.get("Cookie", "-")
        self._log(f"{outbound.method} {outbound.url} | Cookie: {cookie[:240]}", options.debug)
        resp = await self._client.send(outbound, follow_redirects=False)
        set_cookie = resp.headers.get_list("set-cookie")
        if set_cookie:
            self._log(f"{outbound.method} {outbound.url} | Set-Cookie: {'; '.join(set_cookie)[:240]}...", options.debug)
        return resp

    def _next_hop(self, resp: httpx.Response, cookie_jar: CookieJarPort | None) -> httpx.Request:
        hop = resp.next_request
        # httpx already drops the Cookie header on redirect; only the session jar may refill it
        hop.headers.pop("Cookie", None)
        if cookie_jar is not None:
            cookie_jar.extract_cookies(HttpRequest(resp.request.method, resp.request.url), self._wrap(resp))
            header = cookie_jar.cookie_header(hop.url)
            if header:
                hop.headers["Cookie"] = header
        return hop

    @staticmethod
    def _wrap(resp: httpx.Response) -> HttpResponse:
        request = HttpRequest(resp.request.method, resp.request.url)
        return HttpResponse(resp.status_code, resp.text, str(resp.url), resp.headers, raw=resp, request=request)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> HttpxTransport:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

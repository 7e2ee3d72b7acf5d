from __future__ import annotations

import asyncio
import http.cookiejar
import logging
from typing import TYPE_CHECKING, Mapping

import httpx
import requests
from requests.cookies import RequestsCookieJar

from cookie_session.application.ports.http_client_port import HttpRequest, HttpResponse, RequestOptions, TransportPort
from cookie_session.errors import TransportError

if TYPE_CHECKING:
    from cookie_session.application.ports.cookie_jar_port import CookieJarPort

logger = logging.getLogger(__name__)


def _refusing_jar() -> RequestsCookieJar:
    return RequestsCookieJar(policy=http.cookiejar.DefaultCookiePolicy(allowed_domains=[]))


class RequestsTransport(TransportPort):
    """Transport adapter backed by a persistent requests.Session.

    - Blocking calls run in a worker thread so the handler chain stays async
    - The session and each request get cookie jars that refuse every cookie
    - Redirects are followed hop by hop so each hop gets its cookies from ``options.cookie_jar``
    - Every Set-Cookie line of the raw response is kept
    """

    def __init__(self, default_headers: Mapping[str, str] | None = None, timeout: float = 45.0) -> None:
        self.session = requests.Session()
        self.session.cookies = _refusing_jar()
        if default_headers:
            self.session.headers.update(dict(default_headers))
        self.timeout = timeout

    def _log(self, msg: str, debug: bool = False) -> None:
        logger.log(logging.INFO if debug else logging.DEBUG, "[RequestsTransport] %s", msg)

    async def send(self, request: HttpRequest, options: RequestOptions) -> HttpResponse:
        return await asyncio.to_thread(self._send_sync, request, options)

    def _send_sync(self, request: HttpRequest, options: RequestOptions) -> HttpResponse:
        url = request.url
        if options.base_uri is not None and url.is_relative_url:
            url = httpx.URL(options.base_uri).join(url)

        headers = dict(self.session.headers)
        headers.update(request.headers.items())
        prepared = requests.Request(
            request.method, str(url), headers=headers, data=request.content, cookies=_refusing_jar()
        ).prepare()
        timeout = options.timeout if options.timeout is not None else self.timeout

        history: list[HttpResponse] = []
        try:
            resp = self._send_hop(prepared, timeout, options)
            while options.allow_redirects and resp.next is not None:
                if len(history) >= self.session.max_redirects:
                    raise requests.TooManyRedirects(
                        f"Exceeded {self.session.max_redirects} redirects.", response=resp
                    )
                history.append(self._wrap(resp))
                resp = self._send_hop(self._next_hop(resp, options.cookie_jar), timeout, options)
        except requests.RequestException as e:
            raise TransportError(f"{request.method} {url} failed: {e}") from e

        return HttpResponse(
            resp.status_code,
            resp.text,
            str(resp.url),
            self._header_pairs(resp),
            raw=resp,
            request=request,
            history=history,
        )

    def _send_hop(self, prepared: requests.PreparedRequest, timeout: float, options: RequestOptions) -> requests.Response:
        self._log(f"{prepared.method} {prepared.url} | Cookie: {prepared.headers.get('Cookie', '-')[:240]}", options.debug)
        resp = self.session.send(prepared, allow_redirects=False, timeout=timeout)
        set_cookie = [v for k, v in self._header_pairs(resp) if k.lower() == "set-cookie"]
        if set_cookie:
            self._log(f"{prepared.method} {prepared.url} | Set-Cookie: {'; '.join(set_cookie)[:240]}...", options.debug)
        return resp

    def _next_hop(self, resp: requests.Response, cookie_jar: CookieJarPort | None) -> requests.PreparedRequest:
        hop = resp.next
        hop.headers.pop("Cookie", None)
        if cookie_jar is not None:
            cookie_jar.extract_cookies(HttpRequest(resp.request.method, resp.request.url), self._wrap(resp))
            header = cookie_jar.cookie_header(hop.url)
            if header:
                hop.headers["Cookie"] = header
        return hop

    def _wrap(self, resp: requests.Response) -> HttpResponse:
        request = HttpRequest(resp.request.method, resp.request.url)
        return HttpResponse(resp.status_code, resp.text, str(resp.url), self._header_pairs(resp), raw=resp, request=request)

    @staticmethod
    def _header_pairs(resp: requests.Response) -> list[tuple[str, str]]:
        # requests folds repeated headers into one comma separated value; urllib3 keeps them apart
        raw_headers = getattr(resp.raw, "headers", None)
        if raw_headers is not None and hasattr(raw_headers, "iteritems"):
            return [(str(k), str(v)) for k, v in raw_headers.iteritems()]
        return list(resp.headers.items())

    def close(self) -> None:
        self.session.close()

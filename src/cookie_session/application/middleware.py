from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any, Protocol

from cookie_session.application.ports.http_client_port import (
    Handler,
    HttpRequest,
    HttpResponse,
    RequestOptions,
    TransportPort,
)


class Middleware(Protocol):
    def intercept(self, next_handler: Handler) -> Handler:
        """Wraps ``next_handler`` and returns the handler to call instead."""
        ...


class HandlerStack:
    """Explicit middleware chain in front of a transport.

    The first middleware in the list is the outermost one: it sees the request
    first and the response last.
    """

    def __init__(self, transport: TransportPort, middlewares: Iterable[Middleware] = ()) -> None:
        self.transport = transport
        self._middlewares: list[Middleware] = list(middlewares)

    def push(self, middleware: Middleware) -> None:
        self._middlewares.append(middleware)

    def resolve(self) -> Handler:
        handler: Handler = self.transport.send
        for middleware in reversed(self._middlewares):
            handler = middleware.intercept(handler)
        return handler

    async def send(
        self,
        request: HttpRequest,
        options: RequestOptions | Mapping[str, Any] | None = None,
    ) -> HttpResponse:
        if not isinstance(options, RequestOptions):
            options = RequestOptions.from_mapping(options)
        return await self.resolve()(request, options)

    def __len__(self) -> int:
        return len(self._middlewares)

from __future__ import annotations

import asyncio
import logging

import typer

from cookie_session.application.middleware import HandlerStack
from cookie_session.application.ports.http_client_port import HttpRequest, RequestOptions
from cookie_session.application.use_cases.cookie_session import CookieSessionMiddleware
from cookie_session.config import settings
from cookie_session.errors import CookieSessionError
from cookie_session.infrastructure.adapters.http.httpx_client import HttpxTransport
from cookie_session.infrastructure.adapters.session.sqlite_store import SQLiteCookieStore

app = typer.Typer(help="Cookie session CLI")


@app.callback()
def main(log_level: str = typer.Option(settings.log_level, "--log-level", "-l")) -> None:
    logging.basicConfig(level=log_level.upper(), format="%(asctime)s %(levelname)s %(name)s %(message)s")


def _store(path: str | None) -> SQLiteCookieStore:
    return SQLiteCookieStore(db_path=path or settings.cookie_store_path)


def _middleware(store: SQLiteCookieStore, transport: HttpxTransport) -> CookieSessionMiddleware:
    if not settings.login_uri:
        raise typer.BadParameter("COOKIE_SESSION_LOGIN_URI is not set")
    return CookieSessionMiddleware(
        settings.login_uri,
        settings.login_fields,
        settings.login_method,
        store.load(),
        transport=transport,
    )


@app.command()
def login(
    store_path: str = typer.Option(None, "--store", "-s"),
    debug: bool = typer.Option(False, "--debug"),
) -> None:
    """Log in with the configured endpoint and persist the session cookies."""
    store = _store(store_path)

    async def run() -> int:
        async with HttpxTransport(timeout=settings.http_timeout, attempts=settings.http_retries) as transport:
            middleware = _middleware(store, transport)
            await middleware.perform_login(RequestOptions(debug=debug))
            store.save(middleware.cookie_jar.to_list())
            return middleware.cookie_jar.count()

    try:
        n = asyncio.run(run())
    except CookieSessionError as e:
        typer.secho(f"Login failed: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(f"Cookies stored: {n}")


@app.command()
def get(
    url: str,
    base_uri: str = typer.Option(None, "--base-uri", "-b"),
    store_path: str = typer.Option(None, "--store", "-s"),
    debug: bool = typer.Option(False, "--debug"),
) -> None:
    """GET a URL with cookie authentication."""
    store = _store(store_path)

    async def run() -> tuple[int, int]:
        async with HttpxTransport(timeout=settings.http_timeout, attempts=settings.http_retries) as transport:
            middleware = _middleware(store, transport)
            stack = HandlerStack(transport, [middleware])
            options = RequestOptions(auth="cookie", base_uri=base_uri, debug=debug)
            resp = await stack.send(HttpRequest("GET", url), options)
            store.save(middleware.cookie_jar.to_list())
            return resp.status_code, middleware.cookie_jar.count()

    try:
        status, n = asyncio.run(run())
    except CookieSessionError as e:
        typer.secho(f"Request failed: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(f"Status: {status}")
    typer.echo(f"Cookies stored: {n}")


@app.command()
def cookies(store_path: str = typer.Option(None, "--store", "-s")) -> None:
    """List persisted cookies."""
    stored = _store(store_path).load()
    if not stored:
        typer.echo("No cookies stored")
        return
    for cookie in stored:
        typer.echo(str(cookie))


@app.command()
def clear(store_path: str = typer.Option(None, "--store", "-s")) -> None:
    """Forget persisted cookies."""
    _store(store_path).clear()
    typer.echo("Cookies cleared")

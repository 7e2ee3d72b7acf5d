from __future__ import annotations


class CookieSessionError(Exception):
    pass


class TransportError(CookieSessionError):
    """An HTTP exchange could not be completed (connection, timeout, protocol)."""


class InvalidLoginMethodError(CookieSessionError, ValueError):
    pass

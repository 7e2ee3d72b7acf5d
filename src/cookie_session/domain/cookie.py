from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from http.cookiejar import http2time, parse_ns_headers, time2netscape
from typing import Any

# RFC 2616 separators plus control characters
_INVALID_NAME = re.compile(r'[()<>@,;:\\"/\[\]?={} \t\x00-\x1f\x7f]')


def from_timestamp(value: float | None) -> datetime | None:
    return None if value is None else datetime.fromtimestamp(value, UTC)


def _coerce_expires(value: Any) -> datetime | None:
    if value is None or value == "" or value is False:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    if isinstance(value, (int, float)):
        return from_timestamp(value)
    text = str(value).strip()
    if text.lstrip("-").isdigit():
        return from_timestamp(int(text))
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return from_timestamp(http2time(text))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def _normalize_key(key: str) -> str:
    return key.lower().replace("_", "").replace("-", "")


@dataclass(frozen=True)
class Cookie:
    """Plain cookie record used for seeds, persistence and display.

    The jar itself holds ``http.cookiejar`` cookies; see ``CookieJar``.
    """

    name: str
    value: str | None
    domain: str | None = None
    path: str = "/"
    expires_at: datetime | None = None
    secure: bool = False
    http_only: bool = False

    @classmethod
    def from_string(cls, raw: str, *, now: datetime | None = None) -> Cookie:
        """Parses a ``Set-Cookie`` header value.

        Args:
            raw (str): Header value, e.g. ``sid=abc; Domain=.example.org; Path=/``.
            now (datetime | None, optional): Reference time for ``Max-Age``.

        Returns:
            Cookie: Parsed cookie. Unparseable input yields a cookie that fails
            ``validate()`` instead of raising.
        """
        parsed = parse_ns_headers([raw])
        if not parsed:
            return cls(name="", value=None)

        (name, value), *attributes = parsed[0]
        fields: dict[str, Any] = {"name": name, "value": "" if value is None else value}
        max_age: int | None = None
        for key, val in attributes:
            key = key.lower()
            if key == "domain":
                fields["domain"] = val or None
            elif key == "path":
                fields["path"] = val or "/"
            elif key == "expires":
                # parse_ns_headers already turned the date into a timestamp
                fields["expires_at"] = from_timestamp(val)
            elif key == "max-age":
                try:
                    max_age = int(val or "")
                except ValueError:
                    continue
            elif key == "secure":
                fields["secure"] = True
            elif key == "httponly":
                fields["http_only"] = True

        if max_age is not None:
            fields["expires_at"] = (now or datetime.now(UTC)) + timedelta(seconds=max_age)
        return cls(**fields)

    @classmethod
    def from_dict(cls, record: Mapping[str, Any]) -> Cookie:
        """Builds a cookie from a structured record (``name``/``Name``, ``http_only``/``HttpOnly``...)."""
        data = {_normalize_key(str(k)): v for k, v in record.items()}
        value = data.get("value")
        return cls(
            name=str(data.get("name") or ""),
            value=None if value is None else str(value),
            domain=data.get("domain") or None,
            path=data.get("path") or "/",
            expires_at=_coerce_expires(data.get("expires", data.get("expiresat"))),
            secure=bool(data.get("secure", False)),
            http_only=bool(data.get("httponly", False)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "value": self.value,
            "domain": self.domain,
            "path": self.path,
            "expires": self.expires_at.isoformat() if self.expires_at else None,
            "secure": self.secure,
            "http_only": self.http_only,
        }

    def validate(self) -> str | None:
        """Returns an error message, or None when the cookie can be stored."""
        if not self.name:
            return "The cookie name must not be empty"
        if _INVALID_NAME.search(self.name):
            return "Cookie name must not contain invalid characters: ASCII Control characters (0-31;127), space, tab and the following characters: ()<>@,;:\\\"/?={}"
        if self.value is None:
            return "The cookie value must not be empty"
        if not self.domain:
            return "The cookie domain must not be empty"
        return None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and now >= self.expires_at

    def __str__(self) -> str:
        parts = [f"{self.name}={self.value or ''}"]
        if self.domain:
            parts.append(f"Domain={self.domain}")
        parts.append(f"Path={self.path}")
        if self.expires_at is not None:
            parts.append(f"Expires={time2netscape(self.expires_at.timestamp())}")
        if self.secure:
            parts.append("Secure")
        if self.http_only:
            parts.append("HttpOnly")
        return "; ".join(parts)

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from datetime import datetime
from typing import Any, Union

from cookie_session.domain.cookie import Cookie

# None | "a=b; Domain=..." | Cookie | {"name": ...} | nested iterables of those
SeedCookies = Union[None, str, Cookie, Mapping[str, Any], Iterable[Any]]


def iter_seed_cookies(seed: SeedCookies, *, now: datetime | None = None) -> Iterator[Cookie]:
    """Flattens any supported seed shape into cookies; unknown entries are skipped."""
    if seed is None:
        return
    if isinstance(seed, Cookie):
        yield seed
    elif isinstance(seed, str):
        yield Cookie.from_string(seed, now=now)
    elif isinstance(seed, Mapping):
        yield Cookie.from_dict(seed)
    elif isinstance(seed, (bytes, bytearray)):
        return
    elif isinstance(seed, Iterable):
        for item in seed:
            yield from iter_seed_cookies(item, now=now)

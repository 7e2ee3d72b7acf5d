from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

from cookie_session.errors import InvalidLoginMethodError


class LoginMethod(str, Enum):
    GET = "GET"
    POST = "POST"
    JSON = "JSON"

    @classmethod
    def parse(cls, value: str | LoginMethod) -> LoginMethod:
        if isinstance(value, LoginMethod):
            return value
        try:
            return cls(str(value).upper())
        except ValueError:
            raise InvalidLoginMethodError(f"Unsupported login method: {value!r}") from None


@dataclass(frozen=True)
class LoginConfig:
    """Where and how to log in. ``fields`` is kept exactly as supplied."""

    uri: str
    fields: Any
    method: LoginMethod = LoginMethod.POST

    def field_mapping(self) -> dict[str, Any]:
        """Fields as form/query parameters.

        A mapping is used as is, a sequence of pairs is grouped by key, any other
        sequence is keyed by position and a single value becomes ``{"0": value}``.
        """
        fields = self.fields
        if fields is None:
            return {}
        if isinstance(fields, Mapping):
            return dict(fields)
        if isinstance(fields, Sequence) and not isinstance(fields, (str, bytes)):
            if fields and all(isinstance(item, tuple) and len(item) == 2 for item in fields):
                grouped: dict[str, Any] = {}
                for key, value in fields:
                    key = str(key)
                    if key in grouped:
                        previous = grouped[key]
                        grouped[key] = [*previous, value] if isinstance(previous, list) else [previous, value]
                    else:
                        grouped[key] = value
                return grouped
            return {str(i): v for i, v in enumerate(fields)}
        return {"0": fields}

    def json_payload(self) -> Any:
        fields = self.fields
        if isinstance(fields, Mapping):
            return dict(fields)
        if isinstance(fields, tuple):
            return list(fields)
        return fields

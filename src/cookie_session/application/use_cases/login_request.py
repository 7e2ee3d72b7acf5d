from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any
import json

import httpx

from cookie_session.application.ports.http_client_port import HttpRequest, RequestOptions
from cookie_session.domain.login_config import LoginConfig, LoginMethod


@dataclass(frozen=True)
class LoginRequest:
    """The login call about to be issued.

    Handed to ``on_before_login`` hooks, which may return a modified copy
    (``dataclasses.replace``) or ``False`` to skip the login.
    """

    method: str
    uri: str
    base_uri: str | None = None
    query: Mapping[str, Any] | None = None
    form_params: Mapping[str, Any] | None = None
    body: str | bytes | None = None
    headers: Mapping[str, str] = field(default_factory=dict)
    debug: bool = False
    allow_redirects: bool = False
    timeout: float | None = None

    @classmethod
    def from_config(
        cls,
        config: LoginConfig,
        *,
        base_uri: str | None = None,
        debug: bool = False,
        timeout: float | None = None,
    ) -> LoginRequest:
        common: dict[str, Any] = {
            "uri": config.uri,
            "base_uri": base_uri,
            "debug": debug,
            "timeout": timeout,
        }
        if config.method is LoginMethod.POST:
            return cls(method="POST", form_params=config.field_mapping(), **common)
        if config.method is LoginMethod.JSON:
            return cls(
                method="POST",
                body=json.dumps(config.json_payload()),
                headers={"Content-Type": "application/json"},
                **common,
            )
        return cls(method="GET", query=config.field_mapping(), **common)

    def resolved_url(self) -> httpx.URL:
        url = httpx.URL(self.uri)
        if self.base_uri is not None and url.is_relative_url:
            return httpx.URL(self.base_uri).join(url)
        return url

    def to_http_request(self) -> HttpRequest:
        encoded = httpx.Request(
            self.method,
            self.resolved_url(),
            params=dict(self.query) if self.query else None,
            headers=dict(self.headers),
            data=dict(self.form_params) if self.form_params else None,
            content=self.body,
        )
        headers = [(k, v) for k, v in encoded.headers.multi_items() if k.lower() != "host"]
        return HttpRequest(encoded.method, encoded.url, headers=headers, content=encoded.content or None)

    def to_options(self) -> RequestOptions:
        return RequestOptions(
            base_uri=self.base_uri,
            debug=self.debug,
            allow_redirects=self.allow_redirects,
            timeout=self.timeout,
        )

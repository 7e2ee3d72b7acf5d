from __future__ import annotations

import json
import os
from dataclasses import dataclass
from typing import Any

from dotenv import load_dotenv

# Load .env if present
load_dotenv()


@dataclass(frozen=True)
class Settings:
    login_uri: str = os.getenv("COOKIE_SESSION_LOGIN_URI", "")
    login_method: str = os.getenv("COOKIE_SESSION_LOGIN_METHOD", "POST")
    login_fields_json: str = os.getenv("COOKIE_SESSION_LOGIN_FIELDS", "{}")
    http_timeout: float = float(os.getenv("HTTP_TIMEOUT", "45"))
    http_retries: int = int(os.getenv("HTTP_RETRIES", "1"))
    cookie_store_path: str = os.getenv("COOKIE_STORE_PATH", ".cookie_session.sqlite")
    log_level: str = os.getenv("LOG_LEVEL", "WARNING")

    @property
    def login_fields(self) -> Any:
        try:
            return json.loads(self.login_fields_json or "{}")
        except json.JSONDecodeError:
            return {}


settings = Settings()

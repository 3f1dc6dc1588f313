"""
Runtime settings, read from environment variables.

The CLI calls `load_dotenv()` before anything else, so a `.env` file in the
project root works the same as exported variables.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Dict, Optional

DEFAULT_BASE_URL = "http://localhost:8001/api"
SESSION_COOKIE_NAME = "sessionId"


@dataclass(frozen=True)
class Settings:
    base_url: str = DEFAULT_BASE_URL
    session_cookie: Optional[str] = None
    api_token: Optional[str] = None
    timeout: float = 20.0
    log_level: str = "INFO"

    def headers(self) -> Dict[str, str]:
        h = {"User-Agent": "jobmap/0.1", "Accept": "application/json"}
        if self.api_token:
            h["Authorization"] = f"Bearer {self.api_token}"
        return h

    def cookies(self) -> Dict[str, str]:
        if not self.session_cookie:
            return {}
        return {SESSION_COOKIE_NAME: self.session_cookie}

    @property
    def log_level_value(self) -> int:
        # getLevelName maps known names to ints and anything else to a string
        value = logging.getLevelName((self.log_level or "INFO").upper())
        return value if isinstance(value, int) else logging.INFO


def load_settings() -> Settings:
    """Build Settings from JOBMAP_* env vars; unset vars keep the defaults."""
    timeout_raw = os.getenv("JOBMAP_TIMEOUT", "")
    try:
        timeout = float(timeout_raw) if timeout_raw else 20.0
    except ValueError:
        raise SystemExit(f"JOBMAP_TIMEOUT must be a number of seconds, got {timeout_raw!r}")

    return Settings(
        base_url=os.getenv("JOBMAP_API_BASE_URL", DEFAULT_BASE_URL).rstrip("/"),
        session_cookie=os.getenv("JOBMAP_SESSION_COOKIE") or None,
        api_token=os.getenv("JOBMAP_API_TOKEN") or None,
        timeout=timeout,
        log_level=os.getenv("JOBMAP_LOG_LEVEL", "INFO"),
    )

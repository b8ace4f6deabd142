"""Application configuration helpers.

Centralises loading of environment variables so the rest of the codebase can
depend on typed settings instead of reaching into ``os.environ`` directly.

Settings are read-only. Network clients are built from them explicitly and
handed to the query pipeline, so nothing mutates a shared base URL at runtime.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()

DEFAULT_DATA_PROXY_URL = "http://localhost:8090/api/"
DEFAULT_GEMINI_URL = "https://generativelanguage.googleapis.com/"
DEFAULT_GEMINI_MODEL = "gemini-2.5-flash"


def _get_env(name: str, default: str | None = None, *, required: bool = False) -> str | None:
    """Fetch an environment variable with optional required flag."""
    value = os.getenv(name, default)
    if required and (value is None or value == ""):
        raise RuntimeError(f"Environment variable '{name}' must be set.")
    return value


def _as_flag(value: str | None) -> bool:
    return (value or "").strip().lower() in {"true", "1", "yes", "on"}


def normalize_base_url(url: str) -> str:
    """Return ``url`` with exactly one trailing slash."""
    url = url.strip()
    return url if url.endswith("/") else f"{url}/"


@dataclass(frozen=True)
class DataProxySettings:
    """Database proxy API connection settings."""

    base_url: str = DEFAULT_DATA_PROXY_URL
    timeout_seconds: float = 30.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "base_url", normalize_base_url(self.base_url))


@dataclass(frozen=True)
class GeminiSettings:
    """Completion endpoint configuration."""

    base_url: str = DEFAULT_GEMINI_URL
    model: str = DEFAULT_GEMINI_MODEL
    api_key: str | None = None
    timeout_seconds: float = 60.0
    transport_retries: int = 1

    def __post_init__(self) -> None:
        object.__setattr__(self, "base_url", normalize_base_url(self.base_url))

    @property
    def is_configured(self) -> bool:
        """Return True when a default API key is available."""
        return bool(self.api_key)


@dataclass(frozen=True)
class Settings:
    """Aggregated application settings."""

    data_proxy: DataProxySettings
    gemini: GeminiSettings
    log_level: str = "INFO"
    log_sql_text: bool = False


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached application settings."""
    data_proxy = DataProxySettings(
        base_url=_get_env("DATACLERK_API_URL", DEFAULT_DATA_PROXY_URL),
        timeout_seconds=float(_get_env("DATACLERK_API_TIMEOUT_SECONDS", "30")),
    )
    gemini = GeminiSettings(
        base_url=_get_env("GEMINI_BASE_URL", DEFAULT_GEMINI_URL),
        model=_get_env("GEMINI_MODEL", DEFAULT_GEMINI_MODEL),
        api_key=_get_env("GEMINI_API_KEY") or None,
        timeout_seconds=float(_get_env("GEMINI_TIMEOUT_SECONDS", "60")),
        transport_retries=int(_get_env("GEMINI_TRANSPORT_RETRIES", "1")),
    )
    return Settings(
        data_proxy=data_proxy,
        gemini=gemini,
        log_level=(_get_env("LOG_LEVEL", "INFO") or "INFO").upper(),
        log_sql_text=_as_flag(_get_env("LOG_SQL_TEXT", "false")),
    )

"""Environment-driven configuration objects for the client."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from .exceptions import ConfigurationException

DEFAULT_STORAGE_PATH = Path.home() / ".campus_exchange" / "storage.json"
DEFAULT_GEOLOCATION_URL = "https://ipapi.co/json/"
DEFAULT_COUNTRY_CODE = "US"


def _str_to_bool(value: str | None, default: bool = False) -> bool:
    if value is None or not value.strip():
        return default
    return value.strip().lower() in {"true", "1", "yes", "y", "on"}


def _optional_float(name: str) -> float | None:
    raw = os.getenv(name, "").strip()
    if not raw:
        return None
    try:
        value = float(raw)
    except ValueError as exc:
        raise ConfigurationException(f"{name} must be a number, got {raw!r}") from exc
    if value <= 0:
        raise ConfigurationException(f"{name} must be positive, got {raw!r}")
    return value


@dataclass(slots=True, frozen=True)
class GeolocationConfig:
    enabled: bool
    url: str
    default_country: str


@dataclass(slots=True, frozen=True)
class Settings:
    api_url: str
    storage_path: Path
    redis_url: str | None
    request_timeout: float | None
    query_stale_time: float | None
    geolocation: GeolocationConfig
    log_level: str = "INFO"


def load_settings() -> Settings:
    """Load environment variables once and expose typed settings."""
    load_dotenv()

    api_url = os.getenv("CAMPUS_API_URL", "").strip()
    if not api_url:
        raise ConfigurationException("CAMPUS_API_URL environment variable is not set")
    if not api_url.startswith(("http://", "https://")):
        raise ConfigurationException(f"CAMPUS_API_URL must be an http(s) URL, got {api_url!r}")

    storage_path = os.getenv("CAMPUS_STORAGE_PATH", "").strip()

    geolocation = GeolocationConfig(
        enabled=_str_to_bool(os.getenv("CAMPUS_GEOLOCATION_ENABLED"), default=True),
        url=os.getenv("CAMPUS_GEOLOCATION_URL", DEFAULT_GEOLOCATION_URL),
        default_country=os.getenv("CAMPUS_DEFAULT_COUNTRY", DEFAULT_COUNTRY_CODE).upper(),
    )

    return Settings(
        api_url=api_url.rstrip("/"),
        storage_path=Path(storage_path).expanduser() if storage_path else DEFAULT_STORAGE_PATH,
        redis_url=os.getenv("REDIS_URL") or None,
        request_timeout=_optional_float("CAMPUS_REQUEST_TIMEOUT"),
        query_stale_time=_optional_float("CAMPUS_QUERY_STALE_TIME"),
        geolocation=geolocation,
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )

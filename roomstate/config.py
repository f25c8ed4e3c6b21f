"""App configuration: environment variable loading with typed defaults.

Loads settings from .env file (via python-dotenv) and os.environ.
Real environment variables take precedence over .env file values.

The storage backend is chosen here, once, at process start: relational
when STORAGE_BACKEND says so (or, if unset, whenever DATABASE_URL is
configured), memory otherwise.

Usage:
    from roomstate.config import get_settings
    settings = get_settings()
    print(settings.storage_backend)  # "memory"
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Only load .env from the project root. Don't traverse parent directories.
PROJECT_ROOT = Path(__file__).resolve().parent.parent
_DOTENV_PATH = PROJECT_ROOT / ".env"

STORAGE_BACKENDS = ("memory", "relational")
DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./roomstate.db"


@dataclass(frozen=True)
class Settings:
    """Typed configuration for the room state store.

    All fields have sensible defaults for local development.
    """

    # App
    app_env: str
    app_port: int
    log_level: str
    cors_origins: list[str]

    # Storage
    storage_backend: str
    database_url: str
    backend_timeout_seconds: float
    game_ttl_hours: int
    session_ttl_days: int
    cleanup_interval_seconds: int
    reaper_interval_seconds: int

    # Security
    csrf_ttl_seconds: int
    rate_limit_max_requests: int
    rate_limit_window_ms: int
    password_hash_rounds: int


def _resolve_backend(value: str | None, database_url: str) -> str:
    """Validates STORAGE_BACKEND, defaulting on whether a database is configured.

    Raises:
        ValueError: If the value isn't one of STORAGE_BACKENDS.
    """
    if not value:
        return "relational" if database_url else "memory"
    value = value.strip().lower()
    if value in STORAGE_BACKENDS:
        return value
    valid = ", ".join(STORAGE_BACKENDS)
    raise ValueError(
        f"Invalid value for STORAGE_BACKEND: {value!r}. "
        f"Valid options: {valid}"
    )


def _split_csv(value: str) -> list[str]:
    """Splits a comma-separated string into a list of stripped, non-empty values."""
    return [item.strip() for item in value.split(",") if item.strip()]


def _load_settings() -> Settings:
    """Loads configuration from .env file and environment variables.

    Returns:
        A fully resolved Settings instance.
    """
    load_dotenv(_DOTENV_PATH)

    database_url = os.environ.get("DATABASE_URL", "")
    storage_backend = _resolve_backend(os.environ.get("STORAGE_BACKEND"), database_url)

    return Settings(
        # App
        app_env=os.environ.get("APP_ENV", "development"),
        app_port=int(os.environ.get("APP_PORT", "8000")),
        log_level=os.environ.get("LOG_LEVEL", "info"),
        cors_origins=_split_csv(
            os.environ.get("CORS_ORIGINS", "http://localhost:3000,http://localhost:5173")
        ),
        # Storage
        storage_backend=storage_backend,
        database_url=database_url or (
            DEFAULT_DATABASE_URL if storage_backend == "relational" else ""
        ),
        backend_timeout_seconds=float(os.environ.get("BACKEND_TIMEOUT_SECONDS", "5")),
        game_ttl_hours=int(os.environ.get("GAME_TTL_HOURS", "24")),
        session_ttl_days=int(os.environ.get("SESSION_TTL_DAYS", "7")),
        cleanup_interval_seconds=int(os.environ.get("CLEANUP_INTERVAL_SECONDS", "60")),
        reaper_interval_seconds=int(os.environ.get("REAPER_INTERVAL_SECONDS", "300")),
        # Security
        csrf_ttl_seconds=int(os.environ.get("CSRF_TTL_SECONDS", "3600")),
        rate_limit_max_requests=int(os.environ.get("RATE_LIMIT_MAX_REQUESTS", "30")),
        rate_limit_window_ms=int(os.environ.get("RATE_LIMIT_WINDOW_MS", "60000")),
        password_hash_rounds=int(os.environ.get("PASSWORD_HASH_ROUNDS", "100000")),
    )


_settings: Settings | None = None


def get_settings() -> Settings:
    """Returns the singleton Settings instance. Loads .env on first call."""
    global _settings
    if _settings is None:
        _settings = _load_settings()
    return _settings

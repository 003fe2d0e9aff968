from __future__ import annotations

import os
from dataclasses import dataclass
from typing import List, Optional


@dataclass(frozen=True)
class Settings:
    """
    Application settings loaded from environment variables.

    Env vars:
    - PERSISTENCE_BACKEND: 'memory' (default) or 'sqlite'
    - SQLITE_DB_PATH: path to sqlite db file. Default './data/tasks.db'
    - CORS_ALLOW_ORIGINS: comma-separated list of allowed origins, or '*'.
      Default is the frontend dev server 'http://localhost:5173'
    - APP_ENV: 'development' (default) or 'production'; only development
      exposes internal error text in 500 responses
    - HOST / PORT: listen address for `python -m src.api` (default 0.0.0.0:4000)
    - LOG_LEVEL: console log level name (default INFO)
    - LOG_FILE: optional path of a DEBUG log file (unset by default)
    """

    persistence_backend: str
    sqlite_db_path: str
    cors_allow_origins: List[str]
    environment: str
    host: str
    port: int
    log_level: str
    log_file: Optional[str]

    @property
    def is_development(self) -> bool:
        return self.environment == "development"


def _get_env(name: str, default: str) -> str:
    value = os.getenv(name, default)
    if value is None or value == "":
        return default
    return value


def _parse_int(value: str, default: int) -> int:
    try:
        return int(value.strip())
    except ValueError:
        return default


def _parse_origins(origins_value: str) -> List[str]:
    """
    Parse CORS origins from env. Supports:
    - '*' to allow all origins
    - Comma-separated list of origins
    """
    value = origins_value.strip()
    if value == "*":
        return ["*"]
    return [o.strip() for o in value.split(",") if o.strip()]


# PUBLIC_INTERFACE
def get_settings() -> Settings:
    """Return application settings loaded from environment variables."""
    backend = _get_env("PERSISTENCE_BACKEND", "memory").strip().lower()
    if backend not in {"memory", "sqlite"}:
        # Fallback to memory if unsupported
        backend = "memory"

    environment = _get_env("APP_ENV", "development").strip().lower()

    return Settings(
        persistence_backend=backend,
        sqlite_db_path=_get_env("SQLITE_DB_PATH", "./data/tasks.db").strip(),
        cors_allow_origins=_parse_origins(_get_env("CORS_ALLOW_ORIGINS", "http://localhost:5173")),
        environment=environment,
        host=_get_env("HOST", "0.0.0.0").strip(),
        port=_parse_int(_get_env("PORT", "4000"), 4000),
        log_level=_get_env("LOG_LEVEL", "INFO").strip().upper(),
        log_file=os.getenv("LOG_FILE") or None,
    )

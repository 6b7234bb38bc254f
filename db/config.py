"""
db/config.py

Environment-driven database settings for the royalty store.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
ENV_FILES = (".env", ".env.local")
CLOUD_ENVIRONMENTS = frozenset({"prod", "production", "staging", "cloud"})
DATABASE_URL_VARIABLES = ("DATABASE_URL", "CLOUD_DATABASE_URL", "LOCAL_DATABASE_URL")


def load_env_files(root: Path = PROJECT_ROOT) -> None:
    """
    Export KEY=VALUE lines from `.env` then `.env.local` into ``os.environ``.

    Variables already present in the process environment win.
    """

    for filename in ENV_FILES:
        env_path = root / filename
        if not env_path.is_file():
            continue
        for raw_line in env_path.read_text(encoding="utf-8").splitlines():
            line = raw_line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, value = (part.strip() for part in line.split("=", 1))
            if key:
                os.environ.setdefault(key, value.strip('"').strip("'"))


def normalize_postgres_url(url: str) -> str:
    """
    Rewrite ``postgres://`` and bare ``postgresql://`` URLs to the psycopg 3 driver.
    """

    for prefix in ("postgres://", "postgresql://"):
        if url.startswith(prefix):
            return "postgresql+psycopg://" + url[len(prefix):]
    return url


def resolve_database_url() -> str:
    """
    Pick the database URL for the current environment.

    DATABASE_URL wins; otherwise CLOUD_DATABASE_URL is used in cloud-like
    environments and LOCAL_DATABASE_URL everywhere else.
    """

    load_env_files()

    direct_url = os.getenv("DATABASE_URL", "").strip()
    if direct_url:
        return normalize_postgres_url(direct_url)

    environment = os.getenv("ENVIRONMENT", "local").strip().lower()
    cloud_url = os.getenv("CLOUD_DATABASE_URL", "").strip()
    if environment in CLOUD_ENVIRONMENTS and cloud_url:
        return normalize_postgres_url(cloud_url)

    local_url = os.getenv("LOCAL_DATABASE_URL", "").strip()
    if local_url:
        return normalize_postgres_url(local_url)

    raise RuntimeError(
        "No database URL configured. Set DATABASE_URL, or configure "
        "LOCAL_DATABASE_URL / CLOUD_DATABASE_URL."
    )


def _int_env(name: str, default: int) -> int:
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


@dataclass(frozen=True)
class DatabaseSettings:
    """
    Connection pool sizing for the API process.

    Concurrent insert waves each check out their own connection, so
    ``pool_size + max_overflow`` should cover ROYALTY_MAX_CONCURRENCY plus the
    request and progress sessions.
    """

    url: str
    echo: bool = False
    pool_size: int = 5
    max_overflow: int = 10
    pool_recycle: int = 1800
    statement_timeout_ms: int = 0


def load_database_settings() -> DatabaseSettings:
    url = resolve_database_url()
    if not url.startswith("postgresql"):
        raise RuntimeError("Only PostgreSQL URLs are supported.")

    return DatabaseSettings(
        url=url,
        echo=os.getenv("SQL_ECHO", "").strip().lower() in {"1", "true", "yes", "on"},
        pool_size=max(1, _int_env("DB_POOL_SIZE", 5)),
        max_overflow=max(0, _int_env("DB_MAX_OVERFLOW", 10)),
        pool_recycle=_int_env("DB_POOL_RECYCLE", 1800),
        statement_timeout_ms=max(0, _int_env("DB_STATEMENT_TIMEOUT_MS", 0)),
    )

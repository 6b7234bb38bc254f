"""
app/config.py

Process and royalty ingestion settings read from the environment.
"""

from __future__ import annotations

import os
from collections.abc import Callable
from dataclasses import dataclass
from functools import lru_cache
from typing import TypeVar

from db.config import load_env_files

T = TypeVar("T")

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    load_env_files()


def _env(name: str, default: T, parse: Callable[[str], T]) -> T:
    """
    Parse ``name`` from the environment; unset, blank or unparseable values
    fall back to ``default``.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None or not raw_value.strip():
        return default
    try:
        return parse(raw_value.strip())
    except ValueError:
        return default


def _parse_bool(raw_value: str) -> bool:
    return raw_value.lower() in _TRUE_VALUES


def _positive_int(name: str, default: int) -> int:
    return max(1, _env(name, default, int))


@dataclass(frozen=True)
class AppSettings:
    environment: str = "local"
    log_level: str = "INFO"


@lru_cache(maxsize=1)
def get_app_settings() -> AppSettings:
    return AppSettings(
        environment=_env("ENVIRONMENT", "local", str.lower),
        log_level=_env("LOG_LEVEL", "INFO", str.upper),
    )


@dataclass(frozen=True)
class RoyaltyIngestionSettings:
    """
    Runtime settings for royalty file ingestion.

    The batch_* / retry_* values are defaults for the per-run BatchConfig;
    callers may override them per request.
    """

    batch_size: int = 500
    max_concurrency: int = 3
    retry_attempts: int = 3
    retry_delay_ms: int = 1000
    continue_on_error: bool = True
    track_lookup_batch_size: int = 100
    track_insert_batch_size: int = 200
    summary_upsert_batch_size: int = 100
    progress_row_interval: int = 1000
    log_validation_errors: bool = True
    max_failed_rows_in_job_payload: int = 5000


@lru_cache(maxsize=1)
def get_royalty_ingestion_settings() -> RoyaltyIngestionSettings:
    """
    Cached ROYALTY_* settings; sizes and intervals are clamped to at least 1.
    """

    return RoyaltyIngestionSettings(
        batch_size=_positive_int("ROYALTY_BATCH_SIZE", 500),
        max_concurrency=_positive_int("ROYALTY_MAX_CONCURRENCY", 3),
        retry_attempts=max(0, _env("ROYALTY_RETRY_ATTEMPTS", 3, int)),
        retry_delay_ms=_positive_int("ROYALTY_RETRY_DELAY_MS", 1000),
        continue_on_error=_env("ROYALTY_CONTINUE_ON_ERROR", True, _parse_bool),
        track_lookup_batch_size=_positive_int("ROYALTY_TRACK_LOOKUP_BATCH_SIZE", 100),
        track_insert_batch_size=_positive_int("ROYALTY_TRACK_INSERT_BATCH_SIZE", 200),
        summary_upsert_batch_size=_positive_int("ROYALTY_SUMMARY_UPSERT_BATCH_SIZE", 100),
        progress_row_interval=_positive_int("ROYALTY_PROGRESS_ROW_INTERVAL", 1000),
        log_validation_errors=_env("ROYALTY_LOG_VALIDATION_ERRORS", True, _parse_bool),
        max_failed_rows_in_job_payload=max(0, _env("ROYALTY_MAX_FAILED_ROWS_IN_JOB_PAYLOAD", 5000, int)),
    )

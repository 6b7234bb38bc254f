"""
tests/test_config.py

Environment parsing for app and royalty ingestion settings.
"""

from __future__ import annotations

from collections.abc import Iterator

import pytest

from app.config import get_app_settings, get_royalty_ingestion_settings
from db.config import normalize_postgres_url, resolve_database_url


@pytest.fixture(autouse=True)
def _fresh_settings() -> Iterator[None]:
    get_app_settings.cache_clear()
    get_royalty_ingestion_settings.cache_clear()
    yield
    get_app_settings.cache_clear()
    get_royalty_ingestion_settings.cache_clear()


class TestRoyaltyIngestionSettings:
    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for name in ("ROYALTY_BATCH_SIZE", "ROYALTY_MAX_CONCURRENCY", "ROYALTY_CONTINUE_ON_ERROR"):
            monkeypatch.delenv(name, raising=False)

        settings = get_royalty_ingestion_settings()

        assert settings.batch_size == 500
        assert settings.max_concurrency == 3
        assert settings.continue_on_error is True

    def test_values_are_parsed_and_clamped(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ROYALTY_BATCH_SIZE", "250")
        monkeypatch.setenv("ROYALTY_MAX_CONCURRENCY", "0")
        monkeypatch.setenv("ROYALTY_RETRY_ATTEMPTS", "-2")
        monkeypatch.setenv("ROYALTY_CONTINUE_ON_ERROR", "off")

        settings = get_royalty_ingestion_settings()

        assert settings.batch_size == 250
        assert settings.max_concurrency == 1
        assert settings.retry_attempts == 0
        assert settings.continue_on_error is False

    def test_unparseable_value_falls_back(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ROYALTY_RETRY_DELAY_MS", "soon")

        assert get_royalty_ingestion_settings().retry_delay_ms == 1000


class TestDatabaseUrl:
    def test_postgres_scheme_is_rewritten_for_psycopg(self) -> None:
        assert normalize_postgres_url("postgres://u:p@h/db") == "postgresql+psycopg://u:p@h/db"
        assert normalize_postgres_url("postgresql://u:p@h/db") == "postgresql+psycopg://u:p@h/db"
        assert normalize_postgres_url("postgresql+psycopg://u@h/db") == "postgresql+psycopg://u@h/db"

    def test_cloud_url_used_only_in_cloud_environments(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("DATABASE_URL", raising=False)
        monkeypatch.setenv("CLOUD_DATABASE_URL", "postgresql://cloud/db")
        monkeypatch.setenv("LOCAL_DATABASE_URL", "postgresql://local/db")

        monkeypatch.setenv("ENVIRONMENT", "production")
        assert resolve_database_url() == "postgresql+psycopg://cloud/db"

        monkeypatch.setenv("ENVIRONMENT", "local")
        assert resolve_database_url() == "postgresql+psycopg://local/db"

    def test_missing_url_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for name in ("DATABASE_URL", "CLOUD_DATABASE_URL", "LOCAL_DATABASE_URL"):
            monkeypatch.delenv(name, raising=False)

        with pytest.raises(RuntimeError, match="No database URL configured"):
            resolve_database_url()

"""
tests/conftest.py

Fixtures wiring the royalty services to in-memory fakes.
"""

from __future__ import annotations

import uuid

import pytest

from app.config import RoyaltyIngestionSettings
from app.services.royalty_aggregation_service import RoyaltySummaryService
from app.services.royalty_ingestion_service import RoyaltyIngestionService
from tests.fakes import (
    FakeRoyaltyRepository,
    FakeSession,
    FakeSummaryRepository,
    FakeTrackRepository,
    InMemoryCatalog,
)


@pytest.fixture()
def catalog() -> InMemoryCatalog:
    return InMemoryCatalog()


@pytest.fixture()
def artist_id(catalog: InMemoryCatalog) -> uuid.UUID:
    return catalog.add_artist()


@pytest.fixture()
def ingestion_settings() -> RoyaltyIngestionSettings:
    return RoyaltyIngestionSettings(progress_row_interval=2)


@pytest.fixture()
def summary_service(catalog: InMemoryCatalog) -> RoyaltySummaryService:
    return RoyaltySummaryService(
        session_factory=FakeSession,
        summary_repository_factory=lambda session: FakeSummaryRepository(catalog),
        royalty_repository_factory=lambda session: FakeRoyaltyRepository(catalog),
    )


@pytest.fixture()
def sleeps() -> list[float]:
    return []


@pytest.fixture()
def ingestion_service(
    catalog: InMemoryCatalog,
    ingestion_settings: RoyaltyIngestionSettings,
    summary_service: RoyaltySummaryService,
    sleeps: list[float],
) -> RoyaltyIngestionService:
    return RoyaltyIngestionService(
        settings=ingestion_settings,
        session_factory=FakeSession,
        track_repository_factory=lambda session: FakeTrackRepository(catalog),
        royalty_repository_factory=lambda session: FakeRoyaltyRepository(catalog),
        summary_service=summary_service,
        sleep=sleeps.append,
    )

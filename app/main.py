from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from collections.abc import AsyncIterator

from fastapi import FastAPI


def _validate_env() -> None:
    """
    Validate required environment variables at startup.

    Runs before any service or database connection is initialised.
    Raises RuntimeError listing every missing or invalid variable so the
    operator can fix all problems in one restart cycle.
    """

    from db.config import DATABASE_URL_VARIABLES, load_env_files, normalize_postgres_url

    load_env_files()

    errors: list[str] = []

    # --- Database URL ---------------------------------------------------
    candidates = [os.getenv(name, "").strip() for name in DATABASE_URL_VARIABLES]
    configured = [url for url in candidates if url]
    if not configured:
        errors.append(
            "No database URL configured. Set DATABASE_URL, CLOUD_DATABASE_URL or LOCAL_DATABASE_URL."
        )
    elif not normalize_postgres_url(configured[0]).startswith("postgresql"):
        errors.append("Only PostgreSQL database URLs are supported.")

    # --- Ingestion tuning -----------------------------------------------
    for name in ("ROYALTY_BATCH_SIZE", "ROYALTY_MAX_CONCURRENCY", "ROYALTY_RETRY_DELAY_MS"):
        raw_value = os.getenv(name)
        if raw_value is None:
            continue
        if not raw_value.strip().isdigit() or int(raw_value) < 1:
            errors.append(f"{name}='{raw_value}' must be a positive integer.")

    if errors:
        raise RuntimeError(
            "Startup validation failed, missing or invalid environment variables:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )


def _configure_logging() -> None:
    """
    Configure root logging once for the API process.
    """

    from app.config import get_app_settings

    log_level = get_app_settings().log_level
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def _check_db() -> None:
    """Open a session and run SELECT 1. Raises RuntimeError if the DB is unreachable."""
    from sqlalchemy import text

    from db.session import SessionLocal

    try:
        db = SessionLocal()
        try:
            db.execute(text("SELECT 1"))
        finally:
            db.close()
    except Exception as exc:
        raise RuntimeError("Database unavailable.") from exc


def _check_schema() -> None:
    """
    Compare Base.metadata table names against the live DB schema.

    Every table registered on Base.metadata must exist in the database.
    Missing tables abort startup; run 'alembic upgrade head' first.

    Does NOT auto-migrate.
    """
    from sqlalchemy import inspect as sa_inspect

    import db.models  # noqa: F401
    from db.base import Base
    from db.session import get_engine

    inspector = sa_inspect(get_engine())
    actual: set[str] = set(inspector.get_table_names())
    expected: set[str] = set(Base.metadata.tables.keys())
    missing = expected - actual

    if missing:
        log = logging.getLogger(__name__)
        log.critical(
            "Schema mismatch, %d table(s) defined in ORM metadata are absent from "
            "the database: %s. Run 'alembic upgrade head' and restart.",
            len(missing),
            ", ".join(sorted(missing)),
        )
        raise RuntimeError(
            f"Schema mismatch: {len(missing)} table(s) missing from the database "
            f"({', '.join(sorted(missing))}). Run migrations and restart."
        )


@asynccontextmanager
async def _lifespan(application: FastAPI) -> AsyncIterator[None]:
    """Validate DB connectivity and schema on boot."""
    _check_db()
    logging.getLogger(__name__).info("Database connectivity confirmed")
    _check_schema()
    logging.getLogger(__name__).info("Database schema validated")
    yield


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.
    """

    _validate_env()
    _configure_logging()

    application = FastAPI(
        title="Royalty Ingestion API",
        version="1.0.0",
        lifespan=_lifespan,
    )

    from app.api.routers import royalty_ingestion_router, royalty_summary_router

    application.include_router(royalty_ingestion_router)
    application.include_router(royalty_summary_router)

    @application.get("/health")
    def healthcheck() -> dict[str, str]:
        from app.config import get_app_settings

        return {"status": "ok", "environment": get_app_settings().environment}

    return application


app = create_app()

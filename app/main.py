from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from collections.abc import AsyncIterator

from fastapi import FastAPI


def _validate_env() -> None:
    """
    Validate all required environment variables at startup.

    Runs before any service or database connection is initialised.
    Raises RuntimeError listing every missing or invalid variable so the
    operator can fix all problems in one restart cycle.

    Rules:
    - No empty-string values are accepted.
    - A PostgreSQL database URL is required; SQLite is not permitted.
    - Both endpoint tokens must be set.
    - The text-completion API key check is skipped only when
      TEXT_COMPLETION_ADAPTER=mock.
    """

    from db.config import DATABASE_URL_ENV_NAMES, load_env_files

    load_env_files()

    errors: list[str] = []

    # --- Database URL ---------------------------------------------------
    database_urls = [
        os.getenv(name, "").strip()
        for name in DATABASE_URL_ENV_NAMES
    ]
    configured_urls = [url for url in database_urls if url]
    if not configured_urls:
        errors.append(
            "No database URL configured. Set DATABASE_URL, CLOUD_DATABASE_URL or LOCAL_DATABASE_URL."
        )
    elif any(url.startswith("sqlite") for url in configured_urls):
        errors.append("SQLite database URLs are not permitted; use PostgreSQL.")

    # --- Endpoint tokens ------------------------------------------------
    for token_name in ("IMPORT_API_TOKEN", "CRAWLER_ADMIN_TOKEN"):
        if not os.getenv(token_name, "").strip():
            errors.append(f"{token_name} is not set. Empty strings are not permitted.")

    # --- Text-completion API key ----------------------------------------
    adapter = os.getenv("TEXT_COMPLETION_ADAPTER", "openai").strip().lower()
    if adapter not in {"openai", "mock"}:
        errors.append(
            f"TEXT_COMPLETION_ADAPTER='{adapter}' is not valid. Allowed values: ['mock', 'openai']."
        )
    elif adapter != "mock":
        api_key = os.getenv("TEXT_COMPLETION_API_KEY", "").strip()
        openai_api_key = os.getenv("OPENAI_API_KEY", "").strip()
        if not api_key and not openai_api_key:
            errors.append(
                "Text-completion API key is not set. Provide TEXT_COMPLETION_API_KEY or OPENAI_API_KEY, "
                "or set TEXT_COMPLETION_ADAPTER=mock."
            )

    if errors:
        raise RuntimeError(
            "Startup validation failed, missing or invalid environment variables:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )


def _configure_logging() -> None:
    """
    Configure root logging once for the API process.
    """

    log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper()
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
    If any are missing, log a critical error and abort startup so that
    the operator is forced to run migrations before serving traffic.

    Does NOT auto-migrate.
    """
    from sqlalchemy import inspect as sa_inspect

    import db.models  # noqa: F401  registers all ORM models on Base.metadata
    from db.base import Base
    from db.session import get_engine

    inspector = sa_inspect(get_engine())
    actual: set[str] = set(inspector.get_table_names())
    expected: set[str] = set(Base.metadata.tables.keys())
    missing = expected - actual

    if missing:
        log = logging.getLogger(__name__)
        log.critical(
            "Schema mismatch: %d table(s) defined in ORM metadata are absent from "
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
    """
    Validate DB connectivity and schema, resume import jobs orphaned by a
    previous process, start the scheduler on boot; shut everything down on exit.
    """
    log = logging.getLogger(__name__)
    _check_db()
    log.info("Database connectivity confirmed")
    _check_schema()
    log.info("Database schema validated")

    from app.scheduler.jobs import build_scheduler, resume_stale_import_jobs
    from app.services.import_coordinator import shutdown_thread_pool_executor

    resume_stale_import_jobs()

    scheduler = build_scheduler()
    scheduler.start()
    log.info("Scheduler started with %d jobs", len(scheduler.get_jobs()))
    try:
        yield
    finally:
        scheduler.shutdown(wait=True)
        log.info("Scheduler shut down")
        # Jobs still running are resumed by the import_resume sweep once stale.
        shutdown_thread_pool_executor(wait=False)


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.
    """

    _validate_env()
    _configure_logging()

    application = FastAPI(
        title="Game Library Ingest API",
        version="1.0.0",
        lifespan=_lifespan,
    )

    from app.api.routers import bulk_import_router, catalog_crawler_router

    application.include_router(bulk_import_router)
    application.include_router(catalog_crawler_router)

    @application.get("/health")
    def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    return application


app = create_app()

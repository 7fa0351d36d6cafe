"""
app/scheduler/jobs.py

APScheduler-based background jobs for the ingestion service.

Schedule
--------
  catalog_crawl: every ``CRAWLER_INTERVAL_MINUTES`` (default 5), one crawler
                run of ``CRAWLER_BATCHES_PER_RUN`` batches. Registered only
                when ``CRAWLER_SCHEDULE_ENABLED`` is true. Whether a run does
                any work is still gated by the persisted ``is_enabled`` flag.
  import_resume: every ``IMPORT_RESUME_INTERVAL_MINUTES`` (default 5), resume
                import jobs whose row has not been written for
                ``IMPORT_STALE_JOB_SECONDS``.

Lifecycle
----------
Call ``build_scheduler()`` once to get a configured ``BackgroundScheduler``.
Start it on app boot; shut it down gracefully on app shutdown.
The scheduler is wired into FastAPI via the ``lifespan`` context in main.py.
``resume_stale_import_jobs()`` also runs once at boot, before the scheduler.
"""

from __future__ import annotations

import logging
import uuid

from apscheduler.schedulers.background import BackgroundScheduler

from app.config import get_crawler_settings, get_import_settings
from app.services.catalog_crawler import CatalogCrawlerBusyError, get_catalog_crawler
from app.services.import_coordinator import get_import_coordinator, get_thread_pool_executor

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Job: catalog crawl
# ---------------------------------------------------------------------------


def run_catalog_crawl() -> None:
    """
    One crawler run. Errors are logged; the next tick tries again.
    """
    logger.info("Scheduler: catalog_crawl starting")
    try:
        summary = get_catalog_crawler().run()
    except CatalogCrawlerBusyError:
        logger.info("Scheduler: catalog_crawl skipped, previous run still active")
        return
    except Exception:
        logger.exception("Scheduler: catalog_crawl failed")
        return
    logger.info(
        "Scheduler: catalog_crawl finished status=%s next_external_id=%s added=%s errors=%s",
        summary.status,
        summary.next_external_id,
        summary.added,
        summary.errors,
    )


# ---------------------------------------------------------------------------
# Job: import resume
# ---------------------------------------------------------------------------


def resume_stale_import_jobs() -> list[uuid.UUID]:
    """
    Resubmit import jobs abandoned by a process that went away. Jobs whose
    row is still being written belong to a live worker and are skipped.
    """
    try:
        resumed = get_import_coordinator().resume_stale_jobs(executor=get_thread_pool_executor())
    except Exception:
        logger.exception("Scheduler: import_resume failed")
        return []
    if resumed:
        logger.warning("Resumed %d interrupted import job(s)", len(resumed))
    return resumed


# ---------------------------------------------------------------------------
# Scheduler factory
# ---------------------------------------------------------------------------


def build_scheduler() -> BackgroundScheduler:
    """
    Build and register all periodic jobs.

    Returns a configured but *not yet started* ``BackgroundScheduler``.
    The caller must call ``.start()`` and ``.shutdown(wait=True)`` at the
    appropriate lifecycle points.
    """
    settings = get_crawler_settings()
    scheduler = BackgroundScheduler(timezone="UTC")

    if settings.schedule_enabled:
        scheduler.add_job(
            run_catalog_crawl,
            trigger="interval",
            minutes=settings.interval_minutes,
            id="catalog_crawl",
            name="Catalog crawler sweep",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=settings.interval_minutes * 60,
        )
    else:
        logger.info("Catalog crawl schedule disabled via CRAWLER_SCHEDULE_ENABLED")

    import_settings = get_import_settings()
    scheduler.add_job(
        resume_stale_import_jobs,
        trigger="interval",
        minutes=import_settings.resume_interval_minutes,
        id="import_resume",
        name="Resume interrupted import jobs",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    return scheduler

"""
app/config.py

Application-level configuration helpers.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from db.config import load_env_files


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    """
    Ensure project `.env` files are loaded once before reading app settings.
    """

    load_env_files()


def _get_bool_env(name: str, default: bool) -> bool:
    """
    Read a boolean from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    """
    Read an integer from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


def _get_float_env(name: str, default: float) -> float:
    """
    Read a float from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return float(raw_value)
    except ValueError:
        return default


def _get_str_env(name: str, default: str) -> str:
    """
    Read a string from environment variables with fallback.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return default
    stripped = value.strip()
    return stripped if stripped else default


def _get_optional_str_env(name: str) -> str | None:
    """
    Read an optional string value from environment variables.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return None
    stripped = value.strip()
    return stripped if stripped else None


def _get_list_env(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw_value = _get_optional_str_env(name)
    if raw_value is None:
        return default
    return tuple(part.strip() for part in raw_value.split(",") if part.strip())


@dataclass(frozen=True)
class ImportSettings:
    """
    Runtime settings for bulk import jobs.
    """

    worker_threads: int = 4
    error_sample_cap: int = 10
    not_found_sample_cap: int = 10
    enhancement_delay_seconds: float = 0.3
    stream_keepalive_seconds: float = 15.0
    max_upload_bytes: int = 10 * 1024 * 1024
    stale_job_seconds: float = 900.0
    resume_interval_minutes: int = 5


@dataclass(frozen=True)
class ReferenceSourceSettings:
    """
    HTTP behavior for the external board game reference API.
    """

    base_url: str = "https://boardgamegeek.com/xmlapi2"
    site_url: str = "https://boardgamegeek.com"
    api_token: str | None = None
    user_agent: str = "game-library-ingest/1.0"
    timeout_seconds: float = 15.0
    max_attempts: int = 3
    rate_limit_backoff_seconds: float = 3.0
    processing_delay_seconds: float = 5.0
    error_retry_delay_seconds: float = 2.0


@dataclass(frozen=True)
class CrawlerSettings:
    """
    Catalog crawler sweep settings.
    """

    batch_size: int = 20
    batches_per_run: int = 10
    courtesy_delay_seconds: float = 3.0
    schedule_enabled: bool = True
    interval_minutes: int = 5
    fetch_ids_limit: int = 100
    excluded_categories: tuple[str, ...] = ("Electronic", "Video Game", "Book")


@dataclass(frozen=True)
class TextCompletionSettings:
    """
    Text-completion service used to rewrite game descriptions.
    """

    adapter: str = "openai"
    model: str = "gpt-4o-mini"
    api_key: str | None = None
    request_delay_seconds: float = 1.0
    min_words: int = 150
    max_words: int = 250
    max_retries: int = 1


@dataclass(frozen=True)
class AuthSettings:
    """
    Bearer tokens accepted by the import and crawler-control endpoints.
    """

    import_api_token: str | None = None
    crawler_admin_token: str | None = None


@dataclass(frozen=True)
class ObserverSettings:
    """
    Client-side progress observation timings.
    """

    poll_interval_seconds: float = 3.0
    stream_refresh_interval_seconds: float = 2.0
    poll_refresh_interval_seconds: float = 3.0
    request_timeout_seconds: float = 30.0


@lru_cache(maxsize=1)
def get_import_settings() -> ImportSettings:
    """
    Return cached import job settings from environment variables.
    """

    return ImportSettings(
        worker_threads=max(1, _get_int_env("IMPORT_WORKER_THREADS", 4)),
        error_sample_cap=max(1, _get_int_env("IMPORT_ERROR_SAMPLE_CAP", 10)),
        not_found_sample_cap=max(1, _get_int_env("IMPORT_NOT_FOUND_SAMPLE_CAP", 10)),
        enhancement_delay_seconds=max(0.0, _get_float_env("IMPORT_ENHANCEMENT_DELAY_SECONDS", 0.3)),
        stream_keepalive_seconds=max(1.0, _get_float_env("IMPORT_STREAM_KEEPALIVE_SECONDS", 15.0)),
        max_upload_bytes=max(1024, _get_int_env("IMPORT_MAX_UPLOAD_BYTES", 10 * 1024 * 1024)),
        stale_job_seconds=max(60.0, _get_float_env("IMPORT_STALE_JOB_SECONDS", 900.0)),
        resume_interval_minutes=max(1, _get_int_env("IMPORT_RESUME_INTERVAL_MINUTES", 5)),
    )


@lru_cache(maxsize=1)
def get_reference_source_settings() -> ReferenceSourceSettings:
    """
    Return reference API settings from environment variables.
    """

    return ReferenceSourceSettings(
        base_url=_get_str_env("REFERENCE_API_BASE_URL", "https://boardgamegeek.com/xmlapi2").rstrip("/"),
        site_url=_get_str_env("REFERENCE_SITE_URL", "https://boardgamegeek.com").rstrip("/"),
        api_token=_get_optional_str_env("REFERENCE_API_TOKEN"),
        user_agent=_get_str_env("REFERENCE_API_USER_AGENT", "game-library-ingest/1.0"),
        timeout_seconds=max(1.0, _get_float_env("REFERENCE_API_TIMEOUT_SECONDS", 15.0)),
        max_attempts=max(1, _get_int_env("REFERENCE_API_MAX_ATTEMPTS", 3)),
        rate_limit_backoff_seconds=max(0.0, _get_float_env("REFERENCE_API_RATE_LIMIT_BACKOFF_SECONDS", 3.0)),
        processing_delay_seconds=max(0.0, _get_float_env("REFERENCE_API_PROCESSING_DELAY_SECONDS", 5.0)),
        error_retry_delay_seconds=max(0.0, _get_float_env("REFERENCE_API_ERROR_RETRY_DELAY_SECONDS", 2.0)),
    )


@lru_cache(maxsize=1)
def get_crawler_settings() -> CrawlerSettings:
    """
    Return catalog crawler settings from environment variables.
    """

    return CrawlerSettings(
        batch_size=max(1, _get_int_env("CRAWLER_BATCH_SIZE", 20)),
        batches_per_run=max(1, _get_int_env("CRAWLER_BATCHES_PER_RUN", 10)),
        courtesy_delay_seconds=max(0.0, _get_float_env("CRAWLER_COURTESY_DELAY_SECONDS", 3.0)),
        schedule_enabled=_get_bool_env("CRAWLER_SCHEDULE_ENABLED", True),
        interval_minutes=max(1, _get_int_env("CRAWLER_INTERVAL_MINUTES", 5)),
        fetch_ids_limit=max(1, _get_int_env("CRAWLER_FETCH_IDS_LIMIT", 100)),
        excluded_categories=_get_list_env(
            "CRAWLER_EXCLUDED_CATEGORIES",
            ("Electronic", "Video Game", "Book"),
        ),
    )


@lru_cache(maxsize=1)
def get_text_completion_settings() -> TextCompletionSettings:
    """
    Return text-completion settings from environment variables.
    """

    return TextCompletionSettings(
        adapter=_get_str_env("TEXT_COMPLETION_ADAPTER", "openai").lower(),
        model=_get_str_env("TEXT_COMPLETION_MODEL", "gpt-4o-mini"),
        api_key=_get_optional_str_env("TEXT_COMPLETION_API_KEY") or _get_optional_str_env("OPENAI_API_KEY"),
        request_delay_seconds=max(0.0, _get_float_env("TEXT_COMPLETION_DELAY_SECONDS", 1.0)),
        min_words=max(1, _get_int_env("DESCRIPTION_MIN_WORDS", 150)),
        max_words=max(1, _get_int_env("DESCRIPTION_MAX_WORDS", 250)),
        max_retries=max(0, _get_int_env("TEXT_COMPLETION_MAX_RETRIES", 1)),
    )


@lru_cache(maxsize=1)
def get_auth_settings() -> AuthSettings:
    """
    Return API token settings from environment variables.
    """

    return AuthSettings(
        import_api_token=_get_optional_str_env("IMPORT_API_TOKEN"),
        crawler_admin_token=_get_optional_str_env("CRAWLER_ADMIN_TOKEN"),
    )


@lru_cache(maxsize=1)
def get_observer_settings() -> ObserverSettings:
    """
    Return client-side progress observer settings.
    """

    return ObserverSettings(
        poll_interval_seconds=max(0.5, _get_float_env("OBSERVER_POLL_INTERVAL_SECONDS", 3.0)),
        stream_refresh_interval_seconds=max(0.0, _get_float_env("OBSERVER_STREAM_REFRESH_SECONDS", 2.0)),
        poll_refresh_interval_seconds=max(0.0, _get_float_env("OBSERVER_POLL_REFRESH_SECONDS", 3.0)),
        request_timeout_seconds=max(1.0, _get_float_env("OBSERVER_REQUEST_TIMEOUT_SECONDS", 30.0)),
    )

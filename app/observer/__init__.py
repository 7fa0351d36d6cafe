"""
Client-side observation of bulk import jobs (stream with polling fallback).
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from app.observer.client import ImportApiClient, ImportApiError
from app.observer.observer import (
    ImportProgressObserver,
    ObserverState,
    ProgressListener,
    ProgressSnapshot,
)
from app.observer.refresher import ThrottledRefresher
from app.observer.sources import (
    PollingProgressSource,
    ProgressSource,
    StreamClosedError,
    StreamProgressSource,
    job_snapshot_to_frame,
)


def run_observed_import(
    client: ImportApiClient,
    payload: dict[str, Any],
    listener: ProgressListener,
    *,
    refresh: Callable[[], None] | None = None,
) -> ImportProgressObserver:
    """
    Start a streamed import and observe it until the stream ends or breaks.
    If it broke after the job started, polling continues in the background;
    use `wait_until_resolved` on the returned observer.
    """

    observer = ImportProgressObserver(listener=listener, fetch_job=client.get_job, refresh=refresh)
    try:
        lines = client.stream_import(payload)
    except Exception as exc:  # noqa: BLE001
        observer.handle_transport_failure(exc)
        return observer
    observer.consume_stream(lines)
    return observer


__all__ = [
    "ImportApiClient",
    "ImportApiError",
    "ImportProgressObserver",
    "ObserverState",
    "PollingProgressSource",
    "ProgressListener",
    "ProgressSnapshot",
    "ProgressSource",
    "StreamClosedError",
    "StreamProgressSource",
    "ThrottledRefresher",
    "job_snapshot_to_frame",
    "run_observed_import",
]

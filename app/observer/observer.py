"""
Client-side import progress state machine.

STARTING -> STREAMING -> {COMPLETE, DISCONNECTED}
DISCONNECTED -> POLLING -> COMPLETE

A transport failure before the job id is known is a pre-start abort and ends
in FAILED; after that the persisted job is polled until it is terminal.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from app.config import ObserverSettings, get_observer_settings
from app.observer.refresher import ThrottledRefresher
from app.observer.sources import PollingProgressSource, StreamProgressSource

logger = logging.getLogger(__name__)


class ObserverState(str, Enum):
    STARTING = "starting"
    STREAMING = "streaming"
    DISCONNECTED = "disconnected"
    POLLING = "polling"
    COMPLETE = "complete"
    FAILED = "failed"


RESOLVED_STATES = frozenset({ObserverState.COMPLETE, ObserverState.FAILED})


@dataclass(frozen=True)
class ProgressSnapshot:
    job_id: str | None
    current: int
    total: int
    imported: int
    failed: int
    current_game: str | None = None
    phase: str | None = None


class ProgressListener(Protocol):
    def on_start(self, job_id: str, total: int) -> None:
        ...

    def on_progress(self, snapshot: ProgressSnapshot) -> None:
        ...

    def on_complete(self, result: dict[str, Any]) -> None:
        ...

    def on_error(self, error: BaseException) -> None:
        ...


class ImportProgressObserver:
    """
    Feeds frames from whichever source is active into one listener.

    Counters are replaced with each frame's values, never accumulated, and a
    progress frame older than the held one is dropped. Frames arriving after
    the complete frame are ignored.
    """

    def __init__(
        self,
        *,
        listener: ProgressListener,
        fetch_job: Callable[[str], dict[str, Any]],
        settings: ObserverSettings | None = None,
        refresh: Callable[[], None] | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._listener = listener
        self._fetch_job = fetch_job
        self._settings = settings or get_observer_settings()
        self._lock = threading.RLock()
        self._resolved = threading.Event()
        self._state = ObserverState.STARTING
        self._job_id: str | None = None
        self._snapshot: ProgressSnapshot | None = None
        self._result: dict[str, Any] | None = None
        self._poller: PollingProgressSource | None = None

        refresher_kwargs: dict[str, Any] = {"min_interval_seconds": self._settings.stream_refresh_interval_seconds}
        if clock is not None:
            refresher_kwargs["clock"] = clock
        self._refresher = ThrottledRefresher(refresh, **refresher_kwargs) if refresh is not None else None

    # ------------------------------------------------------------------
    # Read-only view
    # ------------------------------------------------------------------

    @property
    def state(self) -> ObserverState:
        return self._state

    @property
    def job_id(self) -> str | None:
        return self._job_id

    @property
    def snapshot(self) -> ProgressSnapshot | None:
        return self._snapshot

    @property
    def result(self) -> dict[str, Any] | None:
        return self._result

    @property
    def is_resolved(self) -> bool:
        return self._state in RESOLVED_STATES

    # ------------------------------------------------------------------
    # Driving
    # ------------------------------------------------------------------

    def consume_stream(self, lines: Iterable[str | bytes]) -> None:
        """
        Consume a streamed response, falling back to polling on failure.
        Blocks until the stream ends or breaks.
        """

        try:
            StreamProgressSource(lines).run(self.handle_frame)
        except Exception as exc:  # noqa: BLE001
            self.handle_transport_failure(exc)

    def attach(self, job_id: str) -> None:
        """
        Observe an already-started job by polling (e.g. after a restart).
        """

        with self._lock:
            self._job_id = job_id
        self._start_polling()

    def handle_frame(self, frame: dict[str, Any]) -> None:
        frame_type = frame.get("type")
        with self._lock:
            if self.is_resolved:
                return
            if frame_type == "start":
                self._handle_start(frame)
            elif frame_type == "progress":
                self._handle_progress(frame)
            elif frame_type == "complete":
                self._handle_complete(frame)
            else:
                logger.debug("Ignoring frame with unknown type=%s", frame_type)

    def handle_transport_failure(self, error: BaseException) -> None:
        with self._lock:
            if self.is_resolved:
                return
            if self._job_id is None:
                logger.warning("Import stream failed before a job was started error=%s", error)
                self._state = ObserverState.FAILED
                self._resolved.set()
                self._listener.on_error(error)
                return
            logger.info("Import stream lost job_id=%s error=%s; switching to polling", self._job_id, error)
            self._state = ObserverState.DISCONNECTED
        self._start_polling()

    def on_visibility_change(self, visible: bool) -> None:
        """
        When the consumer comes back to the foreground: check the job once
        right away, then make sure periodic polling is running.
        """

        if not visible:
            return
        with self._lock:
            if self.is_resolved or self._job_id is None:
                return
            poller = self._ensure_poller()
        if poller.poll_once(self.handle_frame):
            return
        self._start_polling()

    def wait_until_resolved(self, timeout: float | None = None) -> bool:
        return self._resolved.wait(timeout)

    def close(self) -> None:
        with self._lock:
            poller = self._poller
        if poller is not None:
            poller.stop()

    # ------------------------------------------------------------------
    # Frame handling (lock held)
    # ------------------------------------------------------------------

    def _handle_start(self, frame: dict[str, Any]) -> None:
        job_id = frame.get("jobId")
        if not job_id or self._job_id is not None:
            return
        self._job_id = str(job_id)
        total = int(frame.get("total") or 0)
        if self._state is ObserverState.STARTING:
            self._state = ObserverState.STREAMING
        self._snapshot = ProgressSnapshot(job_id=self._job_id, current=0, total=total, imported=0, failed=0)
        self._listener.on_start(self._job_id, total)

    def _handle_progress(self, frame: dict[str, Any]) -> None:
        current = int(frame.get("current") or 0)
        if self._snapshot is not None and current < self._snapshot.current:
            return
        snapshot = ProgressSnapshot(
            job_id=self._job_id,
            current=current,
            total=int(frame.get("total") or 0),
            imported=int(frame.get("imported") or 0),
            failed=int(frame.get("failed") or 0),
            current_game=frame.get("currentGame"),
            phase=frame.get("phase"),
        )
        self._snapshot = snapshot
        self._listener.on_progress(snapshot)
        if self._refresher is not None:
            self._refresher.observe(snapshot.imported)

    def _handle_complete(self, frame: dict[str, Any]) -> None:
        result = {key: value for key, value in frame.items() if key != "type"}
        self._result = result
        self._state = ObserverState.COMPLETE
        if self._poller is not None:
            self._poller.stop()
        self._listener.on_complete(result)
        if self._refresher is not None:
            self._refresher.flush()
        self._resolved.set()

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    def _ensure_poller(self) -> PollingProgressSource:
        if self._poller is None:
            self._poller = PollingProgressSource(
                job_id=self._job_id,
                fetch_job=self._fetch_job,
                interval_seconds=self._settings.poll_interval_seconds,
            )
        return self._poller

    def _start_polling(self) -> None:
        with self._lock:
            if self.is_resolved or self._job_id is None:
                return
            poller = self._ensure_poller()
            self._state = ObserverState.POLLING
            if self._refresher is not None:
                self._refresher.min_interval_seconds = self._settings.poll_refresh_interval_seconds
        poller.start(self.handle_frame)

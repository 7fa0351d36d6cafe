"""
In-process fan-out of import progress frames to streaming responses.

The worker publishes and never blocks: a frame for a job with no open channel
(or whose subscriber went away) is dropped. The persisted job row stays the
source of truth for anyone who reconnects.
"""

from __future__ import annotations

import logging
import queue
import threading
import uuid
from collections.abc import Iterator
from functools import lru_cache
from typing import Any

logger = logging.getLogger(__name__)

COMPLETE_FRAME_TYPE = "complete"


class ProgressChannel:
    """
    Frame queue for one streaming subscriber of one job.
    """

    def __init__(self, job_id: uuid.UUID) -> None:
        self.job_id = job_id
        self._queue: queue.Queue[dict[str, Any]] = queue.Queue()
        self._detached = threading.Event()

    @property
    def detached(self) -> bool:
        return self._detached.is_set()

    def put(self, frame: dict[str, Any]) -> None:
        if not self._detached.is_set():
            self._queue.put_nowait(frame)

    def detach(self) -> None:
        self._detached.set()

    def frames(self, *, keepalive_seconds: float) -> Iterator[dict[str, Any] | None]:
        """
        Yield frames until the complete frame. Yields None after
        `keepalive_seconds` of silence so the caller can keep the
        connection open.
        """

        while not self._detached.is_set():
            try:
                frame = self._queue.get(timeout=keepalive_seconds)
            except queue.Empty:
                yield None
                continue
            yield frame
            if frame.get("type") == COMPLETE_FRAME_TYPE:
                return


class ProgressBroker:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._channels: dict[uuid.UUID, ProgressChannel] = {}

    def open(self, job_id: uuid.UUID) -> ProgressChannel:
        channel = ProgressChannel(job_id)
        with self._lock:
            self._channels[job_id] = channel
        return channel

    def publish(self, job_id: uuid.UUID, frame: dict[str, Any]) -> None:
        with self._lock:
            channel = self._channels.get(job_id)
            if channel is not None and (channel.detached or frame.get("type") == COMPLETE_FRAME_TYPE):
                self._channels.pop(job_id, None)
        if channel is None or channel.detached:
            return
        channel.put(frame)

    def close(self, job_id: uuid.UUID) -> None:
        with self._lock:
            channel = self._channels.pop(job_id, None)
        if channel is not None:
            channel.detach()
            logger.debug("Closed progress channel job_id=%s", job_id)

    def has_subscriber(self, job_id: uuid.UUID) -> bool:
        with self._lock:
            channel = self._channels.get(job_id)
        return channel is not None and not channel.detached


@lru_cache(maxsize=1)
def get_progress_broker() -> ProgressBroker:
    return ProgressBroker()

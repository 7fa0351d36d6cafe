"""
Progress sources: where observers get their frames from.

Both sources hand plain frame dicts (`start`, `progress`, `complete`) to the
same sink, so consumers never care which transport produced them.
"""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Callable, Iterable
from typing import Any, Protocol

logger = logging.getLogger(__name__)

FrameSink = Callable[[dict[str, Any]], None]

TERMINAL_JOB_STATUSES = frozenset({"completed", "failed"})


class StreamClosedError(ConnectionError):
    """Raised when a stream ends before its complete frame."""


class ProgressSource(Protocol):
    def run(self, sink: FrameSink) -> None:
        ...


def job_snapshot_to_frame(snapshot: dict[str, Any]) -> dict[str, Any]:
    """
    Build the frame a stream would have sent for a persisted job snapshot.
    """

    status = snapshot.get("status")
    total = int(snapshot.get("total_items") or 0)
    processed = int(snapshot.get("processed_items") or 0)
    imported = int(snapshot.get("successful_items") or 0)
    failed = int(snapshot.get("failed_items") or 0)

    if status in TERMINAL_JOB_STATUSES:
        result = snapshot.get("result")
        if isinstance(result, dict) and result:
            return {"type": "complete", **result}
        error_message = snapshot.get("error_message")
        return {
            "type": "complete",
            "success": status == "completed",
            "imported": imported,
            "failed": failed,
            "failureBreakdown": {},
            "errors": [error_message] if error_message else [],
            "errorsOverflow": 0,
            "notFound": [],
            "notFoundOverflow": 0,
        }

    return {
        "type": "progress",
        "current": processed,
        "total": total,
        "imported": imported,
        "failed": failed,
        "currentGame": snapshot.get("current_item") or f"Processing... ({processed}/{total})",
        "phase": snapshot.get("phase") or "importing",
    }


class StreamProgressSource:
    """
    Push source over server-sent event lines.

    Only `data:` lines are read; comment lines (keepalives) and unknown
    fields are ignored. A blank line ends one event.
    """

    def __init__(self, lines: Iterable[str | bytes]) -> None:
        self._lines = lines

    def run(self, sink: FrameSink) -> None:
        """
        Raises:
            StreamClosedError: if the stream ends without a complete frame.
            Whatever the underlying line iterator raises on transport failure.
        """

        data_lines: list[str] = []
        for raw in self._lines:
            line = raw.decode("utf-8") if isinstance(raw, bytes) else raw
            line = line.rstrip("\r")
            if line == "":
                if data_lines and self._dispatch("\n".join(data_lines), sink):
                    return
                data_lines = []
                continue
            if line.startswith(":"):
                continue
            if line.startswith("data:"):
                data_lines.append(line[5:].lstrip(" "))

        if data_lines and self._dispatch("\n".join(data_lines), sink):
            return
        raise StreamClosedError("Progress stream ended before completion.")

    @staticmethod
    def _dispatch(payload: str, sink: FrameSink) -> bool:
        try:
            frame = json.loads(payload)
        except ValueError:
            logger.warning("Ignoring malformed progress frame payload=%s", payload[:200])
            return False
        if not isinstance(frame, dict):
            return False
        sink(frame)
        return frame.get("type") == "complete"


class PollingProgressSource:
    """
    Pull source: reads the persisted job at a fixed interval on a daemon
    thread until it reaches a terminal status.

    Poll errors are logged and the next tick retries.
    """

    def __init__(
        self,
        *,
        job_id: str,
        fetch_job: Callable[[str], dict[str, Any]],
        interval_seconds: float = 3.0,
    ) -> None:
        self.job_id = job_id
        self._fetch_job = fetch_job
        self._interval_seconds = interval_seconds
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def is_active(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and not self._stop.is_set()

    def poll_once(self, sink: FrameSink) -> bool:
        """
        Read the job once and forward its frame. Returns True once terminal.
        """

        try:
            snapshot = self._fetch_job(self.job_id)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Job status poll failed job_id=%s error=%s", self.job_id, exc)
            return False
        frame = job_snapshot_to_frame(snapshot)
        sink(frame)
        return frame["type"] == "complete"

    def run(self, sink: FrameSink) -> None:
        while not self._stop.is_set():
            if self.poll_once(sink):
                self._stop.set()
                return
            self._stop.wait(self._interval_seconds)

    def start(self, sink: FrameSink) -> None:
        if self.is_active:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self.run,
            args=(sink,),
            name=f"import-poll-{self.job_id}",
            daemon=True,
        )
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()

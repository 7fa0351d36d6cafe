"""
HTTP transport used by progress observers.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import Any

import requests

logger = logging.getLogger(__name__)


class ImportApiError(RuntimeError):
    """
    Raised when the import API rejects a request before a job exists.
    """

    def __init__(self, message: str, *, status_code: int | None = None, payload: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


class ImportApiClient:
    """
    Thin requests-based client for the bulk import endpoints.
    """

    def __init__(
        self,
        *,
        base_url: str,
        token: str | None = None,
        timeout_seconds: float = 30.0,
        session: requests.Session | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._timeout_seconds = timeout_seconds
        self._session = session or requests.Session()

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def stream_import(self, payload: dict[str, Any]) -> Iterator[str]:
        """
        Start a streamed import and yield the response body line by line.

        Raises:
            ImportApiError: if the server rejects the request (no job started).
            requests.RequestException: on transport failure, also mid-stream.
        """

        headers = self._headers()
        headers["Accept"] = "text/event-stream"
        response = self._session.post(
            f"{self._base_url}/imports/stream",
            json=payload,
            headers=headers,
            stream=True,
            timeout=self._timeout_seconds,
        )
        with response:
            if response.status_code >= 400:
                raise ImportApiError(
                    f"Import request rejected with HTTP {response.status_code}",
                    status_code=response.status_code,
                    payload=_safe_json(response),
                )
            for line in response.iter_lines(decode_unicode=True):
                yield line if line is not None else ""

    def get_job(self, job_id: str) -> dict[str, Any]:
        response = self._session.get(
            f"{self._base_url}/imports/{job_id}",
            headers=self._headers(),
            timeout=self._timeout_seconds,
        )
        response.raise_for_status()
        return response.json()


def _safe_json(response: requests.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text[:500]

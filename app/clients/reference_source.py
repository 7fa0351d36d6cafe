"""
app/clients/reference_source.py

HTTP client for the external board game reference API (XML).
"""

from __future__ import annotations

import html
import logging
import time
import xml.etree.ElementTree as ET
from collections.abc import Callable, Iterable
from typing import Any

import requests

from app.config import ReferenceSourceSettings
from app.domain.catalog import ReferenceItem

logger = logging.getLogger(__name__)

SUPPORTED_ITEM_TYPES = frozenset({"boardgame", "boardgameexpansion"})
MAX_DESCRIPTION_LENGTH = 5000

_CONTRIBUTOR_LINK_TYPES = {
    "boardgamepublisher": "publishers",
    "boardgamedesigner": "designers",
    "boardgameartist": "artists",
}


class ReferenceSourceError(RuntimeError):
    """
    Raised when the reference API cannot be read after retries.
    """

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ReferenceRateLimitError(ReferenceSourceError):
    """
    Raised when every attempt was answered with HTTP 429.
    """


class BoardGameReferenceClient:
    """
    Reads game entries by id and resolves titles to ids.

    Retry policy per request:
    - 429: retry with delay `attempt * rate_limit_backoff_seconds`;
    - 202 (response still being prepared): fixed delay, then the same request;
    - transport errors (timeouts, dropped connections, broken bodies):
      fixed delay, then retry;
    - any other non-2xx: fail immediately.
    All retries share one `max_attempts` budget.
    """

    def __init__(
        self,
        *,
        settings: ReferenceSourceSettings,
        session: requests.Session | None = None,
        min_request_interval_seconds: float = 0.0,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._settings = settings
        self._session = session or requests.Session()
        self._min_request_interval_seconds = max(0.0, min_request_interval_seconds)
        self._sleep = sleep
        self._clock = clock
        self._last_request_monotonic: float | None = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def fetch_things(
        self,
        external_ids: Iterable[int | str],
        *,
        excluded_categories: Iterable[str] = (),
    ) -> list[ReferenceItem]:
        """
        Fetch several entries in one request.

        Ids the source does not know are simply absent from the result.
        """

        ids = [str(external_id) for external_id in external_ids]
        if not ids:
            return []
        response = self._request(
            f"{self._settings.base_url}/thing",
            params={"id": ",".join(ids), "type": "boardgame,boardgameexpansion", "stats": "1"},
        )
        return parse_things_xml(
            response.text,
            site_url=self._settings.site_url,
            excluded_categories=excluded_categories,
        )

    def fetch_thing(self, external_id: int | str) -> ReferenceItem | None:
        items = self.fetch_things([external_id])
        return items[0] if items else None

    def search_exact(self, title: str) -> int | None:
        """
        Return the id of the first exact title match, if any.
        """

        response = self._request(
            f"{self._settings.base_url}/search",
            params={"query": title, "type": "boardgame", "exact": "1"},
        )
        try:
            root = ET.fromstring(response.text)
        except ET.ParseError as exc:
            logger.error("Failed to parse reference search response title=%s error=%s", title, exc)
            return None
        for item in root.findall("item"):
            item_id = _to_int(item.get("id"))
            if item_id:
                return item_id
        return None

    # ------------------------------------------------------------------
    # HTTP mechanics
    # ------------------------------------------------------------------

    def _headers(self) -> dict[str, str]:
        headers = {"User-Agent": self._settings.user_agent}
        if self._settings.api_token:
            headers["Authorization"] = f"Bearer {self._settings.api_token}"
        return headers

    def _request(self, url: str, *, params: dict[str, Any]) -> requests.Response:
        max_attempts = self._settings.max_attempts
        last_error: str | None = None
        last_status: int | None = None

        for attempt in range(1, max_attempts + 1):
            self._apply_rate_limit()
            try:
                response = self._session.get(
                    url,
                    params=params,
                    headers=self._headers(),
                    timeout=self._settings.timeout_seconds,
                )
            except requests.RequestException as exc:
                last_error = str(exc)
                last_status = None
                wait_seconds = self._settings.error_retry_delay_seconds
            else:
                status_code = response.status_code
                if status_code == 429:
                    last_error = "HTTP 429 rate limited"
                    last_status = status_code
                    wait_seconds = attempt * self._settings.rate_limit_backoff_seconds
                elif status_code == 202:
                    last_error = "HTTP 202 response still processing"
                    last_status = status_code
                    wait_seconds = self._settings.processing_delay_seconds
                elif 200 <= status_code < 300:
                    return response
                else:
                    logger.error(
                        "Reference request failed status=%s url=%s params=%s",
                        status_code,
                        url,
                        params,
                    )
                    raise ReferenceSourceError(f"HTTP {status_code}", status_code=status_code)

            if attempt >= max_attempts:
                break

            logger.warning(
                "Reference request retry attempt=%s/%s wait_seconds=%.2f url=%s reason=%s",
                attempt,
                max_attempts,
                wait_seconds,
                url,
                last_error,
            )
            self._sleep(wait_seconds)

        logger.error("Reference request exhausted retries url=%s error=%s", url, last_error)
        if last_status == 429:
            raise ReferenceRateLimitError(
                f"Rate limited after {max_attempts} attempts",
                status_code=last_status,
            )
        raise ReferenceSourceError(
            f"Request failed after {max_attempts} attempts: {last_error}",
            status_code=last_status,
        )

    def _apply_rate_limit(self) -> None:
        """
        Enforce the minimum interval between outbound requests.
        """

        if self._min_request_interval_seconds <= 0:
            return
        now = self._clock()
        if self._last_request_monotonic is not None:
            remaining = self._min_request_interval_seconds - (now - self._last_request_monotonic)
            if remaining > 0:
                self._sleep(remaining)
        self._last_request_monotonic = self._clock()


# ----------------------------------------------------------------------
# XML parsing
# ----------------------------------------------------------------------


def _to_int(value: str | None) -> int | None:
    if value is None or not value.strip():
        return None
    try:
        return int(float(value))
    except ValueError:
        return None


def _to_float(value: str | None) -> float | None:
    if value is None or not value.strip():
        return None
    try:
        return float(value)
    except ValueError:
        return None


def _value(item: ET.Element, path: str) -> str | None:
    node = item.find(path)
    return node.get("value") if node is not None else None


def _text(item: ET.Element, path: str) -> str | None:
    node = item.find(path)
    if node is None or node.text is None:
        return None
    text = node.text.strip()
    return text or None


def _primary_name(item: ET.Element) -> str | None:
    names = item.findall("name")
    for name in names:
        if name.get("type") == "primary":
            return name.get("value")
    return names[0].get("value") if names else None


def parse_things_xml(
    xml_text: str,
    *,
    site_url: str = "https://boardgamegeek.com",
    excluded_categories: Iterable[str] = (),
) -> list[ReferenceItem]:
    """
    Parse a multi-id `thing` response into reference items.

    Entries of unsupported types, entries without a name, and entries tagged
    with an excluded category are dropped.
    """

    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as exc:
        logger.error("Failed to parse reference thing response: %s", exc)
        raise ReferenceSourceError(f"Malformed XML response: {exc}") from exc

    excluded = {category.lower() for category in excluded_categories}
    items: list[ReferenceItem] = []
    for item in root.findall("item"):
        item_type = item.get("type") or ""
        external_id = _to_int(item.get("id"))
        title = _primary_name(item)
        if item_type not in SUPPORTED_ITEM_TYPES or not external_id or not title:
            continue

        links: dict[str, list[str]] = {
            "mechanics": [],
            "categories": [],
            "publishers": [],
            "designers": [],
            "artists": [],
        }
        for link in item.findall("link"):
            value = (link.get("value") or "").strip()
            if not value:
                continue
            link_type = link.get("type")
            if link_type == "boardgamemechanic":
                links["mechanics"].append(value)
            elif link_type == "boardgamecategory":
                links["categories"].append(value)
            elif link_type in _CONTRIBUTOR_LINK_TYPES:
                links[_CONTRIBUTOR_LINK_TYPES[link_type]].append(value)

        if excluded and any(category.lower() in excluded for category in links["categories"]):
            continue

        description = _text(item, "description")
        if description:
            description = html.unescape(description)[:MAX_DESCRIPTION_LENGTH]

        min_age = _to_int(_value(item, "minage"))
        rating = _to_float(_value(item, "statistics/ratings/average"))
        weight = _to_float(_value(item, "statistics/ratings/averageweight"))

        items.append(
            ReferenceItem(
                external_id=external_id,
                item_type=item_type,
                title=html.unescape(title.strip()),
                description=description,
                image_url=_text(item, "image") or _text(item, "thumbnail"),
                min_players=_to_int(_value(item, "minplayers")) or None,
                max_players=_to_int(_value(item, "maxplayers")) or None,
                playing_time=_to_int(_value(item, "playingtime")) or None,
                suggested_age=f"{min_age}+" if min_age else None,
                year_published=_to_int(_value(item, "yearpublished")) or None,
                rating=round(rating, 1) if rating else None,
                weight=round(weight, 2) if weight else None,
                external_url=f"{site_url}/boardgame/{external_id}",
                mechanics=tuple(links["mechanics"]),
                categories=tuple(links["categories"]),
                publishers=tuple(links["publishers"]),
                designers=tuple(links["designers"]),
                artists=tuple(links["artists"]),
            )
        )
    return items

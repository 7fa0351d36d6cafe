"""
Reference-site link lists ("https://.../boardgame/13/catan") as import input.
"""

from __future__ import annotations

import re

_THING_ID_RE = re.compile(r"boardgame(?:expansion)?/(\d+)")


def extract_reference_ids(links: list[str]) -> tuple[list[str], list[str]]:
    """
    Return (ids in first-seen order, links without an id).
    """

    ids: list[str] = []
    invalid: list[str] = []
    for link in links:
        match = _THING_ID_RE.search(link or "")
        if match is None:
            invalid.append(link)
            continue
        if match.group(1) not in ids:
            ids.append(match.group(1))
    return ids, invalid


def reference_links_to_csv(links: list[str]) -> tuple[str, list[str]]:
    ids, invalid = extract_reference_ids(links)
    return "\n".join(["bgg_id", *ids]), invalid

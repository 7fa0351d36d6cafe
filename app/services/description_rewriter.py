"""
Rewrite imported game descriptions into a fixed markdown template.

Calls are made one game at a time with a fixed delay between them. A
rate-limit answer from the completion service stops the batch; descriptions
already applied stay applied.
"""

from __future__ import annotations

import logging
import re
import time
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from app.clients.text_completion import (
    BaseTextCompletionAdapter,
    TextCompletionError,
    TextCompletionRateLimited,
)
from app.config import TextCompletionSettings

logger = logging.getLogger(__name__)

REQUIRED_HEADING = "Quick Gameplay Overview"
REQUIRED_BULLETS = ("Goal", "On Your Turn", "End Game", "Winner")

_FENCE_RE = re.compile(r"^```(?:markdown|md)?\s*|\s*```$", re.IGNORECASE)

PROMPT_TEMPLATE = """Rewrite the description of the board game "{title}" using exactly this markdown structure:

<one overview paragraph, 2-4 sentences, what the game is and why it is fun>

## Quick Gameplay Overview

- **Goal:** <how players win>
- **On Your Turn:** <what a player does on a turn>
- **End Game:** <when and how the game ends>
- **Winner:** <how the winner is determined>

Rules:
- Between {min_words} and {max_words} words in total.
- No headings other than the one shown, no closing remarks.
- Use only facts from the source text; do not invent components or rules.

Source text:
{source}
"""


class DescriptionValidationError(ValueError):
    """Raised when a completion does not match the template or length bound."""


@dataclass(frozen=True)
class DescriptionTarget:
    game_id: uuid.UUID
    title: str
    description: str | None = None


@dataclass
class RewriteSummary:
    attempted: int = 0
    rewritten: int = 0
    failed: int = 0
    skipped: int = 0
    rate_limited: bool = False
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "attempted": self.attempted,
            "rewritten": self.rewritten,
            "failed": self.failed,
            "skipped": self.skipped,
            "rate_limited": self.rate_limited,
            "errors": list(self.errors),
        }


def count_words(text: str) -> int:
    return len(re.findall(r"[A-Za-z0-9]+(?:['’-][A-Za-z0-9]+)*", text))


def validate_description(text: str, *, min_words: int, max_words: int) -> str:
    """
    Strip code fences and check heading, bullets and word count.

    Raises:
        DescriptionValidationError: if any check fails.
    """

    cleaned = _FENCE_RE.sub("", text.strip()).strip()
    if not cleaned:
        raise DescriptionValidationError("Completion was empty.")
    if REQUIRED_HEADING.lower() not in cleaned.lower():
        raise DescriptionValidationError(f"Missing '{REQUIRED_HEADING}' section.")
    missing = [bullet for bullet in REQUIRED_BULLETS if f"**{bullet}:**".lower() not in cleaned.lower()]
    if missing:
        raise DescriptionValidationError(f"Missing bullets: {', '.join(missing)}.")
    words = count_words(cleaned)
    if words < min_words or words > max_words:
        raise DescriptionValidationError(f"Word count {words} outside {min_words}-{max_words}.")
    return cleaned


class DescriptionRewriter:
    def __init__(
        self,
        *,
        adapter: BaseTextCompletionAdapter,
        settings: TextCompletionSettings | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._adapter = adapter
        self._settings = settings or TextCompletionSettings()
        self._sleep = sleep

    def build_prompt(self, target: DescriptionTarget) -> str:
        return PROMPT_TEMPLATE.format(
            title=target.title,
            min_words=self._settings.min_words,
            max_words=self._settings.max_words,
            source=(target.description or "(no existing description)")[:4000],
        )

    def rewrite(
        self,
        targets: Sequence[DescriptionTarget],
        *,
        apply: Callable[[DescriptionTarget, str], None],
    ) -> RewriteSummary:
        """
        Rewrite each target and hand the result to `apply` immediately.
        """

        summary = RewriteSummary()
        for index, target in enumerate(targets):
            if index > 0 and self._settings.request_delay_seconds > 0:
                self._sleep(self._settings.request_delay_seconds)

            summary.attempted += 1
            try:
                text = self._generate_with_retry(self.build_prompt(target))
            except TextCompletionRateLimited as exc:
                summary.attempted -= 1
                summary.rate_limited = True
                summary.skipped = len(targets) - index
                logger.warning(
                    "Description rewrite rate limited; stopping early remaining=%s error=%s",
                    summary.skipped,
                    exc,
                )
                break
            except (TextCompletionError, DescriptionValidationError) as exc:
                summary.failed += 1
                summary.errors.append(f"{target.title}: {exc}")
                continue

            apply(target, text)
            summary.rewritten += 1

        logger.info(
            "Description rewrite finished rewritten=%s failed=%s skipped=%s rate_limited=%s",
            summary.rewritten,
            summary.failed,
            summary.skipped,
            summary.rate_limited,
        )
        return summary

    def _generate_with_retry(self, prompt: str) -> str:
        total_attempts = 1 + self._settings.max_retries
        last_error: DescriptionValidationError | None = None
        for attempt in range(1, total_attempts + 1):
            raw = self._adapter.complete(prompt)
            try:
                return validate_description(
                    raw,
                    min_words=self._settings.min_words,
                    max_words=self._settings.max_words,
                )
            except DescriptionValidationError as exc:
                last_error = exc
                logger.warning(
                    "Description failed validation attempt=%d/%d error=%s",
                    attempt,
                    total_attempts,
                    exc,
                )
        raise DescriptionValidationError(f"No valid description after {total_attempts} attempt(s): {last_error}")

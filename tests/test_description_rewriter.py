from __future__ import annotations

import unittest
import uuid

from app.clients.text_completion import (
    BaseTextCompletionAdapter,
    MockTextCompletionAdapter,
    TextCompletionError,
    TextCompletionRateLimited,
    build_text_completion_adapter,
)
from app.config import TextCompletionSettings
from app.services.description_rewriter import (
    DescriptionRewriter,
    DescriptionTarget,
    DescriptionValidationError,
    count_words,
    validate_description,
)

VALID_TEXT = MockTextCompletionAdapter("Azul").complete("")


class ScriptedAdapter(BaseTextCompletionAdapter):
    """Replays a fixed list of outcomes: strings are returned, exceptions raised."""

    def __init__(self, outcomes: list) -> None:
        self._outcomes = list(outcomes)
        self.prompts: list[str] = []

    def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        outcome = self._outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _targets(count: int) -> list[DescriptionTarget]:
    return [DescriptionTarget(game_id=uuid.uuid4(), title=f"Game {index}") for index in range(count)]


class TestValidateDescription(unittest.TestCase):
    def test_mock_output_is_valid(self) -> None:
        self.assertEqual(validate_description(VALID_TEXT, min_words=150, max_words=250), VALID_TEXT)

    def test_code_fences_are_stripped(self) -> None:
        fenced = f"```markdown\n{VALID_TEXT}\n```"
        self.assertEqual(validate_description(fenced, min_words=150, max_words=250), VALID_TEXT)

    def test_missing_heading(self) -> None:
        with self.assertRaises(DescriptionValidationError):
            validate_description(VALID_TEXT.replace("Quick Gameplay Overview", "Rules"), min_words=1, max_words=999)

    def test_missing_bullet(self) -> None:
        with self.assertRaises(DescriptionValidationError):
            validate_description(VALID_TEXT.replace("**Winner:**", "Winner"), min_words=1, max_words=999)

    def test_word_bounds(self) -> None:
        with self.assertRaises(DescriptionValidationError):
            validate_description(VALID_TEXT, min_words=150, max_words=160)

    def test_count_words(self) -> None:
        self.assertEqual(count_words("It's a well-known **Goal:** win!"), 5)


class TestDescriptionRewriter(unittest.TestCase):
    def setUp(self) -> None:
        self.sleeps: list[float] = []
        self.applied: list[tuple[str, str]] = []
        self.settings = TextCompletionSettings(request_delay_seconds=1.5, max_retries=1)

    def _apply(self, target: DescriptionTarget, text: str) -> None:
        self.applied.append((target.title, text))

    def _rewriter(self, adapter: BaseTextCompletionAdapter) -> DescriptionRewriter:
        return DescriptionRewriter(adapter=adapter, settings=self.settings, sleep=self.sleeps.append)

    def test_rewrites_each_target_with_delay(self) -> None:
        summary = self._rewriter(ScriptedAdapter([VALID_TEXT] * 3)).rewrite(_targets(3), apply=self._apply)

        self.assertEqual(summary.rewritten, 3)
        self.assertEqual(len(self.applied), 3)
        self.assertEqual(self.sleeps, [1.5, 1.5])

    def test_rate_limit_stops_early_and_keeps_applied(self) -> None:
        adapter = ScriptedAdapter([VALID_TEXT, TextCompletionRateLimited("429"), VALID_TEXT])
        summary = self._rewriter(adapter).rewrite(_targets(4), apply=self._apply)

        self.assertTrue(summary.rate_limited)
        self.assertEqual(summary.rewritten, 1)
        self.assertEqual(summary.attempted, 1)
        self.assertEqual(summary.skipped, 3)
        self.assertEqual([title for title, _ in self.applied], ["Game 0"])
        self.assertEqual(len(adapter.prompts), 2)

    def test_invalid_output_is_retried_then_failed(self) -> None:
        adapter = ScriptedAdapter(["too short", "still short", VALID_TEXT])
        summary = self._rewriter(adapter).rewrite(_targets(2), apply=self._apply)

        self.assertEqual(summary.failed, 1)
        self.assertEqual(summary.rewritten, 1)
        self.assertIn("Game 0", summary.errors[0])
        self.assertEqual([title for title, _ in self.applied], ["Game 1"])

    def test_service_error_fails_one_item(self) -> None:
        adapter = ScriptedAdapter([TextCompletionError("timeout"), VALID_TEXT])
        summary = self._rewriter(adapter).rewrite(_targets(2), apply=self._apply)
        self.assertEqual((summary.failed, summary.rewritten, summary.rate_limited), (1, 1, False))

    def test_prompt_carries_title_bounds_and_source(self) -> None:
        rewriter = self._rewriter(ScriptedAdapter([]))
        prompt = rewriter.build_prompt(
            DescriptionTarget(game_id=uuid.uuid4(), title="Azul", description="Tile drafting.")
        )
        self.assertIn('"Azul"', prompt)
        self.assertIn("Between 150 and 250 words", prompt)
        self.assertIn("Tile drafting.", prompt)


class TestAdapterFactory(unittest.TestCase):
    def test_mock(self) -> None:
        adapter = build_text_completion_adapter(TextCompletionSettings(adapter="mock"))
        self.assertIsInstance(adapter, MockTextCompletionAdapter)

    def test_unknown(self) -> None:
        with self.assertRaises(ValueError):
            build_text_completion_adapter(TextCompletionSettings(adapter="carrier-pigeon"))

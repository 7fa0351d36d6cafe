"""Text-completion adapters used to rewrite game descriptions.

Provides a base interface, an adapter for OpenAI-compatible chat APIs,
and a deterministic mock for local runs and tests.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from app.config import TextCompletionSettings


class TextCompletionError(RuntimeError):
    """Raised when the completion service fails for a single request."""


class TextCompletionRateLimited(TextCompletionError):
    """Raised when the completion service signals a rate limit."""


class BaseTextCompletionAdapter(ABC):
    """Abstract base for all text-completion adapters."""

    @abstractmethod
    def complete(self, prompt: str) -> str:
        """Send a prompt and return the raw response text.

        Args:
            prompt: The fully formatted prompt string.

        Returns:
            Raw markdown text from the model.

        Raises:
            TextCompletionRateLimited: If the service asks callers to back off.
            TextCompletionError: For any other request failure.
        """


class OpenAITextCompletionAdapter(BaseTextCompletionAdapter):
    """Adapter for OpenAI-compatible chat completion APIs."""

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        max_tokens: int = 800,
        api_key: str | None = None,
        base_url: str | None = None,
    ) -> None:
        """Initialise the OpenAI adapter.

        Args:
            model: Model identifier.
            max_tokens: Maximum tokens in the completion.
            api_key: API key. The OpenAI client falls back to OPENAI_API_KEY.
            base_url: Optional base URL for OpenAI-compatible endpoints.
        """
        import openai

        client_kwargs: dict = {}
        if api_key:
            client_kwargs["api_key"] = api_key
        if base_url:
            client_kwargs["base_url"] = base_url

        self._openai = openai
        self._client = openai.OpenAI(**client_kwargs)
        self._model = model
        self._max_tokens = max_tokens

    def complete(self, prompt: str) -> str:
        try:
            response = self._client.chat.completions.create(
                model=self._model,
                messages=[
                    {
                        "role": "system",
                        "content": "You write concise, well-structured board game descriptions in markdown.",
                    },
                    {"role": "user", "content": prompt},
                ],
                temperature=0.4,
                max_tokens=self._max_tokens,
                stream=False,
            )
        except self._openai.RateLimitError as exc:
            raise TextCompletionRateLimited(str(exc)) from exc
        except self._openai.OpenAIError as exc:
            raise TextCompletionError(str(exc)) from exc
        return response.choices[0].message.content or ""


_MOCK_DESCRIPTION = (
    "{title} is a tabletop game about making clever choices with limited resources. "
    "Players build up an engine of actions over several rounds, reading the table and "
    "reacting to what their opponents leave open. Turns are quick, decisions matter, and "
    "the game rewards planning a few moves ahead without punishing newcomers who simply "
    "want to try things out. It plays comfortably in an evening and has enough variety "
    "in its setup that repeated sessions feel different.\n\n"
    "## Quick Gameplay Overview\n\n"
    "- **Goal:** Score the most points by the end of the final round through efficient "
    "actions, well-timed purchases, and attention to the shared objectives on the board.\n"
    "- **On Your Turn:** Choose one action from the available options, pay its cost, and "
    "resolve its effect. Some actions add new cards or pieces to your area, others convert "
    "what you already own into points or into stronger future actions.\n"
    "- **End Game:** The game ends when the last round finishes or when the shared supply "
    "runs out, whichever happens first. Everyone then counts points from their tableau, "
    "completed objectives, and any leftover resources.\n"
    "- **Winner:** The player with the highest total wins. Ties go to the player with the "
    "most unspent resources, and if still tied the victory is shared."
)


class MockTextCompletionAdapter(BaseTextCompletionAdapter):
    """Deterministic adapter returning a fixed, template-shaped description."""

    def __init__(self, title: str = "This game") -> None:
        self._title = title

    def complete(self, prompt: str) -> str:
        return _MOCK_DESCRIPTION.format(title=self._title)


def build_text_completion_adapter(settings: TextCompletionSettings) -> BaseTextCompletionAdapter:
    """Return the adapter selected by TEXT_COMPLETION_ADAPTER."""
    if settings.adapter == "mock":
        return MockTextCompletionAdapter()
    if settings.adapter == "openai":
        return OpenAITextCompletionAdapter(model=settings.model, api_key=settings.api_key)
    raise ValueError(f"Unknown text completion adapter '{settings.adapter}'.")

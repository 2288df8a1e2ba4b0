"""Token counting implementations for Strand.

Provides TiktokenCounter (production use), CharEstimateCounter (the
dependency-free default used by the pipeline) and NullTokenCounter
(testing). All implement the TokenCounter protocol from protocols.py.
"""

from __future__ import annotations

import math


class TiktokenCounter:
    """Token counter using tiktoken (OpenAI's tokenizer).

    Lazily imports tiktoken and caches the Encoding instance.
    Falls back to o200k_base encoding if model is unknown.

    Implements the TokenCounter protocol.
    """

    def __init__(self, model: str = "gpt-4o", encoding_name: str | None = None) -> None:
        import tiktoken

        if encoding_name is not None:
            self._enc = tiktoken.get_encoding(encoding_name)
        else:
            if "/" in model:
                model = model.split("/", 1)[1]
            try:
                self._enc = tiktoken.encoding_for_model(model)
            except KeyError:
                self._enc = tiktoken.get_encoding("o200k_base")

        self._encoding_name = self._enc.name

    @property
    def encoding_name(self) -> str:
        """Name of the tiktoken encoding being used."""
        return self._encoding_name

    def count_text(self, text: str) -> int:
        """Count tokens in a plain text string.

        Args:
            text: The text to tokenize.

        Returns:
            Number of tokens. Returns 0 for empty string.
        """
        if not text:
            return 0
        return len(self._enc.encode(text))

    def count_messages(self, messages: list[dict]) -> int:
        """Count tokens in a structured message list including overhead.

        Uses the OpenAI cookbook formula:
        - 3 tokens per message (role/content/separator overhead)
        - 1 token per name field (if present)
        - 3 tokens for the response primer (after all messages)

        Structured content parts and tool calls are counted by their text.

        Args:
            messages: List of OpenAI-style message dicts.

        Returns:
            Total token count including overhead.
        """
        if not messages:
            return 0

        total = 0
        for message in messages:
            total += 3  # per-message overhead
            for key, value in message.items():
                total += self.count_text(_flatten(value))
                if key == "name":
                    total += 1  # name field costs an extra token
        total += 3  # response primer
        return total


class CharEstimateCounter:
    """Approximate counter: one token per ``chars_per_token`` characters.

    Needs no tokenizer download; good enough for compaction thresholds.

    Implements the TokenCounter protocol.
    """

    def __init__(self, chars_per_token: float = 4.0) -> None:
        if chars_per_token <= 0:
            raise ValueError("chars_per_token must be positive")
        self._ratio = chars_per_token

    def count_text(self, text: str) -> int:
        if not text:
            return 0
        return math.ceil(len(text) / self._ratio)

    def count_messages(self, messages: list[dict]) -> int:
        if not messages:
            return 0
        total = 0
        for message in messages:
            total += 3
            for value in message.values():
                total += self.count_text(_flatten(value))
        return total + 3


class NullTokenCounter:
    """Token counter that always returns 0.

    Useful for testing when token counts are irrelevant.

    Implements the TokenCounter protocol.
    """

    def count_text(self, text: str) -> int:
        """Always returns 0."""
        return 0

    def count_messages(self, messages: list[dict]) -> int:
        """Always returns 0."""
        return 0


def _flatten(value: object) -> str:
    """Collect the countable text inside a message dict value."""
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        return " ".join(_flatten(v) for v in value.values())
    if isinstance(value, (list, tuple)):
        return " ".join(_flatten(v) for v in value)
    return ""

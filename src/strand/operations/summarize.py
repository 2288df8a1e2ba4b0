"""Summarizer backed by a model: asks an LLM to summarize older messages."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING

from strand.prompts.summarize import (
    DEFAULT_SUMMARIZE_SYSTEM,
    build_summarize_prompt,
    render_messages,
)
from strand.protocols import Message

if TYPE_CHECKING:
    from strand.llm.protocols import ModelBackend

logger = logging.getLogger(__name__)


class BackendSummarizer:
    """Implements the Summarizer protocol with a single model call.

    Provider errors propagate; the pipeline falls back to a placeholder
    summary when summarization fails.
    """

    def __init__(
        self,
        backend: ModelBackend,
        model: str,
        *,
        credential: str | None = None,
        system_prompt: str = DEFAULT_SUMMARIZE_SYSTEM,
        target_tokens: int | None = None,
    ) -> None:
        self._backend = backend
        self._model = model
        self._credential = credential
        self._system_prompt = system_prompt
        self._target_tokens = target_tokens

    async def summarize(self, messages: Sequence[Message]) -> str:
        prompt = build_summarize_prompt(
            render_messages(messages), target_tokens=self._target_tokens
        )
        request = [Message.system(self._system_prompt), Message.user(prompt)]
        parts: list[str] = []
        async for chunk in self._backend.stream(
            request, model=self._model, credential=self._credential
        ):
            parts.append(chunk.delta)
        summary = "".join(parts).strip()
        logger.debug("Summarized %d messages into %d chars", len(messages), len(summary))
        return summary

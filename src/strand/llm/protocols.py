"""Model backend protocol.

The execution core never sees a wire protocol: a backend turns a transcript
into a lazy, finite sequence of StreamChunks and raises ProviderError
subclasses on failure.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from strand.protocols import Message, ToolCall, UsageReport


@dataclass(frozen=True)
class StreamChunk:
    """One increment of a streamed model response.

    Attributes:
        delta: Text produced since the previous chunk ("" if none).
        tool_calls: Complete tool calls, normally only on the terminal chunk.
        finish_reason: Set on the terminal chunk ("stop", "tool_calls",
            "length", ...).
        usage: Token usage, if the backend reports it.
    """

    delta: str = ""
    tool_calls: tuple[ToolCall, ...] = ()
    finish_reason: str | None = None
    usage: UsageReport | None = None


@runtime_checkable
class ModelBackend(Protocol):
    """Protocol for pluggable model backends.

    The built-in OpenAIBackend implements this protocol. Errors may be raised
    before the first chunk or mid-stream; either way they must be
    ProviderError subclasses for failover to classify them.
    """

    def stream(
        self,
        messages: Sequence[Message],
        *,
        model: str,
        credential: str | None = None,
        tools: Sequence[dict] | None = None,
    ) -> AsyncIterator[StreamChunk]:
        """Start a streaming call and return its chunk iterator."""
        ...

"""Compaction operations for Strand.

Implements the four compaction strategies over a transcript and the policy
that picks one from the context window guard's verdict:

- HardClear: keep the last N messages, drop the rest.
- Summary: keep the last N messages, replace the rest with one system message.
- ToolResultTruncation: cut oversized tool results, mark them ``[truncated]``.
- AdaptiveChunking: collapse groups of older messages into placeholders.

Compaction never reorders surviving messages and keeps retained messages by
identity. Summary text generation is an external capability
(:class:`strand.protocols.Summarizer`); without it a placeholder is used.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import replace
from typing import TYPE_CHECKING

from strand.context_guard import CompactionSeverity
from strand.models.compaction import (
    AdaptiveChunking,
    CompactionStrategy,
    CompactResult,
    HardClear,
    Summary,
    ToolResultTruncation,
    strategy_name,
)
from strand.protocols import ContentPart, Message, Role

if TYPE_CHECKING:
    from strand.context_guard import ContextWindowGuard
    from strand.protocols import TokenCounter

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = "[truncated]"
_PREVIEW_CHARS = 50


def estimate_tokens(messages: Sequence[Message], token_counter: TokenCounter) -> int:
    """Token estimate of a transcript as the backend will see it."""
    return token_counter.count_messages([m.to_dict() for m in messages])


def _content_length(message: Message) -> int:
    if isinstance(message.content, str):
        return len(message.content)
    return sum(len(p.text) for p in message.content if p.type == "text")


def has_oversized_tool_results(messages: Sequence[Message], max_chars: int) -> bool:
    return any(
        m.role is Role.TOOL and _content_length(m) > max_chars for m in messages
    )


def select_strategy(
    guard: ContextWindowGuard,
    current_tokens: int,
    messages: Sequence[Message] = (),
    *,
    keep_recent: int = 10,
    hard_clear_keep_recent: int = 4,
    max_chars: int = 8000,
    chunk_size: int = 5,
) -> CompactionStrategy:
    """Pick a compaction strategy.

    CRITICAL -> HardClear, WARN -> Summary, any oversized tool result ->
    ToolResultTruncation, otherwise AdaptiveChunking.
    """
    severity = guard.severity(current_tokens)
    if severity is CompactionSeverity.CRITICAL:
        return HardClear(keep_recent=hard_clear_keep_recent)
    if severity is CompactionSeverity.WARN:
        return Summary(keep_recent=keep_recent)
    if has_oversized_tool_results(messages, max_chars):
        return ToolResultTruncation(max_chars=max_chars)
    return AdaptiveChunking(chunk_size=chunk_size, keep_recent=keep_recent)


def split_recent(
    messages: Sequence[Message], keep_recent: int
) -> tuple[list[Message], list[Message]]:
    """Split into (older, last ``keep_recent``) without copying messages."""
    if keep_recent <= 0:
        return list(messages), []
    if len(messages) <= keep_recent:
        return [], list(messages)
    cut = len(messages) - keep_recent
    return list(messages[:cut]), list(messages[cut:])


def compact(messages: Sequence[Message], strategy: CompactionStrategy) -> list[Message]:
    """Apply *strategy* to *messages* and return the new transcript.

    Raises:
        TypeError: If *strategy* is not a known compaction strategy.
    """
    if isinstance(strategy, HardClear):
        return _hard_clear(messages, strategy.keep_recent)
    if isinstance(strategy, Summary):
        return _summary(messages, strategy.keep_recent, strategy.summary_text)
    if isinstance(strategy, ToolResultTruncation):
        return _truncate_tool_results(messages, strategy.max_chars)
    if isinstance(strategy, AdaptiveChunking):
        return _adaptive_chunking(messages, strategy.chunk_size, strategy.keep_recent)
    raise TypeError(f"Unknown compaction strategy: {strategy!r}")


def compact_transcript(
    messages: Sequence[Message],
    strategy: CompactionStrategy,
    token_counter: TokenCounter,
) -> tuple[list[Message], CompactResult]:
    """Compact and report token savings."""
    original_tokens = estimate_tokens(messages, token_counter)
    compacted = compact(messages, strategy)
    result = CompactResult(
        strategy=strategy_name(strategy),
        original_tokens=original_tokens,
        compacted_tokens=estimate_tokens(compacted, token_counter),
        messages_removed=len(messages) - len(compacted),
    )
    logger.info(
        "Compacted transcript with %s: %d -> %d tokens, %d messages removed",
        result.strategy, result.original_tokens, result.compacted_tokens,
        result.messages_removed,
    )
    return compacted, result


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------


def _hard_clear(messages: Sequence[Message], keep_recent: int) -> list[Message]:
    return split_recent(messages, keep_recent)[1]


def _summary(
    messages: Sequence[Message], keep_recent: int, summary_text: str | None
) -> list[Message]:
    older, recent = split_recent(messages, keep_recent)
    if not older:
        return recent
    text = summary_text or f"[Summary of {len(older)} earlier messages]"
    return [Message.system(text), *recent]


def _truncate_tool_results(messages: Sequence[Message], max_chars: int) -> list[Message]:
    result: list[Message] = []
    for message in messages:
        if message.role is Role.TOOL and _content_length(message) > max_chars:
            result.append(_truncate(message, max_chars))
        else:
            result.append(message)
    return result


def _truncate(message: Message, max_chars: int) -> Message:
    if isinstance(message.content, str):
        return replace(message, content=message.content[:max_chars] + TRUNCATION_MARKER)

    # Text parts share one budget; the marker goes where the budget runs out.
    budget = max_chars
    parts: list[ContentPart] = []
    marked = False
    for part in message.content:
        if part.type != "text":
            parts.append(part)
            continue
        if marked:
            continue
        if len(part.text) <= budget:
            parts.append(part)
            budget -= len(part.text)
            continue
        parts.append(ContentPart(type="text", text=part.text[:budget] + TRUNCATION_MARKER))
        marked = True
    return replace(message, content=tuple(parts))


def _adaptive_chunking(
    messages: Sequence[Message], chunk_size: int, keep_recent: int
) -> list[Message]:
    chunk_size = max(1, chunk_size)
    if len(messages) <= keep_recent + chunk_size:
        return list(messages)

    older, recent = split_recent(messages, keep_recent)
    placeholders = [_group_placeholder(group) for group in _group_messages(older, chunk_size)]
    return [*placeholders, *recent]


def _group_messages(messages: Sequence[Message], chunk_size: int) -> list[list[Message]]:
    """Partition messages into groups at size or user-turn boundaries.

    Tool results never open a group, so they stay with the assistant call
    that produced them.
    """
    half_chunk = max(1, chunk_size // 2)
    groups: list[list[Message]] = []
    current: list[Message] = []

    for message in messages:
        if current and message.role is not Role.TOOL:
            full = len(current) >= chunk_size
            at_turn = message.role is Role.USER and len(current) >= half_chunk
            if full or at_turn:
                groups.append(current)
                current = []
        current.append(message)

    if current:
        groups.append(current)
    return groups


def _group_placeholder(group: Sequence[Message]) -> Message:
    preview = next((m.text for m in group if m.text), "")[:_PREVIEW_CHARS]
    return Message.system(f"[Summarized {len(group)} messages: {preview}...]")

"""Domain models for transcript compaction.

Compaction strategies are plain frozen dataclasses; the algorithms live in
:mod:`strand.operations.compaction`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class AdaptiveChunking:
    """Collapse older messages into per-group placeholders.

    A group closes at ``chunk_size`` messages, or at a user turn once it
    holds at least half a chunk. The last ``keep_recent`` messages survive.
    """

    chunk_size: int = 5
    keep_recent: int = 2


@dataclass(frozen=True)
class Summary:
    """Replace everything but the last ``keep_recent`` messages with one
    system message holding ``summary_text``."""

    keep_recent: int = 10
    summary_text: str | None = None


@dataclass(frozen=True)
class HardClear:
    """Keep only the last ``keep_recent`` messages."""

    keep_recent: int = 4


@dataclass(frozen=True)
class ToolResultTruncation:
    """Cut every tool message longer than ``max_chars`` characters."""

    max_chars: int = 8000


CompactionStrategy = Union[AdaptiveChunking, Summary, HardClear, ToolResultTruncation]


def strategy_name(strategy: CompactionStrategy) -> str:
    """Snake-case name of a strategy, for logs and events."""
    return {
        AdaptiveChunking: "adaptive_chunking",
        Summary: "summary",
        HardClear: "hard_clear",
        ToolResultTruncation: "tool_result_truncation",
    }[type(strategy)]


@dataclass(frozen=True)
class CompactResult:
    """Outcome of one compaction pass."""

    strategy: str
    original_tokens: int
    compacted_tokens: int
    messages_removed: int

    @property
    def tokens_saved(self) -> int:
        return self.original_tokens - self.compacted_tokens

"""Context window guard: decides when a transcript needs compaction."""

from __future__ import annotations

import enum
from dataclasses import dataclass


class CompactionSeverity(str, enum.Enum):
    """How urgently the transcript must shrink."""

    NONE = "none"
    WARN = "warn"
    CRITICAL = "critical"


@dataclass(frozen=True)
class ContextWindowGuard:
    """Stateless policy evaluated against a caller-supplied token count.

    Attributes:
        warn_threshold: Fraction of ``hard_limit`` at which compaction
            becomes advisable (0.0-1.0).
        hard_limit: Absolute context window size in tokens.
        min_available: Tokens reserved for the model's response.
    """

    warn_threshold: float = 0.8
    hard_limit: int = 128_000
    min_available: int = 4096

    def __post_init__(self) -> None:
        if not 0.0 <= self.warn_threshold <= 1.0:
            raise ValueError(
                f"warn_threshold must be between 0.0 and 1.0, got {self.warn_threshold}"
            )
        if self.hard_limit <= 0:
            raise ValueError(f"hard_limit must be positive, got {self.hard_limit}")
        if self.min_available < 0:
            raise ValueError(f"min_available must be >= 0, got {self.min_available}")

    @property
    def warn_tokens(self) -> float:
        return self.warn_threshold * self.hard_limit

    def needs_compaction(self, current_tokens: int) -> bool:
        return current_tokens >= self.hard_limit or current_tokens >= self.warn_tokens

    def severity(self, current_tokens: int) -> CompactionSeverity:
        if current_tokens >= self.hard_limit:
            return CompactionSeverity.CRITICAL
        if current_tokens >= self.warn_tokens:
            return CompactionSeverity.WARN
        return CompactionSeverity.NONE

    def available_tokens(self, current_tokens: int) -> int:
        """Tokens left for new content after reserving ``min_available``."""
        return max(0, self.hard_limit - current_tokens - self.min_available)

    def is_safe(self, current_tokens: int) -> bool:
        return self.available_tokens(current_tokens) > 0

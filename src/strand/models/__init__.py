"""Domain models for Strand."""

from strand.models.compaction import (
    AdaptiveChunking,
    CompactionStrategy,
    CompactResult,
    HardClear,
    Summary,
    ToolResultTruncation,
)
from strand.models.config import AgentConfig, ModelChain
from strand.models.events import (
    AgentEvent,
    Done,
    ErrorEvent,
    EventCollector,
    EventQueue,
    ModelSwitch,
    TextDelta,
    ToolCallRequested,
    ToolResultEvent,
    UsageEvent,
)
from strand.models.run import AgentRunParams, AgentRunResult, ResourceBudget, RunStatus

__all__ = [
    "AdaptiveChunking",
    "CompactionStrategy",
    "CompactResult",
    "HardClear",
    "Summary",
    "ToolResultTruncation",
    "AgentConfig",
    "ModelChain",
    "AgentEvent",
    "Done",
    "ErrorEvent",
    "EventCollector",
    "EventQueue",
    "ModelSwitch",
    "TextDelta",
    "ToolCallRequested",
    "ToolResultEvent",
    "UsageEvent",
    "AgentRunParams",
    "AgentRunResult",
    "ResourceBudget",
    "RunStatus",
]

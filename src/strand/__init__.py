"""Strand: an execution core for LLM agents.

Drives one conversational turn loop between a session and a model backend:
streaming output, tool dispatch, failover across models and credentials,
context compaction, provider-specific transcript repair, bounded subagent
delegation and cooperative cancellation.
"""

from strand._version import __version__

# Core entry point
from strand.pipeline import ExecutionPipeline, PipelineState

# Messages and capability protocols
from strand.protocols import (
    AgentSpawner,
    ContentPart,
    EventSubscriber,
    Message,
    Role,
    SessionStore,
    SpawnOutput,
    Summarizer,
    TokenCounter,
    ToolCall,
    UsageReport,
)

# Configuration and run models
from strand.models.config import AgentConfig, ModelChain
from strand.models.run import AgentRunParams, AgentRunResult, ResourceBudget, RunStatus
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

# Satellites
from strand.abort import AbortController, AbortRegistry
from strand.context_guard import CompactionSeverity, ContextWindowGuard
from strand.failover import (
    Abort,
    CompactAndRetry,
    FailoverAction,
    FailoverController,
    FailoverState,
    FailoverToNext,
    ModelAttempt,
    RetryWithNextAuth,
    WaitAndRetry,
)
from strand.models.compaction import (
    AdaptiveChunking,
    CompactionStrategy,
    CompactResult,
    HardClear,
    Summary,
    ToolResultTruncation,
)
from strand.operations.compaction import TRUNCATION_MARKER, compact, select_strategy
from strand.operations.spawn import SpawnRequest, SubagentOrchestrator, SubagentResult
from strand.operations.summarize import BackendSummarizer
from strand.transcript import (
    CONTINUED_MARKER,
    ProviderKind,
    is_synthetic,
    repair_transcript,
    strip_synthetic,
)

# Backends, tools and helpers
from strand.llm import ModelBackend, OpenAIBackend, StreamChunk
from strand.toolkit import ToolDefinition, ToolExecutor, ToolResult
from strand.engine.tokens import CharEstimateCounter, NullTokenCounter, TiktokenCounter
from strand.prompts.system import SystemPromptBuilder
from strand.session import InMemorySessionStore
from strand.usage import UsageTracker

# Exceptions
from strand.exceptions import (
    AbortedError,
    AllModelsExhaustedError,
    BudgetExhaustedError,
    ConfigError,
    DepthExceededError,
    IterationLimitError,
    ModelNotAllowedError,
    StrandError,
    SubagentError,
    ToolExecutionError,
)
from strand.llm.errors import (
    AuthenticationFailedError,
    ContextOverflowError,
    ModelNotFoundError,
    ProviderError,
    ProviderNetworkError,
    ProviderServerError,
    ProviderTimeoutError,
    RateLimitedError,
)

__all__ = [
    "__version__",
    "ExecutionPipeline",
    "PipelineState",
    "AgentSpawner",
    "ContentPart",
    "EventSubscriber",
    "Message",
    "Role",
    "SessionStore",
    "SpawnOutput",
    "Summarizer",
    "TokenCounter",
    "ToolCall",
    "UsageReport",
    "AgentConfig",
    "ModelChain",
    "AgentRunParams",
    "AgentRunResult",
    "ResourceBudget",
    "RunStatus",
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
    "AbortController",
    "AbortRegistry",
    "CompactionSeverity",
    "ContextWindowGuard",
    "Abort",
    "CompactAndRetry",
    "FailoverAction",
    "FailoverController",
    "FailoverState",
    "FailoverToNext",
    "ModelAttempt",
    "RetryWithNextAuth",
    "WaitAndRetry",
    "AdaptiveChunking",
    "CompactionStrategy",
    "CompactResult",
    "HardClear",
    "Summary",
    "ToolResultTruncation",
    "TRUNCATION_MARKER",
    "compact",
    "select_strategy",
    "SpawnRequest",
    "SubagentOrchestrator",
    "SubagentResult",
    "BackendSummarizer",
    "CONTINUED_MARKER",
    "ProviderKind",
    "is_synthetic",
    "repair_transcript",
    "strip_synthetic",
    "ModelBackend",
    "OpenAIBackend",
    "StreamChunk",
    "ToolDefinition",
    "ToolExecutor",
    "ToolResult",
    "CharEstimateCounter",
    "NullTokenCounter",
    "TiktokenCounter",
    "SystemPromptBuilder",
    "InMemorySessionStore",
    "UsageTracker",
    "AbortedError",
    "AllModelsExhaustedError",
    "BudgetExhaustedError",
    "ConfigError",
    "DepthExceededError",
    "IterationLimitError",
    "ModelNotAllowedError",
    "StrandError",
    "SubagentError",
    "ToolExecutionError",
    "AuthenticationFailedError",
    "ContextOverflowError",
    "ModelNotFoundError",
    "ProviderError",
    "ProviderNetworkError",
    "ProviderServerError",
    "ProviderTimeoutError",
    "RateLimitedError",
]

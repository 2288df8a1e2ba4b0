"""Run-level domain models: parameters, budgets and results."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from strand.protocols import Message, UsageReport

if TYPE_CHECKING:
    from strand.failover import ModelAttempt


@dataclass
class ResourceBudget:
    """Token allowance for a run and its descendants.

    Owned by exactly one run. Children get an independent copy from
    :meth:`derive`; the parent deducts their usage once they finish.
    """

    max_tokens: int
    remaining_tokens: int | None = None

    def __post_init__(self) -> None:
        if self.remaining_tokens is None:
            self.remaining_tokens = self.max_tokens

    def has_budget(self, tokens: int = 1) -> bool:
        return self.remaining_tokens >= tokens

    def deduct(self, tokens: int) -> int:
        """Subtract *tokens*, clamping at zero. Returns what remains."""
        self.remaining_tokens = max(0, self.remaining_tokens - max(0, tokens))
        return self.remaining_tokens

    def derive(self) -> ResourceBudget:
        """Child budget whose ceiling is this budget's remaining tokens."""
        return ResourceBudget(
            max_tokens=self.remaining_tokens, remaining_tokens=self.remaining_tokens
        )

    @property
    def used_tokens(self) -> int:
        return self.max_tokens - self.remaining_tokens


@dataclass(frozen=True)
class AgentRunParams:
    """Immutable parameters of one run (top-level or subagent).

    Attributes:
        session_key: Unique key of the run; indexes the abort registry.
        depth: Delegation depth, 0 for a top-level run.
        thread_id: Shared thread identifier, propagated to subagents.
        resource_budget: Optional token budget, mutated only by this run.
        model_allowlist: Models this run may delegate to (and use).
        agent_id: Identity of the agent executing the run.
        model: Pin the run to this single model instead of the chain.
    """

    session_key: str
    depth: int = 0
    thread_id: str | None = None
    resource_budget: ResourceBudget | None = None
    model_allowlist: tuple[str, ...] | None = None
    agent_id: str | None = None
    model: str | None = None

    def __post_init__(self) -> None:
        if self.model_allowlist is not None and not isinstance(self.model_allowlist, tuple):
            object.__setattr__(self, "model_allowlist", tuple(self.model_allowlist))

    def context(self) -> dict[str, Any]:
        """Plain-dict view handed to an out-of-process agent spawner."""
        budget = self.resource_budget
        return {
            "session_key": self.session_key,
            "depth": self.depth,
            "thread_id": self.thread_id,
            "agent_id": self.agent_id,
            "max_tokens": budget.max_tokens if budget else None,
            "remaining_tokens": budget.remaining_tokens if budget else None,
        }


class RunStatus(str, enum.Enum):
    """Terminal state of a run."""

    COMPLETED = "completed"
    ABORTED = "aborted"
    FAILED = "failed"


@dataclass
class AgentRunResult:
    """What a finished run hands back to its caller."""

    session_key: str
    status: RunStatus
    output: str = ""
    usage: UsageReport = field(default_factory=UsageReport)
    attempts: list[ModelAttempt] = field(default_factory=list)
    messages: list[Message] = field(default_factory=list)
    error: str | None = None
    model: str | None = None

    @property
    def ok(self) -> bool:
        return self.status is RunStatus.COMPLETED

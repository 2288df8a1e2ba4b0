"""Per-run state of the execution pipeline."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from strand.protocols import Message, UsageReport

if TYPE_CHECKING:
    from strand.abort import AbortController
    from strand.failover import FailoverController
    from strand.models.run import AgentRunParams
    from strand.protocols import EventSubscriber


class PipelineState(str, enum.Enum):
    """Turn-loop states. The last three are terminal."""

    IDLE = "idle"
    STREAMING = "streaming"
    TOOL_DISPATCH = "tool_dispatch"
    COMPLETED = "completed"
    ABORTED = "aborted"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (PipelineState.COMPLETED, PipelineState.ABORTED, PipelineState.FAILED)


@dataclass
class ModelTurn:
    """What one successful model call produced."""

    text: str
    tool_calls: tuple = ()
    usage: UsageReport = field(default_factory=UsageReport)
    finish_reason: str | None = None


@dataclass
class RunContext:
    """Mutable state exclusively owned by one run."""

    params: AgentRunParams
    transcript: list[Message]
    abort: AbortController
    subscriber: EventSubscriber | None
    failover: FailoverController | None = None
    state: PipelineState = PipelineState.IDLE
    usage: UsageReport = field(default_factory=UsageReport)
    produced: list[Message] = field(default_factory=list)
    model: str | None = None
    iterations: int = 0
    terminal_emitted: bool = False

    @property
    def session_key(self) -> str:
        return self.params.session_key

    def append(self, message: Message) -> None:
        self.transcript.append(message)
        self.produced.append(message)

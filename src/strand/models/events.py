"""Events emitted by the execution pipeline.

Every run delivers its events, in emission order, to one subscriber. A run
ends with exactly one terminal event: Done or ErrorEvent.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Union

from strand.protocols import ToolCall, UsageReport

if TYPE_CHECKING:
    from strand.models.run import AgentRunResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TextDelta:
    text: str


@dataclass(frozen=True)
class ToolCallRequested:
    tool_call: ToolCall


@dataclass(frozen=True)
class ToolResultEvent:
    call_id: str
    tool_name: str
    content: str
    is_error: bool = False


@dataclass(frozen=True)
class ModelSwitch:
    from_model: str
    to_model: str
    reason: str


@dataclass(frozen=True)
class UsageEvent:
    usage: UsageReport
    model: str | None = None


@dataclass(frozen=True)
class ErrorEvent:
    """Terminal failure. ``attempted_models`` is set on chain exhaustion."""

    message: str
    kind: str = "error"
    attempted_models: tuple[str, ...] = ()
    result: AgentRunResult | None = None


@dataclass(frozen=True)
class Done:
    result: AgentRunResult


AgentEvent = Union[
    TextDelta, ToolCallRequested, ToolResultEvent, ModelSwitch, UsageEvent, ErrorEvent, Done
]

TERMINAL_EVENTS = (Done, ErrorEvent)


def is_terminal(event: AgentEvent) -> bool:
    return isinstance(event, TERMINAL_EVENTS)


class EventQueue:
    """Subscriber that buffers events for async iteration.

    Usage::

        queue = EventQueue()
        task = asyncio.create_task(pipeline.run(params, transcript, queue))
        async for event in queue:
            ...

    Iteration stops after the terminal event.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[AgentEvent] = asyncio.Queue()
        self._closed = False

    def __call__(self, event: AgentEvent) -> None:
        self._queue.put_nowait(event)

    def __aiter__(self) -> EventQueue:
        return self

    async def __anext__(self) -> AgentEvent:
        if self._closed:
            raise StopAsyncIteration
        event = await self._queue.get()
        if is_terminal(event):
            self._closed = True
        return event

    def drain(self) -> list[AgentEvent]:
        """Pop everything currently buffered without waiting."""
        events: list[AgentEvent] = []
        while not self._queue.empty():
            events.append(self._queue.get_nowait())
        return events


class EventCollector:
    """Subscriber that records events in a list."""

    def __init__(self) -> None:
        self.events: list[AgentEvent] = []

    def __call__(self, event: AgentEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: type) -> list:
        return [e for e in self.events if isinstance(e, event_type)]

    @property
    def text(self) -> str:
        return "".join(e.text for e in self.events if isinstance(e, TextDelta))

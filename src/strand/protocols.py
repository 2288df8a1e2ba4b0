"""Protocol definitions for Strand.

Defines the message model shared by every component (Message, ToolCall,
ContentPart), usage accounting (UsageReport), and the pluggable capability
interfaces the execution core consumes: TokenCounter, SessionStore,
AgentSpawner, Summarizer and EventSubscriber.

The model backend capability lives in :mod:`strand.llm.protocols`.
"""

from __future__ import annotations

import enum
import json as _json
from collections.abc import Awaitable, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal, Protocol, TypedDict, Union, runtime_checkable

if TYPE_CHECKING:
    from strand.models.events import AgentEvent


class Role(str, enum.Enum):
    """Author of a message in a transcript."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class ToolCallOpenAIDict(TypedDict):
    """OpenAI wire format for a single tool call."""

    id: str
    type: str
    function: dict[str, str]


@dataclass(frozen=True)
class ToolCall:
    """A tool/function invocation requested by the model.

    Arguments are always a parsed dict; OpenAI's JSON string is parsed at
    ingestion time.
    """

    id: str
    name: str
    arguments: dict = field(default_factory=dict)

    @classmethod
    def from_openai(cls, tc: dict) -> ToolCall:
        """Parse from OpenAI/compatible format.

        Unparseable argument strings are kept under ``_raw`` so the tool
        can report a useful error instead of the call being dropped.
        """
        raw_args = tc["function"].get("arguments") or "{}"
        try:
            arguments = _json.loads(raw_args) if isinstance(raw_args, str) else raw_args
        except (_json.JSONDecodeError, TypeError):
            arguments = {"_raw": raw_args}
        if not isinstance(arguments, dict):
            arguments = {"_raw": arguments}
        return cls(id=tc["id"], name=tc["function"]["name"], arguments=arguments)

    @classmethod
    def from_dict(cls, d: dict) -> ToolCall:
        """Reconstruct from a plain dict (``id``, ``name``, ``arguments``)."""
        if "function" in d:
            return cls.from_openai(d)
        return cls(id=d["id"], name=d["name"], arguments=dict(d.get("arguments") or {}))

    def to_openai(self) -> ToolCallOpenAIDict:
        """Serialize to OpenAI wire format."""
        return {
            "id": self.id,
            "type": "function",
            "function": {
                "name": self.name,
                "arguments": _json.dumps(self.arguments),
            },
        }


@dataclass(frozen=True)
class ContentPart:
    """One part of structured message content.

    ``type`` is ``"text"`` (uses ``text``) or ``"image"`` (uses ``url``).
    """

    type: Literal["text", "image"] = "text"
    text: str = ""
    url: str | None = None

    def to_dict(self) -> dict:
        if self.type == "image":
            return {"type": "image_url", "image_url": {"url": self.url or ""}}
        return {"type": "text", "text": self.text}


MessageContent = Union[str, tuple[ContentPart, ...]]


@dataclass(frozen=True)
class Message:
    """A single message in a transcript.

    Frozen: once appended to a transcript a message is never modified.
    Transformations (repair, compaction) build new Message objects and keep
    untouched ones by identity.
    """

    role: Role
    content: MessageContent = ""
    tool_calls: tuple[ToolCall, ...] | None = None
    tool_call_id: str | None = None
    # Set only on placeholders inserted by transcript repair.
    synthetic: bool = field(default=False, compare=False, repr=False)

    def __post_init__(self) -> None:
        if not isinstance(self.role, Role):
            object.__setattr__(self, "role", Role(self.role))
        if isinstance(self.content, list):
            object.__setattr__(self, "content", tuple(self.content))
        if self.tool_calls is not None and not isinstance(self.tool_calls, tuple):
            object.__setattr__(self, "tool_calls", tuple(self.tool_calls))

    @classmethod
    def system(cls, text: str) -> Message:
        return cls(role=Role.SYSTEM, content=text)

    @classmethod
    def user(cls, text: str) -> Message:
        return cls(role=Role.USER, content=text)

    @classmethod
    def assistant(cls, text: str = "", tool_calls: Sequence[ToolCall] | None = None) -> Message:
        return cls(
            role=Role.ASSISTANT,
            content=text,
            tool_calls=tuple(tool_calls) if tool_calls else None,
        )

    @classmethod
    def tool(cls, tool_call_id: str, text: str) -> Message:
        return cls(role=Role.TOOL, content=text, tool_call_id=tool_call_id)

    @classmethod
    def from_dict(cls, d: dict) -> Message:
        """Build a Message from an OpenAI-style chat dict."""
        content = d.get("content")
        if isinstance(content, list):
            parts = []
            for part in content:
                if part.get("type") == "image_url":
                    parts.append(ContentPart(type="image", url=part["image_url"]["url"]))
                else:
                    parts.append(ContentPart(type="text", text=part.get("text", "")))
            content = tuple(parts)
        raw_calls = d.get("tool_calls")
        return cls(
            role=Role(d["role"]),
            content=content or "",
            tool_calls=tuple(ToolCall.from_dict(tc) for tc in raw_calls) if raw_calls else None,
            tool_call_id=d.get("tool_call_id"),
        )

    @property
    def text(self) -> str:
        """Plain text of the message; text parts joined by newlines."""
        if isinstance(self.content, str):
            return self.content
        return "\n".join(p.text for p in self.content if p.type == "text")

    def to_dict(self) -> dict:
        """Serialize to an OpenAI-style chat message dict."""
        if isinstance(self.content, str):
            content: Any = self.content
        else:
            content = [p.to_dict() for p in self.content]
        d: dict[str, Any] = {"role": self.role.value, "content": content}
        if self.tool_calls:
            d["tool_calls"] = [tc.to_openai() for tc in self.tool_calls]
        if self.tool_call_id is not None:
            d["tool_call_id"] = self.tool_call_id
        return d


@dataclass
class UsageReport:
    """Token usage for one model call, a run, or an aggregate."""

    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def add(self, input_tokens: int, output_tokens: int) -> None:
        self.input_tokens += input_tokens
        self.output_tokens += output_tokens

    def merge(self, other: UsageReport) -> None:
        self.add(other.input_tokens, other.output_tokens)


@runtime_checkable
class TokenCounter(Protocol):
    """Protocol for token counting.

    Implementations: TiktokenCounter, CharEstimateCounter, NullTokenCounter
    (see :mod:`strand.engine.tokens`).
    """

    def count_text(self, text: str) -> int:
        """Count tokens in a plain text string."""
        ...

    def count_messages(self, messages: list[dict]) -> int:
        """Count tokens in a list of chat message dicts, including overhead."""
        ...


@runtime_checkable
class SessionStore(Protocol):
    """Conversation persistence consumed by the pipeline.

    The pipeline only appends the messages a run produced; how they are
    stored and queried is up to the implementation.
    """

    async def append(self, session_key: str, messages: Sequence[Message]) -> None:
        ...

    async def history(self, session_key: str, limit: int | None = None) -> list[Message]:
        ...


@dataclass(frozen=True)
class SpawnOutput:
    """Final output of a delegated agent run."""

    text: str
    usage: UsageReport = field(default_factory=UsageReport)


@runtime_checkable
class AgentSpawner(Protocol):
    """Out-of-process delegation capability.

    ``parent_context`` carries ``session_key``, ``depth``, ``thread_id`` and
    the derived budget of the child.
    """

    async def spawn(
        self,
        agent_id: str,
        prompt: str,
        model: str | None,
        parent_context: dict[str, Any],
    ) -> SpawnOutput:
        ...


@runtime_checkable
class Summarizer(Protocol):
    """Produces summary text for the Summary compaction strategy."""

    async def summarize(self, messages: Sequence[Message]) -> str:
        ...


class EventSubscriber(Protocol):
    """The single sink receiving a run's events.

    Plain functions and coroutine functions both qualify.
    """

    def __call__(self, event: AgentEvent) -> Awaitable[None] | None:
        ...

"""Shared fixtures and fakes for Strand tests.

ScriptedBackend replays canned model responses so pipeline tests never touch
the network. A script step is either an exception instance (raised when the
stream is first iterated) or a list of items played in order: StreamChunks
are yielded, exceptions are raised, floats are slept.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence

import pytest

from strand.abort import AbortRegistry
from strand.engine.tokens import NullTokenCounter
from strand.llm.protocols import StreamChunk
from strand.models.config import AgentConfig
from strand.pipeline.loop import ExecutionPipeline
from strand.protocols import Message, SpawnOutput, ToolCall, UsageReport


# ---------------------------------------------------------------------------
# Script helpers
# ---------------------------------------------------------------------------

def reply(
    text: str = "",
    *,
    tool_calls: Sequence[ToolCall] = (),
    usage: UsageReport | None = None,
    pieces: int = 1,
) -> list:
    """One successful model response, optionally split into *pieces* deltas."""
    steps: list = []
    if text:
        size = max(1, -(-len(text) // pieces))
        steps.extend(StreamChunk(delta=text[i:i + size]) for i in range(0, len(text), size))
    steps.append(
        StreamChunk(
            tool_calls=tuple(tool_calls),
            finish_reason="tool_calls" if tool_calls else "stop",
            usage=usage if usage is not None else UsageReport(10, 5),
        )
    )
    return steps


def call(name: str, call_id: str = "call_1", **arguments) -> ToolCall:
    return ToolCall(id=call_id, name=name, arguments=arguments)


class ScriptedBackend:
    """ModelBackend fake replaying one script step per ``stream`` call.

    ``script`` is consumed in call order. ``by_model`` scripts take
    precedence for their model. Once a script runs dry, calls reply "ok".
    """

    def __init__(self, script=None, *, by_model=None) -> None:
        self.script: list = list(script or [])
        self.by_model: dict[str, list] = {m: list(s) for m, s in (by_model or {}).items()}
        self.calls: list[dict] = []
        self.closed = False

    @property
    def models(self) -> list[str]:
        return [c["model"] for c in self.calls]

    def stream(self, messages, *, model, credential=None, tools=None):
        self.calls.append({
            "model": model,
            "credential": credential,
            "messages": list(messages),
            "tools": tools,
        })
        queue = self.by_model.get(model)
        if queue:
            step = queue.pop(0)
        elif self.script:
            step = self.script.pop(0)
        else:
            step = reply("ok")
        return self._play(step)

    async def _play(self, step):
        if isinstance(step, BaseException):
            raise step
        for item in step:
            if isinstance(item, BaseException):
                raise item
            if isinstance(item, (int, float)):
                await asyncio.sleep(item)
                continue
            yield item

    async def aclose(self) -> None:
        self.closed = True


class FakeSpawner:
    """AgentSpawner fake recording its calls."""

    def __init__(self, text: str = "child done", usage: UsageReport | None = None) -> None:
        self.text = text
        self.usage = usage or UsageReport()
        self.calls: list[dict] = []

    async def spawn(self, agent_id, prompt, model, parent_context):
        self.calls.append({
            "agent_id": agent_id,
            "prompt": prompt,
            "model": model,
            "parent_context": parent_context,
        })
        return SpawnOutput(text=self.text, usage=self.usage)


class StaticSummarizer:
    def __init__(self, text: str = "SUMMARY", error: Exception | None = None) -> None:
        self.text = text
        self.error = error
        self.calls: list[list[Message]] = []

    async def summarize(self, messages):
        self.calls.append(list(messages))
        if self.error is not None:
            raise self.error
        return self.text


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

def make_config(**overrides) -> AgentConfig:
    data = {"model_chain": ["m1"], "abort_grace_period": 0.05}
    data.update(overrides)
    return AgentConfig.from_dict(data)


def make_pipeline(backend, config: AgentConfig | None = None, **kwargs) -> ExecutionPipeline:
    kwargs.setdefault("registry", AbortRegistry())
    kwargs.setdefault("token_counter", NullTokenCounter())
    return ExecutionPipeline(backend, config or make_config(), **kwargs)


def conversation(n: int, *, size: int = 20) -> list[Message]:
    """Alternating user/assistant transcript of *n* messages."""
    messages = []
    for i in range(n):
        text = f"m{i}-" + "x" * max(0, size - len(f"m{i}-"))
        messages.append(Message.user(text) if i % 2 == 0 else Message.assistant(text))
    return messages


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def backend() -> ScriptedBackend:
    return ScriptedBackend()


@pytest.fixture
def registry() -> AbortRegistry:
    return AbortRegistry()

"""Tests for token counters.

TiktokenCounter is exercised against a fake ``tiktoken`` module so the tests
never download encodings.
"""

from __future__ import annotations

import sys
from types import SimpleNamespace

import pytest

from strand.engine.tokens import CharEstimateCounter, NullTokenCounter, TiktokenCounter
from strand.protocols import TokenCounter


class _FakeEncoding:
    """One token per whitespace-separated word."""

    def __init__(self, name: str) -> None:
        self.name = name

    def encode(self, text: str) -> list[int]:
        return list(range(len(text.split())))


@pytest.fixture
def fake_tiktoken(monkeypatch):
    requested: list[str] = []

    def encoding_for_model(model):
        requested.append(model)
        if model.startswith("gpt-"):
            return _FakeEncoding("o200k_base")
        raise KeyError(model)

    module = SimpleNamespace(
        get_encoding=lambda name: _FakeEncoding(name),
        encoding_for_model=encoding_for_model,
    )
    monkeypatch.setitem(sys.modules, "tiktoken", module)
    return requested


class TestTiktokenCounter:
    def test_strips_provider_prefix(self, fake_tiktoken):
        counter = TiktokenCounter(model="openai/gpt-4o")
        assert fake_tiktoken == ["gpt-4o"]
        assert counter.encoding_name == "o200k_base"

    def test_unknown_model_falls_back(self, fake_tiktoken):
        counter = TiktokenCounter(model="mystery-model")
        assert counter.encoding_name == "o200k_base"

    def test_explicit_encoding(self, fake_tiktoken):
        counter = TiktokenCounter(encoding_name="cl100k_base")
        assert counter.encoding_name == "cl100k_base"
        assert fake_tiktoken == []

    def test_count_text(self, fake_tiktoken):
        counter = TiktokenCounter()
        assert counter.count_text("") == 0
        assert counter.count_text("one two three") == 3

    def test_count_messages_overhead(self, fake_tiktoken):
        counter = TiktokenCounter()
        messages = [
            {"role": "user", "content": "hello world"},
            {"role": "assistant", "content": "hi", "name": "bot"},
        ]
        # 3 per message + role + content (+ name and its extra token) + 3 primer
        assert counter.count_messages(messages) == (3 + 1 + 2) + (3 + 1 + 1 + 1 + 1) + 3
        assert counter.count_messages([]) == 0

    def test_counts_nested_tool_calls(self, fake_tiktoken):
        counter = TiktokenCounter()
        message = {
            "role": "assistant",
            "content": "",
            "tool_calls": [{"id": "c1", "function": {"name": "search", "arguments": "{}"}}],
        }
        assert counter.count_messages([message]) > counter.count_messages(
            [{"role": "assistant", "content": ""}]
        )


class TestCharEstimateCounter:
    def test_count_text(self):
        counter = CharEstimateCounter()
        assert counter.count_text("") == 0
        assert counter.count_text("abcd") == 1
        assert counter.count_text("abcde") == 2

    def test_custom_ratio(self):
        assert CharEstimateCounter(chars_per_token=2).count_text("abcd") == 2

    def test_invalid_ratio(self):
        with pytest.raises(ValueError):
            CharEstimateCounter(chars_per_token=0)

    def test_count_messages(self):
        counter = CharEstimateCounter()
        messages = [{"role": "user", "content": "x" * 200}]
        assert counter.count_messages(messages) == 3 + 1 + 50 + 3
        assert counter.count_messages([]) == 0


def test_counters_satisfy_protocol(fake_tiktoken):
    for counter in (TiktokenCounter(), CharEstimateCounter(), NullTokenCounter()):
        assert isinstance(counter, TokenCounter)


def test_null_counter():
    counter = NullTokenCounter()
    assert counter.count_text("anything at all") == 0
    assert counter.count_messages([{"role": "user", "content": "x"}]) == 0

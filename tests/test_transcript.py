"""Tests for provider-specific transcript repair."""

from __future__ import annotations

import pytest
from hypothesis import given

from strand.protocols import Message, Role
from strand.transcript import (
    CONTINUED_MARKER,
    ProviderKind,
    is_synthetic,
    provider_kind_for_model,
    repair_transcript,
    strip_synthetic,
)
from tests.strategies import transcripts

STRICT = [ProviderKind.ANTHROPIC, ProviderKind.GOOGLE]


def _roles(messages):
    return [m.role for m in messages]


# ---------------------------------------------------------------------------
# Strict alternation
# ---------------------------------------------------------------------------

class TestStrictAlternation:
    @pytest.mark.parametrize("kind", STRICT)
    def test_inserts_between_consecutive_users(self, kind):
        first = Message.user("hi")
        second = Message.user("are you there?")
        answer = Message.assistant("yes")

        repaired = repair_transcript([first, second, answer], kind)

        assert _roles(repaired) == [Role.USER, Role.ASSISTANT, Role.USER, Role.ASSISTANT]
        assert repaired[0] is first
        assert repaired[2] is second
        assert repaired[3] is answer
        assert repaired[1].content == CONTINUED_MARKER
        assert is_synthetic(repaired[1])

    @pytest.mark.parametrize("kind", STRICT)
    def test_prepends_user_when_first_is_not_user(self, kind):
        opener = Message.assistant("Hello, how can I help?")
        repaired = repair_transcript([opener], kind)

        assert _roles(repaired) == [Role.USER, Role.ASSISTANT]
        assert is_synthetic(repaired[0])
        assert repaired[1] is opener

    def test_leading_system_gets_user_before_it(self):
        repaired = repair_transcript(
            [Message.system("be brief"), Message.user("hi")], ProviderKind.ANTHROPIC
        )
        assert _roles(repaired) == [Role.USER, Role.SYSTEM, Role.USER]

    def test_consecutive_tool_results_get_assistant_between(self):
        messages = [
            Message.user("do both"),
            Message.assistant("", []),
            Message.tool("a", "one"),
            Message.tool("b", "two"),
        ]
        repaired = repair_transcript(messages, ProviderKind.GOOGLE)
        assert _roles(repaired) == [
            Role.USER, Role.ASSISTANT, Role.TOOL, Role.ASSISTANT, Role.TOOL,
        ]

    def test_already_valid_is_unchanged(self):
        messages = [Message.user("a"), Message.assistant("b"), Message.user("c")]
        repaired = repair_transcript(messages, ProviderKind.ANTHROPIC)
        assert repaired == messages
        assert all(r is m for r, m in zip(repaired, messages))

    def test_input_not_mutated(self):
        messages = [Message.user("a"), Message.user("b")]
        repair_transcript(messages, ProviderKind.ANTHROPIC)
        assert len(messages) == 2


# ---------------------------------------------------------------------------
# OpenAI and other providers
# ---------------------------------------------------------------------------

class TestFlexibleProviders:
    def test_openai_merges_leading_system_messages(self):
        messages = [
            Message.system("You are helpful."),
            Message.system("Answer in French."),
            Message.user("hi"),
        ]
        repaired = repair_transcript(messages, ProviderKind.OPENAI)

        assert _roles(repaired) == [Role.SYSTEM, Role.USER]
        assert repaired[0].content == "You are helpful.\n\nAnswer in French."
        assert repaired[1] is messages[2]

    def test_openai_single_system_kept_by_identity(self):
        messages = [Message.system("s"), Message.user("u"), Message.user("u2")]
        repaired = repair_transcript(messages, ProviderKind.OPENAI)
        assert all(r is m for r, m in zip(repaired, messages))
        assert len(repaired) == 3

    def test_openai_leaves_later_system_messages_alone(self):
        messages = [Message.user("u"), Message.system("a"), Message.system("b")]
        assert repair_transcript(messages, ProviderKind.OPENAI) == messages

    def test_other_passes_through(self):
        messages = [Message.assistant("a"), Message.assistant("b")]
        repaired = repair_transcript(messages, ProviderKind.OTHER)
        assert repaired == messages
        assert repaired is not messages

    @pytest.mark.parametrize("kind", list(ProviderKind))
    def test_empty_transcript(self, kind):
        assert repair_transcript([], kind) == []


# ---------------------------------------------------------------------------
# Properties
# ---------------------------------------------------------------------------

class TestRepairProperties:
    @given(transcripts)
    def test_strict_output_alternates(self, messages):
        for kind in STRICT:
            repaired = repair_transcript(messages, kind)
            if not messages:
                assert repaired == []
                continue
            assert repaired[0].role is Role.USER
            for prev, cur in zip(repaired, repaired[1:]):
                assert prev.role is not cur.role

    @given(transcripts)
    def test_repair_is_idempotent(self, messages):
        for kind in ProviderKind:
            once = repair_transcript(messages, kind)
            assert repair_transcript(once, kind) == once

    @given(transcripts)
    def test_strict_repair_only_inserts(self, messages):
        repaired = repair_transcript(messages, ProviderKind.ANTHROPIC)
        originals = [m for m in repaired if any(m is o for o in messages)]
        assert len(originals) == len(messages)
        assert all(a is b for a, b in zip(originals, messages))


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class TestHelpers:
    @pytest.mark.parametrize(
        "model,kind",
        [
            ("anthropic/claude-sonnet-4", ProviderKind.ANTHROPIC),
            ("claude/opus", ProviderKind.ANTHROPIC),
            ("openai/gpt-4o", ProviderKind.OPENAI),
            ("google/gemini-2.0-flash", ProviderKind.GOOGLE),
            ("gemini/pro", ProviderKind.GOOGLE),
            ("mistral/large", ProviderKind.OTHER),
            ("gpt-4o", ProviderKind.OTHER),
        ],
    )
    def test_provider_kind_for_model(self, model, kind):
        assert provider_kind_for_model(model) is kind

    def test_strict_alternation_flag(self):
        assert ProviderKind.ANTHROPIC.strict_alternation
        assert ProviderKind.GOOGLE.strict_alternation
        assert not ProviderKind.OPENAI.strict_alternation
        assert not ProviderKind.OTHER.strict_alternation

    def test_strip_synthetic(self):
        messages = [Message.user("a"), Message.user("b")]
        repaired = repair_transcript(messages, ProviderKind.ANTHROPIC)
        assert strip_synthetic(repaired) == messages

    def test_assistant_with_tool_calls_is_not_synthetic(self):
        from strand.protocols import ToolCall

        message = Message.assistant(CONTINUED_MARKER, [ToolCall("c", "t", {})])
        assert not is_synthetic(message)

    def test_real_message_with_marker_text_survives_strip(self):
        typed = Message.user(CONTINUED_MARKER)
        repaired = repair_transcript([typed, Message.user("next")], ProviderKind.ANTHROPIC)

        assert not is_synthetic(typed)
        assert strip_synthetic(repaired) == [typed, Message.user("next")]
        assert strip_synthetic(repaired)[0] is typed

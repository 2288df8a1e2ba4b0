"""Transcript repair for provider-specific turn-ordering rules.

Before every model call the pipeline normalizes the transcript for the
target provider:

- ANTHROPIC / GOOGLE: strict alternation. The sequence must start with a
  ``user`` message and no two adjacent messages may share a role; synthetic
  ``[continued]`` messages are inserted to satisfy both.
- OPENAI: flexible. A run of leading system messages is merged into one.
- OTHER: passed through unchanged.

Repair never mutates its input and keeps original messages by identity.
It is idempotent: repairing a repaired transcript changes nothing.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Sequence

from strand.protocols import Message, Role

logger = logging.getLogger(__name__)

CONTINUED_MARKER = "[continued]"

_OPPOSITE_ROLE: dict[Role, Role] = {
    Role.USER: Role.ASSISTANT,
    Role.ASSISTANT: Role.USER,
    Role.TOOL: Role.ASSISTANT,
    Role.SYSTEM: Role.USER,
}

_MODEL_PREFIXES: dict[str, str] = {
    "anthropic": "anthropic",
    "claude": "anthropic",
    "openai": "openai",
    "google": "google",
    "gemini": "google",
}


class ProviderKind(str, enum.Enum):
    """Turn-ordering rule set of a model provider."""

    ANTHROPIC = "anthropic"
    OPENAI = "openai"
    GOOGLE = "google"
    OTHER = "other"

    @property
    def strict_alternation(self) -> bool:
        return self in (ProviderKind.ANTHROPIC, ProviderKind.GOOGLE)


def provider_kind_for_model(model_id: str) -> ProviderKind:
    """Infer the provider kind from a ``provider/model`` identifier.

    Unprefixed identifiers map to OTHER.
    """
    if "/" not in model_id:
        return ProviderKind.OTHER
    prefix = model_id.split("/", 1)[0].lower()
    return ProviderKind(_MODEL_PREFIXES.get(prefix, "other"))


def synthetic_message(role: Role) -> Message:
    """Build a ``[continued]`` placeholder for the given role."""
    return Message(role=role, content=CONTINUED_MARKER, synthetic=True)


def is_synthetic(message: Message) -> bool:
    """True for placeholders inserted by :func:`repair_transcript`.

    A real message whose text happens to be ``[continued]`` is not one.
    """
    return message.synthetic


def strip_synthetic(messages: Sequence[Message]) -> list[Message]:
    """Drop inserted placeholders, e.g. before persisting history."""
    return [m for m in messages if not is_synthetic(m)]


def repair_transcript(
    messages: Sequence[Message], provider_kind: ProviderKind
) -> list[Message]:
    """Return a copy of *messages* satisfying *provider_kind*'s ordering rules.

    Args:
        messages: Transcript, oldest first.
        provider_kind: Target provider rule set.

    Returns:
        New list. Untouched messages are the same objects as in the input.
    """
    if not messages:
        return []
    if provider_kind.strict_alternation:
        repaired = _repair_alternation(messages)
    elif provider_kind is ProviderKind.OPENAI:
        repaired = _merge_leading_system(messages)
    else:
        return list(messages)

    if len(repaired) != len(messages):
        logger.debug(
            "Repaired transcript for %s: %d -> %d messages",
            provider_kind.value, len(messages), len(repaired),
        )
    return repaired


def _repair_alternation(messages: Sequence[Message]) -> list[Message]:
    result: list[Message] = []
    if messages[0].role is not Role.USER:
        result.append(synthetic_message(Role.USER))

    for message in messages:
        if result and result[-1].role is message.role:
            result.append(synthetic_message(_OPPOSITE_ROLE[message.role]))
        result.append(message)
    return result


def _merge_leading_system(messages: Sequence[Message]) -> list[Message]:
    leading = 0
    while leading < len(messages) and messages[leading].role is Role.SYSTEM:
        leading += 1
    if leading <= 1:
        return list(messages)

    merged = Message.system("\n\n".join(m.text for m in messages[:leading]))
    return [merged, *messages[leading:]]

"""Summarization prompts for transcript compaction.

Used by :class:`strand.operations.summarize.BackendSummarizer` to produce
the text of a Summary compaction.
"""

from __future__ import annotations

from collections.abc import Sequence

from strand.protocols import Message

DEFAULT_SUMMARIZE_SYSTEM: str = (
    "You are a context summarizer for an AI agent's conversation history. "
    "Your job is to produce a concise summary that preserves the information "
    "most relevant to continuing the task.\n\n"
    "Guidelines:\n"
    "- Write in third-person narrative prose.\n"
    "- Preserve specific details: names, numbers, file paths, code snippets, "
    "decisions, and agreed-upon constraints.\n"
    "- Summarize tool calls by their outcomes, not their raw output.\n"
    "- Omit pleasantries, greetings, and filler.\n"
    "- If a target token count is specified, aim for approximately that length.\n"
    '- Begin your summary with "Previously in this conversation:"'
)


def render_messages(messages: Sequence[Message]) -> str:
    """Render messages as ``[role]: text`` blocks."""
    parts: list[str] = []
    for message in messages:
        text = message.text
        if message.tool_calls:
            calls = ", ".join(f"{tc.name}({tc.arguments})" for tc in message.tool_calls)
            text = f"{text}\n[tool calls: {calls}]" if text else f"[tool calls: {calls}]"
        parts.append(f"[{message.role.value}]: {text}")
    return "\n\n".join(parts)


def build_summarize_prompt(
    messages_text: str,
    *,
    target_tokens: int | None = None,
    instructions: str | None = None,
) -> str:
    """Build the user prompt for summarization.

    Args:
        messages_text: The conversation text to summarize.
        target_tokens: Optional target token count for the summary.
        instructions: Extra guidance appended as "Additional instructions".

    Returns:
        The formatted user prompt string.
    """
    prompt = f"Summarize the following conversation segment:\n\n{messages_text}"
    if target_tokens is not None:
        prompt += f"\nTarget approximately {target_tokens} tokens."
    if instructions is not None:
        prompt += f"\nAdditional instructions: {instructions}"
    return prompt

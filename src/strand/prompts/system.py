"""System prompt assembly.

SystemPromptBuilder concatenates labelled sections into one system prompt:

    prompt = (
        SystemPromptBuilder()
        .with_base_prompt("You are a helpful assistant.")
        .with_dynamic_context()
        .with_tool_descriptions(executor_tools)
        .build()
    )
"""

from __future__ import annotations

import json
import os
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from strand.toolkit.models import ToolDefinition


@dataclass(frozen=True)
class PromptSection:
    label: str
    content: str


class SystemPromptBuilder:
    """Fluent builder; each ``with_*`` call appends a section."""

    def __init__(self) -> None:
        self._sections: list[PromptSection] = []

    @property
    def sections(self) -> list[PromptSection]:
        return list(self._sections)

    def with_section(self, label: str, content: str) -> SystemPromptBuilder:
        self._sections.append(PromptSection(label, content))
        return self

    def with_base_prompt(self, prompt: str) -> SystemPromptBuilder:
        return self.with_section("Base Prompt", prompt)

    def with_dynamic_context(
        self,
        now: datetime | None = None,
        workspace: str | None = None,
    ) -> SystemPromptBuilder:
        """Add the current UTC time and workspace path."""
        now = now or datetime.now(timezone.utc)
        if workspace is None:
            try:
                workspace = os.getcwd()
            except OSError:
                workspace = "unavailable"
        content = (
            f"Current UTC timestamp: {now.strftime('%Y-%m-%d %H:%M:%S UTC')}\n\n"
            f"Workspace path: {workspace}"
        )
        return self.with_section("Dynamic Context", content)

    def with_tool_descriptions(self, tools: Sequence[ToolDefinition]) -> SystemPromptBuilder:
        if not tools:
            return self.with_section("Tools", "No tools available.")
        content = "Available tools:\n\n"
        for tool in tools:
            content += (
                f"### {tool.name}\n{tool.description}\n\n"
                f"Parameters:\n```json\n{json.dumps(tool.parameters, indent=2)}\n```\n\n"
            )
        return self.with_section("Tools", content.rstrip())

    def with_memory_context(self, memory: str) -> SystemPromptBuilder:
        if not memory:
            return self
        return self.with_section("Memory Context", f"Relevant memory context:\n\n{memory}")

    def build(self) -> str:
        return "\n\n".join(f"## {s.label}\n{s.content}" for s in self._sections)

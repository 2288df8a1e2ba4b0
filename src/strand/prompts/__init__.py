"""Prompt construction for Strand."""

from strand.prompts.system import PromptSection, SystemPromptBuilder

__all__ = ["PromptSection", "SystemPromptBuilder"]

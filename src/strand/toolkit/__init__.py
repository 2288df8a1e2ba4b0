"""Tool capability for Strand: definitions, results and the executor."""

from strand.toolkit.definitions import spawn_agent_tool
from strand.toolkit.executor import ToolExecutor
from strand.toolkit.models import ToolDefinition, ToolResult

__all__ = ["ToolDefinition", "ToolExecutor", "ToolResult", "spawn_agent_tool"]

"""ToolExecutor: dispatches tool calls to registered handlers.

Provides a single ``execute()`` coroutine that looks up the tool by name,
invokes its handler with the provided arguments, and returns a structured
``ToolResult``. Synchronous handlers run in a worker thread so they never
block the event loop.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

from strand.exceptions import ToolExecutionError
from strand.toolkit.models import ToolResult

if TYPE_CHECKING:
    from strand.toolkit.models import ToolDefinition

logger = logging.getLogger(__name__)


class ToolExecutor:
    """Dispatches tool calls to registered handlers and returns structured results.

    Usage::

        executor = ToolExecutor([read_file_tool])
        result = await executor.execute("read_file", {"path": "README.md"})
        if result.success:
            print(result.output)
        else:
            print(result.error)
    """

    def __init__(self, tools: Iterable[ToolDefinition] = ()) -> None:
        self._tools: dict[str, ToolDefinition] = {}
        for tool in tools:
            self.register(tool)

    def register(self, tool: ToolDefinition) -> None:
        """Add or replace a tool.

        Raises:
            ValueError: If the tool has no handler.
        """
        if tool.handler is None:
            raise ValueError(f"Tool '{tool.name}' has no handler")
        self._tools[tool.name] = tool

    def unregister(self, tool_name: str) -> None:
        self._tools.pop(tool_name, None)

    def get(self, tool_name: str) -> ToolDefinition | None:
        return self._tools.get(tool_name)

    async def execute(self, tool_name: str, arguments: dict) -> ToolResult:
        """Execute a tool by name with the given arguments.

        Args:
            tool_name: Name of the tool to execute.
            arguments: Dict of arguments matching the tool's parameter schema.

        Returns:
            ToolResult with success/failure status and output/error.

        Raises:
            ToolExecutionError: Only when the handler raises one with
                ``fatal=True``.
        """
        tool = self._tools.get(tool_name)
        if tool is None:
            return ToolResult(
                tool_name=tool_name,
                success=False,
                error=f"Unknown tool: {tool_name}",
            )
        try:
            if inspect.iscoroutinefunction(tool.handler):
                result = await tool.handler(**arguments)
            else:
                result = await asyncio.to_thread(tool.handler, **arguments)
                if inspect.isawaitable(result):
                    result = await result
            return ToolResult(
                tool_name=tool_name,
                success=True,
                output="" if result is None else str(result),
            )
        except ToolExecutionError as exc:
            if exc.fatal:
                raise
            logger.debug("Tool %s failed: %s", tool_name, exc, exc_info=True)
            return ToolResult(tool_name=tool_name, success=False, error=str(exc))
        except Exception as exc:
            logger.debug("Tool %s failed: %s", tool_name, exc, exc_info=True)
            return ToolResult(
                tool_name=tool_name,
                success=False,
                error=f"{type(exc).__name__}: {exc}",
            )

    def schemas(self) -> list[dict]:
        """OpenAI function-calling schemas of every registered tool."""
        return [tool.to_openai() for tool in self._tools.values()]

    def available_tools(self) -> list[str]:
        """Return the names of all available tools.

        Returns:
            List of tool name strings.
        """
        return list(self._tools.keys())

    def __contains__(self, tool_name: object) -> bool:
        return tool_name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

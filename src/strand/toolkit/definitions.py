"""Built-in tool definitions.

The delegation tool is the only tool the execution core knows by name:
calls to it are routed to the SubagentOrchestrator instead of the
ToolExecutor.
"""

from __future__ import annotations

from strand.toolkit.models import ToolDefinition

SPAWN_AGENT_PARAMETERS: dict = {
    "type": "object",
    "properties": {
        "prompt": {
            "type": "string",
            "description": "Task for the subagent, written as a complete instruction.",
        },
        "agent_id": {
            "type": "string",
            "description": "Identifier of the agent to delegate to.",
        },
        "model": {
            "type": "string",
            "description": "Model the subagent should use. Defaults to the current model.",
        },
    },
    "required": ["prompt"],
}


def spawn_agent_tool(name: str = "spawn_agent") -> ToolDefinition:
    """Schema of the delegation tool, exposed to the model under *name*."""
    return ToolDefinition(
        name=name,
        description=(
            "Delegate a self-contained sub-task to a subagent and receive its "
            "final answer. Use for work that can be completed independently."
        ),
        parameters=SPAWN_AGENT_PARAMETERS,
    )

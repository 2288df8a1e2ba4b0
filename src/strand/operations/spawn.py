"""Subagent delegation.

The SubagentOrchestrator validates a delegation request against the parent
run's depth, model allowlist and token budget, then runs a child either
in-process through the same ExecutionPipeline or through an external
AgentSpawner. The child's output comes back as the parent's tool result;
its events are never forwarded to the parent's subscriber.

Validation order is fixed: depth, then allowlist, then budget.
"""

from __future__ import annotations

import itertools
import logging
import threading
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from strand.exceptions import (
    BudgetExhaustedError,
    DepthExceededError,
    ModelNotAllowedError,
    SubagentError,
)
from strand.models.run import AgentRunParams, ResourceBudget, RunStatus
from strand.protocols import Message, UsageReport
from strand.toolkit.models import ToolResult

if TYPE_CHECKING:
    from strand.abort import AbortController
    from strand.models.config import AgentConfig
    from strand.pipeline.loop import ExecutionPipeline
    from strand.protocols import AgentSpawner

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SpawnRequest:
    """A delegation request as issued by the model."""

    prompt: str
    agent_id: str | None = None
    model: str | None = None

    @classmethod
    def from_arguments(cls, arguments: Mapping[str, Any]) -> SpawnRequest:
        """Build from delegation tool-call arguments.

        Raises:
            ValueError: If ``prompt`` is missing or not a non-empty string.
        """
        prompt = arguments.get("prompt")
        if not isinstance(prompt, str) or not prompt.strip():
            raise ValueError("spawn request requires a non-empty 'prompt' string")
        agent_id = arguments.get("agent_id")
        model = arguments.get("model")
        return cls(
            prompt=prompt,
            agent_id=str(agent_id) if agent_id else None,
            model=str(model) if model else None,
        )


@dataclass(frozen=True)
class SubagentResult:
    """Final outcome of a child run."""

    session_key: str
    output: str
    usage: UsageReport = field(default_factory=UsageReport)
    status: RunStatus = RunStatus.COMPLETED
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status is RunStatus.COMPLETED


class SubagentOrchestrator:
    """Validates and executes delegation requests for a pipeline.

    Args:
        config: Agent configuration (``max_depth``,
            ``subagent_model_allowlist``).
        pipeline: Pipeline used for in-process children.
        spawner: Optional out-of-process spawner; takes precedence over
            in-process execution when set.
    """

    def __init__(
        self,
        config: AgentConfig,
        *,
        pipeline: ExecutionPipeline | None = None,
        spawner: AgentSpawner | None = None,
    ) -> None:
        if pipeline is None and spawner is None:
            raise ValueError("SubagentOrchestrator needs a pipeline or a spawner")
        self._config = config
        self._pipeline = pipeline
        self._spawner = spawner
        self._counter = itertools.count(1)
        self._counter_lock = threading.Lock()

    def _allowlist(self, parent: AgentRunParams) -> list[str] | None:
        if parent.model_allowlist:
            return list(parent.model_allowlist)
        return self._config.subagent_model_allowlist or None

    def validate(self, parent: AgentRunParams, request: SpawnRequest) -> ResourceBudget | None:
        """Check depth, allowlist and budget; return the child's budget.

        Raises:
            DepthExceededError: If ``parent.depth + 1 > max_depth``.
            ModelNotAllowedError: If the requested model is not allowlisted.
            BudgetExhaustedError: If the parent has no tokens left.
        """
        max_depth = self._config.max_depth
        if parent.depth + 1 > max_depth:
            raise DepthExceededError(parent.depth, max_depth)

        allowlist = self._allowlist(parent)
        if allowlist and request.model is not None and request.model not in allowlist:
            raise ModelNotAllowedError(request.model, allowlist)

        budget = parent.resource_budget
        if budget is None:
            return None
        if budget.remaining_tokens <= 0:
            raise BudgetExhaustedError(budget.remaining_tokens)
        return budget.derive()

    def child_params(
        self,
        parent: AgentRunParams,
        request: SpawnRequest,
        budget: ResourceBudget | None,
    ) -> AgentRunParams:
        with self._counter_lock:
            n = next(self._counter)
        allowlist = self._allowlist(parent)
        return AgentRunParams(
            session_key=f"{parent.session_key}/sub-{n}",
            depth=parent.depth + 1,
            thread_id=parent.thread_id,
            resource_budget=budget,
            model_allowlist=tuple(allowlist) if allowlist else None,
            agent_id=request.agent_id or parent.agent_id,
            model=request.model,
        )

    async def spawn(
        self,
        parent: AgentRunParams,
        request: SpawnRequest,
        *,
        abort: AbortController | None = None,
    ) -> SubagentResult:
        """Validate and run a child; deduct its usage from the parent budget.

        Raises:
            SubagentError: On validation failure. The spawner and pipeline
                are not invoked in that case.
        """
        budget = self.validate(parent, request)
        params = self.child_params(parent, request, budget)
        logger.info(
            "Spawning subagent %s at depth %d (model=%s)",
            params.session_key, params.depth, request.model or "default",
        )

        if self._spawner is not None:
            output = await self._spawner.spawn(
                request.agent_id or parent.agent_id or "default",
                request.prompt,
                request.model,
                params.context(),
            )
            result = SubagentResult(
                session_key=params.session_key, output=output.text, usage=output.usage
            )
            spent = result.usage.total_tokens
        else:
            run = await self._pipeline.run_child(
                params, [Message.user(request.prompt)], parent_abort=abort
            )
            result = SubagentResult(
                session_key=params.session_key,
                output=run.output,
                usage=run.usage,
                status=run.status,
                error=run.error,
            )
            # The derived budget also carries the child's own descendants.
            spent = budget.used_tokens if budget is not None else result.usage.total_tokens

        if parent.resource_budget is not None:
            remaining = parent.resource_budget.deduct(spent)
            logger.debug(
                "Subagent %s used %d tokens; parent has %d left",
                params.session_key, spent, remaining,
            )
        return result

    async def handle_tool_call(
        self,
        parent: AgentRunParams,
        arguments: Mapping[str, Any],
        *,
        abort: AbortController | None = None,
        tool_name: str | None = None,
    ) -> ToolResult:
        """Run a delegation tool call and wrap the outcome as a ToolResult.

        Validation failures become error results so the parent run can
        react to them.
        """
        name = tool_name or self._config.delegation_tool_name
        try:
            request = SpawnRequest.from_arguments(arguments)
            result = await self.spawn(parent, request, abort=abort)
        except ValueError as exc:
            return ToolResult(tool_name=name, success=False, error=str(exc))
        except SubagentError as exc:
            logger.debug("Subagent request rejected: %s", exc)
            return ToolResult(tool_name=name, success=False, error=f"{exc.kind}: {exc}")

        if not result.ok:
            return ToolResult(
                tool_name=name,
                success=False,
                error=f"subagent {result.status.value}: {result.error or 'no output'}",
            )
        return ToolResult(tool_name=name, success=True, output=result.output)

"""Strand exception hierarchy.

All Strand-specific exceptions inherit from StrandError. Provider errors
live in :mod:`strand.llm.errors` and inherit from the same base.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from strand.failover import ModelAttempt


class StrandError(Exception):
    """Base exception for all Strand errors."""

    kind = "error"


class ConfigError(StrandError):
    """Raised when agent configuration is missing or invalid."""

    kind = "config"


class ToolExecutionError(StrandError):
    """Raised by a tool to report a failure.

    Non-fatal failures are turned into ``tool`` messages the model can see
    on its next turn. A fatal failure ends the run.
    """

    kind = "tool_execution"

    def __init__(self, tool_name: str, message: str, *, fatal: bool = False) -> None:
        self.tool_name = tool_name
        self.fatal = fatal
        super().__init__(f"Tool '{tool_name}' failed: {message}")


class SubagentError(StrandError):
    """Base exception for subagent validation failures."""

    kind = "subagent"


class DepthExceededError(SubagentError):
    """Raised when spawning would exceed the maximum delegation depth."""

    kind = "depth_exceeded"

    def __init__(self, depth: int, max_depth: int) -> None:
        self.depth = depth
        self.max_depth = max_depth
        super().__init__(
            f"Maximum subagent depth exceeded: parent depth {depth}, max {max_depth}"
        )


class ModelNotAllowedError(SubagentError):
    """Raised when a subagent requests a model outside the allowlist."""

    kind = "model_not_allowed"

    def __init__(self, model: str | None, allowlist: list[str]) -> None:
        self.model = model
        self.allowlist = list(allowlist)
        super().__init__(
            f"Model '{model}' is not in the subagent allowlist: "
            f"{', '.join(self.allowlist)}"
        )


class BudgetExhaustedError(SubagentError):
    """Raised when a run has no token budget left."""

    kind = "budget_exhausted"

    def __init__(self, remaining_tokens: int, required_tokens: int = 1) -> None:
        self.remaining_tokens = remaining_tokens
        self.required_tokens = required_tokens
        super().__init__(
            f"Token budget exhausted: {remaining_tokens} tokens remaining "
            f"(need at least {required_tokens})"
        )


class AllModelsExhaustedError(StrandError):
    """Every model in the failover chain was tried without success."""

    kind = "all_models_exhausted"

    def __init__(
        self,
        attempts: list[ModelAttempt],
        last_error: BaseException | None = None,
    ) -> None:
        self.attempts = list(attempts)
        self.last_error = last_error
        models = ", ".join(self.attempted_models) or "none"
        msg = f"All models exhausted. Attempted: {models}"
        if last_error is not None:
            msg += f". Last error: {last_error}"
        super().__init__(msg)

    @property
    def attempted_models(self) -> tuple[str, ...]:
        """Distinct model ids in the order they were first attempted."""
        seen: dict[str, None] = {}
        for attempt in self.attempts:
            seen.setdefault(attempt.model_id, None)
        return tuple(seen)


class AbortedError(StrandError):
    """Raised when a run is cancelled through its abort controller."""

    kind = "aborted"

    def __init__(self, session_key: str) -> None:
        self.session_key = session_key
        super().__init__(f"Run aborted for session: {session_key}")


class IterationLimitError(StrandError):
    """Raised when the turn loop exceeds its configured iteration limit."""

    kind = "iteration_limit"

    def __init__(self, max_iterations: int) -> None:
        self.max_iterations = max_iterations
        super().__init__(
            f"Turn loop did not finish within {max_iterations} iterations"
        )

"""ExecutionPipeline: the agent turn loop.

One call to :meth:`ExecutionPipeline.run` drives a run from IDLE to a
terminal state:

    IDLE -> STREAMING -> (TOOL_DISPATCH -> STREAMING)* -> COMPLETED | ABORTED | FAILED

Each iteration repairs the transcript for the target provider, compacts it
when the context window guard asks for it, calls the current model of the
failover chain (racing every stream increment against the abort signal),
forwards text as events, and dispatches tool calls, delegating to the
SubagentOrchestrator for the delegation tool.

Provider errors are handled by the FailoverController; tool errors become
``tool`` messages; every run ends with exactly one Done or ErrorEvent.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
import time
from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING

from strand.abort import AbortController, AbortRegistry, default_registry
from strand.engine.tokens import CharEstimateCounter, TiktokenCounter
from strand.exceptions import (
    AbortedError,
    AllModelsExhaustedError,
    BudgetExhaustedError,
    ConfigError,
    IterationLimitError,
    StrandError,
    ToolExecutionError,
)
from strand.failover import (
    Abort,
    CompactAndRetry,
    FailoverController,
    FailoverToNext,
    RetryWithNextAuth,
    WaitAndRetry,
)
from strand.models.compaction import HardClear, Summary
from strand.models.events import (
    Done,
    ErrorEvent,
    EventCollector,
    ModelSwitch,
    TextDelta,
    ToolCallRequested,
    ToolResultEvent,
    UsageEvent,
)
from strand.models.run import AgentRunResult, RunStatus
from strand.operations.compaction import (
    compact_transcript,
    estimate_tokens,
    has_oversized_tool_results,
    select_strategy,
    split_recent,
)
from strand.operations.spawn import SubagentOrchestrator
from strand.pipeline.models import ModelTurn, PipelineState, RunContext
from strand.prompts.system import SystemPromptBuilder
from strand.protocols import Message, Role, UsageReport
from strand.toolkit.definitions import spawn_agent_tool
from strand.toolkit.executor import ToolExecutor
from strand.toolkit.models import ToolResult
from strand.transcript import ProviderKind, provider_kind_for_model, repair_transcript, strip_synthetic

if TYPE_CHECKING:
    from strand.llm.protocols import ModelBackend
    from strand.models.compaction import CompactionStrategy
    from strand.models.config import AgentConfig
    from strand.models.events import AgentEvent
    from strand.models.run import AgentRunParams
    from strand.protocols import (
        AgentSpawner,
        EventSubscriber,
        SessionStore,
        Summarizer,
        TokenCounter,
        ToolCall,
    )
    from strand.toolkit.models import ToolDefinition
    from strand.usage import UsageTracker

logger = logging.getLogger(__name__)


class ExecutionPipeline:
    """Drives agent runs against a model backend.

    A pipeline is shared by any number of concurrent runs; all per-run state
    lives in a RunContext. The abort registry is the only structure shared
    across runs.

    Usage::

        pipeline = ExecutionPipeline(backend, AgentConfig.from_dict({
            "model_chain": ["openai/gpt-4o", "openai/gpt-4o-mini"],
        }))
        result = await pipeline.run(
            AgentRunParams(session_key="s1"),
            [Message.user("Hello")],
            print,
        )
    """

    def __init__(
        self,
        backend: ModelBackend,
        config: AgentConfig,
        *,
        tools: ToolExecutor | Iterable[ToolDefinition] | None = None,
        registry: AbortRegistry | None = None,
        token_counter: TokenCounter | None = None,
        summarizer: Summarizer | None = None,
        session_store: SessionStore | None = None,
        spawner: AgentSpawner | None = None,
        usage_tracker: UsageTracker | None = None,
    ) -> None:
        self._backend = backend
        self._config = config
        if isinstance(tools, ToolExecutor):
            self._tools = tools
        else:
            self._tools = ToolExecutor(tools or ())
        self._registry = registry if registry is not None else default_registry
        if token_counter is not None:
            self._counter = token_counter
        elif config.tokenizer_encoding:
            self._counter = TiktokenCounter(encoding_name=config.tokenizer_encoding)
        else:
            self._counter = CharEstimateCounter()
        self._summarizer = summarizer
        self._store = session_store
        self._usage_tracker = usage_tracker
        self._guard = config.guard()
        self._orchestrator = SubagentOrchestrator(config, pipeline=self, spawner=spawner)

    @property
    def config(self) -> AgentConfig:
        return self._config

    @property
    def registry(self) -> AbortRegistry:
        return self._registry

    @property
    def tools(self) -> ToolExecutor:
        return self._tools

    @property
    def orchestrator(self) -> SubagentOrchestrator:
        return self._orchestrator

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def run(
        self,
        params: AgentRunParams,
        transcript: Sequence[Message],
        subscriber: EventSubscriber | None = None,
    ) -> AgentRunResult:
        """Run the turn loop to a terminal state.

        Never raises for provider, tool or subagent failures: the outcome is
        in the returned result and in the single terminal event delivered to
        *subscriber*.
        """
        return await self._run(params, transcript, subscriber)

    async def run_child(
        self,
        params: AgentRunParams,
        transcript: Sequence[Message],
        *,
        parent_abort: AbortController | None = None,
    ) -> AgentRunResult:
        """Run a subagent in-process; its events stay private."""
        return await self._run(params, transcript, EventCollector(), parent_abort=parent_abort)

    def abort(self, session_key: str) -> bool:
        """Abort a live run by session key."""
        return self._registry.abort(session_key)

    async def _run(
        self,
        params: AgentRunParams,
        transcript: Sequence[Message],
        subscriber: EventSubscriber | None,
        *,
        parent_abort: AbortController | None = None,
    ) -> AgentRunResult:
        with self._registry.scoped(
            params.session_key, grace_period=self._config.abort_grace_period
        ) as abort:
            if parent_abort is not None:
                parent_abort.link(abort)
            ctx = RunContext(
                params=params,
                transcript=list(transcript),
                abort=abort,
                subscriber=subscriber,
            )
            try:
                return await self._drive(ctx)
            finally:
                if parent_abort is not None:
                    parent_abort.unlink(abort)

    async def _drive(self, ctx: RunContext) -> AgentRunResult:
        try:
            ctx.failover = self._failover_for(ctx.params)
            self._prepend_system_prompt(ctx)
            output = await self._loop(ctx)
        except AbortedError:
            logger.warning("Run %s aborted", ctx.session_key)
            return await self._fail(ctx, RunStatus.ABORTED, "aborted", "aborted")
        except AllModelsExhaustedError as exc:
            return await self._fail(
                ctx, RunStatus.FAILED, str(exc), exc.kind, attempted_models=exc.attempted_models
            )
        except StrandError as exc:
            logger.debug("Run %s failed: %s", ctx.session_key, exc)
            return await self._fail(ctx, RunStatus.FAILED, str(exc), exc.kind)
        except asyncio.CancelledError:
            await self._fail(ctx, RunStatus.ABORTED, "aborted", "aborted")
            raise
        except Exception as exc:
            logger.exception("Run %s crashed", ctx.session_key)
            return await self._fail(ctx, RunStatus.FAILED, f"{type(exc).__name__}: {exc}", "internal")

        ctx.state = PipelineState.COMPLETED
        result = self._result(ctx, RunStatus.COMPLETED, output=output)
        await self._persist(ctx)
        await self._emit_terminal(ctx, Done(result=result))
        return result

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def _failover_for(self, params: AgentRunParams) -> FailoverController:
        config = self._config
        if params.model:
            models = [params.model]
        else:
            allowlist = list(params.model_allowlist) if params.model_allowlist else None
            models = config.model_chain.restricted_to(allowlist)
        if not models:
            raise ConfigError(
                f"No model of the chain is allowed for session {params.session_key}"
            )
        return FailoverController(
            models,
            config.credentials,
            max_attempts=config.max_model_attempts,
            max_waits_per_model=config.max_waits_per_model,
            max_compactions_per_model=config.max_compactions_per_model,
        )

    def _provider_kind(self, ctx: RunContext) -> ProviderKind:
        if self._config.provider_kind is not None:
            return self._config.provider_kind
        return provider_kind_for_model(ctx.failover.current_model())

    def _tool_definitions(self, params: AgentRunParams) -> list[ToolDefinition]:
        tools = [self._tools.get(name) for name in self._tools.available_tools()]
        if params.depth < self._config.max_depth:
            tools.append(spawn_agent_tool(self._config.delegation_tool_name))
        return tools

    def _prepend_system_prompt(self, ctx: RunContext) -> None:
        prompt = self._config.system_prompt
        if not prompt:
            return
        if ctx.transcript and ctx.transcript[0].role is Role.SYSTEM:
            return
        builder = SystemPromptBuilder().with_base_prompt(prompt)
        tools = self._tool_definitions(ctx.params)
        if tools:
            builder = builder.with_tool_descriptions(tools)
        ctx.transcript.insert(0, Message.system(builder.build()))

    # ------------------------------------------------------------------
    # Turn loop
    # ------------------------------------------------------------------

    async def _loop(self, ctx: RunContext) -> str:
        max_iterations = self._config.max_iterations
        while ctx.iterations < max_iterations:
            ctx.iterations += 1
            ctx.abort.raise_if_aborted()
            await self._maybe_compact(ctx)

            turn = await self._call_model(ctx)

            if not turn.tool_calls:
                ctx.append(Message.assistant(turn.text))
                return turn.text

            ctx.state = PipelineState.TOOL_DISPATCH
            ctx.append(Message.assistant(turn.text, turn.tool_calls))
            for call in turn.tool_calls:
                await self._emit(ctx, ToolCallRequested(tool_call=call))
                result = await self._dispatch(ctx, call)
                ctx.append(Message.tool(call.id, result.content))
                await self._emit(
                    ctx,
                    ToolResultEvent(
                        call_id=call.id,
                        tool_name=call.name,
                        content=result.content,
                        is_error=not result.success,
                    ),
                )
                ctx.abort.raise_if_aborted()

        raise IterationLimitError(max_iterations)

    # ------------------------------------------------------------------
    # Compaction
    # ------------------------------------------------------------------

    async def _maybe_compact(self, ctx: RunContext) -> None:
        repaired = repair_transcript(ctx.transcript, self._provider_kind(ctx))
        tokens = estimate_tokens(repaired, self._counter)
        oversized = has_oversized_tool_results(repaired, self._config.tool_result_max_chars)
        if not (self._guard.needs_compaction(tokens) or oversized):
            return
        logger.info(
            "Session %s at %d tokens (%s); compacting",
            ctx.session_key, tokens, self._guard.severity(tokens).value,
        )
        await self._compact(ctx, tokens, allow_hard_clear=False)

    async def _compact(
        self, ctx: RunContext, tokens: int, *, allow_hard_clear: bool = True
    ) -> bool:
        """Compact ``ctx.transcript`` in place. True if anything changed.

        With *allow_hard_clear*, a strategy that removes nothing falls back
        to ``HardClear``. Pre-call compaction passes False.
        """
        config = self._config
        strategy = select_strategy(
            self._guard,
            tokens,
            ctx.transcript,
            keep_recent=config.keep_recent,
            hard_clear_keep_recent=config.hard_clear_keep_recent,
            max_chars=config.tool_result_max_chars,
            chunk_size=config.chunk_size,
        )
        strategy = await self._with_summary(ctx, strategy)
        compacted, _ = compact_transcript(ctx.transcript, strategy, self._counter)
        if _unchanged(ctx.transcript, compacted):
            if isinstance(strategy, HardClear) or not allow_hard_clear:
                return False
            # The chosen strategy had nothing to remove; fall back to HardClear.
            compacted, _ = compact_transcript(
                ctx.transcript, HardClear(config.hard_clear_keep_recent), self._counter
            )
            if _unchanged(ctx.transcript, compacted):
                return False
        ctx.transcript = compacted
        return True

    async def _with_summary(
        self, ctx: RunContext, strategy: CompactionStrategy
    ) -> CompactionStrategy:
        if not isinstance(strategy, Summary) or strategy.summary_text or self._summarizer is None:
            return strategy
        older, _ = split_recent(ctx.transcript, strategy.keep_recent)
        if not older:
            return strategy
        try:
            text = await ctx.abort.race(self._summarizer.summarize(older))
        except AbortedError:
            raise
        except Exception:
            logger.warning(
                "Summarizer failed for session %s; using placeholder", ctx.session_key,
                exc_info=True,
            )
            return strategy
        return Summary(keep_recent=strategy.keep_recent, summary_text=text or None)

    # ------------------------------------------------------------------
    # Model calls and failover
    # ------------------------------------------------------------------

    async def _call_model(self, ctx: RunContext) -> ModelTurn:
        failover = ctx.failover
        budget = ctx.params.resource_budget
        while True:
            ctx.abort.raise_if_aborted()
            if budget is not None and not budget.has_budget(1):
                raise BudgetExhaustedError(budget.remaining_tokens)

            model = failover.current_model()
            messages = repair_transcript(ctx.transcript, self._provider_kind(ctx))
            ctx.state = PipelineState.STREAMING
            ctx.model = model
            started = time.monotonic()
            try:
                turn = await self._stream(ctx, messages, model, failover.current_credential())
            except AbortedError:
                raise
            except Exception as exc:
                action = failover.classify_error(exc)
                failover.record_attempt(exc, action, time.monotonic() - started)
                await self._apply(ctx, action, exc)
                continue

            failover.record_success(time.monotonic() - started)
            await self._account(ctx, turn, model)
            return turn

    async def _stream(
        self,
        ctx: RunContext,
        messages: list[Message],
        model: str,
        credential: str | None,
    ) -> ModelTurn:
        schemas = [tool.to_openai() for tool in self._tool_definitions(ctx.params)]
        stream = self._backend.stream(
            messages, model=model, credential=credential, tools=schemas or None
        ).__aiter__()
        parts: list[str] = []
        tool_calls: list[ToolCall] = []
        usage: UsageReport | None = None
        finish_reason: str | None = None
        try:
            while True:
                try:
                    chunk = await ctx.abort.race(stream.__anext__())
                except StopAsyncIteration:
                    break
                if chunk.delta:
                    parts.append(chunk.delta)
                    await self._emit(ctx, TextDelta(text=chunk.delta))
                if chunk.tool_calls:
                    tool_calls.extend(chunk.tool_calls)
                if chunk.usage is not None:
                    usage = chunk.usage
                if chunk.finish_reason:
                    finish_reason = chunk.finish_reason
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

        text = "".join(parts)
        if usage is None:
            usage = UsageReport(
                input_tokens=estimate_tokens(messages, self._counter),
                output_tokens=self._counter.count_text(
                    text + "".join(json.dumps(tc.arguments) for tc in tool_calls)
                ),
            )
        return ModelTurn(
            text=text, tool_calls=tuple(tool_calls), usage=usage, finish_reason=finish_reason
        )

    async def _apply(self, ctx: RunContext, action: object, error: BaseException) -> None:
        """Apply a failover action for a failed call."""
        failover = ctx.failover
        model = failover.current_model()

        if isinstance(action, RetryWithNextAuth):
            failover.rotate_credential()
            return
        if isinstance(action, WaitAndRetry):
            failover.note_wait()
            logger.warning(
                "Rate limited on %s; retrying in %.1fs", model, action.delay
            )
            await ctx.abort.sleep(action.delay)
            return
        if isinstance(action, CompactAndRetry):
            failover.note_compaction()
            tokens = estimate_tokens(
                repair_transcript(ctx.transcript, self._provider_kind(ctx)), self._counter
            )
            if await self._compact(ctx, tokens):
                return
            logger.info("Compaction could not shrink the transcript for %s", model)
            failover.mark_compaction_exhausted()
            action = FailoverToNext()
            failover.record_attempt(error, action, 0.0)
        if isinstance(action, FailoverToNext):
            nxt = failover.advance()
            if nxt is None:
                raise failover.exhausted_error(error) from error
            await self._emit(
                ctx,
                ModelSwitch(from_model=model, to_model=nxt, reason=_reason(error)),
            )
            return
        if isinstance(action, Abort):
            raise action.error

    async def _account(self, ctx: RunContext, turn: ModelTurn, model: str) -> None:
        usage = turn.usage
        ctx.usage.merge(usage)
        if ctx.params.resource_budget is not None:
            ctx.params.resource_budget.deduct(usage.total_tokens)
        if self._usage_tracker is not None:
            self._usage_tracker.record(ctx.session_key, ctx.params.agent_id, usage)
        await self._emit(ctx, UsageEvent(usage=usage, model=model))

    # ------------------------------------------------------------------
    # Tool dispatch
    # ------------------------------------------------------------------

    async def _dispatch(self, ctx: RunContext, call: ToolCall) -> ToolResult:
        if call.name == self._config.delegation_tool_name:
            work = self._delegate(ctx, call)
        else:
            work = self._tools.execute(call.name, call.arguments)
        return await ctx.abort.race_with_grace(work)

    async def _delegate(self, ctx: RunContext, call: ToolCall) -> ToolResult:
        try:
            return await self._orchestrator.handle_tool_call(
                ctx.params, call.arguments, abort=ctx.abort, tool_name=call.name
            )
        except AbortedError:
            raise
        except ToolExecutionError as exc:
            if exc.fatal:
                raise
            return ToolResult(tool_name=call.name, success=False, error=str(exc))
        except Exception as exc:
            logger.debug("Delegation from %s failed: %s", ctx.session_key, exc, exc_info=True)
            return ToolResult(
                tool_name=call.name, success=False, error=f"{type(exc).__name__}: {exc}"
            )

    # ------------------------------------------------------------------
    # Events and termination
    # ------------------------------------------------------------------

    async def _emit(self, ctx: RunContext, event: AgentEvent) -> None:
        if ctx.subscriber is None:
            return
        try:
            outcome = ctx.subscriber(event)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception:
            logger.warning(
                "Subscriber for session %s raised on %s",
                ctx.session_key, type(event).__name__, exc_info=True,
            )

    async def _emit_terminal(self, ctx: RunContext, event: AgentEvent) -> None:
        if ctx.terminal_emitted:
            return
        ctx.terminal_emitted = True
        await self._emit(ctx, event)

    def _result(
        self,
        ctx: RunContext,
        status: RunStatus,
        *,
        output: str = "",
        error: str | None = None,
    ) -> AgentRunResult:
        return AgentRunResult(
            session_key=ctx.session_key,
            status=status,
            output=output,
            usage=ctx.usage,
            attempts=list(ctx.failover.attempts) if ctx.failover else [],
            messages=list(ctx.transcript),
            error=error,
            model=ctx.model,
        )

    async def _fail(
        self,
        ctx: RunContext,
        status: RunStatus,
        message: str,
        kind: str,
        *,
        attempted_models: tuple[str, ...] = (),
    ) -> AgentRunResult:
        ctx.state = PipelineState.ABORTED if status is RunStatus.ABORTED else PipelineState.FAILED
        result = self._result(ctx, status, error=message)
        await self._persist(ctx)
        await self._emit_terminal(
            ctx,
            ErrorEvent(
                message=message, kind=kind, attempted_models=attempted_models, result=result
            ),
        )
        return result

    async def _persist(self, ctx: RunContext) -> None:
        if self._store is None or not ctx.produced:
            return
        try:
            await self._store.append(ctx.session_key, strip_synthetic(ctx.produced))
        except Exception:
            logger.warning("Failed to persist session %s", ctx.session_key, exc_info=True)


def _unchanged(before: Sequence[Message], after: Sequence[Message]) -> bool:
    return len(before) == len(after) and all(a is b for a, b in zip(before, after))


def _reason(error: BaseException) -> str:
    kind = getattr(error, "kind", None)
    return kind if isinstance(kind, str) else type(error).__name__

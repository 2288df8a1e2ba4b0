"""strand run -- stream one agent run against an OpenAI-compatible backend."""

from __future__ import annotations

import asyncio
import uuid

import click

from strand.cli.commands.config import build_config, chain_options
from strand.cli.formatting import format_event, format_result
from strand.llm.client import OpenAIBackend
from strand.models.run import AgentRunParams, ResourceBudget
from strand.pipeline.loop import ExecutionPipeline
from strand.protocols import Message


def _make_backend() -> OpenAIBackend:
    return OpenAIBackend()


@click.command()
@click.argument("prompt")
@chain_options
@click.option("--session", "session_key", default=None, help="Session key (random if omitted).")
@click.option("--budget", type=int, default=None, help="Token budget for the run and its subagents.")
@click.option("--stats/--no-stats", default=True, help="Print a usage summary at the end.")
def run(
    prompt: str,
    model: str,
    fallbacks: tuple[str, ...],
    system: str | None,
    config_file: str | None,
    session_key: str | None,
    budget: int | None,
    stats: bool,
) -> None:
    """Send PROMPT to the model chain and stream the answer."""
    from strand.cli import _cli_session

    with _cli_session() as console:
        config = build_config(model, fallbacks, system, config_file)
        params = AgentRunParams(
            session_key=session_key or f"cli-{uuid.uuid4().hex[:8]}",
            resource_budget=ResourceBudget(max_tokens=budget) if budget is not None else None,
        )

        async def _go():
            backend = _make_backend()
            try:
                pipeline = ExecutionPipeline(backend, config)
                return await pipeline.run(
                    params,
                    [Message.user(prompt)],
                    lambda event: format_event(event, console),
                )
            finally:
                await backend.aclose()

        result = asyncio.run(_go())
        if stats:
            format_result(result, console)
        if not result.ok:
            raise SystemExit(1)

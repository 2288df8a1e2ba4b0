"""Rich formatting helpers for the Strand CLI.

Provides functions that format SDK data structures for terminal display.
Rich auto-detects TTY and degrades gracefully when piped (no ANSI codes).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from strand.models.events import (
    Done,
    ErrorEvent,
    ModelSwitch,
    TextDelta,
    ToolCallRequested,
    ToolResultEvent,
)
from strand.transcript import is_synthetic

if TYPE_CHECKING:
    from strand.models.config import AgentConfig
    from strand.models.events import AgentEvent
    from strand.models.run import AgentRunResult
    from strand.protocols import Message

_PREVIEW_CHARS = 80


def get_console() -> Console:
    """Create a Rich Console that auto-detects TTY for graceful pipe degradation."""
    return Console(stderr=False)


def format_event(event: AgentEvent, console: Console) -> None:
    """Render one pipeline event as it streams in."""
    if isinstance(event, TextDelta):
        console.print(event.text, end="", highlight=False, markup=False)
    elif isinstance(event, ModelSwitch):
        console.print(
            f"\n[yellow]switching model[/yellow] {escape(event.from_model)} -> "
            f"{escape(event.to_model)} [dim]({escape(event.reason)})[/dim]"
        )
    elif isinstance(event, ToolCallRequested):
        console.print(f"\n[cyan]tool call[/cyan] {escape(event.tool_call.name)}")
    elif isinstance(event, ToolResultEvent):
        style = "red" if event.is_error else "green"
        preview = event.content[:_PREVIEW_CHARS].replace("\n", " ")
        console.print(f"[{style}]  -> {escape(preview)}[/{style}]")
    elif isinstance(event, ErrorEvent):
        console.print()
        msg = event.message
        if event.attempted_models:
            msg += f" (attempted: {', '.join(event.attempted_models)})"
        format_error(msg, console)
    elif isinstance(event, Done):
        console.print()


def format_result(result: AgentRunResult, console: Console) -> None:
    """One-line run summary."""
    color = "green" if result.ok else "red"
    console.print(
        f"[dim]{result.status.value}[/dim] [{color}]{escape(result.model or '-')}[/{color}]  "
        f"tokens in={result.usage.input_tokens} out={result.usage.output_tokens}  "
        f"attempts={len(result.attempts)}",
        highlight=False,
    )


def format_transcript(messages: list[Message], console: Console) -> None:
    """Display a transcript as a table, marking synthetic messages."""
    if not messages:
        console.print("[dim]Empty transcript.[/dim]")
        return

    table = Table(show_header=True, header_style="bold", box=None, pad_edge=False)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Role", style="cyan")
    table.add_column("Content")

    for i, message in enumerate(messages):
        text = message.text.replace("\n", " ")
        if len(text) > _PREVIEW_CHARS:
            text = text[:_PREVIEW_CHARS] + "..."
        if message.tool_calls:
            names = ", ".join(tc.name for tc in message.tool_calls)
            text = f"{text} [tool calls: {names}]".strip()
        content = escape(text)
        if is_synthetic(message):
            content = f"[dim italic]{content}[/dim italic]"
        table.add_row(str(i), message.role.value, content)

    console.print(table)


def format_config(config: AgentConfig, console: Console) -> None:
    """Display the effective agent configuration."""
    table = Table(show_header=True, header_style="bold", box=None, pad_edge=False)
    table.add_column("Setting", style="cyan")
    table.add_column("Value")

    table.add_row("models", escape(" -> ".join(config.model_chain.models)))
    table.add_row("provider_kind", config.resolved_provider_kind().value)
    for name, value in config.model_dump(exclude={"model_chain", "credentials", "provider_kind"}).items():
        table.add_row(name, escape(str(value)))
    counts = {model: len(creds) for model, creds in config.credentials.items()}
    table.add_row("credentials", escape(str(counts)) if counts else "[dim]backend default[/dim]")

    console.print(table)


def format_error(message: str, console: Console) -> None:
    """Display an error message."""
    console.print(f"[red]Error:[/red] {message}", highlight=False)

"""strand repair -- normalize a JSON transcript for a provider."""

from __future__ import annotations

import json

import click

from strand.cli.formatting import format_transcript
from strand.protocols import Message
from strand.transcript import ProviderKind, repair_transcript


def load_transcript(path: str) -> list[Message]:
    """Read a JSON list of chat messages (or ``{"messages": [...]}``)."""
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("messages")
    if not isinstance(data, list):
        raise ValueError("Transcript must be a JSON list of messages or an object with 'messages'")
    return [Message.from_dict(d) for d in data]


@click.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--provider",
    "provider",
    type=click.Choice([k.value for k in ProviderKind]),
    required=True,
    help="Target provider rule set.",
)
@click.option("--json", "as_json", is_flag=True, help="Print the repaired transcript as JSON.")
def repair(file: str, provider: str, as_json: bool) -> None:
    """Repair the transcript in FILE for PROVIDER's turn-ordering rules."""
    from strand.cli import _cli_session

    with _cli_session() as console:
        messages = load_transcript(file)
        repaired = repair_transcript(messages, ProviderKind(provider))
        if as_json:
            click.echo(json.dumps([m.to_dict() for m in repaired], indent=2))
            return
        format_transcript(repaired, console)
        inserted = len(repaired) - len(messages)
        console.print(f"[dim]{len(messages)} -> {len(repaired)} messages ({inserted:+d})[/dim]")

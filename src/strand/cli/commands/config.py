"""strand config -- show the effective agent configuration."""

from __future__ import annotations

import json

import click

from strand.cli.formatting import format_config
from strand.models.config import AgentConfig


def chain_options(f):
    """Options shared by commands that build an AgentConfig."""
    f = click.option(
        "--config", "config_file", default=None,
        type=click.Path(exists=True, dir_okay=False),
        help="JSON file with AgentConfig fields.",
    )(f)
    f = click.option("--system", default=None, help="System prompt.")(f)
    f = click.option(
        "--fallback", "fallbacks", multiple=True,
        help="Fallback model (repeatable, tried in order).",
    )(f)
    f = click.option(
        "--model", "-m", default="openai/gpt-4o-mini", envvar="STRAND_MODEL",
        show_default=True, help="Primary model.",
    )(f)
    return f


def build_config(
    model: str,
    fallbacks: tuple[str, ...],
    system: str | None,
    config_file: str | None,
) -> AgentConfig:
    """Merge a JSON config file with command-line options (options win)."""
    data: dict = {}
    if config_file is not None:
        with open(config_file, encoding="utf-8") as f:
            data = json.load(f)
    if fallbacks or "model_chain" not in data:
        data["model_chain"] = {"primary": model, "fallbacks": list(fallbacks)}
    if system is not None:
        data["system_prompt"] = system
    return AgentConfig.from_dict(data)


@click.command()
@chain_options
@click.option("--json", "as_json", is_flag=True, help="Print as JSON.")
def config(
    model: str,
    fallbacks: tuple[str, ...],
    system: str | None,
    config_file: str | None,
    as_json: bool,
) -> None:
    """Show the configuration a run would use."""
    from strand.cli import _cli_session

    with _cli_session() as console:
        cfg = build_config(model, fallbacks, system, config_file)
        if as_json:
            click.echo(cfg.model_dump_json(indent=2))
            return
        format_config(cfg, console)

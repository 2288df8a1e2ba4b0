"""Strand CLI -- terminal interface for the agent execution core.

This module is NEVER imported from strand/__init__.py.
It is only loaded via the ``strand`` entry point defined in pyproject.toml.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING

try:
    import click
    from dotenv import load_dotenv
except ImportError:
    raise ImportError(
        "CLI dependencies not installed. Install with: pip install strand[cli]"
    ) from None

from strand.cli.formatting import format_error, get_console

if TYPE_CHECKING:
    from collections.abc import Iterator

    from rich.console import Console


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Log pipeline activity to stderr.")
@click.option(
    "--env-file",
    default=None,
    type=click.Path(dir_okay=False),
    help="Load environment variables from this file (default: .env).",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, env_file: str | None) -> None:
    """Strand: run LLM agents with failover, compaction and delegation."""
    load_dotenv(env_file)
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    if verbose:
        _configure_logging()


def _configure_logging() -> None:
    from rich.console import Console
    from rich.logging import RichHandler

    handler = RichHandler(console=Console(stderr=True), show_path=False)
    root = logging.getLogger("strand")
    root.addHandler(handler)
    root.setLevel(logging.DEBUG)


@contextmanager
def _cli_session() -> Iterator[Console]:
    """Yield a console and format any exception as a CLI error.

    Commands with special exception handling can catch specific errors inside
    the ``with`` block before this context manager's generic handler runs.
    """
    console = get_console()
    try:
        yield console
    except SystemExit:
        raise
    except Exception as e:
        format_error(str(e), console)
        raise SystemExit(1) from None


# Register subcommands after cli group is defined
from strand.cli.commands.config import config  # noqa: E402
from strand.cli.commands.repair import repair  # noqa: E402
from strand.cli.commands.run import run  # noqa: E402

cli.add_command(run)
cli.add_command(repair)
cli.add_command(config)

"""Unified CLI entry point for siteverify.

Config precedence: settings.default.toml -> settings.{env}.toml -> settings.local.toml
-> env vars (SITEVERIFY_* with double underscores) -> CLI flags.
"""

from __future__ import annotations

import logging
import sys

import typer

from siteverify.cli.run_cmd import run_targets
from siteverify.cli.settings_cmd import settings_app
from siteverify.cli.targets_cmd import targets_app

try:
    from importlib.metadata import version

    VERSION = version("siteverify")
except Exception:
    VERSION = "unknown"

APP_HELP = (
    "siteverify — scripted login / reachability / flow checks on remote headless browsers. "
    "Config precedence: settings.default.toml -> settings.local.toml -> env vars (SITEVERIFY_* with __) -> CLI flags."
)

app = typer.Typer(add_completion=True, help=APP_HELP)

app.command("run")(run_targets)
app.add_typer(targets_app, name="targets")
app.add_typer(settings_app, name="settings")


def configure_logging(verbose: bool = False) -> None:
    """Route log records to stderr; ``--verbose`` switches to DEBUG."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)-8s %(name)s - %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        stream=sys.stderr,
    )

    # Quieten noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(False, "--version", help="Show version and exit."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Show help when no subcommand is provided."""
    if version:
        typer.echo(f"siteverify {VERSION}")
        raise typer.Exit()
    configure_logging(verbose)
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


if __name__ == "__main__":
    app()

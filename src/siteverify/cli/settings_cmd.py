"""CLI commands for inspecting and validating siteverify settings."""

from __future__ import annotations

import json

import typer
from rich.console import Console
from rich.markup import escape

settings_app = typer.Typer(help="Inspect and validate siteverify configuration.")
console = Console()

_MASK = "********"


@settings_app.command("show")
def show_settings() -> None:
    """Display the currently resolved settings (API key masked)."""
    from pydantic import ValidationError

    from siteverify.settings import get_settings

    try:
        data = get_settings().model_dump(mode="json")
    except ValidationError as e:
        console.print(f"[red]✗[/red] Invalid settings: {escape(str(e))}")
        raise typer.Exit(code=1) from None
    if data["provider"].get("api_key"):
        data["provider"]["api_key"] = _MASK
    console.print_json(json.dumps(data, indent=2, default=str))


@settings_app.command("validate")
def validate_settings() -> None:
    """Validate settings and report any issues."""
    from siteverify.settings import get_settings

    try:
        settings = get_settings()
        settings.require_provider_credentials()
    except Exception as e:
        console.print(f"[red]✗[/red] Settings validation failed: {escape(str(e))}")
        raise typer.Exit(code=1)

    console.print("[green]✓[/green] Settings are valid.")
    console.print(f"  Environment: {settings.env}")
    console.print(f"  Provider: {settings.provider.kind}")
    console.print(f"  Targets file: {settings.targets.file}")
    console.print(f"  Artifact dir: {settings.artifacts.output_dir}")

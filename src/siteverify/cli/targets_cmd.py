"""CLI commands for target files.

Subcommands for listing, inspecting and validating targets without
opening any browser session.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

targets_app = typer.Typer(help="Manage targets — list, show and validate target files.")
console = Console()


def _get_targets_file() -> Path:
    """Return the resolved targets file from settings."""
    from siteverify.settings import get_settings

    return Path(get_settings().targets.file)


def _load_or_exit(path: Path, *, include_disabled: bool = True):
    from siteverify.exceptions import TargetFileError
    from siteverify.targets.loader import load_targets

    try:
        return load_targets(path, include_disabled=include_disabled)
    except TargetFileError as e:
        console.print(f"[red]✗[/red] {escape(str(e))}")
        raise typer.Exit(code=1) from None


# ---------------------------------------------------------------------------
# siteverify targets list
# ---------------------------------------------------------------------------


@targets_app.command("list")
def targets_list(
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON."),
    targets_file: Optional[Path] = typer.Option(None, "--targets", "-t", help="Override targets file."),
) -> None:
    """List all targets, including disabled ones."""
    path = targets_file or _get_targets_file()
    targets = _load_or_exit(path)

    if not targets:
        console.print(f"No targets found in {path}")
        return

    if json_output:
        data = [
            {
                "name": t.name,
                "url": t.url,
                "check": t.check.value,
                "steps": len(t.steps),
                "enabled": t.enabled,
                "tags": list(t.tags),
            }
            for t in targets
        ]
        console.print_json(json.dumps(data, indent=2))
        return

    table = Table(title=f"Targets ({path})")
    table.add_column("Name", style="cyan")
    table.add_column("URL", style="dim", max_width=50)
    table.add_column("Check")
    table.add_column("Steps", justify="right")
    table.add_column("Enabled", justify="center")
    table.add_column("Tags")

    for t in targets:
        table.add_row(
            t.name,
            t.url,
            t.check.value,
            str(len(t.steps)),
            "[green]✓[/green]" if t.enabled else "[red]✗[/red]",
            ", ".join(t.tags),
        )

    console.print(table)


# ---------------------------------------------------------------------------
# siteverify targets show <name>
# ---------------------------------------------------------------------------


@targets_app.command("show")
def targets_show(
    name: str = typer.Argument(..., help="Target name."),
    targets_file: Optional[Path] = typer.Option(None, "--targets", "-t", help="Override targets file."),
) -> None:
    """Show the full definition of one target, with secrets masked."""
    path = targets_file or _get_targets_file()
    target = next((t for t in _load_or_exit(path) if t.name == name), None)
    if target is None:
        console.print(f"[red]Target not found:[/red] {name}")
        raise typer.Exit(code=1)

    console.print_json(json.dumps(target.model_dump(mode="json"), indent=2, default=str))


# ---------------------------------------------------------------------------
# siteverify targets validate <file>
# ---------------------------------------------------------------------------


@targets_app.command("validate")
def targets_validate(
    path: Path = typer.Argument(..., help="Path to a targets file (JSON or TOML)."),
) -> None:
    """Validate a targets file without running it."""
    targets = _load_or_exit(path)
    console.print(f"[green]✓[/green] Valid targets file: {len(targets)} target(s)")
    for t in targets:
        state = "" if t.enabled else " [dim](disabled)[/dim]"
        console.print(f"  {t.name}: {t.check.value}, {len(t.steps)} step(s){state}")

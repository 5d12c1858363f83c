"""CLI command that runs verification targets."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from siteverify.models.results import VerificationResult

console = Console()


def run_targets(
    targets_file: Optional[Path] = typer.Option(None, "--targets", "-t", help="Targets file (JSON or TOML)."),
    only: Optional[list[str]] = typer.Option(None, "--only", help="Run only this target name (repeatable)."),
    local: bool = typer.Option(False, "--local", help="Use a local Chromium instead of the remote provider."),
    output_dir: Optional[Path] = typer.Option(None, "--output", "-o", help="Directory for screenshots."),
    json_output: bool = typer.Option(False, "--json", "-j", help="Print results as JSON."),
    strict: bool = typer.Option(False, "--strict", help="Exit with code 1 when any target fails."),
) -> None:
    """Verify every enabled target, one at a time, and print a summary.

    The exit code is 0 once the run completes, even if some targets
    failed; pass ``--strict`` to exit 1 on any failure. Configuration and
    targets-file errors always exit 1 before any target runs.
    """
    from pydantic import ValidationError

    from siteverify.exceptions import ConfigurationError, TargetFileError
    from siteverify.settings import get_settings
    from siteverify.targets.loader import load_targets
    from siteverify.verification.orchestrator import RunOrchestrator

    try:
        settings = get_settings()
        if not local:
            settings.require_provider_credentials()
    except (ConfigurationError, ValidationError) as e:
        console.print(f"[red]✗ Configuration error:[/red] {escape(str(e))}")
        raise typer.Exit(code=1) from None

    path = targets_file or Path(settings.targets.file)
    try:
        targets = load_targets(path)
    except TargetFileError as e:
        console.print(f"[red]✗[/red] {escape(str(e))}")
        raise typer.Exit(code=1) from None

    if only:
        unknown = sorted(set(only) - {t.name for t in targets})
        if unknown:
            console.print(f"[red]Unknown target(s):[/red] {', '.join(unknown)}")
            raise typer.Exit(code=1)
        targets = [t for t in targets if t.name in only]

    if not targets:
        console.print("[yellow]No targets to run.[/yellow]")
        raise typer.Exit(code=0)

    orchestrator = RunOrchestrator.from_settings(settings, local=local, output_dir=output_dir)
    console.print(
        Panel(f"[bold]Verifying {len(targets)} target(s)[/bold] from {path}", title="siteverify", border_style="blue")
    )

    results = asyncio.run(orchestrator.run_all(targets))

    if json_output:
        console.print_json(json.dumps([r.to_dict() for r in results], indent=2))
    else:
        _print_results(results, output_dir or Path(settings.artifacts.output_dir))

    if strict and not all(r.success for r in results):
        raise typer.Exit(code=1)


def _print_results(results: list[VerificationResult], artifact_dir: Path) -> None:
    for r in results:
        mark = "[green]✓ PASSED[/green]" if r.success else "[red]✗ FAILED[/red]"
        console.print(f"{mark} {escape(r.target)} - {escape(r.message)}")

    table = Table(title="Verification summary")
    table.add_column("Target", style="cyan")
    table.add_column("Result", justify="center")
    table.add_column("Message", max_width=60)
    table.add_column("Artifacts", justify="right")
    table.add_column("Time", justify="right")

    for r in results:
        table.add_row(
            r.target,
            "[green]PASS[/green]" if r.success else "[red]FAIL[/red]",
            escape(r.message),
            str(len(r.artifacts)),
            f"{r.duration_sec:.1f}s",
        )

    console.print(table)
    passed = sum(1 for r in results if r.success)
    console.print(f"\n[bold]{passed}/{len(results)}[/bold] target(s) passed")
    console.print(f"Check {artifact_dir} for screenshots.")

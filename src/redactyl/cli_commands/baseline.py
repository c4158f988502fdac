"""Baseline commands - accept the current findings so only new ones fail."""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path
from typing import Annotated

import typer

from redactyl.baseline import DEFAULT_BASELINE_FILE, update_baseline
from redactyl.cli_commands.scan import resolve_config, run_scan, setup_logging
from redactyl.errors import BaselineError
from redactyl.output import print_error, print_success

baseline_app = typer.Typer(help="Manage the baseline of accepted findings.", no_args_is_help=True)


@baseline_app.command("update")
def update(
    path: Annotated[
        Path,
        typer.Option("--path", "-p", help="Root directory to scan"),
    ] = Path("."),
    baseline: Annotated[
        Path | None,
        typer.Option("--baseline", "-b", help="Baseline file to write"),
    ] = None,
    merge: Annotated[
        bool,
        typer.Option("--merge", help="Keep existing entries instead of replacing the file"),
    ] = False,
    config_file: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Config file (default: auto-discovered)"),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show debug logging"),
    ] = False,
) -> None:
    """Rescan and record every current finding in the baseline."""
    setup_logging(verbose)
    config, settings = resolve_config(
        path, config_file, {"baseline": str(baseline) if baseline else None}
    )
    # Cached files would report nothing, so the baseline always sees a full scan.
    result = run_scan(replace(config, use_cache=False, dry_run=False))

    target = Path(settings.get("baseline") or path / DEFAULT_BASELINE_FILE)
    try:
        written = update_baseline(target, result.findings, merge=merge)
    except BaselineError as e:
        print_error(str(e))
        raise typer.Exit(code=2) from e

    action = "Merged" if merge else "Wrote"
    print_success(f"{action} {len(written)} entries to {target}")

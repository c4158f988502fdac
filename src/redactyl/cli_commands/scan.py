"""Scan command - find secrets in the working tree, staged changes or history.

Configuration can be set in .redactyl.toml (or redactyl.yaml, or
[tool.redactyl] in pyproject.toml):
    threads = 8
    exclude = ["fixtures/**"]
    min_confidence = 0.6
    archives = true
    fail_on = "high"
"""

from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path
from typing import Annotated, Any

import typer
from rich.logging import RichHandler
from rich.progress import BarColumn, MofNCompleteColumn, Progress, SpinnerColumn, TextColumn

from redactyl.baseline import DEFAULT_BASELINE_FILE, filter_new_findings, load_baseline, should_fail
from redactyl.config import (
    build_scan_config,
    load_env,
    load_file,
    load_global,
    load_local,
    merge_settings,
)
from redactyl.errors import BaselineError, ConfigError, ScanError
from redactyl.output import console, format_json, format_rich, print_error
from redactyl.scanner.base import ScanResult
from redactyl.scanner.engine import ScanConfig, ScanEngine
from redactyl.scanner.walk import count_targets


def setup_logging(verbose: bool) -> None:
    """Route redactyl's debug logs to a RichHandler when verbose."""
    if not verbose:
        return
    logger = logging.getLogger("redactyl")
    logger.setLevel(logging.DEBUG)
    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        logger.addHandler(RichHandler(show_path=False, markup=False))


def resolve_config(
    root: Path, config_file: Path | None, cli_overrides: dict[str, Any]
) -> tuple[ScanConfig, dict[str, Any]]:
    """Load every config layer and build the scan config.

    Returns:
        The ScanConfig and the merged settings (for CLI-only keys such as
        ``fail_on`` and ``baseline``).

    Raises:
        typer.Exit: On configuration errors (exit code 2).
    """
    try:
        local = load_file(config_file) if config_file else load_local(root)
        global_ = load_global()
        env = load_env()
        config = build_scan_config(root, cli_overrides, local, global_, env)
    except ConfigError as e:
        print_error(str(e))
        raise typer.Exit(code=2) from e

    merged = merge_settings(
        global_.settings() if global_ else None,
        local.settings() if local else None,
        env.settings(),
        cli_overrides,
    )
    return config, merged


def run_scan(config: ScanConfig, show_progress: bool = False) -> ScanResult:
    """Run the engine, optionally with a progress bar over working-tree files."""
    try:
        if not (show_progress and config.working_tree and console.is_terminal):
            return ScanEngine(config).scan()
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            console=console,
            transient=True,
        ) as progress:
            task = progress.add_task("Scanning", total=count_targets(config))
            config = replace(config, progress=lambda: progress.advance(task))
            return ScanEngine(config).scan()
    except ScanError as e:
        print_error(str(e))
        raise typer.Exit(code=2) from e


def scan(
    path: Annotated[
        Path,
        typer.Option("--path", "-p", help="Root directory to scan"),
    ] = Path("."),
    # Sources
    staged: Annotated[
        bool,
        typer.Option("--staged", help="Scan staged changes only (for pre-commit hooks)"),
    ] = False,
    history: Annotated[
        int,
        typer.Option("--history", help="Scan files changed in the last N commits"),
    ] = 0,
    base: Annotated[
        str | None,
        typer.Option("--base", help="Scan the diff against this base branch (e.g. 'origin/main')"),
    ] = None,
    # Filters
    include: Annotated[
        str | None,
        typer.Option("--include", help="Comma-separated globs to include"),
    ] = None,
    exclude: Annotated[
        str | None,
        typer.Option("--exclude", help="Comma-separated globs to exclude"),
    ] = None,
    max_bytes: Annotated[
        int | None,
        typer.Option("--max-bytes", help="Skip files larger than this many bytes"),
    ] = None,
    threads: Annotated[
        int | None,
        typer.Option("--threads", "-t", help="Worker threads (0 = one per CPU)"),
    ] = None,
    enable: Annotated[
        str | None,
        typer.Option("--enable", help="Comma-separated detector ids to run exclusively"),
    ] = None,
    disable: Annotated[
        str | None,
        typer.Option("--disable", help="Comma-separated detector ids to skip"),
    ] = None,
    min_confidence: Annotated[
        float | None,
        typer.Option("--min-confidence", help="Drop findings below this confidence (0-1)"),
    ] = None,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", help="Count files without running detectors"),
    ] = False,
    no_cache: Annotated[
        bool,
        typer.Option("--no-cache", help="Ignore and do not update the incremental cache"),
    ] = False,
    default_excludes: Annotated[
        bool | None,
        typer.Option(
            "--default-excludes/--no-default-excludes",
            help="Skip vendor/build directories and lock files",
        ),
    ] = None,
    # Artifacts
    archives: Annotated[
        bool | None,
        typer.Option("--archives/--no-archives", help="Scan inside zip/tar/gzip archives"),
    ] = None,
    containers: Annotated[
        bool | None,
        typer.Option("--containers/--no-containers", help="Scan container image tarballs"),
    ] = None,
    iac: Annotated[
        bool | None,
        typer.Option("--iac/--no-iac", help="Scan Terraform state files"),
    ] = None,
    helm: Annotated[
        bool | None,
        typer.Option("--helm/--no-helm", help="Scan packaged Helm charts"),
    ] = None,
    k8s: Annotated[
        bool | None,
        typer.Option("--k8s/--no-k8s", help="Decode and scan Kubernetes Secret manifests"),
    ] = None,
    max_archive_bytes: Annotated[
        int | None,
        typer.Option("--max-archive-bytes", help="Byte budget per artifact"),
    ] = None,
    max_entries: Annotated[
        int | None,
        typer.Option("--max-entries", help="Entry budget per archive"),
    ] = None,
    max_depth: Annotated[
        int | None,
        typer.Option("--max-depth", help="Nesting budget per archive"),
    ] = None,
    scan_time_budget: Annotated[
        str | None,
        typer.Option("--scan-time-budget", help="Stop dispatching after this long (e.g. '30s')"),
    ] = None,
    global_artifact_budget: Annotated[
        str | None,
        typer.Option("--global-artifact-budget", help="Time allowed for artifact expansion"),
    ] = None,
    verify: Annotated[
        str | None,
        typer.Option("--verify", help="Local verification mode: off or safe"),
    ] = None,
    # Output and policy
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output results as JSON"),
    ] = False,
    fail_on: Annotated[
        str | None,
        typer.Option("--fail-on", help="Exit 1 if a finding is at or above: low, medium, high"),
    ] = None,
    baseline: Annotated[
        Path | None,
        typer.Option("--baseline", "-b", help="Baseline file of accepted findings"),
    ] = None,
    config_file: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Config file (default: auto-discovered)"),
    ] = None,
    show_secrets: Annotated[
        bool,
        typer.Option("--show-secrets", help="Print matches unredacted"),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show debug logging"),
    ] = False,
) -> None:
    """Scan for secrets.

    Examples:
        # Scan the current directory
        redactyl scan

        # Pre-commit hook
        redactyl scan --staged

        # CI: only what changed on this branch, fail on medium and up
        redactyl scan --base origin/main --fail-on medium --json
    """
    setup_logging(verbose)

    if verify is not None and verify not in ("off", "safe"):
        print_error(f"Invalid verify mode '{verify}'. Valid options: off, safe")
        raise typer.Exit(code=2)
    if fail_on is not None and fail_on.lower() not in ("low", "medium", "high"):
        print_error(f"Invalid severity '{fail_on}'. Valid options: low, medium, high")
        raise typer.Exit(code=2)

    cli_overrides: dict[str, Any] = {
        "staged": staged or None,
        "history": history or None,
        "base": base,
        "include": include.split(",") if include else None,
        "exclude": exclude.split(",") if exclude else None,
        "max_bytes": max_bytes,
        "threads": threads,
        "enable": enable.split(",") if enable else None,
        "disable": disable.split(",") if disable else None,
        "min_confidence": min_confidence,
        "dry_run": dry_run or None,
        "no_cache": no_cache or None,
        "default_excludes": default_excludes,
        "archives": archives,
        "containers": containers,
        "iac": iac,
        "helm": helm,
        "k8s": k8s,
        "max_archive_bytes": max_archive_bytes,
        "max_entries": max_entries,
        "max_depth": max_depth,
        "scan_time_budget": scan_time_budget,
        "global_artifact_budget": global_artifact_budget,
        "verify": verify,
        "fail_on": fail_on.lower() if fail_on else None,
        "baseline": str(baseline) if baseline else None,
    }

    config, settings = resolve_config(path, config_file, cli_overrides)
    result = run_scan(config, show_progress=not json_output)

    baseline_path = Path(settings.get("baseline") or path / DEFAULT_BASELINE_FILE)
    try:
        accepted = load_baseline(baseline_path)
    except BaselineError as e:
        print_error(str(e))
        raise typer.Exit(code=2) from e
    new_findings = filter_new_findings(result.findings, accepted)
    baselined = len(result.findings) - len(new_findings)

    if json_output:
        print(format_json(result, new_findings, baselined))
    else:
        format_rich(result, new_findings, baselined, show_secrets=show_secrets)

    if should_fail(new_findings, settings.get("fail_on", "medium")):
        raise typer.Exit(code=1)

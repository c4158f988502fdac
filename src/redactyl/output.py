"""Rendering of scan results for the terminal and for machines."""

from __future__ import annotations

import json
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from redactyl.scanner.base import Finding, ScanResult, Severity

console = Console()
err_console = Console(stderr=True)

_SEVERITY_STYLE = {
    Severity.HIGH: "bold red",
    Severity.MEDIUM: "yellow",
    Severity.LOW: "cyan",
}


def print_error(message: str) -> None:
    err_console.print(f"[red]Error:[/red] {message}")


def print_success(message: str) -> None:
    console.print(f"[green]{message}[/green]")


def redact_secret(secret: str, visible_chars: int = 4) -> str:
    """Redact a secret, showing only first and last few characters.

    Args:
        secret: The secret string to redact.
        visible_chars: Number of characters to show at start and end.

    Returns:
        Redacted string like "AKIA****MPLE".
    """
    if len(secret) <= visible_chars * 2:
        return "*" * len(secret)
    return f"{secret[:visible_chars]}{'*' * (len(secret) - visible_chars * 2)}{secret[-visible_chars:]}"


def result_to_dict(
    result: ScanResult, findings: list[Finding] | None = None, baselined: int = 0
) -> dict[str, Any]:
    """JSON document for a scan.

    ``findings`` defaults to every finding in ``result``; pass the
    baseline-filtered list to report only new findings.
    """
    data = result.to_dict()
    if findings is not None:
        data["findings"] = [f.to_dict() for f in findings]
    data["baselined"] = baselined
    return data


def format_json(
    result: ScanResult, findings: list[Finding] | None = None, baselined: int = 0
) -> str:
    return json.dumps(result_to_dict(result, findings, baselined), indent=2)


def format_rich(
    result: ScanResult,
    findings: list[Finding] | None = None,
    baselined: int = 0,
    output: Console | None = None,
    show_secrets: bool = False,
) -> None:
    """Print a findings table and a summary panel."""
    out = output or console
    findings = result.findings if findings is None else findings

    if findings:
        table = Table(title="Findings", show_lines=False)
        table.add_column("Severity")
        table.add_column("Detector")
        table.add_column("Location", overflow="fold")
        table.add_column("Match", overflow="fold")
        table.add_column("Conf.", justify="right")
        for f in findings:
            location = f"{f.path}:{f.line}"
            if "commit" in f.metadata:
                location += f" @ {f.metadata['commit'][:10]}"
            table.add_row(
                f"[{_SEVERITY_STYLE[f.severity]}]{f.severity.value}[/]",
                f.detector,
                location,
                f.match if show_secrets else redact_secret(f.match),
                f"{f.confidence:.2f}",
            )
        out.print(table)

    lines = [
        f"Files scanned: [bold]{result.files_scanned}[/bold]"
        f" (cached: {result.files_cached})",
        f"Duration: {result.duration:.2f}s",
        f"Findings: [bold]{len(findings)}[/bold]"
        + (f" ({baselined} baselined)" if baselined else ""),
    ]
    if result.aborted:
        stats = result.artifact_stats
        lines.append(
            "[yellow]Budgets exceeded:[/yellow] "
            f"bytes={stats.bytes} entries={stats.entries} depth={stats.depth} time={stats.time}"
        )
    style = "red" if findings else "green"
    out.print(Panel("\n".join(lines), title="redactyl scan", border_style=style))

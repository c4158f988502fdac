"""Command-line interface for redactyl."""

from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from redactyl.cli_commands.baseline import baseline_app
from redactyl.cli_commands.scan import scan

app = typer.Typer(
    name="redactyl",
    help="Find secrets in source trees, git history and build artifacts.",
    no_args_is_help=True,
)
console = Console()

app.command()(scan)
app.add_typer(baseline_app, name="baseline")


@app.command()
def detectors(
    ids_only: Annotated[
        bool, typer.Option("--ids", help="Print only detector ids, one per line")
    ] = False,
) -> None:
    """List the built-in detectors."""
    from redactyl.detectors.registry import DEFAULT_REGISTRY

    if ids_only:
        for detector_id in DEFAULT_REGISTRY.ids():
            print(detector_id)
        return

    table = Table(title=f"Detectors ({len(DEFAULT_REGISTRY)})")
    table.add_column("ID", style="bold")
    table.add_column("Severity")
    table.add_column("Description")
    for detector in DEFAULT_REGISTRY:
        table.add_row(detector.id, detector.severity.value, detector.description)
    console.print(table)


@app.command()
def version() -> None:
    """Show redactyl version."""
    from redactyl import __version__

    console.print(f"redactyl [bold green]{__version__}[/bold green]")


if __name__ == "__main__":
    app()

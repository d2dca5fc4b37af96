"""Command-line interface for erquant"""

import typer

from erquant import __version__
from erquant.core.logging import get_logger
from erquant.exons import exon_coverage
from erquant.matrix import region_matrix
from erquant.regions import find_regions
from erquant.runs import coverage_runs

logger = get_logger("cli")

app = typer.Typer(
    help="erquant: expressed-region calling and coverage quantification.",
    invoke_without_command=True,
)

app.command(name="region-matrix")(region_matrix)
app.command(name="find-regions")(find_regions)
app.command(name="exon-coverage")(exon_coverage)
app.command(name="coverage-runs")(coverage_runs)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(False, "--version", "-v", help="Show version and exit"),
):
    """erquant: expressed-region calling and coverage quantification."""
    if version:
        typer.echo(f"erquant {__version__}")
        raise typer.Exit()
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


if __name__ == "__main__":
    app()

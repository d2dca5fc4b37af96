"""
Coverage runs command: one sample's non-zero coverage as a bedGraph.
"""

import typer
from pathlib import Path
from typing import List

from .core.config import EngineConfig
from .core.coverage import coverage_runs as sample_runs, full_coverage
from .core.errors import ErquantError
from .core.logging import get_logger, set_verbose

logger = get_logger("runs")


def coverage_runs(
    sample: str = typer.Argument(..., help="Coverage file (bigWig or indexed BAM)"),
    chrom: List[str] = typer.Option(..., "--chrom", "-c", help="Chromosome to export (repeat for several)"),
    output: Path = typer.Option(..., "--output", "-o", help="Output bedGraph path"),
    mapq: int = typer.Option(0, "--mapq", "-q", help="BAM only: minimum mapping quality"),
    verbose: bool = typer.Option(False, "--verbose", "-V", help="Enable debug logging"),
):
    """
    Export runs of non-zero coverage (0-based, half-open) as a headerless bedGraph.
    """
    set_verbose(logger, verbose)
    config = EngineConfig(mapq=mapq)

    try:
        full_cov = full_coverage([sample], chrom, config)
        name = next(iter(next(iter(full_cov.values()))))
        runs = sample_runs(name, full_cov)
    except ErquantError as e:
        logger.error(str(e))
        raise typer.Exit(1)

    if output.parent != Path("."):
        output.parent.mkdir(parents=True, exist_ok=True)
    runs.to_csv(output, sep="\t", header=False, index=False)
    logger.info(f"Wrote {len(runs)} runs to {output}")

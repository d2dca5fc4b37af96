"""
Find-regions command.

Thresholds a summary coverage track and clusters the passing bases into
regions, without building any matrix.
"""

import typer
from pathlib import Path
from typing import List, Optional

import pandas as pd

from .core.config import EngineConfig
from .core.errors import ErquantError
from .core.filtering import filter_data
from .core.logging import get_logger, set_verbose
from .core.output_format import OutputWriter, parse_output_format
from .core.regions import RegionSet, find_regions as call_regions
from .core.sources import open_source, resolve_chrom_length

logger = get_logger("regions")


def find_regions(
    summary: str = typer.Argument(..., help="Summary (mean) coverage bigWig or BAM"),
    chrom: List[str] = typer.Option(..., "--chrom", "-c", help="Chromosome to process (repeat for several)"),
    cutoff: float = typer.Option(..., "--cutoff", "-C", help="Coverage a base must exceed"),
    output: Path = typer.Option(..., "--output", "-o", help="Output file prefix"),
    max_cluster_gap: int = typer.Option(300, "--max-cluster-gap", "-g", help="Largest gap (bp) merged into one region"),
    output_format: Optional[str] = typer.Option(None, "--format", "-f", help="Output format: tsv, parquet, json"),
    verbose: bool = typer.Option(False, "--verbose", "-V", help="Enable debug logging"),
):
    """
    Call candidate regions from one summary coverage track.

    Output: {output}.regions.tsv with one row per region (1-based, inclusive)
    and its mean and summed summary coverage.
    """
    set_verbose(logger, verbose)
    config = EngineConfig(cutoff=cutoff, max_cluster_gap=max_cluster_gap)

    frames = []
    try:
        config.validate()
        source = open_source(summary, retry=config.retry)
        for name in chrom:
            length = resolve_chrom_length(source, name)
            filtered = filter_data({source.name: source.read(name, 0, length)}, cutoff=cutoff, mode="mean")
            regions = call_regions(
                filtered.position, name,
                max_cluster_gap=max_cluster_gap,
                fstats=filtered.mean_coverage,
                seqlength=length,
            )
            if regions is None:
                regions = RegionSet.empty(name, seqlength=length)
            logger.info(f"{name}: {len(regions)} regions")
            frames.append(regions.to_frame())
    except ErquantError as e:
        logger.error(str(e))
        raise typer.Exit(1)

    table = pd.concat(frames)
    if output.parent != Path("."):
        output.parent.mkdir(parents=True, exist_ok=True)
    out_path = OutputWriter(parse_output_format(output_format)).write(
        table, output.with_name(output.name + ".regions"), kind="regions",
    )
    logger.info(f"Wrote {len(table)} regions to {out_path}")

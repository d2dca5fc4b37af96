"""
Region matrix command.

Calls candidate regions from per-chromosome summary coverage and writes, for
every chromosome, the regions table and the region x sample coverage matrix.
"""

import typer
from pathlib import Path
from typing import List, Optional

from .core.config import EngineConfig
from .core.errors import ErquantError
from .core.logging import get_logger, set_verbose
from .core.matrix import region_matrix as build_region_matrix
from .core.output_format import OutputWriter, parse_output_format
from .core.parallel import BACKENDS

logger = get_logger("matrix")


def single_or_list(values: Optional[List[float]]):
    """Collapse a repeated CLI option to a scalar when given once."""
    if not values:
        return None
    return values[0] if len(values) == 1 else list(values)


def region_matrix(
    samples: List[str] = typer.Argument(..., help="Per-sample coverage files (bigWig or indexed BAM), in column order"),
    chrom: List[str] = typer.Option(..., "--chrom", "-c", help="Chromosome to process (repeat for several)"),
    summary: List[str] = typer.Option(..., "--summary", "-m", help="Summary (mean) bigWig, one per --chrom, same order"),
    cutoff: float = typer.Option(..., "--cutoff", "-C", help="Summary coverage a base must exceed to be part of a region"),
    output: Path = typer.Option(..., "--output", "-o", help="Output directory"),
    sample_names: Optional[List[str]] = typer.Option(None, "--sample-name", "-s", help="Column name per sample (repeat)"),
    max_cluster_gap: int = typer.Option(300, "--max-cluster-gap", "-g", help="Largest gap (bp) merged into one region"),
    read_length: List[float] = typer.Option([1.0], "--read-length", "-L", help="Read length; once, or once per sample"),
    total_mapped: Optional[List[float]] = typer.Option(None, "--total-mapped", help="Library size; once, or once per sample"),
    target_size: float = typer.Option(40e6, "--target-size", help="Library size samples are scaled to"),
    chunksize: int = typer.Option(1000, "--chunksize", help="Regions per aggregation chunk"),
    chr_workers: int = typer.Option(1, "--chr-workers", help="Chromosomes processed in parallel (0=all cores)"),
    file_workers: int = typer.Option(1, "--file-workers", "-t", help="Sample files read in parallel (0=all cores)"),
    drop_deletions: bool = typer.Option(False, "--drop-deletions", help="BAM only: do not count deleted bases"),
    mapq: int = typer.Option(0, "--mapq", "-q", help="BAM only: minimum mapping quality"),
    backend: str = typer.Option("process", "--backend", help=f"Worker pool: {' or '.join(BACKENDS)}"),
    output_format: Optional[str] = typer.Option(None, "--format", "-f", help="Output format: tsv, parquet, json"),
    verbose: bool = typer.Option(False, "--verbose", "-V", help="Enable debug logging"),
):
    """
    Find expressed regions and build region x sample coverage matrices.

    Output per chromosome: {chrom}.regions.tsv and {chrom}.matrix.tsv
    (no matrix when no base passes the cutoff).
    """
    set_verbose(logger, verbose)

    config = EngineConfig(
        cutoff=cutoff,
        max_cluster_gap=max_cluster_gap,
        read_length=single_or_list(read_length),
        total_mapped=single_or_list(total_mapped),
        target_size=target_size,
        chunksize=chunksize,
        chr_workers=chr_workers,
        file_workers=file_workers,
        backend=backend,
        drop_deletions=drop_deletions,
        mapq=mapq,
    )

    try:
        results = build_region_matrix(
            chrom, summary, samples, config,
            sample_names=sample_names or None,
        )
    except ErquantError as e:
        logger.error(str(e))
        raise typer.Exit(1)

    output.mkdir(parents=True, exist_ok=True)
    writer = OutputWriter(parse_output_format(output_format))
    for name, result in results.items():
        written = writer.write_chromosome(result, output / name)
        if result.is_empty:
            logger.info(f"{name}: no regions")
        else:
            logger.info(f"{name}: {len(result.regions)} regions -> {written['matrix']}")

    logger.info(f"Region matrices written to {output}")

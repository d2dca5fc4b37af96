"""
Exon coverage command.

Loads full coverage for the requested chromosomes and sums it over the
features of a BED annotation.
"""

import typer
from pathlib import Path
from typing import List, Optional

from .core.config import EngineConfig
from .core.coverage import full_coverage
from .core.errors import ErquantError
from .core.exon_coverage import RETURN_TYPES, coverage_to_exon
from .core.features import load_features
from .core.logging import get_logger, set_verbose
from .core.output_format import OutputWriter, parse_output_format
from .matrix import single_or_list

logger = get_logger("exons")


def exon_coverage(
    samples: List[str] = typer.Argument(..., help="Per-sample coverage files (bigWig or indexed BAM)"),
    features: Path = typer.Option(..., "--features", "-b", help="Feature BED file (.bed or .bed.gz)"),
    chrom: List[str] = typer.Option(..., "--chrom", "-c", help="Chromosome to load (repeat for several)"),
    output: Path = typer.Option(..., "--output", "-o", help="Output file prefix"),
    read_length: List[float] = typer.Option(..., "--read-length", "-L", help="Read length; once, or once per sample"),
    return_type: str = typer.Option("raw", "--return-type", "-r", help=f"One of: {', '.join(RETURN_TYPES)}"),
    sample_names: Optional[List[str]] = typer.Option(None, "--sample-name", "-s", help="Column name per sample (repeat)"),
    drop_deletions: bool = typer.Option(False, "--drop-deletions", help="BAM only: do not count deleted bases"),
    mapq: int = typer.Option(0, "--mapq", "-q", help="BAM only: minimum mapping quality"),
    workers: int = typer.Option(1, "--workers", "-t", help="Chromosomes processed in parallel (0=all cores)"),
    output_format: Optional[str] = typer.Option(None, "--format", "-f", help="Output format: tsv, parquet, json"),
    verbose: bool = typer.Option(False, "--verbose", "-V", help="Enable debug logging"),
):
    """
    Sum each sample's coverage over annotated features (raw or RPKM).

    Output: {output}.features.tsv, features (rows) x samples.
    """
    set_verbose(logger, verbose)
    config = EngineConfig(chr_workers=workers, drop_deletions=drop_deletions, mapq=mapq)

    try:
        annotation = load_features(features)
        full_cov = full_coverage(samples, chrom, config, sample_names=sample_names or None)
        table = coverage_to_exon(
            full_cov, annotation,
            read_length=single_or_list(read_length),
            return_type=return_type,
            workers=workers,
            backend=config.backend,
        )
    except ErquantError as e:
        logger.error(str(e))
        raise typer.Exit(1)

    if output.parent != Path("."):
        output.parent.mkdir(parents=True, exist_ok=True)
    out_path = OutputWriter(parse_output_format(output_format)).write(
        table, output.with_name(output.name + ".features"), kind="features",
    )
    logger.info(f"Wrote {len(table)} features to {out_path}")

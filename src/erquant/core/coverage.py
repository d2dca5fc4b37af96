"""
Coverage loading for groups of samples.

    load_coverage()  - one chromosome from many files, filtered by a cutoff
    full_coverage()  - unfiltered coverage tables for many chromosomes
    coverage_runs()  - one sample's non-zero coverage as bedGraph-like rows
"""

from typing import Dict, List, Mapping, Optional, Sequence, Tuple
import logging

import numpy as np
import pandas as pd

from .config import EngineConfig
from .errors import ConfigurationError
from .filtering import FilteredCoverage, filter_data
from .matrix import sample_names_for
from .parallel import run_parallel
from .regions import RegionSet
from .rle import RunLengthSignal
from .sources import CoverageSource, SourceRef, open_source, resolve_chrom_length

logger = logging.getLogger("erquant.core.coverage")

CoverageTable = Dict[str, RunLengthSignal]


def prepare_which(which: RegionSet, protect_which: Optional[int] = None) -> RegionSet:
    """
    Normalize the regions to load.

    Widens each region by ``protect_which`` bases in total, split around its
    centre, so reads overlapping the borders are still counted; then merges
    overlapping regions so no base is read twice.
    """
    if which.is_empty:
        return which
    starts = which.starts()
    ends = which.ends()
    if protect_which:
        if protect_which < 0:
            raise ConfigurationError(f"protect_which must be >= 0, got {protect_which}")
        left = protect_which // 2
        starts = np.maximum(starts - left, 1)
        ends = ends + (protect_which - left)
        if which.seqlength is not None:
            ends = np.minimum(ends, which.seqlength)

    order = np.argsort(starts, kind="stable")
    starts, ends = starts[order], ends[order]
    # overlapping or touching intervals merge; contiguous ones too
    merged_starts, merged_ends = [], []
    for s, e in zip(starts, ends):
        if merged_ends and s <= merged_ends[-1] + 1:
            merged_ends[-1] = max(merged_ends[-1], e)
        else:
            merged_starts.append(s)
            merged_ends.append(e)
    return RegionSet.from_coordinates(which.chrom, merged_starts, merged_ends, seqlength=which.seqlength)


def _load_sample(
    source: CoverageSource,
    chrom: str,
    chrom_length: int,
    which: Optional[RegionSet] = None,
) -> RunLengthSignal:
    """Full-chromosome coverage of one sample; zero outside ``which`` when given."""
    logger.info(f"Loading coverage of {source.name} for {chrom}")
    if which is None:
        return source.read(chrom, 0, chrom_length)

    pieces: List[Tuple[np.ndarray, np.ndarray]] = []
    cursor = 0
    for region in which:
        start, end = region.start - 1, min(region.end, chrom_length)
        if start >= end:
            continue
        pieces.append((np.zeros(1), np.array([start - cursor])))
        window = source.read(chrom, start, end)
        pieces.append((window.values.astype(float), window.lengths))
        cursor = end
    pieces.append((np.zeros(1), np.array([chrom_length - cursor])))
    return RunLengthSignal(
        np.concatenate([v for v, _ in pieces]),
        np.concatenate([n for _, n in pieces]),
    )


def _load_task(source: CoverageSource, chrom: str, chrom_length: int, which: Optional[RegionSet]) -> RunLengthSignal:
    return _load_sample(source, chrom, chrom_length, which)


def read_coverage_table(
    files: Sequence[SourceRef],
    chrom: str,
    config: EngineConfig,
    chrom_length: Optional[int] = None,
    sample_names: Optional[Sequence[str]] = None,
    which: Optional[RegionSet] = None,
    protect_which: Optional[int] = None,
    kind: Optional[str] = None,
) -> CoverageTable:
    """
    Unfiltered coverage of one chromosome for every file, in file order.

    Raises:
        ConfigurationError: No files, name/file count mismatch or unknown chromosome
    """
    if not files:
        raise ConfigurationError("At least one coverage file is required")
    sources = [open_source(f, kind=kind, retry=config.retry, **config.bam_options()) for f in files]
    names = sample_names_for(sources, sample_names)

    file_chrom = config.rename_chrom(chrom)
    if chrom_length is None:
        logger.info(f"Finding the length of {chrom}")
    chrom_length = resolve_chrom_length(sources[0], file_chrom, chrom_length)

    if which is not None:
        which = prepare_which(which.with_seqlength(chrom_length), protect_which)

    signals = run_parallel(
        _load_task, sources,
        workers=config.file_workers, backend=config.backend,
        chrom=file_chrom, chrom_length=chrom_length, which=which,
    )
    return dict(zip(names, signals))


def load_coverage(
    files: Sequence[SourceRef],
    chrom: str,
    config: EngineConfig,
    mode: str = "one",
    chrom_length: Optional[int] = None,
    sample_names: Optional[Sequence[str]] = None,
    which: Optional[RegionSet] = None,
    protect_which: Optional[int] = None,
    kind: Optional[str] = None,
    return_mean: bool = False,
) -> FilteredCoverage:
    """
    Load one chromosome from a group of samples and keep the bases passing the cutoff.

    ``config.cutoff`` may be None here, in which case every base is kept.

    Args:
        files: BAM or bigWig files (or sources), one per sample
        chrom: Chromosome to read
        config: Run configuration (cutoff, library sizes, BAM options, workers)
        mode: Filter mode, "one" or "mean"
        chrom_length: Chromosome length; read from the first file when None
        sample_names: Column names (default: file names without extension)
        which: Only load these regions of the chromosome
        protect_which: Bases to widen ``which`` by
        kind: "bam" or "bigwig"; guessed from the file extension when None
        return_mean: Also return the mean coverage at passing bases

    Returns:
        FilteredCoverage with per-sample coverage at the passing bases
    """
    table = read_coverage_table(
        files, chrom, config,
        chrom_length=chrom_length, sample_names=sample_names,
        which=which, protect_which=protect_which, kind=kind,
    )
    logger.info(f"Applying the cutoff to the merged data of {chrom}")
    return filter_data(
        table, cutoff=config.cutoff, mode=mode,
        total_mapped=config.total_mapped, target_size=config.target_size,
        return_mean=return_mean,
    )


def _full_chrom_task(task: tuple, files, config, sample_names, kind) -> CoverageTable:
    chrom, chrom_length = task
    return read_coverage_table(
        files, chrom, config,
        chrom_length=chrom_length, sample_names=sample_names, kind=kind,
    )


def full_coverage(
    files: Sequence[SourceRef],
    chroms: Sequence[str],
    config: EngineConfig,
    chrom_lengths: Optional[Sequence[Optional[int]]] = None,
    sample_names: Optional[Sequence[str]] = None,
    kind: Optional[str] = None,
) -> Dict[str, CoverageTable]:
    """
    Unfiltered coverage of several chromosomes.

    Returns:
        Chromosome -> (sample -> signal), in the order of ``chroms``
    """
    chroms = list(chroms)
    if chrom_lengths is None:
        chrom_lengths = [None] * len(chroms)
    elif len(chrom_lengths) != len(chroms):
        raise ConfigurationError(
            f"Got {len(chrom_lengths)} chromosome lengths for {len(chroms)} chromosomes; they must match"
        )
    tables = run_parallel(
        _full_chrom_task, list(zip(chroms, chrom_lengths)),
        workers=config.chr_workers, backend=config.backend,
        files=list(files), config=config, sample_names=sample_names, kind=kind,
    )
    return dict(zip(chroms, tables))


def coverage_runs(sample: str, full_cov: Mapping[str, Mapping[str, RunLengthSignal]]) -> pd.DataFrame:
    """
    One sample's coverage as bedGraph-style rows, dropping zero-coverage runs.

    Args:
        sample: Sample name (a column of every coverage table)
        full_cov: Chromosome -> coverage table, e.g. from full_coverage()

    Returns:
        DataFrame with columns chrom, start (0-based), end (exclusive), score
    """
    frames = []
    for chrom, table in full_cov.items():
        if sample not in table:
            raise ConfigurationError(
                f"Sample '{sample}' not found for {chrom}. Valid options are: {', '.join(table)}"
            )
        signal = table[sample]
        keep = signal.values.astype(float) > 0
        if not keep.any():
            continue
        frames.append(pd.DataFrame({
            "chrom": chrom,
            "start": signal.starts[keep],
            "end": signal.ends[keep],
            "score": signal.values[keep].astype(float),
        }))
    if not frames:
        return pd.DataFrame(columns=["chrom", "start", "end", "score"])
    return pd.concat(frames, ignore_index=True)

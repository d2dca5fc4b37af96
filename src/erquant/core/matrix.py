"""
Region matrix assembly.

For every chromosome:
    1. load the summary (mean) coverage signal
    2. filter it with the cutoff and cluster passing bases into regions
    3. drop the summary signal
    4. split the regions into chunks; for every chunk read each sample's
       coverage over the chunk span and sum it per region
    5. column-bind samples and row-bind chunks into one matrix

Chromosomes are processed independently (outer fan-out), and so are sample
files within a chunk (inner fan-out).
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence
import logging
import math
import time

import numpy as np
import pandas as pd

from .aggregate import check_read_length, read_length_for, sample_region_coverage
from .config import EngineConfig
from .errors import ConfigurationError
from .filtering import filter_data, library_scale_factors
from .parallel import run_parallel
from .regions import RegionSet, find_regions
from .resource_utils import get_current_memory_gb, log_checkpoint
from .sources import SourceRef, open_source, resolve_chrom_length

logger = logging.getLogger("erquant.core.matrix")


@dataclass(frozen=True)
class ChromosomeMatrix:
    """
    Regions and coverage matrix of one chromosome.

    Attributes:
        regions: Candidate regions (ids 1..N), or an empty RegionSet
        coverage_matrix: Regions x samples DataFrame indexed by region id, or
            None exactly when ``regions`` is empty
    """
    regions: RegionSet
    coverage_matrix: Optional[pd.DataFrame]

    def __post_init__(self):
        if self.coverage_matrix is None:
            if not self.regions.is_empty:
                raise ValueError("A missing coverage matrix requires an empty RegionSet")
        elif self.coverage_matrix.shape[0] != len(self.regions):
            raise ValueError(
                f"Matrix has {self.coverage_matrix.shape[0]} rows for {len(self.regions)} regions"
            )

    @property
    def is_empty(self) -> bool:
        return self.coverage_matrix is None

    @property
    def n_rows(self) -> int:
        return 0 if self.coverage_matrix is None else self.coverage_matrix.shape[0]


def split_regions(regions: RegionSet, chunksize: int = 1000) -> List[RegionSet]:
    """
    Split regions into ``ceil(n / chunksize)`` consecutive chunks of near-equal size.

    Region ids are kept, so concatenating the chunks restores the original order.
    """
    if regions.is_empty:
        return []
    n_chunks = math.ceil(len(regions) / chunksize)
    bounds = np.linspace(0, len(regions), n_chunks + 1).round().astype(int)
    return [regions[int(a):int(b)] for a, b in zip(bounds[:-1], bounds[1:])]


def sample_names_for(sources: Sequence, sample_names: Optional[Sequence[str]] = None) -> List[str]:
    """
    Column names: explicit names, or each source's own name.

    Raises:
        ConfigurationError: Name count differs from the source count, or the
            names (e.g. two files with the same stem) are not unique
    """
    if sample_names is not None:
        if len(sample_names) != len(sources):
            raise ConfigurationError(
                f"Got {len(sample_names)} sample names for {len(sources)} sample files"
            )
        names = list(sample_names)
    else:
        names = [source.name for source in sources]
    if len(set(names)) != len(names):
        raise ConfigurationError(f"Sample names must be unique, got: {', '.join(names)}")
    return names


def _sample_task(task: tuple, regions: RegionSet, chrom: str) -> np.ndarray:
    source, scale, read_length = task
    return sample_region_coverage(source, regions, chrom, scale=scale, read_length=read_length)


def _chunk_matrix(
    regions: RegionSet,
    tasks: List[tuple],
    file_chrom: str,
    names: List[str],
    config: EngineConfig,
) -> pd.DataFrame:
    logger.info(f"Processing regions {regions.ids[0]} to {regions.ids[-1]}")
    columns = run_parallel(
        _sample_task, tasks,
        workers=config.file_workers, backend=config.backend,
        regions=regions, chrom=file_chrom,
    )
    return pd.DataFrame(
        np.column_stack(columns),
        index=pd.Index(list(regions.ids), name="region_id"),
        columns=names,
    )


def region_matrix_chr(
    chrom: str,
    summary_file: SourceRef,
    sample_files: Sequence[SourceRef],
    config: EngineConfig,
    chrom_length: Optional[int] = None,
    sample_names: Optional[Sequence[str]] = None,
) -> ChromosomeMatrix:
    """
    Candidate regions and their coverage matrix for one chromosome.

    Args:
        chrom: Chromosome name
        summary_file: Mean (or median) coverage across samples for this chromosome
        sample_files: Per-sample coverage sources, in column order
        config: Run configuration (cutoff is required)
        chrom_length: Chromosome length; read from the summary file when None
        sample_names: Optional column names

    Returns:
        ChromosomeMatrix; empty regions and a None matrix when nothing passed
    """
    config.validate(n_samples=len(sample_files))
    check_read_length(config.read_length, len(sample_files))
    return _region_matrix_chr(chrom, summary_file, sample_files, config, chrom_length, sample_names)


def _region_matrix_chr(
    chrom: str,
    summary_file: SourceRef,
    sample_files: Sequence[SourceRef],
    config: EngineConfig,
    chrom_length: Optional[int],
    sample_names: Optional[Sequence[str]],
) -> ChromosomeMatrix:
    start_time = time.time()
    start_mem = get_current_memory_gb()

    file_chrom = config.rename_chrom(chrom)
    summary = open_source(summary_file, retry=config.retry)
    chrom_length = resolve_chrom_length(summary, file_chrom, chrom_length)

    mean_cov = summary.read(file_chrom, 0, chrom_length)
    filtered = filter_data({summary.name: mean_cov}, cutoff=config.cutoff, mode="mean")
    regions = find_regions(
        filtered.position, chrom,
        max_cluster_gap=config.max_cluster_gap,
        fstats=filtered.mean_coverage,
        seqlength=chrom_length,
    )
    del mean_cov, filtered

    if regions is None:
        log_checkpoint(logger, chrom, "no regions", start_time, start_mem)
        return ChromosomeMatrix(regions=RegionSet.empty(chrom, seqlength=chrom_length), coverage_matrix=None)

    log_checkpoint(logger, chrom, f"{len(regions)} regions", start_time, start_mem)

    sources = [open_source(f, retry=config.retry, **config.bam_options()) for f in sample_files]
    names = sample_names_for(sources, sample_names)
    scales = library_scale_factors(config.total_mapped, len(sources), config.target_size)
    tasks = [
        (
            source,
            None if scales is None else float(scales[i]),
            read_length_for(config.read_length, i, len(sources)),
        )
        for i, source in enumerate(sources)
    ]

    chunks = [
        _chunk_matrix(chunk, tasks, file_chrom, names, config)
        for chunk in split_regions(regions, config.chunksize)
    ]
    matrix = pd.concat(chunks, axis=0)

    log_checkpoint(logger, chrom, "coverage matrix", start_time, start_mem)
    return ChromosomeMatrix(regions=regions, coverage_matrix=matrix)


def _chromosome_task(task: tuple, sample_files, config, sample_names) -> ChromosomeMatrix:
    chrom, summary_file, chrom_length = task
    return _region_matrix_chr(chrom, summary_file, sample_files, config, chrom_length, sample_names)


def region_matrix(
    chroms: Sequence[str],
    summary_files: Sequence[SourceRef],
    sample_files: Sequence[SourceRef],
    config: EngineConfig,
    chrom_lengths: Optional[Sequence[Optional[int]]] = None,
    sample_names: Optional[Sequence[str]] = None,
) -> Dict[str, ChromosomeMatrix]:
    """
    Region matrices for several chromosomes.

    Args:
        chroms: Chromosome names
        summary_files: One summary coverage source per chromosome (same order)
        sample_files: Per-sample coverage sources, in column order
        config: Run configuration
        chrom_lengths: Optional lengths, one per chromosome
        sample_names: Optional column names

    Returns:
        Chromosome name -> ChromosomeMatrix, in the order of ``chroms``

    Raises:
        ConfigurationError: Inconsistent inputs, including duplicate sample
            names, raised before any file is read
    """
    chroms = list(chroms)
    if len(chroms) != len(summary_files):
        raise ConfigurationError(
            f"Got {len(summary_files)} summary files for {len(chroms)} chromosomes; they must match"
        )
    if chrom_lengths is None:
        chrom_lengths = [None] * len(chroms)
    elif len(chrom_lengths) != len(chroms):
        raise ConfigurationError(
            f"Got {len(chrom_lengths)} chromosome lengths for {len(chroms)} chromosomes; they must match"
        )
    if len(set(chroms)) != len(chroms):
        raise ConfigurationError("Chromosome names must be unique")
    if not sample_files:
        raise ConfigurationError("At least one sample file is required")
    config.validate(n_samples=len(sample_files))
    check_read_length(config.read_length, len(sample_files))
    sources = [open_source(f, retry=config.retry, **config.bam_options()) for f in sample_files]
    names = sample_names_for(sources, sample_names)

    logger.info(
        f"Building region matrices for {len(chroms)} chromosomes and {len(sample_files)} samples "
        f"(cutoff={config.cutoff}, max gap={config.max_cluster_gap})"
    )
    results = run_parallel(
        _chromosome_task, list(zip(chroms, summary_files, chrom_lengths)),
        workers=config.chr_workers, backend=config.backend,
        sample_files=sources, config=config, sample_names=names,
    )
    return dict(zip(chroms, results))

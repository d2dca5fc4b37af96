"""
Per-region coverage aggregation and normalization.

Sums a sample's coverage over each region and applies the normalizations used
for region matrices:
    - library size: divide the signal by ``total_mapped / target_size``
    - read length: divide the summed coverage by L (bases per read), which
      turns base-level coverage into an approximate read count
    - RPKM: additionally divide by the region width in kilobases and by the
      sample's total coverage in millions of reads
"""

from typing import Optional, Sequence, Union
import logging
import warnings

import numpy as np
import pandas as pd

from .regions import RegionSet
from .rle import RunLengthSignal
from .sources import CoverageSource

logger = logging.getLogger("erquant.core.aggregate")

ReadLength = Union[float, Sequence[float]]


def region_sums(
    regions: RegionSet,
    signal: RunLengthSignal,
    offset: int = 0,
    scale: Optional[float] = None,
) -> np.ndarray:
    """
    Sum of the signal over every region.

    Args:
        regions: Regions (1-based inclusive chromosome coordinates)
        signal: Coverage; position 0 of the signal is chromosome base ``offset + 1``
        offset: 0-based chromosome coordinate of the signal's first base
        scale: Library-size divisor applied to the signal first

    Returns:
        Array with one sum per region (empty for an empty RegionSet)
    """
    if regions.is_empty:
        return np.zeros(0, dtype=float)
    starts = regions.starts() - 1 - offset
    ends = regions.ends() - offset
    if starts.min() < 0 or ends.max() > len(signal):
        raise ValueError(
            f"Regions on {regions.chrom} fall outside the loaded window "
            f"[{offset}, {offset + len(signal)})"
        )
    sums = signal.view_sums(starts, ends)
    if scale is not None:
        sums = sums / scale
    return sums


def normalize_read_length(matrix: pd.DataFrame, read_length: ReadLength) -> pd.DataFrame:
    """
    Divide a region-by-sample matrix by the read length.

    A single value applies to every sample; a sequence must have one value per
    sample (column). Any other length is ignored with a warning and the matrix
    is returned unchanged.
    """
    lengths = np.atleast_1d(np.asarray(read_length, dtype=float))
    if lengths.size == 1:
        return matrix / lengths[0]
    if lengths.size == matrix.shape[1]:
        return matrix.div(lengths, axis=1)

    message = (
        f"Invalid read length L with {lengths.size} values for {matrix.shape[1]} samples, so it won't be used. "
        "It has to be a single value or one value per sample."
    )
    logger.warning(message)
    warnings.warn(message, stacklevel=2)
    return matrix


def read_length_for(read_length: ReadLength, index: int, n_samples: int) -> float:
    """
    The L divisor of one sample, with the same leniency as normalize_read_length.
    """
    lengths = np.atleast_1d(np.asarray(read_length, dtype=float))
    if lengths.size == 1:
        return float(lengths[0])
    if lengths.size == n_samples:
        return float(lengths[index])
    return 1.0


def check_read_length(read_length: ReadLength, n_samples: int) -> None:
    """Warn once when L has neither one value nor one per sample."""
    size = np.atleast_1d(np.asarray(read_length, dtype=float)).size
    if size not in (1, n_samples):
        message = (
            f"Invalid read length L with {size} values for {n_samples} samples, so it won't be used. "
            "It has to be a single value or one value per sample."
        )
        logger.warning(message)
        warnings.warn(message, stacklevel=2)


def rpkm(
    matrix: pd.DataFrame,
    widths: Sequence[int],
    total_coverage: Sequence[float],
    read_length: ReadLength,
) -> pd.DataFrame:
    """
    Reads per kilobase of feature per million mapped reads.

    Args:
        matrix: Region-by-sample values (already divided by L)
        widths: Width of every region (rows) in bases
        total_coverage: Total base-level coverage of every sample (columns)
        read_length: L, used to turn total coverage into a read count

    Returns:
        Matrix divided by ``width / 1000`` per row and ``total / L / 1e6`` per column
    """
    lengths = np.atleast_1d(np.asarray(read_length, dtype=float))
    if lengths.size not in (1, matrix.shape[1]):
        lengths = np.ones(1)
    millions = np.asarray(total_coverage, dtype=float) / lengths / 1e6
    kilobases = np.asarray(widths, dtype=float) / 1000
    return matrix.div(kilobases, axis=0).div(millions, axis=1)


def sample_region_coverage(
    source: CoverageSource,
    regions: RegionSet,
    chrom: str,
    scale: Optional[float] = None,
    read_length: float = 1.0,
) -> np.ndarray:
    """
    One sample's normalized coverage for a chunk of regions.

    Only the window spanning the chunk is read from the source.

    Args:
        source: The sample's coverage source
        regions: A chunk of regions on one chromosome
        chrom: Chromosome name as known to the source
        scale: Library-size divisor, or None
        read_length: L divisor for this sample

    Returns:
        Array with one value per region
    """
    if regions.is_empty:
        return np.zeros(0, dtype=float)
    start, end = regions.span()
    logger.debug(f"Processing {source.name}: {len(regions)} regions in {chrom}:{start}-{end}")
    signal = source.read(chrom, start, end)
    return region_sums(regions, signal, offset=start, scale=scale) / read_length

"""
Candidate region calling.

Clusters the positions that passed the coverage filter into regions: maximal
runs of passing bases, merged when the gap between neighbours is at most
``max_cluster_gap`` bases. Regions use 1-based inclusive coordinates, like BED
files shown in a genome browser.
"""

from dataclasses import dataclass, field, replace
from typing import Iterator, List, Optional, Sequence, Tuple, Union
import logging
import math

import numpy as np
import pandas as pd

from .rle import RunLengthSignal

logger = logging.getLogger("erquant.core.regions")

DEFAULT_MAX_CLUSTER_GAP = 300


@dataclass(frozen=True)
class Region:
    """
    A genomic region, 1-based inclusive.

    Attributes:
        chrom: Chromosome name
        start: First base (>= 1)
        end: Last base (>= start)
        value: Mean filter statistic over the region's passing bases
        area: Summed filter statistic over the region's passing bases
        name: Feature name (annotation input only)
        strand: Feature strand (annotation input only)
    """
    chrom: str
    start: int
    end: int
    value: float = math.nan
    area: float = math.nan
    name: Optional[str] = None
    strand: str = "*"

    def __post_init__(self):
        if self.start < 1 or self.end < self.start:
            raise ValueError(f"Invalid region {self.chrom}:{self.start}-{self.end}")

    @property
    def width(self) -> int:
        return self.end - self.start + 1


@dataclass(frozen=True)
class RegionSet:
    """
    Ordered regions on one chromosome with stable integer ids.

    Ids are assigned 1..N once after clustering and survive slicing, so a
    chunk of regions still knows which matrix rows it fills.
    """
    chrom: str
    regions: Tuple[Region, ...] = ()
    ids: Tuple[int, ...] = field(default=())
    seqlength: Optional[int] = None

    def __post_init__(self):
        if not self.ids:
            object.__setattr__(self, "ids", tuple(range(1, len(self.regions) + 1)))
        if len(self.ids) != len(self.regions):
            raise ValueError("RegionSet needs exactly one id per region")
        if self.seqlength is not None and self.regions:
            last = max(r.end for r in self.regions)
            if last > self.seqlength:
                raise ValueError(
                    f"Region end {last} exceeds the length of {self.chrom} ({self.seqlength})"
                )

    @classmethod
    def empty(cls, chrom: str, seqlength: Optional[int] = None) -> "RegionSet":
        """The canonical empty region collection for a chromosome."""
        return cls(chrom=chrom, seqlength=seqlength)

    @classmethod
    def from_coordinates(
        cls,
        chrom: str,
        starts: Sequence[int],
        ends: Sequence[int],
        seqlength: Optional[int] = None,
    ) -> "RegionSet":
        """Build a region set from 1-based inclusive coordinates."""
        regions = tuple(Region(chrom, int(s), int(e)) for s, e in zip(starts, ends))
        return cls(chrom=chrom, regions=regions, seqlength=seqlength)

    def __len__(self) -> int:
        return len(self.regions)

    def __iter__(self) -> Iterator[Region]:
        return iter(self.regions)

    def __getitem__(self, key: Union[int, slice]):
        if isinstance(key, slice):
            return replace(self, regions=self.regions[key], ids=self.ids[key])
        return self.regions[key]

    @property
    def is_empty(self) -> bool:
        return not self.regions

    def starts(self) -> np.ndarray:
        return np.array([r.start for r in self.regions], dtype=np.int64)

    def ends(self) -> np.ndarray:
        return np.array([r.end for r in self.regions], dtype=np.int64)

    def widths(self) -> np.ndarray:
        return self.ends() - self.starts() + 1

    def with_seqlength(self, seqlength: int) -> "RegionSet":
        return replace(self, seqlength=seqlength)

    def span(self) -> Tuple[int, int]:
        """Smallest 0-based half-open window containing every region."""
        if not self.regions:
            raise ValueError("An empty RegionSet has no span")
        return int(self.starts().min()) - 1, int(self.ends().max())

    def to_mask(self, length: int) -> RunLengthSignal:
        """Boolean mask over ``[0, length)`` that is True inside the regions."""
        if not self.regions:
            return RunLengthSignal.constant(False, length)
        coverage = RunLengthSignal.from_blocks(self.starts() - 1, self.ends(), length)
        return coverage.map_values(lambda v: v > 0)

    def to_frame(self) -> pd.DataFrame:
        """Regions as a DataFrame indexed by region id."""
        frame = pd.DataFrame(
            {
                "chrom": [r.chrom for r in self.regions],
                "start": [r.start for r in self.regions],
                "end": [r.end for r in self.regions],
                "width": [r.width for r in self.regions],
                "value": [r.value for r in self.regions],
                "area": [r.area for r in self.regions],
                "name": [r.name for r in self.regions],
                "strand": [r.strand for r in self.regions],
            },
            index=pd.Index(list(self.ids), name="region_id"),
        )
        return frame


def cluster_regions(
    starts: Sequence[int],
    ends: Sequence[int],
    max_cluster_gap: int = DEFAULT_MAX_CLUSTER_GAP,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Merge sorted 1-based inclusive intervals separated by at most ``max_cluster_gap`` bases.

    The gap between two intervals is ``next_start - previous_end - 1``; a gap
    equal to ``max_cluster_gap`` still merges.

    Returns:
        Tuple of (starts, ends) of the merged intervals
    """
    starts = np.asarray(starts, dtype=np.int64)
    ends = np.asarray(ends, dtype=np.int64)
    if starts.size == 0:
        return starts, ends
    if max_cluster_gap < 0:
        raise ValueError(f"max_cluster_gap must be >= 0, got {max_cluster_gap}")

    gaps = starts[1:] - ends[:-1] - 1
    breaks = np.flatnonzero(gaps > max_cluster_gap)
    first = np.concatenate([[0], breaks + 1])
    last = np.concatenate([breaks, [starts.size - 1]])
    return starts[first], ends[last]


def find_regions(
    position: RunLengthSignal,
    chrom: str,
    max_cluster_gap: int = DEFAULT_MAX_CLUSTER_GAP,
    fstats: Optional[RunLengthSignal] = None,
    seqlength: Optional[int] = None,
) -> Optional[RegionSet]:
    """
    Find candidate regions from a mask of passing positions.

    Args:
        position: Boolean mask over the chromosome (from filter_data)
        chrom: Chromosome name
        max_cluster_gap: Largest gap (in bases) bridged when merging runs
        fstats: Filter statistic at the passing positions only (compressed
            coordinates, e.g. FilteredCoverage.mean_coverage); used to fill
            each region's area and value
        seqlength: Chromosome length (defaults to the mask length)

    Returns:
        RegionSet with ids 1..N, or None when no position passed
    """
    run_starts, run_ends = position.true_runs()
    if run_starts.size == 0:
        logger.info(f"{chrom}: no bases passed the cutoff, no regions")
        return None

    # 0-based half-open runs -> 1-based inclusive
    starts, ends = cluster_regions(run_starts + 1, run_ends, max_cluster_gap)
    logger.debug(
        f"{chrom}: {run_starts.size} passing runs clustered into {starts.size} regions "
        f"(max gap {max_cluster_gap})"
    )

    if fstats is not None:
        passing = position.map_values(lambda v: v.astype(np.int64))
        index_start = passing.cumulative(starts - 1).astype(np.int64)
        index_end = passing.cumulative(ends).astype(np.int64)
        if len(fstats) != int(passing.total()):
            raise ValueError(
                f"fstats covers {len(fstats)} bases but the mask has {int(passing.total())} passing bases"
            )
        areas = fstats.view_sums(index_start, index_end)
        values = areas / (index_end - index_start)
    else:
        areas = values = np.full(starts.size, math.nan)

    regions: List[Region] = [
        Region(chrom, int(s), int(e), value=float(v), area=float(a))
        for s, e, v, a in zip(starts, ends, values, areas)
    ]
    return RegionSet(
        chrom=chrom,
        regions=tuple(regions),
        seqlength=len(position) if seqlength is None else seqlength,
    )

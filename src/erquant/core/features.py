"""
Feature annotation (BED) parsing.

Reads plain or gzipped BED files into per-chromosome RegionSets for
coverage_to_exon. BED starts are 0-based; regions are 1-based inclusive, so
``start + 1`` is stored and ``end`` is kept as is.

Columns used: chrom, start, end, and optionally name (4) and strand (6).
Header, track and browser lines are skipped.
"""

import gzip
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import IO, Dict, Iterable, List, Mapping, Union

from .errors import ConfigurationError
from .regions import Region, RegionSet

logger = logging.getLogger("erquant.core.features")

_SKIP_PREFIXES = ("#", "track", "browser")


def feature_name(region: Region) -> str:
    """The row label of a feature: its name, or chrom:start-end when unnamed."""
    return region.name if region.name else f"{region.chrom}:{region.start}-{region.end}"


class FeatureAnnotation(dict):
    """
    Chromosome -> RegionSet of features that also remembers the file order.

    Grouping by chromosome loses the order of a BED file whose chromosomes
    interleave; ``order`` keeps the feature names as they were read.
    """

    def __init__(self, region_sets: Mapping[str, RegionSet], order: Iterable[str]):
        super().__init__(region_sets)
        self.order = tuple(order)


@contextmanager
def _open_bed(path: Path) -> IO[str]:
    """Open a BED file, handling gzip compression transparently."""
    path = Path(path)
    if str(path).endswith('.gz'):
        f = gzip.open(path, 'rt')
    else:
        f = open(path, 'r')
    try:
        yield f
    finally:
        f.close()


def load_features(bed_path: Union[str, Path]) -> FeatureAnnotation:
    """
    Load a BED file of features.

    Args:
        bed_path: Path to a .bed or .bed.gz file

    Returns:
        FeatureAnnotation (chromosome -> RegionSet); chromosomes in order of
        first appearance, ``order`` lists every feature name in file order

    Raises:
        ConfigurationError: Missing file or malformed line
    """
    bed_path = Path(bed_path)
    if not bed_path.exists():
        raise ConfigurationError(f"Feature BED file not found: {bed_path}")

    by_chrom: Dict[str, List[Region]] = {}
    order: List[str] = []
    with _open_bed(bed_path) as f:
        for line_no, line in enumerate(f, start=1):
            if not line.strip() or line.startswith(_SKIP_PREFIXES):
                continue
            fields = line.rstrip("\n").split("\t")
            if len(fields) < 3:
                raise ConfigurationError(f"{bed_path}:{line_no}: expected at least 3 columns")
            chrom = fields[0]
            try:
                start, end = int(fields[1]), int(fields[2])
            except ValueError:
                raise ConfigurationError(f"{bed_path}:{line_no}: start and end must be integers") from None
            if end <= start:
                raise ConfigurationError(f"{bed_path}:{line_no}: empty interval {start}-{end}")

            name = fields[3] if len(fields) > 3 and fields[3] not in ("", ".") else None
            strand = fields[5] if len(fields) > 5 and fields[5] in ("+", "-") else "*"
            region = Region(chrom, start + 1, end, name=name, strand=strand)
            by_chrom.setdefault(chrom, []).append(region)
            order.append(feature_name(region))

    n_features = sum(len(regions) for regions in by_chrom.values())
    logger.info(f"Loaded {n_features} features on {len(by_chrom)} chromosomes from {bed_path.name}")
    return FeatureAnnotation(
        {chrom: RegionSet(chrom=chrom, regions=tuple(regions)) for chrom, regions in by_chrom.items()},
        order,
    )

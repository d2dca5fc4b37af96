"""
Feature-level (e.g. exon) coverage from already loaded full coverage.

Usage:
    full_cov = full_coverage(files, ["chr21", "chr22"], config)
    features = load_features("exons.bed.gz")
    counts = coverage_to_exon(full_cov, features, read_length=100)
    rpkms = coverage_to_exon(full_cov, features, read_length=100, return_type="rpkm")
"""

from typing import Iterable, List, Mapping, Union
import logging

import numpy as np
import pandas as pd

from .aggregate import ReadLength, normalize_read_length, region_sums, rpkm
from .errors import ConfigurationError
from .features import feature_name
from .parallel import run_parallel
from .regions import RegionSet
from .rle import RunLengthSignal

logger = logging.getLogger("erquant.core.exon_coverage")

RETURN_TYPES = ("raw", "rpkm")

Features = Union[RegionSet, Mapping[str, RegionSet], Iterable[RegionSet]]


def _as_region_sets(features: Features) -> List[RegionSet]:
    if isinstance(features, RegionSet):
        return [features]
    if isinstance(features, Mapping):
        return list(features.values())
    return list(features)


def _chromosome_counts(task: tuple, samples: List[str]) -> np.ndarray:
    """Regions x samples sums for the features of one chromosome."""
    regions, table = task
    logger.info(f"Processing chromosome {regions.chrom}: {len(regions)} features")
    return np.column_stack([region_sums(regions, table[sample]) for sample in samples])


def coverage_to_exon(
    full_cov: Mapping[str, Mapping[str, RunLengthSignal]],
    features: Features,
    read_length: ReadLength,
    return_type: str = "raw",
    workers: int = 1,
    backend: str = "process",
) -> pd.DataFrame:
    """
    Sum each sample's coverage over every feature.

    Only features on chromosomes present in ``full_cov`` are counted. Rows keep
    the annotation order of ``features``: the file order for a FeatureAnnotation
    from load_features, the given order otherwise.

    Args:
        full_cov: Chromosome -> (sample -> signal), e.g. from full_coverage()
        features: Feature regions; a RegionSet, chrom -> RegionSet mapping
            (as from load_features) or a sequence of RegionSets
        read_length: L; one value or one per sample. Other lengths are ignored
            with a warning
        return_type: "raw" (coverage / L) or "rpkm"
        workers: Workers for the chromosome level (0 = all CPUs)
        backend: "process" or "thread"

    Returns:
        DataFrame of features (rows, by name) x samples

    Raises:
        ConfigurationError: Unknown return type, duplicated feature names or
            samples differing between chromosomes
    """
    if return_type not in RETURN_TYPES:
        raise ConfigurationError(
            f"Unknown return_type '{return_type}'. Valid options are: {', '.join(RETURN_TYPES)}"
        )
    if read_length is None:
        raise ConfigurationError("The read length L has to be specified")
    if not full_cov:
        raise ConfigurationError("full_cov has no chromosomes")

    region_sets = _as_region_sets(features)
    all_names = [feature_name(r) for rs in region_sets for r in rs]
    if len(set(all_names)) != len(all_names):
        raise ConfigurationError("Feature names must be unique")
    order = getattr(features, "order", None) or all_names

    samples = list(next(iter(full_cov.values())))
    for chrom, table in full_cov.items():
        if list(table) != samples:
            raise ConfigurationError(f"Samples of {chrom} differ from the other chromosomes")

    kept = [rs for rs in region_sets if rs.chrom in full_cov and not rs.is_empty]
    dropped = sum(len(rs) for rs in region_sets) - sum(len(rs) for rs in kept)
    if dropped:
        logger.info(f"Skipping {dropped} features on chromosomes without coverage")

    counts = run_parallel(
        _chromosome_counts, [(rs, full_cov[rs.chrom]) for rs in kept],
        workers=workers, backend=backend, samples=samples,
    )
    names = [feature_name(r) for rs in kept for r in rs]
    if counts:
        values = np.vstack(counts)
    else:
        values = np.zeros((0, len(samples)))
    result = pd.DataFrame(values, index=pd.Index(names, name="feature"), columns=samples)
    result = normalize_read_length(result, read_length)

    if return_type == "rpkm":
        totals = [
            sum(full_cov[chrom][sample].total() for chrom in full_cov)
            for sample in samples
        ]
        widths = np.concatenate([rs.widths() for rs in kept]) if kept else np.zeros(0)
        result = rpkm(result, widths, totals, read_length)

    counted = set(result.index)
    return result.loc[[name for name in order if name in counted]]

"""
Coverage threshold filter.

Turns a coverage table (sample name -> RunLengthSignal, one chromosome) into a
mask of the positions that pass a cutoff, together with the coverage values at
those positions.

Two modes:
    - "one":  a position passes when any sample is strictly above the cutoff
    - "mean": a position passes when the mean across samples is strictly above
              the cutoff (for a single pre-averaged signal this is the signal)
"""

from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Sequence, Union
import logging

import numpy as np

from .errors import ConfigurationError
from .rle import RunLengthSignal, any_above, mean_signal

logger = logging.getLogger("erquant.core.filtering")

FILTER_MODES = ("one", "mean")

DEFAULT_TARGET_SIZE = 40e6


@dataclass(frozen=True)
class FilteredCoverage:
    """
    Result of applying a cutoff to a coverage table.

    Attributes:
        position: Boolean mask over the full chromosome, True where a base passed
        coverage: Per-sample values at the passing positions (compressed
            coordinates), or None when not requested
        mean_coverage: Mean coverage at the passing positions, or None
    """
    position: RunLengthSignal
    coverage: Optional[Dict[str, RunLengthSignal]] = None
    mean_coverage: Optional[RunLengthSignal] = None

    @property
    def n_passing(self) -> int:
        """Number of bases that passed the cutoff."""
        return int(self.position.total())

    @property
    def is_empty(self) -> bool:
        """True when no base passed; callers treat this as "no candidate regions"."""
        return self.n_passing == 0


def library_scale_factors(
    total_mapped: Optional[Union[float, Sequence[float]]],
    n_samples: int,
    target_size: float = DEFAULT_TARGET_SIZE,
) -> Optional[np.ndarray]:
    """
    Per-sample library-size divisors ``total_mapped / target_size``.

    Args:
        total_mapped: Mapped reads (or total signal) for one or every sample
        n_samples: Number of samples
        target_size: Library size to scale to (0 disables scaling)

    Returns:
        Array with one divisor per sample, or None when no scaling applies

    Raises:
        ConfigurationError: total_mapped has neither 1 nor n_samples entries
    """
    if total_mapped is None or target_size == 0:
        return None
    mapped = np.atleast_1d(np.asarray(total_mapped, dtype=float))
    if mapped.size == 1:
        mapped = np.repeat(mapped, n_samples)
    elif mapped.size != n_samples:
        raise ConfigurationError(
            f"total_mapped must have 1 or {n_samples} values (one per sample), got {mapped.size}"
        )
    return mapped / target_size


def filter_data(
    coverage: Mapping[str, RunLengthSignal],
    cutoff: Optional[float],
    mode: str = "one",
    total_mapped: Optional[Union[float, Sequence[float]]] = None,
    target_size: float = DEFAULT_TARGET_SIZE,
    return_mean: bool = False,
    return_coverage: bool = True,
) -> FilteredCoverage:
    """
    Apply a cutoff to a coverage table.

    Comparison is strict: a value equal to the cutoff does not pass. With
    ``cutoff=None`` every position is kept.

    Args:
        coverage: Sample name -> signal, all over the same chromosome
        cutoff: Threshold the coverage must exceed
        mode: "one" or "mean" (see module docstring)
        total_mapped: Optional library sizes used to scale each sample first
        target_size: Library size the samples are scaled to
        return_mean: In "one" mode, also return the mean at passing positions
        return_coverage: In "one" mode, return per-sample values at passing positions

    Returns:
        FilteredCoverage (``is_empty`` is True when nothing passed)

    Raises:
        ConfigurationError: Unknown mode, empty table or bad total_mapped shape
        ValueError: Signals do not share one coordinate domain
    """
    if mode not in FILTER_MODES:
        raise ConfigurationError(f"Unknown filter mode '{mode}'. Valid options are: {', '.join(FILTER_MODES)}")
    if not coverage:
        raise ConfigurationError("Cannot filter an empty coverage table")

    names = list(coverage.keys())
    signals = [coverage[name] for name in names]

    scale = library_scale_factors(total_mapped, len(signals), target_size)
    if scale is not None:
        logger.debug(f"Scaling {len(signals)} samples to a library size of {target_size:g}")
        signals = [signal / factor for signal, factor in zip(signals, scale)]

    mean = mean_signal(signals) if (mode == "mean" or return_mean) else None

    if cutoff is None:
        position = RunLengthSignal.constant(True, len(signals[0]))
    elif mode == "one":
        position = any_above(signals, cutoff)
    else:
        position = mean.threshold(cutoff)

    result = FilteredCoverage(
        position=position,
        coverage=(
            {name: signal.subset(position) for name, signal in zip(names, signals)}
            if mode == "one" and return_coverage else None
        ),
        mean_coverage=mean.subset(position) if mean is not None else None,
    )

    logger.debug(
        f"Filter ({mode}, cutoff={cutoff}): {result.n_passing} of {len(position)} bases passed"
    )
    return result

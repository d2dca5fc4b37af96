"""
Run-length encoded per-base signal.

Coverage along a chromosome is long stretches of identical values, so it is
stored as runs of ``(value, length)`` instead of one number per base. All
coordinates in this module are 0-based and half-open.

Usage:
    signal = RunLengthSignal.from_array([0, 0, 5, 5, 5, 0])
    signal.runs()                      # [(0, 2), (5, 3), (0, 1)]
    mask = signal.threshold(4)         # boolean RunLengthSignal
    signal.view_sums([2], [5])         # array([15.])
"""

from typing import Iterable, List, Optional, Sequence, Tuple
import logging

import numpy as np

logger = logging.getLogger("erquant.core.rle")


def _canonical(values: np.ndarray, lengths: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Drop empty runs and merge neighbours holding the same value."""
    keep = lengths > 0
    values = values[keep]
    lengths = lengths[keep]
    if len(values) == 0:
        return values, lengths

    changes = np.empty(len(values), dtype=bool)
    changes[0] = True
    changes[1:] = values[1:] != values[:-1]
    if np.issubdtype(values.dtype, np.floating):
        # NaN != NaN, but neighbouring NaN runs are one run
        changes[1:] &= ~(np.isnan(values[1:]) & np.isnan(values[:-1]))
    firsts = np.flatnonzero(changes)
    return values[firsts], np.add.reduceat(lengths, firsts)


class RunLengthSignal:
    """
    Immutable run-length encoded signal.

    Invariants (enforced on construction):
        - every run has a positive length
        - no two adjacent runs share a value
        - ``len(signal)`` is the sum of the run lengths

    Attributes:
        values: numpy array with one value per run
        lengths: int64 numpy array with one length per run
    """

    __slots__ = ("values", "lengths", "_ends")

    def __init__(self, values: Iterable, lengths: Iterable):
        values = np.array(values)
        lengths = np.array(lengths, dtype=np.int64)
        if values.ndim != 1 or values.shape != lengths.shape:
            raise ValueError(
                f"values and lengths must be 1-D arrays of equal size, got {values.shape} and {lengths.shape}"
            )
        if (lengths < 0).any():
            raise ValueError("Run lengths must be non-negative")

        values, lengths = _canonical(values, lengths)
        values.setflags(write=False)
        lengths.setflags(write=False)
        ends = np.cumsum(lengths)
        ends.setflags(write=False)

        self.values = values
        self.lengths = lengths
        self._ends = ends

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------

    @classmethod
    def from_array(cls, array: Sequence) -> "RunLengthSignal":
        """Encode a dense per-base array."""
        array = np.asarray(array)
        if array.size == 0:
            return cls(array, np.zeros(0, dtype=np.int64))
        changes = np.flatnonzero(array[1:] != array[:-1]) + 1
        starts = np.concatenate([[0], changes])
        lengths = np.diff(np.concatenate([starts, [array.size]]))
        return cls(array[starts], lengths)

    @classmethod
    def constant(cls, value, length: int) -> "RunLengthSignal":
        """A single run of ``value`` spanning ``length`` bases."""
        return cls([value], [length])

    @classmethod
    def from_intervals(
        cls,
        starts: Sequence[int],
        ends: Sequence[int],
        values: Sequence,
        length: int,
        fill=0.0,
    ) -> "RunLengthSignal":
        """
        Build a signal from sorted, non-overlapping intervals.

        Positions not covered by any interval take ``fill``. Intervals are
        clipped to ``[0, length)``.

        Args:
            starts: Interval starts (0-based)
            ends: Interval ends (exclusive)
            values: Value of each interval
            length: Total length of the domain
            fill: Value for uncovered positions
        """
        starts = np.clip(np.asarray(starts, dtype=np.int64), 0, length)
        ends = np.clip(np.asarray(ends, dtype=np.int64), 0, length)
        values = np.asarray(values, dtype=float)
        if starts.size == 0:
            return cls.constant(fill, length)

        order = np.argsort(starts, kind="stable")
        starts, ends, values = starts[order], ends[order], values[order]
        if (starts[1:] < ends[:-1]).any():
            raise ValueError("Intervals must not overlap")

        previous_ends = np.concatenate([[0], ends[:-1]])
        n = starts.size
        run_values = np.empty(2 * n + 1, dtype=float)
        run_lengths = np.empty(2 * n + 1, dtype=np.int64)
        run_values[0:-1:2] = fill
        run_lengths[0:-1:2] = starts - previous_ends
        run_values[1::2] = values
        run_lengths[1::2] = ends - starts
        run_values[-1] = fill
        run_lengths[-1] = length - ends[-1]
        return cls(run_values, run_lengths)

    @classmethod
    def from_blocks(cls, starts: Sequence[int], ends: Sequence[int], length: int) -> "RunLengthSignal":
        """
        Depth of coverage from possibly overlapping blocks.

        Each block adds one to every position in ``[start, end)``. Works on
        the sorted block boundaries, so cost scales with the number of blocks
        rather than with ``length``.
        """
        starts = np.clip(np.asarray(starts, dtype=np.int64), 0, length)
        ends = np.clip(np.asarray(ends, dtype=np.int64), 0, length)
        if starts.size == 0:
            return cls.constant(0, length)

        positions = np.concatenate([starts, ends])
        deltas = np.concatenate([np.ones(starts.size, dtype=np.int64), -np.ones(ends.size, dtype=np.int64)])
        breaks, inverse = np.unique(positions, return_inverse=True)
        steps = np.bincount(inverse, weights=deltas).astype(np.int64)
        depth = np.cumsum(steps)

        bounds = np.concatenate([[0], breaks, [length]])
        run_values = np.concatenate([[0], depth])
        return cls(run_values, np.diff(bounds))

    # ------------------------------------------------------------------
    # Basic properties
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return int(self._ends[-1]) if self._ends.size else 0

    @property
    def n_runs(self) -> int:
        return int(self.values.size)

    @property
    def ends(self) -> np.ndarray:
        """Exclusive end coordinate of every run."""
        return self._ends

    @property
    def starts(self) -> np.ndarray:
        """Start coordinate of every run."""
        return self._ends - self.lengths

    @property
    def dtype(self):
        return self.values.dtype

    def runs(self) -> List[Tuple[object, int]]:
        """Runs as a list of ``(value, length)`` tuples."""
        return [(v.item(), int(n)) for v, n in zip(self.values, self.lengths)]

    def __eq__(self, other) -> bool:
        if not isinstance(other, RunLengthSignal):
            return NotImplemented
        return (
            np.array_equal(self.lengths, other.lengths)
            and np.array_equal(self.values, other.values)
        )

    def __repr__(self) -> str:
        shown = ", ".join(f"({v}, {n})" for v, n in self.runs()[:6])
        more = ", ..." if self.n_runs > 6 else ""
        return f"RunLengthSignal(length={len(self)}, runs=[{shown}{more}])"

    def total(self) -> float:
        """Sum of the signal over all positions."""
        return float(np.dot(self.values.astype(float), self.lengths))

    def to_array(self, start: int = 0, end: Optional[int] = None) -> np.ndarray:
        """Materialize the dense values of ``[start, end)``."""
        window = self.window(start, end)
        return np.repeat(window.values, window.lengths)

    def value_at(self, positions: Sequence[int]) -> np.ndarray:
        """Values at the given 0-based positions."""
        positions = np.asarray(positions, dtype=np.int64)
        if positions.size and (positions.min() < 0 or positions.max() >= len(self)):
            raise IndexError(f"Positions out of range for signal of length {len(self)}")
        return self.values[np.searchsorted(self._ends, positions, side="right")]

    # ------------------------------------------------------------------
    # Transformations
    # ------------------------------------------------------------------

    def window(self, start: int = 0, end: Optional[int] = None) -> "RunLengthSignal":
        """Sub-signal covering ``[start, end)``."""
        end = len(self) if end is None else end
        if not 0 <= start <= end <= len(self):
            raise IndexError(f"Window [{start}, {end}) outside signal of length {len(self)}")
        clipped_starts = np.clip(self.starts, start, end)
        clipped_ends = np.clip(self._ends, start, end)
        return RunLengthSignal(self.values, clipped_ends - clipped_starts)

    def map_values(self, func) -> "RunLengthSignal":
        """Apply a vectorized function to the run values."""
        return RunLengthSignal(func(self.values), self.lengths)

    def __truediv__(self, divisor) -> "RunLengthSignal":
        return RunLengthSignal(self.values / divisor, self.lengths)

    def __add__(self, other: "RunLengthSignal") -> "RunLengthSignal":
        lengths, table = align([self, other])
        return RunLengthSignal(table[:, 0] + table[:, 1], lengths)

    def threshold(self, cutoff) -> "RunLengthSignal":
        """Boolean mask of positions whose value is strictly above ``cutoff``."""
        return RunLengthSignal(self.values > cutoff, self.lengths)

    def subset(self, mask: "RunLengthSignal") -> "RunLengthSignal":
        """
        Keep only the positions where ``mask`` is True.

        The result lives in compressed coordinates: its length is the number
        of True positions in the mask.
        """
        lengths, table = align([self, mask])
        keep = table[:, 1].astype(bool)
        return RunLengthSignal(table[keep, 0].astype(self.dtype), lengths[keep])

    def true_runs(self) -> Tuple[np.ndarray, np.ndarray]:
        """Starts and exclusive ends of maximal runs with a truthy value."""
        truthy = self.values.astype(bool)
        return self.starts[truthy], self._ends[truthy]

    # ------------------------------------------------------------------
    # Aggregation
    # ------------------------------------------------------------------

    def cumulative(self, positions: Sequence[int]) -> np.ndarray:
        """
        Sum of the signal over ``[0, x)`` for every ``x`` in positions.

        Positions must lie within ``[0, len(self)]``.
        """
        positions = np.asarray(positions, dtype=np.int64)
        if positions.size == 0:
            return np.zeros(0, dtype=float)
        if positions.min() < 0 or positions.max() > len(self):
            raise IndexError(f"Positions out of range for signal of length {len(self)}")
        if self.n_runs == 0:
            return np.zeros(positions.size, dtype=float)

        values = self.values.astype(float)
        run_starts = self.starts
        before = np.concatenate([[0.0], np.cumsum(values * self.lengths)])
        idx = np.searchsorted(run_starts, positions, side="right") - 1
        idx = np.clip(idx, 0, self.n_runs - 1)
        return before[idx] + values[idx] * (positions - run_starts[idx])

    def view_sums(self, starts: Sequence[int], ends: Sequence[int]) -> np.ndarray:
        """Sum of the signal over each ``[start, end)`` view."""
        starts = np.asarray(starts, dtype=np.int64)
        ends = np.asarray(ends, dtype=np.int64)
        if starts.shape != ends.shape:
            raise ValueError("starts and ends must have the same shape")
        if (ends < starts).any():
            raise ValueError("View ends must not precede their starts")
        return self.cumulative(ends) - self.cumulative(starts)


def align(signals: Sequence[RunLengthSignal]) -> Tuple[np.ndarray, np.ndarray]:
    """
    Put several signals of the same length on shared run boundaries.

    Returns:
        Tuple of (lengths, table) where ``table[i, j]`` is the value of
        signal ``j`` on shared run ``i``.
    """
    if not signals:
        raise ValueError("align() needs at least one signal")
    length = len(signals[0])
    for signal in signals[1:]:
        if len(signal) != length:
            raise ValueError(f"Signals are not aligned: lengths {length} and {len(signal)}")
    if length == 0:
        return np.zeros(0, dtype=np.int64), np.zeros((0, len(signals)))

    bounds = np.unique(np.concatenate([s.ends for s in signals]))
    lengths = np.diff(np.concatenate([[0], bounds]))
    run_starts = bounds - lengths
    columns = [s.values[np.searchsorted(s.ends, run_starts, side="right")] for s in signals]
    return lengths, np.column_stack(columns)


def mean_signal(signals: Sequence[RunLengthSignal]) -> RunLengthSignal:
    """Position-wise mean of aligned signals."""
    lengths, table = align(signals)
    return RunLengthSignal(table.astype(float).mean(axis=1), lengths)


def any_above(signals: Sequence[RunLengthSignal], cutoff) -> RunLengthSignal:
    """Mask of positions where at least one signal is strictly above ``cutoff``."""
    lengths, table = align(signals)
    return RunLengthSignal((table > cutoff).any(axis=1), lengths)

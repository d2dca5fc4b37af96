"""
Coverage sources.

Every source answers one question: "what is the per-base coverage of this
sample over (chromosome, window)?" and returns a RunLengthSignal. Callers never
branch on the source kind after ``open_source``.

Implementations:
    - BigWigSource: precomputed per-base signal (local file or URL), read with
      pyBigWig under a bounded retry policy
    - BamSource: coverage computed from alignments with pysam
    - InMemorySource: coverage that is already loaded

Usage:
    source = open_source("sample1.bw")
    length = resolve_chrom_length(source, "chr21")
    signal = source.read("chr21", 0, length)
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Mapping, Optional, Union
import logging
import random
import time

import numpy as np
import pyBigWig
import pysam

from .errors import ConfigurationError, SourceReadError
from .rle import RunLengthSignal

logger = logging.getLogger("erquant.core.sources")

BIGWIG_SUFFIXES = (".bw", ".bigwig")
SOURCE_KINDS = ("bigwig", "bam")

# CIGAR operations that consume the reference
_CIGAR_COVERS = {0, 7, 8}   # M, =, X
_CIGAR_DELETION = 2         # D
_CIGAR_SKIP = 3             # N


# =============================================================================
# RETRY POLICY
# =============================================================================

@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded retry with random back-off for reads against flaky storage.

    Attributes:
        attempts: Total number of attempts (not retries)
        min_wait: Lower bound of the back-off in seconds
        max_wait: Upper bound of the back-off in seconds
        sleep: Sleep function (default: time.sleep)
        jitter: Function (low, high) -> seconds (default: random.uniform)
        retry_on: Exception types treated as transient
    """
    attempts: int = 3
    min_wait: float = 2.0
    max_wait: float = 5.0
    sleep: Optional[Callable[[float], None]] = None
    jitter: Optional[Callable[[float, float], float]] = None
    retry_on: tuple = (OSError, RuntimeError)

    def __post_init__(self):
        if self.attempts < 1:
            raise ConfigurationError(f"Retry attempts must be >= 1, got {self.attempts}")
        if self.min_wait > self.max_wait:
            raise ConfigurationError(
                f"min_wait ({self.min_wait}) must not exceed max_wait ({self.max_wait})"
            )

    def call(self, func: Callable, *args, description: str = "read", **kwargs):
        """
        Call ``func`` until it succeeds or the attempts run out.

        Raises:
            SourceReadError: Every attempt failed; carries the last error message
        """
        sleep = self.sleep or time.sleep
        jitter = self.jitter or random.uniform
        last_error: Optional[BaseException] = None

        for attempt in range(1, self.attempts + 1):
            try:
                return func(*args, **kwargs)
            except self.retry_on as e:
                last_error = e
                if attempt == self.attempts:
                    break
                wait = jitter(self.min_wait, self.max_wait)
                logger.warning(
                    f"{description} failed (attempt {attempt}/{self.attempts}): {e}. Retrying in {wait:.1f}s"
                )
                sleep(wait)

        raise SourceReadError(str(last_error)) from last_error


NO_RETRY = RetryPolicy(attempts=1)


# =============================================================================
# SOURCES
# =============================================================================

class CoverageSource(ABC):
    """A per-sample coverage source that can be read one chromosome window at a time."""

    name: str

    @abstractmethod
    def chrom_lengths(self) -> Dict[str, int]:
        """Chromosome name -> length, from the source's own header or index."""

    @abstractmethod
    def read(self, chrom: str, start: int = 0, end: Optional[int] = None) -> RunLengthSignal:
        """
        Coverage over ``[start, end)`` (0-based half-open).

        ``end=None`` reads to the end of the chromosome. The returned signal
        has length ``end - start``.
        """

    def _window(self, chrom: str, start: int, end: Optional[int]) -> tuple:
        lengths = self.chrom_lengths()
        if chrom not in lengths:
            raise ConfigurationError(
                f"'{chrom}' is not in {self.name}. Valid options are: {', '.join(lengths)}"
            )
        if end is None:
            end = lengths[chrom]
        if not 0 <= start <= end <= lengths[chrom]:
            raise ConfigurationError(
                f"Window [{start}, {end}) is outside {chrom} (length {lengths[chrom]})"
            )
        return start, end

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"


def _is_remote(path: str) -> bool:
    return "://" in path


def _stem(path: str) -> str:
    name = path.rstrip("/").rsplit("/", 1)[-1]
    for suffix in BIGWIG_SUFFIXES + (".bam", ".cram"):
        if name.lower().endswith(suffix):
            return name[: -len(suffix)]
    return name


class BigWigSource(CoverageSource):
    """
    Per-base signal stored in a bigWig file.

    The file is reopened on every attempt, so a dropped connection to remote
    storage does not poison later reads.
    """

    def __init__(self, path: Union[str, Path], retry: RetryPolicy = RetryPolicy(), name: Optional[str] = None):
        self.path = str(path)
        self.retry = retry
        self.name = name or _stem(self.path)
        self._lengths: Optional[Dict[str, int]] = None

    def _open(self):
        bw = pyBigWig.open(self.path)
        if bw is None:
            raise OSError(f"Could not open bigWig file: {self.path}")
        return bw

    def _read_header(self) -> Dict[str, int]:
        bw = self._open()
        try:
            return dict(bw.chroms())
        finally:
            bw.close()

    def chrom_lengths(self) -> Dict[str, int]:
        if self._lengths is None:
            self._lengths = self.retry.call(self._read_header, description=f"Reading header of {self.path}")
        return self._lengths

    def _read_once(self, chrom: str, start: int, end: int) -> RunLengthSignal:
        logger.debug(f"Loading bigWig {self.path} {chrom}:{start}-{end}")
        bw = self._open()
        try:
            intervals = bw.intervals(chrom, start, end) if end > start else None
        finally:
            bw.close()

        if not intervals:
            return RunLengthSignal.constant(0.0, end - start)
        table = np.asarray(intervals, dtype=float)
        return RunLengthSignal.from_intervals(
            table[:, 0].astype(np.int64) - start,
            table[:, 1].astype(np.int64) - start,
            table[:, 2],
            length=end - start,
        )

    def read(self, chrom: str, start: int = 0, end: Optional[int] = None) -> RunLengthSignal:
        start, end = self._window(chrom, start, end)
        return self.retry.call(
            self._read_once, chrom, start, end,
            description=f"Reading {self.path} {chrom}:{start}-{end}",
        )


class BamSource(CoverageSource):
    """
    Base-level coverage computed from an indexed BAM file.

    Attributes:
        drop_deletions: Do not count bases under CIGAR 'D' operations as covered
        mapq: Minimum mapping quality of counted reads
        skip_duplicates: Ignore reads flagged as PCR/optical duplicates
        skip_secondary: Ignore secondary and supplementary alignments
    """

    def __init__(
        self,
        path: Union[str, Path],
        index: Optional[Union[str, Path]] = None,
        drop_deletions: bool = False,
        mapq: int = 0,
        skip_duplicates: bool = False,
        skip_secondary: bool = False,
        name: Optional[str] = None,
    ):
        self.path = str(path)
        self.index = str(index) if index is not None else self._find_index()
        self.drop_deletions = drop_deletions
        self.mapq = mapq
        self.skip_duplicates = skip_duplicates
        self.skip_secondary = skip_secondary
        self.name = name or _stem(self.path)
        self._lengths: Optional[Dict[str, int]] = None

    def _find_index(self) -> Optional[str]:
        if _is_remote(self.path):
            return None
        for candidate in (self.path + ".bai", str(Path(self.path).with_suffix(".bai"))):
            if Path(candidate).exists():
                return candidate
        raise ConfigurationError(
            f"BAM index not found for {self.path}. Index it with 'samtools index' or pass the index path explicitly."
        )

    def _open(self) -> pysam.AlignmentFile:
        return pysam.AlignmentFile(self.path, "rb", index_filename=self.index)

    def chrom_lengths(self) -> Dict[str, int]:
        if self._lengths is None:
            with self._open() as bam:
                self._lengths = dict(zip(bam.references, bam.lengths))
        return self._lengths

    def _keep(self, read: pysam.AlignedSegment) -> bool:
        if read.is_unmapped or read.mapping_quality < self.mapq:
            return False
        if self.skip_duplicates and read.is_duplicate:
            return False
        if self.skip_secondary and (read.is_secondary or read.is_supplementary):
            return False
        return True

    def _blocks(self, read: pysam.AlignedSegment):
        """Reference blocks covered by one read, honouring drop_deletions."""
        pos = read.reference_start
        for op, length in read.cigartuples or ():
            if op in _CIGAR_COVERS or (op == _CIGAR_DELETION and not self.drop_deletions):
                yield pos, pos + length
                pos += length
            elif op in (_CIGAR_DELETION, _CIGAR_SKIP):
                pos += length

    def read(self, chrom: str, start: int = 0, end: Optional[int] = None) -> RunLengthSignal:
        start, end = self._window(chrom, start, end)
        logger.debug(f"Loading BAM {self.path} {chrom}:{start}-{end}")

        block_starts = []
        block_ends = []
        with self._open() as bam:
            for read in bam.fetch(chrom, start, end):
                if not self._keep(read):
                    continue
                for block_start, block_end in self._blocks(read):
                    block_starts.append(block_start - start)
                    block_ends.append(block_end - start)

        return RunLengthSignal.from_blocks(block_starts, block_ends, end - start)


class InMemorySource(CoverageSource):
    """Coverage that is already loaded, keyed by chromosome."""

    def __init__(self, signals: Mapping[str, RunLengthSignal], name: str = "in-memory"):
        self.signals = dict(signals)
        self.name = name

    def chrom_lengths(self) -> Dict[str, int]:
        return {chrom: len(signal) for chrom, signal in self.signals.items()}

    def read(self, chrom: str, start: int = 0, end: Optional[int] = None) -> RunLengthSignal:
        start, end = self._window(chrom, start, end)
        return self.signals[chrom].window(start, end)


SourceRef = Union[str, Path, CoverageSource]


def guess_kind(ref: Union[str, Path]) -> str:
    """'bigwig' for .bw/.bigwig files, 'bam' otherwise."""
    return "bigwig" if str(ref).lower().endswith(BIGWIG_SUFFIXES) else "bam"


def open_source(
    ref: SourceRef,
    kind: Optional[str] = None,
    retry: RetryPolicy = RetryPolicy(),
    name: Optional[str] = None,
    **bam_options,
) -> CoverageSource:
    """
    Turn a path, URL or existing source into a CoverageSource.

    Args:
        ref: Path/URL, or an already opened CoverageSource (returned unchanged)
        kind: "bigwig" or "bam"; guessed from the extension when None
        retry: Retry policy for bigWig reads
        name: Sample name (defaults to the file name without extension)
        **bam_options: Passed to BamSource (index, drop_deletions, mapq, ...)

    Raises:
        ConfigurationError: Unknown kind or missing BAM index
    """
    if isinstance(ref, CoverageSource):
        return ref
    kind = (kind or guess_kind(ref)).lower()
    if kind not in SOURCE_KINDS:
        raise ConfigurationError(f"Unknown source kind '{kind}'. Valid options are: {', '.join(SOURCE_KINDS)}")
    if kind == "bigwig":
        return BigWigSource(ref, retry=retry, name=name)
    return BamSource(ref, name=name, **bam_options)


def resolve_chrom_length(source: CoverageSource, chrom: str, chrom_length: Optional[int] = None) -> int:
    """
    Length of ``chrom``, taken from ``chrom_length`` or the source header.

    Raises:
        ConfigurationError: The chromosome is not in the source
    """
    if chrom_length is not None:
        return int(chrom_length)
    lengths = source.chrom_lengths()
    if chrom not in lengths:
        raise ConfigurationError(
            f"'{chrom}' is not correctly specified. Valid options are: {', '.join(lengths)}"
        )
    return int(lengths[chrom])

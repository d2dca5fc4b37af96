"""
Run configuration.

One dataclass threaded explicitly through every call, instead of global
options, so runs are reentrant and easy to test.
"""

from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence, Union
import logging

from .errors import ConfigurationError
from .filtering import DEFAULT_TARGET_SIZE, library_scale_factors
from .parallel import BACKENDS
from .regions import DEFAULT_MAX_CLUSTER_GAP
from .sources import RetryPolicy

logger = logging.getLogger("erquant.core.config")

DEFAULT_CHUNKSIZE = 1000


def identity_name(chrom: str) -> str:
    """Default chromosome naming: names are used as given."""
    return chrom


@dataclass
class EngineConfig:
    """
    Parameters for region calling and matrix assembly.

    Attributes:
        cutoff: Coverage a base must exceed to pass the filter (required)
        max_cluster_gap: Largest gap in bases bridged when merging regions
        read_length: Read length L; one value, or one per sample
        total_mapped: Optional library sizes, one value or one per sample
        target_size: Library size the samples are scaled to
        chunksize: Regions per aggregation chunk
        chr_workers: Workers for the chromosome level (0 = all CPUs)
        file_workers: Workers for the sample-file level (0 = all CPUs)
        backend: "process" or "thread"
        retry: Retry policy for bigWig reads
        rename_chrom: Maps a chromosome name to the naming used in the files
        drop_deletions: BAM only, do not count CIGAR 'D' bases as covered
        mapq: BAM only, minimum mapping quality
    """
    cutoff: Optional[float] = None
    max_cluster_gap: int = DEFAULT_MAX_CLUSTER_GAP
    read_length: Union[float, Sequence[float]] = 1.0
    total_mapped: Optional[Union[float, Sequence[float]]] = None
    target_size: float = DEFAULT_TARGET_SIZE
    chunksize: int = DEFAULT_CHUNKSIZE
    chr_workers: int = 1
    file_workers: int = 1
    backend: str = "process"
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    rename_chrom: Callable[[str], str] = identity_name
    drop_deletions: bool = False
    mapq: int = 0

    def validate(self, n_samples: Optional[int] = None) -> "EngineConfig":
        """
        Fail fast on invalid parameters, before any file is opened.

        Raises:
            ConfigurationError: Missing cutoff or out-of-range values
        """
        if self.cutoff is None:
            raise ConfigurationError("A coverage cutoff is required (no default)")
        if self.max_cluster_gap < 0:
            raise ConfigurationError(f"max_cluster_gap must be >= 0, got {self.max_cluster_gap}")
        if self.chunksize < 1:
            raise ConfigurationError(f"chunksize must be >= 1, got {self.chunksize}")
        if self.chr_workers < 0 or self.file_workers < 0:
            raise ConfigurationError("Worker counts must be >= 0 (0 = all available CPUs)")
        if self.backend not in BACKENDS:
            raise ConfigurationError(f"Unknown backend '{self.backend}'. Valid options are: {', '.join(BACKENDS)}")
        if self.total_mapped is not None and n_samples is not None:
            library_scale_factors(self.total_mapped, n_samples, self.target_size)
        return self

    def bam_options(self) -> dict:
        """Keyword arguments for BamSource."""
        return {"drop_deletions": self.drop_deletions, "mapq": self.mapq}

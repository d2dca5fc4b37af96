"""
Core processing module for erquant.

Shared by the library API and the CLI commands, so both produce the same
regions and matrices.

Submodules:
    - rle: run-length encoded per-base signal
    - sources: bigWig/BAM/in-memory coverage sources with retry
    - filtering: coverage cutoff filter (modes "one" and "mean")
    - regions: region clustering and the Region/RegionSet types
    - aggregate: per-region sums and L/library/RPKM normalization
    - parallel: ordered process/thread fan-out
    - matrix: per-chromosome region matrices
    - coverage: multi-sample coverage loading
    - exon_coverage: feature-level coverage
    - features: BED annotation parsing
    - output_format: TSV/Parquet/JSON writers
    - logging: Rich logging configuration
"""

from .logging import get_logger, set_verbose
from .errors import ConfigurationError, ErquantError, SourceReadError

__all__ = [
    'get_logger',
    'set_verbose',
    'ErquantError',
    'ConfigurationError',
    'SourceReadError',
]

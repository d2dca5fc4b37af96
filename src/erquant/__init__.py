"""
erquant: expressed-region calling and coverage quantification.

Finds candidate regions from base-level coverage (bigWig or BAM) and builds
region-by-sample coverage matrices per chromosome.
"""

__version__ = "0.3.0"

from .core.config import EngineConfig
from .core.coverage import coverage_runs, full_coverage, load_coverage
from .core.exon_coverage import coverage_to_exon
from .core.filtering import FilteredCoverage, filter_data
from .core.matrix import ChromosomeMatrix, region_matrix, region_matrix_chr
from .core.regions import Region, RegionSet, find_regions
from .core.rle import RunLengthSignal

__all__ = [
    "__version__",
    "EngineConfig",
    "ChromosomeMatrix",
    "FilteredCoverage",
    "Region",
    "RegionSet",
    "RunLengthSignal",
    "coverage_runs",
    "coverage_to_exon",
    "filter_data",
    "find_regions",
    "full_coverage",
    "load_coverage",
    "region_matrix",
    "region_matrix_chr",
]

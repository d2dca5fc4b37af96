"""
Output format handling for erquant.

Tables are written as:
- TSV: default for regions, matrices and bedGraph-like runs
- Parquet: compact columnar output for large matrices
- JSON: records, for pipelines that consume JSON

Usage:
    writer = OutputWriter(OutputFormat.AUTO)
    writer.write(matrix, Path("out/chr21.matrix"), kind="matrix")  # -> out/chr21.matrix.tsv
    writer.write_chromosome(result, Path("out/chr21"))
"""

from enum import Enum
from pathlib import Path
from typing import Dict, Optional
import logging

import pandas as pd

from .matrix import ChromosomeMatrix

logger = logging.getLogger("erquant.core.output_format")


class OutputFormat(Enum):
    """Supported output formats."""
    TSV = "tsv"
    PARQUET = "parquet"
    JSON = "json"
    AUTO = "auto"


# Defaults per table kind
KIND_DEFAULTS = {
    "regions": OutputFormat.TSV,
    "matrix": OutputFormat.TSV,
    "features": OutputFormat.TSV,
    "runs": OutputFormat.TSV,
}


class OutputWriter:
    """
    Writes DataFrames in one of the supported formats.

    Attributes:
        format: Output format (AUTO resolves per table kind)
    """

    def __init__(self, format: OutputFormat = OutputFormat.AUTO):
        self.format = format

    def write(
        self,
        data: pd.DataFrame,
        path: Path,
        kind: Optional[str] = None,
        index: bool = True,
    ) -> Path:
        """
        Write a DataFrame, appending the format's extension to ``path``.

        The extension is appended rather than substituted, so dotted stems like
        ``sample.chr21`` survive.

        Returns:
            Path actually written
        """
        fmt = self._resolve_format(kind)
        path = Path(path)

        if fmt == OutputFormat.TSV:
            out_path = path.with_name(path.name + ".tsv")
            data.to_csv(out_path, sep="\t", index=index)
        elif fmt == OutputFormat.PARQUET:
            out_path = path.with_name(path.name + ".parquet")
            data.to_parquet(out_path, index=index)
        elif fmt == OutputFormat.JSON:
            out_path = path.with_name(path.name + ".json")
            frame = data.reset_index() if index and data.index.name else data
            frame.to_json(out_path, orient="records", indent=2)
        else:
            raise ValueError(f"Unknown format: {fmt}")

        logger.debug(f"Wrote {fmt.value}: {out_path}")
        return out_path

    def write_chromosome(self, result: ChromosomeMatrix, prefix: Path) -> Dict[str, Path]:
        """
        Write a chromosome's regions and coverage matrix next to each other.

        An empty result writes an empty regions table and no matrix.

        Returns:
            Dict with the written "regions" path, and "matrix" when present
        """
        prefix = Path(prefix)
        written = {
            "regions": self.write(result.regions.to_frame(), prefix.with_name(prefix.name + ".regions"), kind="regions"),
        }
        if result.coverage_matrix is not None:
            written["matrix"] = self.write(
                result.coverage_matrix, prefix.with_name(prefix.name + ".matrix"), kind="matrix",
            )
        return written

    def _resolve_format(self, kind: Optional[str]) -> OutputFormat:
        """Resolve AUTO to a concrete format."""
        if self.format == OutputFormat.AUTO:
            return KIND_DEFAULTS.get(kind, OutputFormat.TSV)
        return self.format


def parse_output_format(format_str: Optional[str]) -> OutputFormat:
    """Parse a format name; unknown names fall back to AUTO with a warning."""
    if format_str is None:
        return OutputFormat.AUTO
    try:
        return OutputFormat(format_str.lower())
    except ValueError:
        logger.warning(f"Unknown format '{format_str}', using AUTO")
        return OutputFormat.AUTO

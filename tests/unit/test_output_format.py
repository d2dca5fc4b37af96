"""
Unit tests for output format classes.
"""

import json

import pandas as pd
import pytest

from erquant.core.matrix import ChromosomeMatrix
from erquant.core.output_format import (
    KIND_DEFAULTS, OutputFormat, OutputWriter, parse_output_format
)
from erquant.core.regions import RegionSet


@pytest.fixture
def matrix():
    return pd.DataFrame(
        {"s1": [3.0, 2.0], "s2": [9.0, 13.0]},
        index=pd.Index([1, 2], name="region_id"),
    )


@pytest.mark.unit
class TestOutputFormat:

    def test_output_format_values(self):
        assert OutputFormat.TSV.value == "tsv"
        assert OutputFormat.PARQUET.value == "parquet"
        assert OutputFormat.JSON.value == "json"
        assert OutputFormat.AUTO.value == "auto"

    def test_kind_defaults(self):
        assert KIND_DEFAULTS["regions"] == OutputFormat.TSV
        assert KIND_DEFAULTS["matrix"] == OutputFormat.TSV

    def test_parse_output_format(self):
        assert parse_output_format("tsv") == OutputFormat.TSV
        assert parse_output_format("PARQUET") == OutputFormat.PARQUET
        assert parse_output_format(None) == OutputFormat.AUTO
        assert parse_output_format("xlsx") == OutputFormat.AUTO


@pytest.mark.unit
class TestOutputWriter:

    def test_write_tsv_keeps_dotted_stem(self, tmp_path, matrix):
        path = OutputWriter(OutputFormat.TSV).write(matrix, tmp_path / "sample.chr21.matrix")
        assert path.name == "sample.chr21.matrix.tsv"
        loaded = pd.read_csv(path, sep="\t", index_col="region_id")
        assert loaded["s2"].tolist() == [9.0, 13.0]

    def test_write_parquet(self, tmp_path, matrix):
        path = OutputWriter(OutputFormat.PARQUET).write(matrix, tmp_path / "chr1.matrix")
        assert path.suffix == ".parquet"
        pd.testing.assert_frame_equal(pd.read_parquet(path), matrix)

    def test_write_json_records(self, tmp_path, matrix):
        path = OutputWriter(OutputFormat.JSON).write(matrix, tmp_path / "chr1.matrix")
        records = json.loads(path.read_text())
        assert records[0] == {"region_id": 1, "s1": 3.0, "s2": 9.0}

    def test_auto_uses_kind_default(self, tmp_path, matrix):
        path = OutputWriter().write(matrix, tmp_path / "chr1.matrix", kind="matrix")
        assert path.suffix == ".tsv"

    def test_write_chromosome(self, tmp_path, matrix):
        regions = RegionSet.from_coordinates("chr1", [3, 7], [5, 8])
        written = OutputWriter().write_chromosome(ChromosomeMatrix(regions, matrix), tmp_path / "chr1")
        assert written["regions"].name == "chr1.regions.tsv"
        assert written["matrix"].name == "chr1.matrix.tsv"
        frame = pd.read_csv(written["regions"], sep="\t")
        assert frame["start"].tolist() == [3, 7]

    def test_write_empty_chromosome(self, tmp_path):
        result = ChromosomeMatrix(RegionSet.empty("chr2"), None)
        written = OutputWriter().write_chromosome(result, tmp_path / "chr2")
        assert set(written) == {"regions"}
        assert written["regions"].exists()

"""
Unit tests for region matrix assembly on in-memory sources.
"""

import numpy as np
import pandas as pd
import pytest

from erquant.core.config import EngineConfig
from erquant.core.errors import ConfigurationError
from erquant.core.matrix import (
    ChromosomeMatrix,
    region_matrix,
    region_matrix_chr,
    sample_names_for,
    split_regions,
)
from erquant.core.regions import RegionSet
from erquant.core.rle import RunLengthSignal
from erquant.core.sources import InMemorySource


def coordinates(regions):
    return [(r.start, r.end) for r in regions]


@pytest.mark.unit
class TestChromosomeMatrix:

    def test_shape_invariant(self):
        regions = RegionSet.from_coordinates("chr1", [1, 5], [2, 6])
        with pytest.raises(ValueError):
            ChromosomeMatrix(regions=regions, coverage_matrix=pd.DataFrame({"a": [1.0]}))
        with pytest.raises(ValueError):
            ChromosomeMatrix(regions=regions, coverage_matrix=None)

    def test_empty(self):
        result = ChromosomeMatrix(regions=RegionSet.empty("chr1"), coverage_matrix=None)
        assert result.is_empty
        assert result.n_rows == 0


@pytest.mark.unit
class TestSplitRegions:

    def test_chunk_count_and_order(self):
        regions = RegionSet.from_coordinates("chr1", range(1, 2500, 10), range(5, 2505, 10))
        chunks = split_regions(regions, chunksize=100)
        assert len(chunks) == 3
        assert sum(len(c) for c in chunks) == len(regions)
        assert [i for c in chunks for i in c.ids] == list(regions.ids)

    def test_single_chunk(self):
        regions = RegionSet.from_coordinates("chr1", [1, 5], [2, 6])
        assert len(split_regions(regions, chunksize=1000)) == 1

    def test_empty(self):
        assert split_regions(RegionSet.empty("chr1")) == []


@pytest.mark.unit
class TestRegionMatrixChr:

    def test_toy_matrix(self, toy_sources):
        summary, samples = toy_sources
        config = EngineConfig(cutoff=4, max_cluster_gap=0, backend="thread")

        result = region_matrix_chr("chr1", summary, samples, config)

        assert coordinates(result.regions) == [(3, 5), (7, 8)]
        assert result.coverage_matrix.shape == (2, 2)
        assert list(result.coverage_matrix.columns) == ["s1", "s2"]
        assert result.coverage_matrix.index.tolist() == [1, 2]
        assert result.coverage_matrix["s1"].tolist() == [3.0, 2.0]
        assert result.coverage_matrix["s2"].tolist() == [9.0, 13.0]

    def test_gap_merges_regions(self, toy_sources):
        summary, samples = toy_sources
        result = region_matrix_chr("chr1", summary, samples, EngineConfig(cutoff=4, max_cluster_gap=1))
        assert coordinates(result.regions) == [(3, 8)]
        assert result.coverage_matrix["s2"].tolist() == [27.0]

    def test_no_passing_bases(self, toy_sources):
        summary, samples = toy_sources
        result = region_matrix_chr("chr1", summary, samples, EngineConfig(cutoff=100))
        assert result.is_empty
        assert result.regions.is_empty
        assert result.coverage_matrix is None

    def test_chunks_rebuild_same_matrix(self, toy_sources):
        summary, samples = toy_sources
        whole = region_matrix_chr("chr1", summary, samples, EngineConfig(cutoff=4, max_cluster_gap=0))
        chunked = region_matrix_chr(
            "chr1", summary, samples,
            EngineConfig(cutoff=4, max_cluster_gap=0, chunksize=1, file_workers=2, backend="thread"),
        )
        pd.testing.assert_frame_equal(whole.coverage_matrix, chunked.coverage_matrix)

    def test_read_length_and_library_size(self, toy_sources):
        summary, samples = toy_sources
        config = EngineConfig(
            cutoff=4, max_cluster_gap=0,
            read_length=[1.0, 2.0], total_mapped=[80e6, 40e6], target_size=40e6,
        )
        result = region_matrix_chr("chr1", summary, samples, config)
        # s1 halved by library size, s2 halved by read length
        assert result.coverage_matrix["s1"].tolist() == [1.5, 1.0]
        assert result.coverage_matrix["s2"].tolist() == [4.5, 6.5]

    def test_sample_names(self, toy_sources):
        summary, samples = toy_sources
        result = region_matrix_chr(
            "chr1", summary, samples, EngineConfig(cutoff=4), sample_names=["A", "B"],
        )
        assert list(result.coverage_matrix.columns) == ["A", "B"]

    def test_renamed_chromosome(self, toy_sources):
        summary, samples = toy_sources
        config = EngineConfig(cutoff=4, max_cluster_gap=0, rename_chrom=lambda name: "chr" + name)
        result = region_matrix_chr("1", summary, samples, config)
        assert result.regions.chrom == "1"
        assert len(result.regions) == 2

    def test_missing_cutoff(self, toy_sources):
        summary, samples = toy_sources
        with pytest.raises(ConfigurationError, match="cutoff"):
            region_matrix_chr("chr1", summary, samples, EngineConfig())

    def test_invalid_read_length_warns(self, toy_sources):
        summary, samples = toy_sources
        config = EngineConfig(cutoff=4, max_cluster_gap=0, read_length=[1.0, 2.0, 3.0])
        with pytest.warns(UserWarning, match="read length"):
            result = region_matrix_chr("chr1", summary, samples, config)
        assert result.coverage_matrix["s2"].tolist() == [9.0, 13.0]

    def test_unknown_chromosome(self, toy_sources):
        summary, samples = toy_sources
        with pytest.raises(ConfigurationError, match="Valid options are: chr1"):
            region_matrix_chr("chrX", summary, samples, EngineConfig(cutoff=4))


@pytest.mark.unit
class TestRegionMatrix:

    @pytest.fixture
    def two_chromosomes(self, toy_sources):
        summary, samples = toy_sources
        flat = InMemorySource({"chr2": RunLengthSignal.constant(1.0, 20)}, name="summary2")
        s1 = InMemorySource(
            {"chr1": RunLengthSignal.constant(1.0, 10), "chr2": RunLengthSignal.constant(1.0, 20)}, name="s1",
        )
        s2 = InMemorySource(
            {"chr1": RunLengthSignal.from_array(np.arange(10.0)), "chr2": RunLengthSignal.constant(2.0, 20)},
            name="s2",
        )
        return ["chr1", "chr2"], [summary, flat], [s1, s2]

    def test_results_in_chromosome_order(self, two_chromosomes):
        chroms, summaries, samples = two_chromosomes
        results = region_matrix(chroms, summaries, samples, EngineConfig(cutoff=4, max_cluster_gap=0))
        assert list(results) == ["chr1", "chr2"]
        assert results["chr1"].coverage_matrix.shape == (2, 2)
        assert results["chr2"].is_empty

    @pytest.mark.parametrize("workers", [1, 2])
    def test_parallel_matches_sequential(self, two_chromosomes, workers):
        chroms, summaries, samples = two_chromosomes
        sequential = region_matrix(chroms, summaries, samples, EngineConfig(cutoff=0.5, max_cluster_gap=0))
        parallel = region_matrix(
            chroms, summaries, samples,
            EngineConfig(cutoff=0.5, max_cluster_gap=0, chr_workers=workers, file_workers=workers, backend="process"),
        )
        for chrom in chroms:
            assert coordinates(parallel[chrom].regions) == coordinates(sequential[chrom].regions)
            pd.testing.assert_frame_equal(parallel[chrom].coverage_matrix, sequential[chrom].coverage_matrix)

    def test_summary_count_mismatch(self, two_chromosomes):
        chroms, summaries, samples = two_chromosomes
        with pytest.raises(ConfigurationError, match="summary files"):
            region_matrix(chroms, summaries[:1], samples, EngineConfig(cutoff=4))

    def test_length_count_mismatch(self, two_chromosomes):
        chroms, summaries, samples = two_chromosomes
        with pytest.raises(ConfigurationError, match="chromosome lengths"):
            region_matrix(chroms, summaries, samples, EngineConfig(cutoff=4), chrom_lengths=[10])

    def test_duplicate_chromosomes(self, two_chromosomes):
        _, summaries, samples = two_chromosomes
        with pytest.raises(ConfigurationError):
            region_matrix(["chr1", "chr1"], summaries, samples, EngineConfig(cutoff=4))

    def test_duplicate_sample_names(self, two_chromosomes):
        chroms, summaries, _ = two_chromosomes
        samples = [InMemorySource({}, name="s1"), InMemorySource({}, name="s1")]
        with pytest.raises(ConfigurationError, match="unique"):
            region_matrix(chroms, summaries, samples, EngineConfig(cutoff=4))

    def test_invalid_read_length_warns(self, two_chromosomes):
        chroms, summaries, samples = two_chromosomes
        config = EngineConfig(cutoff=4, max_cluster_gap=0, read_length=[1.0, 2.0, 3.0])
        with pytest.warns(UserWarning):
            results = region_matrix(chroms, summaries, samples, config)
        assert results["chr1"].coverage_matrix["s2"].tolist() == [9.0, 13.0]


@pytest.mark.unit
def test_sample_names_for():
    sources = [InMemorySource({}, name="a"), InMemorySource({}, name="b")]
    assert sample_names_for(sources) == ["a", "b"]
    assert sample_names_for(sources, ["x", "y"]) == ["x", "y"]
    with pytest.raises(ConfigurationError):
        sample_names_for(sources, ["x"])
    with pytest.raises(ConfigurationError, match="unique"):
        sample_names_for(sources, ["x", "x"])

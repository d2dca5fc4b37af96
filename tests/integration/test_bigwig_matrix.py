"""
Integration tests: region matrices from real bigWig files.
"""

import pandas as pd
import pytest

from erquant.core.config import EngineConfig
from erquant.core.coverage import full_coverage, load_coverage
from erquant.core.exon_coverage import coverage_to_exon
from erquant.core.features import load_features
from erquant.core.matrix import region_matrix, region_matrix_chr
from erquant.core.sources import BigWigSource, open_source


def coordinates(regions):
    return [(r.start, r.end) for r in regions]


@pytest.mark.integration
class TestBigWigSource:

    def test_header_and_read(self, sample_bigwigs):
        source = open_source(sample_bigwigs["samples"][0])
        assert isinstance(source, BigWigSource)
        assert source.chrom_lengths() == {"chr1": 1000, "chr2": 500}
        signal = source.read("chr1")
        assert len(signal) == 1000
        assert signal.total() == 2.0 * 100 + 10.0 * 50

    def test_window_read(self, sample_bigwigs):
        signal = open_source(sample_bigwigs["samples"][0]).read("chr1", 95, 105)
        assert signal.to_array().tolist() == [0.0] * 5 + [2.0] * 5

    def test_chromosome_without_entries(self, sample_bigwigs):
        signal = open_source(sample_bigwigs["samples"][0]).read("chr2", 0, 50)
        assert signal.total() == 0.0
        assert len(signal) == 50


@pytest.mark.integration
class TestRegionMatrixFromFiles:

    def test_single_chromosome(self, sample_bigwigs):
        config = EngineConfig(cutoff=2.5, max_cluster_gap=50)
        result = region_matrix_chr(
            "chr1", sample_bigwigs["summaries"]["chr1"], sample_bigwigs["samples"], config,
        )
        assert coordinates(result.regions) == [(101, 200), (301, 350)]
        assert [r.value for r in result.regions] == [3.0, 5.0]
        assert list(result.coverage_matrix.columns) == ["s1", "s2"]
        assert result.coverage_matrix["s1"].tolist() == [200.0, 500.0]
        assert result.coverage_matrix["s2"].tolist() == [400.0, 0.0]

    def test_default_gap_merges(self, sample_bigwigs):
        result = region_matrix_chr(
            "chr1", sample_bigwigs["summaries"]["chr1"], sample_bigwigs["samples"], EngineConfig(cutoff=2.5),
        )
        assert coordinates(result.regions) == [(101, 350)]
        assert result.coverage_matrix["s1"].tolist() == [700.0]

    def test_two_chromosomes_one_empty(self, sample_bigwigs):
        summaries = sample_bigwigs["summaries"]
        results = region_matrix(
            ["chr1", "chr2"], [summaries["chr1"], summaries["chr2"]], sample_bigwigs["samples"],
            EngineConfig(cutoff=2.5, max_cluster_gap=50, chunksize=1),
        )
        assert results["chr1"].n_rows == 2
        assert results["chr2"].is_empty
        assert results["chr2"].regions.seqlength == 500

    def test_process_workers_match_sequential(self, sample_bigwigs):
        summaries = sample_bigwigs["summaries"]
        args = (["chr1", "chr2"], [summaries["chr1"], summaries["chr2"]], sample_bigwigs["samples"])
        sequential = region_matrix(*args, EngineConfig(cutoff=2.5, max_cluster_gap=50))
        parallel = region_matrix(
            *args, EngineConfig(cutoff=2.5, max_cluster_gap=50, chr_workers=2, file_workers=2),
        )
        pd.testing.assert_frame_equal(parallel["chr1"].coverage_matrix, sequential["chr1"].coverage_matrix)
        assert parallel["chr2"].is_empty


@pytest.mark.integration
class TestCoverageFromFiles:

    def test_load_coverage(self, sample_bigwigs):
        result = load_coverage(sample_bigwigs["samples"], "chr1", EngineConfig(cutoff=3))
        # s2 = 4 over 101-200, s1 = 10 over 301-350
        assert result.n_passing == 150

    def test_exon_coverage(self, sample_bigwigs, features_bed):
        full = full_coverage(sample_bigwigs["samples"], ["chr1"], EngineConfig())
        counts = coverage_to_exon(full, load_features(features_bed), read_length=1)
        assert counts.index.tolist() == ["exonA", "exonB", "exonC"]
        assert counts["s1"].tolist() == [100.0, 500.0, 100.0]
        assert counts["s2"].tolist() == [200.0, 0.0, 200.0]

"""
Shared pytest fixtures for the erquant test suite.

Unit tests work on in-memory signals; integration tests read real bigWig
(pyBigWig) and BAM (pysam) files written into tmp_path by these fixtures.
"""

import gzip

import numpy as np
import pyBigWig
import pysam
import pytest

from erquant.core.rle import RunLengthSignal
from erquant.core.sources import InMemorySource

# The reference toy signal: two passing runs at cutoff 4, one base apart.
TOY_SIGNAL = [0, 0, 5, 5, 5, 0, 6, 6, 0, 0]


# =============================================================================
# File writers
# =============================================================================


def write_bigwig(path, chrom_sizes, signals):
    """
    Write a bigWig with one entry per non-zero run.

    Args:
        path: Output path
        chrom_sizes: Ordered dict-like chrom -> length
        signals: chrom -> dense per-base values (missing chromosomes are empty)
    """
    bw = pyBigWig.open(str(path), "w")
    bw.addHeader(list(chrom_sizes.items()), maxZooms=0)
    for chrom in chrom_sizes:
        if chrom not in signals:
            continue
        signal = RunLengthSignal.from_array(np.asarray(signals[chrom], dtype=float))
        keep = signal.values != 0
        if not keep.any():
            continue
        bw.addEntries(
            [chrom] * int(keep.sum()),
            [int(s) for s in signal.starts[keep]],
            ends=[int(e) for e in signal.ends[keep]],
            values=[float(v) for v in signal.values[keep]],
        )
    bw.close()
    return path


def write_bam(path, chrom_sizes, reads):
    """
    Write a coordinate-sorted, indexed BAM.

    Args:
        path: Output path
        chrom_sizes: chrom -> length
        reads: (chrom, 0-based start, cigar tuples[, mapq]) in coordinate order
    """
    chroms = list(chrom_sizes)
    header = {
        "HD": {"VN": "1.0", "SO": "coordinate"},
        "SQ": [{"LN": length, "SN": chrom} for chrom, length in chrom_sizes.items()],
    }
    with pysam.AlignmentFile(str(path), "wb", header=header) as outf:
        for i, read in enumerate(reads):
            chrom, start, cigar = read[:3]
            mapq = read[3] if len(read) > 3 else 60
            query_length = sum(n for op, n in cigar if op in (0, 1, 4, 7, 8))
            a = pysam.AlignedSegment()
            a.query_name = f"read{i}"
            a.query_sequence = "A" * query_length
            a.flag = 0
            a.reference_id = chroms.index(chrom)
            a.reference_start = start
            a.mapping_quality = mapq
            a.cigar = tuple(cigar)
            outf.write(a)
    pysam.index(str(path))
    return path


# =============================================================================
# In-memory fixtures
# =============================================================================


@pytest.fixture
def toy_signal():
    return RunLengthSignal.from_array(TOY_SIGNAL)


@pytest.fixture
def toy_sources():
    """Summary source plus two samples over a 10 bp chr1."""
    summary = InMemorySource({"chr1": RunLengthSignal.from_array(TOY_SIGNAL)}, name="summary")
    s1 = InMemorySource({"chr1": RunLengthSignal.constant(1.0, 10)}, name="s1")
    s2 = InMemorySource({"chr1": RunLengthSignal.from_array(np.arange(10, dtype=float))}, name="s2")
    return summary, [s1, s2]


# =============================================================================
# File fixtures
# =============================================================================


@pytest.fixture
def chrom_sizes():
    return {"chr1": 1000, "chr2": 500}


@pytest.fixture
def sample_bigwigs(tmp_path, chrom_sizes):
    """
    Two sample bigWigs and their mean, as per-chromosome summary files.

    chr1: both samples cover 101-200 (s1 = 2, s2 = 4) and 301-350 (s1 = 10, s2 = 0)
    chr2: summary at 1.0 over 1-10 only, below any cutoff used in tests
    """
    s1 = np.zeros(1000)
    s2 = np.zeros(1000)
    s1[100:200] = 2.0
    s2[100:200] = 4.0
    s1[300:350] = 10.0
    mean = (s1 + s2) / 2

    samples = [
        write_bigwig(tmp_path / "s1.bw", chrom_sizes, {"chr1": s1}),
        write_bigwig(tmp_path / "s2.bw", chrom_sizes, {"chr1": s2}),
    ]
    summaries = {
        "chr1": write_bigwig(tmp_path / "mean.chr1.bw", chrom_sizes, {"chr1": mean}),
        "chr2": write_bigwig(tmp_path / "mean.chr2.bw", chrom_sizes, {"chr2": np.r_[np.ones(10), np.zeros(490)]}),
    }
    return {"samples": samples, "summaries": summaries}


@pytest.fixture
def sample_bam(tmp_path, chrom_sizes):
    """
    Indexed BAM on chr1.

    read0: 100-149 (50M)
    read1: 120-169 (50M), overlaps read0 over 120-149
    read2: 400-409 + deletion 410-414 + 415-424 (10M5D10M)
    read3: 600-609 + intron 610-709 + 710-719 (10M100N10M)
    read4: 800-849 with MAPQ 5
    """
    reads = [
        ("chr1", 100, [(0, 50)]),
        ("chr1", 120, [(0, 50)]),
        ("chr1", 400, [(0, 10), (2, 5), (0, 10)]),
        ("chr1", 600, [(0, 10), (3, 100), (0, 10)]),
        ("chr1", 800, [(0, 50)], 5),
    ]
    return write_bam(tmp_path / "sample.bam", chrom_sizes, reads)


@pytest.fixture
def features_bed(tmp_path):
    """Gzipped BED with three named features on chr1 and one on chrX."""
    bed = tmp_path / "features.bed.gz"
    with gzip.open(bed, "wt") as f:
        f.write("track name=exons\n")
        f.write("chr1\t100\t150\texonA\t0\t+\n")
        f.write("chr1\t300\t350\texonB\t0\t-\n")
        f.write("chrX\t0\t10\texonX\t0\t+\n")
        f.write("chr1\t150\t200\texonC\t0\t+\n")
    return bed

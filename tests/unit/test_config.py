"""
Unit tests for EngineConfig validation.
"""

import pytest

from erquant.core.config import EngineConfig, identity_name
from erquant.core.errors import ConfigurationError


@pytest.mark.unit
class TestEngineConfig:

    def test_defaults(self):
        config = EngineConfig(cutoff=5)
        assert config.max_cluster_gap == 300
        assert config.chunksize == 1000
        assert config.target_size == 40e6
        assert config.retry.attempts == 3
        assert config.rename_chrom("chr1") == "chr1"
        assert config.validate() is config

    @pytest.mark.parametrize(
        "kwargs",
        [
            {},
            {"cutoff": 1, "max_cluster_gap": -1},
            {"cutoff": 1, "chunksize": 0},
            {"cutoff": 1, "chr_workers": -2},
            {"cutoff": 1, "backend": "dask"},
        ],
    )
    def test_invalid(self, kwargs):
        with pytest.raises(ConfigurationError):
            EngineConfig(**kwargs).validate()

    def test_total_mapped_checked_against_samples(self):
        config = EngineConfig(cutoff=1, total_mapped=[1e6, 2e6])
        config.validate(n_samples=2)
        with pytest.raises(ConfigurationError):
            config.validate(n_samples=3)

    def test_configuration_error_is_value_error(self):
        with pytest.raises(ValueError):
            EngineConfig().validate()

    def test_bam_options(self):
        assert EngineConfig(drop_deletions=True, mapq=20).bam_options() == {"drop_deletions": True, "mapq": 20}

    def test_identity_name(self):
        assert identity_name("chrX") == "chrX"

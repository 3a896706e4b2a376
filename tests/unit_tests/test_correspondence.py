"""Tests for peak-density correspondence."""

import numpy as np
import pytest

from alphametfast.constants import CHROM_PEAK_DTYPE
from alphametfast.features import DedupPolicy, PeakDensityParams, group_chrom_peaks
from alphametfast.peaks import InstrumentType


TWO_SAMPLES = ["S1", "S2"]
ONE_GROUP = {"S1": "study", "S2": "study"}


class TestGroupChromPeaks:
    """Test grouping of chromatographic peaks into features."""

    def test_shared_peak_gives_one_feature(self, peak_factory):
        """Two samples with the same peak (2 ppm apart) form one feature."""
        peaks = peak_factory([
            (0, 200.0, 105.0, 100.0, 110.0, 1000.0),
            (1, 200.0004, 105.5, 100.0, 110.0, 2000.0),
        ])

        features = group_chrom_peaks(
            peaks, TWO_SAMPLES, ONE_GROUP, PeakDensityParams(min_fraction=0.5)
        )

        assert len(features) == 1
        feature = features[0]
        assert feature.feature_id == 1
        assert feature.peak_ids == {"S1": 0, "S2": 1}
        assert feature.intensities == {"S1": 1000.0, "S2": 2000.0}
        assert feature.rtmin == 100.0
        assert feature.rtmax == 110.0
        assert feature.mzmin <= 200.0 and feature.mzmax >= 200.0004
        assert feature.n_samples == 2
        assert feature.filled == ()

    def test_rt_separation_beyond_bandwidth_not_merged(self, peak_factory):
        """Same m/z, apexes further apart than the bandwidth: two features."""
        params = PeakDensityParams(bandwidth=20.0)
        peaks = peak_factory([
            (0, 200.0, 100.0, 95.0, 105.0, 1000.0),
            (1, 200.0, 121.0, 116.0, 126.0, 1000.0),
        ])

        features = group_chrom_peaks(peaks, TWO_SAMPLES, ONE_GROUP, params)

        assert len(features) == 2
        assert {f.rt for f in features} == {100.0, 121.0}

    def test_member_apexes_within_bandwidth(self, peak_factory):
        """No feature spans apexes further apart than the bandwidth."""
        params = PeakDensityParams(bandwidth=10.0, min_fraction=0.0)
        rts = np.arange(50.0, 200.0, 3.0)
        peaks = peak_factory([
            (i % 2, 300.0, rt, rt - 2.0, rt + 2.0, 100.0) for i, rt in enumerate(rts)
        ])

        features = group_chrom_peaks(peaks, TWO_SAMPLES, ONE_GROUP, params)

        assert len(features) > 1
        for feature in features:
            apexes = peaks["rt"][list(feature.peak_ids.values())]
            assert apexes.max() - apexes.min() <= params.bandwidth

    def test_mz_bins_split(self, peak_factory):
        """Peaks 50 ppm apart are not grouped."""
        peaks = peak_factory([
            (0, 200.0, 100.0, 95.0, 105.0, 1000.0),
            (1, 200.01, 100.0, 95.0, 105.0, 1000.0),
        ])

        features = group_chrom_peaks(peaks, TWO_SAMPLES, ONE_GROUP, PeakDensityParams())

        assert len(features) == 2

    def test_ids_follow_mz_then_rt(self, peak_factory):
        """Feature ids are 1..n in (mz, rt) order."""
        peaks = peak_factory([
            (0, 300.0, 50.0, 45.0, 55.0, 1.0),
            (0, 200.0, 150.0, 145.0, 155.0, 1.0),
            (0, 200.0, 50.0, 45.0, 55.0, 1.0),
        ])

        features = group_chrom_peaks(
            peaks, TWO_SAMPLES, ONE_GROUP, PeakDensityParams(min_fraction=0.5)
        )

        assert [f.feature_id for f in features] == [1, 2, 3]
        assert [(f.mz, f.rt) for f in features] == [(200.0, 50.0), (200.0, 150.0), (300.0, 50.0)]

    def test_min_fraction_per_group(self, peak_factory):
        """A feature is kept when any one group reaches min_fraction."""
        sample_ids = ["A1", "A2", "B1", "B2"]
        groups = {"A1": "A", "A2": "A", "B1": "B", "B2": "B"}
        peaks = peak_factory([(0, 200.0, 100.0, 95.0, 105.0, 1.0)])

        kept = group_chrom_peaks(peaks, sample_ids, groups, PeakDensityParams(min_fraction=0.5))
        dropped = group_chrom_peaks(peaks, sample_ids, groups, PeakDensityParams(min_fraction=0.6))

        assert len(kept) == 1
        assert len(dropped) == 0

    def test_min_samples(self, peak_factory):
        """Features need at least min_samples contributing samples."""
        peaks = peak_factory([(0, 200.0, 100.0, 95.0, 105.0, 1.0)])

        features = group_chrom_peaks(
            peaks, TWO_SAMPLES, ONE_GROUP, PeakDensityParams(min_fraction=0.0, min_samples=2)
        )

        assert features == ()

    @pytest.mark.parametrize("policy, expected_row", [
        (DedupPolicy.NEAREST_CENTER, 0),
        (DedupPolicy.MAX_INTENSITY, 2),
    ])
    def test_one_peak_per_sample(self, peak_factory, policy, expected_row):
        """Several peaks of one sample in a feature: the policy picks one."""
        peaks = peak_factory([
            (0, 200.0, 100.0, 95.0, 105.0, 100.0),
            (1, 200.0, 101.0, 96.0, 106.0, 100.0),
            (0, 200.0, 110.0, 105.0, 115.0, 900.0),
        ])

        features = group_chrom_peaks(
            peaks, TWO_SAMPLES, ONE_GROUP, PeakDensityParams(dedup_policy=policy)
        )

        assert len(features) == 1
        assert features[0].peak_ids["S1"] == expected_row
        assert features[0].peak_ids["S2"] == 1

    def test_no_peaks(self):
        """No peaks, no features."""
        peaks = np.zeros(0, dtype=CHROM_PEAK_DTYPE)

        assert group_chrom_peaks(peaks, TWO_SAMPLES, ONE_GROUP, PeakDensityParams()) == ()


class TestPeakDensityParams:
    """Test parameter validation."""

    @pytest.mark.parametrize("kwargs", [
        dict(bandwidth=0.0),
        dict(min_fraction=1.5),
        dict(min_samples=0),
        dict(ppm=-1.0),
        dict(grid_step=0.0),
        dict(bandwidth=5.0, grid_step=10.0),
    ])
    def test_invalid_params(self, kwargs):
        """Misconfiguration fails before processing."""
        with pytest.raises(ValueError):
            PeakDensityParams(**kwargs)

    def test_policy_from_string(self):
        """Policies can be given by name (config files)."""
        params = PeakDensityParams(dedup_policy="max_intensity")

        assert params.dedup_policy is DedupPolicy.MAX_INTENSITY

    def test_instrument_presets(self):
        """QTOF presets use wider m/z tolerances."""
        orbitrap = PeakDensityParams.for_instrument(InstrumentType.ORBITRAP)
        qtof = PeakDensityParams.for_instrument(InstrumentType.QTOF)

        assert orbitrap.ppm < qtof.ppm

"""Tests for MS2 spectrum to feature association."""

import numpy as np
import pytest

from alphametfast.features import Feature
from alphametfast.ms2 import AssignmentPolicy, AssociationParams, associate_spectra
from alphametfast.scans import Spectrum


def spectrum(rt, precursor=200.0, intensity=(100.0, 50.0), scan_index=0, sample_id="S1"):
    return Spectrum(
        sample_id=sample_id, scan_index=scan_index, rt=rt, precursor_mz=precursor,
        mz=np.array([80.0, 120.0]), intensity=np.array(intensity, dtype=float),
    )


def feature(feature_id, rtmin, rtmax, mz=200.0):
    return Feature(
        feature_id=feature_id, mz=mz, mzmin=mz - 0.001, mzmax=mz + 0.001,
        rt=0.5 * (rtmin + rtmax), rtmin=rtmin, rtmax=rtmax,
    )


@pytest.fixture
def overlapping_features():
    """Feature 1 spans 100-120 s (center 110), feature 2 spans 95-105 s (center 100)."""
    return [feature(1, 100.0, 120.0), feature(2, 95.0, 105.0)]


class TestAssociateSpectra:
    """Test range matching and overlap policies."""

    def test_matches_inside_ranges(self, overlapping_features):
        """A spectrum inside one feature's ranges is linked to it."""
        association = associate_spectra(
            [spectrum(115.0)], overlapping_features, AssociationParams()
        )

        assert association.feature_ids == [1]
        linked = association.spectra[1][0]
        assert linked.feature_id == 1

    def test_nearest_center_policy(self, overlapping_features):
        """Overlap: the feature with the closest rt center wins."""
        association = associate_spectra(
            [spectrum(103.0)], overlapping_features,
            AssociationParams(policy=AssignmentPolicy.NEAREST_CENTER),
        )

        assert association.feature_ids == [2]

    def test_nearest_center_tie_goes_to_lower_id(self, overlapping_features):
        """Equal distance to both centers: lower feature id."""
        association = associate_spectra(
            [spectrum(105.0)], overlapping_features, AssociationParams()
        )

        assert association.feature_ids == [1]

    def test_first_match_policy(self, overlapping_features):
        """FIRST_MATCH always takes the lowest matching feature id."""
        association = associate_spectra(
            [spectrum(103.0)], overlapping_features,
            AssociationParams(policy="first_match"),
        )

        assert association.feature_ids == [1]

    def test_each_spectrum_assigned_at_most_once(self, overlapping_features):
        """Spectra are counted exactly once: assigned, unassigned or empty."""
        spectra = [
            spectrum(98.0, scan_index=0),
            spectrum(103.0, scan_index=1),
            spectrum(110.0, scan_index=2),
            spectrum(200.0, scan_index=3),
            spectrum(101.0, precursor=300.0, scan_index=4),
            spectrum(101.0, intensity=(0.0, 0.0), scan_index=5),
        ]

        association = associate_spectra(spectra, overlapping_features, AssociationParams())

        assigned = [s.scan_index for s in association.all_spectra()]
        assert sorted(assigned) == [0, 1, 2]
        assert association.n_unassigned == 2
        assert association.n_empty == 1
        assert association.n_spectra + association.n_unassigned + association.n_empty == len(spectra)

    def test_spectra_are_cleaned(self, overlapping_features):
        """Zero-intensity peaks are removed before association."""
        association = associate_spectra(
            [spectrum(115.0, intensity=(100.0, 0.0))], overlapping_features, AssociationParams()
        )

        linked = association.spectra[1][0]
        assert list(linked.mz) == [80.0]

    def test_precursor_tolerance(self, overlapping_features):
        """A ppm tolerance widens the precursor window."""
        shifted = [spectrum(115.0, precursor=200.0015)]

        strict = associate_spectra(shifted, overlapping_features, AssociationParams())
        tolerant = associate_spectra(shifted, overlapping_features, AssociationParams(ppm=10.0))

        assert len(strict) == 0
        assert tolerant.feature_ids == [1]

    def test_acquisition_order_kept(self, overlapping_features):
        """Spectra of one feature keep their input order."""
        spectra = [spectrum(118.0, scan_index=7), spectrum(112.0, scan_index=3)]

        association = associate_spectra(spectra, overlapping_features, AssociationParams())

        assert [s.scan_index for s in association.spectra[1]] == [7, 3]

    def test_no_features(self):
        """Without features every spectrum is unassigned."""
        association = associate_spectra([spectrum(100.0)], [], AssociationParams())

        assert len(association) == 0
        assert association.n_unassigned == 1

    def test_negative_ppm_rejected(self):
        """Parameter validation."""
        with pytest.raises(ValueError):
            AssociationParams(ppm=-1.0)

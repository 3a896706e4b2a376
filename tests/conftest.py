"""Pytest configuration for AlphaMetFast tests.

Provides synthetic LC-MS/MS data: MS1 scans with Gaussian
chromatographic peaks on a regular retention-time grid, plus MS2 scans.
All data is noise-free so expected values can be computed by hand.
"""

import numpy as np
import pytest

from alphametfast.constants import CHROM_PEAK_DTYPE
from alphametfast.scans import DecodedSample, SampleScans, Scan, ScanStore


def gaussian_scans(compounds, rt_grid, ms2=(), min_intensity=10.0):
    """MS1 scans for ``compounds`` plus the given MS2 scans, in rt order.

    Args:
        compounds: (mz, apex_rt, height, sigma) tuples
        rt_grid: MS1 retention times
        ms2: (rt, precursor_mz, mz_list, intensity_list) tuples
        min_intensity: Centroids below this intensity are not emitted
    """
    scans = []
    for rt in rt_grid:
        points = {}
        for mz, apex, height, sigma in compounds:
            value = height * np.exp(-0.5 * ((rt - apex) / sigma) ** 2)
            if value >= min_intensity:
                points[mz] = points.get(mz, 0.0) + value
        mz_values = np.array(sorted(points), dtype=np.float64)
        intensities = np.array([points[m] for m in sorted(points)], dtype=np.float64)
        scans.append(Scan(ms_level=1, rt=float(rt), mz=mz_values, intensity=intensities))

    for rt, precursor, mz_list, int_list in ms2:
        scans.append(Scan(
            ms_level=2,
            rt=float(rt),
            mz=np.asarray(mz_list, dtype=np.float64),
            intensity=np.asarray(int_list, dtype=np.float64),
            precursor_mz=float(precursor),
        ))

    scans.sort(key=lambda s: (s.rt, s.ms_level))
    return scans


def make_peaks(rows):
    """ChromPeak array from (sample_index, mz, rt, rtmin, rtmax, into) tuples."""
    peaks = np.zeros(len(rows), dtype=CHROM_PEAK_DTYPE)
    for i, (sample_index, mz, rt, rtmin, rtmax, into) in enumerate(rows):
        peaks[i] = (
            sample_index, mz, mz - 0.0005, mz + 0.0005, rt, rtmin, rtmax,
            into, into / 10.0, 100.0, 4,
        )
    return peaks


@pytest.fixture
def rt_grid():
    """MS1 retention times: 0-300 s, one scan per second."""
    return np.arange(0.0, 301.0, 1.0)


@pytest.fixture
def single_peak_sample(rt_grid):
    """One sample with a single Gaussian peak at m/z 200.0, rt 100 s."""
    scans = gaussian_scans([(200.0, 100.0, 1e5, 4.0)], rt_grid)
    return SampleScans.from_scans("S1", scans, group="QC")


@pytest.fixture
def two_sample_decoded(rt_grid):
    """Two samples sharing a compound; a second compound is only detectable in S1.

    - m/z 200.0 at 100 s in both samples (S2 slightly later)
    - m/z 300.0 at 200 s: high in S1, below the noise floor in S2
    - MS2 spectra of m/z 200.0 in both samples, one spectrum without a feature
    """
    s1 = gaussian_scans(
        [(200.0, 100.0, 1e5, 4.0), (300.0, 200.0, 5e4, 4.0)],
        rt_grid,
        ms2=[
            (100.5, 200.0, [85.0, 120.0, 150.0], [1000.0, 500.0, 0.0]),
            (250.5, 450.0, [100.0], [10.0]),
        ],
    )
    s2 = gaussian_scans(
        [(200.0, 101.0, 8e4, 4.0), (300.0, 200.0, 500.0, 4.0)],
        rt_grid,
        ms2=[(101.5, 200.0, [85.0, 120.0], [2000.0, 100.0])],
    )
    return [
        DecodedSample("S1", "study", s1),
        DecodedSample("S2", "study", s2),
    ]


@pytest.fixture
def two_sample_store(two_sample_decoded):
    """Ingested ``two_sample_decoded``."""
    return ScanStore.ingest(two_sample_decoded)


# Random seed for reproducibility
@pytest.fixture(autouse=True)
def set_random_seed():
    """Set random seed for reproducible tests."""
    np.random.seed(42)


@pytest.fixture
def scan_factory():
    """``gaussian_scans`` for tests building their own samples."""
    return gaussian_scans


@pytest.fixture
def peak_factory():
    """``make_peaks`` for tests building ChromPeak arrays by hand."""
    return make_peaks

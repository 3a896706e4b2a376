"""centWave-style chromatographic peak detection.

Per sample:

1. Link MS1 centroids into regions of interest (``build_rois``)
2. Extract each ROI's trace from the raw data, padded for noise estimation
3. Run a Ricker CWT over scales spanning the expected peak widths
4. Turn ridge maxima into peaks, bounded by the wavelet minima
5. Keep peaks above the S/N threshold and the noise floor, resolve
   overlaps on the same trace by S/N, integrate by the trapezoid rule

Each sample only reads its own scans, so samples can be processed on
independent workers (see ``alphametfast.pipeline``).

Examples
--------
>>> params = CentWaveParams.for_instrument(InstrumentType.ORBITRAP)
>>> peaks = detect_chrom_peaks(store["S1"], params, sample_index=0)
>>> peaks[["mz", "rt", "into", "sn"]]
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Tuple

import numpy as np

from alphametfast.constants import (
    CHROM_PEAK_DTYPE,
    DEFAULT_MAX_GAP_SCANS,
    DEFAULT_MIN_ROI_LENGTH,
    DEFAULT_NOISE,
    DEFAULT_PEAKWIDTH,
    DEFAULT_PREFILTER,
    DEFAULT_ROI_PPM,
    DEFAULT_ROI_SCAN_PADDING,
    DEFAULT_SNTHRESH,
    MIN_NOISE_SD,
)
from alphametfast.scans import SampleScans
from alphametfast.xic import extract_trace, rt_scan_range, trapezoid_area

from .roi import RegionOfInterest, build_rois
from .wavelet import cwt_ricker, descend_bounds, find_ridge_maxima

logger = logging.getLogger(__name__)


class InstrumentType(Enum):
    """Instrument types with different mass accuracy characteristics."""
    ORBITRAP = "orbitrap"  # 2-5 ppm
    QTOF = "qtof"          # 10-20 ppm


@dataclass
class CentWaveParams:
    """Parameters for centWave peak detection.

    Retention-time quantities are in seconds.
    """

    # ROI linking tolerance (ppm)
    ppm: float = DEFAULT_ROI_PPM

    # Expected chromatographic peak width range (min, max)
    peakwidth: Tuple[float, float] = DEFAULT_PEAKWIDTH

    # Minimum signal-to-noise ratio
    snthresh: float = DEFAULT_SNTHRESH

    # Minimum apex intensity (baseline noise floor)
    noise: float = DEFAULT_NOISE

    # ROI prefilter: at least k points with intensity >= I
    prefilter: Tuple[int, float] = DEFAULT_PREFILTER

    # Scans an ROI may skip before it is closed
    max_gap_scans: int = DEFAULT_MAX_GAP_SCANS

    # Minimum number of linked centroids per ROI
    min_roi_length: int = DEFAULT_MIN_ROI_LENGTH

    # Raw-signal scans added on each side of an ROI for noise estimation
    roi_scan_padding: int = DEFAULT_ROI_SCAN_PADDING

    def __post_init__(self):
        self.peakwidth = tuple(float(w) for w in self.peakwidth)
        self.prefilter = (int(self.prefilter[0]), float(self.prefilter[1]))

        if self.ppm <= 0:
            raise ValueError(f"ppm must be positive, got {self.ppm}")
        wmin, wmax = self.peakwidth
        if wmin <= 0 or wmax < wmin:
            raise ValueError(f"peakwidth must satisfy 0 < min <= max, got {self.peakwidth}")
        if self.snthresh < 0:
            raise ValueError(f"snthresh must be >= 0, got {self.snthresh}")
        if self.noise < 0:
            raise ValueError(f"noise must be >= 0, got {self.noise}")
        if self.prefilter[0] < 1 or self.prefilter[1] < 0:
            raise ValueError(f"prefilter must be (k >= 1, I >= 0), got {self.prefilter}")
        if self.max_gap_scans < 0:
            raise ValueError(f"max_gap_scans must be >= 0, got {self.max_gap_scans}")
        if self.min_roi_length < 1:
            raise ValueError(f"min_roi_length must be >= 1, got {self.min_roi_length}")
        if self.roi_scan_padding < 0:
            raise ValueError(f"roi_scan_padding must be >= 0, got {self.roi_scan_padding}")

    @classmethod
    def for_instrument(cls, instrument: InstrumentType) -> 'CentWaveParams':
        """Create parameters optimized for specific instrument type.

        Args:
            instrument: Instrument type enum

        Returns:
            CentWaveParams with instrument-specific defaults
        """
        if instrument == InstrumentType.ORBITRAP:
            return cls(ppm=5.0, peakwidth=(5.0, 30.0), snthresh=10.0, noise=1e4)
        elif instrument == InstrumentType.QTOF:
            return cls(ppm=20.0, peakwidth=(5.0, 40.0), snthresh=6.0, noise=500.0)
        else:
            raise ValueError(f"Unknown instrument type: {instrument}")


def wavelet_scales(rt_values: np.ndarray, peakwidth: Tuple[float, float]) -> np.ndarray:
    """Integer CWT scales (in scans) covering ``peakwidth`` seconds.

    A Ricker wavelet of scale ``a`` matches a peak about ``2a`` scans wide,
    so the scales run from ``wmin / (2 dt)`` to ``wmax / (2 dt)`` where
    ``dt`` is the median scan spacing. Returns an empty array when the
    spacing cannot be estimated.
    """
    if len(rt_values) < 2:
        return np.zeros(0, dtype=np.int64)
    spacing = np.diff(rt_values)
    spacing = spacing[spacing > 0]
    if len(spacing) == 0:
        return np.zeros(0, dtype=np.int64)
    dt = float(np.median(spacing))

    smin = max(1, int(np.floor(peakwidth[0] / dt / 2.0)))
    smax = max(smin, int(np.ceil(peakwidth[1] / dt / 2.0)))
    return np.arange(smin, smax + 1, dtype=np.int64)


def integrate_window(
    sample: SampleScans,
    mzmin: float,
    mzmax: float,
    rtmin: float,
    rtmax: float,
) -> float:
    """Trapezoidal area of the raw MS1 signal inside an m/z × rt window.

    The signal of each scan is the sum of all centroids in
    ``[mzmin, mzmax]``; scans without such centroids count as zero.
    """
    scan_start, scan_end = rt_scan_range(sample.ms1_rt, rtmin, rtmax)
    if scan_end - scan_start < 2:
        return 0.0
    trace = extract_trace(
        sample.ms1_offsets, sample.ms1_mz, sample.ms1_intensity,
        mzmin, mzmax, scan_start, scan_end,
    )
    return float(trapezoid_area(sample.ms1_rt[scan_start:scan_end], trace))


def integrate_chrom_peak(sample: SampleScans, peak) -> float:
    """Re-integrate a stored chromatographic peak on its own window."""
    return integrate_window(
        sample, peak["mzmin"], peak["mzmax"], peak["rtmin"], peak["rtmax"]
    )


def _estimate_noise(trace: np.ndarray, peak_mask: np.ndarray) -> Tuple[float, float]:
    """Baseline and noise standard deviation of ``trace``.

    Uses the points outside every peak region in ``peak_mask``, so that
    other peaks on the same trace do not count as noise. With fewer than
    three such points the lower half of the whole trace is used instead.
    """
    outside = trace[~peak_mask]
    if len(outside) < 3:
        ordered = np.sort(trace)
        outside = ordered[:max(1, len(ordered) // 2)]
    return float(np.median(outside)), float(np.std(outside))


def _resolve_overlaps(candidates: List[tuple]) -> List[tuple]:
    """Keep non-overlapping candidates, highest S/N first.

    Candidates are peak rows without the sample index; ties on S/N go to
    the earlier apex. Peaks that only touch at a boundary do not overlap.
    """
    ordered = sorted(candidates, key=lambda c: (-c[8], c[3]))
    accepted = []
    for cand in ordered:
        if all(cand[4] >= kept[5] or kept[4] >= cand[5] for kept in accepted):
            accepted.append(cand)
    return accepted


def _roi_peaks(
    sample: SampleScans,
    roi: RegionOfInterest,
    scales: np.ndarray,
    params: CentWaveParams,
) -> List[tuple]:
    n_scans = sample.n_ms1_scans
    s0 = max(0, roi.scan_start - params.roi_scan_padding)
    s1 = min(n_scans, roi.scan_end + params.roi_scan_padding)

    trace = extract_trace(
        sample.ms1_offsets, sample.ms1_mz, sample.ms1_intensity,
        roi.mzmin, roi.mzmax, s0, s1,
    )
    if len(trace) < 3 or trace.max() <= 0:
        return []

    coefs = cwt_ricker(trace, scales)
    positions, scale_indices = find_ridge_maxima(coefs)

    roi_lo = roi.scan_start - s0
    roi_hi = roi.scan_end - 1 - s0
    rt = sample.ms1_rt

    # Bounds and apex of every ridge maximum inside the ROI
    regions = []
    for pos, sidx in zip(positions, scale_indices):
        left, right = descend_bounds(coefs[sidx], pos)
        left = max(left, roi_lo)
        right = min(right, roi_hi)
        if right <= left:
            continue
        apex = left + int(np.argmax(trace[left:right + 1]))
        regions.append((sidx, left, right, apex, float(trace[apex])))

    # Regions reaching the intensity floors are signal, the rest is noise
    signal_floor = max(params.noise, params.prefilter[1])
    peak_mask = np.zeros(len(trace), dtype=np.bool_)
    for _, left, right, _, maxo in regions:
        if maxo >= signal_floor:
            peak_mask[left:right + 1] = True
    baseline, sd = _estimate_noise(trace, peak_mask)

    candidates = []
    for sidx, left, right, apex, maxo in regions:
        rtmin = float(rt[s0 + left])
        rtmax = float(rt[s0 + right])
        if rtmax <= rtmin:
            # Zero-width peak
            continue

        sn = (maxo - baseline) / max(sd, MIN_NOISE_SD)
        if sn < params.snthresh or maxo < params.noise:
            continue

        in_peak = (roi.scans >= s0 + left) & (roi.scans <= s0 + right)
        if np.any(in_peak):
            mz_values = roi.mz_values[in_peak]
            weights = roi.intensities[in_peak]
            mzmin = float(mz_values.min())
            mzmax = float(mz_values.max())
            mz = float(np.average(mz_values, weights=weights)) if weights.sum() > 0 else float(mz_values.mean())
        else:
            mzmin, mzmax, mz = roi.mzmin, roi.mzmax, roi.mz

        into = integrate_window(sample, mzmin, mzmax, rtmin, rtmax)
        candidates.append((
            mz, mzmin, mzmax, float(rt[s0 + apex]), rtmin, rtmax,
            into, maxo, sn, int(scales[sidx]),
        ))

    return _resolve_overlaps(candidates)


def detect_chrom_peaks(
    sample: SampleScans,
    params: CentWaveParams,
    sample_index: int = 0,
) -> np.ndarray:
    """Detect chromatographic peaks in one sample.

    Args:
        sample: Ingested sample
        params: centWave parameters
        sample_index: Value stored in the ``sample_index`` field of every peak

    Returns:
        Structured array with dtype ``CHROM_PEAK_DTYPE`` sorted by (mz, rt).
        Empty when nothing passes the thresholds.
    """
    scales = wavelet_scales(sample.ms1_rt, params.peakwidth)
    if len(scales) == 0:
        logger.warning(f"{sample.sample_id}: too few MS1 scans for peak detection")
        return np.zeros(0, dtype=CHROM_PEAK_DTYPE)

    rois = build_rois(
        sample,
        ppm=params.ppm,
        max_gap_scans=params.max_gap_scans,
        prefilter=params.prefilter,
        min_length=params.min_roi_length,
    )

    rows = []
    for roi in rois:
        for cand in _roi_peaks(sample, roi, scales, params):
            rows.append((sample_index,) + cand)

    peaks = np.array(rows, dtype=CHROM_PEAK_DTYPE) if rows else np.zeros(0, dtype=CHROM_PEAK_DTYPE)
    peaks.sort(order=["mz", "rt"])

    logger.info(
        f"{sample.sample_id}: {len(rois):,} ROIs → {len(peaks):,} chromatographic peaks"
    )
    return peaks

"""Region-of-interest (ROI) construction for centWave-style peak detection.

An ROI is a contiguous m/z trace followed across consecutive MS1 scans.
Centroids are linked to the open ROI whose running mean m/z is nearest and
within the ppm tolerance; ROIs that are not extended for more than
``max_gap_scans`` scans are closed. Closed ROIs must pass the centWave
prefilter (at least ``k`` points with intensity >= ``I``) to be kept.
"""

from dataclasses import dataclass
from typing import List, Tuple

import numpy as np

from alphametfast.constants import PPM
from alphametfast.scans import SampleScans


@dataclass
class RegionOfInterest:
    """Container for one m/z trace across scans."""

    scan_start: int           # first scan (inclusive)
    scan_end: int             # last scan (exclusive)
    mz: float                 # mean m/z of the linked centroids
    mzmin: float
    mzmax: float
    scans: np.ndarray         # scan index of each linked centroid
    mz_values: np.ndarray
    intensities: np.ndarray

    @property
    def n_points(self) -> int:
        return len(self.scans)


class _OpenRoi:
    __slots__ = ("scans", "mzs", "ints", "mz_sum", "last_scan")

    def __init__(self, scan_idx: int, mz: float, intensity: float):
        self.scans = [scan_idx]
        self.mzs = [mz]
        self.ints = [intensity]
        self.mz_sum = mz
        self.last_scan = scan_idx

    @property
    def mean_mz(self) -> float:
        return self.mz_sum / len(self.mzs)

    def add(self, scan_idx: int, mz: float, intensity: float) -> None:
        self.scans.append(scan_idx)
        self.mzs.append(mz)
        self.ints.append(intensity)
        self.mz_sum += mz
        self.last_scan = scan_idx

    def freeze(self) -> RegionOfInterest:
        mz_values = np.asarray(self.mzs, dtype=np.float64)
        return RegionOfInterest(
            scan_start=self.scans[0],
            scan_end=self.scans[-1] + 1,
            mz=float(mz_values.mean()),
            mzmin=float(mz_values.min()),
            mzmax=float(mz_values.max()),
            scans=np.asarray(self.scans, dtype=np.int64),
            mz_values=mz_values,
            intensities=np.asarray(self.ints, dtype=np.float64),
        )


def _passes_prefilter(roi: _OpenRoi, prefilter: Tuple[int, float], min_length: int) -> bool:
    k, min_intensity = prefilter
    if len(roi.scans) < min_length:
        return False
    return sum(1 for v in roi.ints if v >= min_intensity) >= k


def build_rois(
    sample: SampleScans,
    ppm: float,
    max_gap_scans: int = 1,
    prefilter: Tuple[int, float] = (3, 100.0),
    min_length: int = 3,
) -> List[RegionOfInterest]:
    """Link MS1 centroids of one sample into regions of interest.

    Parameters
    ----------
    sample : SampleScans
        Ingested sample
    ppm : float
        Linking tolerance relative to the ROI's running mean m/z
    max_gap_scans : int
        Number of consecutive scans an ROI may miss and stay open
    prefilter : (int, float)
        Keep ROIs with at least ``k`` points of intensity >= ``I``
    min_length : int
        Minimum number of linked centroids

    Returns
    -------
    List[RegionOfInterest]
        Sorted by (mz, scan_start)

    Notes
    -----
    Each ROI receives at most one centroid per scan; when two centroids of
    the same scan compete for one ROI the more intense one is linked and the
    other is dropped.
    """
    open_rois: List[_OpenRoi] = []
    closed: List[RegionOfInterest] = []

    def close(roi: _OpenRoi) -> None:
        if _passes_prefilter(roi, prefilter, min_length):
            closed.append(roi.freeze())

    for scan_idx in range(sample.n_ms1_scans):
        still_open = []
        for roi in open_rois:
            if scan_idx - roi.last_scan - 1 > max_gap_scans:
                close(roi)
            else:
                still_open.append(roi)
        open_rois = still_open

        mz_values, intensities = sample.scan_peaks(scan_idx)
        if len(mz_values) == 0:
            continue

        # Sorted view of open ROI means for nearest-neighbour lookup
        means = np.array([roi.mean_mz for roi in open_rois], dtype=np.float64)
        order = np.argsort(means, kind="stable")
        sorted_means = means[order]

        claims = {}  # open ROI position -> centroid index
        new_centroids = []

        for j in range(len(mz_values)):
            mz = mz_values[j]
            best = -1
            if len(sorted_means) > 0:
                pos = np.searchsorted(sorted_means, mz)
                best_diff = np.inf
                for cand in (pos - 1, pos):
                    if 0 <= cand < len(sorted_means):
                        diff = abs(sorted_means[cand] - mz)
                        if diff <= sorted_means[cand] * ppm * PPM and diff < best_diff:
                            best = int(order[cand])
                            best_diff = diff
            if best < 0:
                new_centroids.append(j)
            elif best not in claims or intensities[j] > intensities[claims[best]]:
                claims[best] = j

        for roi_pos, j in claims.items():
            open_rois[roi_pos].add(scan_idx, float(mz_values[j]), float(intensities[j]))
        for j in new_centroids:
            open_rois.append(_OpenRoi(scan_idx, float(mz_values[j]), float(intensities[j])))

    for roi in open_rois:
        close(roi)

    closed.sort(key=lambda r: (r.mz, r.scan_start))
    return closed

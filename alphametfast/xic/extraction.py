"""Fast XIC extraction from CSR-packed MS1 data.

MS1 scans of one sample are stored as flat m/z / intensity arrays plus a
scan offset array (see ``alphametfast.scans.SampleScans``). Within each
scan the m/z values are sorted, so every lookup is a binary search:

1. Binary search on the m/z-sorted peaks of each scan (``binary_search_mz_bounds``)
2. Binary search on the retention-time array for the scan range
3. Parallel evaluation of many windows with Numba ``prange``

These kernels back chromatographic peak integration and gap filling.
"""

from typing import Tuple

import numba as nb
import numpy as np


@nb.njit
def binary_search_mz_bounds(
    mz_array: np.ndarray,
    low_mz: float,
    high_mz: float
) -> Tuple[int, int]:
    """Index range of sorted ``mz_array`` values inside ``[low_mz, high_mz]``.

    Returns
    -------
    start_idx, end_idx : int
        Half-open index range (empty when ``start_idx == end_idx``)
    """
    n = len(mz_array)

    # Lower bound
    left, right = 0, n
    while left < right:
        mid = (left + right) // 2
        if mz_array[mid] < low_mz:
            left = mid + 1
        else:
            right = mid
    start_idx = left

    # Upper bound
    left, right = start_idx, n
    while left < right:
        mid = (left + right) // 2
        if mz_array[mid] <= high_mz:
            left = mid + 1
        else:
            right = mid

    return start_idx, left


@nb.njit
def rt_scan_range(rt_array: np.ndarray, rtmin: float, rtmax: float) -> Tuple[int, int]:
    """Half-open range of scans whose retention time lies in ``[rtmin, rtmax]``."""
    return binary_search_mz_bounds(rt_array, rtmin, rtmax)


@nb.njit
def extract_trace(
    scan_offsets: np.ndarray,
    mz_array: np.ndarray,
    intensity_array: np.ndarray,
    mzmin: float,
    mzmax: float,
    scan_start: int,
    scan_end: int,
) -> np.ndarray:
    """Summed intensity per scan inside ``[mzmin, mzmax]``.

    Parameters
    ----------
    scan_offsets : np.ndarray (int64)
        CSR offsets, length n_scans + 1
    mz_array, intensity_array : np.ndarray (float64)
        Flat peak arrays, m/z sorted within each scan
    mzmin, mzmax : float
        Inclusive m/z window
    scan_start, scan_end : int
        Half-open scan range

    Returns
    -------
    trace : np.ndarray (float64)
        Length ``scan_end - scan_start``; scans without signal are 0
    """
    n = max(0, scan_end - scan_start)
    trace = np.zeros(n, dtype=np.float64)

    for k in range(n):
        scan_idx = scan_start + k
        lo = scan_offsets[scan_idx]
        hi = scan_offsets[scan_idx + 1]
        start, end = binary_search_mz_bounds(mz_array[lo:hi], mzmin, mzmax)
        total = 0.0
        for i in range(lo + start, lo + end):
            total += intensity_array[i]
        trace[k] = total

    return trace


@nb.njit(parallel=True)
def sum_window_intensities(
    rt_array: np.ndarray,
    scan_offsets: np.ndarray,
    mz_array: np.ndarray,
    intensity_array: np.ndarray,
    mzmins: np.ndarray,
    mzmaxs: np.ndarray,
    rtmins: np.ndarray,
    rtmaxs: np.ndarray,
) -> np.ndarray:
    """Sum every MS1 data point inside each m/z × rt window.

    All windows are evaluated in parallel; each one only reads the sample
    arrays.

    Parameters
    ----------
    rt_array : np.ndarray (float64)
        Retention time per MS1 scan (non-decreasing)
    scan_offsets : np.ndarray (int64)
        CSR offsets into the flat peak arrays
    mz_array, intensity_array : np.ndarray (float64)
        Flat peak arrays
    mzmins, mzmaxs, rtmins, rtmaxs : np.ndarray (float64)
        Window bounds, one entry per window (inclusive)

    Returns
    -------
    sums : np.ndarray (float64)
        Summed intensity per window, 0.0 for windows without data

    Examples
    --------
    >>> sums = sum_window_intensities(
    ...     sample.ms1_rt, sample.ms1_offsets, sample.ms1_mz, sample.ms1_intensity,
    ...     np.array([199.99]), np.array([200.01]),
    ...     np.array([95.0]), np.array([115.0]),
    ... )
    """
    n_windows = len(mzmins)
    sums = np.zeros(n_windows, dtype=np.float64)

    for w in nb.prange(n_windows):
        scan_start, scan_end = rt_scan_range(rt_array, rtmins[w], rtmaxs[w])
        total = 0.0
        for scan_idx in range(scan_start, scan_end):
            lo = scan_offsets[scan_idx]
            hi = scan_offsets[scan_idx + 1]
            start, end = binary_search_mz_bounds(mz_array[lo:hi], mzmins[w], mzmaxs[w])
            for i in range(lo + start, lo + end):
                total += intensity_array[i]
        sums[w] = total

    return sums

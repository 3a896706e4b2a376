"""Continuous wavelet transform with the Ricker (Mexican hat) wavelet.

The CWT of a chromatographic trace responds most strongly at the scale
matching the peak width, which makes it robust against both high-frequency
noise and slowly drifting baselines. Scales are expressed in scans.
"""

from typing import Tuple

import numpy as np
from numba import njit


def ricker_wavelet(points: int, a: float) -> np.ndarray:
    """Ricker wavelet sampled at ``points`` positions centred on zero.

    ``psi(t) = A * (1 - (t/a)^2) * exp(-t^2 / (2 a^2))`` with
    ``A = 2 / (sqrt(3 a) * pi^(1/4))``.
    """
    amplitude = 2.0 / (np.sqrt(3.0 * a) * np.pi ** 0.25)
    t = np.arange(points, dtype=np.float64) - (points - 1.0) / 2.0
    xsq = (t / a) ** 2
    return amplitude * (1.0 - xsq) * np.exp(-xsq / 2.0)


def cwt_ricker(trace: np.ndarray, scales: np.ndarray) -> np.ndarray:
    """Continuous wavelet transform of ``trace`` at integer ``scales``.

    Returns
    -------
    np.ndarray
        Coefficients of shape (n_scales, len(trace))
    """
    trace = np.asarray(trace, dtype=np.float64)
    n = len(trace)
    coefs = np.zeros((len(scales), n), dtype=np.float64)
    if n == 0:
        return coefs

    # Odd kernel no longer than the trace keeps 'same' output aligned
    max_points = n if n % 2 == 1 else n - 1
    for i, scale in enumerate(scales):
        points = min(int(10 * scale) | 1, max_points)
        wavelet = ricker_wavelet(points, float(scale))
        coefs[i] = np.convolve(trace, wavelet, mode="same")
    return coefs


@njit
def find_ridge_maxima(coefs: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Candidate apexes of a CWT coefficient matrix.

    For every position the best scale is the one with the largest
    coefficient. A position is a candidate when its best coefficient is
    positive, strictly larger than its left neighbour and not smaller than
    its right neighbour (the first point of a plateau wins).

    Returns
    -------
    positions : np.ndarray (int64)
    scale_indices : np.ndarray (int64)
    """
    n_scales, n = coefs.shape
    best = np.zeros(n, dtype=np.float64)
    best_idx = np.zeros(n, dtype=np.int64)
    for p in range(n):
        b = coefs[0, p]
        bi = 0
        for s in range(1, n_scales):
            if coefs[s, p] > b:
                b = coefs[s, p]
                bi = s
        best[p] = b
        best_idx[p] = bi

    positions = []
    scale_indices = []
    for p in range(n):
        if best[p] <= 0.0:
            continue
        left_ok = p == 0 or best[p] > best[p - 1]
        right_ok = p == n - 1 or best[p] >= best[p + 1]
        if left_ok and right_ok:
            positions.append(p)
            scale_indices.append(best_idx[p])

    out_pos = np.zeros(len(positions), dtype=np.int64)
    out_scale = np.zeros(len(positions), dtype=np.int64)
    for i in range(len(positions)):
        out_pos[i] = positions[i]
        out_scale[i] = scale_indices[i]
    return out_pos, out_scale


@njit
def descend_bounds(row: np.ndarray, apex: int) -> Tuple[int, int]:
    """Walk down from ``apex`` to the nearest local minimum on each side.

    Returns inclusive (left, right) indices into ``row``.
    """
    left = apex
    while left > 0 and row[left - 1] < row[left]:
        left -= 1
    right = apex
    n = len(row)
    while right < n - 1 and row[right + 1] < row[right]:
        right += 1
    return left, right

"""Fast XIC extraction, smoothing and integration for LC-MS data.

Key Features
------------
- Binary search on m/z-sorted scan data for O(log n) lookup
- Parallel window integration with Numba (gap filling)
- Gaussian smoothing and kernel density on a retention-time grid
- Trapezoidal peak integration

Examples
--------
>>> from alphametfast.xic import extract_trace, trapezoid_area
>>>
>>> trace = extract_trace(
...     sample.ms1_offsets, sample.ms1_mz, sample.ms1_intensity,
...     199.99, 200.01, 0, sample.n_ms1_scans,
... )
>>> area = trapezoid_area(sample.ms1_rt, trace)
"""

from .extraction import (
    binary_search_mz_bounds,
    rt_scan_range,
    extract_trace,
    sum_window_intensities,
)

from .smoothing import (
    smooth_gaussian_1d,
    density_on_grid,
    trapezoid_area,
)

__all__ = [
    # Extraction
    "binary_search_mz_bounds",
    "rt_scan_range",
    "extract_trace",
    "sum_window_intensities",
    # Smoothing and integration
    "smooth_gaussian_1d",
    "density_on_grid",
    "trapezoid_area",
]

"""Cross-sample features: correspondence and gap filling.

This module provides:
- Peak-density grouping of chromatographic peaks into features
- Configurable per-sample deduplication policy
- Gap filling of missing per-sample intensities from raw MS1 signal
"""

from .correspondence import (
    DedupPolicy,
    Feature,
    PeakDensityParams,
    group_chrom_peaks,
)

from .gap_filling import (
    GapFillParams,
    fill_gaps,
    fill_sample_windows,
    median_peak_width,
)

__all__ = [
    # Correspondence
    'DedupPolicy',
    'Feature',
    'PeakDensityParams',
    'group_chrom_peaks',

    # Gap filling
    'GapFillParams',
    'fill_gaps',
    'fill_sample_windows',
    'median_peak_width',
]

"""Chromatographic peak detection (ROI linking + continuous wavelet transform)."""

from .roi import (
    RegionOfInterest,
    build_rois,
)

from .wavelet import (
    ricker_wavelet,
    cwt_ricker,
    find_ridge_maxima,
    descend_bounds,
)

from .detection import (
    CentWaveParams,
    InstrumentType,
    detect_chrom_peaks,
    integrate_chrom_peak,
    integrate_window,
    wavelet_scales,
)

__all__ = [
    # ROI
    'RegionOfInterest',
    'build_rois',

    # Wavelet
    'ricker_wavelet',
    'cwt_ricker',
    'find_ridge_maxima',
    'descend_bounds',

    # Detection
    'CentWaveParams',
    'InstrumentType',
    'detect_chrom_peaks',
    'integrate_chrom_peak',
    'integrate_window',
    'wavelet_scales',
]

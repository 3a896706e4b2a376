"""Default parameters and numeric constants for LC-MS/MS feature processing.

Values follow the defaults commonly used for untargeted metabolomics on
high-resolution instruments (centWave / peak-density / consensus spectra).
All retention times are in seconds, all tolerances in ppm unless the name
says otherwise.
"""

import numpy as np

# =============================================================================
# Numeric constants
# =============================================================================

# 1 ppm as a fraction
PPM = 1e-6

# Lower bound on the noise standard deviation used in S/N estimates,
# in intensity units
MIN_NOISE_SD = 1.0

# Structured dtype of one chromatographic peak (see peaks.detection)
CHROM_PEAK_DTYPE = np.dtype([
    ("sample_index", np.int32),
    ("mz", np.float64),
    ("mzmin", np.float64),
    ("mzmax", np.float64),
    ("rt", np.float64),       # apex retention time
    ("rtmin", np.float64),
    ("rtmax", np.float64),
    ("into", np.float64),     # integrated area
    ("maxo", np.float64),     # apex intensity
    ("sn", np.float64),       # signal-to-noise
    ("scale", np.int32),      # best wavelet scale (scans)
])

# =============================================================================
# Peak detection (centWave)
# =============================================================================

DEFAULT_ROI_PPM = 10.0
DEFAULT_PEAKWIDTH = (5.0, 30.0)   # seconds
DEFAULT_SNTHRESH = 10.0
DEFAULT_NOISE = 1000.0
DEFAULT_PREFILTER = (3, 100.0)    # (k scans, intensity)
DEFAULT_MAX_GAP_SCANS = 1
DEFAULT_ROI_SCAN_PADDING = 10
DEFAULT_MIN_ROI_LENGTH = 3       # linked centroids

# =============================================================================
# Correspondence (peak density)
# =============================================================================

DEFAULT_GROUP_PPM = 10.0
DEFAULT_GROUP_MZ_ABS = 0.001      # Da
DEFAULT_BANDWIDTH = 20.0          # seconds
DEFAULT_MIN_FRACTION = 0.5
DEFAULT_MIN_SAMPLES = 1
DEFAULT_GRID_STEP = 0.5           # seconds

# =============================================================================
# MS2 consensus
# =============================================================================

DEFAULT_MIN_PROP = 0.8
DEFAULT_CONSENSUS_MZ_ABS = 0.005  # Da
DEFAULT_CONSENSUS_PPM = 10.0

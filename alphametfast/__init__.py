"""AlphaMetFast - Numba-accelerated untargeted LC-MS/MS feature processing.

This library turns centroided LC-MS/MS runs into a feature × sample
quantification table with one representative MS2 spectrum per feature:
centWave-style peak detection, peak-density correspondence, gap filling,
MS2 association and max-intensity / consensus spectrum reduction.
"""

__version__ = "0.1.0"

# Import main submodules for convenient access
from alphametfast import scans
from alphametfast import xic
from alphametfast import peaks
from alphametfast import features
from alphametfast import ms2
from alphametfast import table
from alphametfast import pipeline
from alphametfast import export
from alphametfast import config

__all__ = [
    "scans",
    "xic",
    "peaks",
    "features",
    "ms2",
    "table",
    "pipeline",
    "export",
    "config",
]

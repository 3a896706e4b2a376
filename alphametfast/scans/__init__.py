"""Validated per-sample scan storage."""

from .store import (
    DecodedSample,
    MalformedScanError,
    SampleScans,
    Scan,
    ScanStore,
    Spectrum,
    build_store,
)

__all__ = [
    "DecodedSample",
    "MalformedScanError",
    "SampleScans",
    "Scan",
    "ScanStore",
    "Spectrum",
    "build_store",
]

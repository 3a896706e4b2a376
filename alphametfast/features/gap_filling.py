"""Gap filling: recover feature signal where peak detection found nothing.

For every (feature, sample) pair without a chromatographic peak the raw
MS1 signal is summed inside the window

    [mzmin, mzmax] × [rt - half_width, rt + half_width]

where ``rt`` is the feature's median apex time. An empty window yields a
reportable zero. No chromatographic peaks are created; only the feature's
sample-intensity mapping is completed.
"""

import logging
from dataclasses import dataclass, replace
from typing import Dict, Optional, Sequence, Tuple

import numpy as np

from alphametfast.constants import PPM
from alphametfast.scans import SampleScans, ScanStore
from alphametfast.workers import map_in_workers
from alphametfast.xic import sum_window_intensities

from .correspondence import Feature

logger = logging.getLogger(__name__)


@dataclass
class GapFillParams:
    """Parameters for gap filling."""

    # Retention-time half width (seconds); None = median peak width
    rt_half_width: Optional[float] = None

    # Widen the feature m/z range by this many ppm on each side
    expand_mz_ppm: float = 0.0

    def __post_init__(self):
        if self.rt_half_width is not None and self.rt_half_width < 0:
            raise ValueError(f"rt_half_width must be >= 0, got {self.rt_half_width}")
        if self.expand_mz_ppm < 0:
            raise ValueError(f"expand_mz_ppm must be >= 0, got {self.expand_mz_ppm}")


def median_peak_width(peaks: np.ndarray) -> float:
    """Median ``rtmax - rtmin`` over all chromatographic peaks (0.0 if none)."""
    if len(peaks) == 0:
        return 0.0
    return float(np.median(peaks["rtmax"] - peaks["rtmin"]))


def fill_sample_windows(
    sample: SampleScans,
    mzmins: np.ndarray,
    mzmaxs: np.ndarray,
    rtmins: np.ndarray,
    rtmaxs: np.ndarray,
) -> np.ndarray:
    """Summed MS1 intensity of one sample inside each window."""
    if len(mzmins) == 0 or sample.n_ms1_scans == 0:
        return np.zeros(len(mzmins), dtype=np.float64)
    return sum_window_intensities(
        sample.ms1_rt, sample.ms1_offsets, sample.ms1_mz, sample.ms1_intensity,
        mzmins, mzmaxs, rtmins, rtmaxs,
    )


def fill_gaps(
    features: Sequence[Feature],
    store: ScanStore,
    half_width: float,
    expand_mz_ppm: float = 0.0,
    n_workers: int = 1,
) -> Tuple[Feature, ...]:
    """Complete every feature's intensity mapping over all samples.

    Args:
        features: Features from correspondence
        store: Scan store holding every sample to report
        half_width: Retention-time half width of the integration window
        expand_mz_ppm: Extra m/z tolerance on both sides of the window
        n_workers: Worker processes (samples are filled independently)

    Returns:
        New Feature objects with one intensity per sample of ``store``
    """
    tasks = []
    task_rows = []
    for sample in store:
        rows = [i for i, f in enumerate(features) if sample.sample_id not in f.intensities]
        if not rows:
            continue
        missing = [features[i] for i in rows]
        mz_pad = np.array([f.mz * expand_mz_ppm * PPM for f in missing])
        tasks.append((
            sample,
            np.array([f.mzmin for f in missing]) - mz_pad,
            np.array([f.mzmax for f in missing]) + mz_pad,
            np.array([f.rt - half_width for f in missing]),
            np.array([f.rt + half_width for f in missing]),
        ))
        task_rows.append(rows)

    results = map_in_workers(fill_sample_windows, tasks, n_workers)

    filled: Dict[int, Dict[str, float]] = {}
    n_zero = 0
    for task, rows, sums in zip(tasks, task_rows, results):
        sample_id = task[0].sample_id
        for row, value in zip(rows, sums):
            filled.setdefault(row, {})[sample_id] = float(value)
            n_zero += value == 0.0

    sample_order = store.sample_ids
    out = []
    for i, feature in enumerate(features):
        new_values = filled.get(i)
        if not new_values:
            out.append(feature)
            continue
        intensities = dict(feature.intensities)
        intensities.update(new_values)
        intensities = {sid: intensities[sid] for sid in sample_order if sid in intensities}
        filled_ids = tuple(
            sid for sid in sample_order if sid in new_values or sid in feature.filled
        )
        out.append(replace(feature, intensities=intensities, filled=filled_ids))

    n_filled = sum(len(v) for v in filled.values())
    logger.info(
        f"✓ Gap filling: {n_filled:,} values filled (half width {half_width:.2f}s, "
        f"{n_zero:,} empty windows)"
    )
    return tuple(out)

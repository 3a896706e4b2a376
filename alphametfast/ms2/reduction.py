"""Reduce each feature's MS2 spectra to one representative spectrum.

Two interchangeable strategies, selected by ``ReductionMethod``:

- ``MAX_INTENSITY``: keep the spectrum with the largest total intensity
- ``CONSENSUS``: merge all spectra, keeping peaks observed in at least a
  fraction ``min_prop`` of them

Consensus building
------------------
1. Pool the peaks of all spectra and sort them by m/z
2. Greedily group: a peak joins the current group when it lies within
   ``max(mz_abs, mean * ppm)`` of the group's running mean m/z
3. For each group count the distinct spectra contributing a peak
4. Keep groups with ``count / n_spectra >= min_prop``; the consensus peak
   has the group's mean m/z and the mean (or max) intensity

Examples
--------
>>> reducer = make_reducer(ReductionMethod.CONSENSUS, ReductionParams())
>>> consensus = reducer.reduce(12, association.spectra[12])
>>> consensus.mz, consensus.fraction
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
from numba import njit

from alphametfast.constants import (
    DEFAULT_CONSENSUS_MZ_ABS,
    DEFAULT_CONSENSUS_PPM,
    DEFAULT_MIN_PROP,
    PPM,
)
from alphametfast.scans import Spectrum

from .association import Ms2Association

logger = logging.getLogger(__name__)


class ReductionMethod(Enum):
    """Spectrum reduction strategies."""
    MAX_INTENSITY = "max_intensity"
    CONSENSUS = "consensus"


_INTENSITY_FUNS = ("mean", "max")


@dataclass
class ConsensusParams:
    """Parameters for consensus spectrum building."""

    # Minimum fraction of spectra that must contain a peak
    min_prop: float = DEFAULT_MIN_PROP

    # Peak grouping tolerances; a peak joins a group within either one
    mz_abs: float = DEFAULT_CONSENSUS_MZ_ABS
    ppm: float = DEFAULT_CONSENSUS_PPM

    # Consensus peak intensity: "mean" or "max" of the grouped peaks
    intensity_fun: str = "mean"

    def __post_init__(self):
        if not 0.0 <= self.min_prop <= 1.0:
            raise ValueError(f"min_prop must be in [0, 1], got {self.min_prop}")
        if self.mz_abs < 0 or self.ppm < 0:
            raise ValueError(f"Tolerances must be >= 0, got mz_abs={self.mz_abs}, ppm={self.ppm}")
        if self.intensity_fun not in _INTENSITY_FUNS:
            raise ValueError(
                f"intensity_fun must be one of {_INTENSITY_FUNS}, got {self.intensity_fun!r}"
            )


@dataclass
class ReductionParams:
    """Which reductions to run and how to build consensus spectra."""

    methods: Tuple[ReductionMethod, ...] = (
        ReductionMethod.MAX_INTENSITY,
        ReductionMethod.CONSENSUS,
    )
    consensus: ConsensusParams = field(default_factory=ConsensusParams)

    def __post_init__(self):
        self.methods = tuple(ReductionMethod(m) for m in self.methods)
        if isinstance(self.consensus, dict):
            self.consensus = ConsensusParams(**self.consensus)


@dataclass(frozen=True, eq=False)
class ConsensusSpectrum:
    """Consensus of a feature's MS2 spectra.

    ``fraction[i]`` is the fraction of contributing spectra in which peak
    ``i`` was observed. An empty consensus is kept (``is_empty``) so callers
    can report it, but it is excluded from export.
    """

    feature_id: int
    precursor_mz: float
    rt: float
    mz: np.ndarray
    intensity: np.ndarray
    fraction: np.ndarray
    n_spectra: int
    precursor_charge: int = 0

    @property
    def n_peaks(self) -> int:
        return len(self.mz)

    @property
    def is_empty(self) -> bool:
        return len(self.mz) == 0


@njit
def group_sorted_mz(mz_sorted: np.ndarray, mz_abs: float, ppm: float) -> np.ndarray:
    """Greedy running-mean grouping of sorted m/z values.

    Returns
    -------
    labels : np.ndarray (int64)
        Group label per value, 0..n_groups-1 in m/z order
    """
    n = len(mz_sorted)
    labels = np.zeros(n, dtype=np.int64)
    if n == 0:
        return labels

    group = 0
    group_sum = mz_sorted[0]
    group_n = 1
    for i in range(1, n):
        mean = group_sum / group_n
        tol = max(mz_abs, mean * ppm * PPM)
        if abs(mz_sorted[i] - mean) <= tol:
            group_sum += mz_sorted[i]
            group_n += 1
        else:
            group += 1
            group_sum = mz_sorted[i]
            group_n = 1
        labels[i] = group
    return labels


def combine_peaks(
    mz_list: Sequence[np.ndarray],
    intensity_list: Sequence[np.ndarray],
    params: ConsensusParams,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Merge peak lists into consensus peaks.

    Args:
        mz_list: m/z array per spectrum
        intensity_list: Intensity array per spectrum
        params: Consensus parameters

    Returns:
        (mz, intensity, fraction) of the retained consensus peaks, sorted by m/z
    """
    n_spectra = len(mz_list)
    empty = np.zeros(0, dtype=np.float64)
    if n_spectra == 0:
        return empty, empty, empty

    mz = np.concatenate([np.asarray(m, dtype=np.float64) for m in mz_list])
    intensity = np.concatenate([np.asarray(i, dtype=np.float64) for i in intensity_list])
    spectrum_idx = np.concatenate([np.full(len(m), i, dtype=np.int64) for i, m in enumerate(mz_list)])
    if len(mz) == 0:
        return empty, empty, empty

    order = np.lexsort((spectrum_idx, mz))
    mz = mz[order]
    intensity = intensity[order]
    spectrum_idx = spectrum_idx[order]

    labels = group_sorted_mz(mz, params.mz_abs, params.ppm)
    n_groups = int(labels[-1]) + 1

    counts = np.bincount(labels, minlength=n_groups)
    mean_mz = np.bincount(labels, weights=mz, minlength=n_groups) / counts
    if params.intensity_fun == "max":
        group_intensity = np.zeros(n_groups, dtype=np.float64)
        np.maximum.at(group_intensity, labels, intensity)
    else:
        group_intensity = np.bincount(labels, weights=intensity, minlength=n_groups) / counts

    # Distinct contributing spectra per group
    pairs = np.unique(labels * n_spectra + spectrum_idx)
    n_present = np.bincount(pairs // n_spectra, minlength=n_groups)
    fraction = n_present / n_spectra

    keep = fraction >= params.min_prop
    return mean_mz[keep], group_intensity[keep], fraction[keep]


class MaxIntensityReducer:
    """Select the spectrum with the largest total intensity.

    Ties go to the earliest sample (by ``sample_rank`` when given, sample id
    otherwise), then the earlier retention time and scan.
    """

    method = ReductionMethod.MAX_INTENSITY

    def __init__(self, sample_rank: Optional[Mapping[str, int]] = None):
        self.sample_rank = sample_rank

    def _tie_key(self, spectrum: Spectrum):
        rank = 0
        if self.sample_rank is not None:
            rank = self.sample_rank.get(spectrum.sample_id, len(self.sample_rank))
        return (-spectrum.tic, rank, spectrum.sample_id, spectrum.rt, spectrum.scan_index)

    def reduce(self, feature_id: int, spectra: Sequence[Spectrum]) -> Optional[Spectrum]:
        if len(spectra) == 0:
            return None
        best = min(spectra, key=self._tie_key)
        return best.with_feature(feature_id)


class ConsensusReducer:
    """Merge spectra into a consensus spectrum by peak-presence voting."""

    method = ReductionMethod.CONSENSUS

    def __init__(self, params: ConsensusParams):
        self.params = params

    def reduce(self, feature_id: int, spectra: Sequence[Spectrum]) -> ConsensusSpectrum:
        mz, intensity, fraction = combine_peaks(
            [s.mz for s in spectra], [s.intensity for s in spectra], self.params
        )
        charges = [s.precursor_charge for s in spectra if s.precursor_charge > 0]
        return ConsensusSpectrum(
            feature_id=feature_id,
            precursor_mz=float(np.median([s.precursor_mz for s in spectra])) if spectra else 0.0,
            rt=float(np.median([s.rt for s in spectra])) if spectra else 0.0,
            mz=mz,
            intensity=intensity,
            fraction=fraction,
            n_spectra=len(spectra),
            precursor_charge=max(set(charges), key=charges.count) if charges else 0,
        )


Reducer = Union[MaxIntensityReducer, ConsensusReducer]


def make_reducer(
    method: ReductionMethod,
    params: ReductionParams,
    sample_rank: Optional[Mapping[str, int]] = None,
) -> Reducer:
    """Build the strategy object for ``method``."""
    factories = {
        ReductionMethod.MAX_INTENSITY: lambda: MaxIntensityReducer(sample_rank),
        ReductionMethod.CONSENSUS: lambda: ConsensusReducer(params.consensus),
    }
    return factories[ReductionMethod(method)]()


def reduce_spectra(
    association: Ms2Association,
    reducer: Reducer,
) -> Dict[int, Union[Spectrum, ConsensusSpectrum]]:
    """Apply ``reducer`` to every feature of ``association``.

    Features are independent of each other; results are keyed by feature id.
    """
    results = {}
    for feature_id in association.feature_ids:
        result = reducer.reduce(feature_id, association.spectra[feature_id])
        if result is not None:
            results[feature_id] = result

    if reducer.method == ReductionMethod.CONSENSUS:
        n_empty = sum(1 for r in results.values() if r.is_empty)
        logger.info(
            f"✓ Consensus spectra: {len(results) - n_empty:,} non-empty, "
            f"{n_empty:,} below min_prop"
        )
    else:
        logger.info(f"✓ Selected {len(results):,} max-intensity spectra")
    return results

"""Associate MS2 spectra with features.

A spectrum belongs to a feature when its precursor m/z lies inside the
feature's m/z range and its retention time inside the feature's
retention-time range, whatever sample it came from. Spectra are cleaned
(zero-intensity peaks removed) first; spectra left without peaks are
dropped.

A spectrum matching several overlapping features is assigned to exactly
one of them according to ``AssignmentPolicy``:

- ``NEAREST_CENTER``: feature whose rt-range center is closest to the
  spectrum's rt, lower feature id on ties
- ``FIRST_MATCH``: lowest feature id

Examples
--------
>>> association = associate_spectra(store.spectra(), features, AssociationParams())
>>> association.spectra[12]    # spectra of feature 12, acquisition order
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Sequence, Tuple

import numpy as np

from alphametfast.constants import PPM
from alphametfast.features import Feature
from alphametfast.scans import Spectrum

logger = logging.getLogger(__name__)


class AssignmentPolicy(Enum):
    """How a spectrum matching overlapping features picks one."""
    NEAREST_CENTER = "nearest_center"
    FIRST_MATCH = "first_match"


@dataclass
class AssociationParams:
    """Parameters for MS2-to-feature association."""

    # Extra precursor m/z tolerance around the feature m/z range (ppm)
    ppm: float = 0.0

    policy: AssignmentPolicy = AssignmentPolicy.NEAREST_CENTER

    def __post_init__(self):
        self.policy = AssignmentPolicy(self.policy)
        if self.ppm < 0:
            raise ValueError(f"ppm must be >= 0, got {self.ppm}")


@dataclass(frozen=True)
class Ms2Association:
    """Result of MS2 association.

    ``spectra`` only holds features with at least one spectrum; every
    contained ``Spectrum`` has ``feature_id`` set to its key.
    """

    spectra: Dict[int, Tuple[Spectrum, ...]] = field(default_factory=dict)
    n_unassigned: int = 0
    n_empty: int = 0

    @property
    def feature_ids(self) -> List[int]:
        return sorted(self.spectra)

    @property
    def n_spectra(self) -> int:
        return sum(len(s) for s in self.spectra.values())

    def all_spectra(self) -> List[Spectrum]:
        """Associated spectra ordered by feature id."""
        return [spec for fid in self.feature_ids for spec in self.spectra[fid]]

    def __len__(self) -> int:
        return len(self.spectra)


def associate_spectra(
    spectra: Sequence[Spectrum],
    features: Sequence[Feature],
    params: AssociationParams,
) -> Ms2Association:
    """Assign each MS2 spectrum to at most one feature.

    Args:
        spectra: All MS2 spectra of all samples
        features: Features (gap filling does not change their ranges)
        params: Association parameters

    Returns:
        Ms2Association keyed by feature id
    """
    ordered = sorted(features, key=lambda f: f.feature_id)
    feature_ids = np.array([f.feature_id for f in ordered], dtype=np.int64)
    mzmin = np.array([f.mzmin for f in ordered], dtype=np.float64)
    mzmax = np.array([f.mzmax for f in ordered], dtype=np.float64)
    rtmin = np.array([f.rtmin for f in ordered], dtype=np.float64)
    rtmax = np.array([f.rtmax for f in ordered], dtype=np.float64)
    centers = 0.5 * (rtmin + rtmax)

    assigned: Dict[int, List[Spectrum]] = {}
    n_unassigned = 0
    n_empty = 0

    for spectrum in spectra:
        cleaned = spectrum.clean()
        if cleaned.n_peaks == 0:
            n_empty += 1
            continue

        tol = cleaned.precursor_mz * params.ppm * PPM
        match = np.where(
            (mzmin - tol <= cleaned.precursor_mz) & (cleaned.precursor_mz <= mzmax + tol)
            & (rtmin <= cleaned.rt) & (cleaned.rt <= rtmax)
        )[0]
        if len(match) == 0:
            n_unassigned += 1
            continue

        if params.policy == AssignmentPolicy.NEAREST_CENTER:
            distance = np.abs(centers[match] - cleaned.rt)
            # lexsort: last key is primary
            best = match[np.lexsort((feature_ids[match], distance))[0]]
        else:
            best = match[np.argmin(feature_ids[match])]

        fid = int(feature_ids[best])
        assigned.setdefault(fid, []).append(cleaned.with_feature(fid))

    association = Ms2Association(
        spectra={fid: tuple(specs) for fid, specs in sorted(assigned.items())},
        n_unassigned=n_unassigned,
        n_empty=n_empty,
    )
    logger.info(
        f"✓ Associated {association.n_spectra:,} MS2 spectra with {len(association):,} features "
        f"({n_unassigned:,} without feature, {n_empty:,} empty after cleaning)"
    )
    return association

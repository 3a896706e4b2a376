"""MS2 spectra per feature: association and reduction.

Examples
--------
>>> from alphametfast.ms2 import (
...     AssociationParams, ReductionMethod, ReductionParams,
...     associate_spectra, make_reducer, reduce_spectra,
... )
>>>
>>> association = associate_spectra(store.spectra(), features, AssociationParams())
>>> reducer = make_reducer(ReductionMethod.CONSENSUS, ReductionParams())
>>> consensus = reduce_spectra(association, reducer)
"""

from .association import (
    AssignmentPolicy,
    AssociationParams,
    Ms2Association,
    associate_spectra,
)

from .reduction import (
    ConsensusParams,
    ConsensusReducer,
    ConsensusSpectrum,
    MaxIntensityReducer,
    ReductionMethod,
    ReductionParams,
    combine_peaks,
    group_sorted_mz,
    make_reducer,
    reduce_spectra,
)

__all__ = [
    # Association
    "AssignmentPolicy",
    "AssociationParams",
    "Ms2Association",
    "associate_spectra",
    # Reduction
    "ConsensusParams",
    "ConsensusReducer",
    "ConsensusSpectrum",
    "MaxIntensityReducer",
    "ReductionMethod",
    "ReductionParams",
    "combine_peaks",
    "group_sorted_mz",
    "make_reducer",
    "reduce_spectra",
]

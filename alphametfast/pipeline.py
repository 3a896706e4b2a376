"""End-to-end LC-MS/MS feature pipeline.

Stages, each consuming the previous stage's container:

    ScanStore
      → detect_chrom_peaks (per sample, parallel)   → ChromPeak array
      → group_chrom_peaks                            → features
      → fill_gaps (per sample, parallel)             → complete features
      → associate_spectra                            → Ms2Association
      → reduce_spectra (max intensity, consensus)    → representative spectra
      → build_quantification_tables                  → full / ms2 / consensus

Examples
--------
>>> store = ScanStore.ingest(decoded_samples)
>>> result = run_pipeline(store, PipelineParams(n_workers=4))
>>> result.tables.full.head()
>>> export_results(result, "out/")
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

import numpy as np

from alphametfast.constants import CHROM_PEAK_DTYPE
from alphametfast.features import (
    Feature,
    GapFillParams,
    PeakDensityParams,
    fill_gaps,
    group_chrom_peaks,
    median_peak_width,
)
from alphametfast.ms2 import (
    AssociationParams,
    ConsensusSpectrum,
    Ms2Association,
    ReductionMethod,
    ReductionParams,
    associate_spectra,
    make_reducer,
    reduce_spectra,
)
from alphametfast.peaks import CentWaveParams, InstrumentType, detect_chrom_peaks
from alphametfast.scans import SampleScans, ScanStore, Spectrum
from alphametfast.table import QuantificationTables, build_quantification_tables
from alphametfast.workers import default_n_workers, map_in_workers

logger = logging.getLogger(__name__)


@dataclass
class PipelineParams:
    """Parameters of every pipeline stage."""

    detection: CentWaveParams = field(default_factory=CentWaveParams)
    correspondence: PeakDensityParams = field(default_factory=PeakDensityParams)
    gap_filling: GapFillParams = field(default_factory=GapFillParams)
    association: AssociationParams = field(default_factory=AssociationParams)
    reduction: ReductionParams = field(default_factory=ReductionParams)

    # Worker processes for per-sample stages
    n_workers: int = field(default_factory=default_n_workers)

    def __post_init__(self):
        if self.n_workers < 1:
            raise ValueError(f"n_workers must be >= 1, got {self.n_workers}")

    @classmethod
    def for_instrument(cls, instrument: InstrumentType, **kwargs) -> 'PipelineParams':
        """Instrument presets for detection and correspondence."""
        return cls(
            detection=CentWaveParams.for_instrument(instrument),
            correspondence=PeakDensityParams.for_instrument(instrument),
            **kwargs,
        )


@dataclass
class PipelineResult:
    """Everything the pipeline produced, stage by stage."""

    store: ScanStore
    peaks: np.ndarray
    features: Tuple[Feature, ...]
    filled_features: Tuple[Feature, ...]
    association: Ms2Association
    max_spectra: Dict[int, Spectrum]
    consensus_spectra: Dict[int, ConsensusSpectrum]
    tables: QuantificationTables
    gap_fill_half_width: float = 0.0
    sample_errors: Dict[str, str] = field(default_factory=dict)

    def summary(self) -> Dict[str, int]:
        """Counts per stage."""
        return {
            "samples": len(self.store),
            "rejected_samples": len(self.sample_errors),
            "chrom_peaks": len(self.peaks),
            "features": len(self.filled_features),
            "filled_values": sum(len(f.filled) for f in self.filled_features),
            "ms2_spectra": self.association.n_spectra,
            "features_with_ms2": len(self.association),
            "consensus_spectra": sum(
                1 for c in self.consensus_spectra.values() if not c.is_empty
            ),
        }


def _detect_sample(sample: SampleScans, params: CentWaveParams, sample_index: int) -> np.ndarray:
    return detect_chrom_peaks(sample, params, sample_index)


def detect_all_samples(
    store: ScanStore,
    params: CentWaveParams,
    n_workers: int = 1,
) -> Tuple[np.ndarray, Dict[str, str]]:
    """Run peak detection on every sample.

    A sample whose detection fails contributes no peaks; its error message
    is returned keyed by sample id.

    Returns:
        (peaks of all samples, errors)
    """
    tasks = [(sample, params, i) for i, sample in enumerate(store)]
    results = map_in_workers(_detect_sample, tasks, n_workers, return_exceptions=True)

    per_sample = []
    errors = {}
    for sample_id, result in zip(store.sample_ids, results):
        if isinstance(result, Exception):
            logger.error(f"Peak detection failed for {sample_id}: {result}")
            errors[sample_id] = f"peak detection failed: {result}"
            continue
        per_sample.append(result)

    if per_sample:
        peaks = np.concatenate(per_sample)
    else:
        peaks = np.zeros(0, dtype=CHROM_PEAK_DTYPE)
    logger.info(f"✓ Detected {len(peaks):,} chromatographic peaks in {len(store)} samples")
    return peaks, errors


def run_pipeline(
    store: ScanStore,
    params: Optional[PipelineParams] = None,
) -> PipelineResult:
    """Run all stages on an ingested scan store.

    Args:
        store: Ingested samples (rejected samples are listed in ``store.errors``)
        params: Pipeline parameters (defaults when None)

    Returns:
        PipelineResult holding the output of every stage
    """
    if params is None:
        params = PipelineParams()

    sample_errors = dict(store.errors)
    if len(store) == 0:
        logger.warning("Scan store holds no samples")

    logger.info(f"Processing {len(store)} samples with {params.n_workers} workers")

    # Peak detection
    peaks, detection_errors = detect_all_samples(store, params.detection, params.n_workers)
    sample_errors.update(detection_errors)

    # Correspondence
    features = group_chrom_peaks(
        peaks, store.sample_ids, store.sample_groups, params.correspondence
    )

    # Gap filling
    half_width = params.gap_filling.rt_half_width
    if half_width is None:
        half_width = median_peak_width(peaks)
    filled = fill_gaps(
        features, store, half_width,
        expand_mz_ppm=params.gap_filling.expand_mz_ppm,
        n_workers=params.n_workers,
    )

    # MS2
    association = associate_spectra(store.spectra(), filled, params.association)
    max_spectra = {}
    consensus_spectra = {}
    if ReductionMethod.MAX_INTENSITY in params.reduction.methods:
        reducer = make_reducer(
            ReductionMethod.MAX_INTENSITY, params.reduction, store.sample_rank()
        )
        max_spectra = reduce_spectra(association, reducer)
    if ReductionMethod.CONSENSUS in params.reduction.methods:
        reducer = make_reducer(ReductionMethod.CONSENSUS, params.reduction)
        consensus_spectra = reduce_spectra(association, reducer)

    # Tables
    tables = build_quantification_tables(
        filled,
        store.sample_ids,
        ms2_feature_ids=association.feature_ids,
        consensus_feature_ids=[
            fid for fid, c in consensus_spectra.items() if not c.is_empty
        ],
    )

    result = PipelineResult(
        store=store,
        peaks=peaks,
        features=features,
        filled_features=filled,
        association=association,
        max_spectra=max_spectra,
        consensus_spectra=consensus_spectra,
        tables=tables,
        gap_fill_half_width=half_width,
        sample_errors=sample_errors,
    )
    logger.info(f"✓ Pipeline finished: {result.summary()}")
    return result

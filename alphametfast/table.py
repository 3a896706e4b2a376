"""Feature × sample quantification tables.

Feature metadata and per-sample intensities are joined (full outer join on
feature id) into one row per feature. Three views are produced:

- ``full``: every feature
- ``ms2``: features with at least one associated MS2 spectrum
- ``consensus``: features with a non-empty consensus spectrum
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, Sequence

import pandas as pd

from alphametfast.features import Feature

logger = logging.getLogger(__name__)

META_COLUMNS = ["feature_id", "mz", "mzmin", "mzmax", "rt", "rtmin", "rtmax"]


@dataclass
class QuantificationRow:
    """One feature with its metadata and per-sample intensities."""

    feature_id: int
    mz: float
    mzmin: float
    mzmax: float
    rt: float
    rtmin: float
    rtmax: float
    intensities: Dict[str, float] = field(default_factory=dict)

    @classmethod
    def from_feature(cls, feature: Feature) -> "QuantificationRow":
        return cls(
            feature_id=feature.feature_id,
            mz=feature.mz,
            mzmin=feature.mzmin,
            mzmax=feature.mzmax,
            rt=feature.rt,
            rtmin=feature.rtmin,
            rtmax=feature.rtmax,
            intensities=dict(feature.intensities),
        )


@dataclass
class QuantificationTables:
    """The three exportable quantification views."""

    full: pd.DataFrame
    ms2: pd.DataFrame
    consensus: pd.DataFrame


def build_quantification_table(
    features: Sequence[Feature],
    sample_ids: Sequence[str],
    require_complete: bool = True,
) -> pd.DataFrame:
    """Join feature metadata with sample intensities.

    Args:
        features: Features (gap-filled unless ``require_complete`` is False)
        sample_ids: Intensity columns, in output order
        require_complete: Reject missing intensities (after gap filling)

    Returns:
        DataFrame with ``META_COLUMNS`` followed by one column per sample,
        sorted by feature id

    Raises:
        ValueError: if ``require_complete`` and any intensity is missing
    """
    columns = META_COLUMNS + list(sample_ids)
    rows = [QuantificationRow.from_feature(f) for f in features]
    if not rows:
        return pd.DataFrame(columns=columns)

    meta = pd.DataFrame([{c: getattr(r, c) for c in META_COLUMNS} for r in rows])
    values = pd.DataFrame(
        [
            {"feature_id": r.feature_id, "sample": sid, "intensity": value}
            for r in rows for sid, value in r.intensities.items()
        ],
        columns=["feature_id", "sample", "intensity"],
    )
    wide = (
        values.pivot(index="feature_id", columns="sample", values="intensity")
        .reindex(columns=list(sample_ids))
        .reset_index()
    )

    table = meta.merge(wide, on="feature_id", how="outer")
    table = table.reindex(columns=columns).sort_values("feature_id").reset_index(drop=True)
    table["feature_id"] = table["feature_id"].astype(int)

    if require_complete:
        n_missing = int(table[list(sample_ids)].isna().sum().sum())
        if n_missing:
            raise ValueError(
                f"Quantification table has {n_missing} missing intensities; "
                f"run gap filling first or pass require_complete=False"
            )
    return table


def subset_features(table: pd.DataFrame, feature_ids: Iterable[int]) -> pd.DataFrame:
    """Rows of ``table`` whose feature id is in ``feature_ids``."""
    wanted = set(int(fid) for fid in feature_ids)
    return table[table["feature_id"].isin(wanted)].reset_index(drop=True)


def build_quantification_tables(
    features: Sequence[Feature],
    sample_ids: Sequence[str],
    ms2_feature_ids: Iterable[int],
    consensus_feature_ids: Iterable[int],
    require_complete: bool = True,
) -> QuantificationTables:
    """Build the full table and its two MS2-restricted views."""
    full = build_quantification_table(features, sample_ids, require_complete)
    tables = QuantificationTables(
        full=full,
        ms2=subset_features(full, ms2_feature_ids),
        consensus=subset_features(full, consensus_feature_ids),
    )
    logger.info(
        f"✓ Quantification tables: {len(tables.full):,} features, "
        f"{len(tables.ms2):,} with MS2, {len(tables.consensus):,} with consensus MS2"
    )
    return tables

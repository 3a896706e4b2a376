"""Tests for feature × sample quantification tables."""

import pytest

from alphametfast.features import Feature
from alphametfast.table import (
    META_COLUMNS,
    build_quantification_table,
    build_quantification_tables,
    subset_features,
)


def feature(feature_id, mz, intensities):
    return Feature(
        feature_id=feature_id, mz=mz, mzmin=mz - 0.001, mzmax=mz + 0.001,
        rt=100.0, rtmin=95.0, rtmax=105.0, intensities=intensities,
    )


@pytest.fixture
def complete_features():
    """Three gap-filled features over samples S1, S2 (given out of id order)."""
    return [
        feature(2, 300.0, {"S1": 5.0, "S2": 0.0}),
        feature(1, 200.0, {"S2": 2.0, "S1": 1.0}),
        feature(3, 400.0, {"S1": 7.0, "S2": 8.0}),
    ]


class TestBuildQuantificationTable:
    """Test the full table."""

    def test_layout(self, complete_features):
        """Metadata columns, then one column per sample in the given order."""
        table = build_quantification_table(complete_features, ["S2", "S1"])

        assert list(table.columns) == META_COLUMNS + ["S2", "S1"]
        assert list(table["feature_id"]) == [1, 2, 3]
        assert table.loc[0, "S1"] == 1.0
        assert table.loc[0, "S2"] == 2.0
        assert table.loc[1, "mz"] == 300.0

    def test_zero_is_a_value(self, complete_features):
        """Gap-filled zeros are valid intensities."""
        table = build_quantification_table(complete_features, ["S1", "S2"])

        assert table.loc[1, "S2"] == 0.0

    def test_missing_values_rejected(self):
        """Incomplete features fail unless explicitly allowed."""
        features = [feature(1, 200.0, {"S1": 1.0})]

        with pytest.raises(ValueError, match="missing"):
            build_quantification_table(features, ["S1", "S2"])

        table = build_quantification_table(features, ["S1", "S2"], require_complete=False)
        assert table["S2"].isna().all()

    def test_no_features(self):
        """An empty table keeps its columns."""
        table = build_quantification_table([], ["S1"])

        assert len(table) == 0
        assert list(table.columns) == META_COLUMNS + ["S1"]


class TestTableViews:
    """Test the MS2 restricted views."""

    def test_views(self, complete_features):
        """ms2 and consensus views are row subsets of the full table."""
        tables = build_quantification_tables(
            complete_features, ["S1", "S2"],
            ms2_feature_ids=[1, 3],
            consensus_feature_ids=[3],
        )

        assert list(tables.full["feature_id"]) == [1, 2, 3]
        assert list(tables.ms2["feature_id"]) == [1, 3]
        assert list(tables.consensus["feature_id"]) == [3]
        assert list(tables.ms2.columns) == list(tables.full.columns)

    def test_subset_unknown_ids(self, complete_features):
        """Ids without a row are ignored."""
        table = build_quantification_table(complete_features, ["S1", "S2"])

        assert len(subset_features(table, [99])) == 0

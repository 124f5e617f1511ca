"""
Tests for ClassificationScheme and Classifier.

Test classes:
    TestClassificationScheme   Boundary validation, lookups and legend.
    TestClassifier             Out-of-range policies and raster output.
    TestClassificationProperties  Monotonicity and idempotence.
"""

from __future__ import annotations

import numpy as np
import pytest

from ndvi_composite.classify import (
    DEFAULT_SCHEME,
    ClassificationScheme,
    Classifier,
    OutOfRangePolicy,
)
from ndvi_composite.rasters import CLASS_NODATA, IndexRaster, RasterGrid, to_masked
from shared.python.exceptions import ConfigurationError, OutOfRangeClassificationError


def _index(values, grid=None) -> IndexRaster:
    arr = np.asarray(values, dtype=np.float32)
    grid = grid or RasterGrid.from_bounds((0, 0, 10 * arr.shape[1], 10 * arr.shape[0]), 10.0, "EPSG:32633")
    return IndexRaster(values=to_masked(arr, -9999.0), grid=grid, year=2025)


class TestClassificationScheme:
    """Scheme construction and scalar lookups."""

    def test_default_scheme(self) -> None:
        assert DEFAULT_SCHEME.class_count == 5
        assert DEFAULT_SCHEME.boundaries == (0.0, 0.2, 0.4, 0.6, 0.8, 1.0)
        assert DEFAULT_SCHEME.labels[3] == "Healthy vegetation"
        assert DEFAULT_SCHEME.palette == ("red", "yellow", "lightgreen", "green", "darkgreen")

    @pytest.mark.parametrize(
        "value, expected",
        [(0.0, 0), (0.19, 0), (0.2, 1), (0.3333, 1), (0.6, 3), (0.6667, 3), (0.8, 4), (1.0, 4)],
    )
    def test_half_open_intervals_with_closed_top(self, value: float, expected: int) -> None:
        assert DEFAULT_SCHEME.class_of(value) == expected

    def test_out_of_range_lookup_is_none(self) -> None:
        assert DEFAULT_SCHEME.class_of(-0.1) is None
        assert DEFAULT_SCHEME.class_of(1.01) is None

    def test_non_increasing_boundaries_rejected(self) -> None:
        with pytest.raises(ConfigurationError):
            ClassificationScheme(boundaries=(0.0, 0.5, 0.5, 1.0), labels=("a", "b", "c"))

    def test_label_count_must_match(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            ClassificationScheme(boundaries=(0.0, 0.5, 1.0), labels=("only one",))
        assert exc_info.value.setting == "labels"

    def test_palette_count_must_match(self) -> None:
        with pytest.raises(ConfigurationError):
            ClassificationScheme(boundaries=(0.0, 1.0), labels=("all",), palette=("red", "blue"))

    def test_legend_entries(self) -> None:
        entries = DEFAULT_SCHEME.legend_entries()
        assert entries[0] == "No vegetation (0.0-0.2)"
        assert entries[4] == "Very healthy vegetation (0.8-1.0)"

    def test_dict_round_trip(self) -> None:
        assert ClassificationScheme.from_dict(DEFAULT_SCHEME.to_dict()) == DEFAULT_SCHEME

    def test_from_dict_missing_key(self) -> None:
        with pytest.raises(ConfigurationError):
            ClassificationScheme.from_dict({"boundaries": [0, 1]})


class TestClassifier:
    """Raster classification under each out-of-range policy."""

    VALUES = [[-0.5, 0.1, 0.5], [0.9, 1.0, np.nan]]

    def test_clamp_is_default(self) -> None:
        classified = Classifier().classify(_index(self.VALUES))
        assert classified.filled().tolist() == [[0, 0, 2], [4, 4, CLASS_NODATA]]
        assert classified.filled().dtype == np.int16

    def test_reject_raises(self) -> None:
        with pytest.raises(OutOfRangeClassificationError) as exc_info:
            Classifier(out_of_range="reject").classify(_index(self.VALUES))
        assert exc_info.value.count == 1
        assert exc_info.value.min_value == pytest.approx(-0.5)

    def test_reject_passes_in_range_values(self) -> None:
        classified = Classifier(out_of_range=OutOfRangePolicy.REJECT).classify(_index([[0.1, 0.7]]))
        assert classified.filled().tolist() == [[0, 3]]

    def test_nodata_policy(self) -> None:
        classified = Classifier(out_of_range="nodata").classify(_index(self.VALUES))
        assert classified.filled()[0, 0] == CLASS_NODATA
        assert not classified.valid_mask[0, 0]

    def test_sentinel_policy(self) -> None:
        classified = Classifier(out_of_range="sentinel").classify(_index(self.VALUES))
        assert classified.filled()[0, 0] == -1
        counts = classified.class_counts()
        assert counts[-1] == 1
        assert counts[4] == 2

    def test_sentinel_collision_rejected(self) -> None:
        with pytest.raises(ConfigurationError):
            Classifier(out_of_range="sentinel", sentinel_class=2)

    def test_unknown_policy_rejected(self) -> None:
        with pytest.raises(ConfigurationError):
            Classifier(out_of_range="wrap")

    def test_nodata_stays_nodata(self) -> None:
        classified = Classifier().classify(_index([[np.nan, 0.3]]))
        assert classified.filled().tolist() == [[CLASS_NODATA, 1]]

    def test_class_counts_list_every_class(self) -> None:
        counts = Classifier().classify(_index([[0.1, 0.1, 0.9]])).class_counts()
        assert counts == {0: 2, 1: 0, 2: 0, 3: 0, 4: 1}

    def test_tags(self) -> None:
        tags = Classifier().classify(_index([[0.5]])).tags()
        assert '"Healthy vegetation"' in tags["class_labels"]
        assert tags["year"] == "2025"

    def test_custom_scheme(self) -> None:
        scheme = ClassificationScheme(boundaries=(-1.0, 0.0, 1.0), labels=("bare", "green"))
        classified = Classifier(scheme).classify(_index([[-0.5, 0.0, 0.5]]))
        assert classified.filled().tolist() == [[0, 1, 1]]


class TestClassificationProperties:
    """Order-preserving and idempotent classification."""

    def test_monotone(self) -> None:
        values = np.linspace(-0.3, 1.2, 301, dtype=np.float32)
        ordinals, _ = Classifier().classify_values(values)
        assert (np.diff(ordinals.astype(int)) >= 0).all()

    def test_reclassification_is_idempotent(self) -> None:
        index = _index(np.random.default_rng(1).uniform(-1, 1, (8, 8)))
        first = Classifier().classify(index)
        second = Classifier().classify(index)
        np.testing.assert_array_equal(first.filled(), second.filled())

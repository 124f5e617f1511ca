"""
Tests for band identifiers and the BandSet accessor.

Test classes:
    TestBandParse      Name resolution for provider, Earth Engine and alias names.
    TestBandSet        Typed access, immutability and shape checks.
"""

from __future__ import annotations

import numpy as np
import pytest

from ndvi_composite.bands import DEFAULT_INVALID_CLASSES, Band, BandSet, QualityClass
from shared.python.exceptions import InputValidationError, MissingBandError, UnknownBandError


class TestBandParse:
    """Band.parse accepts every spelling used by catalogs and scripts."""

    @pytest.mark.parametrize("name", ["B4", "B04", "b4", "red", "RED", Band.B4])
    def test_red_spellings(self, name) -> None:
        assert Band.parse(name) is Band.B4

    def test_nir_alias(self) -> None:
        assert Band.parse("nir") is Band.B8

    def test_scl(self) -> None:
        assert Band.parse("scl") is Band.SCL
        assert Band.SCL.is_quality

    def test_asset_key_is_zero_padded(self) -> None:
        assert Band.B4.asset_key == "B04"
        assert Band.B11.asset_key == "B11"
        assert Band.SCL.asset_key == "SCL"

    def test_unknown_band_raises(self) -> None:
        with pytest.raises(UnknownBandError) as exc_info:
            Band.parse("B99")
        assert exc_info.value.name == "B99"
        assert "B8" in exc_info.value.known


class TestDefaultInvalidClasses:
    def test_default_rejects_cloud_shadow_water_and_cirrus(self) -> None:
        codes = {int(c) for c in DEFAULT_INVALID_CLASSES}
        assert codes == {3, 6, 8, 9, 10}
        assert QualityClass.VEGETATION not in DEFAULT_INVALID_CLASSES


class TestBandSet:
    """BandSet keys, lookups and validation."""

    def _bands(self) -> BandSet:
        return BandSet(
            {"B04": np.ones((2, 3)), "nir": np.full((2, 3), 2.0), "SCL": np.full((2, 3), 4)},
            owner="S2A_test",
        )

    def test_keys_are_resolved(self) -> None:
        bands = self._bands()
        assert set(bands) == {Band.B4, Band.B8, Band.SCL}
        assert bands.shape == (2, 3)

    def test_lookup_by_any_name(self) -> None:
        bands = self._bands()
        np.testing.assert_array_equal(bands["red"], bands[Band.B4])
        assert "B8" in bands
        assert "not-a-band" not in bands

    def test_reflectance_bands_exclude_quality(self) -> None:
        assert self._bands().reflectance_bands == [Band.B4, Band.B8]

    def test_arrays_are_read_only_copies(self) -> None:
        source = np.zeros((2, 2))
        bands = BandSet({"B4": source})
        source[0, 0] = 99
        assert bands["B4"][0, 0] == 0
        with pytest.raises(ValueError):
            bands["B4"][0, 0] = 1

    def test_missing_band_names_scene(self) -> None:
        bands = BandSet({"B4": np.zeros((2, 2))}, owner="S2B_x")
        with pytest.raises(MissingBandError) as exc_info:
            bands["B8"]
        assert exc_info.value.band == "B8"
        assert exc_info.value.scene_id == "S2B_x"
        assert bands.get("B8") is None

    def test_require_reports_stage(self) -> None:
        bands = BandSet({"B4": np.zeros((2, 2))}, owner="S2B_x")
        with pytest.raises(MissingBandError) as exc_info:
            bands.require(Band.B4, Band.B8, stage="normalize")
        assert exc_info.value.stage == "normalize"

    def test_shape_mismatch_raises(self) -> None:
        with pytest.raises(InputValidationError):
            BandSet({"B4": np.zeros((2, 2)), "B8": np.zeros((3, 3))})

    def test_non_2d_array_raises(self) -> None:
        with pytest.raises(InputValidationError):
            BandSet({"B4": np.zeros(4)})

    def test_unknown_key_raises(self) -> None:
        with pytest.raises(UnknownBandError):
            BandSet({"B99": np.zeros((2, 2))})

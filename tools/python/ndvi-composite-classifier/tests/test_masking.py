"""
Tests for SceneMaskEngine.

Test classes:
    TestSceneMaskEngine   SCL code handling and error reporting.
"""

from __future__ import annotations

from datetime import datetime

import numpy as np
import pytest

from ndvi_composite.bands import QualityClass
from ndvi_composite.masking import SceneMaskEngine
from ndvi_composite.scene import Scene
from shared.python.exceptions import MissingBandError


class TestSceneMaskEngine:
    """Validity masks derived from the SCL band."""

    def test_default_classes(self) -> None:
        scl = np.array([[4, 5, 3, 6], [8, 9, 10, 11]], dtype=np.float32)
        valid = SceneMaskEngine().mask_from_quality(scl)
        np.testing.assert_array_equal(
            valid, [[True, True, False, False], [False, False, False, True]]
        )

    def test_nan_scl_is_invalid(self) -> None:
        scl = np.array([[4.0, np.nan]])
        valid = SceneMaskEngine().mask_from_quality(scl)
        np.testing.assert_array_equal(valid, [[True, False]])

    def test_custom_classes(self) -> None:
        engine = SceneMaskEngine(invalid_classes=[QualityClass.SNOW, 0])
        valid = engine.mask_from_quality(np.array([[0, 4, 11, 9]]))
        np.testing.assert_array_equal(valid, [[False, True, False, True]])

    def test_fill_code_always_rejected(self) -> None:
        engine = SceneMaskEngine(invalid_classes=[QualityClass.SNOW])
        valid = engine.mask_from_quality(np.array([[0, 4, 11]]))
        np.testing.assert_array_equal(valid, [[False, True, False]])

    def test_mask_of_scene(self, make_scene) -> None:
        scene = make_scene(scl=[[4, 4, 9, 9]] * 4)
        valid = SceneMaskEngine().mask(scene)
        assert valid.shape == (4, 4)
        assert valid.sum() == 8

    def test_scene_without_scl_raises(self, grid_1px) -> None:
        scene = Scene.from_arrays(
            "no-scl", datetime(2025, 6, 5), {"B4": [[1.0]], "B8": [[2.0]]}, grid=grid_1px
        )
        with pytest.raises(MissingBandError) as exc_info:
            SceneMaskEngine().mask(scene)
        assert exc_info.value.band == "SCL"
        assert exc_info.value.scene_id == "no-scl"
        assert exc_info.value.stage == "mask"

    def test_unknown_code_rejected(self) -> None:
        with pytest.raises(ValueError):
            SceneMaskEngine(invalid_classes=[42])

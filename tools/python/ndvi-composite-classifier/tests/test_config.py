"""
Tests for PipelineConfig.

Test classes:
    TestPipelineConfigDefaults    Defaults of the June composite.
    TestPipelineConfigValidation  Rejected settings.
    TestPipelineConfigLoading     JSON files and overrides.
"""

from __future__ import annotations

import json
from datetime import date
from pathlib import Path

import pytest

from ndvi_composite.classify import DEFAULT_SCHEME, OutOfRangePolicy
from ndvi_composite.config import PipelineConfig
from shared.python.exceptions import ConfigurationError, InputValidationError


class TestPipelineConfigDefaults:
    def test_defaults(self) -> None:
        cfg = PipelineConfig()
        assert cfg.max_cloud_percent == 20
        assert cfg.scale == 10
        assert cfg.max_pixels == 10**13
        assert cfg.reflectance_scale == 10000
        assert cfg.invalid_classes == (3, 6, 8, 9, 10)
        assert cfg.policy is OutOfRangePolicy.CLAMP
        assert cfg.scheme == DEFAULT_SCHEME
        assert not cfg.fail_on_empty

    def test_window_for_year(self) -> None:
        window = PipelineConfig().window_for(2023)
        assert (window.start, window.end) == (date(2023, 6, 1), date(2023, 6, 30))


class TestPipelineConfigValidation:
    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_cloud_percent": 150},
            {"scale": 0},
            {"max_pixels": -1},
            {"reflectance_scale": 0},
            {"max_workers": 0},
            {"tile_size": 0},
            {"invalid_classes": (3, 42)},
            {"out_of_range": "wrap"},
            {"season_start": "6-1-2025"},
        ],
    )
    def test_invalid_settings(self, kwargs) -> None:
        with pytest.raises(ConfigurationError):
            PipelineConfig(**kwargs)

    def test_invalid_classes_are_sorted_and_unique(self) -> None:
        assert PipelineConfig(invalid_classes=(9, 3, 9)).invalid_classes == (3, 9)


class TestPipelineConfigLoading:
    def test_from_json(self, tmp_path: Path) -> None:
        path = tmp_path / "ndvi.json"
        path.write_text(json.dumps({
            "max_cloud_percent": 10,
            "season_start": "05-15",
            "season_end": "07-15",
            "out_of_range": "sentinel",
            "scheme": {"boundaries": [0.0, 0.5, 1.0], "labels": ["low", "high"]},
        }))
        cfg = PipelineConfig.from_json(path)
        assert cfg.max_cloud_percent == 10
        assert cfg.policy is OutOfRangePolicy.SENTINEL
        assert cfg.scheme.class_count == 2
        assert cfg.window_for(2024).label == "20240515-20240715"

    def test_unknown_key_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "ndvi.json"
        path.write_text(json.dumps({"max_clouds": 10}))
        with pytest.raises(ConfigurationError) as exc_info:
            PipelineConfig.from_json(path)
        assert exc_info.value.setting == "max_clouds"

    def test_malformed_json(self, tmp_path: Path) -> None:
        path = tmp_path / "ndvi.json"
        path.write_text("{not json")
        with pytest.raises(InputValidationError):
            PipelineConfig.from_json(path)

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(InputValidationError):
            PipelineConfig.from_json(tmp_path / "absent.json")

    def test_replace_ignores_none(self) -> None:
        cfg = PipelineConfig().replace(scale=20.0, max_cloud_percent=None)
        assert cfg.scale == 20.0
        assert cfg.max_cloud_percent == 20

    def test_to_dict_round_trip(self) -> None:
        cfg = PipelineConfig(max_cloud_percent=5, out_of_range="nodata")
        assert PipelineConfig.from_dict(cfg.to_dict()) == cfg

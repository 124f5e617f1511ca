"""
config.py
=========
Run configuration for the NDVI composite pipeline.

Defaults reproduce the June composite: scenes under 20 % cloud, SCL
classes 3/6/8/9/10 masked, digital numbers divided by 10000, a 10 m
export scale and a 1e13 pixel export limit.

Example JSON file::

    {
        "max_cloud_percent": 15,
        "season_start": "05-15",
        "season_end": "07-15",
        "out_of_range": "sentinel",
        "scheme": {
            "boundaries": [0.0, 0.3, 0.6, 1.0],
            "labels": ["Sparse", "Moderate", "Dense"]
        }
    }
"""

from __future__ import annotations

import dataclasses
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from shared.python.exceptions import ConfigurationError, InputValidationError
from shared.python.validators import Validators

from .bands import DEFAULT_INVALID_CLASSES, QualityClass
from .classify import DEFAULT_SCHEME, ClassificationScheme, OutOfRangePolicy
from .scene import DateWindow


@dataclass(frozen=True)
class PipelineConfig:
    """All tunable settings of one pipeline run.

    Attributes:
        max_cloud_percent: Scenes with cloud cover at or above this are dropped.
        season_start: First day of the composite window (``MM-DD``).
        season_end: Last day of the composite window (``MM-DD``), inclusive.
        scale: Export ground sample distance in metres.
        max_pixels: Largest export, in pixels, before it is refused.
        reflectance_scale: Digital-number divisor.
        reflectance_offset: Offset added after scaling.
        invalid_classes: SCL codes masked out of every scene.
        out_of_range: :class:`OutOfRangePolicy` name.
        sentinel_class: Class used by the ``sentinel`` policy.
        fail_on_empty: Raise :class:`NoValidDataError` instead of
                       returning all-no-data rasters.
        tile_size: Compositor tile edge in pixels (``None`` = whole grid).
        max_workers: Compositor threads.
        scheme: Classification boundaries and labels.
    """

    max_cloud_percent: float = 20.0
    season_start: str = "06-01"
    season_end: str = "06-30"
    scale: float = 10.0
    max_pixels: int = 10**13
    reflectance_scale: float = 10000.0
    reflectance_offset: float = 0.0
    invalid_classes: tuple[int, ...] = tuple(sorted(int(c) for c in DEFAULT_INVALID_CLASSES))
    out_of_range: str = OutOfRangePolicy.CLAMP.value
    sentinel_class: int = -1
    fail_on_empty: bool = False
    tile_size: int | None = None
    max_workers: int = 1
    scheme: ClassificationScheme = field(default=DEFAULT_SCHEME)

    def __post_init__(self) -> None:
        Validators.assert_in_range(self.max_cloud_percent, 0.0, 100.0, "max_cloud_percent")
        Validators.assert_positive(self.scale, "scale")
        Validators.assert_positive(self.max_pixels, "max_pixels")
        Validators.assert_positive(self.reflectance_scale, "reflectance_scale")
        Validators.assert_positive(self.max_workers, "max_workers")
        if self.tile_size is not None:
            Validators.assert_positive(self.tile_size, "tile_size")

        codes = tuple(sorted({int(c) for c in self.invalid_classes}))
        for code in codes:
            try:
                QualityClass(code)
            except ValueError:
                raise ConfigurationError(
                    "invalid_classes", f"{code} is not a Sentinel-2 SCL class"
                ) from None
        object.__setattr__(self, "invalid_classes", codes)

        try:
            policy = OutOfRangePolicy(self.out_of_range)
        except ValueError:
            raise ConfigurationError(
                "out_of_range",
                f"{self.out_of_range!r} is not one of {[p.value for p in OutOfRangePolicy]}",
            ) from None
        object.__setattr__(self, "out_of_range", policy.value)

        if isinstance(self.scheme, dict):
            object.__setattr__(self, "scheme", ClassificationScheme.from_dict(self.scheme))

        # Parses and validates both MM-DD strings
        DateWindow.for_year(2000, self.season_start, self.season_end)

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @property
    def policy(self) -> OutOfRangePolicy:
        return OutOfRangePolicy(self.out_of_range)

    def window_for(self, year: int) -> DateWindow:
        """The composite window of *year*."""
        return DateWindow.for_year(year, self.season_start, self.season_end)

    def replace(self, **changes: Any) -> "PipelineConfig":
        """Copy with *changes* applied; ``None`` values are ignored."""
        return dataclasses.replace(self, **{k: v for k, v in changes.items() if v is not None})

    def to_dict(self) -> dict[str, Any]:
        data = {f.name: getattr(self, f.name) for f in dataclasses.fields(self)}
        data["invalid_classes"] = list(self.invalid_classes)
        data["scheme"] = self.scheme.to_dict()
        return data

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "PipelineConfig":
        """Build a config from a plain mapping; unknown keys are rejected."""
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(set(raw) - known)
        if unknown:
            raise ConfigurationError(unknown[0], f"unknown setting (valid: {sorted(known)})")
        values = dict(raw)
        if "invalid_classes" in values:
            values["invalid_classes"] = tuple(values["invalid_classes"])
        if "scheme" in values:
            values["scheme"] = ClassificationScheme.from_dict(values["scheme"])
        return cls(**values)

    @classmethod
    def from_json(cls, config_path: str | Path) -> "PipelineConfig":
        """Parse a JSON configuration file.

        Raises:
            InputValidationError: If the file cannot be read or parsed.
            ConfigurationError: If a setting is unknown or invalid.
        """
        config_path = Path(config_path)
        try:
            raw = json.loads(config_path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            raise InputValidationError(
                f"Failed to read config file '{config_path}': {exc}"
            ) from exc
        if not isinstance(raw, dict):
            raise InputValidationError(
                f"Config file '{config_path}' must contain a JSON object."
            )
        return cls.from_dict(raw)

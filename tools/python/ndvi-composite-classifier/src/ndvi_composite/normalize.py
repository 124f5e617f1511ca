"""
normalize.py
============
Rescale raw Sentinel-2 digital numbers to surface reflectance and apply
a validity mask.

reflectance = DN / scale + offset

Masked pixels become NaN.  Values are not clamped, so bright targets may
exceed 1.
"""

from __future__ import annotations

import logging
from typing import Iterable

import numpy as np

from shared.python.exceptions import MissingBandError
from shared.python.validators import Validators

from .bands import Band, BandSet
from .scene import MaskedScene, Scene

logger = logging.getLogger("ndvi_composite.normalize")

STAGE = "normalize"


class ReflectanceNormalizer:
    """Scale reflectance bands and blank out invalid pixels.

    Args:
        scale: Digital-number divisor (10000 for Sentinel-2 L2A).
        offset: Additive offset applied after scaling.
        required_bands: Bands every scene must carry.
    """

    def __init__(
        self,
        scale: float = 10000.0,
        offset: float = 0.0,
        required_bands: Iterable[Band] = (Band.B4, Band.B8),
    ) -> None:
        Validators.assert_positive(scale, "reflectance_scale")
        self.scale = float(scale)
        self.offset = float(offset)
        self.required_bands = tuple(required_bands)

    def normalize(self, scene: Scene, valid: np.ndarray) -> MaskedScene:
        """Return *scene* as reflectance with ``~valid`` pixels set to NaN.

        Raises:
            MissingBandError: If a required band is absent.
            InputValidationError: If *valid* does not match the band shape.
        """
        bands = scene.bands
        for band in self.required_bands:
            if band not in bands:
                raise MissingBandError(band.value, scene_id=scene.scene_id, stage=STAGE)

        valid = np.asarray(valid, dtype=bool)
        Validators.assert_raster_shapes_match(
            bands.shape or (), valid.shape, f"{scene.scene_id} bands", "validity mask"
        )

        scaled: dict[Band, np.ndarray] = {}
        for band in bands.reflectance_bands:
            raw = bands[band].astype(np.float32)
            with np.errstate(invalid="ignore"):
                refl = raw / np.float32(self.scale) + np.float32(self.offset)
            scaled[band] = np.where(valid, refl, np.float32(np.nan)).astype(np.float32)

        logger.debug(
            "%s: %d band(s) scaled, %.1f%% valid",
            scene.scene_id, len(scaled), 100.0 * valid.mean() if valid.size else 0.0,
        )
        return MaskedScene(
            scene_id=scene.scene_id,
            acquired=scene.acquired,
            cloud_cover=scene.cloud_cover,
            reflectance=BandSet(scaled, owner=scene.scene_id),
            valid=valid,
            grid=scene.grid,
        )

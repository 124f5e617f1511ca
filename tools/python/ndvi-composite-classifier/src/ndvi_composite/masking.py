"""
masking.py
==========
Per-scene validity masks from the Sentinel-2 scene classification layer.

The SCL band is a per-pixel quality indicator.  A pixel is valid when
its SCL code is finite and not one of the configured invalid classes
(by default cloud shadow, water, medium/high probability cloud and thin
cirrus).
"""

from __future__ import annotations

import logging
from typing import Iterable, Union

import numpy as np

from shared.python.exceptions import MissingBandError

from .bands import DEFAULT_INVALID_CLASSES, Band, QualityClass
from .scene import Scene

logger = logging.getLogger("ndvi_composite.masking")

STAGE = "mask"


class SceneMaskEngine:
    """Compute boolean validity masks from a scene's SCL band.

    Args:
        invalid_classes: SCL codes to reject.  Integers are accepted and
                         converted to :class:`QualityClass`.
    """

    def __init__(
        self,
        invalid_classes: Iterable[Union[int, QualityClass]] = DEFAULT_INVALID_CLASSES,
    ) -> None:
        self.invalid_classes: frozenset[QualityClass] = frozenset(
            QualityClass(int(c)) for c in invalid_classes
        )
        self._codes = np.array(sorted(int(c) for c in self.invalid_classes), dtype=np.float64)

    def mask(self, scene: Scene) -> np.ndarray:
        """Return ``True`` where the pixel is usable.

        Raises:
            MissingBandError: If *scene* has no SCL band.
        """
        if Band.SCL not in scene.bands:
            raise MissingBandError(Band.SCL.value, scene_id=scene.scene_id, stage=STAGE)
        return self.mask_from_quality(scene.bands[Band.SCL])

    def mask_from_quality(self, scl: np.ndarray) -> np.ndarray:
        """Validity mask for a raw SCL array (no scene context).

        Fill pixels (``NO_DATA``) are always rejected, whatever the
        configured classes.
        """
        codes = np.asarray(scl, dtype=np.float64)
        valid = np.isfinite(codes) & ~np.isin(codes, self._codes)
        valid &= codes != QualityClass.NO_DATA
        return valid

    def __repr__(self) -> str:
        names = ",".join(c.name for c in sorted(self.invalid_classes))
        return f"SceneMaskEngine(invalid={names})"

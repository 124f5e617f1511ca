"""
index.py
========
NDVI from a median composite.

    NDVI = (NIR - Red) / (NIR + Red)     NIR = B8, Red = B4

No-data in either band gives no-data.  A zero denominator also gives
no-data: this happens on fully masked or saturated pixels and must not
surface as an exception, NaN or infinity.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

import numpy as np

from shared.python.validators import Validators

from .bands import Band
from .rasters import INDEX_NODATA, CompositeRaster, IndexRaster, to_masked

logger = logging.getLogger("ndvi_composite.index")

STAGE = "index"


def normalized_difference(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """``(a - b) / (a + b)`` as float32, NaN where undefined.

    Results are clipped to [-1, 1]; values outside that range only occur
    with negative inputs.
    """
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    denominator = a + b
    with np.errstate(invalid="ignore", divide="ignore"):
        nd = np.where(denominator == 0, np.nan, (a - b) / denominator)
    nd = np.where(np.isfinite(nd), np.clip(nd, -1.0, 1.0), np.nan)
    return nd.astype(np.float32)


class IndexComputer:
    """Compute NDVI from a :class:`CompositeRaster`.

    Args:
        nir_band: Near-infrared band.
        red_band: Red band.
        name: Index name stored on the output raster.
    """

    def __init__(
        self,
        nir_band: Band = Band.B8,
        red_band: Band = Band.B4,
        name: str = "NDVI",
    ) -> None:
        self.nir_band = Band.parse(nir_band)
        self.red_band = Band.parse(red_band)
        self.name = name

    def compute(
        self,
        composite: CompositeRaster,
        year: int,
        metadata: Mapping[str, Any] | None = None,
    ) -> IndexRaster:
        """Return the NDVI raster of *composite*, tagged with *year*.

        Raises:
            MissingBandError: If the composite lacks the NIR or red band.
        """
        nir = composite.band(self.nir_band, stage=STAGE)
        red = composite.band(self.red_band, stage=STAGE)
        Validators.assert_raster_shapes_match(
            nir.shape, red.shape, self.nir_band.value, self.red_band.value
        )

        nodata_in = np.ma.getmaskarray(nir) | np.ma.getmaskarray(red)
        ndvi = normalized_difference(nir.filled(np.nan), red.filled(np.nan))
        values = to_masked(ndvi, INDEX_NODATA, invalid=nodata_in)

        tags: dict[str, Any] = {}
        if composite.window is not None:
            tags["window"] = str(composite.window)
        tags["scene_count"] = composite.scene_count
        tags.update(metadata or {})

        raster = IndexRaster(values=values, grid=composite.grid, year=int(year), name=self.name, metadata=tags)
        valid = values.compressed()
        if valid.size:
            logger.info(
                "%s %d: %d valid px, min=%.4f max=%.4f mean=%.4f",
                self.name, year, valid.size, valid.min(), valid.max(), valid.mean(),
            )
        else:
            logger.warning("%s %d: no valid pixels", self.name, year)
        return raster

"""
export.py
=========
Write the NDVI and class rasters as single-band GeoTIFFs.

Files are named after the composite window and year::

    NDVI_June_2025.tif
    NDVI_Classes_June_2025.tif

Rasters are resampled to the requested export scale with
``rasterio.warp.reproject``: average for the continuous index, nearest
for class ordinals.  An export larger than ``max_pixels`` is refused
before anything is written.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Mapping

import numpy as np
import rasterio
from rasterio.errors import RasterioError
from rasterio.warp import Resampling, reproject

from shared.python.exceptions import ExportLimitExceededError, OutputWriteError
from shared.python.validators import Validators

from .rasters import ClassifiedRaster, IndexRaster, RasterGrid
from .scene import DateWindow

logger = logging.getLogger("ndvi_composite.export")


class RasterExporter:
    """Persist pipeline rasters as LZW-compressed GeoTIFFs.

    Parameters
    ----------
    output_dir:
        Directory into which the files are written.  Created if missing.
    scale:
        Export pixel size in the units of the raster CRS (metres for UTM).
    max_pixels:
        Largest allowed export, in pixels.
    """

    def __init__(
        self,
        output_dir: str | Path,
        scale: float = 10.0,
        max_pixels: int = 10**13,
    ) -> None:
        Validators.assert_positive(scale, "scale")
        Validators.assert_positive(max_pixels, "max_pixels")
        self.out_dir = Path(output_dir)
        self.scale = float(scale)
        self.max_pixels = int(max_pixels)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def target_grid(self, grid: RasterGrid) -> RasterGrid:
        """Grid of the exported file; raises when it is too large.

        Raises:
            ExportLimitExceededError: If the grid exceeds ``max_pixels``.
        """
        target = grid if np.isclose(grid.resolution, self.scale) else grid.rescaled(self.scale)
        if target.pixel_count > self.max_pixels:
            logger.error(
                "Export of %d px at scale %g exceeds the %d px limit",
                target.pixel_count, self.scale, self.max_pixels,
            )
            raise ExportLimitExceededError(target.pixel_count, self.max_pixels, self.scale)
        return target

    def index_path(self, index: IndexRaster, window: DateWindow) -> Path:
        return self.out_dir / f"{index.name}_{window.label}_{index.year}.tif"

    def classes_path(self, classified: ClassifiedRaster, window: DateWindow, name: str = "NDVI") -> Path:
        return self.out_dir / f"{name}_Classes_{window.label}_{classified.year}.tif"

    def write_index(self, index: IndexRaster, window: DateWindow) -> Path:
        """Write *index* as float32 with its no-data sentinel."""
        path = self.index_path(index, window)
        tags = index.tags()
        tags.setdefault("window", str(window))
        self._write(
            path,
            index.filled(),
            index.grid,
            dtype="float32",
            nodata=index.nodata,
            tags=tags,
            resampling=Resampling.average,
        )
        return path

    def write_classified(
        self,
        classified: ClassifiedRaster,
        window: DateWindow,
        name: str = "NDVI",
    ) -> Path:
        """Write *classified* as int16 with labels, boundaries and palette tags."""
        path = self.classes_path(classified, window, name)
        tags = classified.tags()
        tags["window"] = str(window)
        if classified.scheme.palette is not None:
            tags["class_palette"] = json.dumps(list(classified.scheme.palette))
        self._write(
            path,
            classified.filled(),
            classified.grid,
            dtype="int16",
            nodata=classified.nodata,
            tags=tags,
            resampling=Resampling.nearest,
        )
        return path

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _write(
        self,
        path: Path,
        data: np.ndarray,
        grid: RasterGrid,
        *,
        dtype: str,
        nodata: float,
        tags: Mapping[str, Any],
        resampling: Resampling,
    ) -> None:
        target = self.target_grid(grid)
        if target is not grid:
            data = self._resample(data, grid, target, dtype, nodata, resampling)

        Validators.assert_output_dir_writable(path)
        try:
            with rasterio.open(
                path,
                "w",
                driver="GTiff",
                height=target.height,
                width=target.width,
                count=1,
                dtype=dtype,
                crs=target.crs,
                transform=target.transform,
                nodata=nodata,
                compress="lzw",
            ) as dst:
                dst.write(data.astype(dtype), 1)
                dst.update_tags(**{k: str(v) for k, v in tags.items()})
        except (RasterioError, OSError) as exc:
            raise OutputWriteError(str(path), str(exc)) from exc
        logger.info("Wrote %s (%dx%d px, scale %g)", path.name, target.height, target.width, self.scale)

    @staticmethod
    def _resample(
        data: np.ndarray,
        source: RasterGrid,
        target: RasterGrid,
        dtype: str,
        nodata: float,
        resampling: Resampling,
    ) -> np.ndarray:
        destination = np.full(target.shape, nodata, dtype=dtype)
        reproject(
            source=data.astype(dtype),
            destination=destination,
            src_transform=source.transform,
            src_crs=source.crs,
            src_nodata=nodata,
            dst_transform=target.transform,
            dst_crs=target.crs,
            dst_nodata=nodata,
            resampling=resampling,
        )
        logger.debug(
            "Resampled %dx%d -> %dx%d px (%s)",
            source.height, source.width, target.height, target.width, resampling.name,
        )
        return destination

"""
compositor.py
=============
Reduce a masked scene series to one median composite per band.

The median is taken per pixel and per band over the scenes in which the
pixel is valid (NaN observations are ignored), then the result is
clipped to the area of interest.  A pixel with no valid observation is
no-data, never zero.

An empty series produces an all-no-data composite on the AOI's grid.
The composite's ``scene_count`` stays 0 so the caller can tell it apart
from an area that genuinely has no vegetation.

The grid can be split into square tiles and reduced on a thread pool.
Each pixel is reduced on its own, so the composite is bit-identical for
any tile size or worker count.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, Iterator, Sequence

import numpy as np

from shared.python.exceptions import (
    EmptySeriesError,
    GridMismatchError,
    MissingBandError,
)
from shared.python.validators import Validators

from .aoi import AreaOfInterest
from .bands import Band
from .rasters import REFLECTANCE_NODATA, CompositeRaster, RasterGrid, to_masked
from .scene import DateWindow, MaskedScene

logger = logging.getLogger("ndvi_composite.compositor")

STAGE = "composite"

Tile = tuple[slice, slice]


def iter_tiles(shape: tuple[int, int], tile_size: int | None) -> Iterator[Tile]:
    """Yield ``(row_slice, col_slice)`` tiles covering *shape*.

    With ``tile_size=None`` a single tile covers the whole grid.
    """
    rows, cols = shape
    if not tile_size:
        yield (slice(0, rows), slice(0, cols))
        return
    for r0 in range(0, rows, tile_size):
        for c0 in range(0, cols, tile_size):
            yield (slice(r0, min(r0 + tile_size, rows)), slice(c0, min(c0 + tile_size, cols)))


def nan_median(stack: np.ndarray) -> np.ndarray:
    """Median along axis 0 ignoring NaN; all-NaN pixels stay NaN.

    Only pixels with at least one finite value are reduced, so numpy
    never sees an all-NaN slice.
    """
    out = np.full(stack.shape[1:], np.nan, dtype=np.float32)
    has_value = np.isfinite(stack).any(axis=0)
    if has_value.any():
        out[has_value] = np.nanmedian(stack[:, has_value], axis=0)
    return out


class TemporalCompositor:
    """Per-pixel median compositor.

    Args:
        bands: Bands to composite.  ``None`` keeps every reflectance band
               shared by all scenes.
        resolution: Ground sample distance used for the AOI grid when the
                    series is empty and no grid is given.
        allow_empty: When ``False`` an empty series raises
                     :class:`EmptySeriesError` instead of returning an
                     all-no-data composite.
        tile_size: Tile edge in pixels; ``None`` reduces the whole grid
                   at once.
        max_workers: Threads used to reduce tiles.
    """

    def __init__(
        self,
        bands: Iterable[Band] | None = (Band.B4, Band.B8),
        resolution: float = 10.0,
        *,
        allow_empty: bool = True,
        tile_size: int | None = None,
        max_workers: int = 1,
    ) -> None:
        Validators.assert_positive(resolution, "resolution")
        if tile_size is not None:
            Validators.assert_positive(tile_size, "tile_size")
        Validators.assert_positive(max_workers, "max_workers")
        self.bands = tuple(bands) if bands is not None else None
        self.resolution = float(resolution)
        self.allow_empty = allow_empty
        self.tile_size = tile_size
        self.max_workers = int(max_workers)

    # ------------------------------------------------------------------
    # Public entry point
    # ------------------------------------------------------------------

    def composite(
        self,
        scenes: Sequence[MaskedScene],
        aoi: AreaOfInterest,
        *,
        grid: RasterGrid | None = None,
        window: DateWindow | None = None,
    ) -> CompositeRaster:
        """Median-composite *scenes* and clip the result to *aoi*.

        Raises:
            EmptySeriesError: If *scenes* is empty and ``allow_empty`` is off.
            GridMismatchError: If the scenes are not on one grid.
            MissingBandError: If a requested band is absent from a scene.
        """
        scenes = list(scenes)
        if not scenes:
            return self._empty(aoi, grid, window)

        grid = grid or scenes[0].grid
        for scene in scenes:
            if not scene.grid.matches(grid):
                raise GridMismatchError(
                    f"{scene.grid!r} differs from {grid!r}",
                    scene_id=scene.scene_id,
                    stage=STAGE,
                )
        bands = self._select_bands(scenes)
        logger.info(
            "Compositing %d scene(s), band(s) %s on %s",
            len(scenes), ",".join(b.value for b in bands), grid,
        )

        stacks = {b: np.stack([s.reflectance[b] for s in scenes]) for b in bands}
        medians = {b: np.full(grid.shape, np.nan, dtype=np.float32) for b in bands}
        observations = np.zeros(grid.shape, dtype=np.int32)

        def reduce_tile(tile: Tile) -> None:
            rows, cols = tile
            finite = np.ones((len(scenes),) + medians[bands[0]][rows, cols].shape, dtype=bool)
            for band in bands:
                block = stacks[band][:, rows, cols]
                medians[band][rows, cols] = nan_median(block)
                finite &= np.isfinite(block)
            observations[rows, cols] = finite.sum(axis=0)

        tiles = list(iter_tiles(grid.shape, self.tile_size))
        if self.max_workers > 1 and len(tiles) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                # list() re-raises the first worker exception
                list(pool.map(reduce_tile, tiles))
        else:
            for tile in tiles:
                reduce_tile(tile)

        return self._clip(medians, observations, grid, aoi, len(scenes), window)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _select_bands(self, scenes: Sequence[MaskedScene]) -> tuple[Band, ...]:
        if self.bands is not None:
            for scene in scenes:
                for band in self.bands:
                    if band not in scene.reflectance:
                        raise MissingBandError(band.value, scene_id=scene.scene_id, stage=STAGE)
            return self.bands
        shared = [b for b in scenes[0].reflectance.reflectance_bands
                  if all(b in s.reflectance for s in scenes[1:])]
        if not shared:
            raise MissingBandError("any reflectance band", scene_id=scenes[0].scene_id, stage=STAGE)
        return tuple(shared)

    def _empty(
        self,
        aoi: AreaOfInterest,
        grid: RasterGrid | None,
        window: DateWindow | None,
    ) -> CompositeRaster:
        label = str(window) if window else "the requested window"
        if not self.allow_empty:
            raise EmptySeriesError(label, stage=STAGE)
        grid = grid or aoi.grid(self.resolution)
        logger.warning(
            "No scenes for %s: returning an all-no-data composite on %s", label, grid
        )
        bands = self.bands or (Band.B4, Band.B8)
        medians = {b: np.full(grid.shape, np.nan, dtype=np.float32) for b in bands}
        observations = np.zeros(grid.shape, dtype=np.int32)
        return self._clip(medians, observations, grid, aoi, 0, window)

    @staticmethod
    def _clip(
        medians: dict[Band, np.ndarray],
        observations: np.ndarray,
        grid: RasterGrid,
        aoi: AreaOfInterest,
        scene_count: int,
        window: DateWindow | None,
    ) -> CompositeRaster:
        outside = ~aoi.mask(grid)
        observations = np.where(outside, 0, observations).astype(np.int32)
        bands = {
            b: to_masked(arr, REFLECTANCE_NODATA, invalid=outside)
            for b, arr in medians.items()
        }
        composite = CompositeRaster(
            bands=bands,
            observation_count=observations,
            grid=grid,
            scene_count=scene_count,
            window=window,
        )
        logger.debug("Composite ready: %r", composite)
        return composite

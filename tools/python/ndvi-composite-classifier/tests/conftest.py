"""
Shared fixtures for the NDVI composite tests.

Every raster is synthetic: small grids in UTM 33N (EPSG:32633) with
10 m pixels, and scenes built from raw Sentinel-2 digital numbers.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable

import numpy as np
import pytest
from pyproj import CRS
from shapely.geometry import box

from ndvi_composite.aoi import AreaOfInterest
from ndvi_composite.rasters import RasterGrid
from ndvi_composite.scene import Scene

UTM_33N = "EPSG:32633"


@pytest.fixture
def grid_1px() -> RasterGrid:
    """One 10 m pixel covering (0, 0)-(10, 10)."""
    return RasterGrid.from_bounds((0.0, 0.0, 10.0, 10.0), 10.0, UTM_33N)


@pytest.fixture
def aoi_1px() -> AreaOfInterest:
    return AreaOfInterest(geometry=box(0.0, 0.0, 10.0, 10.0), crs=CRS.from_user_input(UTM_33N), label="pixel")


@pytest.fixture
def grid_4x4() -> RasterGrid:
    """4x4 pixels of 10 m covering (0, 0)-(40, 40)."""
    return RasterGrid.from_bounds((0.0, 0.0, 40.0, 40.0), 10.0, UTM_33N)


@pytest.fixture
def aoi_4x4() -> AreaOfInterest:
    return AreaOfInterest(geometry=box(0.0, 0.0, 40.0, 40.0), crs=CRS.from_user_input(UTM_33N), label="field")


@pytest.fixture
def make_scene(grid_4x4: RasterGrid) -> Callable[..., Scene]:
    """Factory for scenes with constant (or explicit) DN values.

    ``make_scene("s1", red=1000, nir=5000, scl=4)`` builds a June 2025
    scene on the 4x4 grid; pass ``grid=`` to use another grid and
    arrays instead of scalars for per-pixel values.
    """

    def _make(
        scene_id: str = "s1",
        *,
        red=1000,
        nir=5000,
        scl=4,
        day: int = 10,
        cloud: float = 5.0,
        grid: RasterGrid | None = None,
        month: int = 6,
        year: int = 2025,
    ) -> Scene:
        grid = grid or grid_4x4

        def _fill(value) -> np.ndarray:
            if np.isscalar(value):
                return np.full(grid.shape, value, dtype=np.float32)
            return np.asarray(value, dtype=np.float32)

        return Scene.from_arrays(
            scene_id=scene_id,
            acquired=datetime(year, month, day, 10, 0),
            bands={"B4": _fill(red), "B8": _fill(nir), "SCL": _fill(scl)},
            grid=grid,
            cloud_cover=cloud,
        )

    return _make

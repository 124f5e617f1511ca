"""
stac_catalog.py
===============
Sentinel-2 L2A scenes from Microsoft Planetary Computer via the STAC API.

Only the AOI window of each granule is read: ``stackstac`` builds a
lazy (time, band, y, x) cube in the AOI's UTM zone, which is then
materialised into :class:`Scene` objects.

Collection used
---------------
sentinel-2-l2a  -- Sentinel-2 Level-2A surface reflectance (0-10000 DN)
                   with the SCL scene classification band.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, Sequence

import numpy as np

try:
    import pystac_client
    import planetary_computer
    import stackstac
    import xarray as xr
    from pystac_client.exceptions import APIError
except ImportError as e:
    raise ImportError(
        f"Missing dependency: {e}.  "
        "Install with: pip install pystac-client planetary-computer stackstac xarray"
    ) from e

from rasterio.crs import CRS
from rasterio.transform import Affine
from shapely.geometry.base import BaseGeometry

from shared.python.exceptions import CatalogError, GridMismatchError
from shared.python.validators import Validators

from .aoi import AreaOfInterest
from .bands import Band
from .rasters import RasterGrid
from .scene import DateWindow, Scene, SceneSeries

logger = logging.getLogger("ndvi_composite.stac_catalog")

PLANETARY_COMPUTER_URL = "https://planetarycomputer.microsoft.com/api/stac/v1"
SENTINEL2_COLLECTION = "sentinel-2-l2a"


# ---------------------------------------------------------------------------
# Stack conversion
# ---------------------------------------------------------------------------


def _grid_from_stack(stack: xr.DataArray, crs, resolution: float | None) -> RasterGrid:
    """Rebuild the pixel grid from pixel-centre ``x``/``y`` coordinates."""
    xs = np.asarray(stack["x"].values, dtype=np.float64)
    ys = np.asarray(stack["y"].values, dtype=np.float64)
    if xs.size > 1:
        res = abs(float(xs[1] - xs[0]))
    elif resolution is not None:
        res = float(resolution)
    else:
        res = float(stack.attrs.get("resolution", 0.0))
    Validators.assert_positive(res, "resolution")
    if ys.size > 1 and ys[1] > ys[0]:
        raise GridMismatchError("stack rows must run north to south")
    transform = Affine(res, 0.0, float(xs[0]) - res / 2.0, 0.0, -res, float(ys[0]) + res / 2.0)
    if crs is None:
        crs = stack.attrs.get("crs")
    if crs is None:
        raise CatalogError("Stack carries no CRS; pass crs= explicitly.")
    return RasterGrid(
        transform=transform, crs=CRS.from_user_input(crs), height=int(ys.size), width=int(xs.size)
    )


def _coord_values(stack: xr.DataArray, name: str) -> list | None:
    if name not in stack.coords:
        return None
    values = np.atleast_1d(stack.coords[name].values)
    return values.tolist() if values.size == stack.sizes["time"] else None


def scenes_from_stack(
    stack: xr.DataArray,
    *,
    crs=None,
    resolution: float | None = None,
    scene_ids: Sequence[str] | None = None,
    cloud_covers: Sequence[float] | None = None,
    footprints: Sequence[BaseGeometry | None] | None = None,
) -> list[Scene]:
    """Materialise a ``(time, band, y, x)`` DataArray into scenes.

    Scene ids and cloud cover default to the ``id`` and
    ``eo:cloud_cover`` coordinates that ``stackstac`` attaches to the
    time dimension.  Band names may be asset keys (``"B04"``) or any
    name :meth:`Band.parse` accepts.

    Raises:
        UnknownBandError: If a band coordinate names no known band.
        CatalogError: If the stack has no CRS and none is given.
    """
    for dim in ("time", "band", "y", "x"):
        if dim not in stack.dims:
            raise CatalogError(f"Stack is missing the '{dim}' dimension.")
    stack = stack.transpose("time", "band", "y", "x")

    grid = _grid_from_stack(stack, crs, resolution)
    bands = [Band.parse(name) for name in np.atleast_1d(stack["band"].values).tolist()]
    n_times = stack.sizes["time"]

    ids = list(scene_ids) if scene_ids is not None else _coord_values(stack, "id")
    if ids is None:
        ids = [f"scene-{i}" for i in range(n_times)]
    clouds = list(cloud_covers) if cloud_covers is not None else _coord_values(stack, "eo:cloud_cover")
    if clouds is None:
        clouds = [0.0] * n_times
    shapes = list(footprints) if footprints is not None else [None] * n_times

    data = np.asarray(stack.values, dtype=np.float32)
    times = np.asarray(stack["time"].values).astype("datetime64[us]")

    scenes = []
    for i in range(n_times):
        acquired: datetime = times[i].item()
        cloud = float(clouds[i]) if clouds[i] is not None else 0.0
        scenes.append(
            Scene.from_arrays(
                scene_id=str(ids[i]),
                acquired=acquired,
                bands={band: data[i, j] for j, band in enumerate(bands)},
                grid=grid,
                cloud_cover=0.0 if np.isnan(cloud) else cloud,
                footprint=shapes[i],
            )
        )
        logger.debug("Materialised %s", scenes[-1])
    return scenes


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


class PlanetaryComputerCatalog:
    """Scene catalog backed by the Planetary Computer STAC API.

    Parameters
    ----------
    bands:
        Reflectance bands to read; SCL is always added.
    resolution:
        Output pixel size in metres.
    chunk_size:
        Dask chunk size in pixels for x and y dimensions.
    url:
        STAC API root.
    """

    def __init__(
        self,
        bands: Iterable[Band] = (Band.B4, Band.B8),
        resolution: float = 10.0,
        chunk_size: int = 1024,
        url: str = PLANETARY_COMPUTER_URL,
        collection: str = SENTINEL2_COLLECTION,
    ) -> None:
        Validators.assert_positive(resolution, "resolution")
        self.bands = tuple(b for b in (Band.parse(b) for b in bands) if not b.is_quality)
        self.resolution = float(resolution)
        self.chunk_size = chunk_size
        self.url = url
        self.collection = collection
        self._client = None

    @property
    def assets(self) -> list[str]:
        return [b.asset_key for b in self.bands] + [Band.SCL.asset_key]

    def _open(self):
        if self._client is None:
            try:
                # sign_inplace adds SAS tokens to asset hrefs
                self._client = pystac_client.Client.open(
                    self.url, modifier=planetary_computer.sign_inplace,
                )
            except (APIError, OSError) as exc:
                raise CatalogError(f"Cannot open STAC catalog {self.url}: {exc}") from exc
        return self._client

    def fetch_scenes(
        self,
        aoi: AreaOfInterest,
        window: DateWindow,
        max_cloud_percent: float,
    ) -> SceneSeries:
        """Search, stack and materialise the scenes for *aoi* and *window*.

        An empty search result is returned as an empty series.

        Raises:
            CatalogError: If the search or the stacking fails.
        """
        bbox = aoi.bbox_wgs84
        logger.info(
            "Searching %s %s with cloud < %s%%", self.collection, window, max_cloud_percent
        )
        try:
            search = self._open().search(
                collections=[self.collection],
                bbox=bbox,
                datetime=window.stac_range,
                query={"eo:cloud_cover": {"lt": max_cloud_percent}},
            )
            items = list(search.items())
        except (APIError, OSError) as exc:
            raise CatalogError(f"STAC search failed: {exc}") from exc

        logger.info("Found %d scene(s)", len(items))
        if not items:
            return SceneSeries()

        epsg = aoi.projected().crs.to_epsg()
        try:
            stack = stackstac.stack(
                items,
                assets=self.assets,
                bounds_latlon=bbox,
                epsg=epsg,
                resolution=self.resolution,
                dtype="float32",  # type: ignore[arg-type]
                fill_value=np.float32("nan"),  # type: ignore[arg-type]
                rescale=False,   # raw DN; ReflectanceNormalizer divides by 10000
                xy_coords="center",  # scenes_from_stack expects pixel centres
                chunksize={"x": self.chunk_size, "y": self.chunk_size},  # type: ignore[arg-type]
            )
            stack = self._drop_duplicate_times(stack)
            scenes = scenes_from_stack(stack, crs=f"EPSG:{epsg}", resolution=self.resolution)
        except (RuntimeError, ValueError, OSError) as exc:
            raise CatalogError(f"Stacking {len(items)} scene(s) failed: {exc}") from exc

        # Local re-check of the inclusive window and the strict cloud limit
        return SceneSeries(scenes).filter(window=window, max_cloud_percent=max_cloud_percent)

    @staticmethod
    def _drop_duplicate_times(da: xr.DataArray) -> xr.DataArray:
        """Keep only the first acquisition when multiple granules share a timestamp."""
        _, idx = np.unique(da.time.values, return_index=True)
        return da.isel(time=idx)

    def __repr__(self) -> str:
        return f"PlanetaryComputerCatalog(collection={self.collection!r}, assets={self.assets})"

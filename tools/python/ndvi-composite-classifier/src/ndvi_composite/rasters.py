"""
rasters.py
==========
In-memory raster types passed between pipeline stages.

Every output raster holds a ``numpy.ma.MaskedArray``: masked pixels are
no-data and the data underneath them is the declared ``nodata``
sentinel, so no NaN or Inf ever leaves the pipeline.  All rasters of a
run share one :class:`RasterGrid`.

Classes:
    RasterGrid          Affine transform + CRS + shape of a pixel grid.
    CompositeRaster     Per-band median composite of a scene series.
    IndexRaster         Single-band NDVI raster tagged with its year.
    ClassifiedRaster    Single-band class ordinals + the scheme used.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Mapping, Union

import numpy as np
import numpy.typing as npt
from rasterio.crs import CRS
from rasterio.transform import Affine, array_bounds

from shared.python.exceptions import MissingBandError

from .bands import Band

if TYPE_CHECKING:
    import xarray as xr

    from .classify import ClassificationScheme
    from .scene import DateWindow

# Declared no-data sentinels of the output rasters
REFLECTANCE_NODATA: float = -9999.0
INDEX_NODATA: float = -9999.0
CLASS_NODATA: int = -9999


# ---------------------------------------------------------------------------
# Grid
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RasterGrid:
    """Pixel grid shared by every raster in one pipeline run.

    Attributes:
        transform: Affine transform of the top-left pixel corner.
        crs: Coordinate reference system of the grid.
        height: Number of rows.
        width: Number of columns.
    """

    transform: Affine
    crs: CRS
    height: int
    width: int

    @classmethod
    def from_bounds(
        cls,
        bounds: tuple[float, float, float, float],
        resolution: float,
        crs: Any,
    ) -> "RasterGrid":
        """Build a north-up grid covering *bounds* at *resolution*.

        Bounds are snapped outward to whole multiples of the resolution so
        grids built for the same area always line up.
        """
        minx, miny, maxx, maxy = bounds
        res = float(resolution)
        left = math.floor(round(minx / res, 9)) * res
        bottom = math.floor(round(miny / res, 9)) * res
        right = math.ceil(round(maxx / res, 9)) * res
        top = math.ceil(round(maxy / res, 9)) * res
        width = max(1, int(round((right - left) / res)))
        height = max(1, int(round((top - bottom) / res)))
        transform = Affine(res, 0.0, left, 0.0, -res, top)
        return cls(transform=transform, crs=CRS.from_user_input(crs), height=height, width=width)

    @property
    def shape(self) -> tuple[int, int]:
        return (self.height, self.width)

    @property
    def resolution(self) -> float:
        """Ground sample distance in CRS units (square pixels assumed)."""
        return abs(self.transform.a)

    @property
    def bounds(self) -> tuple[float, float, float, float]:
        """``(minx, miny, maxx, maxy)`` of the grid."""
        west, south, east, north = array_bounds(self.height, self.width, self.transform)
        return (west, south, east, north)

    @property
    def pixel_count(self) -> int:
        return self.height * self.width

    def rescaled(self, resolution: float) -> "RasterGrid":
        """Same extent, different ground sample distance."""
        return RasterGrid.from_bounds(self.bounds, resolution, self.crs)

    def matches(self, other: "RasterGrid", tolerance: float = 1e-6) -> bool:
        """``True`` when *other* has the same shape, CRS and transform."""
        return (
            self.shape == other.shape
            and self.crs == other.crs
            and self.transform.almost_equals(other.transform, precision=tolerance)
        )

    def coordinates(self) -> tuple[np.ndarray, np.ndarray]:
        """Pixel-centre ``(y, x)`` coordinate vectors."""
        t = self.transform
        xs = t.c + t.a * (np.arange(self.width) + 0.5)
        ys = t.f + t.e * (np.arange(self.height) + 0.5)
        return ys, xs

    def __repr__(self) -> str:
        return (
            f"<RasterGrid {self.height}x{self.width} px "
            f"res={self.resolution:g} crs={self.crs.to_string()}>"
        )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def to_masked(
    values: npt.ArrayLike,
    nodata: float,
    *,
    invalid: np.ndarray | None = None,
    dtype: npt.DTypeLike = np.float32,
) -> np.ma.MaskedArray:
    """Convert *values* to a masked array with *nodata* under the mask.

    Non-finite values are always masked; *invalid* adds further pixels.
    """
    arr = np.asarray(values)
    mask = ~np.isfinite(arr) if np.issubdtype(arr.dtype, np.floating) else np.zeros(arr.shape, bool)
    if invalid is not None:
        mask = mask | invalid
    data = np.where(mask, nodata, arr).astype(dtype)
    return np.ma.MaskedArray(data, mask=mask.copy(), fill_value=nodata)


def _to_dataarray(
    data: np.ndarray,
    grid: RasterGrid,
    nodata: float,
    name: str,
    attrs: Mapping[str, Any],
) -> "xr.DataArray":
    import xarray as xr
    import rioxarray  # noqa: F401 -- activates the .rio accessor

    ys, xs = grid.coordinates()
    da = xr.DataArray(
        data,
        dims=("y", "x"),
        coords={"y": ys, "x": xs},
        name=name,
        attrs=dict(attrs),
    )
    da = da.rio.write_crs(grid.crs.to_wkt())
    da = da.rio.write_transform(grid.transform)
    return da.rio.write_nodata(nodata)


# ---------------------------------------------------------------------------
# Composite
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CompositeRaster:
    """Per-pixel, per-band median of a masked scene series.

    A pixel is valid only where at least one scene had a valid
    observation and the pixel lies inside the area of interest.

    Attributes:
        bands: Masked reflectance arrays keyed by :class:`Band`.
        observation_count: Valid observations per pixel (0 outside AOI).
        grid: Grid the composite is aligned to.
        scene_count: Number of scenes in the input series.
        window: Date window the series was filtered to, if known.
    """

    bands: Mapping[Band, np.ma.MaskedArray]
    observation_count: np.ndarray
    grid: RasterGrid
    scene_count: int
    window: "DateWindow | None" = None
    nodata: float = REFLECTANCE_NODATA

    def band(self, band: Union[str, Band], *, stage: str | None = None) -> np.ma.MaskedArray:
        """Return the composite of *band*.

        Raises:
            MissingBandError: If the composite has no such band.
        """
        key = Band.parse(band)
        try:
            return self.bands[key]
        except KeyError:
            raise MissingBandError(key.value, scene_id="composite", stage=stage) from None

    @property
    def is_empty(self) -> bool:
        """``True`` when the composite was built from zero scenes."""
        return self.scene_count == 0

    @property
    def valid_pixel_count(self) -> int:
        return int(np.count_nonzero(self.observation_count))

    @property
    def has_data(self) -> bool:
        """``True`` when at least one pixel has a valid value."""
        return self.valid_pixel_count > 0

    def __repr__(self) -> str:
        names = ",".join(b.value for b in self.bands)
        return (
            f"<CompositeRaster [{names}] scenes={self.scene_count} "
            f"valid_px={self.valid_pixel_count:,} {self.grid!r}>"
        )


# ---------------------------------------------------------------------------
# Index
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class IndexRaster:
    """Single-band NDVI raster in [-1, 1].

    Attributes:
        values: Masked float32 array; masked pixels are no-data.
        grid: Grid the raster is aligned to.
        year: Analysis year, attached as metadata.
        name: Short index name used in file names and tags.
        nodata: Declared no-data sentinel.
        metadata: Extra key/value tags (e.g. the date window).
    """

    values: np.ma.MaskedArray
    grid: RasterGrid
    year: int
    name: str = "NDVI"
    nodata: float = INDEX_NODATA
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def filled(self) -> np.ndarray:
        """Plain float32 array with no-data pixels set to :attr:`nodata`."""
        return self.values.filled(self.nodata).astype(np.float32)

    @property
    def valid_mask(self) -> np.ndarray:
        return ~np.ma.getmaskarray(self.values)

    @property
    def has_data(self) -> bool:
        return bool(self.valid_mask.any())

    def tags(self) -> dict[str, str]:
        """Metadata tags written next to the raster on export."""
        tags = {"index": self.name, "year": str(self.year)}
        tags.update({k: str(v) for k, v in self.metadata.items()})
        return tags

    def to_xarray(self) -> "xr.DataArray":
        """Georeferenced ``xarray.DataArray`` (via rioxarray)."""
        return _to_dataarray(self.filled(), self.grid, self.nodata, self.name, self.tags())

    def __repr__(self) -> str:
        return (
            f"<IndexRaster {self.name} year={self.year} "
            f"valid_px={int(self.valid_mask.sum()):,} {self.grid!r}>"
        )


# ---------------------------------------------------------------------------
# Classified
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ClassifiedRaster:
    """Single-band raster of class ordinals from a classification scheme.

    Attributes:
        values: Masked int16 array of class ordinals.
        grid: Grid the raster is aligned to.
        scheme: The :class:`~ndvi_composite.classify.ClassificationScheme` used.
        year: Analysis year of the source index raster.
        nodata: Declared no-data sentinel.
    """

    values: np.ma.MaskedArray
    grid: RasterGrid
    scheme: "ClassificationScheme"
    year: int | None = None
    nodata: int = CLASS_NODATA

    def filled(self) -> np.ndarray:
        """Plain int16 array with no-data pixels set to :attr:`nodata`."""
        return self.values.filled(self.nodata).astype(np.int16)

    @property
    def valid_mask(self) -> np.ndarray:
        return ~np.ma.getmaskarray(self.values)

    def class_counts(self) -> dict[int, int]:
        """Pixel count per class ordinal.

        Every class of the scheme is present (possibly with 0); any other
        value produced by the out-of-range policy is added when it occurs.
        """
        counts = {i: 0 for i in range(self.scheme.class_count)}
        valid = self.values.compressed()
        codes, n = np.unique(valid, return_counts=True)
        for code, count in zip(codes.tolist(), n.tolist()):
            counts[int(code)] = int(count)
        return counts

    def tags(self) -> dict[str, str]:
        tags = {
            "class_labels": json.dumps(list(self.scheme.labels)),
            "class_boundaries": json.dumps(list(self.scheme.boundaries)),
        }
        if self.year is not None:
            tags["year"] = str(self.year)
        return tags

    def to_xarray(self) -> "xr.DataArray":
        """Georeferenced ``xarray.DataArray`` (via rioxarray)."""
        return _to_dataarray(self.filled(), self.grid, self.nodata, "NDVI_class", self.tags())

    def __repr__(self) -> str:
        return (
            f"<ClassifiedRaster K={self.scheme.class_count} year={self.year} "
            f"valid_px={int(self.valid_mask.sum()):,} {self.grid!r}>"
        )

"""
aoi.py
======
Define the analysis area from multiple input types:
  - Vector file (Shapefile, GeoPackage, GeoJSON)
  - GeoJSON geometry / FeatureCollection mapping
  - Bounding box [min_lon, min_lat, max_lon, max_lat]
  - Polygon as a list of (lon, lat) coordinate pairs
  - Point + km buffer

Every builder returns an immutable :class:`AreaOfInterest`: one dissolved
geometry plus its CRS.  The pipeline uses it twice, as a spatial filter
for scene footprints and as the clip boundary of the composite.
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Sequence, Tuple

import geopandas as gpd
import numpy as np
from pyproj import CRS
from rasterio.features import geometry_mask
from shapely.geometry import Point, Polygon, box, shape
from shapely.geometry.base import BaseGeometry
from shapely.ops import unary_union

from shared.python.exceptions import InputValidationError
from shared.python.validators import Validators

from .rasters import RasterGrid

SUPPORTED_VECTOR_EXTENSIONS = [".shp", ".gpkg", ".geojson", ".json"]


# ---------------------------------------------------------------------------
# Result container
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AreaOfInterest:
    """Dissolved analysis geometry in a known CRS.

    Attributes:
        geometry: Polygon or MultiPolygon.
        crs: CRS of *geometry*.
        label: Human-readable description.
    """

    geometry: BaseGeometry
    crs: CRS
    label: str = "AOI"

    def __post_init__(self) -> None:
        if self.geometry.is_empty:
            raise InputValidationError(f"AOI '{self.label}' has an empty geometry.")
        if self.geometry.geom_type not in ("Polygon", "MultiPolygon"):
            raise InputValidationError(
                f"AOI '{self.label}' must be a Polygon or MultiPolygon, "
                f"got {self.geometry.geom_type}."
            )
        object.__setattr__(self, "crs", CRS.from_user_input(self.crs))

    # ------------------------------------------------------------------
    # Geometry helpers
    # ------------------------------------------------------------------

    @property
    def bounds(self) -> Tuple[float, float, float, float]:
        minx, miny, maxx, maxy = self.geometry.bounds
        return (float(minx), float(miny), float(maxx), float(maxy))

    @property
    def bbox_wgs84(self) -> Tuple[float, float, float, float]:
        """Bounding box in WGS84 for STAC queries."""
        b = self.to_crs("EPSG:4326").bounds
        return (b[0], b[1], b[2], b[3])

    def to_crs(self, crs: Any) -> "AreaOfInterest":
        """Reproject the AOI; returns ``self`` if already in *crs*."""
        target = CRS.from_user_input(crs)
        if target == self.crs:
            return self
        series = gpd.GeoSeries([self.geometry], crs=self.crs).to_crs(target)
        return AreaOfInterest(geometry=series.iloc[0], crs=target, label=self.label)

    def projected(self) -> "AreaOfInterest":
        """The AOI in a metric CRS (its UTM zone when geographic)."""
        if self.crs.is_projected:
            return self
        b = self.bbox_wgs84
        return self.to_crs(_utm_crs_from_lonlat((b[0] + b[2]) / 2.0, (b[1] + b[3]) / 2.0))

    def intersects(self, footprint: BaseGeometry, footprint_crs: Any | None = None) -> bool:
        """``True`` if *footprint* (in ``footprint_crs`` or the AOI's CRS)
        intersects the AOI."""
        aoi = self if footprint_crs is None else self.to_crs(footprint_crs)
        return bool(aoi.geometry.intersects(footprint))

    @property
    def area(self) -> float:
        """Area in the units of a projected CRS (m² for UTM)."""
        return float(self.projected().geometry.area)

    # ------------------------------------------------------------------
    # Raster helpers
    # ------------------------------------------------------------------

    def grid(self, resolution: float) -> RasterGrid:
        """Pixel grid covering the AOI at *resolution* in its projected CRS."""
        aoi = self.projected()
        return RasterGrid.from_bounds(aoi.bounds, resolution, aoi.crs)

    def mask(self, grid: RasterGrid) -> np.ndarray:
        """Boolean array, ``True`` for pixels whose centre is inside the AOI."""
        aoi = self.to_crs(grid.crs.to_wkt())
        return geometry_mask(
            [aoi.geometry],
            out_shape=grid.shape,
            transform=grid.transform,
            invert=True,
            all_touched=False,
        )

    def __repr__(self) -> str:
        b = self.bounds
        return (
            f"<AreaOfInterest '{self.label}' "
            f"bounds=({b[0]:.4f},{b[1]:.4f},{b[2]:.4f},{b[3]:.4f}) "
            f"crs={self.crs.to_string()}>"
        )


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _utm_crs_from_lonlat(lon: float, lat: float) -> CRS:
    """Return the EPSG UTM CRS that covers *lon*, *lat*."""
    zone = min(int((lon + 180) / 6) + 1, 60)
    base = 32600 if lat >= 0 else 32700
    return CRS.from_epsg(base + zone)


def _build_result(gdf: gpd.GeoDataFrame, label: str) -> AreaOfInterest:
    """Dissolve a GeoDataFrame into a single-geometry AreaOfInterest."""
    if gdf.empty:
        raise InputValidationError(f"AOI source '{label}' contains no features.")
    if gdf.crs is None:
        warnings.warn(
            "Input geometry has no CRS -- assuming WGS84 (EPSG:4326).",
            stacklevel=3,
        )
        gdf = gdf.set_crs("EPSG:4326")
    dissolved = unary_union(list(gdf.geometry))
    return AreaOfInterest(geometry=dissolved, crs=CRS.from_user_input(gdf.crs), label=label)


# ---------------------------------------------------------------------------
# Public builder class
# ---------------------------------------------------------------------------


class AOIBuilder:
    """Builders that resolve an :class:`AreaOfInterest` from various sources."""

    @staticmethod
    def from_file(path: str | Path, layer: str | None = None) -> AreaOfInterest:
        """Read the first (or named) layer of a vector file.

        Raises:
            InputValidationError: If the file is missing, has an
                unsupported extension or holds no features.
        """
        path = Path(path)
        Validators.assert_file_exists(path)
        Validators.assert_supported_extension(path, SUPPORTED_VECTOR_EXTENSIONS)
        gdf = gpd.read_file(path, layer=layer) if layer else gpd.read_file(path)
        return _build_result(gdf, label=layer or path.name)

    @staticmethod
    def from_geojson(obj: Mapping[str, Any], crs: Any = "EPSG:4326") -> AreaOfInterest:
        """Build the AOI from a GeoJSON geometry, Feature or FeatureCollection."""
        kind = obj.get("type")
        if kind == "FeatureCollection":
            gdf = gpd.GeoDataFrame.from_features(obj["features"], crs=crs)
        elif kind == "Feature":
            gdf = gpd.GeoDataFrame(geometry=[shape(obj["geometry"])], crs=crs)
        else:
            gdf = gpd.GeoDataFrame(geometry=[shape(obj)], crs=crs)
        return _build_result(gdf, label="GeoJSON")

    @staticmethod
    def from_bbox(
        min_lon: float,
        min_lat: float,
        max_lon: float,
        max_lat: float,
        crs: Any = "EPSG:4326",
    ) -> AreaOfInterest:
        """Define the AOI from a bounding box (WGS84 unless *crs* says otherwise)."""
        if min_lon >= max_lon or min_lat >= max_lat:
            raise InputValidationError(
                f"Invalid bounding box ({min_lon}, {min_lat}, {max_lon}, {max_lat}): "
                "min values must be smaller than max values."
            )
        Validators.assert_crs_valid(crs)
        geom = box(min_lon, min_lat, max_lon, max_lat)
        label = f"bbox({min_lon:.3f},{min_lat:.3f},{max_lon:.3f},{max_lat:.3f})"
        return AreaOfInterest(geometry=geom, crs=CRS.from_user_input(crs), label=label)

    @staticmethod
    def from_polygon(
        coordinates: Sequence[Tuple[float, float]],
        crs: Any = "EPSG:4326",
    ) -> AreaOfInterest:
        """Define the AOI from an explicit ring of ``(x, y)`` pairs.

        The ring is closed automatically if the first and last points differ.
        """
        Validators.assert_crs_valid(crs)
        coords = list(coordinates)
        if len(coords) < 3:
            raise InputValidationError("A polygon AOI needs at least three vertices.")
        if coords[0] != coords[-1]:
            coords.append(coords[0])
        return AreaOfInterest(
            geometry=Polygon(coords), crs=CRS.from_user_input(crs), label="User-defined polygon"
        )

    @staticmethod
    def from_point(lon: float, lat: float, buffer_km: float = 5.0) -> AreaOfInterest:
        """Circular AOI around a WGS84 point, buffered in its UTM zone."""
        Validators.assert_positive(buffer_km, "buffer_km")
        utm = _utm_crs_from_lonlat(lon, lat)
        pt_utm = gpd.GeoSeries([Point(lon, lat)], crs="EPSG:4326").to_crs(utm)
        buffered = pt_utm.buffer(buffer_km * 1000.0).to_crs("EPSG:4326")
        return AreaOfInterest(
            geometry=buffered.iloc[0],
            crs=CRS.from_epsg(4326),
            label=f"Point({lon:.4f},{lat:.4f})+{buffer_km}km",
        )

"""
Tests for the scene catalogs.

No network access: the Planetary Computer adapter is exercised through
``scenes_from_stack`` on a synthetic xarray cube and a stubbed client.

Test classes:
    TestInMemoryCatalog          Filtering of a fixed snapshot.
    TestScenesFromStack          xarray cube → Scene conversion.
    TestPlanetaryComputerCatalog Search parameters and error wrapping.
"""

from __future__ import annotations

import numpy as np
import pytest
import xarray as xr

from ndvi_composite import stac_catalog
from ndvi_composite.bands import Band
from ndvi_composite.catalog import InMemoryCatalog, SceneCatalog
from ndvi_composite.scene import DateWindow
from ndvi_composite.stac_catalog import PlanetaryComputerCatalog, scenes_from_stack
from shared.python.exceptions import CatalogError, UnknownBandError


def _stack(times=("2025-06-05T10:00", "2025-06-15T10:00"), bands=("B04", "B08", "SCL")) -> xr.DataArray:
    n_t, n_b = len(times), len(bands)
    data = np.arange(n_t * n_b * 2 * 3, dtype=np.float32).reshape(n_t, n_b, 2, 3)
    return xr.DataArray(
        data,
        dims=("time", "band", "y", "x"),
        coords={
            "time": np.array(times, dtype="datetime64[ns]"),
            "band": list(bands),
            "y": [15.0, 5.0],
            "x": [5.0, 15.0, 25.0],
            "id": ("time", [f"S2A_{i}" for i in range(n_t)]),
            "eo:cloud_cover": ("time", [3.5, 12.0][:n_t]),
        },
        attrs={"crs": "epsg:32633"},
    )


class TestInMemoryCatalog:
    """Snapshot catalog used by tests and reproducible runs."""

    def test_satisfies_protocol(self) -> None:
        assert isinstance(InMemoryCatalog(), SceneCatalog)

    def test_fetch_applies_window_and_cloud_limit(self, make_scene, aoi_4x4) -> None:
        catalog = InMemoryCatalog([
            make_scene("june-clear", day=5, cloud=2.0),
            make_scene("june-cloudy", day=6, cloud=40.0),
            make_scene("july", month=7, day=2, cloud=1.0),
        ])
        series = catalog.fetch_scenes(aoi_4x4, DateWindow.for_year(2025), 20)
        assert series.scene_ids == ["june-clear"]
        assert len(catalog) == 3

    def test_empty_catalog(self, aoi_4x4) -> None:
        series = InMemoryCatalog().fetch_scenes(aoi_4x4, DateWindow.for_year(2025), 20)
        assert series.is_empty


class TestScenesFromStack:
    """Conversion of a stackstac-shaped cube."""

    def test_scenes_and_metadata(self) -> None:
        scenes = scenes_from_stack(_stack())
        assert [s.scene_id for s in scenes] == ["S2A_0", "S2A_1"]
        assert scenes[1].cloud_cover == pytest.approx(12.0)
        assert scenes[0].acquired.day == 5
        assert set(scenes[0].bands) == {Band.B4, Band.B8, Band.SCL}

    def test_values_are_copied_per_band(self) -> None:
        stack = _stack()
        scenes = scenes_from_stack(stack)
        np.testing.assert_array_equal(scenes[1].bands[Band.B8], stack.isel(time=1, band=1).values)

    def test_grid_from_coordinates(self) -> None:
        grid = scenes_from_stack(_stack())[0].grid
        assert grid.shape == (2, 3)
        assert grid.resolution == pytest.approx(10.0)
        assert grid.bounds == pytest.approx((0.0, 0.0, 30.0, 20.0))
        assert grid.crs.to_epsg() == 32633

    def test_explicit_ids_and_clouds(self) -> None:
        scenes = scenes_from_stack(_stack(), scene_ids=["a", "b"], cloud_covers=[1.0, 2.0])
        assert [s.scene_id for s in scenes] == ["a", "b"]
        assert scenes[0].cloud_cover == 1.0

    def test_missing_crs_raises(self) -> None:
        stack = _stack()
        stack.attrs.pop("crs")
        with pytest.raises(CatalogError):
            scenes_from_stack(stack)

    def test_missing_dimension_raises(self) -> None:
        with pytest.raises(CatalogError):
            scenes_from_stack(_stack().isel(time=0))

    def test_unknown_band_raises(self) -> None:
        with pytest.raises(UnknownBandError):
            scenes_from_stack(_stack(bands=("B04", "visual", "SCL")))


class _FakeSearch:
    def __init__(self, items):
        self._items = items

    def items(self):
        return iter(self._items)


class _FakeClient:
    def __init__(self, items=(), error=None):
        self.calls = []
        self._items = list(items)
        self._error = error

    def search(self, **kwargs):
        self.calls.append(kwargs)
        if self._error is not None:
            raise self._error
        return _FakeSearch(self._items)


class TestPlanetaryComputerCatalog:
    """Search parameters and failure handling, without network."""

    def test_assets_always_include_scl(self) -> None:
        catalog = PlanetaryComputerCatalog(bands=("red", "nir", "scl"))
        assert catalog.assets == ["B04", "B08", "SCL"]

    def test_empty_search_returns_empty_series(self, aoi_4x4) -> None:
        catalog = PlanetaryComputerCatalog()
        catalog._client = _FakeClient()
        series = catalog.fetch_scenes(aoi_4x4, DateWindow.for_year(2025), 20)
        assert series.is_empty
        call = catalog._client.calls[0]
        assert call["collections"] == ["sentinel-2-l2a"]
        assert call["datetime"] == "2025-06-01/2025-06-30"
        assert call["query"] == {"eo:cloud_cover": {"lt": 20}}

    def test_search_error_becomes_catalog_error(self, aoi_4x4) -> None:
        catalog = PlanetaryComputerCatalog()
        catalog._client = _FakeClient(error=OSError("connection reset"))
        with pytest.raises(CatalogError):
            catalog.fetch_scenes(aoi_4x4, DateWindow.for_year(2025), 20)

    def test_stacked_items_become_scenes(self, aoi_4x4, monkeypatch) -> None:
        catalog = PlanetaryComputerCatalog()
        catalog._client = _FakeClient(items=["item-a", "item-b"])
        monkeypatch.setattr(stac_catalog.stackstac, "stack", lambda items, **kw: _stack())
        series = catalog.fetch_scenes(aoi_4x4, DateWindow.for_year(2025), 20)
        assert series.scene_ids == ["S2A_0", "S2A_1"]

    def test_drop_duplicate_times(self) -> None:
        stack = _stack(times=("2025-06-05T10:00", "2025-06-05T10:00"))
        deduped = PlanetaryComputerCatalog._drop_duplicate_times(stack)
        assert deduped.sizes["time"] == 1

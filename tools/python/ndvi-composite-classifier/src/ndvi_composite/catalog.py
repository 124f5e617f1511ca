"""
catalog.py
==========
Scene catalog interface.

The pipeline only needs one call from a catalog::

    fetch_scenes(aoi, window, max_cloud_percent) -> SceneSeries

:class:`InMemoryCatalog` serves a fixed snapshot of scenes, which makes
runs reproducible and keeps tests off the network.  The Planetary
Computer adapter lives in :mod:`ndvi_composite.stac_catalog`.
"""

from __future__ import annotations

import logging
from typing import Iterable, Protocol, runtime_checkable

from .aoi import AreaOfInterest
from .scene import DateWindow, Scene, SceneSeries

logger = logging.getLogger("ndvi_composite.catalog")


@runtime_checkable
class SceneCatalog(Protocol):
    """Anything that can return the scenes covering an AOI and window."""

    def fetch_scenes(
        self,
        aoi: AreaOfInterest,
        window: DateWindow,
        max_cloud_percent: float,
    ) -> SceneSeries:
        ...


class InMemoryCatalog:
    """Catalog backed by a fixed list of scenes.

    Args:
        scenes: Scenes available to every query.
    """

    def __init__(self, scenes: Iterable[Scene] = ()) -> None:
        self._series = SceneSeries(scenes)

    def fetch_scenes(
        self,
        aoi: AreaOfInterest,
        window: DateWindow,
        max_cloud_percent: float,
    ) -> SceneSeries:
        """Scenes inside *window*, under the cloud limit and touching *aoi*."""
        series = self._series.filter(window=window, max_cloud_percent=max_cloud_percent, aoi=aoi)
        logger.info(
            "%d of %d scene(s) match %s with cloud < %s%%",
            len(series), len(self._series), window, max_cloud_percent,
        )
        return series

    def __len__(self) -> int:
        return len(self._series)

    def __repr__(self) -> str:
        return f"InMemoryCatalog({self._series!r})"

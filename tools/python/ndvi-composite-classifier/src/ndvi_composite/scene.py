"""
scene.py
========
Scenes, time-ordered scene series and the date window they are
filtered to.

A :class:`Scene` is one Sentinel-2 acquisition: raw digital numbers for
its reflectance bands plus the SCL quality band.  A
:class:`SceneSeries` is built once from a catalog and consumed once by
the compositor; filtering returns a new series and never mutates the
original.
"""

from __future__ import annotations

import calendar
import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import TYPE_CHECKING, Iterable, Iterator, Sequence

import numpy as np
from shapely.geometry.base import BaseGeometry

from shared.python.exceptions import ConfigurationError, GridMismatchError

from .bands import BandInput, BandSet
from .rasters import RasterGrid

if TYPE_CHECKING:
    from .aoi import AreaOfInterest

logger = logging.getLogger("ndvi_composite.scene")


# ---------------------------------------------------------------------------
# Date window
# ---------------------------------------------------------------------------


def _parse_month_day(value: str, setting: str) -> tuple[int, int]:
    try:
        month_str, day_str = value.split("-")
        month, day = int(month_str), int(day_str)
    except ValueError:
        raise ConfigurationError(setting, f"expected 'MM-DD', got {value!r}") from None
    if not 1 <= month <= 12:
        raise ConfigurationError(setting, f"month out of range in {value!r}")
    # Feb 29 is accepted and clamped in non-leap years by for_year()
    if not 1 <= day <= calendar.monthrange(2024, month)[1]:
        raise ConfigurationError(setting, f"day out of range in {value!r}")
    return month, day


@dataclass(frozen=True)
class DateWindow:
    """Inclusive ``[start, end]`` calendar-date window.

    Attributes:
        start: First day included.
        end: Last day included.
    """

    start: date
    end: date

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise ConfigurationError(
                "date window", f"end {self.end} is before start {self.start}"
            )

    @classmethod
    def for_year(
        cls,
        year: int,
        season_start: str = "06-01",
        season_end: str = "06-30",
    ) -> "DateWindow":
        """Window for *year* from ``MM-DD`` season bounds.

        Example::

            DateWindow.for_year(2025)                    # 2025-06-01 .. 2025-06-30
            DateWindow.for_year(2025, "04-15", "09-30")  # growing season
        """
        sm, sd = _parse_month_day(season_start, "season_start")
        em, ed = _parse_month_day(season_end, "season_end")
        sd = min(sd, calendar.monthrange(year, sm)[1])
        ed = min(ed, calendar.monthrange(year, em)[1])
        return cls(date(year, sm, sd), date(year, em, ed))

    def contains(self, moment: datetime | date) -> bool:
        day = moment.date() if isinstance(moment, datetime) else moment
        return self.start <= day <= self.end

    @property
    def label(self) -> str:
        """``"June"`` for a whole calendar month, else ``"YYYYMMDD-YYYYMMDD"``."""
        last_day = calendar.monthrange(self.start.year, self.start.month)[1]
        if (
            self.start.day == 1
            and self.end.year == self.start.year
            and self.end.month == self.start.month
            and self.end.day == last_day
        ):
            return calendar.month_name[self.start.month]
        return f"{self.start:%Y%m%d}-{self.end:%Y%m%d}"

    @property
    def stac_range(self) -> str:
        """ISO interval for STAC ``datetime`` searches."""
        return f"{self.start.isoformat()}/{self.end.isoformat()}"

    def __str__(self) -> str:
        return f"{self.start.isoformat()}..{self.end.isoformat()}"


# ---------------------------------------------------------------------------
# Scenes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Scene:
    """One Sentinel-2 acquisition with raw, integer-scaled bands.

    Attributes:
        scene_id: Provider identifier of the acquisition.
        acquired: Acquisition timestamp (UTC assumed when naive).
        bands: Raw digital numbers, including the SCL band.
        cloud_cover: Scene-level cloud percentage (0-100).
        grid: Pixel grid of the band arrays.
        footprint: Scene footprint in the AOI's CRS, if known.
    """

    scene_id: str
    acquired: datetime
    bands: BandSet
    cloud_cover: float
    grid: RasterGrid
    footprint: BaseGeometry | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.bands, BandSet):
            object.__setattr__(self, "bands", BandSet(self.bands, owner=self.scene_id))
        elif self.bands.owner != self.scene_id:
            object.__setattr__(self, "bands", self.bands.with_owner(self.scene_id))
        if self.acquired.tzinfo is None:
            object.__setattr__(self, "acquired", self.acquired.replace(tzinfo=timezone.utc))
        shape = self.bands.shape
        if shape is not None and shape != self.grid.shape:
            raise GridMismatchError(
                f"bands are {shape} but the grid is {self.grid.shape}",
                scene_id=self.scene_id,
            )

    @classmethod
    def from_arrays(
        cls,
        scene_id: str,
        acquired: datetime,
        bands: BandInput,
        grid: RasterGrid,
        cloud_cover: float = 0.0,
        footprint: BaseGeometry | None = None,
    ) -> "Scene":
        """Build a scene from a plain ``{band name: array}`` mapping."""
        return cls(
            scene_id=scene_id,
            acquired=acquired,
            bands=BandSet(bands, owner=scene_id),
            cloud_cover=float(cloud_cover),
            grid=grid,
            footprint=footprint,
        )

    def __repr__(self) -> str:
        return (
            f"<Scene {self.scene_id} {self.acquired:%Y-%m-%d} "
            f"cloud={self.cloud_cover:.1f}% {self.bands!r}>"
        )


@dataclass(frozen=True)
class MaskedScene:
    """A scene scaled to reflectance with invalid pixels set to NaN.

    Attributes:
        scene_id: Identifier of the source scene.
        acquired: Acquisition timestamp of the source scene.
        cloud_cover: Cloud percentage of the source scene.
        reflectance: float32 reflectance bands (NaN where invalid).
        valid: Boolean validity mask that was applied.
        grid: Pixel grid of the arrays.
    """

    scene_id: str
    acquired: datetime
    cloud_cover: float
    reflectance: BandSet
    valid: np.ndarray
    grid: RasterGrid

    @property
    def valid_fraction(self) -> float:
        return float(self.valid.mean()) if self.valid.size else 0.0


# ---------------------------------------------------------------------------
# Series
# ---------------------------------------------------------------------------


class SceneSeries(Sequence[Scene]):
    """Immutable, time-ordered collection of scenes.

    Args:
        scenes: Any iterable of :class:`Scene`; it is consumed once and
                sorted by acquisition time (ties broken by scene id).
    """

    def __init__(self, scenes: Iterable[Scene] = ()) -> None:
        self._scenes: tuple[Scene, ...] = tuple(
            sorted(scenes, key=lambda s: (s.acquired, s.scene_id))
        )

    def __getitem__(self, index):  # type: ignore[override]
        if isinstance(index, slice):
            return SceneSeries(self._scenes[index])
        return self._scenes[index]

    def __len__(self) -> int:
        return len(self._scenes)

    def __iter__(self) -> Iterator[Scene]:
        return iter(self._scenes)

    @property
    def is_empty(self) -> bool:
        return not self._scenes

    @property
    def scene_ids(self) -> list[str]:
        return [s.scene_id for s in self._scenes]

    def filter(
        self,
        window: DateWindow | None = None,
        max_cloud_percent: float | None = None,
        aoi: "AreaOfInterest | None" = None,
    ) -> "SceneSeries":
        """Return the scenes inside *window*, below the cloud threshold and
        intersecting *aoi*.

        The cloud test is strict (``cloud_cover < max_cloud_percent``).
        Scenes without a footprint are kept by the area filter.
        """
        kept = []
        for scene in self._scenes:
            if window is not None and not window.contains(scene.acquired):
                continue
            if max_cloud_percent is not None and not scene.cloud_cover < max_cloud_percent:
                logger.debug(
                    "Dropping %s: cloud %.1f%% >= %.1f%%",
                    scene.scene_id, scene.cloud_cover, max_cloud_percent,
                )
                continue
            if aoi is not None and scene.footprint is not None and not aoi.intersects(scene.footprint):
                continue
            kept.append(scene)
        return SceneSeries(kept)

    def __repr__(self) -> str:
        if not self._scenes:
            return "<SceneSeries empty>"
        first, last = self._scenes[0].acquired, self._scenes[-1].acquired
        return f"<SceneSeries {len(self)} scenes {first:%Y-%m-%d}..{last:%Y-%m-%d}>"


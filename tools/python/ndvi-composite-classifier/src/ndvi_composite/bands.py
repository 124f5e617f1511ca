"""
bands.py
========
Band identifiers, Sentinel-2 scene-classification codes and the typed
band accessor used by every pipeline stage.

A :class:`BandSet` is keyed by :class:`Band`.  Band names coming from a
provider (``"B04"``), from Earth Engine scripts (``"B4"``) or from
people (``"red"``) are resolved when the set is built, so an unknown
name fails there and not halfway through a composite.
"""

from __future__ import annotations

import re
from enum import Enum, IntEnum
from typing import Iterator, Mapping, Union

import numpy as np
import numpy.typing as npt

from shared.python.exceptions import (
    InputValidationError,
    MissingBandError,
    UnknownBandError,
)
from shared.python.validators import Validators


class Band(str, Enum):
    """Sentinel-2 L2A bands used by the pipeline."""

    B2 = "B2"     # blue, 10 m
    B3 = "B3"     # green, 10 m
    B4 = "B4"     # red, 10 m
    B8 = "B8"     # near-infrared, 10 m
    B11 = "B11"   # SWIR 1, 20 m
    B12 = "B12"   # SWIR 2, 20 m
    SCL = "SCL"   # scene classification layer

    @property
    def is_quality(self) -> bool:
        """``True`` for the scene classification band."""
        return self is Band.SCL

    @property
    def asset_key(self) -> str:
        """Zero-padded asset name used by STAC catalogs (``"B04"``)."""
        if self.is_quality:
            return self.value
        return f"B{int(self.value[1:]):02d}"

    @classmethod
    def parse(cls, name: Union[str, "Band"]) -> "Band":
        """Resolve *name* to a :class:`Band`.

        Accepts the enum itself, ``"B4"``, ``"B04"``, ``"b4"`` and the
        aliases in :data:`BAND_ALIASES`.

        Raises:
            UnknownBandError: If *name* matches no band.
        """
        if isinstance(name, Band):
            return name
        key = str(name).strip()
        alias = BAND_ALIASES.get(key.lower())
        if alias is not None:
            return alias
        match = re.fullmatch(r"[bB]0*(\d+)", key)
        if match:
            key = f"B{match.group(1)}"
        try:
            return cls(key.upper())
        except ValueError:
            raise UnknownBandError(
                str(name), [b.value for b in cls] + sorted(BAND_ALIASES)
            ) from None


BAND_ALIASES: dict[str, Band] = {
    "blue": Band.B2,
    "green": Band.B3,
    "red": Band.B4,
    "nir": Band.B8,
    "swir1": Band.B11,
    "swir2": Band.B12,
    "scl": Band.SCL,
}


class QualityClass(IntEnum):
    """Sentinel-2 L2A scene classification (SCL) codes."""

    NO_DATA = 0
    SATURATED_OR_DEFECTIVE = 1
    DARK_AREA_PIXELS = 2
    CLOUD_SHADOWS = 3
    VEGETATION = 4
    NOT_VEGETATED = 5
    WATER = 6
    UNCLASSIFIED = 7
    CLOUD_MEDIUM_PROBABILITY = 8
    CLOUD_HIGH_PROBABILITY = 9
    THIN_CIRRUS = 10
    SNOW = 11


# Cloud shadow, water, medium/high cloud and thin cirrus.
DEFAULT_INVALID_CLASSES: frozenset[QualityClass] = frozenset({
    QualityClass.CLOUD_SHADOWS,
    QualityClass.WATER,
    QualityClass.CLOUD_MEDIUM_PROBABILITY,
    QualityClass.CLOUD_HIGH_PROBABILITY,
    QualityClass.THIN_CIRRUS,
})


BandInput = Mapping[Union[str, Band], npt.ArrayLike]


class BandSet(Mapping[Band, np.ndarray]):
    """Immutable mapping of :class:`Band` to 2-D arrays of one shape.

    Arrays are copied and flagged read-only so a scene cannot be changed
    after it is loaded.

    Args:
        bands: Mapping of band name (or :class:`Band`) to array-like.
        dtype: Optional dtype every array is cast to.
        owner: Identifier used in error messages (usually the scene id).

    Raises:
        UnknownBandError: If any key is not a known band.
        InputValidationError: If the arrays are not all the same 2-D shape.
    """

    def __init__(
        self,
        bands: BandInput,
        *,
        dtype: npt.DTypeLike | None = None,
        owner: str | None = None,
    ) -> None:
        resolved: dict[Band, np.ndarray] = {}
        for name, values in bands.items():
            band = Band.parse(name)
            arr = np.array(values, dtype=dtype, copy=True)
            if arr.ndim != 2:
                raise InputValidationError(
                    f"Band {band.value} must be a 2-D (rows, cols) array, "
                    f"got shape {arr.shape}."
                )
            arr.setflags(write=False)
            resolved[band] = arr

        shapes = {b: a.shape for b, a in resolved.items()}
        if shapes:
            ref_band, ref_shape = next(iter(shapes.items()))
            for band, shape in shapes.items():
                Validators.assert_raster_shapes_match(
                    ref_shape, shape, ref_band.value, band.value
                )

        self._bands = resolved
        self.owner = owner

    # ------------------------------------------------------------------
    # Mapping protocol
    # ------------------------------------------------------------------

    def __getitem__(self, key: Union[str, Band]) -> np.ndarray:
        band = Band.parse(key)
        try:
            return self._bands[band]
        except KeyError:
            raise MissingBandError(band.value, scene_id=self.owner) from None

    def __iter__(self) -> Iterator[Band]:
        return iter(self._bands)

    def __len__(self) -> int:
        return len(self._bands)

    def get(self, key: Union[str, Band], default: np.ndarray | None = None) -> np.ndarray | None:  # type: ignore[override]
        return self._bands.get(Band.parse(key), default)

    def __contains__(self, key: object) -> bool:
        try:
            return Band.parse(key) in self._bands  # type: ignore[arg-type]
        except UnknownBandError:
            return False

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @property
    def shape(self) -> tuple[int, int] | None:
        """Common ``(rows, cols)`` of the bands, ``None`` when empty."""
        for arr in self._bands.values():
            return arr.shape  # type: ignore[return-value]
        return None

    @property
    def reflectance_bands(self) -> list[Band]:
        """Bands other than the quality band, in insertion order."""
        return [b for b in self._bands if not b.is_quality]

    def with_owner(self, owner: str | None) -> "BandSet":
        """Return a view of the same read-only arrays reporting *owner* in errors."""
        clone = BandSet.__new__(BandSet)
        clone._bands = dict(self._bands)
        clone.owner = owner
        return clone

    def require(self, *bands: Band, stage: str | None = None) -> None:
        """Raise :class:`MissingBandError` if any of *bands* is absent."""
        for band in bands:
            if band not in self._bands:
                raise MissingBandError(band.value, scene_id=self.owner, stage=stage)

    def __repr__(self) -> str:
        names = ",".join(b.value for b in self._bands)
        return f"<BandSet [{names}] shape={self.shape}>"

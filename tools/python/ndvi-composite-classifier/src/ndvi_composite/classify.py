"""
classify.py
===========
Threshold classification of NDVI into vegetation-health classes.

A :class:`ClassificationScheme` holds K+1 strictly increasing
boundaries and K labels.  Class ``i`` covers ``[b_i, b_i+1)``; the last
class is closed at the top, ``[b_K-1, b_K]``.  The lookup is a single
``numpy.searchsorted`` over the boundaries, so the result never depends
on iteration order.

Values outside ``[b_0, b_K]`` are handled by an explicit
:class:`OutOfRangePolicy`.  The default scheme starts at 0, so negative
NDVI (water, bare soil, built-up) is out of range.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Sequence

import numpy as np

from shared.python.exceptions import ConfigurationError, OutOfRangeClassificationError
from shared.python.validators import Validators

from .rasters import CLASS_NODATA, ClassifiedRaster, IndexRaster

logger = logging.getLogger("ndvi_composite.classify")


class OutOfRangePolicy(str, Enum):
    """What to do with index values outside the scheme's boundaries.

    CLAMP:    below b_0 → class 0, above b_K → class K-1.
    REJECT:   raise :class:`OutOfRangeClassificationError`.
    NODATA:   mark the pixel as no-data.
    SENTINEL: assign a dedicated sentinel class (default -1).
    """

    CLAMP = "clamp"
    REJECT = "reject"
    NODATA = "nodata"
    SENTINEL = "sentinel"


@dataclass(frozen=True)
class ClassificationScheme:
    """Ordered class boundaries and their labels.

    Attributes:
        boundaries: K+1 strictly increasing values.
        labels: K class labels, one per interval.
        palette: Optional K colour names for display collaborators.

    Example::

        scheme = ClassificationScheme(
            boundaries=(0.0, 0.3, 0.6, 1.0),
            labels=("Sparse", "Moderate", "Dense"),
        )
    """

    boundaries: tuple[float, ...]
    labels: tuple[str, ...]
    palette: tuple[str, ...] | None = None

    def __post_init__(self) -> None:
        boundaries = tuple(float(b) for b in self.boundaries)
        labels = tuple(str(label) for label in self.labels)
        object.__setattr__(self, "boundaries", boundaries)
        object.__setattr__(self, "labels", labels)
        if self.palette is not None:
            object.__setattr__(self, "palette", tuple(self.palette))

        if not all(np.isfinite(boundaries)):
            raise ConfigurationError("boundaries", "all boundaries must be finite")
        Validators.assert_strictly_increasing(boundaries, "boundaries")
        if len(labels) != len(boundaries) - 1:
            raise ConfigurationError(
                "labels",
                f"{len(boundaries)} boundaries need {len(boundaries) - 1} labels, "
                f"got {len(labels)}",
            )
        if self.palette is not None and len(self.palette) != len(labels):
            raise ConfigurationError(
                "palette", f"expected {len(labels)} colours, got {len(self.palette)}"
            )

    @property
    def class_count(self) -> int:
        return len(self.labels)

    @property
    def lower(self) -> float:
        return self.boundaries[0]

    @property
    def upper(self) -> float:
        return self.boundaries[-1]

    def lookup(self, values: np.ndarray) -> np.ndarray:
        """Raw class ordinals for *values*.

        In-range values map to ``0..K-1``.  Values below ``b_0`` map to
        -1 and values above ``b_K`` to K; the caller applies the
        out-of-range policy.
        """
        v = np.asarray(values, dtype=np.float64)
        b = np.asarray(self.boundaries, dtype=np.float64)
        ordinals = np.searchsorted(b, v, side="right") - 1
        # The top class is closed: v == b_K belongs to class K-1
        ordinals = np.where(v == b[-1], self.class_count - 1, ordinals)
        return ordinals.astype(np.int64)

    def class_of(self, value: float) -> int | None:
        """Class ordinal of one value, ``None`` when out of range."""
        ordinal = int(self.lookup(np.array([value]))[0])
        return ordinal if 0 <= ordinal < self.class_count else None

    def legend_entries(self) -> list[str]:
        """``"Label (lo-hi)"`` strings, one per class."""
        return [
            f"{label} ({self.boundaries[i]:.1f}-{self.boundaries[i + 1]:.1f})"
            for i, label in enumerate(self.labels)
        ]

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "boundaries": list(self.boundaries),
            "labels": list(self.labels),
        }
        if self.palette is not None:
            data["palette"] = list(self.palette)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ClassificationScheme":
        try:
            return cls(
                boundaries=tuple(data["boundaries"]),
                labels=tuple(data["labels"]),
                palette=tuple(data["palette"]) if data.get("palette") else None,
            )
        except KeyError as exc:
            raise ConfigurationError("scheme", f"missing key {exc}") from exc


DEFAULT_SCHEME = ClassificationScheme(
    boundaries=(0.0, 0.2, 0.4, 0.6, 0.8, 1.0),
    labels=(
        "No vegetation",
        "Low vegetation",
        "Moderate vegetation",
        "Healthy vegetation",
        "Very healthy vegetation",
    ),
    palette=("red", "yellow", "lightgreen", "green", "darkgreen"),
)


class Classifier:
    """Map an :class:`IndexRaster` onto a :class:`ClassificationScheme`.

    Args:
        scheme: Boundaries and labels to classify with.
        out_of_range: Policy for values outside the scheme.
        sentinel_class: Class assigned by :attr:`OutOfRangePolicy.SENTINEL`.
                        Must not collide with a real class or the
                        no-data sentinel.
    """

    def __init__(
        self,
        scheme: ClassificationScheme = DEFAULT_SCHEME,
        out_of_range: OutOfRangePolicy | str = OutOfRangePolicy.CLAMP,
        sentinel_class: int = -1,
    ) -> None:
        self.scheme = scheme
        try:
            self.out_of_range = OutOfRangePolicy(out_of_range)
        except ValueError:
            raise ConfigurationError(
                "out_of_range",
                f"{out_of_range!r} is not one of {[p.value for p in OutOfRangePolicy]}",
            ) from None
        self.sentinel_class = int(sentinel_class)
        if self.out_of_range is OutOfRangePolicy.SENTINEL:
            if 0 <= self.sentinel_class < scheme.class_count:
                raise ConfigurationError(
                    "sentinel_class", f"{self.sentinel_class} collides with a scheme class"
                )
            if self.sentinel_class == CLASS_NODATA:
                raise ConfigurationError("sentinel_class", "collides with the no-data value")
            Validators.assert_in_range(
                self.sentinel_class, np.iinfo(np.int16).min, np.iinfo(np.int16).max,
                "sentinel_class",
            )

    def classify_values(
        self,
        values: Sequence[float] | np.ndarray,
        nodata: np.ndarray | None = None,
    ) -> tuple[np.ndarray, np.ndarray]:
        """Classify raw values.

        Returns:
            ``(ordinals, nodata_mask)``: int16 ordinals and the boolean
            no-data mask after the out-of-range policy was applied.

        Raises:
            OutOfRangeClassificationError: Under the REJECT policy.
        """
        v = np.asarray(values, dtype=np.float64)
        mask = ~np.isfinite(v) if nodata is None else (np.asarray(nodata, bool) | ~np.isfinite(v))
        ordinals = self.scheme.lookup(np.where(mask, self.scheme.lower, v))

        outside = ~mask & ((v < self.scheme.lower) | (v > self.scheme.upper))
        if outside.any():
            bad = v[outside]
            logger.debug(
                "%d value(s) outside [%s, %s], policy=%s",
                bad.size, self.scheme.lower, self.scheme.upper, self.out_of_range.value,
            )
            if self.out_of_range is OutOfRangePolicy.REJECT:
                raise OutOfRangeClassificationError(
                    int(bad.size), float(bad.min()), float(bad.max()),
                    self.scheme.lower, self.scheme.upper,
                )
            if self.out_of_range is OutOfRangePolicy.CLAMP:
                ordinals = np.clip(ordinals, 0, self.scheme.class_count - 1)
            elif self.out_of_range is OutOfRangePolicy.NODATA:
                mask = mask | outside
            else:
                ordinals = np.where(outside, self.sentinel_class, ordinals)

        ordinals = np.where(mask, CLASS_NODATA, ordinals).astype(np.int16)
        return ordinals, mask

    def classify(self, index: IndexRaster) -> ClassifiedRaster:
        """Classify every valid pixel of *index*; no-data stays no-data."""
        nodata = np.ma.getmaskarray(index.values)
        ordinals, mask = self.classify_values(index.values.filled(np.nan), nodata)
        values = np.ma.MaskedArray(ordinals, mask=mask.copy(), fill_value=CLASS_NODATA)
        raster = ClassifiedRaster(values=values, grid=index.grid, scheme=self.scheme, year=index.year)
        logger.info("Classified %d pixel(s) into %d classes", int((~mask).sum()), self.scheme.class_count)
        return raster

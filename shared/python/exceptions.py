"""
NDVI Composite — Custom Exception Hierarchy
============================================
Every stage of the NDVI composite pipeline raises exceptions from this
module so callers can catch them at the right level of granularity.

Hierarchy::

    GeoToolError                         ← catch-all base
    ├── InputValidationError             ← bad files, bad parameters
    │   ├── UnknownBandError             ← band name not in the band enum
    │   └── ConfigurationError           ← invalid pipeline configuration
    ├── RasterError                      ← numpy / rasterio raster issues
    │   ├── MissingBandError             ← required band absent from a scene
    │   └── GridMismatchError            ← scenes on different pixel grids
    ├── EmptySeriesError                 ← no scenes passed the filters
    ├── NoValidDataError                 ← composite has no valid pixel
    ├── OutOfRangeClassificationError    ← index value outside the scheme
    ├── CatalogError                     ← scene catalog search failures
    ├── ExportLimitExceededError         ← export above the pixel ceiling
    └── OutputWriteError                 ← cannot write to output path

Structural errors carry the pipeline ``stage`` and, where one applies,
the ``scene_id`` so a failed run can be diagnosed without re-running it.

Usage::

    from shared.python.exceptions import MissingBandError

    raise MissingBandError("SCL", scene_id=scene.scene_id, stage="mask")
"""

from __future__ import annotations


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


class GeoToolError(Exception):
    """Base exception for all NDVI composite errors.

    Catch this to handle any pipeline error without caring about the
    exact subtype.

    Args:
        message: Human-readable description of the error.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message: str = message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r})"


def _context(stage: str | None, scene_id: str | None) -> str:
    parts = []
    if stage:
        parts.append(f"stage={stage}")
    if scene_id:
        parts.append(f"scene={scene_id}")
    return f" [{', '.join(parts)}]" if parts else ""


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------


class InputValidationError(GeoToolError):
    """Raised when inputs fail validation before processing starts.

    This is the parent class for more specific input problems.
    """


class UnknownBandError(InputValidationError):
    """Raised when a band name does not map to a known band identifier.

    Args:
        name: The unrecognised band name.
        known: Names that ARE accepted, used in the error message.

    Example::

        raise UnknownBandError("B99", ["B2", "B3", "B4", "B8"])
    """

    def __init__(self, name: str, known: list[str]) -> None:
        super().__init__(
            f"Unknown band '{name}'. Known bands: {', '.join(known)}"
        )
        self.name: str = name
        self.known: list[str] = known


class ConfigurationError(InputValidationError):
    """Raised when a pipeline or classification setting is invalid.

    Args:
        setting: Name of the offending setting.
        reason: Short explanation of what is wrong with it.
    """

    def __init__(self, setting: str, reason: str) -> None:
        super().__init__(f"Invalid configuration '{setting}': {reason}")
        self.setting: str = setting
        self.reason: str = reason


# ---------------------------------------------------------------------------
# Raster
# ---------------------------------------------------------------------------


class RasterError(GeoToolError):
    """Raised for general raster processing failures (numpy / rasterio).

    Subclass this for more specific raster errors.
    """


class MissingBandError(RasterError):
    """Raised when a required band is absent from a scene or composite.

    Args:
        band: Name of the missing band (e.g. ``"SCL"``).
        scene_id: Identifier of the scene that lacks the band, if any.
        stage: Pipeline stage that needed the band.

    Example::

        raise MissingBandError("B8", scene_id="S2A_20250612", stage="normalize")
    """

    def __init__(
        self,
        band: str,
        *,
        scene_id: str | None = None,
        stage: str | None = None,
    ) -> None:
        super().__init__(
            f"Required band '{band}' is missing{_context(stage, scene_id)}."
        )
        self.band: str = band
        self.scene_id: str | None = scene_id
        self.stage: str | None = stage


class GridMismatchError(RasterError):
    """Raised when rasters that must share a pixel grid do not.

    Args:
        reason: Which grids disagree and how.
        scene_id: Scene whose grid differs from the reference, if any.
        stage: Pipeline stage that detected the mismatch.
    """

    def __init__(
        self,
        reason: str,
        *,
        scene_id: str | None = None,
        stage: str | None = None,
    ) -> None:
        super().__init__(f"Grid mismatch: {reason}{_context(stage, scene_id)}")
        self.scene_id: str | None = scene_id
        self.stage: str | None = stage


# ---------------------------------------------------------------------------
# Series / composite
# ---------------------------------------------------------------------------


class EmptySeriesError(GeoToolError):
    """Raised when no scene passes the area, date and cloud filters.

    Only raised when the caller disallows empty composites; the default
    pipeline turns an empty series into an all-no-data composite.

    Args:
        window: Human-readable description of the date window searched.
        stage: Pipeline stage that received the empty series.
    """

    def __init__(self, window: str, *, stage: str | None = None) -> None:
        super().__init__(
            f"No scenes available for {window}{_context(stage, None)}. "
            "Widen the date window or raise the cloud-cover threshold."
        )
        self.window: str = window
        self.stage: str | None = stage


class NoValidDataError(GeoToolError):
    """Raised when a composite has no valid pixel and that is fatal.

    Args:
        scene_count: Number of scenes that contributed to the composite.
    """

    def __init__(self, scene_count: int) -> None:
        super().__init__(
            f"Composite has no valid pixels (built from {scene_count} scene(s)). "
            "Every observation was masked or the series was empty."
        )
        self.scene_count: int = scene_count


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


class OutOfRangeClassificationError(GeoToolError):
    """Raised when index values fall outside the classification scheme.

    Args:
        count: Number of offending pixels.
        min_value: Smallest offending value.
        max_value: Largest offending value.
        lower: Lowest scheme boundary.
        upper: Highest scheme boundary.

    Example::

        raise OutOfRangeClassificationError(12, -0.4, -0.01, 0.0, 1.0)
    """

    def __init__(
        self,
        count: int,
        min_value: float,
        max_value: float,
        lower: float,
        upper: float,
    ) -> None:
        super().__init__(
            f"{count:,} pixel(s) with values in [{min_value:.4f}, {max_value:.4f}] "
            f"fall outside the classification range [{lower}, {upper}]."
        )
        self.count: int = count
        self.min_value: float = min_value
        self.max_value: float = max_value
        self.lower: float = lower
        self.upper: float = upper


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


class CatalogError(GeoToolError):
    """Raised when the scene catalog cannot be searched or stacked."""


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------


class ExportLimitExceededError(GeoToolError):
    """Raised when an export would exceed the maximum pixel count.

    Args:
        requested: Pixel count the export would produce.
        limit: Configured maximum pixel count.
        scale: Requested ground sample distance, in CRS units.

    Example::

        raise ExportLimitExceededError(requested=4_000_000, limit=1_000_000, scale=10)
    """

    def __init__(self, requested: int, limit: int, scale: float) -> None:
        super().__init__(
            f"Export of {requested:,} pixels at scale {scale:g} exceeds the "
            f"limit of {limit:,}. Use a coarser scale or a smaller area."
        )
        self.requested: int = requested
        self.limit: int = limit
        self.scale: float = scale


class OutputWriteError(GeoToolError):
    """Raised when a raster cannot be written to disk.

    Args:
        output_path: String representation of the path that failed.
        reason: Underlying OS or library error message.
    """

    def __init__(self, output_path: str, reason: str) -> None:
        super().__init__(
            f"Failed to write output to '{output_path}': {reason}"
        )
        self.output_path: str = output_path
        self.reason: str = reason

"""
NDVI Composite — Shared Python Package
=======================================
Re-exports the base tool class, exception hierarchy and validators so
the pipeline modules can import from a single location::

    from shared.python import GeoTool, Validators
    from shared.python.exceptions import MissingBandError
"""

from shared.python.base_tool import GeoTool
from shared.python.exceptions import (
    CatalogError,
    ConfigurationError,
    EmptySeriesError,
    ExportLimitExceededError,
    GeoToolError,
    GridMismatchError,
    InputValidationError,
    MissingBandError,
    NoValidDataError,
    OutOfRangeClassificationError,
    OutputWriteError,
    RasterError,
    UnknownBandError,
)
from shared.python.validators import Validators

__all__ = [
    "GeoTool",
    "Validators",
    "GeoToolError",
    "InputValidationError",
    "UnknownBandError",
    "ConfigurationError",
    "RasterError",
    "MissingBandError",
    "GridMismatchError",
    "EmptySeriesError",
    "NoValidDataError",
    "OutOfRangeClassificationError",
    "CatalogError",
    "ExportLimitExceededError",
    "OutputWriteError",
]

"""
NDVI Composite — Shared Input Validators
=========================================
Static precondition checks used by the pipeline stages, the config
layer and the CLI tool.

All methods raise an exception from :mod:`shared.python.exceptions`
rather than returning booleans, so ``validate_inputs`` implementations
and ``__post_init__`` hooks stay short::

    class NDVICompositeTool(GeoTool):
        def validate_inputs(self) -> None:
            Validators.assert_output_dir_writable(self.output_path / "x.tif")
            Validators.assert_in_range(self.year, 2015, 2100, "year")
"""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

# pyproj is imported lazily inside assert_crs_valid.

from shared.python.exceptions import (
    ConfigurationError,
    InputValidationError,
    OutputWriteError,
)


class Validators:
    """Collection of static precondition checks.

    All methods are ``@staticmethod`` — this class is never instantiated.
    It exists purely as a logical namespace.
    """

    # ------------------------------------------------------------------
    # File-system checks
    # ------------------------------------------------------------------

    @staticmethod
    def assert_file_exists(path: Path) -> None:
        """Assert that *path* points to an existing regular file.

        Raises:
            InputValidationError: If *path* does not exist or is a
                directory rather than a file.
        """
        path = Path(path)
        if not path.exists():
            raise InputValidationError(
                f"Input file not found: '{path}'. "
                "Check that the path is correct and the file exists."
            )
        if path.is_dir():
            raise InputValidationError(
                f"Expected a file but got a directory: '{path}'."
            )

    @staticmethod
    def assert_output_dir_writable(output_path: Path) -> None:
        """Assert that the parent directory of *output_path* is writable.

        Creates the parent directory (and any missing parents) if it does
        not yet exist.

        Raises:
            OutputWriteError: If the parent directory cannot be created.
        """
        parent = Path(output_path).parent
        try:
            parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise OutputWriteError(str(output_path), str(exc)) from exc

    @staticmethod
    def assert_supported_extension(path: Path, extensions: Sequence[str]) -> None:
        """Assert that *path* has one of the allowed file extensions.

        Args:
            path: File path to check.
            extensions: Allowed extensions, each starting with a dot
                        (e.g. ``[".shp", ".geojson", ".gpkg"]``).

        Raises:
            InputValidationError: If the extension is not allowed.
        """
        path = Path(path)
        suffix = path.suffix.lower()
        allowed = [ext.lower() for ext in extensions]
        if suffix not in allowed:
            raise InputValidationError(
                f"Unsupported file extension '{suffix}' for '{path.name}'. "
                f"Accepted extensions: {', '.join(allowed)}"
            )

    # ------------------------------------------------------------------
    # CRS checks
    # ------------------------------------------------------------------

    @staticmethod
    def assert_crs_valid(crs_string: str) -> None:
        """Assert that *crs_string* can be parsed as a CRS by pyproj.

        Raises:
            InputValidationError: If pyproj does not recognise it.
        """
        try:
            from pyproj import CRS  # noqa: PLC0415

            CRS.from_user_input(crs_string)
        except Exception as exc:
            raise InputValidationError(
                f"Invalid or unrecognised CRS: '{crs_string}'. "
                "Use an EPSG code (e.g. 'EPSG:32633') or a WKT/PROJ string."
            ) from exc

    # ------------------------------------------------------------------
    # Numeric / configuration checks
    # ------------------------------------------------------------------

    @staticmethod
    def assert_in_range(
        value: float,
        lower: float,
        upper: float,
        setting: str,
    ) -> None:
        """Assert that ``lower <= value <= upper``.

        Raises:
            ConfigurationError: If *value* lies outside the closed range.

        Example::

            Validators.assert_in_range(cloud, 0, 100, "max_cloud_percent")
        """
        if not lower <= value <= upper:
            raise ConfigurationError(
                setting, f"{value!r} is outside [{lower}, {upper}]"
            )

    @staticmethod
    def assert_positive(value: float, setting: str) -> None:
        """Assert that *value* is strictly greater than zero.

        Raises:
            ConfigurationError: If *value* is zero or negative.
        """
        if not value > 0:
            raise ConfigurationError(setting, f"must be > 0, got {value!r}")

    @staticmethod
    def assert_strictly_increasing(values: Sequence[float], setting: str) -> None:
        """Assert that *values* has at least two items, each above the last.

        Raises:
            ConfigurationError: If the sequence is too short or not
                strictly increasing.
        """
        if len(values) < 2:
            raise ConfigurationError(setting, "needs at least two values")
        for prev, nxt in zip(values, values[1:]):
            if not nxt > prev:
                raise ConfigurationError(
                    setting,
                    f"values must be strictly increasing ({prev!r} then {nxt!r})",
                )

    # ------------------------------------------------------------------
    # Raster checks
    # ------------------------------------------------------------------

    @staticmethod
    def assert_raster_shapes_match(
        shape_a: tuple[int, ...],
        shape_b: tuple[int, ...],
        label_a: str = "Band A",
        label_b: str = "Band B",
    ) -> None:
        """Assert that two raster arrays have identical shapes.

        This is required before any pixel-wise arithmetic (e.g. NDVI or
        applying a quality mask).

        Raises:
            InputValidationError: If the shapes do not match.

        Example::

            Validators.assert_raster_shapes_match(
                nir.shape, red.shape, "B8", "B4"
            )
        """
        if tuple(shape_a) != tuple(shape_b):
            raise InputValidationError(
                f"Raster shape mismatch: {label_a} is {tuple(shape_a)} but "
                f"{label_b} is {tuple(shape_b)}. "
                "All bands must have identical dimensions."
            )

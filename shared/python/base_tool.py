"""
NDVI Composite — Shared Base Tool
==================================
Abstract base class for the command-line tools built on the NDVI
composite pipeline.

Design Pattern:
    Template Method — the public ``run()`` method defines a fixed
    sequence (validate → process → report) that subclasses fill in
    by implementing ``validate_inputs`` and ``process``.

Usage::

    from shared.python.base_tool import GeoTool

    class MyTool(GeoTool):
        def validate_inputs(self) -> None:
            ...
        def process(self) -> None:
            ...
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from pathlib import Path

# Root logger for the package; modules log through child loggers
# named ``ndvi_composite.<module>``.
logger = logging.getLogger("ndvi_composite")


class GeoTool(ABC):
    """Abstract base class for NDVI composite tools.

    Attributes:
        output_path: Directory or file the tool writes to.
        input_path: Optional primary input (e.g. an AOI vector file).
            ``None`` when the tool's input is not file based.
        verbose: When ``True`` the tool logs DEBUG-level messages.
    """

    def __init__(
        self,
        output_path: Path,
        *,
        input_path: Path | None = None,
        verbose: bool = False,
    ) -> None:
        self.output_path: Path = Path(output_path)
        self.input_path: Path | None = Path(input_path) if input_path else None
        self.verbose: bool = verbose

        self._configure_logging()

    # ------------------------------------------------------------------
    # Abstract interface: subclasses MUST implement these
    # ------------------------------------------------------------------

    @abstractmethod
    def validate_inputs(self) -> None:
        """Validate all inputs before processing begins.

        Raises:
            InputValidationError: If any precondition is not satisfied.
        """

    @abstractmethod
    def process(self) -> None:
        """Execute the tool's processing.

        Called by :meth:`run` after :meth:`validate_inputs` succeeded.
        Exceptions propagate through :meth:`run`.
        """

    # ------------------------------------------------------------------
    # Template method: the public API callers use
    # ------------------------------------------------------------------

    def run(self) -> None:
        """Execute validate → process → report.

        Raises:
            Any exception raised by ``validate_inputs`` or ``process``
            propagates unchanged.
        """
        logger.info("Starting %s", self.__class__.__name__)
        start = time.perf_counter()

        self.validate_inputs()
        self.process()

        elapsed = time.perf_counter() - start
        self._report_success(elapsed)

    # ------------------------------------------------------------------
    # Protected helpers
    # ------------------------------------------------------------------

    def _report_success(self, elapsed: float) -> None:
        logger.info(
            "%s completed in %.2fs → %s",
            self.__class__.__name__,
            elapsed,
            self.output_path,
        )

    def _configure_logging(self) -> None:
        """Attach a console handler to the package logger once.

        Uses DEBUG level when ``self.verbose`` is ``True``, otherwise INFO.
        """
        if not logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                fmt="[%(asctime)s] %(levelname)-8s %(name)s — %(message)s",
                datefmt="%H:%M:%S",
            )
            handler.setFormatter(formatter)
            logger.addHandler(handler)

        logger.setLevel(logging.DEBUG if self.verbose else logging.INFO)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"output_path={self.output_path!r}, "
            f"input_path={self.input_path!r})"
        )

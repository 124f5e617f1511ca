"""
pipeline.py
===========
End-to-end NDVI composite run::

    catalog → mask → normalize → composite → index → classify

:class:`NDVIPipeline` returns the rasters in memory; :class:`NDVICompositeTool`
wraps it in the :class:`GeoTool` template (validate → process → report)
and writes both rasters to disk.

Usage::

    from ndvi_composite.aoi import AOIBuilder
    from ndvi_composite.pipeline import NDVICompositeTool
    from ndvi_composite.stac_catalog import PlanetaryComputerCatalog

    tool = NDVICompositeTool(
        aoi=AOIBuilder.from_bbox(16.30, 48.15, 16.45, 48.25),
        year=2025,
        output_path=Path("output/"),
        catalog=PlanetaryComputerCatalog(),
    )
    tool.run()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from pathlib import Path

from shared.python.base_tool import GeoTool
from shared.python.exceptions import ExportLimitExceededError, NoValidDataError
from shared.python.validators import Validators

from .aoi import AreaOfInterest
from .catalog import SceneCatalog
from .classify import ClassificationScheme, Classifier
from .compositor import TemporalCompositor
from .config import PipelineConfig
from .export import RasterExporter
from .index import IndexComputer
from .masking import SceneMaskEngine
from .normalize import ReflectanceNormalizer
from .rasters import ClassifiedRaster, CompositeRaster, IndexRaster
from .scene import DateWindow

logger = logging.getLogger("ndvi_composite.pipeline")

# First full year of Sentinel-2A L2A coverage
FIRST_YEAR = 2015


# ---------------------------------------------------------------------------
# Result container
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PipelineResult:
    """Everything one pipeline run produced."""

    index: IndexRaster
    classified: ClassifiedRaster
    composite: CompositeRaster
    scene_count: int
    window: DateWindow

    @property
    def is_empty(self) -> bool:
        """``True`` when no scene passed the filters."""
        return self.scene_count == 0

    @property
    def has_data(self) -> bool:
        """``True`` when at least one NDVI pixel is valid."""
        return self.index.has_data


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


class NDVIPipeline:
    """Build the yearly NDVI composite and its classification.

    Args:
        catalog: Source of scenes (see :class:`SceneCatalog`).
        config: Run settings; defaults reproduce the June composite.
    """

    def __init__(self, catalog: SceneCatalog, config: PipelineConfig | None = None) -> None:
        self.catalog = catalog
        self.config = config or PipelineConfig()
        cfg = self.config
        self.mask_engine = SceneMaskEngine(cfg.invalid_classes)
        self.normalizer = ReflectanceNormalizer(cfg.reflectance_scale, cfg.reflectance_offset)
        self.compositor = TemporalCompositor(
            resolution=cfg.scale,
            tile_size=cfg.tile_size,
            max_workers=cfg.max_workers,
        )
        self.index_computer = IndexComputer()

    def run(
        self,
        aoi: AreaOfInterest,
        year: int,
        scheme: ClassificationScheme | None = None,
        max_cloud_percent: float | None = None,
        window: DateWindow | None = None,
    ) -> PipelineResult:
        """Run every stage for *aoi* and *year*.

        Raises:
            NoValidDataError: If ``fail_on_empty`` is set and no pixel is valid.
            MissingBandError: If a scene lacks a required band.
            GridMismatchError: If the scenes are not on one grid.
            OutOfRangeClassificationError: Under the ``reject`` policy.
        """
        cfg = self.config
        window = window or cfg.window_for(year)
        cloud_limit = cfg.max_cloud_percent if max_cloud_percent is None else max_cloud_percent
        classifier = Classifier(scheme or cfg.scheme, cfg.policy, cfg.sentinel_class)

        logger.info("NDVI composite for %s, year %d, %s", aoi.label, year, window)
        series = self.catalog.fetch_scenes(aoi, window, cloud_limit)
        logger.info("%d scene(s) in the series", len(series))

        masked = []
        for scene in series:
            valid = self.mask_engine.mask(scene)
            masked.append(self.normalizer.normalize(scene, valid))
            logger.debug("%s: %.1f%% valid", scene.scene_id, 100.0 * masked[-1].valid_fraction)

        composite = self.compositor.composite(masked, aoi, window=window)
        index = self.index_computer.compute(
            composite, year, metadata={"max_cloud_percent": cloud_limit}
        )
        classified = classifier.classify(index)

        if not composite.has_data:
            if cfg.fail_on_empty:
                raise NoValidDataError(composite.scene_count)
            logger.warning("No valid composite pixels for %s %d", aoi.label, year)
        elif not index.has_data:
            logger.warning("Composite has data but no defined NDVI for %s %d", aoi.label, year)

        return PipelineResult(
            index=index,
            classified=classified,
            composite=composite,
            scene_count=len(series),
            window=window,
        )


# ---------------------------------------------------------------------------
# Tool
# ---------------------------------------------------------------------------


class NDVICompositeTool(GeoTool):
    """Run the pipeline and export ``NDVI_<Period>_<year>.tif`` and
    ``NDVI_Classes_<Period>_<year>.tif``.

    Export-limit problems are logged and collected in
    :attr:`export_errors`; every other error propagates.

    Attributes:
        result: Pipeline output, set by :meth:`process`.
        outputs: ``{"index": path, "classes": path}`` of written files.
        export_errors: Exports refused for exceeding ``max_pixels``.
    """

    def __init__(
        self,
        aoi: AreaOfInterest,
        year: int,
        output_path: Path,
        *,
        catalog: SceneCatalog,
        config: PipelineConfig | None = None,
        input_path: Path | None = None,
        verbose: bool = False,
    ) -> None:
        super().__init__(output_path=output_path, input_path=input_path, verbose=verbose)
        self.aoi = aoi
        self.year = year
        self.catalog = catalog
        self.config = config or PipelineConfig()
        self.result: PipelineResult | None = None
        self.outputs: dict[str, Path] = {}
        self.export_errors: list[ExportLimitExceededError] = []

    # ------------------------------------------------------------------
    # GeoTool interface
    # ------------------------------------------------------------------

    def validate_inputs(self) -> None:
        """Check the year and make sure the output directory exists.

        Raises:
            ConfigurationError: If the year is out of range.
            OutputWriteError: If the output directory cannot be created.
        """
        Validators.assert_in_range(self.year, FIRST_YEAR, date.today().year, "year")
        if self.input_path is not None:
            Validators.assert_file_exists(self.input_path)
        Validators.assert_output_dir_writable(self.output_path / "placeholder")
        logger.info("Inputs validated: %r, year %d", self.aoi, self.year)

    def process(self) -> None:
        """Run the pipeline, then write both rasters."""
        pipeline = NDVIPipeline(self.catalog, self.config)
        self.result = pipeline.run(self.aoi, self.year)

        exporter = RasterExporter(self.output_path, self.config.scale, self.config.max_pixels)
        window = self.result.window
        jobs = [
            ("index", lambda: exporter.write_index(self.result.index, window)),
            ("classes", lambda: exporter.write_classified(self.result.classified, window)),
        ]
        for key, write in jobs:
            try:
                self.outputs[key] = write()
            except ExportLimitExceededError as exc:
                logger.error("Skipped %s export: %s", key, exc.message)
                self.export_errors.append(exc)

    # ------------------------------------------------------------------
    # Reporting helpers
    # ------------------------------------------------------------------

    def summary_lines(self) -> list[str]:
        """Class histogram and legend as printable lines."""
        if self.result is None:
            return []
        classified = self.result.classified
        labels = classified.scheme.legend_entries()
        lines = [f"Scenes: {self.result.scene_count}  Window: {self.result.window}"]
        for code, count in classified.class_counts().items():
            label = labels[code] if 0 <= code < len(labels) else "Out of range"
            lines.append(f"  class {code:>3}  {count:>10,} px  {label}")
        return lines

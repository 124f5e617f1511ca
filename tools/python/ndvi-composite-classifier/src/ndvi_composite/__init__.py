"""
NDVI Composite Classifier
=========================
Cloud-masked Sentinel-2 median NDVI composites, classified into
vegetation-health classes.
"""

from ndvi_composite.aoi import AOIBuilder, AreaOfInterest
from ndvi_composite.bands import Band, BandSet, QualityClass
from ndvi_composite.catalog import InMemoryCatalog, SceneCatalog
from ndvi_composite.classify import (
    DEFAULT_SCHEME,
    ClassificationScheme,
    Classifier,
    OutOfRangePolicy,
)
from ndvi_composite.compositor import TemporalCompositor
from ndvi_composite.config import PipelineConfig
from ndvi_composite.export import RasterExporter
from ndvi_composite.index import IndexComputer
from ndvi_composite.masking import SceneMaskEngine
from ndvi_composite.normalize import ReflectanceNormalizer
from ndvi_composite.pipeline import NDVICompositeTool, NDVIPipeline, PipelineResult
from ndvi_composite.rasters import ClassifiedRaster, CompositeRaster, IndexRaster, RasterGrid
from ndvi_composite.scene import DateWindow, MaskedScene, Scene, SceneSeries

__version__ = "1.0.0"

__all__ = [
    "AOIBuilder",
    "AreaOfInterest",
    "Band",
    "BandSet",
    "QualityClass",
    "SceneCatalog",
    "InMemoryCatalog",
    "ClassificationScheme",
    "Classifier",
    "DEFAULT_SCHEME",
    "OutOfRangePolicy",
    "TemporalCompositor",
    "PipelineConfig",
    "RasterExporter",
    "IndexComputer",
    "SceneMaskEngine",
    "ReflectanceNormalizer",
    "NDVIPipeline",
    "NDVICompositeTool",
    "PipelineResult",
    "RasterGrid",
    "CompositeRaster",
    "IndexRaster",
    "ClassifiedRaster",
    "DateWindow",
    "Scene",
    "MaskedScene",
    "SceneSeries",
]

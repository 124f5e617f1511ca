"""
NDVI Composite Classifier — CLI Entry Point
============================================
Exposes :class:`~ndvi_composite.pipeline.NDVICompositeTool` as the
``geo-ndvi`` command.

Usage::

    geo-ndvi --bbox 16.30,48.15,16.45,48.25 --year 2025 --output-dir output/

    geo-ndvi --aoi field.gpkg --year 2024 \\
             --season-start 05-15 --season-end 07-15 \\
             --max-cloud 10 --out-of-range sentinel

Run ``geo-ndvi --help`` for the full option list.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click

from shared.python.exceptions import GeoToolError, InputValidationError

from ndvi_composite.aoi import AOIBuilder, AreaOfInterest
from ndvi_composite.classify import OutOfRangePolicy
from ndvi_composite.config import PipelineConfig
from ndvi_composite.pipeline import NDVICompositeTool
from ndvi_composite.stac_catalog import PlanetaryComputerCatalog

logger = logging.getLogger("ndvi_composite.cli")


def _parse_bbox(raw: str) -> AreaOfInterest:
    """Parse ``"min_lon,min_lat,max_lon,max_lat"`` into an AOI."""
    try:
        values = [float(v) for v in raw.split(",")]
    except ValueError:
        raise InputValidationError(f"--bbox values must be numbers, got {raw!r}.") from None
    if len(values) != 4:
        raise InputValidationError(
            f"--bbox needs 4 comma-separated values (min_lon,min_lat,max_lon,max_lat), got {len(values)}."
        )
    return AOIBuilder.from_bbox(*values)


@click.command(
    name="geo-ndvi",
    help=(
        "Build a cloud-masked Sentinel-2 median NDVI composite for one year, "
        "classify it into vegetation-health classes and write both rasters "
        "as GeoTIFFs."
    ),
)
@click.option("--bbox", default=None, help="AOI as min_lon,min_lat,max_lon,max_lat (WGS84).")
@click.option(
    "--aoi", "aoi_path",
    default=None,
    type=click.Path(exists=True, file_okay=True, dir_okay=False, path_type=Path),
    help="AOI vector file (.shp, .gpkg, .geojson).",
)
@click.option("--year", required=True, type=int, help="Analysis year.")
@click.option("--max-cloud", "max_cloud", default=None, type=float,
              help="Drop scenes with cloud cover at or above this percentage [default: 20].")
@click.option("--season-start", default=None, help="First day of the window, MM-DD [default: 06-01].")
@click.option("--season-end", default=None, help="Last day of the window, MM-DD [default: 06-30].")
@click.option("--scale", default=None, type=float, help="Export pixel size in metres [default: 10].")
@click.option("--max-pixels", default=None, type=int, help="Largest allowed export [default: 1e13].")
@click.option(
    "--out-of-range",
    default=None,
    type=click.Choice([p.value for p in OutOfRangePolicy], case_sensitive=False),
    help="Handling of NDVI outside the class boundaries [default: clamp].",
)
@click.option(
    "--config", "config_path",
    default=None,
    type=click.Path(exists=True, file_okay=True, dir_okay=False, path_type=Path),
    help="JSON file with pipeline settings; command-line options win.",
)
@click.option(
    "--output-dir", "output_dir",
    default="output",
    show_default=True,
    type=click.Path(file_okay=False, dir_okay=True, path_type=Path),
    help="Directory for the output GeoTIFFs.",
)
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable DEBUG-level logging.")
def cli(
    bbox: str | None,
    aoi_path: Path | None,
    year: int,
    max_cloud: float | None,
    season_start: str | None,
    season_end: str | None,
    scale: float | None,
    max_pixels: int | None,
    out_of_range: str | None,
    config_path: Path | None,
    output_dir: Path,
    verbose: bool,
) -> None:
    """Run the NDVI composite pipeline for one AOI and year.

    \b
    Examples:
        geo-ndvi --bbox 16.30,48.15,16.45,48.25 --year 2025
        geo-ndvi --aoi field.gpkg --year 2024 --scale 20 --config ndvi.json
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )

    if (bbox is None) == (aoi_path is None):
        click.echo("Error: Provide exactly one of --bbox or --aoi. See --help.", err=True)
        sys.exit(1)

    try:
        config = PipelineConfig.from_json(config_path) if config_path else PipelineConfig()
        config = config.replace(
            max_cloud_percent=max_cloud,
            season_start=season_start,
            season_end=season_end,
            scale=scale,
            max_pixels=max_pixels,
            out_of_range=out_of_range.lower() if out_of_range else None,
        )
        aoi = _parse_bbox(bbox) if bbox else AOIBuilder.from_file(aoi_path)
        tool = NDVICompositeTool(
            aoi=aoi,
            year=year,
            output_path=output_dir,
            catalog=PlanetaryComputerCatalog(resolution=config.scale),
            config=config,
            input_path=aoi_path,
            verbose=verbose,
        )
        tool.run()
    except GeoToolError as exc:
        click.echo(f"Error: {exc.message}", err=True)
        sys.exit(1)

    for line in tool.summary_lines():
        click.echo(line)
    for key, path in tool.outputs.items():
        click.echo(f"  {key:<8} → {path}")
    if tool.export_errors:
        for err in tool.export_errors:
            click.echo(f"Export skipped: {err.message}", err=True)
        sys.exit(2)


if __name__ == "__main__":
    cli()

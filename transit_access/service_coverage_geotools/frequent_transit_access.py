"""Measure walking access to frequent transit within a city boundary.

Loads the all-stops artifact written by ``feed_stop_extractor``, keeps the
stops meeting the frequent-service test (plus enabled planned stops for
scenario datasets), builds a 10-minute walking catchment per stop from
precomputed isochrones (or a half-mile circle), merges them, clips to the city
boundary, and apportions census-block population onto the result.

All inputs are loaded up front and handed to :func:`run_access_analysis` in
one call; nothing is recomputed piecemeal.

Typical inputs:
    - all_stops_<dataset>.json (base dataset for scenario years)
    - isochrones_<dataset>.json (base and scenario for scenario years)
    - future_stops/future_stops_<dataset>.json (scenario years only)
    - City boundary GeoJSON and census-block population GeoJSON

Outputs:
    - frequent_transit_coverage_<dataset>.geojson (in-region and
      out-of-region layers)
    - frequent_stop_catchments_<dataset>.json
    - frequent_transit_summary_<dataset>.xlsx
"""

from __future__ import annotations

import argparse
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Final, Mapping, Optional, Sequence

import geopandas as gpd
from openpyxl import Workbook
from openpyxl.styles import Alignment
from openpyxl.utils import get_column_letter

from transit_access.frequency_tools.frequent_stops import filter_frequent_stops, load_future_stops
from transit_access.frequency_tools.stop_records import Stop, load_stops_json
from transit_access.service_coverage_geotools.catchment_resolver import (
    CatchmentRecord,
    CatchmentResolver,
    build_catchment_records,
    export_catchment_records,
    load_catchment_records,
)
from transit_access.service_coverage_geotools.coverage_merger import (
    FALLBACK_REFERENCE_AREA_M2,
    CoverageResult,
    merge_coverage,
)
from transit_access.service_coverage_geotools.geometry_ops import (
    GeodesicGeometryOps,
    GeometryOps,
    PolygonLike,
)
from transit_access.service_coverage_geotools.population_apportioner import (
    REFERENCE_POPULATION,
    PopulationResult,
    PopulationUnit,
    apportion_population,
    select_population_units,
)
from transit_access.utils.logging_helper import setup_logging

LOGGER = logging.getLogger(__name__)

# =============================================================================
# CONFIGURATION
# =============================================================================

DATASET = "2025"  # Options: "2020", "2025", "2027"

# Scenario dataset -> dataset whose GTFS stops and isochrones it builds on
SCENARIO_BASE_DATASETS: Final[dict[str, str]] = {"2027": "2025"}

BASE_DATA_DIR = Path(r"Path\To\base_data")
BOUNDARY_PATH = BASE_DATA_DIR / "seattle-city-limits.geojson"
CENSUS_BLOCKS_PATH = BASE_DATA_DIR / "KING_COUNTY_BLOCK_2020_POPULATION.geojson"
OUTPUT_DIRECTORY = Path(r"Path\To\Output")

GEOGRAPHIC_CRS: Final[str] = "EPSG:4326"

# =============================================================================
# FUNCTIONS
# =============================================================================


@dataclass(frozen=True)
class AccessReport:
    """Everything one analysis run produces."""

    dataset: str
    frequent_stops: list[Stop]
    catchments: list[PolygonLike]
    coverage: CoverageResult
    population: Optional[PopulationResult]

    @property
    def stop_count(self) -> int:
        return len(self.frequent_stops)


def run_access_analysis(
    stops: Sequence[Stop],
    catchment_records: Mapping[str, CatchmentRecord],
    ops: GeometryOps,
    dataset: str,
    region: Optional[PolygonLike] = None,
    population_units: Optional[Sequence[PopulationUnit]] = None,
    base_dataset: Optional[str] = None,
    future_stops: Sequence[Stop] = (),
    fallback_reference_area: float = FALLBACK_REFERENCE_AREA_M2,
    reference_population: int = REFERENCE_POPULATION,
) -> AccessReport:
    """Run classification, catchments, coverage and population in order.

    Args:
        stops: Every stop of the (base) dataset with hourly profiles.
        catchment_records: Precomputed catchments keyed by composite id.
        ops: Polygon primitives.
        dataset: Dataset being analysed (``"2025"``, or a scenario year).
        region: City boundary; ``None`` skips clipping.
        population_units: Census units; ``None`` skips apportionment.
        base_dataset: For scenario datasets, the dataset existing stops'
            catchments are stored under.
        future_stops: Planned stops already filtered for the scenario.
        fallback_reference_area: Area used when no region clipping happens.
        reference_population: Population the percentage is reported against.
    """
    frequent = filter_frequent_stops(stops)
    frequent.extend(future_stops)
    if future_stops:
        LOGGER.info("Total stops including future: %d", len(frequent))

    resolver = CatchmentResolver(catchment_records, ops)
    catchments = resolver.resolve_all(frequent, dataset, base_dataset=base_dataset)

    coverage = merge_coverage(
        catchments,
        ops,
        region=region,
        fallback_reference_area=fallback_reference_area,
    )
    LOGGER.info(
        "%d frequent stops cover %s%% of the reference area.",
        len(frequent),
        coverage.display_percent,
    )

    population = None
    if population_units is not None:
        population = apportion_population(
            coverage.merged_polygon,
            population_units,
            ops,
            reference_population=reference_population,
        )

    return AccessReport(
        dataset=dataset,
        frequent_stops=frequent,
        catchments=catchments,
        coverage=coverage,
        population=population,
    )


def load_region(boundary_path: Path) -> Optional[PolygonLike]:
    """Dissolve a boundary layer into one lon/lat polygon; ``None`` when absent."""
    boundary_path = Path(boundary_path)
    if not boundary_path.is_file():
        LOGGER.warning("Boundary not found at %s; coverage will not be clipped.", boundary_path)
        return None
    boundary_gdf = gpd.read_file(boundary_path)
    if boundary_gdf.empty:
        LOGGER.warning("Boundary file %s has no features.", boundary_path)
        return None
    if boundary_gdf.crs is not None:
        boundary_gdf = boundary_gdf.to_crs(GEOGRAPHIC_CRS)
    LOGGER.info("Boundary loaded from %s (%d features).", boundary_path, len(boundary_gdf))
    return boundary_gdf.geometry.union_all()


def load_population_units(census_path: Path) -> Optional[list[PopulationUnit]]:
    """Read census blocks; ``None`` when the layer is unavailable."""
    census_path = Path(census_path)
    if not census_path.is_file():
        LOGGER.warning("Census data not found at %s; skipping population.", census_path)
        return None
    blocks_gdf = gpd.read_file(census_path)
    if blocks_gdf.crs is not None:
        blocks_gdf = blocks_gdf.to_crs(GEOGRAPHIC_CRS)
    LOGGER.info("Loaded %d census blocks.", len(blocks_gdf))
    return select_population_units(blocks_gdf)


def export_coverage_geojson(coverage: CoverageResult, output_path: Path) -> None:
    """Write in-region and out-of-region coverage layers to one GeoJSON."""
    layers = [
        ("in_region", coverage.merged_polygon),
        ("out_of_region", coverage.out_of_region_polygon),
    ]
    rows = [(name, geom) for name, geom in layers if geom is not None]
    if not rows:
        LOGGER.info("No coverage geometry to export.")
        return

    gdf = gpd.GeoDataFrame(
        {"layer": [name for name, _ in rows]},
        geometry=[geom for _, geom in rows],
        crs=GEOGRAPHIC_CRS,
    )
    os.makedirs(os.path.dirname(output_path) or ".", exist_ok=True)
    gdf.to_file(output_path, driver="GeoJSON")
    LOGGER.info("Exported coverage layers: %s", output_path)


def summarize_report(report: AccessReport) -> dict[str, object]:
    summary: dict[str, object] = {
        "dataset": report.dataset,
        "frequent_stops": report.stop_count,
        "coverage_percent": report.coverage.display_percent,
        "clipped_to_region": report.coverage.clipped,
    }
    if report.population is not None:
        summary["population"] = round(report.population.population)
        summary["population_percent"] = round(report.population.percent, 1)
        summary["blocks"] = report.population.unit_count
    return summary


def export_summary_to_excel(
    summary: Mapping[str, object], output_path: Path, sheet: str = "Summary"
) -> None:
    """Write the run summary to a single-row XLSX file with modest formatting."""
    wb = Workbook()
    ws = wb.active
    ws.title = sheet
    ws.append(list(summary.keys()))
    ws.append(list(summary.values()))
    for idx, col in enumerate(ws.columns, start=1):
        width = max(len(str(c.value)) for c in col if c.value is not None) + 2
        ws.column_dimensions[get_column_letter(idx)].width = width
        for cell in col:
            cell.alignment = Alignment(horizontal="center")
    os.makedirs(os.path.dirname(output_path) or ".", exist_ok=True)
    wb.save(output_path)
    LOGGER.info("Exported Excel summary: %s", output_path)


def load_dataset_inputs(
    dataset: str,
    base_data_dir: Path,
) -> tuple[list[Stop], dict[str, CatchmentRecord], list[Stop], Optional[str]]:
    """Load stops, catchment records and planned stops for *dataset*."""
    base_dataset = SCENARIO_BASE_DATASETS.get(dataset)
    gtfs_dataset = base_dataset or dataset
    if base_dataset:
        LOGGER.info("Using %s GTFS data as base for %s scenario.", base_dataset, dataset)

    stops = load_stops_json(base_data_dir / f"all_stops_{gtfs_dataset}.json")

    isochrone_years = [base_dataset, dataset] if base_dataset else [dataset]
    records = load_catchment_records(
        base_data_dir / f"isochrones_{year}.json" for year in isochrone_years
    )

    future: list[Stop] = []
    if base_dataset:
        future = load_future_stops(
            base_data_dir / "future_stops" / f"future_stops_{dataset}.json", dataset
        )
    return stops, records, future, base_dataset


# =============================================================================
# MAIN
# =============================================================================


def parse_args(argv: Sequence[str] | None = None) -> tuple[argparse.Namespace, list[str]]:
    """Parse CLI args and return (args, unknown_args)."""
    parser = argparse.ArgumentParser(description="Frequent transit walkshed coverage.")
    parser.add_argument("--dataset", default=DATASET, help="Dataset year to analyse")
    parser.add_argument("--base-data", type=Path, default=BASE_DATA_DIR, help="Input folder")
    parser.add_argument("--boundary", type=Path, default=BOUNDARY_PATH, help="Boundary GeoJSON")
    parser.add_argument("--census", type=Path, default=CENSUS_BLOCKS_PATH, help="Census GeoJSON")
    parser.add_argument("--out", type=Path, default=OUTPUT_DIRECTORY, help="Output directory")
    parser.add_argument("--log-level", default="INFO", help="Logging level name")
    args, unknown = parser.parse_known_args(list(argv) if argv is not None else None)
    return args, unknown


def main(argv: Sequence[str] | None = None) -> None:
    """CLI entry point (notebook-safe)."""
    args, _unknown = parse_args(argv)
    setup_logging(args.log_level)
    dataset = str(args.dataset)

    try:
        stops, records, future, base_dataset = load_dataset_inputs(dataset, args.base_data)
        region = load_region(args.boundary)
        units = load_population_units(args.census)

        ops = GeodesicGeometryOps()
        report = run_access_analysis(
            stops,
            records,
            ops,
            dataset,
            region=region,
            population_units=units,
            base_dataset=base_dataset,
            future_stops=future,
        )

        out_dir: Path = args.out
        export_coverage_geojson(
            report.coverage, out_dir / f"frequent_transit_coverage_{dataset}.geojson"
        )
        export_catchment_records(
            build_catchment_records(report.frequent_stops, report.catchments),
            out_dir / f"frequent_stop_catchments_{dataset}.json",
        )
        summary = summarize_report(report)
        export_summary_to_excel(summary, out_dir / f"frequent_transit_summary_{dataset}.xlsx")

        for key, value in summary.items():
            LOGGER.info("  %s: %s", key, value)

    except Exception as exc:
        LOGGER.error("Analysis terminated due to an error: %s", exc, exc_info=True)
        raise


if __name__ == "__main__":  # pragma: no cover
    main()

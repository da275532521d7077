from __future__ import annotations

import json

import geopandas as gpd
import pandas as pd
import pytest
from shapely.geometry import box

from transit_access.frequency_tools.stop_records import Stop, export_stops_json
from transit_access.service_coverage_geotools.catchment_resolver import (
    CatchmentRecord,
    export_catchment_records,
)
from transit_access.service_coverage_geotools.frequent_transit_access import (
    export_summary_to_excel,
    load_dataset_inputs,
    load_region,
    main,
    run_access_analysis,
    summarize_report,
)
from transit_access.service_coverage_geotools.geometry_ops import PlanarGeometryOps
from transit_access.service_coverage_geotools.population_apportioner import PopulationUnit

FREQUENT = {str(h): (6 if 6 <= h <= 18 else 0) for h in range(24)}
SPARSE = {str(h): (2 if 6 <= h <= 18 else 0) for h in range(24)}


def _existing(original_id: str, lon: float, lat: float, hourly) -> Stop:
    return Stop(
        f"2025_metro_{original_id}", original_id, "metro", "2025", original_id, lat, lon,
        hourly_trips=hourly,
    )


def _planned(stop_id: str, lon: float, lat: float) -> Stop:
    return Stop(
        stop_id, stop_id, "future", "2027", stop_id, lat, lon, hourly_trips=FREQUENT, is_future=True
    )


def test_scenario_run_end_to_end_planar() -> None:
    """Existing stop uses its 2025 catchment; planned stop falls back to a circle."""
    ops = PlanarGeometryOps()
    stops = [_existing("1", 500, 500, FREQUENT), _existing("2", 2500, 2500, SPARSE)]
    records = {"2025_metro_1": CatchmentRecord("2025_metro_1", isochrone_10min=box(0, 0, 1000, 1000))}
    planned = [_planned("2027_future_x", 3000, 3000)]
    units = [PopulationUnit("A", box(0, 0, 2000, 1000), 100)]

    report = run_access_analysis(
        stops,
        records,
        ops,
        "2027",
        region=box(0, 0, 5000, 5000),
        population_units=units,
        base_dataset="2025",
        future_stops=planned,
        reference_population=1000,
    )

    circle_area = ops.area(ops.circle_buffer(3000, 3000, 804.672, 32))
    assert [s.stop_id for s in report.frequent_stops] == ["2025_metro_1", "2027_future_x"]
    assert report.coverage.coverage_percent == pytest.approx(
        (1_000_000 + circle_area) / 25_000_000 * 100
    )
    assert report.population.population == pytest.approx(50.0)

    summary = summarize_report(report)
    assert summary["dataset"] == "2027"
    assert summary["frequent_stops"] == 2
    assert summary["clipped_to_region"] is True
    assert summary["population"] == 50
    assert summary["population_percent"] == 5.0
    assert summary["blocks"] == 1


def test_run_without_region_or_population() -> None:
    ops = PlanarGeometryOps()
    records = {"2025_metro_1": CatchmentRecord("2025_metro_1", isochrone_10min=box(0, 0, 10, 10))}

    report = run_access_analysis(
        [_existing("1", 5, 5, FREQUENT)], records, ops, "2025", fallback_reference_area=400.0
    )

    assert report.coverage.clipped is False
    assert report.coverage.coverage_percent == pytest.approx(25.0)
    assert report.population is None
    assert "population" not in summarize_report(report)


def test_no_frequent_stops_is_zero_coverage() -> None:
    report = run_access_analysis(
        [_existing("1", 5, 5, SPARSE)], {}, PlanarGeometryOps(), "2025", region=box(0, 0, 10, 10)
    )
    assert report.stop_count == 0
    assert report.coverage.coverage_percent == 0.0
    assert report.coverage.merged_polygon is None


def test_load_region_missing_file(tmp_path) -> None:
    assert load_region(tmp_path / "city_limits.geojson") is None


def test_load_region_dissolves_features(tmp_path) -> None:
    path = tmp_path / "city_limits.geojson"
    gpd.GeoDataFrame(
        {"name": ["north", "south"]},
        geometry=[box(0, 0, 1, 1), box(0, 1, 1, 2)],
        crs="EPSG:4326",
    ).to_file(path, driver="GeoJSON")

    region = load_region(path)
    assert region.area == pytest.approx(2.0)


def test_load_dataset_inputs_for_scenario(tmp_path) -> None:
    """2027 reads 2025 stops, both isochrone files and its planned stops."""
    export_stops_json([_existing("1", -122.34, 47.61, FREQUENT)], tmp_path / "all_stops_2025.json")
    export_catchment_records(
        [CatchmentRecord("2025_metro_1", isochrone_10min=box(0, 0, 1, 1))],
        tmp_path / "isochrones_2025.json",
    )
    future_dir = tmp_path / "future_stops"
    future_dir.mkdir()
    (future_dir / "future_stops_2027.json").write_text(
        json.dumps(
            {"stops": [{"id": "2027_future_x", "name": "X", "lat": 47.6, "lon": -122.3, "hourly_trips": FREQUENT}]}
        ),
        encoding="utf-8",
    )

    stops, records, future, base_dataset = load_dataset_inputs("2027", tmp_path)

    assert base_dataset == "2025"
    assert [s.stop_id for s in stops] == ["2025_metro_1"]
    assert set(records) == {"2025_metro_1"}
    assert [s.stop_id for s in future] == ["2027_future_x"]


def test_export_summary_to_excel(tmp_path) -> None:
    path = tmp_path / "out" / "summary.xlsx"
    export_summary_to_excel({"dataset": "2025", "frequent_stops": 3, "coverage_percent": "12.5"}, path)

    frame = pd.read_excel(path, dtype=str)
    assert frame.loc[0, "dataset"] == "2025"
    assert frame.loc[0, "coverage_percent"] == "12.5"


def test_main_writes_outputs(tmp_path) -> None:
    """CLI run with no boundary or census layer still writes every artifact."""
    base = tmp_path / "base"
    out = tmp_path / "out"
    export_stops_json([_existing("1", -122.34, 47.61, FREQUENT)], base / "all_stops_2025.json")

    main(
        [
            "--dataset", "2025",
            "--base-data", str(base),
            "--boundary", str(base / "missing_boundary.geojson"),
            "--census", str(base / "missing_census.geojson"),
            "--out", str(out),
        ]
    )

    assert (out / "frequent_transit_coverage_2025.geojson").is_file()
    assert (out / "frequent_transit_summary_2025.xlsx").is_file()
    catchments = json.loads((out / "frequent_stop_catchments_2025.json").read_text(encoding="utf-8"))
    assert [r["stop_id"] for r in catchments["isochrones"]] == ["2025_metro_1"]


def test_main_reraises_on_missing_stops(tmp_path) -> None:
    with pytest.raises(FileNotFoundError):
        main(["--dataset", "2025", "--base-data", str(tmp_path), "--out", str(tmp_path / "out")])

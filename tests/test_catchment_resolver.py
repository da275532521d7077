from __future__ import annotations

import json
import math

import pytest
from shapely.geometry import box, mapping

from transit_access.frequency_tools.stop_records import Stop
from transit_access.service_coverage_geotools.catchment_resolver import (
    CatchmentRecord,
    CatchmentResolver,
    build_catchment_records,
    export_catchment_records,
    load_catchment_records,
)
from transit_access.service_coverage_geotools.geometry_ops import (
    GeodesicGeometryOps,
    PlanarGeometryOps,
)


def _stop(stop_id: str, original_id: str, feed: str = "metro", dataset: str = "2025", **kw) -> Stop:
    return Stop(stop_id, original_id, feed, dataset, f"Stop {original_id}", 0.0, 0.0, **kw)


def _record(stop_id: str, geom=None, five=None) -> CatchmentRecord:
    return CatchmentRecord(stop_id=stop_id, isochrone_5min=five, isochrone_10min=geom)


@pytest.fixture
def ops() -> PlanarGeometryOps:
    return PlanarGeometryOps()


def test_soundtransit_record_wins_over_metro(ops) -> None:
    """Shared stop ids prefer the rail feed's catchment."""
    st_geom, metro_geom = box(0, 0, 1, 1), box(0, 0, 2, 2)
    resolver = CatchmentResolver(
        {
            "2025_metro_42": _record("2025_metro_42", metro_geom),
            "2025_soundtransit_42": _record("2025_soundtransit_42", st_geom),
        },
        ops,
    )
    assert resolver.resolve(_stop("2025_metro_42", "42"), "2025").equals(st_geom)


def test_raw_stop_id_is_the_last_candidate(ops) -> None:
    geom = box(0, 0, 3, 3)
    stop = _stop("2027_future_ballard", "2027_future_ballard", feed="future", dataset="2027")
    resolver = CatchmentResolver({"2027_future_ballard": _record("2027_future_ballard", geom)}, ops)

    assert resolver.candidate_keys(stop, "2027")[-1] == "2027_future_ballard"
    assert resolver.resolve(stop, "2027").equals(geom)


def test_missing_record_falls_back_to_circle(ops) -> None:
    resolver = CatchmentResolver({}, ops, radius_m=10.0)
    circle = resolver.resolve(_stop("2025_metro_1", "1"), "2025")
    assert ops.area(circle) == pytest.approx(math.pi * 100, rel=0.01)


def test_geodesic_fallback_is_a_half_mile_circle() -> None:
    ops = GeodesicGeometryOps()
    stop = Stop("2025_metro_1", "1", "metro", "2025", "Pike", 47.61, -122.34)
    circle = CatchmentResolver({}, ops).resolve(stop, "2025")
    assert ops.area(circle) == pytest.approx(math.pi * 804.672**2, rel=0.02)


def test_record_without_ten_minute_contour_is_ignored(ops) -> None:
    resolver = CatchmentResolver(
        {"2025_metro_7": _record("2025_metro_7", geom=None, five=box(0, 0, 1, 1))},
        ops,
        radius_m=5.0,
    )
    assert resolver.find_precomputed(_stop("2025_metro_7", "7"), "2025") is None


def test_too_few_circle_steps_rejected(ops) -> None:
    with pytest.raises(ValueError):
        CatchmentResolver({}, ops, steps=16)


def test_scenario_existing_stops_use_base_dataset(ops) -> None:
    """In 2027, existing stops find catchments under 2025; planned ones under 2027."""
    existing_geom, planned_geom = box(0, 0, 1, 1), box(5, 5, 6, 6)
    resolver = CatchmentResolver(
        {
            "2025_metro_9": _record("2025_metro_9", existing_geom),
            "2027_future_x": _record("2027_future_x", planned_geom),
        },
        ops,
    )
    stops = [
        _stop("2025_metro_9", "9"),
        _stop("2027_future_x", "2027_future_x", feed="future", dataset="2027", is_future=True),
    ]

    polygons = resolver.resolve_all(stops, "2027", base_dataset="2025")

    assert polygons[0].equals(existing_geom)
    assert polygons[1].equals(planned_geom)


def test_load_catchment_records_later_files_override(tmp_path) -> None:
    def write(name: str, geom) -> object:
        path = tmp_path / name
        payload = {
            "isochrones": [
                {
                    "stop_id": "2025_metro_1",
                    "original_id": "1",
                    "feed": "metro",
                    "dataset": "2025",
                    "coordinates": {"lon": -122.3, "lat": 47.6},
                    "isochrone_10min": {
                        "type": "Feature",
                        "properties": {"contour": 10},
                        "geometry": mapping(geom),
                    },
                }
            ]
        }
        path.write_text(json.dumps(payload), encoding="utf-8")
        return path

    first = write("isochrones_2025.json", box(0, 0, 1, 1))
    second = write("isochrones_2027.json", box(0, 0, 2, 2))

    records = load_catchment_records([first, tmp_path / "missing.json", second])

    assert list(records) == ["2025_metro_1"]
    record = records["2025_metro_1"]
    assert record.isochrone_10min.equals(box(0, 0, 2, 2))
    assert record.isochrone_5min is None
    assert (record.lon, record.lat) == (-122.3, 47.6)


def test_exported_records_load_back(tmp_path) -> None:
    stops = [_stop("2025_metro_1", "1"), _stop("2025_soundtransit_2", "2", feed="soundtransit")]
    polygons = [box(0, 0, 1, 1), box(2, 2, 3, 3)]
    path = tmp_path / "out" / "frequent_stop_catchments_2025.json"

    export_catchment_records(build_catchment_records(stops, polygons), path)
    records = load_catchment_records([path])

    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload["parameters"] == {"total_stops": 2, "successful": 2}
    assert payload["isochrones"][0]["isochrone_10min"]["properties"] == {"contour": 10}
    assert records["2025_soundtransit_2"].isochrone_10min.equals(box(2, 2, 3, 3))
    assert records["2025_metro_1"].stop_name == "Stop 1"


def test_resolve_uses_base_dataset_and_counts_fallbacks(ops) -> None:
    """Single-stop lookup applies the same scenario rule as a batch."""
    existing_geom = box(0, 0, 1, 1)
    resolver = CatchmentResolver({"2025_metro_9": _record("2025_metro_9", existing_geom)}, ops)
    existing = _stop("2025_metro_9", "9")
    planned = _stop("2027_future_y", "2027_future_y", feed="future", dataset="2027", is_future=True)

    assert resolver.resolve(existing, "2027", base_dataset="2025").equals(existing_geom)
    assert resolver.fallback_count == 0

    resolver.resolve_all([existing, planned], "2027", base_dataset="2025")
    assert resolver.fallback_count == 1

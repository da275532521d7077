"""Walking catchments per stop: precomputed isochrones or a circle fallback.

Precomputed catchments come from isochrone record files
(``isochrones_<dataset>.json``)::

    {"generated_at": "...", "parameters": {...},
     "isochrones": [{"stop_id": "2025_metro_1120", "original_id": "1120",
                     "feed": "metro", "dataset": "2025", "stop_name": "...",
                     "coordinates": {"lon": -122.3, "lat": 47.6},
                     "isochrone_5min": <GeoJSON Feature>,
                     "isochrone_10min": <GeoJSON Feature>}, ...]}

A stop without a record still gets a catchment: a circle of roughly a
ten-minute walk around it, so coverage keeps working on partial data.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Final, Iterable, Mapping, Optional, Sequence

from shapely.errors import ShapelyError
from shapely.geometry import mapping, shape

from transit_access.frequency_tools.stop_records import Stop
from transit_access.service_coverage_geotools.geometry_ops import GeometryOps, PolygonLike

LOGGER = logging.getLogger(__name__)

# =============================================================================
# CONFIGURATION
# =============================================================================

# Feed prefixes tried in order; the rail feed is the more likely frequent one.
FEED_PRIORITY: Final[tuple[str, ...]] = ("soundtransit", "metro")

WALK_RADIUS_METERS: Final[float] = 804.672  # half mile, a ten-minute walk
CIRCLE_STEPS: Final[int] = 32

# =============================================================================
# FUNCTIONS
# =============================================================================


@dataclass(frozen=True)
class CatchmentRecord:
    """Precomputed catchment polygons for one stop."""

    stop_id: str
    original_id: Optional[str] = None
    feed: Optional[str] = None
    dataset: Optional[str] = None
    stop_name: Optional[str] = None
    lon: Optional[float] = None
    lat: Optional[float] = None
    isochrone_5min: Optional[PolygonLike] = None
    isochrone_10min: Optional[PolygonLike] = None


def _feature_geometry(feature: Optional[Mapping[str, Any]]) -> Optional[PolygonLike]:
    """Shapely geometry of a GeoJSON Feature (or bare geometry)."""
    if not feature:
        return None
    geometry = feature.get("geometry", feature) if feature.get("type") == "Feature" else feature
    if not geometry:
        return None
    try:
        geom = shape(geometry)
    except (ShapelyError, ValueError, TypeError, AttributeError) as exc:
        LOGGER.warning("Ignoring unreadable catchment geometry: %s", exc)
        return None
    return None if geom.is_empty else geom


def _feature(geom: Optional[PolygonLike], contour: int) -> Optional[dict[str, Any]]:
    if geom is None:
        return None
    return {"type": "Feature", "properties": {"contour": contour}, "geometry": mapping(geom)}


def record_from_json(raw: Mapping[str, Any]) -> CatchmentRecord:
    coords = raw.get("coordinates") or {}
    return CatchmentRecord(
        stop_id=str(raw["stop_id"]),
        original_id=raw.get("original_id"),
        feed=raw.get("feed"),
        dataset=raw.get("dataset"),
        stop_name=raw.get("stop_name"),
        lon=coords.get("lon"),
        lat=coords.get("lat"),
        isochrone_5min=_feature_geometry(raw.get("isochrone_5min")),
        isochrone_10min=_feature_geometry(raw.get("isochrone_10min")),
    )


def record_to_json(record: CatchmentRecord) -> dict[str, Any]:
    return {
        "stop_id": record.stop_id,
        "original_id": record.original_id,
        "feed": record.feed,
        "dataset": record.dataset,
        "stop_name": record.stop_name,
        "coordinates": {"lon": record.lon, "lat": record.lat},
        "isochrone_5min": _feature(record.isochrone_5min, 5),
        "isochrone_10min": _feature(record.isochrone_10min, 10),
    }


def load_catchment_records(paths: Iterable[Path]) -> dict[str, CatchmentRecord]:
    """Read isochrone record files into ``{composite_stop_id: record}``.

    Later files override earlier ones for the same ``stop_id``. Missing files
    are logged and skipped so partial data still loads.
    """
    records: dict[str, CatchmentRecord] = {}
    for path in paths:
        path = Path(path)
        if not path.is_file():
            LOGGER.warning("No isochrones file found at %s", path)
            continue
        with path.open(encoding="utf-8") as fh:
            data = json.load(fh)
        for raw in data.get("isochrones", []):
            record = record_from_json(raw)
            records[record.stop_id] = record
        LOGGER.info("Loaded %d isochrone records from %s", len(data.get("isochrones", [])), path)

    LOGGER.info("Total isochrones loaded: %d", len(records))
    return records


def export_catchment_records(records: Sequence[CatchmentRecord], output_path: Path) -> None:
    """Write records in the same shape :func:`load_catchment_records` reads."""
    output = {
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "parameters": {
            "total_stops": len(records),
            "successful": sum(1 for r in records if r.isochrone_10min is not None),
        },
        "isochrones": [record_to_json(r) for r in records],
    }
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with output_path.open("w", encoding="utf-8") as fh:
        json.dump(output, fh, indent=2)
    LOGGER.info("Saved %d catchment records to %s", len(records), output_path)


def catchment_dataset_for(stop: Stop, dataset: str, base_dataset: Optional[str] = None) -> str:
    """Dataset whose catchments apply to *stop*.

    In a scenario dataset, existing stops come from the base dataset's GTFS,
    so their catchments are stored under the base dataset's year.
    """
    if base_dataset and not stop.is_future:
        return base_dataset
    return dataset


class CatchmentResolver:
    """Look up a stop's 10-minute catchment, falling back to a circle."""

    def __init__(
        self,
        catchments: Mapping[str, CatchmentRecord],
        ops: GeometryOps,
        feed_priority: Sequence[str] = FEED_PRIORITY,
        radius_m: float = WALK_RADIUS_METERS,
        steps: int = CIRCLE_STEPS,
    ) -> None:
        if steps < 32:
            raise ValueError("Circle fallback needs at least 32 vertices.")
        self.catchments = catchments
        self.ops = ops
        self.feed_priority = tuple(feed_priority)
        self.radius_m = radius_m
        self.steps = steps
        self.fallback_count = 0

    def candidate_keys(self, stop: Stop, dataset: str) -> list[str]:
        keys = [f"{dataset}_{feed}_{stop.original_id}" for feed in self.feed_priority]
        keys.append(stop.stop_id)
        return keys

    def find_precomputed(self, stop: Stop, dataset: str) -> Optional[PolygonLike]:
        for key in self.candidate_keys(stop, dataset):
            record = self.catchments.get(key)
            if record is not None and record.isochrone_10min is not None:
                return record.isochrone_10min
        return None

    def resolve(
        self,
        stop: Stop,
        dataset: str,
        base_dataset: Optional[str] = None,
    ) -> PolygonLike:
        """Precomputed 10-minute catchment of *stop*, else a walking-radius circle."""
        polygon = self.find_precomputed(stop, catchment_dataset_for(stop, dataset, base_dataset))
        if polygon is not None:
            return polygon
        self.fallback_count += 1
        LOGGER.debug("No isochrone for %s; using a %.0f m circle.", stop.stop_id, self.radius_m)
        return self.ops.circle_buffer(stop.lon, stop.lat, self.radius_m, self.steps)

    def resolve_all(
        self,
        stops: Sequence[Stop],
        dataset: str,
        base_dataset: Optional[str] = None,
    ) -> list[PolygonLike]:
        """Resolve every stop, keeping input order."""
        fallbacks_before = self.fallback_count
        polygons = [self.resolve(stop, dataset, base_dataset=base_dataset) for stop in stops]
        fallbacks = self.fallback_count - fallbacks_before

        LOGGER.info(
            "Resolved %d catchments (%d precomputed, %d circle fallbacks).",
            len(polygons),
            len(polygons) - fallbacks,
            fallbacks,
        )
        return polygons


def build_catchment_records(
    stops: Sequence[Stop],
    polygons: Sequence[PolygonLike],
) -> list[CatchmentRecord]:
    """One record per processed stop carrying its resolved 10-minute catchment."""
    return [
        CatchmentRecord(
            stop_id=stop.stop_id,
            original_id=stop.original_id,
            feed=stop.feed,
            dataset=stop.dataset,
            stop_name=stop.name,
            lon=stop.lon,
            lat=stop.lat,
            isochrone_10min=polygon,
        )
        for stop, polygon in zip(stops, polygons)
    ]

"""Stop records and the all-stops JSON artifact.

One record per stop, namespaced as ``{dataset}_{feed}_{gtfs_stop_id}`` so
stops from several feeds and dataset years never collide::

    {"id": "2025_metro_1120", "original_id": "1120", "feed": "metro",
     "dataset": "2025", "name": "3rd Ave & Pike St", "lat": 47.61,
     "lon": -122.34, "code": null, "hourly_trips": {"0": 0, ..., "23": 2}}
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional

from transit_access.frequency_tools.stop_frequency import profile_from_mapping

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class Stop:
    """A stop with its weekday hourly trip profile."""

    stop_id: str
    original_id: str
    feed: str
    dataset: str
    name: str
    lat: float
    lon: float
    code: Optional[str] = None
    hourly_trips: Mapping[str, int] = field(default_factory=dict)
    is_future: bool = False
    route_name: Optional[str] = None
    description: Optional[str] = None


def composite_stop_id(dataset: str, feed: str, stop_id: str) -> str:
    """Namespace a GTFS stop id by dataset year and feed name."""
    return f"{dataset}_{feed}_{stop_id}"


def _as_float(value: Any) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(number) else number


def stop_to_record(stop: Stop) -> dict[str, Any]:
    record: dict[str, Any] = {
        "id": stop.stop_id,
        "original_id": stop.original_id,
        "feed": stop.feed,
        "dataset": stop.dataset,
        "name": stop.name,
        "lat": stop.lat,
        "lon": stop.lon,
        "code": stop.code,
        "hourly_trips": dict(stop.hourly_trips),
    }
    if stop.is_future:
        record["is_future"] = True
        record["route_name"] = stop.route_name
        record["description"] = stop.description
    return record


def stop_from_record(record: Mapping[str, Any]) -> Optional[Stop]:
    """Build a :class:`Stop` from a JSON record; ``None`` without an id or coordinates."""
    lat = _as_float(record.get("lat"))
    lon = _as_float(record.get("lon"))
    if lat is None or lon is None:
        LOGGER.debug("Skipping stop record %s without numeric coordinates.", record.get("id"))
        return None

    raw_id = record.get("id")
    if raw_id is None or not str(raw_id).strip():
        LOGGER.debug("Skipping stop record without an id: %s", record.get("name"))
        return None
    stop_id = str(raw_id).strip()
    hourly = record.get("hourly_trips")
    return Stop(
        stop_id=stop_id,
        original_id=str(record.get("original_id") or stop_id),
        feed=str(record.get("feed") or ""),
        dataset=str(record.get("dataset") or ""),
        name=str(record.get("name") or ""),
        lat=lat,
        lon=lon,
        code=record.get("code") or None,
        hourly_trips=profile_from_mapping(hourly) if hourly else {},
        is_future=bool(record.get("is_future", False)),
        route_name=record.get("route_name"),
        description=record.get("description"),
    )


def export_stops_json(stops: Iterable[Stop], output_path: Path) -> None:
    """Write stop records to *output_path* as a JSON array."""
    records = [stop_to_record(s) for s in stops]
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with output_path.open("w", encoding="utf-8") as fh:
        json.dump(records, fh, indent=2)
    LOGGER.info("Saved %d stops to %s", len(records), output_path)


def load_stops_json(input_path: Path) -> list[Stop]:
    """Read an all-stops JSON array written by :func:`export_stops_json`."""
    input_path = Path(input_path)
    if not input_path.is_file():
        raise FileNotFoundError(f"Stop file not found: {input_path}")
    with input_path.open(encoding="utf-8") as fh:
        records = json.load(fh)

    stops = [s for s in (stop_from_record(r) for r in records) if s is not None]
    LOGGER.info("Loaded %d stops from %s", len(stops), input_path)
    return stops

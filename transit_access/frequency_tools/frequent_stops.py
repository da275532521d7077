"""Frequent-service classification and planned (future) stops.

A stop offers frequent service when, for every hour from 6am through the
6pm hour (13 hourly buckets):

* at least 4 trips run in each hour (a 15-minute worst-case headway), and
* at least 77 trips run across the window.

77 approximates a 6-trips-per-hour average the way the external reference
methodology does; it is intentionally not 78.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Final, Iterable, Mapping, Optional

from transit_access.frequency_tools.stop_frequency import profile_from_mapping
from transit_access.frequency_tools.stop_records import Stop, stop_from_record

LOGGER = logging.getLogger(__name__)

# =============================================================================
# CONFIGURATION
# =============================================================================

FREQUENT_HOURS: Final[range] = range(6, 19)  # 6am-7pm, hours 6..18 inclusive
MIN_TRIPS_PER_HOUR: Final[int] = 4
MIN_TOTAL_TRIPS: Final[int] = 77

FUTURE_FEED_NAME: Final[str] = "future"

# =============================================================================
# FUNCTIONS
# =============================================================================


def _trips_at(hourly_trips: Mapping[str, int], hour: int) -> int:
    return int(hourly_trips.get(str(hour), 0) or 0)


def meets_minimum_hourly_frequency(
    hourly_trips: Optional[Mapping[object, object]],
    min_trips_per_hour: int = MIN_TRIPS_PER_HOUR,
) -> bool:
    """True when every hour in the window has *min_trips_per_hour* trips."""
    profile = profile_from_mapping(hourly_trips)
    for hour in FREQUENT_HOURS:
        if _trips_at(profile, hour) < min_trips_per_hour:
            return False
    return True


def is_frequent_stop(
    hourly_trips: Optional[Mapping[object, object]],
    min_trips_per_hour: int = MIN_TRIPS_PER_HOUR,
    min_total_trips: int = MIN_TOTAL_TRIPS,
) -> bool:
    """Apply the frequent-service test to one hourly profile."""
    if not hourly_trips:
        return False

    profile = profile_from_mapping(hourly_trips)
    total = 0
    for hour in FREQUENT_HOURS:
        trips = _trips_at(profile, hour)
        if trips < min_trips_per_hour:
            return False
        total += trips

    return total >= min_total_trips


def filter_frequent_stops(stops: Iterable[Stop]) -> list[Stop]:
    """Keep the stops that pass :func:`is_frequent_stop`, in input order."""
    stops = list(stops)
    frequent = [s for s in stops if is_frequent_stop(s.hourly_trips)]
    LOGGER.info("%d of %d stops meet the frequent-service criteria.", len(frequent), len(stops))
    return frequent


def load_future_stops(future_stops_path: Path, dataset: str) -> list[Stop]:
    """Load enabled planned stops that meet the per-hour minimum.

    The file holds ``{"stops": [{"id", "name", "lat", "lon", "route_name",
    "description", "enabled", "hourly_trips"}, ...]}``. Planned stops are
    only held to the per-hour rule, not the window total. A missing file
    means the dataset has no planned stops.
    """
    future_stops_path = Path(future_stops_path)
    if not future_stops_path.is_file():
        LOGGER.info("No future stops file found for %s (%s).", dataset, future_stops_path)
        return []

    with future_stops_path.open(encoding="utf-8") as fh:
        future_data = json.load(fh)

    raw_stops = future_data.get("stops", [])
    planned: list[Stop] = []
    for raw in raw_stops:
        if raw.get("enabled") is False:
            continue

        profile = profile_from_mapping(raw.get("hourly_trips") or {})
        if not meets_minimum_hourly_frequency(profile):
            short = next(h for h in FREQUENT_HOURS if _trips_at(profile, h) < MIN_TRIPS_PER_HOUR)
            LOGGER.warning(
                "Skipping future stop %s (%s) - only %d trips at hour %d.",
                raw.get("id"),
                raw.get("name"),
                _trips_at(profile, short),
                short,
            )
            continue

        stop = stop_from_record(
            {
                **raw,
                "original_id": raw.get("id"),
                "feed": FUTURE_FEED_NAME,
                "dataset": dataset,
                "hourly_trips": profile,
                "is_future": True,
            }
        )
        if stop is not None:
            planned.append(stop)

    LOGGER.info(
        "Found %d enabled future stops (from %d total).",
        len(planned),
        len(raw_stops),
    )
    return planned

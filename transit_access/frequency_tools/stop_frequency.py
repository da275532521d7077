"""Hourly trip-frequency profiles per stop.

Each stop is profiled per (route, direction) pattern first: distinct trips
per hour of the sampled weekday. The stop's profile is the element-wise
**maximum** across its patterns, so a stop served by two infrequent routes is
not credited with their sum. Routes that riders experience as one service
(interlined or renumbered pairs) can be merged into a single pattern through
``COMBINABLE_ROUTES``.
"""

from __future__ import annotations

import logging
from typing import Final, Iterable, Mapping, Optional, Sequence

import pandas as pd

LOGGER = logging.getLogger(__name__)

# =============================================================================
# CONFIGURATION
# =============================================================================

HOURS: Final[tuple[int, ...]] = tuple(range(24))

# Route pairs counted as one service for frequency purposes (routes 3 and 4).
COMBINABLE_ROUTES: Final[list[tuple[str, str]]] = [("100173", "100219")]

ROUTE_KEY_DELIMITER: Final[str] = "|"

# =============================================================================
# FUNCTIONS
# =============================================================================


def build_route_key_map(
    combinable_routes: Iterable[Sequence[str]],
    delimiter: str = ROUTE_KEY_DELIMITER,
) -> dict[str, str]:
    """Map each route in a combinable pair to the pair's shared key.

    >>> build_route_key_map([("B", "A")])
    {'B': 'A|B', 'A': 'A|B'}
    """
    mapping: dict[str, str] = {}
    for pair in combinable_routes:
        first, second = sorted(str(r) for r in pair)
        key = f"{first}{delimiter}{second}"
        mapping[str(pair[0])] = key
        mapping[str(pair[1])] = key
    return mapping


def parse_hour(time_str: object) -> Optional[int]:
    """Return the hour of day (0-23) for a GTFS ``HH:MM:SS`` value.

    Hours past midnight (``"25:10:00"``) wrap modulo 24. Blank or
    non-numeric values give ``None``.
    """
    if time_str is None or pd.isna(time_str):
        return None
    head = str(time_str).strip().split(":")[0].strip()
    if not head.isdigit():
        return None
    return int(head) % 24


def profile_from_mapping(hourly_trips: Optional[Mapping[object, object]]) -> dict[str, int]:
    """Normalize a sparse profile (int or str hour keys) to ``"0".."23"``."""
    profile = {str(h): 0 for h in HOURS}
    if not hourly_trips:
        return profile
    for hour, count in hourly_trips.items():
        key = str(int(hour) % 24) if str(hour).strip().isdigit() else None
        if key is None:
            continue
        try:
            profile[key] = max(0, int(count or 0))
        except (TypeError, ValueError):
            profile[key] = 0
    return profile


def _first_non_blank(primary: pd.Series, fallback: pd.Series) -> pd.Series:
    primary = primary.where(primary.fillna("").astype(str).str.strip() != "")
    return primary.fillna(fallback)


def calculate_stop_frequencies(
    stop_times: pd.DataFrame,
    trips: pd.DataFrame,
    active_service_ids: Iterable[str],
    combinable_routes: Iterable[Sequence[str]] = COMBINABLE_ROUTES,
) -> dict[str, dict[str, int]]:
    """Build an hourly trip profile for every stop with active service.

    Args:
        stop_times: ``stop_times.txt`` rows (``trip_id``, ``stop_id`` and at
            least one of ``arrival_time`` / ``departure_time``).
        trips: ``trips.txt`` rows (``trip_id``, ``route_id``,
            ``direction_id``, ``service_id``).
        active_service_ids: Service ids running on the sampled weekday.
        combinable_routes: Route-id pairs merged into one pattern.

    Returns:
        ``{stop_id: {"0": n, ..., "23": n}}``. Stops without active service
        are absent. An empty *active_service_ids* returns ``{}``.
    """
    active = {str(s) for s in active_service_ids}
    if not active:
        LOGGER.warning("No active weekday service IDs found; skipping frequency calculation.")
        return {}

    trip_cols = ["trip_id", "route_id", "direction_id", "service_id"]
    trip_info = trips.reindex(columns=trip_cols).copy()
    for col in trip_cols:
        trip_info[col] = trip_info[col].fillna("").astype(str).str.strip()
    trip_info = trip_info[trip_info["service_id"].isin(active)]
    trip_info = trip_info.drop_duplicates(subset="trip_id")

    st = stop_times.reindex(columns=["trip_id", "stop_id", "arrival_time", "departure_time"]).copy()
    st["trip_id"] = st["trip_id"].fillna("").astype(str).str.strip()
    st["stop_id"] = st["stop_id"].fillna("").astype(str).str.strip()

    merged = st.merge(trip_info[["trip_id", "route_id", "direction_id"]], on="trip_id", how="inner")
    if merged.empty:
        LOGGER.warning("No stop_times belong to trips on the active service IDs.")
        return {}

    merged["hour"] = _first_non_blank(merged["arrival_time"], merged["departure_time"]).map(
        parse_hour
    )
    dropped = int(merged["hour"].isna().sum())
    if dropped:
        LOGGER.debug("Dropped %d stop_times without a usable time.", dropped)
    merged = merged.dropna(subset=["hour"]).copy()
    if merged.empty:
        LOGGER.warning("No active stop_times carry a parsable arrival or departure time.")
        return {}
    merged["hour"] = merged["hour"].astype(int)

    route_keys = build_route_key_map(combinable_routes)
    merged["route_key"] = merged["route_id"].map(lambda r: route_keys.get(r, r))

    # A trip counts once per hour bucket of its (stop, route, direction) pattern
    pattern_counts = (
        merged.drop_duplicates(subset=["stop_id", "route_key", "direction_id", "hour", "trip_id"])
        .groupby(["stop_id", "route_key", "direction_id", "hour"])["trip_id"]
        .nunique()
    )

    stop_max = pattern_counts.groupby(level=["stop_id", "hour"]).max()
    table = stop_max.unstack("hour").reindex(columns=list(HOURS)).fillna(0).astype(int)

    frequencies = {
        str(stop_id): {str(h): int(row[h]) for h in HOURS} for stop_id, row in table.iterrows()
    }
    LOGGER.info("Calculated hourly frequencies for %d stops.", len(frequencies))
    return frequencies

"""Extract every stop of one or more GTFS feeds with weekday hourly profiles.

For each configured feed the script selects a representative weekday from
``calendar.txt``, counts trips per stop and hour, namespaces stop ids by
dataset year and feed name, and writes a single ``all_stops_<dataset>.json``
consumed by the walkshed coverage tool.

Scenario datasets (e.g. a future year) have no GTFS of their own: only their
planned stops are written, because the base dataset's stops already have
catchment records.

Typical inputs:
    - One unzipped GTFS folder per feed with stops.txt and, for profiles,
      stop_times.txt, trips.txt and calendar.txt.
    - Optional future_stops_<dataset>.json for scenario datasets.

Outputs:
    - all_stops_<dataset>.json
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Final, Iterable, Sequence

import pandas as pd

from transit_access.frequency_tools.frequent_stops import load_future_stops
from transit_access.frequency_tools.service_calendar import select_representative_weekday
from transit_access.frequency_tools.stop_frequency import (
    COMBINABLE_ROUTES,
    calculate_stop_frequencies,
)
from transit_access.frequency_tools.stop_records import (
    Stop,
    composite_stop_id,
    export_stops_json,
)
from transit_access.utils.gtfs_helpers import load_gtfs_data, missing_gtfs_files
from transit_access.utils.logging_helper import setup_logging

LOGGER = logging.getLogger(__name__)

# =============================================================================
# CONFIGURATION
# =============================================================================

BASE_DATA_DIR = Path(r"Path\To\base_data")

# dataset -> [(gtfs_folder relative to BASE_DATA_DIR, feed_name), ...]
GTFS_FEEDS: dict[str, list[tuple[str, str]]] = {
    "2020": [("2020/feb_2020_metro_gtfs", "metro")],
    "2025": [
        ("2025/dec_2025_metro_gtfs", "metro"),
        ("2025/dec_2025_soundtransit_gtfs", "soundtransit"),
    ],
}

# Scenario datasets: only planned stops are extracted for these.
SCENARIO_DATASETS: Final[tuple[str, ...]] = ("2027",)

DATASET = "2025"

PROFILE_GTFS_FILES: Final[tuple[str, ...]] = ("stop_times.txt", "trips.txt", "calendar.txt")

# =============================================================================
# FUNCTIONS
# =============================================================================


def _stops_from_table(
    stops_df: pd.DataFrame,
    feed_name: str,
    dataset: str,
    frequencies: dict[str, dict[str, int]],
) -> list[Stop]:
    """Turn stops.txt rows into :class:`Stop` objects, dropping bad coordinates."""
    missing_cols = [c for c in ("stop_id", "stop_lat", "stop_lon") if c not in stops_df.columns]
    if missing_cols:
        raise KeyError(f"stops.txt is missing required column(s): {', '.join(missing_cols)}")

    table = stops_df.copy()
    table["stop_id"] = table["stop_id"].fillna("").astype(str).str.strip()
    table["lat"] = pd.to_numeric(table["stop_lat"], errors="coerce")
    table["lon"] = pd.to_numeric(table["stop_lon"], errors="coerce")

    bad = table["lat"].isna() | table["lon"].isna()
    if bad.any():
        LOGGER.warning("Dropping %d stops with non-numeric coordinates.", int(bad.sum()))
    table = table[~bad]

    has_code = "stop_code" in table.columns
    stops: list[Stop] = []
    for row in table.itertuples(index=False):
        code = getattr(row, "stop_code", None) if has_code else None
        stops.append(
            Stop(
                stop_id=composite_stop_id(dataset, feed_name, row.stop_id),
                original_id=row.stop_id,
                feed=feed_name,
                dataset=dataset,
                name="" if pd.isna(getattr(row, "stop_name", None)) else str(row.stop_name),
                lat=float(row.lat),
                lon=float(row.lon),
                code=None if code is None or pd.isna(code) or not str(code).strip() else str(code),
                hourly_trips=frequencies.get(row.stop_id, {}),
            )
        )
    return stops


def extract_feed_stops(
    gtfs_folder: Path,
    feed_name: str,
    dataset: str,
    combinable_routes: Iterable[Sequence[str]] = COMBINABLE_ROUTES,
) -> list[Stop]:
    """Extract all stops of one GTFS feed with their hourly trip profiles.

    Args:
        gtfs_folder: Unzipped GTFS directory.
        feed_name: Short feed name used in composite ids (``"metro"``).
        dataset: Dataset year used in composite ids (``"2025"``).
        combinable_routes: Route-id pairs counted as one service.

    Returns:
        Stops with profiles. When the tables needed for profiles are missing
        the stops are returned without ``hourly_trips``.

    Raises:
        OSError: The folder or ``stops.txt`` is missing.
    """
    LOGGER.info("Processing %s (feed: %s)", gtfs_folder, feed_name)
    stops_df = load_gtfs_data(str(gtfs_folder), files=("stops.txt",))["stops"]

    missing = missing_gtfs_files(str(gtfs_folder), PROFILE_GTFS_FILES)
    if missing:
        LOGGER.warning(
            "Missing %s in %s; returning stops without frequencies.",
            ", ".join(missing),
            gtfs_folder,
        )
        return _stops_from_table(stops_df, feed_name, dataset, {})

    gtfs = load_gtfs_data(str(gtfs_folder), files=PROFILE_GTFS_FILES)
    selection = select_representative_weekday(gtfs["calendar"])
    frequencies = calculate_stop_frequencies(
        gtfs["stop_times"],
        gtfs["trips"],
        selection.service_ids,
        combinable_routes=combinable_routes,
    )
    return _stops_from_table(stops_df, feed_name, dataset, frequencies)


def merge_feed_stops(stop_lists: Iterable[Iterable[Stop]]) -> list[Stop]:
    """Concatenate per-feed stops and sort by composite id.

    Composite ids are unique across feeds, so no de-duplication is needed.
    """
    merged = [stop for stops in stop_lists for stop in stops]
    merged.sort(key=lambda s: s.stop_id)
    return merged


def extract_dataset_stops(
    dataset: str,
    feeds: Sequence[tuple[Path, str]],
    future_stops_path: Path | None = None,
    scenario: bool = False,
) -> list[Stop]:
    """Extract and merge every feed of *dataset*.

    For a scenario dataset only the planned stops in *future_stops_path* are
    returned.

    Raises:
        ValueError: A scenario dataset has no enabled planned stops.
    """
    if scenario:
        LOGGER.info("Extracting only planned stops for scenario dataset %s.", dataset)
        future = load_future_stops(future_stops_path, dataset) if future_stops_path else []
        if not future:
            raise ValueError(f"No future stops found for scenario dataset {dataset}.")
        return merge_feed_stops([future])

    stop_lists: list[list[Stop]] = []
    for gtfs_folder, feed_name in feeds:
        if not Path(gtfs_folder).exists():
            LOGGER.error("GTFS folder not found: %s", gtfs_folder)
            continue
        stop_lists.append(extract_feed_stops(Path(gtfs_folder), feed_name, dataset))

    merged = merge_feed_stops(stop_lists)
    LOGGER.info("Total unique stops: %d", len(merged))
    return merged


# =============================================================================
# MAIN
# =============================================================================


def parse_args(argv: Sequence[str] | None = None) -> tuple[argparse.Namespace, list[str]]:
    """Parse CLI args and return (args, unknown_args)."""
    parser = argparse.ArgumentParser(description="Extract GTFS stops with hourly frequencies.")
    parser.add_argument("--dataset", default=DATASET, help="Dataset year to extract")
    parser.add_argument(
        "--base-data", type=Path, default=BASE_DATA_DIR, help="Folder holding base data"
    )
    parser.add_argument("--log-level", default="INFO", help="Logging level name")
    args, unknown = parser.parse_known_args(list(argv) if argv is not None else None)
    return args, unknown


def main(argv: Sequence[str] | None = None) -> None:
    """CLI entry point (notebook-safe)."""
    args, _unknown = parse_args(argv)
    setup_logging(args.log_level)
    dataset = str(args.dataset)
    base_data: Path = args.base_data

    try:
        stops = extract_dataset_stops(
            dataset,
            [(base_data / folder, feed) for folder, feed in GTFS_FEEDS.get(dataset, [])],
            future_stops_path=base_data / "future_stops" / f"future_stops_{dataset}.json",
            scenario=dataset in SCENARIO_DATASETS,
        )
        export_stops_json(stops, base_data / f"all_stops_{dataset}.json")
    except Exception as exc:
        LOGGER.error("Stop extraction terminated due to an error: %s", exc, exc_info=True)
        raise


if __name__ == "__main__":  # pragma: no cover
    main()

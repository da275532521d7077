"""Pick one representative weekday of service from ``calendar.txt``.

Frequency profiles describe a single typical weekday. The feed's newest
weekday schedule revision is taken to be the weekday entry with the latest
``start_date``; the first Wednesday on or after that date is the sample day
(Mondays and Fridays carry the most schedule anomalies). Every weekday
service whose date range covers that Wednesday is selected.

An empty selection is a normal outcome meaning "no frequency data available";
callers get ``ServiceDaySelection.service_date is None`` instead of an error.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Final, Optional

import pandas as pd

LOGGER = logging.getLogger(__name__)

# =============================================================================
# CONFIGURATION
# =============================================================================

WEEKDAY_COLUMNS: Final[tuple[str, ...]] = ("monday", "tuesday", "wednesday", "thursday", "friday")
SAMPLE_WEEKDAY: Final[int] = 2  # date.weekday(): Monday=0 ... Wednesday=2
OPEN_START_DATE: Final[str] = "0"
OPEN_END_DATE: Final[str] = "99999999"
GTFS_DATE_FORMAT: Final[str] = "%Y%m%d"

# =============================================================================
# FUNCTIONS
# =============================================================================


@dataclass(frozen=True)
class ServiceDaySelection:
    """Service ids active on the sampled weekday."""

    service_date: Optional[date]
    service_ids: frozenset[str] = field(default_factory=frozenset)

    @property
    def is_empty(self) -> bool:
        return not self.service_ids

    @property
    def service_date_str(self) -> Optional[str]:
        if self.service_date is None:
            return None
        return self.service_date.strftime(GTFS_DATE_FORMAT)


NO_SERVICE = ServiceDaySelection(service_date=None)


def first_wednesday_on_or_after(start: date) -> date:
    """Return *start* itself when it is a Wednesday, else the next one."""
    offset = (SAMPLE_WEEKDAY - start.weekday()) % 7
    return start + timedelta(days=offset)


def _clean_str(series: pd.Series) -> pd.Series:
    return series.fillna("").astype(str).str.strip()


def weekday_service_entries(calendar_df: pd.DataFrame) -> pd.DataFrame:
    """Return calendar rows flagged active Monday through Friday."""
    missing = [col for col in ("service_id", *WEEKDAY_COLUMNS) if col not in calendar_df.columns]
    if missing:
        raise KeyError(f"calendar is missing required column(s): {', '.join(missing)}")

    mask = pd.Series(True, index=calendar_df.index)
    for col in WEEKDAY_COLUMNS:
        mask &= _clean_str(calendar_df[col]) == "1"
    return calendar_df[mask]


def select_representative_weekday(calendar_df: pd.DataFrame) -> ServiceDaySelection:
    """Select the service ids running on one representative Wednesday.

    Args:
        calendar_df: Raw ``calendar.txt`` contents (string columns preferred).

    Returns:
        The sampled Wednesday and the ids of every weekday service whose
        inclusive ``[start_date, end_date]`` range contains it. A blank
        ``start_date`` / ``end_date`` is treated as open-ended. When no
        weekday service or no usable start date exists, :data:`NO_SERVICE`.
    """
    weekday = weekday_service_entries(calendar_df)
    if weekday.empty:
        LOGGER.error("No weekday services found in calendar.")
        return NO_SERVICE

    starts = _clean_str(weekday.get("start_date", pd.Series("", index=weekday.index)))
    ends = _clean_str(weekday.get("end_date", pd.Series("", index=weekday.index)))

    present_starts = sorted(s for s in starts if s)
    if not present_starts:
        LOGGER.error("No start dates found in calendar.")
        return NO_SERVICE

    # GTFS dates are zero-padded YYYYMMDD, so string order is date order
    latest_start = present_starts[-1]
    try:
        start_day = datetime.strptime(latest_start, GTFS_DATE_FORMAT).date()
    except ValueError:
        LOGGER.error("Latest calendar start_date %r is not a YYYYMMDD date.", latest_start)
        return NO_SERVICE

    wednesday = first_wednesday_on_or_after(start_day)
    wednesday_str = wednesday.strftime(GTFS_DATE_FORMAT)

    range_start = starts.where(starts != "", OPEN_START_DATE)
    range_end = ends.where(ends != "", OPEN_END_DATE)
    active = (range_start <= wednesday_str) & (wednesday_str <= range_end)

    service_ids = frozenset(_clean_str(weekday.loc[active, "service_id"]))
    LOGGER.info(
        "Found %d active weekday service(s) for %s.",
        len(service_ids),
        wednesday_str,
    )
    return ServiceDaySelection(service_date=wednesday, service_ids=service_ids)

"""Shared GTFS table loading for the frequency and coverage tools."""

from __future__ import annotations

import logging
import os
from typing import Mapping, Optional, Sequence, Union

import pandas as pd

LOGGER = logging.getLogger(__name__)

# Tables the frequency pipeline reads; stops.txt is the only hard requirement.
FREQUENCY_GTFS_FILES: tuple[str, ...] = (
    "stops.txt",
    "stop_times.txt",
    "trips.txt",
    "calendar.txt",
)


def missing_gtfs_files(gtfs_folder_path: str, files: Sequence[str]) -> list[str]:
    """Return the names in *files* that do not exist in *gtfs_folder_path*."""
    return [
        file_name
        for file_name in files
        if not os.path.exists(os.path.join(gtfs_folder_path, file_name))
    ]


def load_gtfs_data(
    gtfs_folder_path: str,
    files: Optional[Sequence[str]] = None,
    dtype: Union[type, str, Mapping[str, str]] = str,
) -> dict[str, pd.DataFrame]:
    """Load GTFS text files from *gtfs_folder_path*.

    The function validates the presence of each requested file, reads it
    into a :class:`pandas.DataFrame`, and returns a dictionary keyed by file
    stem.

    Args:
        gtfs_folder_path: Directory that contains GTFS text files.
        files: Specific GTFS file names to load. If *None*,
            :data:`FREQUENCY_GTFS_FILES` is used.
        dtype: Either a single pandas dtype applied to every column or a
            mapping of column names to dtypes passed verbatim to
            :func:`pandas.read_csv`. The default keeps ids such as ``"001"``
            intact.

    Returns:
        A dictionary whose keys are file stems (e.g. ``"trips"``) and whose
        values are DataFrames with the raw GTFS contents.

    Raises:
        OSError: *gtfs_folder_path* does not exist or one or more files are
            missing.
        ValueError: A file is empty or cannot be parsed.
        RuntimeError: An :pyexc:`OSError` occurs while reading a file.
    """
    if not os.path.exists(gtfs_folder_path):
        raise OSError(f"The directory '{gtfs_folder_path}' does not exist.")

    if files is None:
        files = FREQUENCY_GTFS_FILES

    missing = missing_gtfs_files(gtfs_folder_path, files)
    if missing:
        raise OSError(f"Missing GTFS files in '{gtfs_folder_path}': {', '.join(missing)}")

    data: dict[str, pd.DataFrame] = {}
    for file_name in files:
        key = file_name.replace(".txt", "")
        file_path = os.path.join(gtfs_folder_path, file_name)
        try:
            df = pd.read_csv(file_path, dtype=dtype, low_memory=False)
        except pd.errors.EmptyDataError as exc:
            raise ValueError(f"File '{file_name}' in '{gtfs_folder_path}' is empty.") from exc
        except pd.errors.ParserError as exc:
            raise ValueError(
                f"Parser error in '{file_name}' in '{gtfs_folder_path}': {exc}"
            ) from exc
        except OSError as exc:
            raise RuntimeError(
                f"OS error reading file '{file_name}' in '{gtfs_folder_path}': {exc}"
            ) from exc

        # Some exporters pad headers with spaces
        df.columns = [str(c).strip() for c in df.columns]
        data[key] = df
        LOGGER.info("Loaded %s (%d records).", file_name, len(df))

    return data

"""Root logging setup shared by the frequency and coverage entry points."""

from __future__ import annotations

import logging
import sys
from typing import Iterable, Union

LOG_FORMAT = "%(levelname)s | %(asctime)s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# GeoJSON readers log per-file driver chatter at INFO
NOISY_LOGGERS: tuple[str, ...] = ("pyogrio", "fiona", "urllib3")


def setup_logging(
    level: Union[int, str] = logging.INFO,
    quiet_loggers: Iterable[str] = NOISY_LOGGERS,
) -> int:
    """Configure root logging for a script run and return the numeric level.

    Args:
        level: A ``logging`` level or its name (``"DEBUG"``, ``"info"``).
        quiet_loggers: Third-party loggers held at WARNING regardless of
            *level*.

    Raises:
        ValueError: *level* is not a known level name.
    """
    if isinstance(level, str):
        numeric = logging.getLevelName(level.strip().upper())
        if not isinstance(numeric, int):
            raise ValueError(f"Unknown log level: {level!r}")
        level = numeric

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    logging.getLogger().setLevel(level)
    for name in quiet_loggers:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
    return level

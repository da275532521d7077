"""Estimate the population living inside the merged coverage area.

Census blocks are credited by areal proportion: a block half inside the
coverage area contributes half its population. This assumes people are
spread evenly across each block, which they are not (they live in buildings,
not parking lots), so results are an approximation.

If a block's intersection cannot be computed even though the blocks
overlap, the full population is credited; pathological geometries bias the
total upwards rather than dropping people.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Final, Iterable, Optional

import geopandas as gpd
import pandas as pd

from transit_access.service_coverage_geotools.geometry_ops import (
    GeometryOperationError,
    GeometryOps,
    PolygonLike,
)

LOGGER = logging.getLogger(__name__)

# =============================================================================
# CONFIGURATION
# =============================================================================

PLACE_FIELD: Final[str] = "Place"
TARGET_PLACE: Final[str] = "Seattle"
POPULATION_FIELD: Final[str] = "TOT_POP"
UNIT_ID_FIELD: Final[str] = "GEOID20"

REFERENCE_POPULATION: Final[int] = 737_015  # Seattle, 2020 Census

# =============================================================================
# FUNCTIONS
# =============================================================================


@dataclass(frozen=True)
class PopulationUnit:
    """An areal census unit with its population."""

    unit_id: str
    geometry: PolygonLike
    population: int
    place: Optional[str] = None


@dataclass(frozen=True)
class PopulationResult:
    """Population apportioned onto a coverage area."""

    population: float
    unit_count: int
    reference_population: int
    percent: float


def select_population_units(
    blocks_gdf: gpd.GeoDataFrame,
    place: Optional[str] = TARGET_PLACE,
    place_field: str = PLACE_FIELD,
    population_field: str = POPULATION_FIELD,
    id_field: str = UNIT_ID_FIELD,
) -> list[PopulationUnit]:
    """Keep populated blocks inside *place* and wrap them as units.

    Non-numeric populations count as 0 and are dropped, as are blocks with no
    geometry. ``place=None`` skips the place filter.
    """
    if population_field not in blocks_gdf.columns:
        raise KeyError(f"Population layer is missing required column: '{population_field}'")

    population = (
        pd.to_numeric(blocks_gdf[population_field], errors="coerce").fillna(0).astype(int)
    )
    mask = population >= 1
    if place is not None:
        if place_field not in blocks_gdf.columns:
            raise KeyError(f"Population layer is missing required column: '{place_field}'")
        mask &= blocks_gdf[place_field].astype(str) == place
    mask &= blocks_gdf.geometry.notna() & ~blocks_gdf.geometry.is_empty

    selected = blocks_gdf[mask]
    has_id = id_field in selected.columns
    geom_col = selected.geometry.name
    units = [
        PopulationUnit(
            unit_id=str(row[id_field]) if has_id else str(idx),
            geometry=row[geom_col],
            population=int(population.loc[idx]),
            place=place,
        )
        for idx, row in selected.iterrows()
    ]
    LOGGER.info(
        "Selected %d populated units (from %d features) for %s.",
        len(units),
        len(blocks_gdf),
        place or "all places",
    )
    return units


def _unit_share(unit: PopulationUnit, coverage: PolygonLike, ops: GeometryOps) -> Optional[float]:
    """Population credited for one unit; ``None`` when it does not overlap."""
    if not ops.intersects(unit.geometry, coverage):
        return None
    if ops.within(unit.geometry, coverage):
        return float(unit.population)

    try:
        intersection = ops.intersect(unit.geometry, coverage)
    except GeometryOperationError as exc:
        LOGGER.debug("Intersection failed for unit %s, crediting all: %s", unit.unit_id, exc)
        intersection = None
    if intersection is None:
        return float(unit.population)

    unit_area = ops.area(unit.geometry)
    if unit_area <= 0:
        return 0.0
    ratio = min(1.0, ops.area(intersection) / unit_area)
    return unit.population * ratio


def apportion_population(
    coverage: Optional[PolygonLike],
    units: Iterable[PopulationUnit],
    ops: GeometryOps,
    reference_population: int = REFERENCE_POPULATION,
) -> PopulationResult:
    """Sum population inside *coverage* by proportional area allocation.

    Args:
        coverage: Merged coverage polygon; ``None`` gives a zero result.
        units: Non-overlapping populated units, already filtered to the
            target region.
        ops: Polygon primitives (see :mod:`geometry_ops`).
        reference_population: Total the percentage is reported against.

    Returns:
        Total apportioned population, contributing unit count and percent of
        *reference_population*.
    """
    total = 0.0
    contributing = 0

    if coverage is not None:
        for unit in units:
            try:
                share = _unit_share(unit, coverage, ops)
            except GeometryOperationError as exc:
                LOGGER.debug("Skipping unit %s due to geometry error: %s", unit.unit_id, exc)
                continue
            if share is None:
                continue
            total += share
            contributing += 1

    percent = total / reference_population * 100 if reference_population > 0 else 0.0
    LOGGER.info(
        "Population in coverage: %s (%.1f%% of %s) from %d units.",
        f"{round(total):,}",
        percent,
        f"{reference_population:,}",
        contributing,
    )
    return PopulationResult(
        population=total,
        unit_count=contributing,
        reference_population=reference_population,
        percent=percent,
    )

"""Merge stop catchments into one coverage area and measure it.

The union of all catchments is clipped to a reference region (city limits).
The region is simplified before clipping to keep the overlay affordable, but
the union itself is never simplified, and the coverage ratio divides by the
area of the *unsimplified* region.

Geometry failures degrade instead of aborting:

* a union that fails for one catchment skips that catchment;
* a failed or empty intersection reports 0% with the whole union out of
  region;
* a failure anywhere else in clipping measures the unclipped union against
  ``FALLBACK_REFERENCE_AREA_M2``, the same as having no region at all.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Final, Optional, Sequence

from transit_access.service_coverage_geotools.geometry_ops import (
    GeometryOperationError,
    GeometryOps,
    PolygonLike,
)

LOGGER = logging.getLogger(__name__)

# =============================================================================
# CONFIGURATION
# =============================================================================

FALLBACK_REFERENCE_AREA_M2: Final[float] = 217_000_000.0  # Seattle land area
BOUNDARY_SIMPLIFY_TOLERANCE: Final[float] = 0.001  # degrees, roughly 100 m
COVERAGE_DISPLAY_CAP: Final[float] = 100.0

# =============================================================================
# FUNCTIONS
# =============================================================================


@dataclass(frozen=True)
class CoverageResult:
    """Merged catchment coverage, clipped to a region when one was supplied."""

    merged_polygon: Optional[PolygonLike]
    out_of_region_polygon: Optional[PolygonLike]
    coverage_percent: float
    reference_area: float
    clipped: bool = False

    @property
    def display_percent(self) -> str:
        return format_coverage_percent(self.coverage_percent)


def format_coverage_percent(value: float) -> str:
    """Render one decimal, capping anything above 100 as ``"100+"``."""
    rounded = round(value, 1)
    if rounded > COVERAGE_DISPLAY_CAP:
        return "100+"
    return f"{rounded:.1f}"


def union_catchments(catchments: Sequence[PolygonLike], ops: GeometryOps) -> PolygonLike:
    """Pairwise-union *catchments*, skipping any pair whose union fails."""
    union = catchments[0]
    skipped = 0
    for catchment in catchments[1:]:
        try:
            union = ops.union(union, catchment)
        except GeometryOperationError as exc:
            skipped += 1
            LOGGER.warning("Skipping a catchment whose union failed: %s", exc)
    if skipped:
        LOGGER.warning("%d of %d catchments were left out of the union.", skipped, len(catchments))
    return union


def _unclipped_result(
    union: PolygonLike,
    ops: GeometryOps,
    fallback_reference_area: float,
) -> CoverageResult:
    area = ops.area(union)
    return CoverageResult(
        merged_polygon=union,
        out_of_region_polygon=None,
        coverage_percent=area / fallback_reference_area * 100,
        reference_area=fallback_reference_area,
        clipped=False,
    )


def _clip_to_region(
    union: PolygonLike,
    region: PolygonLike,
    ops: GeometryOps,
    simplify_tolerance: float,
) -> CoverageResult:
    region_area = ops.area(region)
    if region_area <= 0:
        raise GeometryOperationError("reference region has no area")
    simplified = ops.simplify(region, simplify_tolerance)

    clipped: Optional[PolygonLike] = None
    try:
        clipped = ops.intersect(union, simplified)
    except GeometryOperationError as exc:
        LOGGER.error("Intersection with the reference region failed: %s", exc)

    out_of_region: Optional[PolygonLike] = None
    try:
        out_of_region = ops.difference(union, simplified)
    except GeometryOperationError as exc:
        LOGGER.error("Difference with the reference region failed: %s", exc)

    if clipped is None:
        LOGGER.info("No intersection found - all catchments fall outside the region.")
        return CoverageResult(
            merged_polygon=None,
            out_of_region_polygon=union,
            coverage_percent=0.0,
            reference_area=region_area,
            clipped=True,
        )

    return CoverageResult(
        merged_polygon=clipped,
        out_of_region_polygon=out_of_region,
        coverage_percent=ops.area(clipped) / region_area * 100,
        reference_area=region_area,
        clipped=True,
    )


def merge_coverage(
    catchments: Sequence[PolygonLike],
    ops: GeometryOps,
    region: Optional[PolygonLike] = None,
    fallback_reference_area: float = FALLBACK_REFERENCE_AREA_M2,
    simplify_tolerance: float = BOUNDARY_SIMPLIFY_TOLERANCE,
) -> CoverageResult:
    """Union *catchments*, clip to *region*, and compute the coverage ratio.

    Args:
        catchments: Catchment polygons in the same CRS as *region*.
        ops: Polygon primitives (see :mod:`geometry_ops`).
        region: Reference region; ``None`` measures against
            *fallback_reference_area* without clipping.
        fallback_reference_area: Region area used when clipping is
            unavailable, in the units ``ops.area`` returns.
        simplify_tolerance: Simplification applied to *region* only.

    Returns:
        A :class:`CoverageResult`; ``coverage_percent`` is not capped.
    """
    if not catchments:
        return CoverageResult(None, None, 0.0, fallback_reference_area, clipped=False)

    union = union_catchments(catchments, ops)

    if region is None:
        LOGGER.info("No reference region supplied; measuring the unclipped union.")
        return _unclipped_result(union, ops, fallback_reference_area)

    try:
        return _clip_to_region(union, region, ops, simplify_tolerance)
    except GeometryOperationError as exc:
        LOGGER.error("Clipping to the reference region failed, using full union: %s", exc)
        return _unclipped_result(union, ops, fallback_reference_area)

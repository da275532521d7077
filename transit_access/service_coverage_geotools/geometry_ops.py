"""Polygon primitives used by the walkshed coverage tools.

The coverage and population steps never touch Shapely directly; they receive
an object that satisfies :class:`GeometryOps`. Two implementations ship here:

* :class:`GeodesicGeometryOps` for lon/lat (EPSG:4326) geometry, measuring
  areas and drawing circles on the WGS84 ellipsoid with :mod:`pyproj`.
* :class:`PlanarGeometryOps` for projected geometry (or unit-square test
  fixtures), where areas and buffers are plain Cartesian values.

Every primitive raises :class:`GeometryOperationError` on failure, and
``intersect`` / ``difference`` return ``None`` for an empty result.
"""

from __future__ import annotations

import logging
import math
from typing import Optional, Protocol, Union

from pyproj import Geod
from shapely.errors import GEOSException
from shapely.geometry import MultiPolygon, Point, Polygon
from shapely.geometry.base import BaseGeometry

LOGGER = logging.getLogger(__name__)

PolygonLike = Union[Polygon, MultiPolygon]

WGS84_GEOD = Geod(ellps="WGS84")


class GeometryOperationError(RuntimeError):
    """A polygon primitive failed on the supplied geometry."""


class GeometryOps(Protocol):
    """Capability interface for the polygon operations the engine needs."""

    def union(self, a: PolygonLike, b: PolygonLike) -> PolygonLike: ...

    def intersect(self, a: PolygonLike, b: PolygonLike) -> Optional[PolygonLike]: ...

    def difference(self, a: PolygonLike, b: PolygonLike) -> Optional[PolygonLike]: ...

    def area(self, geom: PolygonLike) -> float: ...

    def within(self, inner: PolygonLike, outer: PolygonLike) -> bool: ...

    def intersects(self, a: PolygonLike, b: PolygonLike) -> bool: ...

    def circle_buffer(self, lon: float, lat: float, radius: float, steps: int) -> Polygon: ...

    def simplify(self, geom: PolygonLike, tolerance: float) -> PolygonLike: ...


def _polygonal(geom: BaseGeometry) -> Optional[PolygonLike]:
    """Keep only the areal part of *geom*; ``None`` when nothing areal remains."""
    if geom is None or geom.is_empty:
        return None
    if isinstance(geom, (Polygon, MultiPolygon)):
        return geom
    # GeometryCollection from a touching-edge overlay
    polys: list[Polygon] = []
    for part in getattr(geom, "geoms", []):
        if isinstance(part, Polygon) and not part.is_empty:
            polys.append(part)
        elif isinstance(part, MultiPolygon):
            polys.extend(p for p in part.geoms if not p.is_empty)
    if not polys:
        return None
    return polys[0] if len(polys) == 1 else MultiPolygon(polys)


class _ShapelyOverlayOps:
    """Set operations and predicates shared by both implementations."""

    def union(self, a: PolygonLike, b: PolygonLike) -> PolygonLike:
        try:
            result = _polygonal(a.union(b))
        except GEOSException as exc:
            raise GeometryOperationError(f"union failed: {exc}") from exc
        if result is None:
            raise GeometryOperationError("union produced no areal geometry")
        return result

    def intersect(self, a: PolygonLike, b: PolygonLike) -> Optional[PolygonLike]:
        try:
            return _polygonal(a.intersection(b))
        except GEOSException as exc:
            raise GeometryOperationError(f"intersection failed: {exc}") from exc

    def difference(self, a: PolygonLike, b: PolygonLike) -> Optional[PolygonLike]:
        try:
            return _polygonal(a.difference(b))
        except GEOSException as exc:
            raise GeometryOperationError(f"difference failed: {exc}") from exc

    def within(self, inner: PolygonLike, outer: PolygonLike) -> bool:
        try:
            return bool(inner.within(outer))
        except GEOSException as exc:
            raise GeometryOperationError(f"within test failed: {exc}") from exc

    def intersects(self, a: PolygonLike, b: PolygonLike) -> bool:
        try:
            return bool(a.intersects(b))
        except GEOSException as exc:
            raise GeometryOperationError(f"intersects test failed: {exc}") from exc

    def simplify(self, geom: PolygonLike, tolerance: float) -> PolygonLike:
        try:
            simplified = _polygonal(geom.simplify(tolerance, preserve_topology=True))
        except GEOSException as exc:
            raise GeometryOperationError(f"simplify failed: {exc}") from exc
        if simplified is None:
            raise GeometryOperationError(f"simplify at tolerance {tolerance} collapsed the geometry")
        return simplified


class GeodesicGeometryOps(_ShapelyOverlayOps):
    """Lon/lat geometry; areas in square metres, radii in metres."""

    def __init__(self, geod: Geod = WGS84_GEOD) -> None:
        self.geod = geod

    def area(self, geom: PolygonLike) -> float:
        try:
            signed_area, _perimeter = self.geod.geometry_area_perimeter(geom)
        except (GEOSException, ValueError) as exc:
            raise GeometryOperationError(f"area failed: {exc}") from exc
        return abs(signed_area)

    def circle_buffer(self, lon: float, lat: float, radius: float, steps: int) -> Polygon:
        """Approximate a geodesic circle with *steps* vertices."""
        if steps < 3:
            raise ValueError("A circle needs at least 3 vertices.")
        azimuths = [i * 360.0 / steps for i in range(steps)]
        lons, lats, _back = self.geod.fwd(
            [lon] * steps, [lat] * steps, azimuths, [radius] * steps
        )
        # fwd() walks clockwise from north; reverse for a counter-clockwise shell
        return Polygon(list(zip(lons, lats))[::-1])


class PlanarGeometryOps(_ShapelyOverlayOps):
    """Projected (Cartesian) geometry; areas and radii in CRS units."""

    def area(self, geom: PolygonLike) -> float:
        try:
            return float(geom.area)
        except GEOSException as exc:
            raise GeometryOperationError(f"area failed: {exc}") from exc

    def circle_buffer(self, lon: float, lat: float, radius: float, steps: int) -> Polygon:
        if steps < 4:
            raise ValueError("A planar circle needs at least 4 vertices.")
        # Shapely counts segments per quarter circle
        return Point(lon, lat).buffer(radius, quad_segs=max(1, math.ceil(steps / 4)))

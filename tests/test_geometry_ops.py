from __future__ import annotations

import math

import pytest
from shapely.geometry import MultiPolygon, box

from transit_access.service_coverage_geotools.geometry_ops import GeodesicGeometryOps, PlanarGeometryOps


@pytest.fixture
def planar() -> PlanarGeometryOps:
    return PlanarGeometryOps()


def test_planar_overlay_basics(planar) -> None:
    a, b = box(0, 0, 2, 2), box(1, 1, 3, 3)
    assert planar.area(planar.union(a, b)) == pytest.approx(7.0)
    assert planar.area(planar.intersect(a, b)) == pytest.approx(1.0)
    assert planar.area(planar.difference(a, b)) == pytest.approx(3.0)
    assert planar.intersects(a, b) is True
    assert planar.within(box(0.5, 0.5, 1, 1), a) is True
    assert planar.within(b, a) is False


def test_empty_overlays_are_none(planar) -> None:
    """Disjoint or edge-touching overlays carry no area."""
    a = box(0, 0, 1, 1)
    assert planar.intersect(a, box(5, 5, 6, 6)) is None
    assert planar.intersect(a, box(1, 0, 2, 1)) is None
    assert planar.difference(a, box(-1, -1, 2, 2)) is None


def test_union_of_disjoint_parts_is_multipolygon(planar) -> None:
    merged = planar.union(box(0, 0, 1, 1), box(5, 5, 6, 6))
    assert isinstance(merged, MultiPolygon)
    assert planar.area(merged) == pytest.approx(2.0)


def test_simplify_keeps_a_polygon(planar) -> None:
    wobbly = box(0, 0, 10, 10).union(box(4.9999, 9.9999, 5.0001, 10.0001))
    simplified = planar.simplify(wobbly, 0.01)
    assert planar.area(simplified) == pytest.approx(100.0, rel=1e-3)


def test_planar_circle_buffer(planar) -> None:
    circle = planar.circle_buffer(0.0, 0.0, 10.0, 32)
    assert planar.area(circle) == pytest.approx(math.pi * 100, rel=0.01)
    with pytest.raises(ValueError):
        planar.circle_buffer(0.0, 0.0, 10.0, 2)


def test_geodesic_area_of_small_equatorial_square() -> None:
    """0.01° × 0.01° at the equator is about 1113 m × 1106 m."""
    ops = GeodesicGeometryOps()
    assert ops.area(box(0.0, 0.0, 0.01, 0.01)) == pytest.approx(1.2309e6, rel=0.01)


def test_geodesic_circle_buffer_vertices_and_area() -> None:
    ops = GeodesicGeometryOps()
    radius = 804.672
    circle = ops.circle_buffer(-122.33, 47.61, radius, 32)

    assert circle.is_valid
    assert circle.exterior.is_ccw
    assert len(set(circle.exterior.coords)) == 32
    assert ops.area(circle) == pytest.approx(math.pi * radius**2, rel=0.02)
    assert circle.contains(circle.centroid)


def test_geodesic_circle_needs_three_vertices() -> None:
    with pytest.raises(ValueError):
        GeodesicGeometryOps().circle_buffer(0.0, 0.0, 100.0, 2)

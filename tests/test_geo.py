from __future__ import annotations

import math

import pytest

from cleanshores.core.geo import Point, distance_meters, within_geofence


@pytest.mark.parametrize("p", [Point(0, 0), Point(19.0760, 72.8777), Point(90, 0), Point(-90, 45), Point(10, 180)])
def test_distance_to_self_is_zero(p):
    assert distance_meters(p, p) == 0


def test_short_distance_mumbai():
    d = distance_meters(Point(19.0760, 72.8777), Point(19.0761, 72.8778))
    assert 10 < d < 20


def test_one_degree_latitude_is_about_111km():
    d = distance_meters(Point(0, 0), Point(1, 0))
    assert d == pytest.approx(111_195, rel=1e-3)


def test_antimeridian_is_short_not_half_the_globe():
    d = distance_meters(Point(0, 179.9999), Point(0, -179.9999))
    assert d < 50


def test_near_poles_and_antipodes_stay_finite():
    assert math.isfinite(distance_meters(Point(89.9999, 0), Point(89.9999, 180)))
    antipode = distance_meters(Point(0, 0), Point(0, 180))
    assert math.isfinite(antipode)
    assert antipode == pytest.approx(math.pi * 6_371_008.8, rel=1e-9)


def test_symmetric():
    a, b = Point(19.0760, 72.8777), Point(18.9220, 72.8347)
    assert distance_meters(a, b) == pytest.approx(distance_meters(b, a))


def test_geofence_boundary_is_inclusive(monkeypatch):
    from cleanshores.core import geo

    center, user = Point(19.0760, 72.8777), Point(19.0850, 72.8777)
    monkeypatch.setattr(geo, "distance_meters", lambda a, b: 1000.0)
    assert geo.within_geofence(user, center, 1.0)
    monkeypatch.setattr(geo, "distance_meters", lambda a, b: 1000.001)
    assert not geo.within_geofence(user, center, 1.0)


def test_geofence_inside_and_outside():
    center = Point(19.0760, 72.8777)
    assert within_geofence(Point(19.0761, 72.8778), center, 1.0)
    assert not within_geofence(Point(19.1210, 72.8777), center, 1.0)

import pytest

from makemyway.schemas.route import GeoPoint, PointOfInterest
from makemyway.services.poi_optimizer import (
    dedupe_pois,
    optimize_order,
    progression,
    reduce_crossings,
)
from makemyway.utils.geo import path_length_km

START = GeoPoint(lat=48.85, lng=2.30)
END = GeoPoint(lat=48.85, lng=2.40)


def poi(lat: float, lng: float, name: str = "") -> PointOfInterest:
    return PointOfInterest(lat=lat, lng=lng, name=name)


def test_dedupe_drops_pois_closer_than_threshold() -> None:
    a = poi(48.8600, 2.3400, "a")
    b = poi(48.8605, 2.3405, "b")
    c = poi(48.8620, 2.3400, "c")

    assert dedupe_pois([a, b, c]) == [a, c]


def test_single_poi_is_returned_as_is() -> None:
    only = poi(48.86, 2.34)

    assert optimize_order(START, END, [only]) == [only]
    assert optimize_order(START, None, []) == []


def test_point_to_point_orders_by_progression() -> None:
    late = poi(48.851, 2.39, "late")
    early = poi(48.849, 2.31, "early")
    middle = poi(48.852, 2.35, "middle")

    assert optimize_order(START, END, [late, early, middle]) == [early, middle, late]


def test_crowded_zone_is_ordered_by_angle() -> None:
    # Three POIs in the first third, sorted by angle around their centre
    north = poi(48.855, 2.315, "north")
    south = poi(48.845, 2.316, "south")
    west = poi(48.851, 2.305, "west")

    ordered = optimize_order(START, END, [north, south, west])

    assert ordered == [south, north, west]


def test_loop_order_starts_with_nearest() -> None:
    far = poi(48.90, 2.30, "far")
    near = poi(48.86, 2.30, "near")

    assert optimize_order(START, None, [far, near], loop=True) == [near, far]


def test_reduce_crossings_untangles_loop() -> None:
    p1, p2, p3, p4 = (poi(48.86 + i * 0.01, 2.30) for i in range(4))

    improved = reduce_crossings(START, [p3, p2, p1, p4], loop=True)

    assert improved == [p1, p2, p3, p4]
    assert path_length_km([START, *improved, START]) < path_length_km([START, p3, p2, p1, p4, START])


def test_reduce_crossings_leaves_short_lists() -> None:
    three = [poi(48.86, 2.31), poi(48.87, 2.32), poi(48.86, 2.32)]

    assert reduce_crossings(START, three, loop=True) == three


def test_progression_is_clamped() -> None:
    assert progression(START, END, GeoPoint(lat=48.85, lng=2.25)) == 0.0
    assert progression(START, END, GeoPoint(lat=48.85, lng=2.45)) == 1.0
    assert progression(START, END, GeoPoint(lat=48.86, lng=2.35)) == pytest.approx(0.5)
    assert progression(START, START, END) == 0.0


import logging
import math
from collections.abc import Sequence

from makemyway.schemas.route import GeoPoint
from makemyway.utils.geo import haversine

logger = logging.getLogger(__name__)

DUPLICATE_THRESHOLD_DEG = 0.001  # not metric: narrower in longitude towards the poles
MAX_SWAP_PASSES = 10
ZONE_BOUNDS = (0.33, 0.67)


def dedupe_pois(pois: Sequence[GeoPoint]) -> list[GeoPoint]:
    """Drop POIs within DUPLICATE_THRESHOLD_DEG of one already kept."""
    kept: list[GeoPoint] = []
    for poi in pois:
        if any(
            abs(poi.lat - k.lat) < DUPLICATE_THRESHOLD_DEG and abs(poi.lng - k.lng) < DUPLICATE_THRESHOLD_DEG
            for k in kept
        ):
            continue
        kept.append(poi)
    return kept


def optimize_order(
    start: GeoPoint,
    end: GeoPoint | None,
    pois: Sequence[GeoPoint],
    loop: bool = False,
) -> list[GeoPoint]:
    """Order POIs to keep the total route short."""
    deduped = dedupe_pois(pois)
    if len(deduped) < len(pois):
        logger.debug("Dropped %d duplicate POIs", len(pois) - len(deduped))
    pois = deduped
    if len(pois) <= 1:
        return pois

    if loop or end is None:
        ordered = _nearest_neighbour(start, pois)
        return reduce_crossings(start, ordered, loop=True)
    return _order_along_course(start, end, pois)


def _nearest_neighbour(start: GeoPoint, pois: Sequence[GeoPoint]) -> list[GeoPoint]:
    remaining = list(pois)
    ordered = []
    current: GeoPoint = start
    while remaining:
        nearest = min(remaining, key=lambda p: haversine(current, p))
        ordered.append(nearest)
        remaining.remove(nearest)
        current = nearest
    return ordered


def reduce_crossings(start: GeoPoint, pois: Sequence[GeoPoint], loop: bool = False) -> list[GeoPoint]:
    """
    Swap pairs of stops while doing so shortens the local path.

    A cheap stand-in for 2-opt: each pass takes the first improving swap and
    starts over, for at most MAX_SWAP_PASSES passes.
    """
    order = list(pois)
    if len(order) <= 3:
        return order

    def neighbours(seq: list[GeoPoint], i: int, j: int) -> tuple[GeoPoint, GeoPoint]:
        before = seq[i - 1] if i > 0 else start
        if j < len(seq) - 1:
            after = seq[j + 1]
        else:
            after = start if loop else seq[j]
        return before, after

    for _ in range(MAX_SWAP_PASSES):
        improved = False
        for i in range(len(order) - 1):
            for j in range(i + 2, len(order)):
                before, after = neighbours(order, i, j)
                current = _chain_km(before, order[i], order[j], after)

                swapped = list(order)
                swapped[i], swapped[j] = swapped[j], swapped[i]
                before, after = neighbours(swapped, i, j)
                if _chain_km(before, swapped[i], swapped[j], after) < current:
                    order = swapped
                    improved = True
                    break
            if improved:
                break
        if not improved:
            break
    return order


def _chain_km(*points: GeoPoint) -> float:
    return sum(haversine(points[k], points[k + 1]) for k in range(len(points) - 1))


def progression(start: GeoPoint, end: GeoPoint, point: GeoPoint) -> float:
    """Position of `point` projected on start→end, clamped to [0, 1]."""
    dx = end.lng - start.lng
    dy = end.lat - start.lat
    magnitude = dx * dx + dy * dy
    if magnitude == 0:
        return 0.0
    dot = (point.lng - start.lng) * dx + (point.lat - start.lat) * dy
    return max(0.0, min(1.0, dot / magnitude))


def _order_along_course(start: GeoPoint, end: GeoPoint, pois: Sequence[GeoPoint]) -> list[GeoPoint]:
    zones: list[list[GeoPoint]] = [[], [], []]
    for poi in sorted(pois, key=lambda p: progression(start, end, p)):
        t = progression(start, end, poi)
        if t < ZONE_BOUNDS[0]:
            zones[0].append(poi)
        elif t < ZONE_BOUNDS[1]:
            zones[1].append(poi)
        else:
            zones[2].append(poi)

    ordered = []
    for zone in zones:
        ordered.extend(_order_in_zone(zone) if len(zone) > 2 else zone)
    return ordered


def _order_in_zone(pois: list[GeoPoint]) -> list[GeoPoint]:
    center_lat = sum(p.lat for p in pois) / len(pois)
    center_lng = sum(p.lng for p in pois) / len(pois)
    return sorted(pois, key=lambda p: math.atan2(p.lat - center_lat, p.lng - center_lng))


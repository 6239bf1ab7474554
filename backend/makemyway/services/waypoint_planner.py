import asyncio
import logging
import math
import random
from collections.abc import Sequence
from typing import Protocol

from makemyway.config import settings
from makemyway.schemas.route import GeoPoint, TravelMode
from makemyway.services import tuning
from makemyway.utils.geo import destination_point, initial_bearing, interpolate

logger = logging.getLogger(__name__)


class Snapper(Protocol):
    async def snap_to_road(self, point: GeoPoint, mode: TravelMode) -> GeoPoint: ...


def dedupe(points: Sequence[GeoPoint]) -> list[GeoPoint]:
    """Drop points that land within ~1 m of an earlier one, keeping order."""
    seen: set[tuple[float, float]] = set()
    unique = []
    for p in points:
        key = p.dedup_key()
        if key in seen:
            continue
        seen.add(key)
        unique.append(p)
    return unique


async def snap_points(
    client: Snapper,
    points: Sequence[GeoPoint],
    mode: TravelMode,
    batch_size: int | None = None,
    batch_delay: float | None = None,
) -> list[GeoPoint]:
    """
    Snap points to the road network a few at a time.

    At most `batch_size` requests are in flight, with `batch_delay`
    seconds between batches. Order is preserved.
    """
    batch_size = batch_size or settings.snap_batch_size
    batch_delay = settings.snap_batch_delay_s if batch_delay is None else batch_delay

    snapped: list[GeoPoint] = []
    for i in range(0, len(points), batch_size):
        if i and batch_delay > 0:
            await asyncio.sleep(batch_delay)
        batch = points[i : i + batch_size]
        snapped.extend(await asyncio.gather(*(client.snap_to_road(p, mode) for p in batch)))
    return snapped


class WaypointPlanner:
    """Places randomized waypoints around a center or along a course, then snaps them."""

    def __init__(
        self,
        client: Snapper,
        rng: random.Random | None = None,
        batch_size: int | None = None,
        batch_delay: float | None = None,
    ):
        self.client = client
        self.rng = rng or random.Random()
        self.batch_size = batch_size
        self.batch_delay = batch_delay

    async def snap(self, points: Sequence[GeoPoint], mode: TravelMode) -> list[GeoPoint]:
        return await snap_points(self.client, points, mode, self.batch_size, self.batch_delay)

    async def generate_waypoints(
        self,
        center: GeoPoint,
        target_km: float,
        mode: TravelMode,
        radius_factor: float = 1.0,
    ) -> list[GeoPoint]:
        candidates = self.ring_candidates(center, target_km, mode, radius_factor)
        waypoints = dedupe(await self.snap(candidates, mode))
        logger.debug("%d/%d ring waypoints kept after snapping", len(waypoints), len(candidates))
        return waypoints

    def ring_candidates(
        self,
        center: GeoPoint,
        target_km: float,
        mode: TravelMode,
        radius_factor: float = 1.0,
    ) -> list[GeoPoint]:
        """
        Evenly spaced bearings around `center`, each with random radial
        variation and angular jitter. Both spread wider for longer targets.
        """
        regime = tuning.ring_regime(mode, target_km)
        base_radius = min(target_km / regime.radius_divisor, regime.radius_cap)
        max_radius = min(target_km / regime.max_radius_divisor, regime.max_radius_cap)
        count = min(
            tuning.MAX_WAYPOINTS,
            max(tuning.MIN_WAYPOINTS, math.floor(target_km / regime.count_divisor)),
        )
        radius_km = min(base_radius * radius_factor, max_radius)

        logger.info("Placing %d waypoints within %.1fkm (factor %.2f)", count, radius_km, radius_factor)

        radial_spread = 1.0 if target_km > 20 else 0.8
        angular_spread = min(0.7, target_km / 50)

        candidates = []
        for i in range(count):
            angle = (i / count) * 2 * math.pi
            variation = 0.6 + self.rng.random() * radial_spread
            angle += (self.rng.random() - 0.5) * angular_spread
            candidates.append(destination_point(center, angle, radius_km * variation))
        return candidates

    async def generate_detour_waypoints(
        self,
        start: GeoPoint,
        end: GeoPoint,
        missing_km: float,
        target_km: float,
        mode: TravelMode,
    ) -> list[GeoPoint]:
        candidates = self.detour_candidates(start, end, missing_km, target_km)
        return dedupe(await self.snap(candidates, mode))

    def detour_candidates(
        self,
        start: GeoPoint,
        end: GeoPoint,
        missing_km: float,
        target_km: float,
    ) -> list[GeoPoint]:
        """
        Detours sideways off the straight start→end course.

        One detour per segment of missing distance; each sits at an evenly
        spaced anchor on the course, alternating sides. An out-and-back of
        radius r adds roughly 2r, hence missing / (2n) per detour.
        """
        segment_km = tuning.lookup(tuning.DETOUR_SEGMENT_KM, target_km)
        count = min(tuning.MAX_DETOUR_SEGMENTS, max(1, round(missing_km / segment_km)))
        radius_cap = tuning.lookup(tuning.DETOUR_RADIUS_CAP_KM, target_km)
        offset_km = min(missing_km / (2 * count), radius_cap)
        course = initial_bearing(start, end)

        logger.info("Placing %d detours of up to %.1fkm for %.1fkm missing", count, offset_km, missing_km)

        detours = []
        for i in range(count):
            anchor = interpolate(start, end, (i + 1) / (count + 1))
            side = 1 if i % 2 == 0 else -1
            bearing = course + side * math.pi / 2
            bearing += (self.rng.random() - 0.5) * 2 * tuning.DETOUR_ANGLE_JITTER
            radius = offset_km * (0.7 + self.rng.random() * 0.3)
            detours.append(destination_point(anchor, bearing, radius))
        return detours

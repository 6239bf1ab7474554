import logging
import math
import random
from collections.abc import Sequence

from makemyway.schemas.route import CandidateRoute, GeoPoint, TravelMode
from makemyway.services import tuning
from makemyway.services.osrm_client import OsrmClient
from makemyway.services.waypoint_planner import snap_points
from makemyway.utils.geo import destination_point, haversine, initial_bearing, interpolate

logger = logging.getLogger(__name__)


class DistanceAugmenter:
    """
    Lengthens an undershooting route with sideways detours.

    A single pass: detours are inserted, the route is recomputed once,
    and whatever the engine returns is the answer.
    """

    def __init__(
        self,
        client: OsrmClient,
        rng: random.Random | None = None,
        batch_size: int | None = None,
        batch_delay: float | None = None,
    ):
        self.client = client
        self.rng = rng or random.Random()
        self.batch_size = batch_size
        self.batch_delay = batch_delay

    async def add_extra_detours(
        self,
        base_points: Sequence[GeoPoint],
        target_km: float,
        current_km: float,
        mode: TravelMode,
    ) -> CandidateRoute:
        missing_km = target_km - current_km
        if missing_km <= 0 or len(base_points) < 2:
            return await self.client.route(base_points, mode)

        inserts = self.plan_detours(base_points, target_km, missing_km)
        snapped = await snap_points(
            self.client, [p for _, p in inserts], mode, self.batch_size, self.batch_delay
        )

        augmented = list(base_points)
        # Insert from the back so earlier indices stay valid
        for (index, _), point in sorted(zip(inserts, snapped), key=lambda x: x[0][0], reverse=True):
            augmented.insert(index + 1, point)

        logger.info(
            "Augmenting route with %d detours for %.1fkm missing (%.1f/%.1fkm)",
            len(inserts), missing_km, current_km, target_km,
        )
        return await self.client.route(augmented, mode)

    def plan_detours(
        self,
        base_points: Sequence[GeoPoint],
        target_km: float,
        missing_km: float,
    ) -> list[tuple[int, GeoPoint]]:
        """
        Choose where detours go: (segment index, detour point) pairs.

        Detours go at the midpoints of the longest segments so they have
        room to spread; short targets get at most one or two.
        """
        cap = int(tuning.lookup(tuning.EXTRA_DETOUR_CAP, target_km))
        offset_cap = tuning.lookup(tuning.EXTRA_DETOUR_OFFSET_CAP_KM, target_km)
        segments = len(base_points) - 1
        count = min(cap, segments, max(1, math.ceil(missing_km / (2 * offset_cap))))
        offset_km = min(missing_km / (2 * count), offset_cap)

        by_length = sorted(
            range(segments),
            key=lambda i: haversine(base_points[i], base_points[i + 1]),
            reverse=True,
        )

        detours = []
        for index in sorted(by_length[:count]):
            a, b = base_points[index], base_points[index + 1]
            midpoint = interpolate(a, b, 0.5)
            side = self.rng.choice((-1, 1))
            bearing = initial_bearing(a, b) + side * math.pi / 2
            bearing += (self.rng.random() - 0.5) * 2 * tuning.DETOUR_ANGLE_JITTER
            radius = offset_km * (0.7 + self.rng.random() * 0.3)
            detours.append((index, destination_point(midpoint, bearing, radius)))
        return detours

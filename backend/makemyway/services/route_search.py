import asyncio
import logging
import math
import random

from makemyway.config import settings
from makemyway.schemas.route import (
    CandidateRoute,
    GeoPoint,
    RouteRequest,
    SearchAttempt,
    SearchResult,
    SearchState,
    TravelMode,
)
from makemyway.services import poi_optimizer, tuning
from makemyway.services.distance_augmenter import DistanceAugmenter
from makemyway.services.osrm_client import OsrmClient, RoutingError
from makemyway.services.waypoint_planner import WaypointPlanner
from makemyway.utils.geo import destination_point, haversine, path_length_km

logger = logging.getLogger(__name__)


class RouteGenerationFailed(RoutingError):
    def __init__(self, message: str, attempts: list[SearchAttempt] | None = None):
        super().__init__(message)
        self.attempts = attempts or []


def radius_factor(attempt: int, best_distance_km: float, target_km: float) -> float:
    """
    Ring radius multiplier for an attempt.

    After the first attempt the factor follows target / best distance,
    with a stronger push and wider bounds the longer the search runs.
    """
    if attempt == 1:
        return 1.0
    if best_distance_km > 0:
        ratio = target_km / best_distance_km
        gain, low, high = tuning.RADIUS_CORRECTION.get(attempt, tuning.RADIUS_CORRECTION_LATE)
        return max(low, min(high, ratio * gain))
    # Nothing routed yet: widen blindly
    return 1.0 + (attempt - 1) * tuning.BLIND_RADIUS_STEP


def fallback_route(start: GeoPoint, target_km: float, mode: TravelMode, close_loop: bool = True) -> CandidateRoute:
    """Regular polygon around the start. No road fidelity at all."""
    radius_km = target_km / (2 * math.pi) * tuning.FALLBACK_RADIUS_SCALE
    ring = [
        destination_point(start, (i / tuning.FALLBACK_POINTS) * 2 * math.pi, radius_km)
        for i in range(tuning.FALLBACK_POINTS + 1)
    ]
    points = [start, *ring]
    if close_loop:
        points.append(start)
    distance_km = path_length_km(points)
    return CandidateRoute(
        points=points,
        waypoints=points,
        distance_km=distance_km,
        duration_min=tuning.estimated_duration_min(distance_km, mode),
    )


class RouteSearch:
    """
    Turns a distance + mode request into a routed candidate.

    Loops are searched by repeatedly placing a ring of waypoints and
    correcting its radius from the best distance seen so far. Point to
    point routes start from the direct route and add detours if it is
    too short.
    """

    def __init__(
        self,
        client: OsrmClient,
        planner: WaypointPlanner | None = None,
        augmenter: DistanceAugmenter | None = None,
        rng: random.Random | None = None,
        attempt_delay: float | None = None,
        fallback_enabled: bool | None = None,
    ):
        rng = rng or random.Random()
        self.client = client
        self.planner = planner or WaypointPlanner(client, rng=rng)
        self.augmenter = augmenter or DistanceAugmenter(client, rng=rng)
        self.attempt_delay = settings.attempt_delay_s if attempt_delay is None else attempt_delay
        self.fallback_enabled = settings.fallback_enabled if fallback_enabled is None else fallback_enabled

    async def generate(self, request: RouteRequest) -> SearchResult:
        logger.info(
            "Generating %s route: %.1fkm, %s",
            "loop" if request.close_loop else "point-to-point",
            request.target_distance_km,
            request.mode.value,
        )
        if request.close_loop or request.end is None:
            try:
                result = await self.search_loop(request)
            except RouteGenerationFailed as e:
                if not self.fallback_enabled:
                    raise
                logger.warning("Routing engine unavailable, returning a synthetic loop")
                route = fallback_route(request.start, request.target_distance_km, request.mode)
                return SearchResult(
                    route=route,
                    target_distance_km=request.target_distance_km,
                    state=SearchState.EXHAUSTED,
                    attempts=e.attempts,
                    degraded=True,
                )
        else:
            result = await self.search_point_to_point(request)

        logger.info(
            "Route ready: %.2fkm for %.1fkm target (%s after %d attempts)",
            result.route.distance_km,
            request.target_distance_km,
            result.state.value,
            len(result.attempts),
        )
        return result

    async def search_loop(self, request: RouteRequest) -> SearchResult:
        start = request.start
        target_km = request.target_distance_km
        mode = request.mode
        tolerance = tuning.loop_tolerance(target_km, mode)
        attempts_allowed = tuning.max_attempts(target_km)
        pois = poi_optimizer.optimize_order(start, None, request.pois, loop=True)

        best: CandidateRoute | None = None
        best_deviation = math.inf
        state = SearchState.SEARCHING
        attempts: list[SearchAttempt] = []

        for attempt in range(1, attempts_allowed + 1):
            best_km = best.distance_km if best is not None else 0.0
            factor = radius_factor(attempt, best_km, target_km)
            record = SearchAttempt(attempt=attempt, radius_factor=factor)
            attempts.append(record)

            try:
                waypoints = await self.planner.generate_waypoints(start, target_km, mode, factor)
                if len(waypoints) < 2:
                    logger.warning("Attempt %d: only %d waypoints, skipping", attempt, len(waypoints))
                    continue

                candidate = await self.client.route([start, *waypoints, *pois, start], mode)
            except Exception as e:
                logger.warning("Attempt %d/%d failed: %s", attempt, attempts_allowed, e)
                continue

            deviation = abs(candidate.distance_km - target_km)
            record.route = candidate
            record.deviation_km = deviation
            logger.info(
                "Attempt %d/%d: %.2fkm (deviation %.2fkm, factor %.2f, tolerance %.0f%%)",
                attempt, attempts_allowed, candidate.distance_km, deviation, factor, tolerance * 100,
            )

            if best is None or deviation < best_deviation:
                best = candidate
                best_deviation = deviation

            if deviation < target_km * tolerance:
                state = SearchState.CONVERGED
                break

            if attempt < attempts_allowed and self.attempt_delay > 0:
                await asyncio.sleep(self.attempt_delay)

        if best is None:
            raise RouteGenerationFailed(
                f"No route found after {attempts_allowed} attempts around ({start.lat:.5f}, {start.lng:.5f})",
                attempts,
            )
        if state is SearchState.SEARCHING:
            state = SearchState.EXHAUSTED

        return SearchResult(route=best, target_distance_km=target_km, state=state, attempts=attempts)

    async def search_point_to_point(self, request: RouteRequest) -> SearchResult:
        start, end = request.start, request.end
        target_km = request.target_distance_km
        mode = request.mode
        pois = poi_optimizer.optimize_order(start, end, request.pois, loop=False)
        attempts: list[SearchAttempt] = []

        logger.info("Straight-line distance %.2fkm, target %.1fkm", haversine(start, end), target_km)

        try:
            direct = await self._record(attempts, [start, *pois, end], mode, target_km)
            direct_km = direct.distance_km

            if abs(direct_km - target_km) <= target_km * tuning.DIRECT_ACCEPT_TOLERANCE:
                logger.info("Direct route %.2fkm is close enough", direct_km)
                return self._result(direct, target_km, attempts)

            if direct_km >= target_km:
                # A direct route can't be shortened
                logger.info("Direct route %.2fkm already exceeds target", direct_km)
                return self._result(direct, target_km, attempts)

            missing_km = target_km - direct_km
            detours = await self.planner.generate_detour_waypoints(start, end, missing_km, target_km, mode)
            stops = sorted([*pois, *detours], key=lambda p: poi_optimizer.progression(start, end, p))
            route = await self._record(attempts, [start, *stops, end], mode, target_km)
        except Exception as e:
            logger.warning("Point-to-point search failed, using direct route: %s", e)
            try:
                direct = await self.client.route([start, *pois, end], mode)
            except Exception as fallback_error:
                raise RouteGenerationFailed(f"No route between start and end: {fallback_error}", attempts) from e
            return self._result(direct, target_km, attempts)

        threshold = tuning.lookup(tuning.AUGMENT_THRESHOLD, target_km)
        if route.distance_km < target_km * threshold:
            try:
                augmented = await self.augmenter.add_extra_detours(route.waypoints, target_km, route.distance_km, mode)
            except RoutingError as e:
                logger.warning("Augmentation failed, keeping detoured route: %s", e)
            else:
                attempts.append(
                    SearchAttempt(
                        attempt=len(attempts) + 1,
                        radius_factor=1.0,
                        route=augmented,
                        deviation_km=abs(augmented.distance_km - target_km),
                    )
                )
                route = augmented

        return self._result(route, target_km, attempts)

    async def _record(
        self,
        attempts: list[SearchAttempt],
        points: list[GeoPoint],
        mode: TravelMode,
        target_km: float,
    ) -> CandidateRoute:
        record = SearchAttempt(attempt=len(attempts) + 1, radius_factor=1.0)
        attempts.append(record)
        route = await self.client.route(points, mode)
        record.route = route
        record.deviation_km = abs(route.distance_km - target_km)
        return route

    @staticmethod
    def _result(route: CandidateRoute, target_km: float, attempts: list[SearchAttempt]) -> SearchResult:
        within = abs(route.distance_km - target_km) <= target_km * tuning.DIRECT_ACCEPT_TOLERANCE
        return SearchResult(
            route=route,
            target_distance_km=target_km,
            state=SearchState.CONVERGED if within else SearchState.EXHAUSTED,
            attempts=attempts,
        )

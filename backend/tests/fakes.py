from __future__ import annotations

from collections.abc import Sequence

from makemyway.schemas.route import CandidateRoute, GeoPoint, TravelMode
from makemyway.services.osrm_client import InsufficientPoints, NoRouteFound
from makemyway.services.routing_cache import RoutingCache
from makemyway.services.waypoint_planner import WaypointPlanner


class FakeRoutingClient:
    """
    Stand-in for OsrmClient.

    `distances` is consumed one item per route call; an Exception item is
    raised instead. Once exhausted every route reports `default_km`.
    """

    def __init__(
        self,
        distances: Sequence[float | Exception] = (),
        default_km: float = 5.0,
        fail: bool = False,
    ) -> None:
        self.distances = list(distances)
        self.default_km = default_km
        self.fail = fail
        self.cache = RoutingCache()
        self.snap_calls: list[GeoPoint] = []
        self.route_calls: list[list[GeoPoint]] = []

    async def snap_to_road(self, point: GeoPoint, mode: TravelMode) -> GeoPoint:
        self.snap_calls.append(point)
        return point

    async def route(self, points: Sequence[GeoPoint], mode: TravelMode) -> CandidateRoute:
        if len(points) < 2:
            msg = "At least 2 points are required to route"
            raise InsufficientPoints(msg)
        self.route_calls.append(list(points))
        if self.fail:
            msg = "engine unreachable"
            raise NoRouteFound(msg)

        item = self.distances.pop(0) if self.distances else self.default_km
        if isinstance(item, Exception):
            raise item
        return CandidateRoute(
            points=list(points),
            waypoints=list(points),
            distance_km=item,
            duration_min=item * 12,
        )

    async def check_status(self) -> bool:
        return not self.fail

    def cache_stats(self) -> dict:
        return self.cache.stats()

    def clear_cache(self) -> None:
        self.cache.clear()


class SpyPlanner(WaypointPlanner):
    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.ring_calls: list[float] = []
        self.detour_calls = 0

    async def generate_waypoints(self, center, target_km, mode, radius_factor=1.0):
        self.ring_calls.append(radius_factor)
        return await super().generate_waypoints(center, target_km, mode, radius_factor)

    async def generate_detour_waypoints(self, start, end, missing_km, target_km, mode):
        self.detour_calls += 1
        return await super().generate_detour_waypoints(start, end, missing_km, target_km, mode)


class EmptyPlanner(WaypointPlanner):
    async def generate_waypoints(self, center, target_km, mode, radius_factor=1.0):
        return []


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

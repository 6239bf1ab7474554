import asyncio
import logging
from collections.abc import Awaitable, Callable, Hashable, Sequence
from typing import Any

import httpx
import polyline as polyline_codec

from makemyway.config import settings
from makemyway.schemas.route import CandidateRoute, GeoPoint, TravelMode
from makemyway.services.routing_cache import RoutingCache, make_key
from makemyway.services.tuning import mode_tuning
from makemyway.utils.geo import path_length_km

logger = logging.getLogger(__name__)


class RoutingError(Exception):
    pass


class InsufficientPoints(RoutingError):
    pass


class NoRouteFound(RoutingError):
    pass


OK_CODE = "Ok"
POLYLINE_PRECISION = 6  # geometries=polyline6


def _format_coords(points: Sequence[GeoPoint]) -> str:
    # OSRM takes lon,lat pairs separated by ';'
    return ";".join(f"{p.lng},{p.lat}" for p in points)


class OsrmClient:
    """
    Cached adapter over an OSRM-compatible engine.

    Only two services are used: `nearest` to snap a coordinate onto the
    routable network and `route` to route through ordered waypoints.
    Identical requests already in flight are shared instead of re-sent.
    """

    def __init__(
        self,
        base_url: str | None = None,
        cache: RoutingCache | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
        snap_timeout: float | None = None,
    ):
        self.base_url = (base_url or settings.osrm_url).rstrip("/")
        self.cache = cache or RoutingCache(
            max_size=settings.cache_max_size,
            cleanup_interval=settings.cache_cleanup_interval_s,
        )
        self.timeout = timeout if timeout is not None else settings.request_timeout_s
        self.snap_timeout = snap_timeout if snap_timeout is not None else settings.snap_timeout_s
        self._http = http_client or httpx.AsyncClient(timeout=self.timeout)
        self._owns_http = http_client is None
        self._inflight: dict[Hashable, asyncio.Future] = {}

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def _shared(self, key: Hashable, fetch: Callable[[], Awaitable[Any]]) -> Any:
        """Cache lookup, then join an identical in-flight request or start one."""
        while True:
            cached = self.cache.get(key)
            if cached is not None:
                return cached

            pending = self._inflight.get(key)
            if pending is None:
                break
            try:
                return await asyncio.shield(pending)
            except asyncio.CancelledError:
                if not pending.cancelled():
                    raise
                # The leading request was cancelled, not us: try again

        future = asyncio.get_running_loop().create_future()
        self._inflight[key] = future
        try:
            result = await fetch()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as exc:
            future.set_exception(exc)
            # Followers re-raise it; mark it retrieved so an unobserved one isn't logged
            future.exception()
            raise
        else:
            future.set_result(result)
            return result
        finally:
            self._inflight.pop(key, None)

    async def snap_to_road(self, point: GeoPoint, mode: TravelMode) -> GeoPoint:
        """
        Nearest point on the routable network for this mode.

        Best effort: any failure returns `point` unchanged, and such
        fallbacks are never cached.
        """
        profile = mode_tuning(mode).profile
        key = make_key("nearest", profile, point.cache_key())

        async def fetch() -> GeoPoint | None:
            snapped = await self._nearest(point, profile)
            if snapped is not None:
                self.cache.set(key, snapped)
            return snapped

        try:
            snapped = await self._shared(key, fetch)
        except (httpx.HTTPError, ValueError, KeyError, IndexError, TypeError) as e:
            logger.warning("Snap failed for (%.5f, %.5f): %s", point.lat, point.lng, e)
            return point
        return snapped if snapped is not None else point

    async def _nearest(self, point: GeoPoint, profile: str) -> GeoPoint | None:
        resp = await self._http.get(
            f"{self.base_url}/nearest/v1/{profile}/{point.lng},{point.lat}",
            params={"number": 1},
            timeout=self.snap_timeout,
        )
        if resp.status_code != 200:
            logger.debug("OSRM nearest returned HTTP %d", resp.status_code)
            return None

        data = resp.json()
        waypoints = data.get("waypoints") or []
        if data.get("code") != OK_CODE or not waypoints:
            return None
        lng, lat = waypoints[0]["location"]
        return GeoPoint(lat=lat, lng=lng)

    async def route(self, points: Sequence[GeoPoint], mode: TravelMode) -> CandidateRoute:
        """
        Route through `points` in order.

        Distance and duration are the engine's own totals, which differ
        slightly from the length of the returned geometry.
        """
        if len(points) < 2:
            raise InsufficientPoints(f"At least 2 points are required to route, got {len(points)}")

        profile = mode_tuning(mode).profile
        key = make_key("route", profile, *(p.cache_key() for p in points))

        async def fetch() -> CandidateRoute:
            route = await self._route(points, profile)
            self.cache.set(key, route)
            return route

        return await self._shared(key, fetch)

    async def _route(self, points: Sequence[GeoPoint], profile: str) -> CandidateRoute:
        logger.debug("OSRM route: %d points, profile %s", len(points), profile)
        try:
            resp = await self._http.get(
                f"{self.base_url}/route/v1/{profile}/{_format_coords(points)}",
                params={"overview": "full", "geometries": "polyline6", "steps": "false"},
            )
        except httpx.HTTPError as e:
            raise NoRouteFound(f"OSRM request failed: {e}") from e

        try:
            data = resp.json()
        except ValueError:
            raise NoRouteFound(f"OSRM error {resp.status_code}: {resp.text[:200]}")

        routes = data.get("routes") or []
        if data.get("code") != OK_CODE or not routes:
            raise NoRouteFound(
                f"OSRM returned {data.get('code', resp.status_code)}: {data.get('message', 'no route')}"
            )

        return self.parse_route(routes[0], points)

    @staticmethod
    def parse_route(route: dict, waypoints: Sequence[GeoPoint]) -> CandidateRoute:
        geometry = route.get("geometry")
        if isinstance(geometry, str):
            decoded = polyline_codec.decode(geometry, POLYLINE_PRECISION)
            coords = [GeoPoint(lat=lat, lng=lng) for lat, lng in decoded]
        elif isinstance(geometry, dict):
            coords = [GeoPoint(lat=lat, lng=lng) for lng, lat in geometry.get("coordinates", [])]
        else:
            coords = []
        if len(coords) < 2:
            coords = list(waypoints)

        legs = route.get("legs") or []
        if legs:
            distance_m = sum(leg.get("distance", 0.0) for leg in legs)
            duration_s = sum(leg.get("duration", 0.0) for leg in legs)
        else:
            distance_m = route.get("distance")
            duration_s = route.get("duration", 0.0)

        distance_km = distance_m / 1000 if distance_m is not None else path_length_km(coords)
        return CandidateRoute(
            points=coords,
            waypoints=list(waypoints),
            distance_km=distance_km,
            duration_min=(duration_s or 0.0) / 60,
        )

    async def check_status(self) -> bool:
        probe = f"{self.base_url}/nearest/v1/foot/0,0"
        try:
            resp = await self._http.get(probe, timeout=self.snap_timeout)
        except httpx.HTTPError:
            return False
        return resp.status_code < 500

    def cache_stats(self) -> dict:
        return self.cache.stats()

    def clear_cache(self) -> None:
        self.cache.clear()

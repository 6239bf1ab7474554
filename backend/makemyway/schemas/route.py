from enum import Enum
from typing import Annotated

from pydantic import BaseModel, Field, model_validator

CACHE_PRECISION = 6  # ~10 cm
DEDUP_PRECISION = 5  # ~1 m

Latitude = Annotated[float, Field(ge=-90, le=90)]
Longitude = Annotated[float, Field(ge=-180, le=180)]


class GeoPoint(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)

    model_config = {"frozen": True}

    def cache_key(self) -> tuple[float, float]:
        return round(self.lat, CACHE_PRECISION), round(self.lng, CACHE_PRECISION)

    def dedup_key(self) -> tuple[float, float]:
        return round(self.lat, DEDUP_PRECISION), round(self.lng, DEDUP_PRECISION)


class TravelMode(str, Enum):
    WALKING = "walking"
    RUNNING = "running"
    CYCLING = "cycling"


class PointOfInterest(GeoPoint):
    name: str | None = None


class RouteRequest(BaseModel):
    start: GeoPoint
    end: GeoPoint | None = None
    target_distance_km: float = Field(..., gt=0)
    mode: TravelMode = TravelMode.WALKING
    close_loop: bool = True
    pois: list[PointOfInterest] = Field(default_factory=list)

    @model_validator(mode="after")
    def _loop_without_end(self) -> "RouteRequest":
        # No distinct destination means the only sensible route is a loop
        if self.end is None:
            self.close_loop = True
        return self


class CandidateRoute(BaseModel):
    points: list[GeoPoint] = Field(..., min_length=2, description="Engine geometry")
    waypoints: list[GeoPoint] = Field(default_factory=list, description="Points sent to the engine")
    distance_km: float = Field(..., ge=0)
    duration_min: float = Field(..., ge=0)

    def to_feature(self) -> dict:
        return {
            "type": "Feature",
            "geometry": {
                "type": "LineString",
                "coordinates": [[p.lng, p.lat] for p in self.points],
            },
            "properties": {
                "distance_km": round(self.distance_km, 2),
                "duration_min": round(self.duration_min, 1),
            },
        }


class SearchState(str, Enum):
    SEARCHING = "searching"
    CONVERGED = "converged"
    EXHAUSTED = "exhausted"


class SearchAttempt(BaseModel):
    attempt: int
    radius_factor: float
    route: CandidateRoute | None = None
    deviation_km: float | None = None


class SearchResult(BaseModel):
    route: CandidateRoute
    target_distance_km: float
    state: SearchState
    attempts: list[SearchAttempt] = Field(default_factory=list)
    degraded: bool = False

    @property
    def deviation_km(self) -> float:
        return abs(self.route.distance_km - self.target_distance_km)


class GenerateRequest(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    distance_km: float = Field(..., gt=0, le=100)
    mode: TravelMode = TravelMode.WALKING
    loop: bool = True
    end_lat: float | None = Field(None, ge=-90, le=90)
    end_lng: float | None = Field(None, ge=-180, le=180)
    pois: list[PointOfInterest] = Field(default_factory=list)

    @model_validator(mode="after")
    def _end_is_complete(self) -> "GenerateRequest":
        if (self.end_lat is None) != (self.end_lng is None):
            raise ValueError("end_lat and end_lng must be given together")
        return self

    def to_route_request(self) -> RouteRequest:
        end = None
        if self.end_lat is not None and self.end_lng is not None:
            end = GeoPoint(lat=self.end_lat, lng=self.end_lng)
        return RouteRequest(
            start=GeoPoint(lat=self.lat, lng=self.lng),
            end=end,
            target_distance_km=self.distance_km,
            mode=self.mode,
            close_loop=self.loop,
            pois=self.pois,
        )


class SnapRequest(BaseModel):
    coordinates: list[tuple[Longitude, Latitude]] = Field(..., description="List of [lng, lat] waypoints to snap")
    mode: TravelMode = TravelMode.WALKING

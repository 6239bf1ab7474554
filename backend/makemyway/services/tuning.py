"""
Tuning constants for route generation.

Distance-dependent policies are ordered (max_distance_km, value) tables:
the first row whose bound is >= the target distance wins. The thresholds
are empirical and tuned against real routing behaviour, not derived.
"""
import math
from dataclasses import dataclass

from makemyway.schemas.route import TravelMode

INF = math.inf

BucketTable = tuple[tuple[float, float], ...]


def lookup(table: BucketTable, distance_km: float) -> float:
    for max_km, value in table:
        if distance_km <= max_km:
            return value
    return table[-1][1]


@dataclass(frozen=True)
class ModeTuning:
    profile: str  # routing engine profile
    speed_kmh: float
    min_distance_km: float
    max_distance_km: float
    default_distance_km: float


MODES: dict[TravelMode, ModeTuning] = {
    TravelMode.WALKING: ModeTuning("foot", 4.5, 1.0, 15.0, 5.0),
    TravelMode.RUNNING: ModeTuning("foot", 8.5, 1.0, 30.0, 10.0),
    TravelMode.CYCLING: ModeTuning("bike", 18.0, 2.0, 80.0, 25.0),
}


def mode_tuning(mode: TravelMode) -> ModeTuning:
    return MODES[mode]


def estimated_duration_min(distance_km: float, mode: TravelMode) -> float:
    return distance_km / MODES[mode].speed_kmh * 60


# --- Waypoint ring ---------------------------------------------------------

@dataclass(frozen=True)
class RingRegime:
    """base radius = min(t / radius_divisor, radius_cap), same shape for max radius."""

    radius_divisor: float
    radius_cap: float
    count_divisor: float
    max_radius_divisor: float
    max_radius_cap: float


CYCLING_REGIME = RingRegime(6, 15, 12, 4, 20)
LONG_RUNNING_REGIME = RingRegime(5, 8, 3, 3, 12)
SHORT_REGIME = RingRegime(5, INF, 2, 3, INF)

LONG_RUNNING_MIN_KM = 10
MIN_WAYPOINTS = 3
MAX_WAYPOINTS = 6


def ring_regime(mode: TravelMode, target_km: float) -> RingRegime:
    if mode is TravelMode.CYCLING:
        return CYCLING_REGIME
    if mode is TravelMode.RUNNING and target_km > LONG_RUNNING_MIN_KM:
        return LONG_RUNNING_REGIME
    return SHORT_REGIME


# --- Loop search -------------------------------------------------------------

LOOP_ATTEMPTS = 3
LONG_LOOP_ATTEMPTS = 5
LONG_LOOP_MIN_KM = 20

LOOP_TOLERANCE: BucketTable = (
    (8, 0.08),
    (12, 0.10),
    (20, 0.12),
    (INF, 0.15),
)
LONG_CYCLING_MIN_KM = 30
LONG_CYCLING_TOLERANCE = 0.25

# attempt -> (multiplier on target/best ratio, lower clamp, upper clamp)
RADIUS_CORRECTION: dict[int, tuple[float, float, float]] = {
    2: (1.0, 0.5, 2.0),
    3: (1.1, 0.4, 2.5),
    4: (1.3, 0.3, 3.0),
}
RADIUS_CORRECTION_LATE = (1.5, 0.2, 4.0)
BLIND_RADIUS_STEP = 0.3


def max_attempts(target_km: float) -> int:
    return LONG_LOOP_ATTEMPTS if target_km > LONG_LOOP_MIN_KM else LOOP_ATTEMPTS


def loop_tolerance(target_km: float, mode: TravelMode) -> float:
    if mode is TravelMode.CYCLING and target_km > LONG_CYCLING_MIN_KM:
        return LONG_CYCLING_TOLERANCE
    return lookup(LOOP_TOLERANCE, target_km)


# --- Point to point ----------------------------------------------------------

DIRECT_ACCEPT_TOLERANCE = 0.20

DETOUR_SEGMENT_KM: BucketTable = (
    (8, 1.5),
    (20, 3.0),
    (50, 6.0),
    (INF, 10.0),
)
MAX_DETOUR_SEGMENTS = 6

DETOUR_RADIUS_CAP_KM: BucketTable = (
    (8, 0.8),
    (12, 1.5),
    (20, 2.5),
    (30, 4.0),
    (50, 6.0),
    (60, 8.0),
    (INF, 10.0),
)
DETOUR_ANGLE_JITTER = 0.3  # radians

AUGMENT_THRESHOLD: BucketTable = (
    (8, 0.90),
    (20, 0.88),
    (INF, 0.85),
)

# --- Augmentation ------------------------------------------------------------

EXTRA_DETOUR_CAP: BucketTable = (
    (8, 1),
    (20, 2),
    (50, 3),
    (INF, 4),
)
EXTRA_DETOUR_OFFSET_CAP_KM: BucketTable = (
    (8, 0.5),
    (20, 1.5),
    (50, 3.0),
    (INF, 5.0),
)

# --- Fallback polygon ----------------------------------------------------------

FALLBACK_POINTS = 8
FALLBACK_RADIUS_SCALE = 0.8

import random

import pytest

from makemyway.schemas.route import GeoPoint
from makemyway.services.distance_augmenter import DistanceAugmenter
from makemyway.services.route_search import RouteSearch
from fakes import FakeRoutingClient, SpyPlanner


@pytest.fixture
def paris() -> GeoPoint:
    return GeoPoint(lat=48.8566, lng=2.3522)


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture
def make_search(rng):
    """Build a RouteSearch over a fake engine with all delays disabled."""

    def factory(client: FakeRoutingClient, fallback_enabled: bool = False, planner=None):
        planner = planner or SpyPlanner(client, rng=rng, batch_delay=0)
        augmenter = DistanceAugmenter(client, rng=rng, batch_delay=0)
        return RouteSearch(
            client,
            planner=planner,
            augmenter=augmenter,
            rng=rng,
            attempt_delay=0,
            fallback_enabled=fallback_enabled,
        )

    return factory

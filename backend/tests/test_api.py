from unittest.mock import AsyncMock

from fastapi import FastAPI
from fastapi.testclient import TestClient

from fakes import FakeRoutingClient
from makemyway.api.routes import router


def _create_app(engine: FakeRoutingClient, search) -> FastAPI:
    app = FastAPI()
    app.include_router(router)
    app.state.osrm_client = engine
    app.state.route_search = search
    return app


def test_generate_loop_returns_feature(make_search) -> None:
    engine = FakeRoutingClient(default_km=5.0)
    client = TestClient(_create_app(engine, make_search(engine)))

    response = client.post("/api/v1/generate", json={"lat": 48.8566, "lng": 2.3522, "distance_km": 5})

    assert response.status_code == 200
    feature = response.json()
    assert feature["type"] == "Feature"
    assert feature["geometry"]["type"] == "LineString"
    assert feature["geometry"]["coordinates"][0] == [2.3522, 48.8566]
    assert feature["geometry"]["coordinates"][-1] == [2.3522, 48.8566]
    props = feature["properties"]
    assert props["distance_km"] == 5.0
    assert props["target_distance_km"] == 5
    assert props["mode"] == "walking"
    assert props["state"] == "converged"
    assert props["attempts"] == 1
    assert props["degraded"] is False


def test_generate_point_to_point(make_search) -> None:
    engine = FakeRoutingClient(default_km=4.5)
    client = TestClient(_create_app(engine, make_search(engine)))

    response = client.post(
        "/api/v1/generate",
        json={
            "lat": 48.8566,
            "lng": 2.3522,
            "end_lat": 48.8738,
            "end_lng": 2.2950,
            "loop": False,
            "distance_km": 5,
            "mode": "running",
        },
    )

    assert response.status_code == 200
    assert response.json()["geometry"]["coordinates"][-1] == [2.2950, 48.8738]
    assert engine.route_calls[0][-1].lat == 48.8738


def test_generate_rejects_distance_above_mode_limit(make_search) -> None:
    engine = FakeRoutingClient()
    client = TestClient(_create_app(engine, make_search(engine)))

    response = client.post("/api/v1/generate", json={"lat": 48.8, "lng": 2.3, "distance_km": 20, "mode": "walking"})

    assert response.status_code == 422
    assert "walking" in response.json()["detail"]
    assert engine.route_calls == []


def test_generate_rejects_half_an_end_point(make_search) -> None:
    engine = FakeRoutingClient()
    client = TestClient(_create_app(engine, make_search(engine)))

    response = client.post("/api/v1/generate", json={"lat": 48.8, "lng": 2.3, "distance_km": 5, "end_lat": 48.9})

    assert response.status_code == 422


def test_generate_engine_down_returns_502(make_search) -> None:
    engine = FakeRoutingClient(fail=True)
    client = TestClient(_create_app(engine, make_search(engine, fallback_enabled=False)))

    response = client.post("/api/v1/generate", json={"lat": 48.8, "lng": 2.3, "distance_km": 5})

    assert response.status_code == 502


def test_generate_engine_down_with_fallback_is_degraded(make_search) -> None:
    engine = FakeRoutingClient(fail=True)
    client = TestClient(_create_app(engine, make_search(engine, fallback_enabled=True)))

    response = client.post("/api/v1/generate", json={"lat": 48.8, "lng": 2.3, "distance_km": 5})

    assert response.status_code == 200
    props = response.json()["properties"]
    assert props["degraded"] is True
    assert props["attempts"] == 3


def test_generate_unexpected_error_returns_500(make_search) -> None:
    engine = FakeRoutingClient()
    search = make_search(engine)
    search.generate = AsyncMock(side_effect=RuntimeError("boom"))
    client = TestClient(_create_app(engine, search))

    response = client.post("/api/v1/generate", json={"lat": 48.8, "lng": 2.3, "distance_km": 5})

    assert response.status_code == 500
    assert response.json()["detail"] == "boom"


def test_snap_routes_coordinates(make_search) -> None:
    engine = FakeRoutingClient(default_km=1.2)
    client = TestClient(_create_app(engine, make_search(engine)))

    response = client.post("/api/v1/snap", json={"coordinates": [[2.35, 48.85], [2.36, 48.86]], "mode": "cycling"})

    assert response.status_code == 200
    assert response.json()["properties"]["distance_km"] == 1.2
    assert engine.route_calls[0][0].lng == 2.35


def test_snap_single_coordinate_returns_400(make_search) -> None:
    engine = FakeRoutingClient()
    client = TestClient(_create_app(engine, make_search(engine)))

    response = client.post("/api/v1/snap", json={"coordinates": [[2.35, 48.85]]})

    assert response.status_code == 400


def test_snap_no_route_returns_502(make_search) -> None:
    engine = FakeRoutingClient(fail=True)
    client = TestClient(_create_app(engine, make_search(engine)))

    response = client.post("/api/v1/snap", json={"coordinates": [[2.35, 48.85], [2.36, 48.86]]})

    assert response.status_code == 502


def test_status_reports_engine(make_search) -> None:
    engine = FakeRoutingClient(fail=True)
    client = TestClient(_create_app(engine, make_search(engine)))

    assert client.get("/api/v1/status").json() == {"routing_engine": False}


def test_cache_stats_and_clear(make_search) -> None:
    engine = FakeRoutingClient()
    engine.cache.set("k", 1)
    client = TestClient(_create_app(engine, make_search(engine)))

    assert client.get("/api/v1/cache").json()["size"] == 1
    assert client.delete("/api/v1/cache").json() == {"ok": True}
    assert client.get("/api/v1/cache").json()["size"] == 0


def test_snap_out_of_range_coordinate_returns_422(make_search) -> None:
    engine = FakeRoutingClient()
    client = TestClient(_create_app(engine, make_search(engine)))

    response = client.post("/api/v1/snap", json={"coordinates": [[2.35, 48.85], [2.36, 95.0]]})

    assert response.status_code == 422
    assert engine.route_calls == []


def test_snap_malformed_pair_returns_422(make_search) -> None:
    engine = FakeRoutingClient()
    client = TestClient(_create_app(engine, make_search(engine)))

    response = client.post("/api/v1/snap", json={"coordinates": [[2.35, 48.85], [2.36]]})

    assert response.status_code == 422

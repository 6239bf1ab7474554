import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from makemyway.schemas.route import GenerateRequest, GeoPoint, SnapRequest
from makemyway.services.osrm_client import InsufficientPoints, NoRouteFound, OsrmClient
from makemyway.services.route_search import RouteGenerationFailed, RouteSearch
from makemyway.services.tuning import mode_tuning

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1")


def get_client(request: Request) -> OsrmClient:
    return request.app.state.osrm_client


def get_search(request: Request) -> RouteSearch:
    return request.app.state.route_search


@router.post("/generate")
async def generate(req: GenerateRequest, search: RouteSearch = Depends(get_search)):
    limits = mode_tuning(req.mode)
    if req.distance_km > limits.max_distance_km:
        raise HTTPException(
            status_code=422,
            detail=f"Distance too high for {req.mode.value}: maximum {limits.max_distance_km:g}km",
        )

    try:
        result = await search.generate(req.to_route_request())
    except RouteGenerationFailed as e:
        raise HTTPException(status_code=502, detail=str(e))
    except Exception as e:
        logger.exception("Generate route failed")
        raise HTTPException(status_code=500, detail=str(e))

    feature = result.route.to_feature()
    feature["properties"].update({
        "target_distance_km": req.distance_km,
        "mode": req.mode.value,
        "state": result.state.value,
        "attempts": len(result.attempts),
        "degraded": result.degraded,
    })
    return feature


@router.post("/snap")
async def snap(req: SnapRequest, client: OsrmClient = Depends(get_client)):
    points = [GeoPoint(lat=lat, lng=lng) for lng, lat in req.coordinates]
    try:
        route = await client.route(points, req.mode)
    except InsufficientPoints as e:
        raise HTTPException(status_code=400, detail=str(e))
    except NoRouteFound as e:
        raise HTTPException(status_code=502, detail=str(e))
    return route.to_feature()


@router.get("/status")
async def status(client: OsrmClient = Depends(get_client)):
    return {"routing_engine": await client.check_status()}


@router.get("/cache")
async def cache_stats(client: OsrmClient = Depends(get_client)):
    return client.cache_stats()


@router.delete("/cache")
async def clear_cache(client: OsrmClient = Depends(get_client)):
    client.clear_cache()
    return {"ok": True}

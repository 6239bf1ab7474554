import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from makemyway.api.routes import router
from makemyway.config import settings
from makemyway.services.osrm_client import OsrmClient
from makemyway.services.route_search import RouteSearch

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    client = OsrmClient()
    app.state.osrm_client = client
    app.state.route_search = RouteSearch(client)
    pruner = asyncio.create_task(client.cache.run_pruner())
    try:
        yield
    finally:
        pruner.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await pruner
        await client.aclose()


app = FastAPI(title="MakeMyWay", lifespan=lifespan)
app.include_router(router)

"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from shuttle_ops.api import axes, reports, stops, trips
from shuttle_ops.config import settings
from shuttle_ops.core.errors import (
    NotFoundError,
    PersistenceError,
    ShuttleOpsError,
    UpstreamServiceError,
    ValidationError,
)
from shuttle_ops.core.geocoder import NominatimGeocoder
from shuttle_ops.core.osrm_client import OsrmClient
from shuttle_ops.core.route_resolver import RouteResolver
from shuttle_ops.core.scheduler import create_scheduler
from shuttle_ops.core.trip_service import TripService
from shuttle_ops.core.trip_store import SqlTripStore
from shuttle_ops.db.session import async_session, engine
from shuttle_ops.models.base import Base
from shuttle_ops.models import tables  # noqa: F401

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    # Create tables if they don't exist
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    # Initialize services
    osrm = OsrmClient()
    geocoder = NominatimGeocoder()
    service = TripService(SqlTripStore(async_session), RouteResolver(osrm), geocoder)

    # Wire up API modules
    trips.service = service

    scheduler = create_scheduler(service)
    scheduler.start()
    logger.info(
        "Shuttle Ops started - routing via %s, route sweep every %dh",
        settings.osrm_base_url, settings.route_migration_hours,
    )

    yield

    # Shutdown
    scheduler.shutdown(wait=False)
    trips.service = None
    await osrm.close()
    await geocoder.close()
    await engine.dispose()
    logger.info("Shuttle Ops shut down")


app = FastAPI(
    title="Shuttle Ops",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

_STATUS_BY_ERROR = {
    ValidationError: 400,
    NotFoundError: 404,
    UpstreamServiceError: 502,
    PersistenceError: 500,
}


@app.exception_handler(ShuttleOpsError)
async def shuttle_ops_error_handler(request: Request, exc: ShuttleOpsError):
    status = next((code for cls, code in _STATUS_BY_ERROR.items() if isinstance(exc, cls)), 500)
    if status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status, content={"error": str(exc)})


app.include_router(reports.router)
app.include_router(trips.router)
app.include_router(axes.router)
app.include_router(stops.router)


@app.get("/api/health")
async def health():
    return {"status": "ok"}

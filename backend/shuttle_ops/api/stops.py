"""Stop REST API endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from shuttle_ops.core.catalog import append_stop, fetch_stops
from shuttle_ops.db.session import get_session
from shuttle_ops.schemas.catalog import StopCreate, StopInfo

router = APIRouter(prefix="/api/stops", tags=["stops"])


@router.get("", response_model=list[StopInfo])
async def list_stops(axis_id: int | None = None, session: AsyncSession = Depends(get_session)):
    """Get stops, optionally for one axis, in order."""
    stops = await fetch_stops(session, axis_id)
    return [StopInfo(id=s.id, name=s.name, lat=s.lat, lon=s.lon, axis_id=s.axis_id, order=s.order) for s in stops]


@router.post("", response_model=StopInfo, status_code=201)
async def create_stop(body: StopCreate, session: AsyncSession = Depends(get_session)):
    """Append a stop at the end of its axis."""
    s = await append_stop(session, body.axis_id, body.name.strip(), body.lat, body.lon)
    return StopInfo(id=s.id, name=s.name, lat=s.lat, lon=s.lon, axis_id=s.axis_id, order=s.order)

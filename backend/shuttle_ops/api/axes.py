"""Axis REST API endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from shuttle_ops.core.catalog import fetch_axes, fetch_axis, fetch_stops
from shuttle_ops.core.departure import resolve_departure
from shuttle_ops.db.session import get_session
from shuttle_ops.schemas.catalog import AxisInfo, DepartureInfo

router = APIRouter(prefix="/api/axes", tags=["axes"])


@router.get("", response_model=list[AxisInfo])
async def list_axes(session: AsyncSession = Depends(get_session)):
    axes = await fetch_axes(session)
    return [AxisInfo(id=a.id, name=a.name, departure=a.departure) for a in axes]


@router.get("/{axis_id}/departure", response_model=DepartureInfo)
async def get_departure(axis_id: int, session: AsyncSession = Depends(get_session)):
    """Resolved departure point of an axis (descriptor, else first stop)."""
    axis = await fetch_axis(session, axis_id)
    point = resolve_departure(axis, await fetch_stops(session, axis_id))
    if point is None:
        return DepartureInfo(axis_id=axis_id, resolved=False)
    return DepartureInfo(axis_id=axis_id, lat=point.lat, lng=point.lng, resolved=True)

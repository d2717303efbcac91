"""Trip REST API endpoints."""

import datetime

from fastapi import APIRouter, HTTPException

from shuttle_ops.core.geo import to_point
from shuttle_ops.core.trip_service import TripService
from shuttle_ops.core.trip_store import TripFilters, TripRecord
from shuttle_ops.schemas.trip import (
    ListMeta,
    MigrationReport,
    RouteInfo,
    TripCoordinates,
    TripCreate,
    TripCreated,
    TripInfo,
    TripList,
)

router = APIRouter(prefix="/api/trips", tags=["trips"])

# Will be set by main.py
service: TripService | None = None


def _service() -> TripService:
    if service is None:
        raise HTTPException(status_code=503, detail="Trip service not ready")
    return service


def _hhmm(value: datetime.datetime | None) -> str | None:
    return value.strftime("%H:%M") if value else None


def to_trip_info(record: TripRecord) -> TripInfo:
    """API view of a trip; a missing path is drawn as a straight line."""
    start, end = record.start, record.end
    path = record.path or []
    if not path and start and end:
        path = [start.as_list(), end.as_list()]
    return TripInfo(
        id=record.id,
        employee=record.employee_name,
        start_location=record.start_address or record.start_stop_name or "Start point",
        end_location=record.end_address or record.end_stop_name or "Destination",
        start_time=_hhmm(record.start_time),
        end_time=_hhmm(record.end_time),
        distance_km=record.distance_km,
        duration_min=record.duration_min,
        status=record.status,
        purpose=record.purpose,
        is_fallback_route=record.is_fallback,
        coordinates=TripCoordinates(
            start=start.as_list() if start else None,
            end=end.as_list() if end else None,
            path=path,
        ),
    )


@router.get("", response_model=TripList)
async def list_trips(
    employee_id: int | None = None,
    employee_name: str | None = None,
    date: datetime.date | None = None,
    status: str | None = None,
    limit: int | None = None,
    offset: int | None = None,
):
    """List trips; rows missing route data are resolved before returning."""
    svc = _service()
    filters = TripFilters(
        employee_id=employee_id,
        employee_name=employee_name.strip() if employee_name else None,
        date=date,
        status=status,
        limit=max(1, limit) if limit is not None else None,
        offset=max(0, offset) if offset is not None else None,
    )
    records = await svc.list_trips(filters)
    total = await svc.count_trips(filters) if filters.limit is not None else len(records)
    return TripList(
        data=[to_trip_info(r) for r in records],
        meta=ListMeta(total=total, limit=filters.limit, offset=filters.offset),
    )


@router.get("/today", response_model=list[TripInfo])
async def list_today_trips():
    """Today's trips with straight-line routes recomputed."""
    filters = TripFilters(date=datetime.date.today())
    records = await _service().list_trips(filters, refresh_fallback=True)
    return [to_trip_info(r) for r in sorted(records, key=lambda r: r.start_time or datetime.datetime.min)]


@router.get("/simulate", response_model=RouteInfo)
async def simulate_route(start_lat: float, start_lng: float, end_lat: float, end_lng: float):
    """Resolve a route between two points without storing anything."""
    start = to_point(start_lat, start_lng)
    end = to_point(end_lat, end_lng)
    if start is None or end is None:
        raise HTTPException(status_code=400, detail="start_lat, start_lng, end_lat, end_lng must be valid coordinates")
    route = await _service().simulate_route(start, end)
    return RouteInfo(
        distance_km=route.distance_km,
        duration_min=route.duration_min,
        path=route.path,
        is_fallback=route.is_fallback,
        error=route.error,
    )


@router.post("/migrate", response_model=MigrationReport)
async def migrate_trips():
    """Resolve routes for every stored trip that lacks them."""
    return await _service().migrate_all()


@router.get("/{trip_id}", response_model=TripInfo)
async def get_trip(trip_id: int):
    if trip_id <= 0:
        raise HTTPException(status_code=400, detail="Trip id must be positive")
    return to_trip_info(await _service().get_trip(trip_id))


@router.post("", response_model=TripCreated, status_code=201)
async def create_trip(form: TripCreate):
    trip_id = await _service().create_trip(form)
    return TripCreated(id=trip_id)

"""Pickup report: scheduled personnel ordered stop by stop."""

import datetime
from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from shuttle_ops.config import settings
from shuttle_ops.core.catalog import build_assigner, fetch_planned_personnel
from shuttle_ops.core.geo import as_float
from shuttle_ops.db.session import get_session
from shuttle_ops.schemas.assignment import PickupEntry, PickupMeta, PickupReport

router = APIRouter(prefix="/api/reports", tags=["reports"])


def _parse_date(raw: str | None) -> datetime.date:
    if raw is None:
        return datetime.date.today()
    try:
        return datetime.datetime.strptime(raw, "%Y-%m-%d").date()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid date (expected YYYY-MM-DD)")


def _parse_time(raw: str | None) -> datetime.time:
    try:
        return datetime.datetime.strptime(raw or settings.default_departure_time, "%H:%M:%S").time()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid time (expected HH:MM:SS)")


@router.get("/planned-personnel", response_model=PickupReport)
async def planned_personnel(
    date: str | None = None,
    time: str | None = None,
    session: AsyncSession = Depends(get_session),
):
    """Scheduled personnel for a departure, assigned to their pickup stops."""
    service_date = _parse_date(date)
    departure_time = _parse_time(time)

    rows = await fetch_planned_personnel(session, service_date, departure_time)
    assigner = await build_assigner(session, {r.axis_id for r in rows if r.axis_id is not None})
    assigned = assigner.assign(rows)

    entries = []
    for row in assigned:
        data = asdict(row)
        order = as_float(row.stop_order)
        data["stop_order"] = int(order) if order is not None else None
        entries.append(PickupEntry(**data))

    optimized = sum(1 for e in entries if e.optimized)
    unassigned = sum(1 for e in entries if e.distance_km is None)
    return PickupReport(
        data=entries,
        metadata=PickupMeta(
            date=service_date.isoformat(),
            departure_time=departure_time.strftime("%H:%M:%S"),
            total=len(entries),
            optimized=optimized,
            unassigned=unassigned,
            generated_at=datetime.datetime.now().isoformat(timespec="seconds"),
        ),
    )

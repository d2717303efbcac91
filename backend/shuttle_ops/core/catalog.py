"""Catalog reads feeding the pickup assignment: axes, stops, scheduled personnel."""

import datetime
import logging

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from shuttle_ops.core.departure import AxisRef, StopRef
from shuttle_ops.core.errors import NotFoundError, PersistenceError, RecoverableLookupError
from shuttle_ops.core.stop_assigner import NearestStopAssigner, PlannedPersonnel
from shuttle_ops.models.tables import Axis, Personnel, PickupSchedule, Stop

logger = logging.getLogger(__name__)

DEFAULT_STOP_ORDER = 1


def _stop_ref(stop: Stop) -> StopRef:
    return StopRef(
        id=stop.id, name=stop.name, lat=stop.lat, lon=stop.lon,
        axis_id=stop.axis_id, order=stop.order,
    )


async def fetch_planned_personnel(
    session: AsyncSession, service_date: datetime.date, departure_time: datetime.time,
) -> list[PlannedPersonnel]:
    """Scheduled personnel leaving at the given date and time, with their current stop."""
    full_name = func.trim(func.concat(Personnel.last_name, " ", Personnel.first_name))
    stmt = (
        select(
            Personnel,
            full_name.label("full_name"),
            PickupSchedule.departure_time,
            Stop.id.label("stop_id"),
            Stop.name.label("stop_name"),
            Stop.lat.label("stop_lat"),
            Stop.lon.label("stop_lon"),
            Stop.order.label("stop_order"),
            Axis.id.label("axis_id"),
            Axis.name.label("axis_name"),
        )
        .join(PickupSchedule, PickupSchedule.personnel_id == Personnel.id)
        .outerjoin(Stop, Stop.id == Personnel.stop_id)
        .outerjoin(Axis, Axis.id == Stop.axis_id)
        .where(Personnel.scheduled.is_(True))
        .where(PickupSchedule.service_date == service_date)
        .where(PickupSchedule.departure_time == departure_time)
        .order_by(Axis.name, Stop.order, Personnel.last_name)
    )
    result = await session.execute(stmt)

    rows = []
    for r in result:
        p: Personnel = r.Personnel
        rows.append(PlannedPersonnel(
            id=p.id,
            full_name=r.full_name,
            registration=p.registration,
            job_title=p.job_title,
            lat=p.lat,
            lng=p.lon,
            stop_id=r.stop_id,
            stop_name=r.stop_name,
            stop_lat=r.stop_lat,
            stop_lon=r.stop_lon,
            stop_order=r.stop_order,
            axis_id=r.axis_id,
            axis_name=r.axis_name,
            pickup_time=r.departure_time.strftime("%H:%M:%S") if r.departure_time else None,
        ))
    logger.info("Loaded %d scheduled personnel for %s %s", len(rows), service_date, departure_time)
    return rows


async def fetch_axes(session: AsyncSession) -> list[AxisRef]:
    result = await session.execute(select(Axis).order_by(Axis.name))
    return [AxisRef(id=a.id, name=a.name, departure=a.departure) for a in result.scalars()]


async def fetch_axis(session: AsyncSession, axis_id: int) -> AxisRef:
    axis = await session.get(Axis, axis_id)
    if axis is None:
        raise NotFoundError(f"Axis {axis_id} not found")
    return AxisRef(id=axis.id, name=axis.name, departure=axis.departure)


async def fetch_stops(session: AsyncSession, axis_id: int | None = None) -> list[StopRef]:
    """Stops ordered by axis then order index."""
    stmt = select(Stop).order_by(Stop.axis_id, Stop.order, Stop.id)
    if axis_id is not None:
        stmt = stmt.where(Stop.axis_id == axis_id)
    result = await session.execute(stmt)
    return [_stop_ref(s) for s in result.scalars()]


async def build_assigner(session: AsyncSession, axis_ids: set[int]) -> NearestStopAssigner:
    """Assigner preloaded with the given axes and their stops."""
    assigner = NearestStopAssigner()
    if not axis_ids:
        return assigner

    axes = await session.execute(select(Axis).where(Axis.id.in_(axis_ids)))
    stops = await session.execute(
        select(Stop).where(Stop.axis_id.in_(axis_ids)).order_by(Stop.order, Stop.id)
    )
    by_axis: dict[int, list[StopRef]] = {}
    for stop in stops.scalars():
        by_axis.setdefault(stop.axis_id, []).append(_stop_ref(stop))

    for axis in axes.scalars():
        assigner.load_axis(
            AxisRef(id=axis.id, name=axis.name, departure=axis.departure),
            by_axis.get(axis.id, []),
        )
    return assigner


async def next_stop_order(session: AsyncSession, axis_id: int) -> int:
    """Order index for a stop appended to an axis (1 for an empty axis)."""
    try:
        current = await session.scalar(select(func.max(Stop.order)).where(Stop.axis_id == axis_id))
    except SQLAlchemyError as e:
        raise RecoverableLookupError(f"Could not read stop order for axis {axis_id}: {e}") from e
    return (current or 0) + 1


async def append_stop(
    session: AsyncSession, axis_id: int, name: str, lat: float | None, lon: float | None,
) -> StopRef:
    """Create a stop at the end of an axis."""
    await fetch_axis(session, axis_id)
    try:
        order = await next_stop_order(session, axis_id)
    except RecoverableLookupError as e:
        logger.warning("%s; using order %d", e, DEFAULT_STOP_ORDER)
        await session.rollback()
        order = DEFAULT_STOP_ORDER

    stop = Stop(name=name, lat=lat, lon=lon, axis_id=axis_id, order=order)
    try:
        session.add(stop)
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        raise PersistenceError(f"Could not create stop {name!r}: {e}") from e
    logger.info("Axis %d: added stop %r at order %d", axis_id, name, order)
    return _stop_ref(stop)

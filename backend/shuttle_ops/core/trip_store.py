"""Trip persistence: record types and the SQLAlchemy-backed store."""

import datetime
import logging
from dataclasses import dataclass
from typing import Protocol

from geoalchemy2.shape import from_shape, to_shape
from shapely.geometry import LineString
from sqlalchemy import and_, exists, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import aliased

from shuttle_ops.core.departure import StopRef
from shuttle_ops.core.errors import PersistenceError
from shuttle_ops.core.geo import Point, to_point
from shuttle_ops.core.osrm_client import RouteResult
from shuttle_ops.models.tables import Personnel, Stop, Trip

logger = logging.getLogger(__name__)


def is_fallback_path(path: list[list[float]] | None) -> bool:
    """Two points or fewer is a straight line, however it was produced."""
    return not path or len(path) <= 2


@dataclass
class TripRecord:
    id: int
    personnel_id: int | None = None
    employee_name: str | None = None
    start_stop_id: int | None = None
    end_stop_id: int | None = None
    start_stop_name: str | None = None
    end_stop_name: str | None = None
    start_address: str | None = None
    end_address: str | None = None
    start_lat: float | None = None
    start_lon: float | None = None
    end_lat: float | None = None
    end_lon: float | None = None
    start_time: datetime.datetime | None = None
    end_time: datetime.datetime | None = None
    purpose: str | None = None
    status: str | None = None
    distance_km: float | None = None
    duration_min: int | None = None
    path: list[list[float]] | None = None  # [[lat, lng], ...]

    @property
    def start(self) -> Point | None:
        return to_point(self.start_lat, self.start_lon)

    @property
    def end(self) -> Point | None:
        return to_point(self.end_lat, self.end_lon)

    @property
    def needs_route(self) -> bool:
        return self.distance_km is None or not self.path

    @property
    def is_fallback(self) -> bool:
        return is_fallback_path(self.path)


@dataclass
class TripFilters:
    employee_id: int | None = None
    employee_name: str | None = None
    date: datetime.date | None = None
    status: str | None = None
    limit: int | None = None
    offset: int | None = None


@dataclass
class NewTrip:
    personnel_id: int
    start: Point
    end: Point
    route: RouteResult
    start_stop_id: int | None = None
    end_stop_id: int | None = None
    start_address: str | None = None
    end_address: str | None = None
    start_time: datetime.datetime | None = None
    end_time: datetime.datetime | None = None
    purpose: str | None = None
    status: str = "planned"


@dataclass
class RouteCoverage:
    total: int = 0
    with_route: int = 0
    without_route: int = 0


class TripStore(Protocol):
    async def fetch(self, trip_id: int) -> TripRecord | None: ...
    async def search(self, filters: TripFilters) -> list[TripRecord]: ...
    async def count(self, filters: TripFilters) -> int: ...
    async def insert(self, trip: NewTrip) -> int: ...
    async def save_route(self, trip_id: int, route: RouteResult) -> None: ...
    async def ids_missing_route(self) -> list[int]: ...
    async def backfill_endpoints(self) -> int: ...
    async def route_coverage(self) -> RouteCoverage: ...
    async def find_stop(self, stop_id: int) -> StopRef | None: ...
    async def personnel_exists(self, personnel_id: int) -> bool: ...
    async def find_personnel_by_name(self, name: str) -> int | None: ...


def path_to_line(path: list[list[float]]):
    """[[lat, lng], ...] -> PostGIS LINESTRING element (lon/lat vertex order)."""
    return from_shape(LineString([(lng, lat) for lat, lng in path]), srid=4326)


def line_to_path(element) -> list[list[float]] | None:
    if element is None:
        return None
    line = to_shape(element)
    return [[y, x] for x, y in line.coords]


class SqlTripStore:
    """TripStore over the async session factory."""

    def __init__(self, session_factory) -> None:
        self.session_factory = session_factory

    def _joined_select(self):
        start_stop = aliased(Stop)
        end_stop = aliased(Stop)
        employee = func.trim(func.concat(Personnel.last_name, " ", Personnel.first_name))
        return (
            select(
                Trip,
                employee.label("employee_name"),
                start_stop.name.label("start_stop_name"),
                start_stop.lat.label("start_stop_lat"),
                start_stop.lon.label("start_stop_lon"),
                end_stop.name.label("end_stop_name"),
                end_stop.lat.label("end_stop_lat"),
                end_stop.lon.label("end_stop_lon"),
            )
            .outerjoin(Personnel, Personnel.id == Trip.personnel_id)
            .outerjoin(start_stop, start_stop.id == Trip.start_stop_id)
            .outerjoin(end_stop, end_stop.id == Trip.end_stop_id)
            .where(Trip.deleted_at.is_(None))
        )

    @staticmethod
    def _to_record(row) -> TripRecord:
        trip: Trip = row.Trip
        start_lat, start_lon = trip.start_lat, trip.start_lon
        if start_lat is None or start_lon is None:
            start_lat, start_lon = row.start_stop_lat, row.start_stop_lon
        end_lat, end_lon = trip.end_lat, trip.end_lon
        if end_lat is None or end_lon is None:
            end_lat, end_lon = row.end_stop_lat, row.end_stop_lon
        return TripRecord(
            id=trip.id,
            personnel_id=trip.personnel_id,
            employee_name=row.employee_name or None,
            start_stop_id=trip.start_stop_id,
            end_stop_id=trip.end_stop_id,
            start_stop_name=row.start_stop_name,
            end_stop_name=row.end_stop_name,
            start_address=trip.start_address,
            end_address=trip.end_address,
            start_lat=start_lat,
            start_lon=start_lon,
            end_lat=end_lat,
            end_lon=end_lon,
            start_time=trip.start_time,
            end_time=trip.end_time,
            purpose=trip.purpose,
            status=trip.status,
            distance_km=trip.distance_km,
            duration_min=trip.duration_min,
            path=line_to_path(trip.path),
        )

    async def fetch(self, trip_id: int) -> TripRecord | None:
        async with self.session_factory() as session:
            result = await session.execute(self._joined_select().where(Trip.id == trip_id))
            row = result.first()
            return self._to_record(row) if row else None

    @staticmethod
    def _apply_filters(stmt, filters: TripFilters):
        """Filter clauses shared by search and count; paging is left to the caller."""
        if filters.employee_id:
            stmt = stmt.where(Trip.personnel_id == filters.employee_id)
        if filters.employee_name:
            pattern = f"%{filters.employee_name}%"
            stmt = stmt.where(or_(Personnel.last_name.ilike(pattern), Personnel.first_name.ilike(pattern)))
        if filters.date:
            stmt = stmt.where(func.date(Trip.start_time) == filters.date)
        if filters.status:
            stmt = stmt.where(Trip.status == filters.status)
        return stmt

    async def search(self, filters: TripFilters) -> list[TripRecord]:
        stmt = self._apply_filters(self._joined_select(), filters)
        stmt = stmt.order_by(Trip.id.desc())
        if filters.limit:
            stmt = stmt.limit(filters.limit)
        if filters.offset:
            stmt = stmt.offset(filters.offset)

        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return [self._to_record(row) for row in result]

    async def count(self, filters: TripFilters) -> int:
        stmt = (
            select(func.count(Trip.id))
            .select_from(Trip)
            .outerjoin(Personnel, Personnel.id == Trip.personnel_id)
            .where(Trip.deleted_at.is_(None))
        )
        async with self.session_factory() as session:
            return await session.scalar(self._apply_filters(stmt, filters)) or 0

    async def insert(self, trip: NewTrip) -> int:
        row = Trip(
            personnel_id=trip.personnel_id,
            start_stop_id=trip.start_stop_id,
            end_stop_id=trip.end_stop_id,
            start_address=trip.start_address,
            end_address=trip.end_address,
            start_lat=trip.start.lat,
            start_lon=trip.start.lng,
            end_lat=trip.end.lat,
            end_lon=trip.end.lng,
            start_time=trip.start_time,
            end_time=trip.end_time,
            purpose=trip.purpose,
            status=trip.status,
            distance_km=trip.route.distance_km,
            duration_min=trip.route.duration_min,
            path=path_to_line(trip.route.path) if len(trip.route.path) >= 2 else None,
        )
        try:
            async with self.session_factory() as session:
                session.add(row)
                await session.commit()
                return row.id
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not create trip: {e}") from e

    async def save_route(self, trip_id: int, route: RouteResult) -> None:
        values = {
            "distance_km": route.distance_km,
            "duration_min": route.duration_min,
            "path": path_to_line(route.path) if len(route.path) >= 2 else None,
        }
        try:
            async with self.session_factory() as session:
                await session.execute(update(Trip).where(Trip.id == trip_id).values(**values))
                await session.commit()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not save route for trip {trip_id}: {e}") from e

    async def ids_missing_route(self) -> list[int]:
        stmt = (
            select(Trip.id)
            .where(Trip.deleted_at.is_(None))
            .where(or_(Trip.distance_km.is_(None), Trip.path.is_(None)))
            .order_by(Trip.id)
        )
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars())

    async def backfill_endpoints(self) -> int:
        """Copy stop coordinates onto trips that lack their own."""
        updated = 0
        try:
            async with self.session_factory() as session:
                for stop_col, lat_col, lon_col in (
                    (Trip.start_stop_id, Trip.start_lat, Trip.start_lon),
                    (Trip.end_stop_id, Trip.end_lat, Trip.end_lon),
                ):
                    has_coords = exists().where(
                        and_(Stop.id == stop_col, Stop.lat.is_not(None), Stop.lon.is_not(None))
                    )
                    stmt = (
                        update(Trip)
                        .where(Trip.deleted_at.is_(None), lat_col.is_(None), has_coords)
                        .values({
                            lat_col: select(Stop.lat).where(Stop.id == stop_col).scalar_subquery(),
                            lon_col: select(Stop.lon).where(Stop.id == stop_col).scalar_subquery(),
                        })
                        .execution_options(synchronize_session=False)
                    )
                    result = await session.execute(stmt)
                    updated += result.rowcount or 0
                await session.commit()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not backfill trip endpoints: {e}") from e
        if updated:
            logger.info("Backfilled endpoint coordinates on %d trip ends", updated)
        return updated

    async def route_coverage(self) -> RouteCoverage:
        has_route = and_(Trip.distance_km.is_not(None), Trip.path.is_not(None))
        stmt = select(
            func.count(Trip.id),
            func.count(Trip.id).filter(has_route),
        ).where(Trip.deleted_at.is_(None))
        async with self.session_factory() as session:
            total, with_route = (await session.execute(stmt)).one()
        return RouteCoverage(total=total, with_route=with_route, without_route=total - with_route)

    async def find_stop(self, stop_id: int) -> StopRef | None:
        async with self.session_factory() as session:
            stop = await session.get(Stop, stop_id)
            if stop is None:
                return None
            return StopRef(
                id=stop.id, name=stop.name, lat=stop.lat, lon=stop.lon,
                axis_id=stop.axis_id, order=stop.order,
            )

    async def personnel_exists(self, personnel_id: int) -> bool:
        async with self.session_factory() as session:
            return await session.get(Personnel, personnel_id) is not None

    async def find_personnel_by_name(self, name: str) -> int | None:
        """Exact "last first" match first, then a substring match on either part."""
        full_name = func.concat(Personnel.last_name, " ", Personnel.first_name)
        pattern = f"%{name}%"
        async with self.session_factory() as session:
            found = await session.scalar(select(Personnel.id).where(full_name == name).limit(1))
            if found is None:
                found = await session.scalar(
                    select(Personnel.id)
                    .where(or_(Personnel.last_name.ilike(pattern), Personnel.first_name.ilike(pattern)))
                    .order_by(Personnel.id)
                    .limit(1)
                )
            return found

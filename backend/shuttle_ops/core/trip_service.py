"""Trip access with route data that is always present on the way out.

Trips are stored with only their endpoints known. Whenever a trip is read
without a distance or path, the route is resolved and written back before
the trip is returned. Concurrent reads of the same incomplete trip share a
single in-flight resolution.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Protocol

from shuttle_ops.config import settings
from shuttle_ops.core.errors import (
    NotFoundError,
    ShuttleOpsError,
    UpstreamServiceError,
    ValidationError,
)
from shuttle_ops.core.geo import Point, to_point
from shuttle_ops.core.osrm_client import RouteResult
from shuttle_ops.core.route_resolver import RouteResolver
from shuttle_ops.core.trip_store import NewTrip, TripFilters, TripRecord, TripStore
from shuttle_ops.schemas.trip import MigrationReport, RouteCoverageInfo, TripCreate

logger = logging.getLogger(__name__)


class Geocoder(Protocol):
    async def geocode(self, address: str) -> Point | None: ...


class TripService:
    """Self-healing trip reads, trip creation and bulk route migration."""

    def __init__(
        self,
        store: TripStore,
        resolver: RouteResolver,
        geocoder: Geocoder | None = None,
        pacing_seconds: float | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.store = store
        self.resolver = resolver
        self.geocoder = geocoder
        self.pacing_seconds = (
            settings.migration_pacing_seconds if pacing_seconds is None else pacing_seconds
        )
        self._sleep = sleep
        # trip_id -> task resolving and saving its route
        self._inflight: dict[int, asyncio.Task] = {}

    # Reads ------------------------------------------------------------

    async def get_trip(self, trip_id: int) -> TripRecord:
        record = await self.store.fetch(trip_id)
        if record is None:
            raise NotFoundError(f"Trip {trip_id} not found")
        if not record.needs_route:
            return record

        await self.ensure_route(trip_id)
        healed = await self.store.fetch(trip_id)
        if healed is None:
            raise NotFoundError(f"Trip {trip_id} not found")
        return healed

    async def list_trips(
        self, filters: TripFilters | None = None, refresh_fallback: bool = False,
    ) -> list[TripRecord]:
        """List trips, healing rows without route data.

        With ``refresh_fallback`` straight-line routes are recomputed as well.
        Rows that cannot be healed are returned unchanged.
        """
        records = await self.store.search(filters or TripFilters())
        result = []
        for record in records:
            if record.needs_route or (refresh_fallback and record.is_fallback):
                try:
                    await self.ensure_route(record.id)
                except ShuttleOpsError as e:
                    logger.warning("Trip %d left without route: %s", record.id, e)
                else:
                    record = await self.store.fetch(record.id) or record
            result.append(record)
        return result

    async def count_trips(self, filters: TripFilters | None = None) -> int:
        filters = filters or TripFilters()
        unpaged = TripFilters(
            employee_id=filters.employee_id,
            employee_name=filters.employee_name,
            date=filters.date,
            status=filters.status,
        )
        return await self.store.count(unpaged)

    # Healing ----------------------------------------------------------

    async def ensure_route(self, trip_id: int) -> RouteResult:
        """Resolve and persist the route of a trip, sharing concurrent calls."""
        task = self._inflight.get(trip_id)
        if task is None:
            task = asyncio.create_task(self._compute_and_save(trip_id))
            self._inflight[trip_id] = task
            task.add_done_callback(lambda t: self._forget(trip_id, t))
        else:
            logger.debug("Trip %d: joining in-flight route computation", trip_id)
        # Caller cancellation must not reach the shared task
        return await asyncio.shield(task)

    def _forget(self, trip_id: int, task: asyncio.Task) -> None:
        if self._inflight.get(trip_id) is task:
            del self._inflight[trip_id]

    async def _compute_and_save(self, trip_id: int) -> RouteResult:
        record = await self.store.fetch(trip_id)
        if record is None:
            raise NotFoundError(f"Trip {trip_id} not found")
        start, end = record.start, record.end
        if start is None or end is None:
            raise ValidationError(f"Trip {trip_id} has no valid coordinates")

        route = await self.resolver.resolve(start, end)
        await self.store.save_route(trip_id, route)
        logger.info(
            "Trip %d: route saved (%.3f km, %d min%s)",
            trip_id, route.distance_km, route.duration_min,
            ", fallback" if route.is_fallback else "",
        )
        return route

    # Creation ---------------------------------------------------------

    async def create_trip(self, form: TripCreate) -> int:
        if not form.employee_id and not form.employee_name:
            raise ValidationError("Employee required (employee_id or employee_name)")
        if not self._has_endpoint(form, "start"):
            raise ValidationError("Start point required")
        if not self._has_endpoint(form, "end"):
            raise ValidationError("Destination required")

        personnel_id = await self._resolve_employee(form)
        start, start_label = await self._resolve_endpoint(form, "start")
        end, end_label = await self._resolve_endpoint(form, "end")

        route = await self.resolver.resolve(start, end)
        trip_id = await self.store.insert(NewTrip(
            personnel_id=personnel_id,
            start=start,
            end=end,
            route=route,
            start_stop_id=form.start_stop_id,
            end_stop_id=form.end_stop_id,
            start_address=form.start_address or start_label,
            end_address=form.end_address or end_label,
            start_time=form.start_time,
            end_time=form.end_time,
            purpose=form.purpose,
            status=form.status or "planned",
        ))

        stored = await self.store.fetch(trip_id)
        if stored is None or stored.needs_route:
            logger.warning("Trip %d stored without complete route data, recomputing", trip_id)
            await self.ensure_route(trip_id)
        return trip_id

    @staticmethod
    def _has_endpoint(form: TripCreate, which: str) -> bool:
        stop_id = getattr(form, f"{which}_stop_id")
        lat, lng = getattr(form, f"{which}_lat"), getattr(form, f"{which}_lng")
        address = getattr(form, f"{which}_address")
        return bool(stop_id) or (lat is not None and lng is not None) or bool(address)

    async def _resolve_employee(self, form: TripCreate) -> int:
        if form.employee_id:
            if not await self.store.personnel_exists(form.employee_id):
                raise NotFoundError(f"Employee {form.employee_id} not found")
            return form.employee_id
        found = await self.store.find_personnel_by_name(form.employee_name.strip())
        if found is None:
            raise NotFoundError(f'Employee not found for "{form.employee_name}"')
        return found

    async def _resolve_endpoint(self, form: TripCreate, which: str) -> tuple[Point, str | None]:
        """Stop reference first, then explicit coordinates, then geocoding."""
        stop_id = getattr(form, f"{which}_stop_id")
        address = getattr(form, f"{which}_address")

        if stop_id:
            stop = await self.store.find_stop(stop_id)
            if stop is None:
                raise NotFoundError(f"{which.capitalize()} stop {stop_id} not found")
            if stop.point is None:
                raise ValidationError(f"{which.capitalize()} stop {stop_id} has no valid coordinates")
            return stop.point, stop.name

        point = to_point(getattr(form, f"{which}_lat"), getattr(form, f"{which}_lng"))
        if point is not None:
            return point, address

        if address:
            return await self._geocode(address), address

        raise ValidationError(f"{which.capitalize()} point could not be resolved")

    async def _geocode(self, address: str) -> Point:
        if self.geocoder is None:
            raise ValidationError(f"Cannot geocode address: {address}")
        try:
            point = await self.geocoder.geocode(address)
        except UpstreamServiceError as e:
            logger.warning("Geocoding failed for %r: %s", address, e)
            raise ValidationError(f"Cannot geocode address: {address}") from e
        if point is None:
            raise ValidationError(f"Cannot geocode address: {address}")
        return point

    # Migration --------------------------------------------------------

    async def migrate_all(self) -> MigrationReport:
        """Backfill endpoints, then resolve every trip still lacking a route."""
        backfilled = await self.store.backfill_endpoints()
        trip_ids = await self.store.ids_missing_route()
        logger.info("Route migration: %d trips without route data", len(trip_ids))

        success = 0
        errors: list[str] = []
        for index, trip_id in enumerate(trip_ids):
            if index and self.pacing_seconds > 0:
                await self._sleep(self.pacing_seconds)
            try:
                await self.ensure_route(trip_id)
                success += 1
            except ShuttleOpsError as e:
                errors.append(f"Trip {trip_id}: {e}")

        coverage = await self.store.route_coverage()
        logger.info(
            "Route migration done: %d/%d resolved, %d errors",
            success, len(trip_ids), len(errors),
        )
        return MigrationReport(
            total=len(trip_ids),
            success=success,
            errors=errors,
            backfilled=backfilled,
            coverage=RouteCoverageInfo(
                total=coverage.total,
                with_route=coverage.with_route,
                without_route=coverage.without_route,
            ),
        )

    async def simulate_route(self, start: Point, end: Point) -> RouteResult:
        return await self.resolver.resolve(start, end)

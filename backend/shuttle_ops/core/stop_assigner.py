"""Assign scheduled personnel to pickup stops.

Personnel are grouped by axis. An axis whose members carry an explicit stop
order is laid out along the physical pickup sequence (stops sorted by
distance from the axis departure point); otherwise every member with a
known home location is sent to the geographically nearest stop of the axis.
Bad or missing geodata never fails the batch: the record is reported as
unassigned (no distance, not optimized) and the rest proceeds.
"""

import logging
import math
from dataclasses import dataclass, replace

from shuttle_ops.core.departure import AxisRef, StopRef, resolve_departure
from shuttle_ops.core.geo import Point, as_float, haversine_km, to_point

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlannedPersonnel:
    id: int
    full_name: str
    registration: str = ""
    job_title: str | None = None
    lat: float | None = None
    lng: float | None = None
    stop_id: int | None = None
    stop_name: str | None = None
    stop_lat: float | None = None
    stop_lon: float | None = None
    stop_order: int | str | None = None
    axis_id: int | None = None
    axis_name: str | None = None
    pickup_time: str | None = None
    # Filled in by the assigner
    distance_km: float | None = None
    optimized: bool = False

    @property
    def home(self) -> Point | None:
        return to_point(self.lat, self.lng)

    @property
    def explicit_order(self) -> float | None:
        return as_float(self.stop_order)


@dataclass(frozen=True)
class NearestStop:
    stop: StopRef
    distance_km: float


def _by_name(row: PlannedPersonnel) -> str:
    return row.full_name or ""


def find_nearest_stop(point: Point, stops: list[StopRef]) -> NearestStop | None:
    """Closest stop with valid coordinates; the first one wins on equal distance."""
    best: NearestStop | None = None
    for stop in stops:
        stop_point = stop.point
        if stop_point is None:
            continue
        d = haversine_km(point, stop_point)
        if best is None or d < best.distance_km:
            best = NearestStop(stop=stop, distance_km=d)
    return best


def group_by_axis(rows: list[PlannedPersonnel]) -> dict[int | None, list[PlannedPersonnel]]:
    """Group rows by axis id, keeping the order in which axes first appear."""
    groups: dict[int | None, list[PlannedPersonnel]] = {}
    for row in rows:
        groups.setdefault(row.axis_id, []).append(row)
    return groups


def has_explicit_order(rows: list[PlannedPersonnel]) -> bool:
    for row in rows:
        order = row.explicit_order
        if order is not None and order > 0:
            return True
    return False


class NearestStopAssigner:
    """Orders a pickup roster stop by stop for each axis."""

    def __init__(self) -> None:
        self._axes: dict[int, AxisRef] = {}
        # axis_id -> [StopRef] in catalog order (order index ascending)
        self._stops: dict[int, list[StopRef]] = {}

    def load_axis(self, axis: AxisRef, stops: list[StopRef]) -> None:
        self._axes[axis.id] = axis
        self._stops[axis.id] = list(stops)
        logger.debug("Axis %d (%s): loaded %d stops", axis.id, axis.name, len(stops))

    def stops_for(self, axis_id: int | None) -> list[StopRef]:
        if axis_id is None:
            return []
        return self._stops.get(axis_id, [])

    def departure_for(self, axis_id: int) -> Point | None:
        return resolve_departure(self._axes.get(axis_id), self.stops_for(axis_id))

    def assign(self, rows: list[PlannedPersonnel]) -> list[PlannedPersonnel]:
        """Return annotated copies of ``rows`` in pickup order."""
        result: list[PlannedPersonnel] = []
        for axis_id, members in group_by_axis(rows).items():
            if axis_id is not None and has_explicit_order(members):
                result.extend(self._assign_ordered(axis_id, members))
            else:
                result.extend(self._assign_nearest(axis_id, members))
        return result

    # ------------------------------------------------------------------

    def _assign_ordered(self, axis_id: int, members: list[PlannedPersonnel]) -> list[PlannedPersonnel]:
        departure = self.departure_for(axis_id)
        if departure is None:
            logger.info("Axis %d: no departure point, ordering by explicit stop order", axis_id)
            return sorted(members, key=self._order_key)

        stops = self.stops_for(axis_id)
        if not stops:
            return sorted(members, key=_by_name)

        pickup_sequence = self._sort_from_departure(stops, departure)
        stops_by_id = {s.id: s for s in pickup_sequence}

        buckets: dict[int, list[PlannedPersonnel]] = {}
        unassigned: list[PlannedPersonnel] = []
        for row in members:
            if row.stop_id is not None and row.stop_id in stops_by_id:
                buckets.setdefault(row.stop_id, []).append(
                    self._annotate_assigned(row, stops_by_id[row.stop_id])
                )
                continue

            home = row.home
            nearest = find_nearest_stop(home, pickup_sequence) if home else None
            if nearest is not None:
                buckets.setdefault(nearest.stop.id, []).append(self._annotate_nearest(row, nearest))
                continue

            unassigned.append(replace(row, distance_km=None, optimized=False))

        ordered: list[PlannedPersonnel] = []
        for stop in pickup_sequence:
            if stop.id in buckets:
                ordered.extend(sorted(buckets[stop.id], key=_by_name))
        ordered.extend(unassigned)
        return ordered

    def _assign_nearest(self, axis_id: int | None, members: list[PlannedPersonnel]) -> list[PlannedPersonnel]:
        stops = self.stops_for(axis_id)
        if len(members) <= 1 or not stops:
            return sorted(members, key=_by_name)

        with_home = [r for r in members if r.home is not None]
        without_home = [r for r in members if r.home is None]

        annotated: list[PlannedPersonnel] = []
        for row in with_home:
            nearest = find_nearest_stop(row.home, stops)
            if nearest is None:
                annotated.append(replace(row, distance_km=None, optimized=False))
            else:
                annotated.append(self._annotate_nearest(row, nearest))
        for row in without_home:
            annotated.append(replace(row, distance_km=None, optimized=False))

        return sorted(annotated, key=self._distance_key)

    # ------------------------------------------------------------------

    @staticmethod
    def _sort_from_departure(stops: list[StopRef], departure: Point) -> list[StopRef]:
        """Physical pickup sequence; stops without coordinates go last."""
        def key(stop: StopRef) -> float:
            point = stop.point
            return haversine_km(departure, point) if point is not None else math.inf
        return sorted(stops, key=key)

    @staticmethod
    def _annotate_nearest(row: PlannedPersonnel, nearest: NearestStop) -> PlannedPersonnel:
        stop = nearest.stop
        return replace(
            row,
            stop_id=stop.id,
            stop_name=stop.name,
            stop_lat=stop.lat,
            stop_lon=stop.lon,
            stop_order=stop.order,
            distance_km=nearest.distance_km,
            optimized=True,
        )

    @staticmethod
    def _annotate_assigned(row: PlannedPersonnel, stop: StopRef) -> PlannedPersonnel:
        """Keep a staff-chosen stop; report the walking distance when known."""
        home, stop_point = row.home, stop.point
        distance = haversine_km(home, stop_point) if home and stop_point else None
        return replace(row, distance_km=distance, optimized=False)

    @staticmethod
    def _order_key(row: PlannedPersonnel) -> tuple[float, str]:
        order = row.explicit_order
        return (order if order is not None else math.inf, _by_name(row))

    @staticmethod
    def _distance_key(row: PlannedPersonnel) -> tuple[float, str]:
        distance = row.distance_km if row.distance_km is not None else math.inf
        return (distance, _by_name(row))

"""Tests for trip record helpers and LINESTRING conversion."""

import asyncio

from sqlalchemy.dialects import postgresql

from shuttle_ops.core.geo import Point
from shuttle_ops.core.trip_store import (
    SqlTripStore,
    TripFilters,
    TripRecord,
    is_fallback_path,
    line_to_path,
    path_to_line,
)

from fakes import make_trip


def test_fallback_detection():
    assert is_fallback_path(None)
    assert is_fallback_path([])
    assert is_fallback_path([[-18.91, 47.53], [-18.88, 47.50]])
    assert not is_fallback_path([[-18.91, 47.53], [-18.90, 47.52], [-18.88, 47.50]])


def test_needs_route():
    assert not make_trip(1).needs_route
    assert make_trip(1, with_route=False).needs_route
    assert make_trip(1, path=None).needs_route
    assert make_trip(1, distance_km=None).needs_route


def test_endpoints_validated():
    record = TripRecord(id=1, start_lat=-18.91, start_lon=47.53, end_lat=0.0, end_lon=0.0)
    assert record.start == Point(-18.91, 47.53)
    assert record.end is None


def test_linestring_stores_lon_lat():
    path = [[-18.91, 47.53], [-18.90, 47.52], [-18.88, 47.50]]
    element = path_to_line(path)
    assert element.srid == 4326
    assert line_to_path(element) == path
    assert line_to_path(None) is None


class CapturingSession:
    def __init__(self, result) -> None:
        self.result = result
        self.statements = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def scalar(self, stmt):
        self.statements.append(stmt)
        return self.result


def test_count_is_a_single_aggregate():
    session = CapturingSession(7)
    store = SqlTripStore(lambda: session)

    total = asyncio.run(store.count(TripFilters(employee_name="rakoto", status="planned")))

    assert total == 7
    sql = str(session.statements[0].compile(dialect=postgresql.dialect())).lower()
    assert sql.startswith("select count(trips.id)")
    assert "ilike" in sql
    assert "trips.status" in sql
    assert "limit" not in sql


def test_count_empty_result():
    store = SqlTripStore(lambda: CapturingSession(None))
    assert asyncio.run(store.count(TripFilters())) == 0

"""Tests for the HTTP layer over an in-memory trip store."""

import pytest
from fastapi.testclient import TestClient

from shuttle_ops.api import trips
from shuttle_ops.core.route_resolver import RetryPolicy, RouteResolver
from shuttle_ops.core.trip_service import TripService
from shuttle_ops.db.session import get_session
from shuttle_ops.main import app

from fakes import FakeProvider, FakeSleep, FakeTripStore, make_trip


@pytest.fixture
def store():
    store = FakeTripStore([make_trip(1, with_route=False), make_trip(2)])
    store.personnel = {1: "RAKOTO Jean"}
    resolver = RouteResolver(FakeProvider(fail=True), RetryPolicy(max_retries=1, sleep=FakeSleep()))
    trips.service = TripService(store, resolver, pacing_seconds=0, sleep=FakeSleep())
    yield store
    trips.service = None


@pytest.fixture
def client():
    # Not used as a context manager: the lifespan (database, scheduler) is skipped
    return TestClient(app)


def test_health(client):
    assert client.get("/api/health").json() == {"status": "ok"}


def test_get_trip_heals_route(store, client):
    resp = client.get("/api/trips/1")
    assert resp.status_code == 200
    body = resp.json()
    assert body["is_fallback_route"] is True
    assert body["coordinates"]["start"] == [-18.91, 47.53]
    assert len(body["coordinates"]["path"]) == 2
    assert body["duration_min"] >= 5
    assert store.saved == [1]


def test_get_trip_not_found(store, client):
    resp = client.get("/api/trips/99")
    assert resp.status_code == 404
    assert resp.json() == {"error": "Trip 99 not found"}


def test_list_trips_meta(store, client):
    body = client.get("/api/trips", params={"limit": 1}).json()
    assert body["meta"] == {"total": 2, "limit": 1, "offset": None}
    assert len(body["data"]) == 1


def test_create_trip_validation_error(store, client):
    resp = client.post("/api/trips", json={"start_lat": -18.91, "start_lng": 47.53})
    assert resp.status_code == 400
    assert resp.json()["error"].startswith("Employee required")


def test_create_trip(store, client):
    resp = client.post("/api/trips", json={
        "employee_id": 1,
        "start_lat": -18.91, "start_lng": 47.53,
        "end_lat": -18.80, "end_lng": 47.48,
    })
    assert resp.status_code == 201
    trip_id = resp.json()["id"]
    assert store.records[trip_id].is_fallback


def test_simulate_rejects_origin(store, client):
    resp = client.get("/api/trips/simulate", params={
        "start_lat": 0, "start_lng": 0, "end_lat": -18.80, "end_lng": 47.48,
    })
    assert resp.status_code == 400


def test_migrate(store, client):
    body = client.post("/api/trips/migrate").json()
    assert body["total"] == 1
    assert body["success"] == 1
    assert body["coverage"]["without_route"] == 0


def test_report_rejects_bad_date(client):
    async def no_session():
        yield None

    app.dependency_overrides[get_session] = no_session
    try:
        resp = client.get("/api/reports/planned-personnel", params={"date": "18/10/2026"})
    finally:
        app.dependency_overrides.clear()
    assert resp.status_code == 400

"""Tests for TripService: self-healing reads, creation and migration."""

import asyncio

import pytest

from shuttle_ops.core.departure import StopRef
from shuttle_ops.core.errors import NotFoundError, ValidationError
from shuttle_ops.core.geo import Point
from shuttle_ops.core.route_resolver import RetryPolicy, RouteResolver
from shuttle_ops.core.trip_service import TripService
from shuttle_ops.core.trip_store import TripFilters
from shuttle_ops.schemas.trip import TripCreate

from fakes import FakeProvider, FakeSleep, FakeTripStore, make_trip


class FakeGeocoder:
    def __init__(self, known: dict[str, Point] | None = None) -> None:
        self.known = known or {}
        self.calls: list[str] = []

    async def geocode(self, address):
        self.calls.append(address)
        return self.known.get(address)


def make_service(store, provider=None, geocoder=None, sleep=None) -> TripService:
    resolver = RouteResolver(provider or FakeProvider(), RetryPolicy(max_retries=3, sleep=FakeSleep()))
    return TripService(store, resolver, geocoder=geocoder, pacing_seconds=0.2, sleep=sleep or FakeSleep())


# Reads ------------------------------------------------------------------


def test_get_trip_with_route_is_untouched():
    store = FakeTripStore([make_trip(1)])
    provider = FakeProvider()
    record = asyncio.run(make_service(store, provider).get_trip(1))

    assert record.distance_km == 5.2
    assert provider.calls == 0
    assert store.saved == []


def test_get_trip_heals_missing_route_once():
    store = FakeTripStore([make_trip(1, with_route=False)])
    provider = FakeProvider()
    service = make_service(store, provider)

    async def run():
        first = await service.get_trip(1)
        second = await service.get_trip(1)
        return first, second

    first, second = asyncio.run(run())

    assert first.distance_km == 12.345
    assert len(first.path) == 3
    assert not first.is_fallback
    assert second.path == first.path
    assert provider.calls == 1
    assert store.saved == [1]


def test_get_trip_heals_with_fallback_when_routing_down():
    store = FakeTripStore([make_trip(1, with_route=False)])
    record = asyncio.run(make_service(store, FakeProvider(fail=True)).get_trip(1))

    assert record.is_fallback
    assert record.path == [[-18.91, 47.53], [-18.88, 47.50]]
    assert record.duration_min >= 5


def test_get_trip_missing():
    with pytest.raises(NotFoundError):
        asyncio.run(make_service(FakeTripStore()).get_trip(42))


def test_get_trip_without_coordinates():
    store = FakeTripStore([make_trip(1, with_route=False, start_lat=None, start_lon=None)])
    with pytest.raises(ValidationError, match="no valid coordinates"):
        asyncio.run(make_service(store).get_trip(1))


def test_concurrent_reads_share_one_computation():
    store = FakeTripStore([make_trip(7, with_route=False)])
    provider = FakeProvider()
    service = make_service(store, provider)

    async def run():
        return await asyncio.gather(*(service.get_trip(7) for _ in range(5)))

    records = asyncio.run(run())

    assert provider.calls == 1
    assert store.saved == [7]
    assert all(r.distance_km == 12.345 for r in records)
    assert service._inflight == {}


def test_cancelled_reader_does_not_cancel_shared_computation():
    class GatedProvider(FakeProvider):
        def __init__(self) -> None:
            super().__init__()
            self.gate = asyncio.Event()

        async def fetch_route(self, start, end):
            await self.gate.wait()
            return await super().fetch_route(start, end)

    store = FakeTripStore([make_trip(1, with_route=False)])

    async def run():
        provider = GatedProvider()
        service = make_service(store, provider)
        first = asyncio.create_task(service.get_trip(1))
        second = asyncio.create_task(service.get_trip(1))
        # Let both readers join the computation blocked on the gate
        for _ in range(3):
            await asyncio.sleep(0)
        first.cancel()
        provider.gate.set()
        results = await asyncio.gather(first, second, return_exceptions=True)
        return provider, results

    provider, (first, second) = asyncio.run(run())

    assert isinstance(first, asyncio.CancelledError)
    assert second.distance_km == 12.345
    assert len(second.path) == 3
    assert provider.calls == 1
    assert store.saved == [1]


def test_list_trips_heals_and_keeps_unlocatable_rows():
    store = FakeTripStore([
        make_trip(1),
        make_trip(2, with_route=False),
        make_trip(3, with_route=False, end_lat=0.0, end_lon=0.0),
    ])
    provider = FakeProvider()
    records = asyncio.run(make_service(store, provider).list_trips(TripFilters()))

    assert [r.id for r in records] == [1, 2, 3]
    assert records[1].distance_km == 12.345
    assert records[2].distance_km is None
    assert provider.calls == 1


def test_list_trips_survives_failed_route_write():
    store = FakeTripStore([
        make_trip(1, with_route=False),
        make_trip(2, with_route=False),
        make_trip(3),
    ])
    store.fail_save = {1}
    records = asyncio.run(make_service(store).list_trips())

    assert [r.id for r in records] == [1, 2, 3]
    assert records[0].needs_route
    assert records[1].distance_km == 12.345
    assert store.saved == [2]


def test_list_trips_refreshes_fallback_routes():
    store = FakeTripStore([
        make_trip(1, path=[[-18.91, 47.53], [-18.88, 47.50]]),
        make_trip(2),
    ])
    provider = FakeProvider()
    service = make_service(store, provider)

    plain = asyncio.run(service.list_trips())
    assert provider.calls == 0
    assert plain[0].is_fallback

    refreshed = asyncio.run(service.list_trips(refresh_fallback=True))
    assert provider.calls == 1
    assert not refreshed[0].is_fallback


def test_count_ignores_paging():
    store = FakeTripStore([make_trip(i) for i in range(1, 6)])
    service = make_service(store)
    assert asyncio.run(service.count_trips(TripFilters(limit=2, offset=1))) == 5
    assert store.search_calls == 0


# Creation ---------------------------------------------------------------


def make_store_with_catalog() -> FakeTripStore:
    store = FakeTripStore()
    store.personnel = {1: "RAKOTO Jean", 2: "RABE Hery"}
    store.stops = {
        10: StopRef(id=10, name="Analakely", lat=-18.905, lon=47.525, axis_id=1, order=1),
        11: StopRef(id=11, name="Broken", lat=0.0, lon=0.0, axis_id=1, order=2),
    }
    return store


def test_create_trip_from_stop_and_coordinates():
    store = make_store_with_catalog()
    form = TripCreate(employee_id=1, start_stop_id=10, end_lat=-18.88, end_lng=47.50, purpose="Mission")
    trip_id = asyncio.run(make_service(store).create_trip(form))

    record = store.records[trip_id]
    assert record.start_lat == -18.905 and record.start_lon == 47.525
    assert record.start_address == "Analakely"
    assert record.distance_km == 12.345
    assert len(record.path) == 3
    assert record.status == "planned"


def test_create_trip_by_name_and_geocoded_address():
    store = make_store_with_catalog()
    geocoder = FakeGeocoder({"Ivato": Point(-18.80, 47.48)})
    form = TripCreate(employee_name=" rabe ", start_stop_id=10, end_address="Ivato")
    trip_id = asyncio.run(make_service(store, geocoder=geocoder).create_trip(form))

    record = store.records[trip_id]
    assert record.personnel_id == 2
    assert record.end_lat == -18.80
    assert record.end_address == "Ivato"
    assert geocoder.calls == ["Ivato"]


def test_create_trip_stores_fallback_when_routing_down():
    store = make_store_with_catalog()
    form = TripCreate(employee_id=1, start_stop_id=10, end_lat=-18.88, end_lng=47.50)
    trip_id = asyncio.run(make_service(store, FakeProvider(fail=True)).create_trip(form))

    record = store.records[trip_id]
    assert record.is_fallback
    assert len(record.path) == 2


@pytest.mark.parametrize("form, message", [
    (TripCreate(start_stop_id=10, end_stop_id=10), "Employee required"),
    (TripCreate(employee_id=1, end_stop_id=10), "Start point required"),
    (TripCreate(employee_id=1, start_stop_id=10), "Destination required"),
    (TripCreate(employee_id=1, start_stop_id=10, end_address="Nowhere"), "Cannot geocode address: Nowhere"),
    (TripCreate(employee_id=1, start_stop_id=11, end_stop_id=10), "no valid coordinates"),
])
def test_create_trip_validation(form, message):
    store = make_store_with_catalog()
    service = make_service(store, geocoder=FakeGeocoder())
    with pytest.raises(ValidationError, match=message):
        asyncio.run(service.create_trip(form))
    assert store.records == {}


def test_create_trip_without_geocoder():
    store = make_store_with_catalog()
    form = TripCreate(employee_id=1, start_stop_id=10, end_address="Ivato")
    with pytest.raises(ValidationError, match="Cannot geocode"):
        asyncio.run(make_service(store).create_trip(form))


@pytest.mark.parametrize("form", [
    TripCreate(employee_id=99, start_stop_id=10, end_stop_id=10),
    TripCreate(employee_name="Nobody", start_stop_id=10, end_stop_id=10),
    TripCreate(employee_id=1, start_stop_id=404, end_stop_id=10),
])
def test_create_trip_unknown_references(form):
    with pytest.raises(NotFoundError):
        asyncio.run(make_service(make_store_with_catalog()).create_trip(form))


# Migration --------------------------------------------------------------


def test_migrate_all_with_routing_down():
    records = [make_trip(i, with_route=i not in (3, 6, 9)) for i in range(1, 11)]
    store = FakeTripStore(records)
    pacing = FakeSleep()
    service = make_service(store, FakeProvider(fail=True), sleep=pacing)

    report = asyncio.run(service.migrate_all())

    assert report.total == 3
    assert report.success == 3
    assert report.errors == []
    assert report.coverage.without_route == 0
    assert report.coverage.with_route == 10
    for trip_id in (3, 6, 9):
        assert store.records[trip_id].is_fallback
        assert len(store.records[trip_id].path) == 2
    # Paced between upstream calls, not before the first
    assert pacing.delays == [0.2, 0.2]


def test_migrate_all_collects_errors():
    store = FakeTripStore([
        make_trip(1, with_route=False),
        make_trip(2, with_route=False, start_lat=None, start_lon=None),
    ])
    report = asyncio.run(make_service(store).migrate_all())

    assert report.total == 2
    assert report.success == 1
    assert report.errors == ["Trip 2: Trip 2 has no valid coordinates"]
    assert report.coverage.without_route == 1


def test_migrate_all_nothing_to_do():
    store = FakeTripStore([make_trip(1), make_trip(2)])
    provider = FakeProvider()
    report = asyncio.run(make_service(store, provider).migrate_all())

    assert report.total == 0
    assert report.success == 0
    assert provider.calls == 0

import datetime

from pydantic import BaseModel


class TripCreate(BaseModel):
    employee_id: int | None = None
    employee_name: str | None = None
    start_stop_id: int | None = None
    start_lat: float | None = None
    start_lng: float | None = None
    start_address: str | None = None
    end_stop_id: int | None = None
    end_lat: float | None = None
    end_lng: float | None = None
    end_address: str | None = None
    start_time: datetime.datetime | None = None
    end_time: datetime.datetime | None = None
    purpose: str | None = None
    status: str = "planned"


class TripCoordinates(BaseModel):
    start: list[float] | None = None  # [lat, lng]
    end: list[float] | None = None
    path: list[list[float]] = []


class TripInfo(BaseModel):
    id: int
    employee: str | None = None
    start_location: str
    end_location: str
    start_time: str | None = None  # HH:MM
    end_time: str | None = None
    distance_km: float | None = None
    duration_min: int | None = None
    status: str | None = None
    purpose: str | None = None
    is_fallback_route: bool
    coordinates: TripCoordinates


class TripCreated(BaseModel):
    id: int
    message: str = "Trip created with resolved route"


class ListMeta(BaseModel):
    total: int
    limit: int | None = None
    offset: int | None = None


class TripList(BaseModel):
    data: list[TripInfo]
    meta: ListMeta


class RouteInfo(BaseModel):
    distance_km: float
    duration_min: int
    path: list[list[float]]  # [[lat, lng], ...]
    is_fallback: bool
    error: str | None = None


class RouteCoverageInfo(BaseModel):
    total: int
    with_route: int
    without_route: int


class MigrationReport(BaseModel):
    total: int
    success: int
    errors: list[str] = []
    backfilled: int = 0
    coverage: RouteCoverageInfo | None = None

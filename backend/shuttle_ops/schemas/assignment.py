from pydantic import BaseModel


class PickupEntry(BaseModel):
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
    stop_order: int | None = None
    axis_id: int | None = None
    axis_name: str | None = None
    pickup_time: str | None = None
    distance_km: float | None = None
    optimized: bool = False


class PickupMeta(BaseModel):
    date: str
    departure_time: str
    total: int
    optimized: int
    unassigned: int
    generated_at: str


class PickupReport(BaseModel):
    data: list[PickupEntry]
    metadata: PickupMeta

from pydantic import BaseModel, Field


class AxisInfo(BaseModel):
    id: int
    name: str
    departure: str | None = None


class DepartureInfo(BaseModel):
    axis_id: int
    lat: float | None = None
    lng: float | None = None
    resolved: bool


class StopInfo(BaseModel):
    id: int
    name: str
    lat: float | None = None
    lon: float | None = None
    axis_id: int | None = None
    order: int


class StopCreate(BaseModel):
    axis_id: int
    name: str = Field(min_length=1)
    lat: float | None = Field(default=None, ge=-90, le=90)
    lon: float | None = Field(default=None, ge=-180, le=180)

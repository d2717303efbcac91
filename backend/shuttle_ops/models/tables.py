import datetime

from geoalchemy2 import Geometry
from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shuttle_ops.models.base import Base


class Axis(Base):
    __tablename__ = "axes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    # Free text typed by staff, e.g. "-18.91, 47.53" or "120.5;-18.91"
    departure: Mapped[str | None] = mapped_column(String(255), nullable=True)

    stops: Mapped[list["Stop"]] = relationship(back_populates="axis", order_by="Stop.order")


class Stop(Base):
    __tablename__ = "stops"
    __table_args__ = (Index("ix_stops_axis_order", "axis_id", "order"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    lon: Mapped[float | None] = mapped_column(Float, nullable=True)
    axis_id: Mapped[int] = mapped_column(Integer, ForeignKey("axes.id"), nullable=False)
    order: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    axis: Mapped["Axis"] = relationship(back_populates="stops")


class Personnel(Base):
    __tablename__ = "personnel"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    registration: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    last_name: Mapped[str] = mapped_column(String(255), nullable=False)
    first_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    job_title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    lon: Mapped[float | None] = mapped_column(Float, nullable=True)
    stop_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("stops.id"), nullable=True)
    scheduled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class PickupSchedule(Base):
    __tablename__ = "pickup_schedule"
    __table_args__ = (Index("ix_schedule_day_time", "service_date", "departure_time"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    personnel_id: Mapped[int] = mapped_column(Integer, ForeignKey("personnel.id"), nullable=False)
    service_date: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    departure_time: Mapped[datetime.time] = mapped_column(Time, nullable=False)


class Trip(Base):
    __tablename__ = "trips"
    __table_args__ = (Index("ix_trips_start_time", "start_time"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    personnel_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("personnel.id"), nullable=True)
    start_stop_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("stops.id"), nullable=True)
    end_stop_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("stops.id"), nullable=True)
    start_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    end_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    start_lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    start_lon: Mapped[float | None] = mapped_column(Float, nullable=True)
    end_lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    end_lon: Mapped[float | None] = mapped_column(Float, nullable=True)
    start_time: Mapped[datetime.datetime | None] = mapped_column(DateTime, nullable=True)
    end_time: Mapped[datetime.datetime | None] = mapped_column(DateTime, nullable=True)
    purpose: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="planned")
    distance_km: Mapped[float | None] = mapped_column(Float, nullable=True)
    duration_min: Mapped[int | None] = mapped_column(Integer, nullable=True)
    path = mapped_column(Geometry("LINESTRING", srid=4326), nullable=True)  # (lon, lat) vertices
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )
    deleted_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

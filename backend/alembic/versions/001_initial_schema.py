"""Create axes, stops, personnel, pickup_schedule and trips tables.

Revision ID: 001
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa
from geoalchemy2 import Geometry

revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS postgis")
    op.create_table(
        "axes",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("departure", sa.String(255), nullable=True),
    )
    op.create_table(
        "stops",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("lat", sa.Float, nullable=True),
        sa.Column("lon", sa.Float, nullable=True),
        sa.Column("axis_id", sa.Integer, sa.ForeignKey("axes.id"), nullable=False),
        sa.Column("order", sa.Integer, nullable=False, server_default="1"),
    )
    op.create_index("ix_stops_axis_order", "stops", ["axis_id", "order"])
    op.create_table(
        "personnel",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("registration", sa.String(50), nullable=False, server_default=""),
        sa.Column("last_name", sa.String(255), nullable=False),
        sa.Column("first_name", sa.String(255), nullable=False, server_default=""),
        sa.Column("job_title", sa.String(255), nullable=True),
        sa.Column("lat", sa.Float, nullable=True),
        sa.Column("lon", sa.Float, nullable=True),
        sa.Column("stop_id", sa.Integer, sa.ForeignKey("stops.id"), nullable=True),
        sa.Column("scheduled", sa.Boolean, nullable=False, server_default=sa.true()),
    )
    op.create_table(
        "pickup_schedule",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("personnel_id", sa.Integer, sa.ForeignKey("personnel.id"), nullable=False),
        sa.Column("service_date", sa.Date, nullable=False),
        sa.Column("departure_time", sa.Time, nullable=False),
    )
    op.create_index("ix_schedule_day_time", "pickup_schedule", ["service_date", "departure_time"])
    op.create_table(
        "trips",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("personnel_id", sa.Integer, sa.ForeignKey("personnel.id"), nullable=True),
        sa.Column("start_stop_id", sa.Integer, sa.ForeignKey("stops.id"), nullable=True),
        sa.Column("end_stop_id", sa.Integer, sa.ForeignKey("stops.id"), nullable=True),
        sa.Column("start_address", sa.Text, nullable=True),
        sa.Column("end_address", sa.Text, nullable=True),
        sa.Column("start_lat", sa.Float, nullable=True),
        sa.Column("start_lon", sa.Float, nullable=True),
        sa.Column("end_lat", sa.Float, nullable=True),
        sa.Column("end_lon", sa.Float, nullable=True),
        sa.Column("start_time", sa.DateTime, nullable=True),
        sa.Column("end_time", sa.DateTime, nullable=True),
        sa.Column("purpose", sa.String(255), nullable=True),
        sa.Column("status", sa.String(50), nullable=False, server_default="planned"),
        sa.Column("distance_km", sa.Float, nullable=True),
        sa.Column("duration_min", sa.Integer, nullable=True),
        sa.Column("path", Geometry("LINESTRING", srid=4326), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_trips_start_time", "trips", ["start_time"])


def downgrade() -> None:
    op.drop_index("ix_trips_start_time", table_name="trips")
    op.drop_table("trips")
    op.drop_index("ix_schedule_day_time", table_name="pickup_schedule")
    op.drop_table("pickup_schedule")
    op.drop_table("personnel")
    op.drop_index("ix_stops_axis_order", table_name="stops")
    op.drop_table("stops")
    op.drop_table("axes")

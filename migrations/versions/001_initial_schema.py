"""Initial schema: rides, driver profiles, contacts, location trail, alerts.

Revision ID: 001
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # ── rides ─────────────────────────────────────────────────────────
    op.create_table(
        "rides",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("rider_id", sa.String(64), nullable=False),
        sa.Column("driver_id", sa.String(64), nullable=True),
        sa.Column("pickup_address", sa.Text, nullable=False),
        sa.Column("pickup_latitude", sa.Float, nullable=False),
        sa.Column("pickup_longitude", sa.Float, nullable=False),
        sa.Column("destination_address", sa.Text, nullable=False),
        sa.Column("destination_latitude", sa.Float, nullable=False),
        sa.Column("destination_longitude", sa.Float, nullable=False),
        sa.Column(
            "ride_type",
            sa.Enum("volunteer", "weekday", "drive_back", name="ride_type"),
            nullable=False,
        ),
        sa.Column(
            "status",
            sa.Enum(
                "requested",
                "accepted",
                "in_progress",
                "completed",
                "cancelled",
                "emergency",
                name="ride_status",
            ),
            default="requested",
            nullable=False,
        ),
        sa.Column("scheduled_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("fare_amount", sa.Numeric(10, 2), nullable=True),
        sa.Column(
            "payment_status",
            sa.Enum("pending", "paid", "failed", name="payment_status"),
            nullable=True,
        ),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "idx_rides_available", "rides", ["status", "driver_id", "created_at"]
    )
    op.create_index("idx_rides_rider", "rides", ["rider_id"])
    op.create_index("idx_rides_driver", "rides", ["driver_id"])

    # ── driver_info ───────────────────────────────────────────────────
    op.create_table(
        "driver_info",
        sa.Column("user_id", sa.String(64), primary_key=True),
        sa.Column("vehicle_make", sa.String(64), nullable=True),
        sa.Column("vehicle_model", sa.String(64), nullable=True),
        sa.Column("vehicle_year", sa.Integer, nullable=True),
        sa.Column("vehicle_color", sa.String(32), nullable=True),
        sa.Column("license_plate", sa.String(16), nullable=True),
        sa.Column(
            "verification_status",
            sa.Enum("pending", "verified", "rejected", name="verification_status"),
            default="pending",
            nullable=False,
        ),
        sa.Column(
            "background_check_status",
            sa.Enum("pending", "approved", "rejected", name="background_check_status"),
            default="pending",
            nullable=False,
        ),
        sa.Column("is_available", sa.Boolean, default=False, nullable=False),
        sa.Column("availability_volunteer", sa.Boolean, default=False, nullable=False),
        sa.Column("availability_weekday", sa.Boolean, default=False, nullable=False),
        sa.Column("total_earnings", sa.Numeric(12, 2), default=0, nullable=False),
        sa.Column("total_rides", sa.Integer, default=0, nullable=False),
        sa.Column("rating", sa.Float, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )

    # ── emergency_contacts ────────────────────────────────────────────
    op.create_table(
        "emergency_contacts",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("phone", sa.String(32), nullable=False),
        sa.Column("relationship", sa.String(64), nullable=False),
        sa.Column("priority", sa.Integer, default=1, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "idx_contacts_user_priority", "emergency_contacts", ["user_id", "priority"]
    )

    # ── ride_locations ────────────────────────────────────────────────
    op.create_table(
        "ride_locations",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("ride_id", sa.String(36), sa.ForeignKey("rides.id"), nullable=False),
        sa.Column("driver_latitude", sa.Float, nullable=False),
        sa.Column("driver_longitude", sa.Float, nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "idx_ride_locations_ride", "ride_locations", ["ride_id", "timestamp"]
    )

    # ── emergency_alerts ──────────────────────────────────────────────
    op.create_table(
        "emergency_alerts",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("ride_id", sa.String(36), sa.ForeignKey("rides.id"), nullable=True),
        sa.Column("latitude", sa.Float, nullable=True),
        sa.Column("longitude", sa.Float, nullable=True),
        sa.Column(
            "status",
            sa.Enum("pending", "dispatched", name="alert_status"),
            default="pending",
            nullable=False,
        ),
        sa.Column("attempts", sa.Integer, default=0, nullable=False),
        sa.Column("last_error", sa.Text, nullable=True),
        sa.Column("next_attempt_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("dispatched_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "idx_alerts_due", "emergency_alerts", ["status", "next_attempt_at"]
    )


def downgrade() -> None:
    op.drop_table("emergency_alerts")
    op.drop_table("ride_locations")
    op.drop_table("emergency_contacts")
    op.drop_table("driver_info")
    op.drop_table("rides")
    op.execute("DROP TYPE IF EXISTS alert_status")
    op.execute("DROP TYPE IF EXISTS background_check_status")
    op.execute("DROP TYPE IF EXISTS verification_status")
    op.execute("DROP TYPE IF EXISTS payment_status")
    op.execute("DROP TYPE IF EXISTS ride_status")
    op.execute("DROP TYPE IF EXISTS ride_type")

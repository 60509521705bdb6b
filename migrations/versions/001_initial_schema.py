"""Initial freight marketplace schema.

Revision ID: 001
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa


revision = "001"
down_revision = None
branch_labels = None
depends_on = None

LOAD_STATUS = sa.Enum(
    "DRAFT",
    "OPEN",
    "BIDDING_CLOSED",
    "ASSIGNED",
    "IN_TRANSIT",
    "DELIVERED",
    "CANCELLED",
    name="loadstatus",
)
BID_STATUS = sa.Enum("PENDING", "ACCEPTED", "REJECTED", "WITHDRAWN", name="bidstatus")
TRIP_STATUS = sa.Enum(
    "SCHEDULED", "IN_PROGRESS", "COMPLETED", "CANCELLED", name="tripstatus"
)
VEHICLE_TYPE = sa.Enum(
    "PICKUP",
    "SMALL_TRUCK",
    "MEDIUM_TRUCK",
    "LARGE_TRUCK",
    "FLATBED",
    "REFRIGERATED",
    "CONTAINER",
    name="vehicletype",
)
PAYMENT_METHOD = sa.Enum(
    "CASH", "ECOCASH", "ONEMONEY", "BANK_TRANSFER", "CARD", name="paymentmethod"
)
PLAN_TYPE = sa.Enum("FREE", "STARTER", "PROFESSIONAL", "BUSINESS", name="plantype")
SUBSCRIPTION_STATUS = sa.Enum(
    "TRIAL", "ACTIVE", "CANCELLED", "EXPIRED", name="subscriptionstatus"
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # ── users ─────────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("email", sa.String(255), unique=True, nullable=False),
        sa.Column("phone_number", sa.String(32), nullable=True),
        sa.Column("rating", sa.Float, default=5.0),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # ── subscriptions ─────────────────────────────────────────────────
    op.create_table(
        "subscriptions",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "user_id", sa.Integer, sa.ForeignKey("users.id"), unique=True, nullable=False
        ),
        sa.Column("plan", PLAN_TYPE, nullable=False, server_default="FREE"),
        sa.Column("status", SUBSCRIPTION_STATUS, nullable=False, server_default="ACTIVE"),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("trial_end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("loads_posted_this_period", sa.Integer, nullable=False, server_default="0"),
        sa.Column("bids_placed_this_period", sa.Integer, nullable=False, server_default="0"),
        sa.Column("last_reset_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        *_timestamps(),
    )

    # ── vehicles ──────────────────────────────────────────────────────
    op.create_table(
        "vehicles",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("owner_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("vehicle_type", VEHICLE_TYPE, nullable=False),
        sa.Column("plate_number", sa.String(20), nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("idx_vehicles_owner", "vehicles", ["owner_id"])

    # ── loads ─────────────────────────────────────────────────────────
    op.create_table(
        "loads",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("owner_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("cargo_type", sa.String(100), nullable=False),
        sa.Column("weight", sa.Float, nullable=False),
        sa.Column("volume", sa.Float, nullable=True),
        sa.Column("pickup_address", sa.String(255), nullable=False),
        sa.Column("pickup_city", sa.String(120), nullable=False),
        sa.Column("pickup_province", sa.String(120), nullable=True),
        sa.Column("pickup_lat", sa.Float, nullable=False),
        sa.Column("pickup_lng", sa.Float, nullable=False),
        sa.Column("pickup_cell", sa.String(20), nullable=False),
        sa.Column("delivery_address", sa.String(255), nullable=False),
        sa.Column("delivery_city", sa.String(120), nullable=False),
        sa.Column("delivery_province", sa.String(120), nullable=True),
        sa.Column("delivery_lat", sa.Float, nullable=False),
        sa.Column("delivery_lng", sa.Float, nullable=False),
        sa.Column("pickup_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("delivery_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("suggested_price", sa.Float, nullable=True),
        sa.Column("currency", sa.String(3), nullable=False, server_default="USD"),
        sa.Column("vehicle_types", sa.JSON, nullable=False),
        sa.Column("requires_insurance", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("fragile", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("status", LOAD_STATUS, nullable=False, server_default="DRAFT"),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("view_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("cancel_reason", sa.String(500), nullable=True),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        *_timestamps(),
    )
    op.create_index("idx_loads_status", "loads", ["status"])
    op.create_index("idx_loads_owner", "loads", ["owner_id"])
    op.create_index("idx_loads_pickup_cell", "loads", ["pickup_cell"])
    op.create_index("idx_loads_published", "loads", ["published_at"])

    # ── bids ──────────────────────────────────────────────────────────
    op.create_table(
        "bids",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "load_id",
            sa.Integer,
            sa.ForeignKey("loads.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("driver_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("vehicle_id", sa.Integer, sa.ForeignKey("vehicles.id"), nullable=True),
        sa.Column("proposed_price", sa.Float, nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="USD"),
        sa.Column("message", sa.String(1000), nullable=True),
        sa.Column("estimated_duration_hours", sa.Float, nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", BID_STATUS, nullable=False, server_default="PENDING"),
        sa.Column("reject_reason", sa.String(500), nullable=True),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        *_timestamps(),
    )
    op.create_index("idx_bids_load", "bids", ["load_id"])
    op.create_index("idx_bids_driver", "bids", ["driver_id"])
    op.create_index("idx_bids_status", "bids", ["status"])
    op.create_index(
        "uq_bids_active_driver",
        "bids",
        ["load_id", "driver_id"],
        unique=True,
        postgresql_where=sa.text("status <> 'WITHDRAWN'"),
    )

    # ── trips ─────────────────────────────────────────────────────────
    op.create_table(
        "trips",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("load_id", sa.Integer, sa.ForeignKey("loads.id"), nullable=False),
        sa.Column("bid_id", sa.Integer, sa.ForeignKey("bids.id"), nullable=False),
        sa.Column("driver_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("status", TRIP_STATUS, nullable=False, server_default="SCHEDULED"),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("current_lat", sa.Float, nullable=True),
        sa.Column("current_lng", sa.Float, nullable=True),
        sa.Column("current_location_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("agreed_price", sa.Float, nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="USD"),
        sa.Column("payment_method", PAYMENT_METHOD, nullable=True),
        sa.Column("payment_completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("proof_of_pickup", sa.String(1024), nullable=True),
        sa.Column("proof_of_delivery", sa.String(1024), nullable=True),
        sa.Column("signature", sa.String(1024), nullable=True),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("cancel_reason", sa.String(500), nullable=True),
        sa.Column("cancelled_by", sa.Integer, nullable=True),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        *_timestamps(),
    )
    op.create_index("idx_trips_driver", "trips", ["driver_id"])
    op.create_index("idx_trips_status", "trips", ["status"])
    op.create_index(
        "uq_trips_live_load",
        "trips",
        ["load_id"],
        unique=True,
        postgresql_where=sa.text("status <> 'CANCELLED'"),
    )
    op.create_index(
        "uq_trips_live_bid",
        "trips",
        ["bid_id"],
        unique=True,
        postgresql_where=sa.text("status <> 'CANCELLED'"),
    )

    # ── trip_locations ────────────────────────────────────────────────
    op.create_table(
        "trip_locations",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("trip_id", sa.Integer, sa.ForeignKey("trips.id"), nullable=False),
        sa.Column("latitude", sa.Float, nullable=False),
        sa.Column("longitude", sa.Float, nullable=False),
        sa.Column("recorded_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("address", sa.String(255), nullable=True),
        sa.Column("speed", sa.Float, nullable=True),
        sa.Column("bearing", sa.Float, nullable=True),
        sa.Column("accuracy", sa.Float, nullable=True),
    )
    op.create_index("idx_trip_locations_trip", "trip_locations", ["trip_id", "id"])

    # ── saved_searches ────────────────────────────────────────────────
    op.create_table(
        "saved_searches",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("filters", sa.JSON, nullable=False),
        sa.Column("notify_on_new", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("idx_saved_searches_user", "saved_searches", ["user_id"])
    op.create_index("idx_saved_searches_notify", "saved_searches", ["notify_on_new"])

    # ── load_templates ────────────────────────────────────────────────
    op.create_table(
        "load_templates",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("cargo_type", sa.String(100), nullable=False),
        sa.Column("weight", sa.Float, nullable=True),
        sa.Column("volume", sa.Float, nullable=True),
        sa.Column("pickup", sa.JSON, nullable=False),
        sa.Column("delivery", sa.JSON, nullable=False),
        sa.Column("vehicle_types", sa.JSON, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("idx_load_templates_user", "load_templates", ["user_id"])


def downgrade() -> None:
    op.drop_table("load_templates")
    op.drop_table("saved_searches")
    op.drop_table("trip_locations")
    op.drop_table("trips")
    op.drop_table("bids")
    op.drop_table("loads")
    op.drop_table("vehicles")
    op.drop_table("subscriptions")
    op.drop_table("users")
    for enum in (
        SUBSCRIPTION_STATUS,
        PLAN_TYPE,
        PAYMENT_METHOD,
        VEHICLE_TYPE,
        TRIP_STATUS,
        BID_STATUS,
        LOAD_STATUS,
    ):
        enum.drop(op.get_bind(), checkfirst=True)

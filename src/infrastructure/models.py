"""
SQLAlchemy ORM models.

Tables
------
* ``users``          -- marketplace accounts (cargo owners and drivers)
* ``subscriptions``  -- plan + per-period quota counters (1:1 with users)
* ``vehicles``       -- driver vehicles offered with bids
* ``loads``          -- shipment requests
* ``bids``           -- driver offers against a load
* ``trips``          -- fulfilment record of an accepted bid
* ``trip_locations`` -- append-only route log of a trip
* ``saved_searches`` -- driver search subscriptions for new-load alerts
* ``load_templates`` -- reusable load drafts (cargo, route, vehicle types)

Records reference each other by foreign-key columns only; there are no ORM
relationships, navigation is by repository lookup.

Concurrency
-----------
``loads``, ``bids``, ``trips`` and ``subscriptions`` carry a ``version``
column wired as SQLAlchemy's ``version_id_col``: every UPDATE is issued as
``... WHERE id = :id AND version = :seen`` and a lost race raises
``StaleDataError``.

Partial unique indexes enforce the single-winner rules in the database:

* ``uq_trips_live_load`` / ``uq_trips_live_bid`` -- one non-cancelled trip
  per load and per bid.
* ``uq_bids_active_driver`` -- one non-withdrawn bid per (load, driver).
"""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)

from .database import Base
from .types import UTCDateTime, utcnow
from src.config import settings
from src.domain.enums import (
    BidStatus,
    LoadStatus,
    PaymentMethod,
    PlanType,
    SubscriptionStatus,
    TripStatus,
    VehicleType,
)


class UserModel(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(120), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    phone_number = Column(String(32), nullable=True)
    rating = Column(Float, default=5.0)
    created_at = Column(UTCDateTime, default=utcnow)


class SubscriptionModel(Base):
    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
    plan = Column(Enum(PlanType), default=PlanType.FREE, nullable=False)
    status = Column(
        Enum(SubscriptionStatus), default=SubscriptionStatus.ACTIVE, nullable=False
    )
    started_at = Column(UTCDateTime, nullable=True)
    trial_end_date = Column(UTCDateTime, nullable=True)
    end_date = Column(UTCDateTime, nullable=True)

    loads_posted_this_period = Column(Integer, default=0, nullable=False)
    bids_placed_this_period = Column(Integer, default=0, nullable=False)
    last_reset_date = Column(UTCDateTime, nullable=True)

    version = Column(Integer, nullable=False)
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"version_id_col": version}


class VehicleModel(Base):
    __tablename__ = "vehicles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    vehicle_type = Column(Enum(VehicleType), nullable=False)
    plate_number = Column(String(20), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(UTCDateTime, default=utcnow)

    __table_args__ = (Index("idx_vehicles_owner", "owner_id"),)


class LoadModel(Base):
    __tablename__ = "loads"

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    cargo_type = Column(String(100), nullable=False)
    weight = Column(Float, nullable=False)
    volume = Column(Float, nullable=True)

    pickup_address = Column(String(255), nullable=False)
    pickup_city = Column(String(120), nullable=False)
    pickup_province = Column(String(120), nullable=True)
    pickup_lat = Column(Float, nullable=False)
    pickup_lng = Column(Float, nullable=False)
    # H3 cell of the pickup point, pre-filter for radius searches
    pickup_cell = Column(String(20), nullable=False)

    delivery_address = Column(String(255), nullable=False)
    delivery_city = Column(String(120), nullable=False)
    delivery_province = Column(String(120), nullable=True)
    delivery_lat = Column(Float, nullable=False)
    delivery_lng = Column(Float, nullable=False)

    pickup_date = Column(UTCDateTime, nullable=False)
    delivery_date = Column(UTCDateTime, nullable=True)
    suggested_price = Column(Float, nullable=True)
    currency = Column(String(3), default=settings.default_currency, nullable=False)
    vehicle_types = Column(JSON, nullable=False, default=list)
    requires_insurance = Column(Boolean, default=False, nullable=False)
    fragile = Column(Boolean, default=False, nullable=False)

    status = Column(Enum(LoadStatus), default=LoadStatus.DRAFT, nullable=False)
    published_at = Column(UTCDateTime, nullable=True)
    expires_at = Column(UTCDateTime, nullable=True)
    view_count = Column(Integer, default=0, nullable=False)
    cancel_reason = Column(String(500), nullable=True)

    version = Column(Integer, nullable=False)
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("idx_loads_status", "status"),
        Index("idx_loads_owner", "owner_id"),
        Index("idx_loads_pickup_cell", "pickup_cell"),
        Index("idx_loads_published", "published_at"),
    )


class BidModel(Base):
    __tablename__ = "bids"

    id = Column(Integer, primary_key=True, autoincrement=True)
    load_id = Column(
        Integer, ForeignKey("loads.id", ondelete="CASCADE"), nullable=False
    )
    driver_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id"), nullable=True)

    proposed_price = Column(Float, nullable=False)
    currency = Column(String(3), default=settings.default_currency, nullable=False)
    message = Column(String(1000), nullable=True)
    estimated_duration_hours = Column(Float, nullable=True)
    expires_at = Column(UTCDateTime, nullable=True)

    status = Column(Enum(BidStatus), default=BidStatus.PENDING, nullable=False)
    reject_reason = Column(String(500), nullable=True)

    version = Column(Integer, nullable=False)
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("idx_bids_load", "load_id"),
        Index("idx_bids_driver", "driver_id"),
        Index("idx_bids_status", "status"),
        Index(
            "uq_bids_active_driver",
            "load_id",
            "driver_id",
            unique=True,
            postgresql_where=text("status <> 'WITHDRAWN'"),
            sqlite_where=text("status <> 'WITHDRAWN'"),
        ),
    )


class TripModel(Base):
    __tablename__ = "trips"

    id = Column(Integer, primary_key=True, autoincrement=True)
    load_id = Column(Integer, ForeignKey("loads.id"), nullable=False)
    bid_id = Column(Integer, ForeignKey("bids.id"), nullable=False)
    driver_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    status = Column(Enum(TripStatus), default=TripStatus.SCHEDULED, nullable=False)
    start_time = Column(UTCDateTime, nullable=True)
    end_time = Column(UTCDateTime, nullable=True)

    current_lat = Column(Float, nullable=True)
    current_lng = Column(Float, nullable=True)
    current_location_at = Column(UTCDateTime, nullable=True)

    # Snapshot of the accepted bid, never updated afterwards
    agreed_price = Column(Float, nullable=False)
    currency = Column(String(3), default=settings.default_currency, nullable=False)

    payment_method = Column(Enum(PaymentMethod), nullable=True)
    payment_completed_at = Column(UTCDateTime, nullable=True)
    proof_of_pickup = Column(String(1024), nullable=True)
    proof_of_delivery = Column(String(1024), nullable=True)
    signature = Column(String(1024), nullable=True)
    notes = Column(Text, nullable=True)
    cancel_reason = Column(String(500), nullable=True)
    cancelled_by = Column(Integer, nullable=True)

    version = Column(Integer, nullable=False)
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("idx_trips_driver", "driver_id"),
        Index("idx_trips_status", "status"),
        Index(
            "uq_trips_live_load",
            "load_id",
            unique=True,
            postgresql_where=text("status <> 'CANCELLED'"),
            sqlite_where=text("status <> 'CANCELLED'"),
        ),
        Index(
            "uq_trips_live_bid",
            "bid_id",
            unique=True,
            postgresql_where=text("status <> 'CANCELLED'"),
            sqlite_where=text("status <> 'CANCELLED'"),
        ),
    )


class TripLocationModel(Base):
    """One route-log sample.  Rows are only ever inserted."""

    __tablename__ = "trip_locations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    trip_id = Column(Integer, ForeignKey("trips.id"), nullable=False)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    recorded_at = Column(UTCDateTime, nullable=False)
    address = Column(String(255), nullable=True)
    speed = Column(Float, nullable=True)
    bearing = Column(Float, nullable=True)
    accuracy = Column(Float, nullable=True)

    __table_args__ = (Index("idx_trip_locations_trip", "trip_id", "id"),)


class SavedSearchModel(Base):
    __tablename__ = "saved_searches"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    name = Column(String(120), nullable=False)
    filters = Column(JSON, nullable=False, default=dict)
    notify_on_new = Column(Boolean, default=True, nullable=False)
    created_at = Column(UTCDateTime, default=utcnow)

    __table_args__ = (
        Index("idx_saved_searches_user", "user_id"),
        Index("idx_saved_searches_notify", "notify_on_new"),
    )


class LoadTemplateModel(Base):
    __tablename__ = "load_templates"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    name = Column(String(120), nullable=False)
    description = Column(Text, nullable=True)
    cargo_type = Column(String(100), nullable=False)
    weight = Column(Float, nullable=True)
    volume = Column(Float, nullable=True)
    # Place dicts: address, city, latitude, longitude, province
    pickup = Column(JSON, nullable=False)
    delivery = Column(JSON, nullable=False)
    vehicle_types = Column(JSON, nullable=False, default=list)
    created_at = Column(UTCDateTime, default=utcnow)

    __table_args__ = (Index("idx_load_templates_user", "user_id"),)

"""
Domain entities with business logic.

Patterns used
-------------
- **State Pattern** on ``Load``, ``Bid`` and ``Trip``: each enforces its
  lifecycle transitions through the tables in ``enums``.
- Entities reference each other by id only (``Bid.load_id``,
  ``Trip.load_id`` / ``Trip.bid_id``); navigation is by lookup.
- ``LoadSpec.validate`` encapsulates the input invariants of a load.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from .enums import (
    BID_TRANSITIONS,
    EDITABLE_LOAD_STATUSES,
    LOAD_TRANSITIONS,
    TRIP_TRANSITIONS,
    BidStatus,
    LoadStatus,
    TripStatus,
    VehicleType,
)
from .errors import InvalidState, ValidationError


def ensure_transition(entity: str, current, new, table: dict) -> None:
    """Raise ``InvalidState`` unless *current* -> *new* is in *table*."""
    if new not in table.get(current, set()):
        raise InvalidState(
            f"Cannot transition {entity} from {_name(current)} to {_name(new)}"
        )


def _name(status) -> str:
    return status.value if hasattr(status, "value") else str(status)


def non_nullable_fields(cls) -> frozenset[str]:
    """Fields of dataclass *cls* that have no ``None`` default."""
    return frozenset(f.name for f in dataclasses.fields(cls) if f.default is not None)


def reject_nulls(patch: dict[str, Any], required: frozenset[str]) -> None:
    """Raise ``ValidationError`` if *patch* clears any field in *required*."""
    cleared = sorted(name for name in required if name in patch and patch[name] is None)
    if cleared:
        raise ValidationError(f"{', '.join(cleared)} cannot be null")


# ── Value Objects ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class Location:
    latitude: float
    longitude: float

    def validate(self, label: str = "location") -> None:
        if not -90 <= self.latitude <= 90:
            raise ValidationError(f"{label} latitude out of range")
        if not -180 <= self.longitude <= 180:
            raise ValidationError(f"{label} longitude out of range")


@dataclass(frozen=True)
class Place:
    address: str
    city: str
    latitude: float
    longitude: float
    province: Optional[str] = None

    @property
    def location(self) -> Location:
        return Location(self.latitude, self.longitude)

    def validate(self, label: str) -> None:
        if not self.address or not self.city:
            raise ValidationError(f"{label} address and city are required")
        self.location.validate(label)


@dataclass(frozen=True)
class RoutePoint:
    """One sample of a trip's route log."""

    latitude: float
    longitude: float
    recorded_at: datetime
    address: Optional[str] = None
    speed: Optional[float] = None
    bearing: Optional[float] = None
    accuracy: Optional[float] = None

    def validate(self) -> None:
        Location(self.latitude, self.longitude).validate("route point")
        if self.speed is not None and self.speed < 0:
            raise ValidationError("speed cannot be negative")


@dataclass(frozen=True)
class LoadSpec:
    """Everything an owner supplies when drafting a load."""

    title: str
    cargo_type: str
    weight: float
    pickup: Place
    delivery: Place
    pickup_date: datetime
    vehicle_types: frozenset[VehicleType]
    description: Optional[str] = None
    volume: Optional[float] = None
    delivery_date: Optional[datetime] = None
    suggested_price: Optional[float] = None
    currency: str = "USD"
    requires_insurance: bool = False
    fragile: bool = False
    expires_at: Optional[datetime] = None

    def validate(self) -> None:
        if not self.title or not self.title.strip():
            raise ValidationError("title is required")
        if not self.cargo_type or not self.cargo_type.strip():
            raise ValidationError("cargo_type is required")
        if self.weight <= 0:
            raise ValidationError("weight must be positive")
        if self.volume is not None and self.volume <= 0:
            raise ValidationError("volume must be positive")
        if not self.vehicle_types:
            raise ValidationError("at least one vehicle type is required")
        if self.suggested_price is not None and self.suggested_price <= 0:
            raise ValidationError("suggested_price must be positive")
        if not self.currency or len(self.currency) != 3:
            raise ValidationError("currency must be a 3-letter code")
        if self.delivery_date is not None and self.delivery_date < self.pickup_date:
            raise ValidationError("delivery_date cannot precede pickup_date")
        self.pickup.validate("pickup")
        self.delivery.validate("delivery")


# ── Entities ──────────────────────────────────────────────────────────


@dataclass
class Load:
    id: Optional[int] = None
    owner_id: int = 0
    title: str = ""
    cargo_type: str = ""
    weight: float = 0.0
    pickup: Optional[Place] = None
    delivery: Optional[Place] = None
    pickup_date: Optional[datetime] = None
    vehicle_types: frozenset[VehicleType] = field(default_factory=frozenset)
    suggested_price: Optional[float] = None
    description: Optional[str] = None
    status: LoadStatus = LoadStatus.DRAFT
    published_at: Optional[datetime] = None

    @property
    def is_editable(self) -> bool:
        return self.status in EDITABLE_LOAD_STATUSES

    def transition_to(self, new_status: LoadStatus) -> None:
        """Move to *new_status* if the transition is legal, else raise."""
        ensure_transition("load", self.status, new_status, LOAD_TRANSITIONS)
        self.status = new_status

    def reopen(self) -> None:
        """Roll an assigned / in-transit load back to OPEN (trip cancelled)."""
        if self.status not in (LoadStatus.ASSIGNED, LoadStatus.IN_TRANSIT):
            raise InvalidState(f"Cannot reopen load in status {self.status.value}")
        self.status = LoadStatus.OPEN


@dataclass
class Bid:
    id: Optional[int] = None
    load_id: int = 0
    driver_id: int = 0
    proposed_price: float = 0.0
    currency: str = "USD"
    vehicle_id: Optional[int] = None
    status: BidStatus = BidStatus.PENDING

    def transition_to(self, new_status: BidStatus) -> None:
        ensure_transition("bid", self.status, new_status, BID_TRANSITIONS)
        self.status = new_status

    def reopen(self) -> None:
        """Un-accept the bid when its trip is cancelled."""
        if self.status != BidStatus.ACCEPTED:
            raise InvalidState(f"Cannot reopen bid in status {self.status.value}")
        self.status = BidStatus.PENDING


@dataclass
class Trip:
    id: Optional[int] = None
    load_id: int = 0
    bid_id: int = 0
    driver_id: int = 0
    agreed_price: float = 0.0
    status: TripStatus = TripStatus.SCHEDULED

    def transition_to(self, new_status: TripStatus) -> None:
        ensure_transition("trip", self.status, new_status, TRIP_TRANSITIONS)
        self.status = new_status

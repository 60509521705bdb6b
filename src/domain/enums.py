"""Domain enumerations and state-transition rules."""

import enum


class LoadStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    OPEN = "OPEN"
    BIDDING_CLOSED = "BIDDING_CLOSED"
    ASSIGNED = "ASSIGNED"
    IN_TRANSIT = "IN_TRANSIT"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class BidStatus(str, enum.Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    WITHDRAWN = "WITHDRAWN"


class TripStatus(str, enum.Enum):
    SCHEDULED = "SCHEDULED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


# State machines: maps current status -> set of valid next statuses.
# Trip-cancellation rollback (ASSIGNED/IN_TRANSIT -> OPEN, ACCEPTED -> PENDING)
# is not a forward transition and goes through ``reopen`` on the entities.
LOAD_TRANSITIONS: dict[LoadStatus, set[LoadStatus]] = {
    LoadStatus.DRAFT: {LoadStatus.OPEN, LoadStatus.CANCELLED},
    LoadStatus.OPEN: {
        LoadStatus.BIDDING_CLOSED,
        LoadStatus.ASSIGNED,
        LoadStatus.CANCELLED,
    },
    LoadStatus.BIDDING_CLOSED: {LoadStatus.ASSIGNED, LoadStatus.CANCELLED},
    LoadStatus.ASSIGNED: {LoadStatus.IN_TRANSIT},
    LoadStatus.IN_TRANSIT: {LoadStatus.DELIVERED},
    LoadStatus.DELIVERED: set(),
    LoadStatus.CANCELLED: set(),
}

BID_TRANSITIONS: dict[BidStatus, set[BidStatus]] = {
    BidStatus.PENDING: {
        BidStatus.ACCEPTED,
        BidStatus.REJECTED,
        BidStatus.WITHDRAWN,
    },
    BidStatus.ACCEPTED: set(),
    BidStatus.REJECTED: set(),
    BidStatus.WITHDRAWN: set(),
}

TRIP_TRANSITIONS: dict[TripStatus, set[TripStatus]] = {
    TripStatus.SCHEDULED: {TripStatus.IN_PROGRESS, TripStatus.CANCELLED},
    TripStatus.IN_PROGRESS: {TripStatus.COMPLETED, TripStatus.CANCELLED},
    TripStatus.COMPLETED: set(),
    TripStatus.CANCELLED: set(),
}

# Load statuses that require a live trip mirroring them
LOAD_TRIP_MIRROR: dict[LoadStatus, TripStatus] = {
    LoadStatus.ASSIGNED: TripStatus.SCHEDULED,
    LoadStatus.IN_TRANSIT: TripStatus.IN_PROGRESS,
    LoadStatus.DELIVERED: TripStatus.COMPLETED,
}

EDITABLE_LOAD_STATUSES = frozenset(
    {LoadStatus.DRAFT, LoadStatus.OPEN, LoadStatus.BIDDING_CLOSED}
)
ACCEPTING_LOAD_STATUSES = frozenset({LoadStatus.OPEN, LoadStatus.BIDDING_CLOSED})


class VehicleType(str, enum.Enum):
    PICKUP = "PICKUP"
    SMALL_TRUCK = "SMALL_TRUCK"
    MEDIUM_TRUCK = "MEDIUM_TRUCK"
    LARGE_TRUCK = "LARGE_TRUCK"
    FLATBED = "FLATBED"
    REFRIGERATED = "REFRIGERATED"
    CONTAINER = "CONTAINER"


class PaymentMethod(str, enum.Enum):
    CASH = "CASH"
    ECOCASH = "ECOCASH"
    ONEMONEY = "ONEMONEY"
    BANK_TRANSFER = "BANK_TRANSFER"
    CARD = "CARD"


class PlanType(str, enum.Enum):
    FREE = "FREE"
    STARTER = "STARTER"
    PROFESSIONAL = "PROFESSIONAL"
    BUSINESS = "BUSINESS"


class SubscriptionStatus(str, enum.Enum):
    TRIAL = "TRIAL"
    ACTIVE = "ACTIVE"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"


class QuotaKind(str, enum.Enum):
    LOAD = "LOAD"
    BID = "BID"


class NotificationType(str, enum.Enum):
    NEW_LOAD = "NEW_LOAD"
    BID_RECEIVED = "BID_RECEIVED"
    BID_ACCEPTED = "BID_ACCEPTED"
    BID_REJECTED = "BID_REJECTED"
    TRIP_STARTED = "TRIP_STARTED"
    TRIP_COMPLETED = "TRIP_COMPLETED"
    TRIP_CANCELLED = "TRIP_CANCELLED"

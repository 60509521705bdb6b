"""
Bid Lifecycle Manager
=====================

Bid states: ``PENDING -> ACCEPTED | REJECTED | WITHDRAWN``.

Accept (critical section)
-------------------------
Accepting a bid writes three records in one transaction: the bid becomes
ACCEPTED, the load becomes ASSIGNED and a SCHEDULED trip is inserted with
the bid price frozen as ``agreed_price``.  Two owners' clicks, or two
browser tabs, can race on the same load, so:

1. The load row is read ``FOR UPDATE`` before the bid is re-read; every
   writer to the {load, bids, trip} unit locks the load first.
2. A load already past bidding (or a bid already accepted) means a rival
   won: ``Conflict``, nothing written.
3. ``version_id_col`` on loads and bids turns a lost race that slipped past
   the lock (SQLite, or a read before the winner committed) into
   ``StaleDataError``; the partial unique indexes on ``trips`` reject a
   second live trip.  The unit of work reports both as ``Conflict``.

Competing PENDING bids stay PENDING unless ``auto_reject_competing`` is set,
in which case they are REJECTED in the same transaction.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.config import settings
from src.domain.clock import Clock, as_utc
from src.domain.entities import non_nullable_fields, reject_nulls
from src.domain.enums import (
    ACCEPTING_LOAD_STATUSES,
    BidStatus,
    LoadStatus,
    NotificationType,
    PlanType,
    QuotaKind,
    TripStatus,
)
from src.domain.errors import (
    Conflict,
    InvalidState,
    NotFound,
    Unauthorized,
    ValidationError,
)
from src.infrastructure.models import BidModel, LoadModel, TripModel
from src.infrastructure.repositories import (
    BidRepository,
    LoadRepository,
    TripRepository,
    VehicleRepository,
    to_bid_entity,
    to_load_entity,
)
from src.services.notifications import Notification, NotificationDispatcher
from src.services.quota_ledger import QuotaLedger
from src.services.uow import unit_of_work

logger = logging.getLogger(__name__)

_SETTLED_LOAD_STATUSES = frozenset(
    {LoadStatus.ASSIGNED, LoadStatus.IN_TRANSIT, LoadStatus.DELIVERED}
)


@dataclass(frozen=True)
class BidOffer:
    proposed_price: float
    currency: str = settings.default_currency
    vehicle_id: Optional[int] = None
    message: Optional[str] = None
    estimated_duration_hours: Optional[float] = None
    expires_at: Optional[datetime] = None

    def validate(self) -> None:
        if self.proposed_price is None or self.proposed_price <= 0:
            raise ValidationError("proposed_price must be positive")
        if not self.currency or len(self.currency) != 3:
            raise ValidationError("currency must be a 3-letter code")
        if self.estimated_duration_hours is not None and self.estimated_duration_hours <= 0:
            raise ValidationError("estimated_duration_hours must be positive")


@dataclass(frozen=True)
class BidCheck:
    allowed: bool
    reason: Optional[str] = None
    upgrade_to: Optional[PlanType] = None


@dataclass(frozen=True)
class BidStats:
    count: int
    lowest: Optional[float]
    highest: Optional[float]
    average: Optional[float]


PATCHABLE_FIELDS = frozenset(f.name for f in dataclasses.fields(BidOffer))
REQUIRED_FIELDS = non_nullable_fields(BidOffer)


class BidManager:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        ledger: QuotaLedger,
        dispatcher: NotificationDispatcher,
        clock: Optional[Clock] = None,
        auto_reject_competing: bool = settings.auto_reject_competing_bids,
    ):
        self.session_factory = session_factory
        self.ledger = ledger
        self.dispatcher = dispatcher
        self.clock = clock or Clock()
        self.auto_reject_competing = auto_reject_competing

    # ── Driver side ───────────────────────────────────────────────────

    async def create(self, driver_id: int, load_id: int, offer: BidOffer) -> BidModel:
        """Place a PENDING bid on an OPEN load, reserving one BID quota slot."""
        offer = dataclasses.replace(offer, expires_at=as_utc(offer.expires_at))
        offer.validate()

        async with unit_of_work(self.session_factory) as session:
            load = await LoadRepository(session).get_for_update(load_id)
            if load is None:
                raise NotFound("Load", load_id)
            if load.owner_id == driver_id:
                raise ValidationError("You cannot bid on your own load")
            if LoadStatus(load.status) != LoadStatus.OPEN:
                raise InvalidState(
                    f"Load is not accepting bids (status {LoadStatus(load.status).value})"
                )
            bids = BidRepository(session)
            if await bids.get_active_for_driver(load_id, driver_id):
                raise InvalidState("You already have an active bid on this load")
            await self._check_vehicle(session, offer.vehicle_id, driver_id, load)

            await self.ledger.check_and_reserve(session, driver_id, QuotaKind.BID)
            bid = await bids.create(
                BidModel(
                    load_id=load_id,
                    driver_id=driver_id,
                    vehicle_id=offer.vehicle_id,
                    proposed_price=offer.proposed_price,
                    currency=offer.currency,
                    message=offer.message,
                    estimated_duration_hours=offer.estimated_duration_hours,
                    expires_at=offer.expires_at,
                    status=BidStatus.PENDING,
                )
            )
            owner_id = load.owner_id
            title = load.title

        logger.info("Bid %s placed on load %s by driver %s", bid.id, load_id, driver_id)
        self.dispatcher.notify(
            owner_id,
            Notification(
                title="New bid received",
                body=f"{bid.currency} {bid.proposed_price:.2f} offered for {title}",
                type=NotificationType.BID_RECEIVED,
                data={"load_id": load_id, "bid_id": bid.id},
            ),
        )
        return bid

    async def can_bid(self, driver_id: int, load_id: int) -> BidCheck:
        """Would ``create`` accept a bid from *driver_id* right now?  Reserves nothing."""
        async with unit_of_work(self.session_factory) as session:
            load = await LoadRepository(session).get_by_id(load_id)
            if load is None:
                raise NotFound("Load", load_id)
            if LoadStatus(load.status) != LoadStatus.OPEN:
                return BidCheck(False, "Load is not accepting bids")
            if load.owner_id == driver_id:
                return BidCheck(False, "You cannot bid on your own load")
            if await BidRepository(session).get_active_for_driver(load_id, driver_id):
                return BidCheck(False, "You already have an active bid on this load")

        quota = await self.ledger.preview(driver_id, QuotaKind.BID)
        if not quota.allowed:
            return BidCheck(False, quota.reason, upgrade_to=quota.upgrade_to)
        return BidCheck(True)

    async def update(self, bid_id: int, driver_id: int, patch: dict[str, Any]) -> BidModel:
        """Edit a PENDING bid while its load is still OPEN."""
        unknown = set(patch) - PATCHABLE_FIELDS
        if unknown:
            raise ValidationError(f"Cannot update field(s): {', '.join(sorted(unknown))}")
        reject_nulls(patch, REQUIRED_FIELDS)

        async with unit_of_work(self.session_factory) as session:
            bid, load = await self._lock_bid_and_load(session, bid_id)
            if bid.driver_id != driver_id:
                raise Unauthorized("Only the bidding driver can edit this bid")
            if BidStatus(bid.status) != BidStatus.PENDING:
                raise InvalidState(
                    f"Cannot edit bid in status {BidStatus(bid.status).value}"
                )
            if LoadStatus(load.status) != LoadStatus.OPEN:
                raise InvalidState("Load is no longer accepting bid changes")

            offer = dataclasses.replace(
                BidOffer(
                    proposed_price=bid.proposed_price,
                    currency=bid.currency,
                    vehicle_id=bid.vehicle_id,
                    message=bid.message,
                    estimated_duration_hours=bid.estimated_duration_hours,
                    expires_at=bid.expires_at,
                ),
                **patch,
            )
            offer = dataclasses.replace(offer, expires_at=as_utc(offer.expires_at))
            offer.validate()
            if offer.vehicle_id != bid.vehicle_id:
                await self._check_vehicle(session, offer.vehicle_id, driver_id, load)

            bid.proposed_price = offer.proposed_price
            bid.currency = offer.currency
            bid.vehicle_id = offer.vehicle_id
            bid.message = offer.message
            bid.estimated_duration_hours = offer.estimated_duration_hours
            bid.expires_at = offer.expires_at

        logger.info("Bid %s updated", bid_id)
        return bid

    async def withdraw(self, bid_id: int, driver_id: int) -> BidModel:
        async with unit_of_work(self.session_factory) as session:
            bid, _ = await self._lock_bid_and_load(session, bid_id)
            if bid.driver_id != driver_id:
                raise Unauthorized("Only the bidding driver can withdraw this bid")
            entity = to_bid_entity(bid)
            entity.transition_to(BidStatus.WITHDRAWN)
            bid.status = entity.status
        logger.info("Bid %s withdrawn", bid_id)
        return bid

    async def list_for_driver(
        self, driver_id: int, status: Optional[BidStatus] = None
    ) -> list[BidModel]:
        async with unit_of_work(self.session_factory) as session:
            return await BidRepository(session).get_by_driver(driver_id, status)

    # ── Owner side ────────────────────────────────────────────────────

    async def accept(self, bid_id: int, owner_id: int) -> TripModel:
        """Accept *bid_id*; returns the SCHEDULED trip created for it."""
        rejected: list[BidModel] = []
        async with unit_of_work(self.session_factory) as session:
            bid, load = await self._lock_bid_and_load(session, bid_id)
            if load.owner_id != owner_id:
                raise Unauthorized("Only the load owner can accept bids")

            load_entity = to_load_entity(load)
            bid_entity = to_bid_entity(bid)
            if (
                load_entity.status in _SETTLED_LOAD_STATUSES
                or bid_entity.status == BidStatus.ACCEPTED
            ):
                raise Conflict("Another bid has already been accepted for this load")
            if load_entity.status not in ACCEPTING_LOAD_STATUSES:
                raise InvalidState(
                    f"Cannot accept bids on load in status {load_entity.status.value}"
                )

            bid_entity.transition_to(BidStatus.ACCEPTED)
            load_entity.transition_to(LoadStatus.ASSIGNED)
            bid.status = bid_entity.status
            load.status = load_entity.status

            trip = await TripRepository(session).create(
                TripModel(
                    load_id=load.id,
                    bid_id=bid.id,
                    driver_id=bid.driver_id,
                    status=TripStatus.SCHEDULED,
                    agreed_price=bid.proposed_price,
                    currency=bid.currency,
                )
            )

            if self.auto_reject_competing:
                for other in await BidRepository(session).get_for_load(
                    load.id, BidStatus.PENDING
                ):
                    other.status = BidStatus.REJECTED
                    other.reject_reason = "Another bid was accepted"
                    rejected.append(other)
            title = load.title

        logger.info(
            "Bid %s accepted: load %s assigned, trip %s scheduled",
            bid_id,
            load.id,
            trip.id,
        )
        self.dispatcher.notify(
            bid.driver_id,
            Notification(
                title="Your bid was accepted",
                body=f"You have been assigned {title}",
                type=NotificationType.BID_ACCEPTED,
                data={"load_id": load.id, "bid_id": bid.id, "trip_id": trip.id},
            ),
        )
        for other in rejected:
            self._notify_rejected(other, title)
        return trip

    async def reject(
        self, bid_id: int, owner_id: int, reason: Optional[str] = None
    ) -> BidModel:
        async with unit_of_work(self.session_factory) as session:
            bid, load = await self._lock_bid_and_load(session, bid_id)
            if load.owner_id != owner_id:
                raise Unauthorized("Only the load owner can reject bids")
            entity = to_bid_entity(bid)
            entity.transition_to(BidStatus.REJECTED)
            bid.status = entity.status
            bid.reject_reason = reason
            title = load.title

        logger.info("Bid %s rejected", bid_id)
        self._notify_rejected(bid, title)
        return bid

    async def list_for_load(
        self, load_id: int, owner_id: int, status: Optional[BidStatus] = BidStatus.PENDING
    ) -> list[BidModel]:
        """Bids on the owner's load, cheapest first."""
        async with unit_of_work(self.session_factory) as session:
            load = await LoadRepository(session).get_by_id(load_id)
            if load is None:
                raise NotFound("Load", load_id)
            if load.owner_id != owner_id:
                raise Unauthorized("Only the load owner can list its bids")
            return await BidRepository(session).get_for_load(load_id, status)

    async def list_received(
        self, owner_id: int, status: Optional[BidStatus] = BidStatus.PENDING
    ) -> list[BidModel]:
        """Bids across all of the owner's loads, newest first."""
        async with unit_of_work(self.session_factory) as session:
            return await BidRepository(session).get_received(owner_id, status)

    async def load_bid_stats(self, load_id: int) -> BidStats:
        """Public summary of the PENDING bids on a load."""
        async with unit_of_work(self.session_factory) as session:
            if await LoadRepository(session).get_by_id(load_id) is None:
                raise NotFound("Load", load_id)
            bids = await BidRepository(session).get_for_load(load_id, BidStatus.PENDING)
        prices = [b.proposed_price for b in bids]
        if not prices:
            return BidStats(count=0, lowest=None, highest=None, average=None)
        return BidStats(
            count=len(prices),
            lowest=min(prices),
            highest=max(prices),
            average=round(sum(prices) / len(prices), 2),
        )

    # ── Expiry ────────────────────────────────────────────────────────

    async def expire_stale(self) -> int:
        """Reject PENDING bids whose ``expires_at`` has passed."""
        now = self.clock.now()
        async with unit_of_work(self.session_factory) as session:
            expired = await BidRepository(session).get_expired_pending(now)
            for bid in expired:
                bid.status = BidStatus.REJECTED
                bid.reject_reason = "Bid expired"

        for bid in expired:
            self.dispatcher.notify(
                bid.driver_id,
                Notification(
                    title="Your bid expired",
                    body="The bid passed its expiry time without being accepted",
                    type=NotificationType.BID_REJECTED,
                    data={"load_id": bid.load_id, "bid_id": bid.id},
                ),
            )
        if expired:
            logger.info("Expired %d stale bid(s)", len(expired))
        return len(expired)

    # ── Internals ─────────────────────────────────────────────────────

    @staticmethod
    async def _lock_bid_and_load(
        session: AsyncSession, bid_id: int
    ) -> tuple[BidModel, LoadModel]:
        """Lock the bid's load, then re-read the bid under that lock."""
        bids = BidRepository(session)
        bid = await bids.get_by_id(bid_id)
        if bid is None:
            raise NotFound("Bid", bid_id)
        load = await LoadRepository(session).get_for_update(bid.load_id)
        if load is None:
            raise NotFound("Load", bid.load_id)
        bid = await bids.get_for_update(bid_id)
        if bid is None:
            raise NotFound("Bid", bid_id)
        return bid, load

    @staticmethod
    async def _check_vehicle(
        session: AsyncSession,
        vehicle_id: Optional[int],
        driver_id: int,
        load: LoadModel,
    ) -> None:
        if vehicle_id is None:
            return
        vehicle = await VehicleRepository(session).get_by_id(vehicle_id)
        if vehicle is None:
            raise NotFound("Vehicle", vehicle_id)
        if vehicle.owner_id != driver_id:
            raise Unauthorized("Vehicle does not belong to the bidding driver")
        if not vehicle.is_active:
            raise ValidationError("Vehicle is not active")
        required = to_load_entity(load).vehicle_types
        if required and vehicle.vehicle_type not in required:
            raise ValidationError(
                f"Load requires one of: {', '.join(sorted(v.value for v in required))}"
            )

    def _notify_rejected(self, bid: BidModel, title: str) -> None:
        self.dispatcher.notify(
            bid.driver_id,
            Notification(
                title="Your bid was not accepted",
                body=bid.reject_reason or f"The owner of {title} declined your bid",
                type=NotificationType.BID_REJECTED,
                data={"load_id": bid.load_id, "bid_id": bid.id},
            ),
        )

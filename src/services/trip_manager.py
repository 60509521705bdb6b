"""
Trip Lifecycle Manager
======================

Trip states: ``SCHEDULED -> IN_PROGRESS -> COMPLETED | CANCELLED``
(SCHEDULED may also go straight to CANCELLED).

The load mirrors its live trip: ASSIGNED <-> SCHEDULED,
IN_TRANSIT <-> IN_PROGRESS, DELIVERED <-> COMPLETED.  Every transition
writes trip and load in the same unit of work, load row locked first.

Cancellation rolls the whole unit back to bidding: trip CANCELLED, load
OPEN, originating bid PENDING.  The cancelled trip stays as history.

The route is append-only: each ``update_location`` inserts one
``trip_locations`` row and moves the trip's current position, which also
bumps the trip version so a concurrent cancel or complete wins cleanly.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.domain.clock import Clock, as_utc
from src.domain.entities import RoutePoint
from src.domain.enums import (
    LoadStatus,
    NotificationType,
    PaymentMethod,
    TripStatus,
)
from src.domain.errors import InvalidState, NotFound, Unauthorized, ValidationError
from src.infrastructure.models import LoadModel, TripLocationModel, TripModel
from src.infrastructure.repositories import (
    BidRepository,
    LoadRepository,
    TripRepository,
    to_bid_entity,
    to_load_entity,
    to_trip_entity,
)
from src.services.notifications import Notification, NotificationDispatcher
from src.services.uow import unit_of_work

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StartCheck:
    allowed: bool
    reason: Optional[str] = None


@dataclass(frozen=True)
class CompletionData:
    proof_of_delivery: Optional[str] = None
    signature: Optional[str] = None
    payment_method: Optional[PaymentMethod] = None
    notes: Optional[str] = None


class TripManager:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        dispatcher: NotificationDispatcher,
        clock: Optional[Clock] = None,
    ):
        self.session_factory = session_factory
        self.dispatcher = dispatcher
        self.clock = clock or Clock()

    # ── Progress ──────────────────────────────────────────────────────

    async def can_start(self, trip_id: int, driver_id: int) -> StartCheck:
        async with unit_of_work(self.session_factory) as session:
            trip = await TripRepository(session).get_by_id(trip_id)
            if trip is None:
                raise NotFound("Trip", trip_id)
            if trip.driver_id != driver_id:
                raise Unauthorized("Only the assigned driver can start this trip")
            load = await LoadRepository(session).get_by_id(trip.load_id)
            return self._start_check(trip, load)

    async def start(
        self, trip_id: int, driver_id: int, location: Optional[RoutePoint] = None
    ) -> TripModel:
        if location is not None:
            location.validate()
        async with unit_of_work(self.session_factory) as session:
            trip, load = await self._lock_trip_and_load(session, trip_id)
            if trip.driver_id != driver_id:
                raise Unauthorized("Only the assigned driver can start this trip")
            check = self._start_check(trip, load)
            if not check.allowed:
                raise InvalidState(check.reason)

            trip_entity = to_trip_entity(trip)
            load_entity = to_load_entity(load)
            trip_entity.transition_to(TripStatus.IN_PROGRESS)
            load_entity.transition_to(LoadStatus.IN_TRANSIT)

            now = self.clock.now()
            trip.status = trip_entity.status
            trip.start_time = now
            load.status = load_entity.status
            if location is not None:
                await self._record(session, trip, location)
            owner_id = load.owner_id
            title = load.title

        logger.info("Trip %s started; load %s in transit", trip_id, trip.load_id)
        self.dispatcher.notify(
            owner_id,
            Notification(
                title="Your load is on its way",
                body=f"The driver has picked up {title}",
                type=NotificationType.TRIP_STARTED,
                data={"trip_id": trip_id, "load_id": trip.load_id},
            ),
        )
        return trip

    async def update_location(
        self, trip_id: int, driver_id: int, location: RoutePoint
    ) -> TripModel:
        location.validate()
        async with unit_of_work(self.session_factory) as session:
            trip = await self._driver_trip(session, trip_id, driver_id)
            self._require_in_progress(trip, "update location")
            await self._record(session, trip, location)
        return trip

    async def upload_proof_of_pickup(
        self, trip_id: int, driver_id: int, uri: str
    ) -> TripModel:
        if not uri or not uri.strip():
            raise ValidationError("proof of pickup reference is required")
        async with unit_of_work(self.session_factory) as session:
            trip = await self._driver_trip(session, trip_id, driver_id)
            self._require_in_progress(trip, "upload proof of pickup")
            trip.proof_of_pickup = uri.strip()
        logger.info("Trip %s: proof of pickup attached", trip_id)
        return trip

    async def upload_proof_of_delivery(
        self,
        trip_id: int,
        driver_id: int,
        uri: str,
        signature: Optional[str] = None,
    ) -> TripModel:
        if not uri or not uri.strip():
            raise ValidationError("proof of delivery reference is required")
        async with unit_of_work(self.session_factory) as session:
            trip = await self._driver_trip(session, trip_id, driver_id)
            self._require_in_progress(trip, "upload proof of delivery")
            trip.proof_of_delivery = uri.strip()
            if signature:
                trip.signature = signature
        logger.info("Trip %s: proof of delivery attached", trip_id)
        return trip

    async def complete(
        self, trip_id: int, driver_id: int, data: Optional[CompletionData] = None
    ) -> TripModel:
        data = data or CompletionData()
        async with unit_of_work(self.session_factory) as session:
            trip, load = await self._lock_trip_and_load(session, trip_id)
            if trip.driver_id != driver_id:
                raise Unauthorized("Only the assigned driver can complete this trip")
            self._require_in_progress(trip, "complete")

            proof = data.proof_of_delivery or trip.proof_of_delivery
            if not proof:
                raise ValidationError("Proof of delivery is required to complete a trip")

            trip_entity = to_trip_entity(trip)
            load_entity = to_load_entity(load)
            trip_entity.transition_to(TripStatus.COMPLETED)
            load_entity.transition_to(LoadStatus.DELIVERED)

            trip.status = trip_entity.status
            trip.end_time = self.clock.now()
            trip.proof_of_delivery = proof
            if data.signature:
                trip.signature = data.signature
            if data.payment_method is not None:
                trip.payment_method = PaymentMethod(data.payment_method)
            if data.notes:
                trip.notes = data.notes
            load.status = load_entity.status
            owner_id = load.owner_id
            title = load.title

        logger.info("Trip %s completed; load %s delivered", trip_id, trip.load_id)
        self.dispatcher.notify(
            owner_id,
            Notification(
                title="Delivery completed",
                body=f"{title} has been delivered",
                type=NotificationType.TRIP_COMPLETED,
                data={"trip_id": trip_id, "load_id": trip.load_id},
            ),
        )
        return trip

    async def cancel(
        self, trip_id: int, user_id: int, reason: Optional[str] = None
    ) -> TripModel:
        """Cancel and roll back: load OPEN, originating bid PENDING."""
        async with unit_of_work(self.session_factory) as session:
            trip, load = await self._lock_trip_and_load(session, trip_id)
            if user_id not in (trip.driver_id, load.owner_id):
                raise Unauthorized("Only the driver or the load owner can cancel a trip")

            trip_entity = to_trip_entity(trip)
            trip_entity.transition_to(TripStatus.CANCELLED)

            bid = await BidRepository(session).get_for_update(trip.bid_id)
            if bid is None:
                raise NotFound("Bid", trip.bid_id)
            load_entity = to_load_entity(load)
            bid_entity = to_bid_entity(bid)
            load_entity.reopen()
            bid_entity.reopen()

            trip.status = trip_entity.status
            trip.end_time = self.clock.now()
            trip.cancel_reason = reason
            trip.cancelled_by = user_id
            load.status = load_entity.status
            bid.status = bid_entity.status
            other_party = load.owner_id if user_id == trip.driver_id else trip.driver_id

        logger.info(
            "Trip %s cancelled by user %s; load %s reopened, bid %s pending",
            trip_id,
            user_id,
            trip.load_id,
            trip.bid_id,
        )
        self.dispatcher.notify(
            other_party,
            Notification(
                title="Trip cancelled",
                body=reason or "The trip was cancelled",
                type=NotificationType.TRIP_CANCELLED,
                data={"trip_id": trip_id, "load_id": trip.load_id},
            ),
        )
        return trip

    async def mark_payment_completed(
        self,
        trip_id: int,
        user_id: int,
        payment_method: Optional[PaymentMethod] = None,
    ) -> TripModel:
        async with unit_of_work(self.session_factory) as session:
            trip, load = await self._lock_trip_and_load(session, trip_id)
            if user_id not in (trip.driver_id, load.owner_id):
                raise Unauthorized("Only a trip participant can record payment")
            if TripStatus(trip.status) != TripStatus.COMPLETED:
                raise InvalidState("Payment can only be recorded on a completed trip")
            if trip.payment_completed_at is not None:
                raise InvalidState("Payment already recorded for this trip")

            now = self.clock.now()
            if payment_method is not None:
                trip.payment_method = PaymentMethod(payment_method)
            trip.payment_completed_at = now
            method = trip.payment_method.value if trip.payment_method else "unspecified method"
            line = f"Payment completed via {method} at {now.isoformat()}"
            trip.notes = f"{trip.notes}\n{line}" if trip.notes else line
        logger.info("Trip %s payment recorded", trip_id)
        return trip

    # ── Read side ─────────────────────────────────────────────────────

    async def get(self, trip_id: int, user_id: int) -> TripModel:
        async with unit_of_work(self.session_factory) as session:
            trip, _ = await self._participant_trip(session, trip_id, user_id)
            return trip

    async def route(self, trip_id: int, user_id: int) -> list[TripLocationModel]:
        """Route samples in recording order."""
        async with unit_of_work(self.session_factory) as session:
            await self._participant_trip(session, trip_id, user_id)
            return await TripRepository(session).get_route(trip_id)

    async def list_for_driver(
        self, driver_id: int, status: Optional[TripStatus] = None
    ) -> list[TripModel]:
        async with unit_of_work(self.session_factory) as session:
            return await TripRepository(session).get_for_driver(
                driver_id, [status] if status else None
            )

    async def list_for_owner(
        self, owner_id: int, status: Optional[TripStatus] = None
    ) -> list[TripModel]:
        """Trips carrying any of the owner's loads, newest first."""
        async with unit_of_work(self.session_factory) as session:
            return await TripRepository(session).get_for_owner(
                owner_id, [status] if status else None
            )

    # ── Internals ─────────────────────────────────────────────────────

    def _start_check(self, trip: TripModel, load: Optional[LoadModel]) -> StartCheck:
        status = TripStatus(trip.status)
        if status != TripStatus.SCHEDULED:
            return StartCheck(False, f"Cannot start trip in status {status.value}")
        if load is None:
            return StartCheck(False, "Load no longer exists")
        if LoadStatus(load.status) != LoadStatus.ASSIGNED:
            return StartCheck(False, f"Load is {LoadStatus(load.status).value}")
        pickup = as_utc(load.pickup_date)
        if pickup is not None and pickup > self.clock.now():
            return StartCheck(
                False, f"Trip cannot start before pickup date {pickup.isoformat()}"
            )
        return StartCheck(True)

    @staticmethod
    def _require_in_progress(trip: TripModel, action: str) -> None:
        status = TripStatus(trip.status)
        if status != TripStatus.IN_PROGRESS:
            raise InvalidState(f"Cannot {action} for trip in status {status.value}")

    async def _record(
        self, session: AsyncSession, trip: TripModel, point: RoutePoint
    ) -> None:
        recorded_at = as_utc(point.recorded_at) or self.clock.now()
        await TripRepository(session).add_location(
            TripLocationModel(
                trip_id=trip.id,
                latitude=point.latitude,
                longitude=point.longitude,
                recorded_at=recorded_at,
                address=point.address,
                speed=point.speed,
                bearing=point.bearing,
                accuracy=point.accuracy,
            )
        )
        trip.current_lat = point.latitude
        trip.current_lng = point.longitude
        trip.current_location_at = recorded_at

    @staticmethod
    async def _lock_trip_and_load(
        session: AsyncSession, trip_id: int
    ) -> tuple[TripModel, LoadModel]:
        trips = TripRepository(session)
        trip = await trips.get_by_id(trip_id)
        if trip is None:
            raise NotFound("Trip", trip_id)
        load = await LoadRepository(session).get_for_update(trip.load_id)
        if load is None:
            raise NotFound("Load", trip.load_id)
        trip = await trips.get_for_update(trip_id)
        if trip is None:
            raise NotFound("Trip", trip_id)
        return trip, load

    @staticmethod
    async def _driver_trip(
        session: AsyncSession, trip_id: int, driver_id: int
    ) -> TripModel:
        trip = await TripRepository(session).get_for_update(trip_id)
        if trip is None:
            raise NotFound("Trip", trip_id)
        if trip.driver_id != driver_id:
            raise Unauthorized("Only the assigned driver can update this trip")
        return trip

    @staticmethod
    async def _participant_trip(
        session: AsyncSession, trip_id: int, user_id: int
    ) -> tuple[TripModel, Optional[LoadModel]]:
        trip = await TripRepository(session).get_by_id(trip_id)
        if trip is None:
            raise NotFound("Trip", trip_id)
        load = await LoadRepository(session).get_by_id(trip.load_id)
        owner_id = load.owner_id if load is not None else None
        if user_id not in (trip.driver_id, owner_id):
            raise Unauthorized("Only trip participants can view this trip")
        return trip, load

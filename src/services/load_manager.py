"""
Load Lifecycle Manager
======================

Owns the load state machine::

    DRAFT -> OPEN -> BIDDING_CLOSED -> ASSIGNED -> IN_TRANSIT -> DELIVERED
      \\        \\          \\
       +--------+----------+-> CANCELLED

ASSIGNED / IN_TRANSIT / DELIVERED are only ever entered by the bid and trip
managers; this manager handles the owner-driven transitions and edits.

Every mutation runs in one unit of work, checks ``owner_id == caller``
(``Unauthorized``, distinct from ``NotFound``) and validates the transition
against ``LOAD_TRANSITIONS`` (``InvalidState``).  Publishing reserves one
LOAD quota slot in the same transaction and, once committed, hands the load
to the search notifier.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.config import settings
from src.domain.clock import Clock, as_utc
from src.domain.entities import LoadSpec, Place, non_nullable_fields, reject_nulls
from src.domain.enums import LoadStatus, QuotaKind, VehicleType
from src.domain.errors import InvalidState, NotFound, Unauthorized, ValidationError
from src.domain.matching import SearchFilters, cells_within, load_matches, pickup_cell
from src.infrastructure.models import LoadModel
from src.infrastructure.repositories import (
    BidRepository,
    LoadRepository,
    TripRepository,
    to_load_entity,
)
from src.services.notifications import NotificationDispatcher
from src.services.quota_ledger import QuotaLedger
from src.services.saved_searches import SearchNotifier
from src.services.uow import unit_of_work

logger = logging.getLogger(__name__)

# Statuses from which a load without trip history may be deleted
DELETABLE_STATUSES = frozenset(
    {
        LoadStatus.DRAFT,
        LoadStatus.OPEN,
        LoadStatus.BIDDING_CLOSED,
        LoadStatus.CANCELLED,
    }
)

PATCHABLE_FIELDS = frozenset(f.name for f in dataclasses.fields(LoadSpec))
REQUIRED_FIELDS = non_nullable_fields(LoadSpec)


@dataclass
class SearchPage:
    items: list[LoadModel]
    total: int
    page: int
    page_size: int


def spec_from_model(load: LoadModel) -> LoadSpec:
    entity = to_load_entity(load)
    return LoadSpec(
        title=load.title,
        cargo_type=load.cargo_type,
        weight=load.weight,
        pickup=entity.pickup,
        delivery=entity.delivery,
        pickup_date=load.pickup_date,
        vehicle_types=entity.vehicle_types,
        description=load.description,
        volume=load.volume,
        delivery_date=load.delivery_date,
        suggested_price=load.suggested_price,
        currency=load.currency,
        requires_insurance=load.requires_insurance,
        fragile=load.fragile,
        expires_at=load.expires_at,
    )


def _normalise(spec: LoadSpec) -> LoadSpec:
    return dataclasses.replace(
        spec,
        pickup_date=as_utc(spec.pickup_date),
        delivery_date=as_utc(spec.delivery_date),
        expires_at=as_utc(spec.expires_at),
        vehicle_types=frozenset(VehicleType(vt) for vt in spec.vehicle_types),
    )


class LoadManager:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        ledger: QuotaLedger,
        dispatcher: NotificationDispatcher,
        notifier: Optional[SearchNotifier] = None,
        clock: Optional[Clock] = None,
        h3_resolution: int = settings.search_h3_resolution,
    ):
        self.session_factory = session_factory
        self.ledger = ledger
        self.dispatcher = dispatcher
        self.notifier = notifier
        self.clock = clock or Clock()
        self.h3_resolution = h3_resolution

    # ── Mutations ─────────────────────────────────────────────────────

    async def create(self, owner_id: int, spec: LoadSpec) -> LoadModel:
        """Create a DRAFT load.  No quota is consulted until publish."""
        spec = _normalise(spec)
        spec.validate()
        load = LoadModel(owner_id=owner_id, status=LoadStatus.DRAFT, view_count=0)
        self._apply_spec(load, spec)
        async with unit_of_work(self.session_factory) as session:
            await LoadRepository(session).create(load)
        logger.info("Load %s drafted by user %s", load.id, owner_id)
        return load

    async def publish(self, load_id: int, owner_id: int) -> LoadModel:
        async with unit_of_work(self.session_factory) as session:
            load = await self._owned_for_update(session, load_id, owner_id)
            entity = to_load_entity(load)
            entity.transition_to(LoadStatus.OPEN)
            await self.ledger.check_and_reserve(session, owner_id, QuotaKind.LOAD)
            load.status = entity.status
            load.published_at = self.clock.now()

        logger.info("Load %s published", load_id)
        if self.notifier is not None:
            self.dispatcher.spawn(
                self.notifier.notify_matches(to_load_entity(load)),
                f"saved-search matching for load {load_id}",
            )
        return load

    async def update(
        self, load_id: int, owner_id: int, patch: dict[str, Any]
    ) -> LoadModel:
        """Apply *patch* (``LoadSpec`` field names) to an editable load."""
        unknown = set(patch) - PATCHABLE_FIELDS
        if unknown:
            raise ValidationError(f"Cannot update field(s): {', '.join(sorted(unknown))}")
        reject_nulls(patch, REQUIRED_FIELDS)

        async with unit_of_work(self.session_factory) as session:
            load = await self._owned_for_update(session, load_id, owner_id)
            if not to_load_entity(load).is_editable:
                raise InvalidState(
                    f"Cannot edit load in status {LoadStatus(load.status).value}"
                )
            spec = _normalise(dataclasses.replace(spec_from_model(load), **patch))
            spec.validate()
            self._apply_spec(load, spec)

        logger.info("Load %s updated (%s)", load_id, ", ".join(sorted(patch)))
        return load

    async def delete(self, load_id: int, owner_id: int) -> None:
        """Delete a load that was never assigned, together with its bids."""
        async with unit_of_work(self.session_factory) as session:
            load = await self._owned_for_update(session, load_id, owner_id)
            status = LoadStatus(load.status)
            if status not in DELETABLE_STATUSES:
                raise InvalidState(f"Cannot delete load in status {status.value}")
            if await TripRepository(session).get_for_load(load_id):
                raise InvalidState("Cannot delete a load with trip history")
            removed = await BidRepository(session).delete_for_load(load_id)
            await LoadRepository(session).delete(load)
        logger.info("Load %s deleted with %d bid(s)", load_id, removed)

    async def cancel(
        self, load_id: int, owner_id: int, reason: Optional[str] = None
    ) -> LoadModel:
        async with unit_of_work(self.session_factory) as session:
            load = await self._owned_for_update(session, load_id, owner_id)
            if await TripRepository(session).get_live_for_load(load_id):
                raise InvalidState("Cannot cancel a load with a live trip")
            entity = to_load_entity(load)
            entity.transition_to(LoadStatus.CANCELLED)
            load.status = entity.status
            load.cancel_reason = reason
        logger.info("Load %s cancelled", load_id)
        return load

    async def close_bidding(self, load_id: int, owner_id: int) -> LoadModel:
        async with unit_of_work(self.session_factory) as session:
            load = await self._owned_for_update(session, load_id, owner_id)
            entity = to_load_entity(load)
            if entity.status != LoadStatus.OPEN:
                raise InvalidState(
                    f"Cannot close bidding on load in status {entity.status.value}"
                )
            entity.transition_to(LoadStatus.BIDDING_CLOSED)
            load.status = entity.status
        logger.info("Bidding closed on load %s", load_id)
        return load

    # ── Read side ─────────────────────────────────────────────────────

    async def get(self, load_id: int, viewer_id: Optional[int] = None) -> LoadModel:
        """Fetch a load, counting the view unless the owner is looking."""
        async with unit_of_work(self.session_factory) as session:
            repo = LoadRepository(session)
            await repo.increment_views(load_id, viewer_id)
            load = await repo.get_by_id(load_id)
            if load is None:
                raise NotFound("Load", load_id)
            return load

    async def list_for_owner(
        self, owner_id: int, status: Optional[LoadStatus] = None
    ) -> list[LoadModel]:
        async with unit_of_work(self.session_factory) as session:
            return await LoadRepository(session).get_by_owner(owner_id, status)

    async def search(
        self, filters: SearchFilters, page: int = 1, page_size: int = 20
    ) -> SearchPage:
        """OPEN loads matching *filters*, newest first."""
        if page < 1 or page_size < 1:
            raise ValidationError("page and page_size must be positive")
        if filters.radius_km is not None and filters.radius_km <= 0:
            raise ValidationError("radius_km must be positive")

        cells = None
        if filters.has_radius:
            cells = cells_within(
                filters.near_lat,
                filters.near_lng,
                filters.radius_km,
                self.h3_resolution,
            )
        async with unit_of_work(self.session_factory) as session:
            candidates = await LoadRepository(session).search(filters, cells=cells)

        matched = [m for m in candidates if load_matches(to_load_entity(m), filters)]
        start = (page - 1) * page_size
        return SearchPage(
            items=matched[start : start + page_size],
            total=len(matched),
            page=page,
            page_size=page_size,
        )

    # ── Internals ─────────────────────────────────────────────────────

    @staticmethod
    async def _owned_for_update(
        session: AsyncSession, load_id: int, owner_id: int
    ) -> LoadModel:
        load = await LoadRepository(session).get_for_update(load_id)
        if load is None:
            raise NotFound("Load", load_id)
        if load.owner_id != owner_id:
            raise Unauthorized("Only the load owner can modify this load")
        return load

    def _apply_spec(self, load: LoadModel, spec: LoadSpec) -> None:
        load.title = spec.title.strip()
        load.cargo_type = spec.cargo_type.strip()
        load.description = spec.description
        load.weight = spec.weight
        load.volume = spec.volume
        self._apply_place(load, "pickup", spec.pickup)
        self._apply_place(load, "delivery", spec.delivery)
        load.pickup_cell = pickup_cell(
            spec.pickup.latitude, spec.pickup.longitude, self.h3_resolution
        )
        load.pickup_date = spec.pickup_date
        load.delivery_date = spec.delivery_date
        load.suggested_price = spec.suggested_price
        load.currency = spec.currency
        load.vehicle_types = sorted(vt.value for vt in spec.vehicle_types)
        load.requires_insurance = spec.requires_insurance
        load.fragile = spec.fragile
        load.expires_at = spec.expires_at

    @staticmethod
    def _apply_place(load: LoadModel, prefix: str, place: Place) -> None:
        setattr(load, f"{prefix}_address", place.address)
        setattr(load, f"{prefix}_city", place.city)
        setattr(load, f"{prefix}_province", place.province)
        setattr(load, f"{prefix}_lat", place.latitude)
        setattr(load, f"{prefix}_lng", place.longitude)

"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work) and exposes
domain-relevant queries only.  ``*_for_update`` variants issue
``SELECT ... FOR UPDATE`` so the row stays locked until the unit of work
commits (a no-op on SQLite, where the version column does the guarding).
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import (
    BidModel,
    LoadModel,
    LoadTemplateModel,
    SavedSearchModel,
    SubscriptionModel,
    TripLocationModel,
    TripModel,
    VehicleModel,
)
from src.domain.entities import Bid, Load, Place, Trip
from src.domain.enums import BidStatus, LoadStatus, TripStatus, VehicleType
from src.domain.matching import SearchFilters


def to_load_entity(model: LoadModel) -> Load:
    """Detached domain snapshot of a load row."""
    return Load(
        id=model.id,
        owner_id=model.owner_id,
        title=model.title,
        cargo_type=model.cargo_type,
        weight=model.weight,
        pickup=Place(
            address=model.pickup_address,
            city=model.pickup_city,
            latitude=model.pickup_lat,
            longitude=model.pickup_lng,
            province=model.pickup_province,
        ),
        delivery=Place(
            address=model.delivery_address,
            city=model.delivery_city,
            latitude=model.delivery_lat,
            longitude=model.delivery_lng,
            province=model.delivery_province,
        ),
        pickup_date=model.pickup_date,
        vehicle_types=frozenset(VehicleType(vt) for vt in model.vehicle_types or ()),
        suggested_price=model.suggested_price,
        description=model.description,
        status=LoadStatus(model.status),
        published_at=model.published_at,
    )


def to_bid_entity(model: BidModel) -> Bid:
    return Bid(
        id=model.id,
        load_id=model.load_id,
        driver_id=model.driver_id,
        proposed_price=model.proposed_price,
        currency=model.currency,
        vehicle_id=model.vehicle_id,
        status=BidStatus(model.status),
    )


def to_trip_entity(model: TripModel) -> Trip:
    return Trip(
        id=model.id,
        load_id=model.load_id,
        bid_id=model.bid_id,
        driver_id=model.driver_id,
        agreed_price=model.agreed_price,
        status=TripStatus(model.status),
    )


class LoadRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, load: LoadModel) -> LoadModel:
        self.session.add(load)
        await self.session.flush()
        return load

    async def get_by_id(self, load_id: int) -> Optional[LoadModel]:
        return await self.session.get(LoadModel, load_id)

    async def get_for_update(self, load_id: int) -> Optional[LoadModel]:
        result = await self.session.execute(
            select(LoadModel)
            .where(LoadModel.id == load_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def delete(self, load: LoadModel) -> None:
        await self.session.delete(load)
        await self.session.flush()

    async def increment_views(self, load_id: int, viewer_id: Optional[int]) -> None:
        """Count a view by anyone but the owner, without bumping the version."""
        table = LoadModel.__table__
        stmt = update(table).where(table.c.id == load_id)
        if viewer_id is not None:
            stmt = stmt.where(table.c.owner_id != viewer_id)
        await self.session.execute(
            stmt.values(
                view_count=table.c.view_count + 1,
                updated_at=table.c.updated_at,
            )
        )

    async def get_by_owner(
        self, owner_id: int, status: Optional[LoadStatus] = None
    ) -> list[LoadModel]:
        query = select(LoadModel).where(LoadModel.owner_id == owner_id)
        if status:
            query = query.where(LoadModel.status == status)
        result = await self.session.execute(
            query.order_by(LoadModel.created_at.desc(), LoadModel.id.desc())
        )
        return list(result.scalars().all())

    async def search(
        self,
        filters: SearchFilters,
        *,
        status: LoadStatus = LoadStatus.OPEN,
        cells: Optional[set[str]] = None,
    ) -> list[LoadModel]:
        """Candidate loads for *filters*.

        Column-level filters run in SQL; JSON (vehicle types) and the exact
        radius check are left to ``domain.matching.load_matches``.
        """
        query = select(LoadModel).where(LoadModel.status == status)
        if filters.min_weight is not None:
            query = query.where(LoadModel.weight >= filters.min_weight)
        if filters.max_weight is not None:
            query = query.where(LoadModel.weight <= filters.max_weight)
        if filters.min_price is not None:
            query = query.where(LoadModel.suggested_price >= filters.min_price)
        if filters.max_price is not None:
            query = query.where(LoadModel.suggested_price <= filters.max_price)
        if filters.pickup_date_from is not None:
            query = query.where(LoadModel.pickup_date >= filters.pickup_date_from)
        if filters.pickup_date_to is not None:
            query = query.where(LoadModel.pickup_date <= filters.pickup_date_to)
        if filters.pickup_city:
            query = query.where(
                LoadModel.pickup_city.ilike(f"%{filters.pickup_city}%")
            )
        if filters.delivery_city:
            query = query.where(
                LoadModel.delivery_city.ilike(f"%{filters.delivery_city}%")
            )
        if cells:
            query = query.where(LoadModel.pickup_cell.in_(cells))
        result = await self.session.execute(
            query.order_by(LoadModel.published_at.desc(), LoadModel.id.desc())
        )
        return list(result.scalars().all())


class BidRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, bid: BidModel) -> BidModel:
        self.session.add(bid)
        await self.session.flush()
        return bid

    async def get_by_id(self, bid_id: int) -> Optional[BidModel]:
        return await self.session.get(BidModel, bid_id)

    async def get_for_update(self, bid_id: int) -> Optional[BidModel]:
        result = await self.session.execute(
            select(BidModel)
            .where(BidModel.id == bid_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_active_for_driver(
        self, load_id: int, driver_id: int
    ) -> Optional[BidModel]:
        result = await self.session.execute(
            select(BidModel).where(
                BidModel.load_id == load_id,
                BidModel.driver_id == driver_id,
                BidModel.status != BidStatus.WITHDRAWN,
            )
        )
        return result.scalars().first()

    async def get_for_load(
        self, load_id: int, status: Optional[BidStatus] = None
    ) -> list[BidModel]:
        query = select(BidModel).where(BidModel.load_id == load_id)
        if status:
            query = query.where(BidModel.status == status)
        result = await self.session.execute(
            query.order_by(BidModel.proposed_price, BidModel.created_at, BidModel.id)
        )
        return list(result.scalars().all())

    async def get_by_driver(
        self, driver_id: int, status: Optional[BidStatus] = None
    ) -> list[BidModel]:
        query = select(BidModel).where(BidModel.driver_id == driver_id)
        if status:
            query = query.where(BidModel.status == status)
        result = await self.session.execute(
            query.order_by(BidModel.created_at.desc(), BidModel.id.desc())
        )
        return list(result.scalars().all())

    async def get_received(
        self, owner_id: int, status: Optional[BidStatus] = None
    ) -> list[BidModel]:
        """Bids on any load owned by *owner_id*, newest first."""
        query = (
            select(BidModel)
            .join(LoadModel, LoadModel.id == BidModel.load_id)
            .where(LoadModel.owner_id == owner_id)
        )
        if status:
            query = query.where(BidModel.status == status)
        result = await self.session.execute(
            query.order_by(BidModel.created_at.desc(), BidModel.id.desc())
        )
        return list(result.scalars().all())

    async def get_expired_pending(self, now: datetime) -> list[BidModel]:
        result = await self.session.execute(
            select(BidModel).where(
                BidModel.status == BidStatus.PENDING,
                BidModel.expires_at.is_not(None),
                BidModel.expires_at <= now,
            )
        )
        return list(result.scalars().all())

    async def delete_for_load(self, load_id: int) -> int:
        result = await self.session.execute(
            delete(BidModel).where(BidModel.load_id == load_id)
        )
        return result.rowcount or 0


class TripRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, trip: TripModel) -> TripModel:
        self.session.add(trip)
        await self.session.flush()
        return trip

    async def get_by_id(self, trip_id: int) -> Optional[TripModel]:
        return await self.session.get(TripModel, trip_id)

    async def get_for_update(self, trip_id: int) -> Optional[TripModel]:
        result = await self.session.execute(
            select(TripModel)
            .where(TripModel.id == trip_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_live_for_load(self, load_id: int) -> Optional[TripModel]:
        result = await self.session.execute(
            select(TripModel).where(
                TripModel.load_id == load_id,
                TripModel.status != TripStatus.CANCELLED,
            )
        )
        return result.scalar_one_or_none()

    async def get_for_load(self, load_id: int) -> list[TripModel]:
        result = await self.session.execute(
            select(TripModel).where(TripModel.load_id == load_id).order_by(TripModel.id)
        )
        return list(result.scalars().all())

    async def get_for_driver(
        self, driver_id: int, statuses: Optional[Sequence[TripStatus]] = None
    ) -> list[TripModel]:
        query = select(TripModel).where(TripModel.driver_id == driver_id)
        if statuses:
            query = query.where(TripModel.status.in_(statuses))
        result = await self.session.execute(
            query.order_by(TripModel.created_at.desc(), TripModel.id.desc())
        )
        return list(result.scalars().all())

    async def get_for_owner(
        self, owner_id: int, statuses: Optional[Sequence[TripStatus]] = None
    ) -> list[TripModel]:
        query = (
            select(TripModel)
            .join(LoadModel, LoadModel.id == TripModel.load_id)
            .where(LoadModel.owner_id == owner_id)
        )
        if statuses:
            query = query.where(TripModel.status.in_(statuses))
        result = await self.session.execute(
            query.order_by(TripModel.created_at.desc(), TripModel.id.desc())
        )
        return list(result.scalars().all())

    async def add_location(self, point: TripLocationModel) -> TripLocationModel:
        self.session.add(point)
        await self.session.flush()
        return point

    async def get_route(self, trip_id: int) -> list[TripLocationModel]:
        result = await self.session.execute(
            select(TripLocationModel)
            .where(TripLocationModel.trip_id == trip_id)
            .order_by(TripLocationModel.id)
        )
        return list(result.scalars().all())


class SubscriptionRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_user(self, user_id: int) -> Optional[SubscriptionModel]:
        result = await self.session.execute(
            select(SubscriptionModel).where(SubscriptionModel.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def get_by_user_for_update(
        self, user_id: int
    ) -> Optional[SubscriptionModel]:
        result = await self.session.execute(
            select(SubscriptionModel)
            .where(SubscriptionModel.user_id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()


class VehicleRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, vehicle_id: int) -> Optional[VehicleModel]:
        return await self.session.get(VehicleModel, vehicle_id)


class SavedSearchRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, search: SavedSearchModel) -> SavedSearchModel:
        self.session.add(search)
        await self.session.flush()
        return search

    async def get_by_id(self, search_id: int) -> Optional[SavedSearchModel]:
        return await self.session.get(SavedSearchModel, search_id)

    async def get_by_user(self, user_id: int) -> list[SavedSearchModel]:
        result = await self.session.execute(
            select(SavedSearchModel)
            .where(SavedSearchModel.user_id == user_id)
            .order_by(SavedSearchModel.created_at.desc(), SavedSearchModel.id.desc())
        )
        return list(result.scalars().all())

    async def get_notifying(self) -> list[SavedSearchModel]:
        result = await self.session.execute(
            select(SavedSearchModel).where(SavedSearchModel.notify_on_new.is_(True))
        )
        return list(result.scalars().all())

    async def delete(self, search: SavedSearchModel) -> None:
        await self.session.delete(search)
        await self.session.flush()



class LoadTemplateRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, template: LoadTemplateModel) -> LoadTemplateModel:
        self.session.add(template)
        await self.session.flush()
        return template

    async def get_by_id(self, template_id: int) -> Optional[LoadTemplateModel]:
        return await self.session.get(LoadTemplateModel, template_id)

    async def get_by_user(self, user_id: int) -> list[LoadTemplateModel]:
        result = await self.session.execute(
            select(LoadTemplateModel)
            .where(LoadTemplateModel.user_id == user_id)
            .order_by(LoadTemplateModel.created_at.desc(), LoadTemplateModel.id.desc())
        )
        return list(result.scalars().all())

    async def delete(self, template: LoadTemplateModel) -> None:
        await self.session.delete(template)
        await self.session.flush()

"""
Shared test fixtures.

Each test gets a fresh SQLite database in a temporary file (via aiosqlite)
so tests run without Docker / PostgreSQL / Redis.  A file rather than
``:memory:`` lets concurrent tests open several real connections to the
same database.  Time is pinned with ``FixedClock``; notifications go to a
recording sink.
"""

from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from src.domain.clock import FixedClock
from src.domain.entities import LoadSpec, Place
from src.domain.enums import PlanType, SubscriptionStatus, VehicleType
from src.infrastructure.database import Base
from src.infrastructure.models import SubscriptionModel, UserModel, VehicleModel
from src.services.bid_manager import BidManager, BidOffer
from src.services.load_manager import LoadManager
from src.services.notifications import (
    Notification,
    NotificationDispatcher,
    NotificationSink,
)
from src.services.quota_ledger import QuotaLedger
from src.services.saved_searches import SavedSearchManager, SearchNotifier
from src.services.trip_manager import TripManager

START = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)

HARARE = Place("1 Depot Rd", "Harare", -17.8292, 31.0522, "Harare")
BULAWAYO = Place("9 Market St", "Bulawayo", -20.1325, 28.6265, "Bulawayo")
MUTARE = Place("4 Border Rd", "Mutare", -18.9707, 32.6709, "Manicaland")


class RecordingSink(NotificationSink):
    def __init__(self):
        self.sent: list[tuple[int, Notification]] = []

    async def send(self, user_id: int, notification: Notification) -> None:
        self.sent.append((user_id, notification))

    def to(self, user_id: int) -> list[Notification]:
        return [n for uid, n in self.sent if uid == user_id]


def make_spec(**overrides) -> LoadSpec:
    values = dict(
        title="Maize bags",
        cargo_type="Grain",
        weight=8000.0,
        pickup=HARARE,
        delivery=BULAWAYO,
        pickup_date=START + timedelta(days=1),
        vehicle_types=frozenset({VehicleType.MEDIUM_TRUCK, VehicleType.LARGE_TRUCK}),
        suggested_price=650.0,
    )
    values.update(overrides)
    return LoadSpec(**values)


def make_offer(price: float = 600.0, **overrides) -> BidOffer:
    return BidOffer(proposed_price=price, **overrides)


# ── Fixtures ──────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker, None]:
    """Create tables in a fresh SQLite file, yield a session factory, dispose."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'freight.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(START)


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest_asyncio.fixture
async def dispatcher(sink, session_factory) -> AsyncGenerator[NotificationDispatcher, None]:
    """Drained before the database goes away so no side effect outlives it."""
    dispatcher = NotificationDispatcher(sink)
    yield dispatcher
    await dispatcher.drain()


@pytest.fixture
def ledger(session_factory, clock) -> QuotaLedger:
    return QuotaLedger(session_factory, clock, free_loads=1, free_bids=3)


@pytest.fixture
def notifier(session_factory, dispatcher) -> SearchNotifier:
    return SearchNotifier(session_factory, dispatcher)


@pytest.fixture
def loads(session_factory, ledger, dispatcher, notifier, clock) -> LoadManager:
    return LoadManager(session_factory, ledger, dispatcher, notifier=notifier, clock=clock)


@pytest.fixture
def bids(session_factory, ledger, dispatcher, clock) -> BidManager:
    return BidManager(session_factory, ledger, dispatcher, clock=clock)


@pytest.fixture
def trips(session_factory, dispatcher, clock) -> TripManager:
    return TripManager(session_factory, dispatcher, clock=clock)


@pytest.fixture
def saved_searches(session_factory) -> SavedSearchManager:
    return SavedSearchManager(session_factory)


@pytest.fixture
def add_user(session_factory):
    """``await add_user(plan=..., status=...)`` -> user id with a subscription."""
    counter = {"n": 0}

    async def _add_user(
        plan: PlanType = PlanType.BUSINESS,
        status: SubscriptionStatus = SubscriptionStatus.ACTIVE,
        subscribed: bool = True,
        **subscription_fields,
    ) -> int:
        counter["n"] += 1
        n = counter["n"]
        async with session_factory() as session:
            user = UserModel(name=f"User {n}", email=f"user{n}@example.com")
            session.add(user)
            await session.flush()
            if subscribed:
                fields = dict(
                    started_at=START,
                    loads_posted_this_period=0,
                    bids_placed_this_period=0,
                )
                fields.update(subscription_fields)
                session.add(
                    SubscriptionModel(user_id=user.id, plan=plan, status=status, **fields)
                )
            await session.commit()
            return user.id

    return _add_user


@pytest.fixture
def add_vehicle(session_factory):
    async def _add_vehicle(
        owner_id: int,
        vehicle_type: VehicleType = VehicleType.MEDIUM_TRUCK,
        is_active: bool = True,
    ) -> int:
        async with session_factory() as session:
            vehicle = VehicleModel(
                owner_id=owner_id,
                vehicle_type=vehicle_type,
                plate_number="ABC 1234",
                is_active=is_active,
            )
            session.add(vehicle)
            await session.commit()
            return vehicle.id

    return _add_vehicle


@pytest.fixture
def open_load(loads, add_user):
    """``await open_load(owner_id=None, **spec)`` -> published load."""

    async def _open_load(owner_id: Optional[int] = None, **spec_overrides):
        if owner_id is None:
            owner_id = await add_user()
        load = await loads.create(owner_id, make_spec(**spec_overrides))
        return await loads.publish(load.id, owner_id)

    return _open_load

"""
Concurrency safety tests.

Demonstrates:
1. Two owners / tabs accepting bids on the same load at once: exactly one
   trip is created, every loser gets a retryable ``Conflict``.
2. Two concurrent publishes on a FREE plan cannot both take the last
   quota slot.
3. An owner cancelling a trip while the driver completes it or reports
   its location: the trip and its load end in one consistent state.
4. Distributed lock prevents simultaneous acquire.

The database tests run real concurrent transactions against one SQLite
file; the version columns and partial unique indexes decide the winner.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import func, select

from src.domain.entities import RoutePoint
from src.domain.enums import BidStatus, LoadStatus, PlanType, TripStatus
from src.domain.errors import Conflict, InvalidState, QuotaExceeded
from src.infrastructure.locks import DistributedLock, LockNotAcquired
from src.infrastructure.models import TripModel
from src.services.trip_manager import CompletionData
from tests.conftest import make_offer, make_spec


async def _trip_count(session_factory, load_id: int) -> int:
    async with session_factory() as session:
        result = await session.execute(
            select(func.count()).select_from(TripModel).where(TripModel.load_id == load_id)
        )
        return result.scalar()


class TestConcurrentAccept:
    @pytest.mark.asyncio
    async def test_two_bids_accepted_at_once(
        self, bids, loads, session_factory, open_load, add_user
    ):
        owner = await add_user()
        load = await open_load(owner)
        first = await bids.create(await add_user(), load.id, make_offer(600.0))
        second = await bids.create(await add_user(), load.id, make_offer(610.0))

        results = await asyncio.gather(
            bids.accept(first.id, owner),
            bids.accept(second.id, owner),
            return_exceptions=True,
        )

        winners = [r for r in results if not isinstance(r, Exception)]
        losers = [r for r in results if isinstance(r, Exception)]
        assert len(winners) == 1
        assert len(losers) == 1
        assert isinstance(losers[0], Conflict)
        assert losers[0].retryable

        assert await _trip_count(session_factory, load.id) == 1
        assert (await loads.get(load.id, owner)).status == LoadStatus.ASSIGNED
        accepted = await bids.list_for_load(load.id, owner, BidStatus.ACCEPTED)
        assert [b.id for b in accepted] == [winners[0].bid_id]

    @pytest.mark.asyncio
    async def test_same_bid_accepted_from_two_tabs(
        self, bids, session_factory, open_load, add_user
    ):
        owner = await add_user()
        load = await open_load(owner)
        bid = await bids.create(await add_user(), load.id, make_offer())

        results = await asyncio.gather(
            *(bids.accept(bid.id, owner) for _ in range(3)),
            return_exceptions=True,
        )

        assert sum(not isinstance(r, Exception) for r in results) == 1
        assert all(isinstance(r, Conflict) for r in results if isinstance(r, Exception))
        assert await _trip_count(session_factory, load.id) == 1

    @pytest.mark.asyncio
    async def test_loser_can_see_the_winner_after_retry(self, bids, open_load, add_user):
        owner = await add_user()
        load = await open_load(owner)
        first = await bids.create(await add_user(), load.id, make_offer(600.0))
        second = await bids.create(await add_user(), load.id, make_offer(610.0))

        await asyncio.gather(
            bids.accept(first.id, owner),
            bids.accept(second.id, owner),
            return_exceptions=True,
        )
        # A retry after the race settles is still a Conflict, never a second trip
        for bid_id in (first.id, second.id):
            with pytest.raises(Conflict):
                await bids.accept(bid_id, owner)


class TestConcurrentQuota:
    @pytest.mark.asyncio
    async def test_free_plan_publishes_race_for_one_slot(
        self, loads, ledger, add_user
    ):
        owner = await add_user(plan=PlanType.FREE)
        a = await loads.create(owner, make_spec(title="A"))
        b = await loads.create(owner, make_spec(title="B"))

        results = await asyncio.gather(
            loads.publish(a.id, owner),
            loads.publish(b.id, owner),
            return_exceptions=True,
        )

        published = [r for r in results if not isinstance(r, Exception)]
        denied = [r for r in results if isinstance(r, Exception)]
        assert len(published) == 1
        assert len(denied) == 1
        assert isinstance(denied[0], (Conflict, QuotaExceeded))
        assert (await ledger.usage(owner)).loads_posted == 1

        open_loads = await loads.list_for_owner(owner, LoadStatus.OPEN)
        assert len(open_loads) == 1


class TestConcurrentTripUpdates:
    """The owner cancels while the driver is still reporting on the trip."""

    @staticmethod
    async def _in_progress(bids, trips, clock, open_load, add_user):
        owner = await add_user()
        driver = await add_user()
        load = await open_load(owner)
        bid = await bids.create(driver, load.id, make_offer())
        trip = await bids.accept(bid.id, owner)
        clock.advance(days=1)
        await trips.start(trip.id, driver)
        return trip.id, load.id, owner, driver

    @pytest.mark.asyncio
    async def test_cancel_races_complete(
        self, bids, trips, loads, clock, open_load, add_user
    ):
        trip_id, load_id, owner, driver = await self._in_progress(
            bids, trips, clock, open_load, add_user
        )

        results = await asyncio.gather(
            trips.cancel(trip_id, owner, reason="Changed my mind"),
            trips.complete(
                trip_id, driver, CompletionData(proof_of_delivery="s3://proofs/pod.jpg")
            ),
            return_exceptions=True,
        )

        winners = [r for r in results if not isinstance(r, Exception)]
        losers = [r for r in results if isinstance(r, Exception)]
        assert len(winners) == 1
        assert all(isinstance(e, (Conflict, InvalidState)) for e in losers)

        trip = await trips.get(trip_id, owner)
        load = await loads.get(load_id, owner)
        expected = {
            TripStatus.CANCELLED: LoadStatus.OPEN,
            TripStatus.COMPLETED: LoadStatus.DELIVERED,
        }
        assert TripStatus(trip.status) == TripStatus(winners[0].status)
        assert LoadStatus(load.status) == expected[TripStatus(trip.status)]

    @pytest.mark.asyncio
    async def test_cancel_races_location_update(
        self, bids, trips, loads, clock, open_load, add_user
    ):
        trip_id, load_id, owner, driver = await self._in_progress(
            bids, trips, clock, open_load, add_user
        )
        point = RoutePoint(latitude=-18.0, longitude=30.9, recorded_at=clock.now())

        cancelled, located = await asyncio.gather(
            trips.cancel(trip_id, owner),
            trips.update_location(trip_id, driver, point),
            return_exceptions=True,
        )

        for outcome in (cancelled, located):
            if isinstance(outcome, Exception):
                assert isinstance(outcome, (Conflict, InvalidState))

        trip = await trips.get(trip_id, owner)
        load = await loads.get(load_id, owner)
        if TripStatus(trip.status) == TripStatus.CANCELLED:
            assert LoadStatus(load.status) == LoadStatus.OPEN
            bid = (await bids.list_for_driver(driver))[0]
            assert bid.status == BidStatus.PENDING
        else:
            assert isinstance(cancelled, Exception)
            assert TripStatus(trip.status) == TripStatus.IN_PROGRESS
            assert LoadStatus(load.status) == LoadStatus.IN_TRANSIT

        route = await trips.route(trip_id, owner)
        assert len(route) == (0 if isinstance(located, Exception) else 1)


class TestDistributedLock:
    """Tests the Redis distributed lock logic (mocked Redis)."""

    @pytest.mark.asyncio
    async def test_acquire_succeeds(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)

        lock = DistributedLock(mock_redis, "bid_expiry_sweep", ttl_seconds=10)
        assert await lock.acquire() is True
        mock_redis.set.assert_called_once_with(
            "lock:bid_expiry_sweep", lock.token, nx=True, ex=10
        )

    @pytest.mark.asyncio
    async def test_acquire_fails_if_held(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=None)

        lock = DistributedLock(mock_redis, "bid_expiry_sweep", ttl_seconds=10)
        assert await lock.acquire() is False

    @pytest.mark.asyncio
    async def test_release_only_deletes_own_token(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)
        mock_redis.eval = AsyncMock(return_value=0)

        lock = DistributedLock(mock_redis, "bid_expiry_sweep", ttl_seconds=10)
        await lock.acquire()
        assert await lock.release() is False

        _, numkeys, key, token = mock_redis.eval.call_args.args
        assert (numkeys, key, token) == (1, "lock:bid_expiry_sweep", lock.token)

    @pytest.mark.asyncio
    async def test_context_manager_acquire_fail_raises(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=False)

        lock = DistributedLock(mock_redis, "bid_expiry_sweep", ttl_seconds=10)
        with pytest.raises(LockNotAcquired, match="Could not acquire lock"):
            async with lock:
                pass

    @pytest.mark.asyncio
    async def test_context_manager_releases(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)
        mock_redis.eval = AsyncMock(return_value=1)

        async with DistributedLock(mock_redis, "bid_expiry_sweep"):
            pass
        mock_redis.eval.assert_called_once()

    def test_tokens_are_unique_per_holder(self):
        a = DistributedLock(AsyncMock(), "k")
        b = DistributedLock(AsyncMock(), "k")
        assert a.token != b.token

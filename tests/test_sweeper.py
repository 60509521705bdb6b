"""
Tests for the background bid-expiry sweeper (mocked Redis lock).
"""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from src.domain.enums import BidStatus
from src.domain.errors import Conflict
from src.workers.expiry_sweeper import run_sweep_cycle
from tests.conftest import START, make_offer


def _redis(acquired: bool = True) -> AsyncMock:
    client = AsyncMock()
    client.set = AsyncMock(return_value=acquired)
    client.eval = AsyncMock(return_value=1)
    return client


class TestSweepCycle:
    @pytest.mark.asyncio
    async def test_sweep_expires_and_releases_lock(self, bids, clock, open_load, add_user):
        driver = await add_user()
        load = await open_load()
        await bids.create(driver, load.id, make_offer(expires_at=START + timedelta(minutes=30)))
        clock.advance(hours=1)
        redis = _redis()

        assert await run_sweep_cycle(bids, redis) == 1
        assert (await bids.list_for_driver(driver))[0].status == BidStatus.REJECTED
        redis.eval.assert_called_once()

    @pytest.mark.asyncio
    async def test_skips_when_lock_held(self):
        manager = AsyncMock()
        redis = _redis(acquired=False)

        assert await run_sweep_cycle(manager, redis) is None
        manager.expire_stale.assert_not_called()
        redis.eval.assert_not_called()

    @pytest.mark.asyncio
    async def test_lost_race_counts_as_zero_and_releases(self):
        manager = AsyncMock()
        manager.expire_stale = AsyncMock(side_effect=Conflict("modified concurrently"))
        redis = _redis()

        assert await run_sweep_cycle(manager, redis) == 0
        redis.eval.assert_called_once()

    @pytest.mark.asyncio
    async def test_unexpected_error_propagates_after_release(self):
        manager = AsyncMock()
        manager.expire_stale = AsyncMock(side_effect=RuntimeError("boom"))
        redis = _redis()

        with pytest.raises(RuntimeError):
            await run_sweep_cycle(manager, redis)
        redis.eval.assert_called_once()

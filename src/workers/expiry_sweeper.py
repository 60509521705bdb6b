"""
Background Bid-Expiry Sweeper
=============================

Opt-in (``BID_EXPIRY_SWEEP_ENABLED``); without it ``expires_at`` on a bid
is advisory only.  Runs every ``BID_EXPIRY_SWEEP_INTERVAL_SECONDS``.

Concurrency safety
------------------
* **Redis distributed lock** ensures only one API process sweeps per cycle.
* Each expired bid is rejected through its version column, so a sweep that
  races an owner's accept loses cleanly (the whole sweep becomes a
  ``Conflict`` and is retried next cycle).
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from src.config import settings
from src.domain.errors import Conflict
from src.infrastructure.locks import DistributedLock
from src.infrastructure.redis_client import get_redis
from src.services.bid_manager import BidManager

logger = logging.getLogger(__name__)

_task: asyncio.Task | None = None
_stop_event: asyncio.Event | None = None


# ── Public API ────────────────────────────────────────────────────────


async def start_expiry_sweeper(manager: BidManager) -> None:
    global _task, _stop_event
    _stop_event = asyncio.Event()
    _task = asyncio.create_task(_loop(manager))
    logger.info(
        "Bid expiry sweeper started (interval=%ds)",
        settings.bid_expiry_sweep_interval_seconds,
    )


async def stop_expiry_sweeper() -> None:
    if _stop_event:
        _stop_event.set()
    if _task:
        _task.cancel()
        try:
            await _task
        except asyncio.CancelledError:
            pass
    logger.info("Bid expiry sweeper stopped")


# ── Internals ─────────────────────────────────────────────────────────


async def _loop(manager: BidManager) -> None:
    """Periodic loop: sweep then sleep."""
    assert _stop_event is not None
    while not _stop_event.is_set():
        try:
            await run_sweep_cycle(manager)
        except Exception:
            logger.exception("Unhandled error in expiry sweep")
        # Wait for the interval or until stop is signalled
        try:
            await asyncio.wait_for(
                _stop_event.wait(),
                timeout=settings.bid_expiry_sweep_interval_seconds,
            )
            break
        except asyncio.TimeoutError:
            pass  # next cycle


async def run_sweep_cycle(manager: BidManager, redis=None) -> Optional[int]:
    """Run one sweep.  Returns bids expired, or None if another worker holds the lock."""
    redis = redis or await get_redis()
    lock = DistributedLock(redis, "bid_expiry_sweep", ttl_seconds=60)

    if not await lock.acquire():
        logger.debug("Lock held by another worker - skipping sweep")
        return None

    try:
        return await manager.expire_stale()
    except Conflict as exc:
        logger.info("Expiry sweep lost a race, retrying next cycle: %s", exc.reason)
        return 0
    finally:
        await lock.release()

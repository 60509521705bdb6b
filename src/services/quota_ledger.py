"""
Quota Ledger
============

Gates load publishing and bid placement on the caller's subscription.

``check_and_reserve`` runs inside the caller's unit of work: it locks the
subscription row, rolls the period if the month changed, evaluates the plan
limit and increments the counter.  Whatever the guarded action does next
commits or rolls back together with the reservation, so a failed publish
never burns quota and two concurrent reservations cannot both take the last
slot (row lock on PostgreSQL, version column everywhere).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.domain.clock import Clock
from src.domain.enums import PlanType, QuotaKind, SubscriptionStatus
from src.domain.errors import QuotaExceeded, SubscriptionNotFound
from src.domain.quota import (
    QuotaCounter,
    QuotaDecision,
    effective_status,
    evaluate,
    increment,
    plan_limits,
    roll_if_new_period,
)
from src.infrastructure.models import SubscriptionModel
from src.infrastructure.repositories import SubscriptionRepository
from src.services.uow import unit_of_work

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QuotaUsage:
    plan: PlanType
    status: SubscriptionStatus
    loads_posted: int
    bids_placed: int
    load_limit: Optional[int]
    bid_limit: Optional[int]
    period_start: Optional[datetime]


class QuotaLedger:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Optional[Clock] = None,
        free_loads: int = 1,
        free_bids: int = 3,
    ):
        self.session_factory = session_factory
        self.clock = clock or Clock()
        self.free_loads = free_loads
        self.free_bids = free_bids

    # ── Guarded path ──────────────────────────────────────────────────

    async def check_and_reserve(
        self, session: AsyncSession, user_id: int, kind: QuotaKind
    ) -> QuotaDecision:
        """Reserve one *kind* action for *user_id* in *session*'s transaction.

        Raises ``SubscriptionNotFound`` or ``QuotaExceeded``.
        """
        sub = await SubscriptionRepository(session).get_by_user_for_update(user_id)
        if sub is None:
            raise SubscriptionNotFound(user_id)

        now = self.clock.now()
        counter, decision = self._decide(sub, kind, now)
        if not decision.allowed:
            logger.info(
                "Quota denied user=%s kind=%s used=%s limit=%s",
                user_id,
                kind.value,
                decision.used,
                decision.limit,
            )
            raise QuotaExceeded(
                decision.reason or "Quota exceeded",
                limit=decision.limit,
                used=decision.used,
                remaining=decision.remaining,
                upgrade_to=decision.upgrade_to.value if decision.upgrade_to else None,
            )

        counter = increment(counter, kind)
        sub.loads_posted_this_period = counter.loads_posted
        sub.bids_placed_this_period = counter.bids_placed
        sub.last_reset_date = counter.last_reset_date
        logger.info(
            "Quota reserved user=%s kind=%s used=%d",
            user_id,
            kind.value,
            counter.used(kind),
        )
        return replace(
            decision,
            used=counter.used(kind),
            remaining=None if decision.remaining is None else decision.remaining - 1,
        )

    # ── Read side ─────────────────────────────────────────────────────

    async def preview(self, user_id: int, kind: QuotaKind) -> QuotaDecision:
        """Would one more *kind* action be allowed right now?  Reserves nothing."""
        async with unit_of_work(self.session_factory) as session:
            sub = await SubscriptionRepository(session).get_by_user(user_id)
            if sub is None:
                raise SubscriptionNotFound(user_id)
            _, decision = self._decide(sub, kind, self.clock.now())
            return decision

    async def usage(self, user_id: int) -> QuotaUsage:
        async with unit_of_work(self.session_factory) as session:
            sub = await SubscriptionRepository(session).get_by_user(user_id)
            if sub is None:
                raise SubscriptionNotFound(user_id)
            now = self.clock.now()
            counter = self._rolled(sub, now)
            plan = PlanType(sub.plan)
            limits = plan_limits(plan, self.free_loads, self.free_bids)
            return QuotaUsage(
                plan=plan,
                status=self._status(sub, now),
                loads_posted=counter.loads_posted,
                bids_placed=counter.bids_placed,
                load_limit=limits.loads,
                bid_limit=limits.bids,
                period_start=counter.last_reset_date,
            )

    # ── Internals ─────────────────────────────────────────────────────

    def _rolled(self, sub: SubscriptionModel, now: datetime) -> QuotaCounter:
        counter = QuotaCounter(
            loads_posted=sub.loads_posted_this_period or 0,
            bids_placed=sub.bids_placed_this_period or 0,
            last_reset_date=sub.last_reset_date,
        )
        return roll_if_new_period(counter, now, anchor=sub.started_at)

    @staticmethod
    def _status(sub: SubscriptionModel, now: datetime) -> SubscriptionStatus:
        return effective_status(
            SubscriptionStatus(sub.status), now, sub.trial_end_date, sub.end_date
        )

    def _decide(
        self, sub: SubscriptionModel, kind: QuotaKind, now: datetime
    ) -> tuple[QuotaCounter, QuotaDecision]:
        counter = self._rolled(sub, now)
        plan = PlanType(sub.plan)
        decision = evaluate(
            counter,
            plan,
            self._status(sub, now),
            kind,
            plan_limits(plan, self.free_loads, self.free_bids),
        )
        return counter, decision

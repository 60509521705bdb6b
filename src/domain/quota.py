"""
Subscription usage quota (pure functions)
=========================================

Counters
--------
Each subscription carries ``loads_posted`` / ``bids_placed`` for the current
billing period and the ``last_reset_date`` that anchors that period.  The
period is the calendar month (UTC).

Reset rule
----------
``roll_if_new_period`` zeroes both counters when the month of *now* differs
from the month of the anchor.  It is applied inside the same transaction as
the check and the increment, never by a scheduled job, so a reset happens
exactly once per period and cannot race an increment.

Limits
------
FREE: ``free_loads_per_period`` loads, ``free_bids_per_period`` bids.
Paid tiers: unlimited (``None``).
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Optional

from .enums import PlanType, QuotaKind, SubscriptionStatus

UPGRADE_PATH: dict[PlanType, Optional[PlanType]] = {
    PlanType.FREE: PlanType.STARTER,
    PlanType.STARTER: PlanType.PROFESSIONAL,
    PlanType.PROFESSIONAL: PlanType.BUSINESS,
    PlanType.BUSINESS: None,
}

INACTIVE_STATUSES = frozenset({SubscriptionStatus.CANCELLED, SubscriptionStatus.EXPIRED})


@dataclass(frozen=True)
class QuotaCounter:
    loads_posted: int = 0
    bids_placed: int = 0
    last_reset_date: Optional[datetime] = None

    def used(self, kind: QuotaKind) -> int:
        return self.loads_posted if kind == QuotaKind.LOAD else self.bids_placed


@dataclass(frozen=True)
class PlanLimits:
    loads: Optional[int]
    bids: Optional[int]

    def for_kind(self, kind: QuotaKind) -> Optional[int]:
        return self.loads if kind == QuotaKind.LOAD else self.bids


@dataclass(frozen=True)
class QuotaDecision:
    allowed: bool
    kind: QuotaKind
    reason: Optional[str] = None
    limit: Optional[int] = None
    used: int = 0
    remaining: Optional[int] = None
    upgrade_to: Optional[PlanType] = None


def _period(value: datetime) -> tuple[int, int]:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.year, value.month


def same_period(a: datetime, b: datetime) -> bool:
    return _period(a) == _period(b)


def roll_if_new_period(
    counter: QuotaCounter, now: datetime, anchor: Optional[datetime] = None
) -> QuotaCounter:
    """Return *counter* reset to zero if *now* is in a later period.

    *anchor* (usually the subscription start) stands in for a counter that
    has never been reset.  A counter with no anchor at all is stamped with
    *now* and keeps its counts.
    """
    reference = counter.last_reset_date or anchor
    if reference is None:
        return replace(counter, last_reset_date=now)
    if same_period(reference, now):
        return counter
    return QuotaCounter(loads_posted=0, bids_placed=0, last_reset_date=now)


def increment(counter: QuotaCounter, kind: QuotaKind) -> QuotaCounter:
    if kind == QuotaKind.LOAD:
        return replace(counter, loads_posted=counter.loads_posted + 1)
    return replace(counter, bids_placed=counter.bids_placed + 1)


def plan_limits(
    plan: PlanType, free_loads: int = 1, free_bids: int = 3
) -> PlanLimits:
    if plan == PlanType.FREE:
        return PlanLimits(loads=free_loads, bids=free_bids)
    return PlanLimits(loads=None, bids=None)


def effective_status(
    status: SubscriptionStatus,
    now: datetime,
    trial_end_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
) -> SubscriptionStatus:
    """Lapsed trials and paid periods count as EXPIRED."""
    if status == SubscriptionStatus.TRIAL and trial_end_date and now > trial_end_date:
        return SubscriptionStatus.EXPIRED
    if status == SubscriptionStatus.ACTIVE and end_date and now > end_date:
        return SubscriptionStatus.EXPIRED
    return status


def evaluate(
    counter: QuotaCounter,
    plan: PlanType,
    status: SubscriptionStatus,
    kind: QuotaKind,
    limits: PlanLimits,
) -> QuotaDecision:
    """Decide whether one more *kind* action fits.  *counter* must be rolled."""
    used = counter.used(kind)

    if status in INACTIVE_STATUSES:
        return QuotaDecision(
            allowed=False,
            kind=kind,
            reason=f"Subscription is {status.value.lower()}",
            limit=0,
            used=used,
            remaining=0,
            upgrade_to=plan if plan != PlanType.FREE else PlanType.STARTER,
        )

    limit = limits.for_kind(kind)
    if limit is None:
        return QuotaDecision(allowed=True, kind=kind, used=used)

    noun = "load" if kind == QuotaKind.LOAD else "bid"
    if used >= limit:
        return QuotaDecision(
            allowed=False,
            kind=kind,
            reason=f"{plan.value.title()} tier allows {limit} {noun}(s) per month",
            limit=limit,
            used=used,
            remaining=0,
            upgrade_to=UPGRADE_PATH[plan],
        )
    return QuotaDecision(
        allowed=True, kind=kind, limit=limit, used=used, remaining=limit - used
    )

"""
Process-wide service wiring.

One clock, one notification dispatcher and one quota ledger are shared by
every manager; managers are cheap and stateless apart from these.
"""

from __future__ import annotations

from src.config import settings
from src.domain.clock import Clock
from src.infrastructure.database import async_session_factory
from src.services.bid_manager import BidManager
from src.services.load_manager import LoadManager
from src.services.load_templates import LoadTemplateManager
from src.services.notifications import NotificationDispatcher, build_sink
from src.services.quota_ledger import QuotaLedger
from src.services.saved_searches import SavedSearchManager, SearchNotifier
from src.services.trip_manager import TripManager

clock = Clock()

dispatcher = NotificationDispatcher(
    build_sink(settings.notification_backend, settings.notification_channel_prefix)
)

ledger = QuotaLedger(
    async_session_factory,
    clock,
    free_loads=settings.free_loads_per_period,
    free_bids=settings.free_bids_per_period,
)

search_notifier = SearchNotifier(async_session_factory, dispatcher)


def load_manager() -> LoadManager:
    return LoadManager(
        async_session_factory,
        ledger,
        dispatcher,
        notifier=search_notifier,
        clock=clock,
        h3_resolution=settings.search_h3_resolution,
    )


def bid_manager() -> BidManager:
    return BidManager(
        async_session_factory,
        ledger,
        dispatcher,
        clock=clock,
        auto_reject_competing=settings.auto_reject_competing_bids,
    )


def trip_manager() -> TripManager:
    return TripManager(async_session_factory, dispatcher, clock=clock)


def saved_search_manager() -> SavedSearchManager:
    return SavedSearchManager(async_session_factory)


def load_template_manager() -> LoadTemplateManager:
    return LoadTemplateManager(async_session_factory, load_manager())

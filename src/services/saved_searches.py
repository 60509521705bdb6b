"""
Saved searches and the new-load notifier
========================================

Drivers store a ``SearchFilters`` set under a name.  When a load is
published, ``SearchNotifier.notify_matches`` runs (after the publish has
committed) and sends one ``NEW_LOAD`` notification to every driver with a
matching search that has ``notify_on_new`` set.  The load's owner is never
notified about their own load.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.domain.entities import Load
from src.domain.enums import NotificationType
from src.domain.errors import NotFound, Unauthorized, ValidationError
from src.domain.matching import SearchFilters, load_matches
from src.infrastructure.models import SavedSearchModel
from src.infrastructure.repositories import SavedSearchRepository
from src.services.notifications import Notification, NotificationDispatcher
from src.services.uow import unit_of_work

logger = logging.getLogger(__name__)


class SavedSearchManager:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def create(
        self,
        user_id: int,
        name: str,
        filters: SearchFilters,
        notify_on_new: bool = True,
    ) -> SavedSearchModel:
        if not name or not name.strip():
            raise ValidationError("name is required")
        if filters.radius_km is not None and filters.radius_km <= 0:
            raise ValidationError("radius_km must be positive")
        async with unit_of_work(self.session_factory) as session:
            search = await SavedSearchRepository(session).create(
                SavedSearchModel(
                    user_id=user_id,
                    name=name.strip(),
                    filters=filters.to_dict(),
                    notify_on_new=notify_on_new,
                )
            )
        logger.info("Saved search %s created for user %s", search.id, user_id)
        return search

    async def list_for_user(self, user_id: int) -> list[SavedSearchModel]:
        async with unit_of_work(self.session_factory) as session:
            return await SavedSearchRepository(session).get_by_user(user_id)

    async def delete(self, search_id: int, user_id: int) -> None:
        async with unit_of_work(self.session_factory) as session:
            repo = SavedSearchRepository(session)
            search = await repo.get_by_id(search_id)
            if search is None:
                raise NotFound("Saved search", search_id)
            if search.user_id != user_id:
                raise Unauthorized("Only the owner can delete a saved search")
            await repo.delete(search)
        logger.info("Saved search %s deleted", search_id)


class SearchNotifier:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        dispatcher: NotificationDispatcher,
    ):
        self.session_factory = session_factory
        self.dispatcher = dispatcher

    async def matching_users(self, load: Load) -> list[int]:
        """Users (other than the owner) holding a notifying search that matches."""
        async with unit_of_work(self.session_factory) as session:
            searches = await SavedSearchRepository(session).get_notifying()

        users: list[int] = []
        seen: set[int] = set()
        for search in searches:
            if search.user_id == load.owner_id or search.user_id in seen:
                continue
            try:
                filters = SearchFilters.from_dict(search.filters or {})
            except (TypeError, ValueError):
                logger.warning("Skipping saved search %s: bad filters", search.id)
                continue
            if load_matches(load, filters):
                seen.add(search.user_id)
                users.append(search.user_id)
        return users

    async def notify_matches(self, load: Load) -> int:
        """Notify every matching driver; returns how many were notified."""
        users = await self.matching_users(load)
        route = self._route_label(load)
        for user_id in users:
            self.dispatcher.notify(
                user_id,
                Notification(
                    title="New load matches your search",
                    body=f"{load.title}: {route}",
                    type=NotificationType.NEW_LOAD,
                    data={"load_id": load.id},
                ),
            )
        if users:
            logger.info("Load %s matched %d saved search(es)", load.id, len(users))
        return len(users)

    @staticmethod
    def _route_label(load: Load) -> Optional[str]:
        if load.pickup is None or load.delivery is None:
            return None
        return f"{load.pickup.city} -> {load.delivery.city}"

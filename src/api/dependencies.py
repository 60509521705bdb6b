"""FastAPI dependency injection helpers."""

from typing import Optional

from fastapi import Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from src.infrastructure.database import async_session_factory
from src.services import container
from src.services.bid_manager import BidManager
from src.services.load_manager import LoadManager
from src.services.load_templates import LoadTemplateManager
from src.services.quota_ledger import QuotaLedger
from src.services.saved_searches import SavedSearchManager
from src.services.trip_manager import TripManager


async def get_db() -> AsyncSession:  # type: ignore[misc]
    """Yield an async DB session; commit on success, rollback on error."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_caller_id(
    x_user_id: Optional[int] = Header(None, alias="X-User-Id"),
) -> int:
    """Caller identity, authenticated upstream and forwarded as a header."""
    if x_user_id is None:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return x_user_id


def get_load_manager() -> LoadManager:
    return container.load_manager()


def get_bid_manager() -> BidManager:
    return container.bid_manager()


def get_trip_manager() -> TripManager:
    return container.trip_manager()


def get_saved_search_manager() -> SavedSearchManager:
    return container.saved_search_manager()


def get_load_template_manager() -> LoadTemplateManager:
    return container.load_template_manager()


def get_quota_ledger() -> QuotaLedger:
    return container.ledger

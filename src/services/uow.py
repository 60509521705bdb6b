"""
Unit of work.

One session, one transaction.  Storage-level failures raised while the
transaction runs or commits mean a concurrent writer got there first; they
leave this module as ``Conflict`` so callers only ever see domain errors.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from src.domain.errors import Conflict

logger = logging.getLogger(__name__)


@asynccontextmanager
async def unit_of_work(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    """Yield a session inside ``BEGIN``; commit on success, roll back on error."""
    async with session_factory() as session:
        try:
            async with session.begin():
                yield session
        except StaleDataError as exc:
            logger.info("Stale write rejected: %s", exc)
            raise Conflict("The record was modified concurrently") from exc
        except IntegrityError as exc:
            logger.info("Uniqueness violation: %s", exc.orig)
            raise Conflict("A conflicting record already exists") from exc
        except OperationalError as exc:
            logger.warning("Storage contention: %s", exc.orig)
            raise Conflict("The record is locked by another transaction") from exc

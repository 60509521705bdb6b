"""
Admin / observability endpoints
===============================

GET  /api/v1/admin/health      -- liveness plus a database round-trip
POST /api/v1/admin/expire-bids -- run one bid-expiry sweep now
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_bid_manager, get_db
from src.api.middleware import limiter
from src.api.schemas import HealthResponse, SweepResponse
from src.services.bid_manager import BidManager

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post(
    "/expire-bids",
    response_model=SweepResponse,
    summary="Reject pending bids past their expiry",
)
@limiter.limit("10/minute")
async def expire_bids(
    request: Request,
    manager: BidManager = Depends(get_bid_manager),
):
    return SweepResponse(expired=await manager.expire_stale())


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health(db: AsyncSession = Depends(get_db)):
    await db.execute(text("SELECT 1"))
    return HealthResponse()

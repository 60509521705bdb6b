"""
Bid endpoints
=============

POST /api/v1/loads/{load_id}/bids      -- place a bid (uses BID quota)
GET  /api/v1/loads/{load_id}/bids      -- owner: bids on my load, cheapest first
GET  /api/v1/loads/{load_id}/bid-stats -- public price summary of pending bids
GET  /api/v1/loads/{load_id}/can-bid   -- driver pre-check
GET  /api/v1/bids/mine                 -- driver: my bids
GET  /api/v1/bids/received             -- owner: bids across my loads
PATCH /api/v1/bids/{bid_id}            -- driver: edit a pending bid
POST /api/v1/bids/{bid_id}/withdraw    -- driver
POST /api/v1/bids/{bid_id}/accept      -- owner: creates the trip
POST /api/v1/bids/{bid_id}/reject      -- owner
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request

from src.api.dependencies import get_bid_manager, get_caller_id
from src.api.middleware import limiter
from src.api.schemas import (
    BidCreate,
    BidCheckResponse,
    BidResponse,
    BidStatsResponse,
    BidUpdate,
    ReasonRequest,
    TripResponse,
)
from src.config import settings
from src.domain.enums import BidStatus
from src.services.bid_manager import BidManager

router = APIRouter(tags=["bids"])


@router.post(
    "/loads/{load_id}/bids",
    status_code=201,
    response_model=BidResponse,
    summary="Place a bid on an open load",
    responses={402: {"description": "Bid quota for this period is used up."}},
)
@limiter.limit(settings.rate_limit)
async def create_bid(
    request: Request,
    load_id: int,
    body: BidCreate,
    caller_id: int = Depends(get_caller_id),
    manager: BidManager = Depends(get_bid_manager),
):
    return await manager.create(caller_id, load_id, body.to_offer())


@router.get(
    "/loads/{load_id}/bids",
    response_model=list[BidResponse],
    summary="List bids on my load",
)
@limiter.limit(settings.rate_limit)
async def list_load_bids(
    request: Request,
    load_id: int,
    status: Optional[BidStatus] = BidStatus.PENDING,
    caller_id: int = Depends(get_caller_id),
    manager: BidManager = Depends(get_bid_manager),
):
    return await manager.list_for_load(load_id, caller_id, status)


@router.get(
    "/loads/{load_id}/bid-stats",
    response_model=BidStatsResponse,
    summary="Price summary of pending bids",
)
@limiter.limit(settings.rate_limit)
async def load_bid_stats(
    request: Request,
    load_id: int,
    manager: BidManager = Depends(get_bid_manager),
):
    return await manager.load_bid_stats(load_id)


@router.get(
    "/loads/{load_id}/can-bid",
    response_model=BidCheckResponse,
    summary="Check whether I can bid on a load now",
)
@limiter.limit(settings.rate_limit)
async def can_bid(
    request: Request,
    load_id: int,
    caller_id: int = Depends(get_caller_id),
    manager: BidManager = Depends(get_bid_manager),
):
    return await manager.can_bid(caller_id, load_id)


@router.get("/bids/mine", response_model=list[BidResponse], summary="List my bids")
@limiter.limit(settings.rate_limit)
async def list_my_bids(
    request: Request,
    status: Optional[BidStatus] = None,
    caller_id: int = Depends(get_caller_id),
    manager: BidManager = Depends(get_bid_manager),
):
    return await manager.list_for_driver(caller_id, status)


@router.get(
    "/bids/received",
    response_model=list[BidResponse],
    summary="Bids received across my loads",
)
@limiter.limit(settings.rate_limit)
async def list_received_bids(
    request: Request,
    status: Optional[BidStatus] = BidStatus.PENDING,
    caller_id: int = Depends(get_caller_id),
    manager: BidManager = Depends(get_bid_manager),
):
    return await manager.list_received(caller_id, status)


@router.patch("/bids/{bid_id}", response_model=BidResponse, summary="Edit my bid")
@limiter.limit(settings.rate_limit)
async def update_bid(
    request: Request,
    bid_id: int,
    body: BidUpdate,
    caller_id: int = Depends(get_caller_id),
    manager: BidManager = Depends(get_bid_manager),
):
    return await manager.update(bid_id, caller_id, body.to_patch())


@router.post(
    "/bids/{bid_id}/withdraw", response_model=BidResponse, summary="Withdraw my bid"
)
@limiter.limit(settings.rate_limit)
async def withdraw_bid(
    request: Request,
    bid_id: int,
    caller_id: int = Depends(get_caller_id),
    manager: BidManager = Depends(get_bid_manager),
):
    return await manager.withdraw(bid_id, caller_id)


@router.post(
    "/bids/{bid_id}/accept",
    response_model=TripResponse,
    summary="Accept a bid",
    description=(
        "Assigns the load and schedules a trip at the bid price.  When two "
        "accepts race, one wins and the other gets 409 with retryable=true."
    ),
)
@limiter.limit(settings.rate_limit)
async def accept_bid(
    request: Request,
    bid_id: int,
    caller_id: int = Depends(get_caller_id),
    manager: BidManager = Depends(get_bid_manager),
):
    return await manager.accept(bid_id, caller_id)


@router.post("/bids/{bid_id}/reject", response_model=BidResponse, summary="Reject a bid")
@limiter.limit(settings.rate_limit)
async def reject_bid(
    request: Request,
    bid_id: int,
    body: Optional[ReasonRequest] = None,
    caller_id: int = Depends(get_caller_id),
    manager: BidManager = Depends(get_bid_manager),
):
    return await manager.reject(bid_id, caller_id, body.reason if body else None)

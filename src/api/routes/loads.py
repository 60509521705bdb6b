"""
Load endpoints
==============

POST   /api/v1/loads                        -- draft a load
GET    /api/v1/loads/search                 -- search OPEN loads
GET    /api/v1/loads/mine                   -- the caller's loads
GET    /api/v1/loads/{load_id}              -- load detail (counts a view)
PATCH  /api/v1/loads/{load_id}              -- edit (DRAFT / OPEN / BIDDING_CLOSED)
DELETE /api/v1/loads/{load_id}              -- delete before assignment
POST   /api/v1/loads/{load_id}/publish      -- DRAFT -> OPEN (uses LOAD quota)
POST   /api/v1/loads/{load_id}/close-bidding
POST   /api/v1/loads/{load_id}/cancel
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response

from src.api.dependencies import get_caller_id, get_load_manager
from src.api.middleware import limiter
from src.api.schemas import (
    LoadCreate,
    LoadPage,
    LoadResponse,
    LoadUpdate,
    ReasonRequest,
    SearchFiltersIn,
)
from src.config import settings
from src.domain.enums import LoadStatus, VehicleType
from src.services.load_manager import LoadManager

router = APIRouter(prefix="/loads", tags=["loads"])


@router.post(
    "",
    status_code=201,
    response_model=LoadResponse,
    summary="Draft a new load",
)
@limiter.limit(settings.rate_limit)
async def create_load(
    request: Request,
    body: LoadCreate,
    caller_id: int = Depends(get_caller_id),
    manager: LoadManager = Depends(get_load_manager),
):
    return await manager.create(caller_id, body.to_spec())


@router.get(
    "/search",
    response_model=LoadPage,
    summary="Search open loads",
    description=(
        "Every filter given must match.  A radius search needs near_lat, "
        "near_lng and radius_km."
    ),
)
@limiter.limit(settings.rate_limit)
async def search_loads(
    request: Request,
    cargo_type: Optional[str] = None,
    vehicle_types: Optional[list[VehicleType]] = Query(None),
    pickup_city: Optional[str] = None,
    delivery_city: Optional[str] = None,
    min_weight: Optional[float] = Query(None, ge=0),
    max_weight: Optional[float] = Query(None, ge=0),
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    pickup_date_from: Optional[datetime] = None,
    pickup_date_to: Optional[datetime] = None,
    q: Optional[str] = None,
    near_lat: Optional[float] = Query(None, ge=-90, le=90),
    near_lng: Optional[float] = Query(None, ge=-180, le=180),
    radius_km: Optional[float] = Query(None, gt=0),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    manager: LoadManager = Depends(get_load_manager),
):
    filters = SearchFiltersIn(
        cargo_type=cargo_type,
        vehicle_types=vehicle_types or [],
        pickup_city=pickup_city,
        delivery_city=delivery_city,
        min_weight=min_weight,
        max_weight=max_weight,
        min_price=min_price,
        max_price=max_price,
        pickup_date_from=pickup_date_from,
        pickup_date_to=pickup_date_to,
        query=q,
        near_lat=near_lat,
        near_lng=near_lng,
        radius_km=radius_km,
    ).to_filters()
    result = await manager.search(filters, page=page, page_size=page_size)
    return LoadPage(
        items=[LoadResponse.model_validate(load) for load in result.items],
        total=result.total,
        page=result.page,
        page_size=result.page_size,
    )


@router.get("/mine", response_model=list[LoadResponse], summary="List my loads")
@limiter.limit(settings.rate_limit)
async def list_my_loads(
    request: Request,
    status: Optional[LoadStatus] = None,
    caller_id: int = Depends(get_caller_id),
    manager: LoadManager = Depends(get_load_manager),
):
    return await manager.list_for_owner(caller_id, status)


@router.get("/{load_id}", response_model=LoadResponse, summary="Get a load")
@limiter.limit(settings.rate_limit)
async def get_load(
    request: Request,
    load_id: int,
    caller_id: int = Depends(get_caller_id),
    manager: LoadManager = Depends(get_load_manager),
):
    return await manager.get(load_id, viewer_id=caller_id)


@router.patch(
    "/{load_id}",
    response_model=LoadResponse,
    summary="Edit a load",
    description="Allowed while the load is DRAFT, OPEN or BIDDING_CLOSED.",
)
@limiter.limit(settings.rate_limit)
async def update_load(
    request: Request,
    load_id: int,
    body: LoadUpdate,
    caller_id: int = Depends(get_caller_id),
    manager: LoadManager = Depends(get_load_manager),
):
    return await manager.update(load_id, caller_id, body.to_patch())


@router.delete("/{load_id}", status_code=204, summary="Delete a load")
@limiter.limit(settings.rate_limit)
async def delete_load(
    request: Request,
    load_id: int,
    caller_id: int = Depends(get_caller_id),
    manager: LoadManager = Depends(get_load_manager),
):
    await manager.delete(load_id, caller_id)
    return Response(status_code=204)


@router.post(
    "/{load_id}/publish",
    response_model=LoadResponse,
    summary="Publish a draft load",
    responses={402: {"description": "Load quota for this period is used up."}},
)
@limiter.limit(settings.rate_limit)
async def publish_load(
    request: Request,
    load_id: int,
    caller_id: int = Depends(get_caller_id),
    manager: LoadManager = Depends(get_load_manager),
):
    return await manager.publish(load_id, caller_id)


@router.post(
    "/{load_id}/close-bidding",
    response_model=LoadResponse,
    summary="Stop accepting new bids",
)
@limiter.limit(settings.rate_limit)
async def close_bidding(
    request: Request,
    load_id: int,
    caller_id: int = Depends(get_caller_id),
    manager: LoadManager = Depends(get_load_manager),
):
    return await manager.close_bidding(load_id, caller_id)


@router.post("/{load_id}/cancel", response_model=LoadResponse, summary="Cancel a load")
@limiter.limit(settings.rate_limit)
async def cancel_load(
    request: Request,
    load_id: int,
    body: Optional[ReasonRequest] = None,
    caller_id: int = Depends(get_caller_id),
    manager: LoadManager = Depends(get_load_manager),
):
    reason = body.reason if body else None
    return await manager.cancel(load_id, caller_id, reason)

"""
Trip endpoints
==============

GET  /api/v1/trips/mine                       -- driver: my trips
GET  /api/v1/trips/owned                      -- owner: trips on my loads
GET  /api/v1/trips/{trip_id}                  -- driver or load owner
GET  /api/v1/trips/{trip_id}/can-start        -- driver pre-check
POST /api/v1/trips/{trip_id}/start            -- SCHEDULED -> IN_PROGRESS
POST /api/v1/trips/{trip_id}/location         -- append a route sample
POST /api/v1/trips/{trip_id}/proof-of-pickup
POST /api/v1/trips/{trip_id}/proof-of-delivery
POST /api/v1/trips/{trip_id}/complete         -- needs proof of delivery
POST /api/v1/trips/{trip_id}/cancel           -- rolls load/bid back to bidding
POST /api/v1/trips/{trip_id}/payment          -- record payment on a completed trip
GET  /api/v1/trips/{trip_id}/route
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request

from src.api.dependencies import get_caller_id, get_trip_manager
from src.api.middleware import limiter
from src.api.schemas import (
    LocationIn,
    PaymentRecord,
    ProofUpload,
    ReasonRequest,
    RoutePointResponse,
    StartCheckResponse,
    TripComplete,
    TripResponse,
    TripStart,
)
from src.config import settings
from src.domain.enums import TripStatus
from src.services.trip_manager import TripManager

router = APIRouter(prefix="/trips", tags=["trips"])


@router.get("/mine", response_model=list[TripResponse], summary="List my trips")
@limiter.limit(settings.rate_limit)
async def list_my_trips(
    request: Request,
    status: Optional[TripStatus] = None,
    caller_id: int = Depends(get_caller_id),
    manager: TripManager = Depends(get_trip_manager),
):
    return await manager.list_for_driver(caller_id, status)


@router.get("/owned", response_model=list[TripResponse], summary="Trips on my loads")
@limiter.limit(settings.rate_limit)
async def list_owned_trips(
    request: Request,
    status: Optional[TripStatus] = None,
    caller_id: int = Depends(get_caller_id),
    manager: TripManager = Depends(get_trip_manager),
):
    return await manager.list_for_owner(caller_id, status)


@router.get("/{trip_id}", response_model=TripResponse, summary="Get a trip")
@limiter.limit(settings.rate_limit)
async def get_trip(
    request: Request,
    trip_id: int,
    caller_id: int = Depends(get_caller_id),
    manager: TripManager = Depends(get_trip_manager),
):
    return await manager.get(trip_id, caller_id)


@router.get(
    "/{trip_id}/can-start",
    response_model=StartCheckResponse,
    summary="Check whether the trip can start now",
)
@limiter.limit(settings.rate_limit)
async def can_start_trip(
    request: Request,
    trip_id: int,
    caller_id: int = Depends(get_caller_id),
    manager: TripManager = Depends(get_trip_manager),
):
    return await manager.can_start(trip_id, caller_id)


@router.post("/{trip_id}/start", response_model=TripResponse, summary="Start a trip")
@limiter.limit(settings.rate_limit)
async def start_trip(
    request: Request,
    trip_id: int,
    body: Optional[TripStart] = None,
    caller_id: int = Depends(get_caller_id),
    manager: TripManager = Depends(get_trip_manager),
):
    location = body.location.to_point() if body and body.location else None
    return await manager.start(trip_id, caller_id, location)


@router.post(
    "/{trip_id}/location", response_model=TripResponse, summary="Report current location"
)
@limiter.limit(settings.rate_limit)
async def update_location(
    request: Request,
    trip_id: int,
    body: LocationIn,
    caller_id: int = Depends(get_caller_id),
    manager: TripManager = Depends(get_trip_manager),
):
    return await manager.update_location(trip_id, caller_id, body.to_point())


@router.post(
    "/{trip_id}/proof-of-pickup",
    response_model=TripResponse,
    summary="Attach proof of pickup",
)
@limiter.limit(settings.rate_limit)
async def upload_proof_of_pickup(
    request: Request,
    trip_id: int,
    body: ProofUpload,
    caller_id: int = Depends(get_caller_id),
    manager: TripManager = Depends(get_trip_manager),
):
    return await manager.upload_proof_of_pickup(trip_id, caller_id, body.uri)


@router.post(
    "/{trip_id}/proof-of-delivery",
    response_model=TripResponse,
    summary="Attach proof of delivery",
)
@limiter.limit(settings.rate_limit)
async def upload_proof_of_delivery(
    request: Request,
    trip_id: int,
    body: ProofUpload,
    caller_id: int = Depends(get_caller_id),
    manager: TripManager = Depends(get_trip_manager),
):
    return await manager.upload_proof_of_delivery(
        trip_id, caller_id, body.uri, body.signature
    )


@router.post(
    "/{trip_id}/complete",
    response_model=TripResponse,
    summary="Complete a trip",
    description="Requires a proof of delivery, already uploaded or sent here.",
)
@limiter.limit(settings.rate_limit)
async def complete_trip(
    request: Request,
    trip_id: int,
    body: Optional[TripComplete] = None,
    caller_id: int = Depends(get_caller_id),
    manager: TripManager = Depends(get_trip_manager),
):
    return await manager.complete(trip_id, caller_id, body.to_data() if body else None)


@router.post(
    "/{trip_id}/cancel",
    response_model=TripResponse,
    summary="Cancel a trip",
    description="The load reopens for bidding and the accepted bid returns to PENDING.",
)
@limiter.limit(settings.rate_limit)
async def cancel_trip(
    request: Request,
    trip_id: int,
    body: Optional[ReasonRequest] = None,
    caller_id: int = Depends(get_caller_id),
    manager: TripManager = Depends(get_trip_manager),
):
    return await manager.cancel(trip_id, caller_id, body.reason if body else None)


@router.post(
    "/{trip_id}/payment", response_model=TripResponse, summary="Record payment"
)
@limiter.limit(settings.rate_limit)
async def mark_payment_completed(
    request: Request,
    trip_id: int,
    body: Optional[PaymentRecord] = None,
    caller_id: int = Depends(get_caller_id),
    manager: TripManager = Depends(get_trip_manager),
):
    method = body.payment_method if body else None
    return await manager.mark_payment_completed(trip_id, caller_id, method)


@router.get(
    "/{trip_id}/route",
    response_model=list[RoutePointResponse],
    summary="Recorded route",
)
@limiter.limit(settings.rate_limit)
async def trip_route(
    request: Request,
    trip_id: int,
    caller_id: int = Depends(get_caller_id),
    manager: TripManager = Depends(get_trip_manager),
):
    return await manager.route(trip_id, caller_id)

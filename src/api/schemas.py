"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from src.config import settings
from src.domain.entities import LoadSpec, Place, RoutePoint
from src.domain.enums import (
    BidStatus,
    LoadStatus,
    PaymentMethod,
    PlanType,
    QuotaKind,
    SubscriptionStatus,
    TripStatus,
    VehicleType,
)
from src.domain.matching import SearchFilters
from src.services.bid_manager import BidOffer
from src.services.load_templates import TemplateSpec
from src.services.trip_manager import CompletionData


# ── Requests ──────────────────────────────────────────────────────────


class PlaceIn(BaseModel):
    address: str = Field(..., min_length=1, max_length=255)
    city: str = Field(..., min_length=1, max_length=120)
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    province: Optional[str] = Field(None, max_length=120)

    def to_place(self) -> Place:
        return Place(
            address=self.address,
            city=self.city,
            latitude=self.latitude,
            longitude=self.longitude,
            province=self.province,
        )


class LoadCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    cargo_type: str = Field(..., min_length=1, max_length=100)
    weight: float = Field(..., gt=0, description="Kilograms")
    pickup: PlaceIn
    delivery: PlaceIn
    pickup_date: datetime
    vehicle_types: list[VehicleType] = Field(..., min_length=1)
    description: Optional[str] = None
    volume: Optional[float] = Field(None, gt=0)
    delivery_date: Optional[datetime] = None
    suggested_price: Optional[float] = Field(None, gt=0)
    currency: str = Field(settings.default_currency, min_length=3, max_length=3)
    requires_insurance: bool = False
    fragile: bool = False
    expires_at: Optional[datetime] = None

    def to_spec(self) -> LoadSpec:
        return LoadSpec(
            title=self.title,
            cargo_type=self.cargo_type,
            weight=self.weight,
            pickup=self.pickup.to_place(),
            delivery=self.delivery.to_place(),
            pickup_date=self.pickup_date,
            vehicle_types=frozenset(self.vehicle_types),
            description=self.description,
            volume=self.volume,
            delivery_date=self.delivery_date,
            suggested_price=self.suggested_price,
            currency=self.currency,
            requires_insurance=self.requires_insurance,
            fragile=self.fragile,
            expires_at=self.expires_at,
        )


class LoadUpdate(BaseModel):
    """Partial update; only the fields sent are applied."""

    title: Optional[str] = Field(None, min_length=1, max_length=200)
    cargo_type: Optional[str] = Field(None, min_length=1, max_length=100)
    weight: Optional[float] = Field(None, gt=0)
    pickup: Optional[PlaceIn] = None
    delivery: Optional[PlaceIn] = None
    pickup_date: Optional[datetime] = None
    vehicle_types: Optional[list[VehicleType]] = Field(None, min_length=1)
    description: Optional[str] = None
    volume: Optional[float] = Field(None, gt=0)
    delivery_date: Optional[datetime] = None
    suggested_price: Optional[float] = Field(None, gt=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    requires_insurance: Optional[bool] = None
    fragile: Optional[bool] = None
    expires_at: Optional[datetime] = None

    def to_patch(self) -> dict[str, Any]:
        patch: dict[str, Any] = {}
        for name in self.model_fields_set:
            value = getattr(self, name)
            if isinstance(value, PlaceIn):
                value = value.to_place()
            elif name == "vehicle_types" and value is not None:
                value = frozenset(value)
            patch[name] = value
        return patch


class ReasonRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class BidCreate(BaseModel):
    proposed_price: float = Field(..., gt=0)
    currency: str = Field(settings.default_currency, min_length=3, max_length=3)
    vehicle_id: Optional[int] = None
    message: Optional[str] = Field(None, max_length=1000)
    estimated_duration_hours: Optional[float] = Field(None, gt=0)
    expires_at: Optional[datetime] = None

    def to_offer(self) -> BidOffer:
        return BidOffer(**self.model_dump())


class BidUpdate(BaseModel):
    proposed_price: Optional[float] = Field(None, gt=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    vehicle_id: Optional[int] = None
    message: Optional[str] = Field(None, max_length=1000)
    estimated_duration_hours: Optional[float] = Field(None, gt=0)
    expires_at: Optional[datetime] = None

    def to_patch(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class LocationIn(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    recorded_at: Optional[datetime] = None
    address: Optional[str] = Field(None, max_length=255)
    speed: Optional[float] = Field(None, ge=0)
    bearing: Optional[float] = Field(None, ge=0, lt=360)
    accuracy: Optional[float] = Field(None, ge=0)

    def to_point(self) -> RoutePoint:
        return RoutePoint(**self.model_dump())


class TripStart(BaseModel):
    location: Optional[LocationIn] = None


class ProofUpload(BaseModel):
    uri: str = Field(..., min_length=1, max_length=1024)
    signature: Optional[str] = Field(None, max_length=1024)


class TripComplete(BaseModel):
    proof_of_delivery: Optional[str] = Field(None, max_length=1024)
    signature: Optional[str] = Field(None, max_length=1024)
    payment_method: Optional[PaymentMethod] = None
    notes: Optional[str] = None

    def to_data(self) -> CompletionData:
        return CompletionData(**self.model_dump())


class PaymentRecord(BaseModel):
    payment_method: Optional[PaymentMethod] = None


class SearchFiltersIn(BaseModel):
    cargo_type: Optional[str] = None
    vehicle_types: list[VehicleType] = []
    pickup_city: Optional[str] = None
    delivery_city: Optional[str] = None
    min_weight: Optional[float] = Field(None, ge=0)
    max_weight: Optional[float] = Field(None, ge=0)
    min_price: Optional[float] = Field(None, ge=0)
    max_price: Optional[float] = Field(None, ge=0)
    pickup_date_from: Optional[datetime] = None
    pickup_date_to: Optional[datetime] = None
    query: Optional[str] = None
    near_lat: Optional[float] = Field(None, ge=-90, le=90)
    near_lng: Optional[float] = Field(None, ge=-180, le=180)
    radius_km: Optional[float] = Field(None, gt=0)

    def to_filters(self) -> SearchFilters:
        values = self.model_dump()
        values["vehicle_types"] = frozenset(self.vehicle_types)
        return SearchFilters(**values)


class SavedSearchCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    filters: SearchFiltersIn = SearchFiltersIn()
    notify_on_new: bool = True


class TemplateCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    cargo_type: str = Field(..., min_length=1, max_length=100)
    pickup: PlaceIn
    delivery: PlaceIn
    vehicle_types: list[VehicleType] = Field(..., min_length=1)
    description: Optional[str] = None
    weight: Optional[float] = Field(None, gt=0, description="Kilograms")
    volume: Optional[float] = Field(None, gt=0)

    def to_spec(self) -> TemplateSpec:
        return TemplateSpec(
            name=self.name,
            cargo_type=self.cargo_type,
            pickup=self.pickup.to_place(),
            delivery=self.delivery.to_place(),
            vehicle_types=frozenset(self.vehicle_types),
            description=self.description,
            weight=self.weight,
            volume=self.volume,
        )


# ── Responses ─────────────────────────────────────────────────────────


class LoadResponse(BaseModel):
    id: int
    owner_id: int
    title: str
    description: Optional[str] = None
    cargo_type: str
    weight: float
    volume: Optional[float] = None
    pickup_address: str
    pickup_city: str
    pickup_province: Optional[str] = None
    pickup_lat: float
    pickup_lng: float
    delivery_address: str
    delivery_city: str
    delivery_province: Optional[str] = None
    delivery_lat: float
    delivery_lng: float
    pickup_date: datetime
    delivery_date: Optional[datetime] = None
    suggested_price: Optional[float] = None
    currency: str
    vehicle_types: list[VehicleType]
    requires_insurance: bool
    fragile: bool
    status: LoadStatus
    published_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    view_count: int = 0
    cancel_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class LoadPage(BaseModel):
    items: list[LoadResponse]
    total: int
    page: int
    page_size: int

    model_config = {"from_attributes": True}


class BidResponse(BaseModel):
    id: int
    load_id: int
    driver_id: int
    vehicle_id: Optional[int] = None
    proposed_price: float
    currency: str
    message: Optional[str] = None
    estimated_duration_hours: Optional[float] = None
    expires_at: Optional[datetime] = None
    status: BidStatus
    reject_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class BidStatsResponse(BaseModel):
    count: int
    lowest: Optional[float] = None
    highest: Optional[float] = None
    average: Optional[float] = None

    model_config = {"from_attributes": True}


class TripResponse(BaseModel):
    id: int
    load_id: int
    bid_id: int
    driver_id: int
    status: TripStatus
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    current_lat: Optional[float] = None
    current_lng: Optional[float] = None
    current_location_at: Optional[datetime] = None
    agreed_price: float
    currency: str
    payment_method: Optional[PaymentMethod] = None
    payment_completed_at: Optional[datetime] = None
    proof_of_pickup: Optional[str] = None
    proof_of_delivery: Optional[str] = None
    signature: Optional[str] = None
    notes: Optional[str] = None
    cancel_reason: Optional[str] = None
    cancelled_by: Optional[int] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class StartCheckResponse(BaseModel):
    allowed: bool
    reason: Optional[str] = None

    model_config = {"from_attributes": True}


class RoutePointResponse(BaseModel):
    latitude: float
    longitude: float
    recorded_at: datetime
    address: Optional[str] = None
    speed: Optional[float] = None
    bearing: Optional[float] = None
    accuracy: Optional[float] = None

    model_config = {"from_attributes": True}


class UsageResponse(BaseModel):
    plan: PlanType
    status: SubscriptionStatus
    loads_posted: int
    bids_placed: int
    load_limit: Optional[int] = None
    bid_limit: Optional[int] = None
    period_start: Optional[datetime] = None

    model_config = {"from_attributes": True}


class QuotaCheckResponse(BaseModel):
    allowed: bool
    kind: QuotaKind
    reason: Optional[str] = None
    limit: Optional[int] = None
    used: int
    remaining: Optional[int] = None
    upgrade_to: Optional[PlanType] = None

    model_config = {"from_attributes": True}


class SavedSearchResponse(BaseModel):
    id: int
    user_id: int
    name: str
    filters: dict[str, Any]
    notify_on_new: bool
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class TemplateResponse(BaseModel):
    id: int
    user_id: int
    name: str
    description: Optional[str] = None
    cargo_type: str
    weight: Optional[float] = None
    volume: Optional[float] = None
    pickup: dict[str, Any]
    delivery: dict[str, Any]
    vehicle_types: list[VehicleType]
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class BidCheckResponse(BaseModel):
    allowed: bool
    reason: Optional[str] = None
    upgrade_to: Optional[PlanType] = None

    model_config = {"from_attributes": True}


class SweepResponse(BaseModel):
    expired: int


class HealthResponse(BaseModel):
    status: str = "ok"


class ErrorResponse(BaseModel):
    code: str
    detail: str
    retryable: bool = False

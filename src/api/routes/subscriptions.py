"""
Subscription quota endpoints
============================

GET /api/v1/subscriptions/me/usage        -- counters and limits this period
GET /api/v1/subscriptions/me/quota/{kind} -- would one more LOAD / BID be allowed?
"""

from fastapi import APIRouter, Depends, Request

from src.api.dependencies import get_caller_id, get_quota_ledger
from src.api.middleware import limiter
from src.api.schemas import QuotaCheckResponse, UsageResponse
from src.config import settings
from src.domain.enums import QuotaKind
from src.services.quota_ledger import QuotaLedger

router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])


@router.get("/me/usage", response_model=UsageResponse, summary="Quota usage")
@limiter.limit(settings.rate_limit)
async def my_usage(
    request: Request,
    caller_id: int = Depends(get_caller_id),
    ledger: QuotaLedger = Depends(get_quota_ledger),
):
    return await ledger.usage(caller_id)


@router.get(
    "/me/quota/{kind}",
    response_model=QuotaCheckResponse,
    summary="Preview a quota check without reserving",
)
@limiter.limit(settings.rate_limit)
async def preview_quota(
    request: Request,
    kind: QuotaKind,
    caller_id: int = Depends(get_caller_id),
    ledger: QuotaLedger = Depends(get_quota_ledger),
):
    return await ledger.preview(caller_id, kind)

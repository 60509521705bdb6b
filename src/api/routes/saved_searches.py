"""
Saved search endpoints
======================

POST   /api/v1/saved-searches             -- save a search (new-load alerts)
GET    /api/v1/saved-searches             -- my saved searches
DELETE /api/v1/saved-searches/{search_id}
"""

from fastapi import APIRouter, Depends, Request, Response

from src.api.dependencies import get_caller_id, get_saved_search_manager
from src.api.middleware import limiter
from src.api.schemas import SavedSearchCreate, SavedSearchResponse
from src.config import settings
from src.services.saved_searches import SavedSearchManager

router = APIRouter(prefix="/saved-searches", tags=["saved-searches"])


@router.post(
    "", status_code=201, response_model=SavedSearchResponse, summary="Save a search"
)
@limiter.limit(settings.rate_limit)
async def create_saved_search(
    request: Request,
    body: SavedSearchCreate,
    caller_id: int = Depends(get_caller_id),
    manager: SavedSearchManager = Depends(get_saved_search_manager),
):
    return await manager.create(
        caller_id, body.name, body.filters.to_filters(), body.notify_on_new
    )


@router.get("", response_model=list[SavedSearchResponse], summary="My saved searches")
@limiter.limit(settings.rate_limit)
async def list_saved_searches(
    request: Request,
    caller_id: int = Depends(get_caller_id),
    manager: SavedSearchManager = Depends(get_saved_search_manager),
):
    return await manager.list_for_user(caller_id)


@router.delete("/{search_id}", status_code=204, summary="Delete a saved search")
@limiter.limit(settings.rate_limit)
async def delete_saved_search(
    request: Request,
    search_id: int,
    caller_id: int = Depends(get_caller_id),
    manager: SavedSearchManager = Depends(get_saved_search_manager),
):
    await manager.delete(search_id, caller_id)
    return Response(status_code=204)

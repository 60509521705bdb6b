"""
Load template endpoints
=======================

POST   /api/v1/load-templates                      -- save a template
GET    /api/v1/load-templates                      -- my templates
DELETE /api/v1/load-templates/{template_id}
POST   /api/v1/load-templates/{template_id}/loads  -- draft a load from it
"""

from fastapi import APIRouter, Depends, Request, Response

from src.api.dependencies import get_caller_id, get_load_template_manager
from src.api.middleware import limiter
from src.api.schemas import LoadResponse, LoadUpdate, TemplateCreate, TemplateResponse
from src.config import settings
from src.services.load_templates import LoadTemplateManager

router = APIRouter(prefix="/load-templates", tags=["load-templates"])


@router.post(
    "", status_code=201, response_model=TemplateResponse, summary="Save a load template"
)
@limiter.limit(settings.rate_limit)
async def create_template(
    request: Request,
    body: TemplateCreate,
    caller_id: int = Depends(get_caller_id),
    manager: LoadTemplateManager = Depends(get_load_template_manager),
):
    return await manager.create(caller_id, body.to_spec())


@router.get("", response_model=list[TemplateResponse], summary="My load templates")
@limiter.limit(settings.rate_limit)
async def list_templates(
    request: Request,
    caller_id: int = Depends(get_caller_id),
    manager: LoadTemplateManager = Depends(get_load_template_manager),
):
    return await manager.list_for_owner(caller_id)


@router.delete("/{template_id}", status_code=204, summary="Delete a load template")
@limiter.limit(settings.rate_limit)
async def delete_template(
    request: Request,
    template_id: int,
    caller_id: int = Depends(get_caller_id),
    manager: LoadTemplateManager = Depends(get_load_template_manager),
):
    await manager.delete(template_id, caller_id)
    return Response(status_code=204)


@router.post(
    "/{template_id}/loads",
    status_code=201,
    response_model=LoadResponse,
    summary="Draft a load from a template",
)
@limiter.limit(settings.rate_limit)
async def create_load_from_template(
    request: Request,
    template_id: int,
    body: LoadUpdate,
    caller_id: int = Depends(get_caller_id),
    manager: LoadTemplateManager = Depends(get_load_template_manager),
):
    return await manager.create_load(template_id, caller_id, body.to_patch())

"""HTTP template endpoints, including dry runs that record nothing."""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Request, Response

from cronx.scheduler.models import HttpTemplate
from cronx.server.routes.scheduler import ExecutionResponse

logger = logging.getLogger("cronx.server.templates")

templates_router = APIRouter(prefix="/templates", tags=["Templates"])


def _load_template(request: Request, template_id: str) -> HttpTemplate:
    template = request.app.state.store.get_template(template_id)
    if template is None:
        raise HTTPException(status_code=404, detail=f"Template '{template_id}' not found")
    return template


@templates_router.get("", response_model=list[HttpTemplate])
async def list_templates(request: Request) -> list[HttpTemplate]:
    return request.app.state.store.all_templates()


@templates_router.post("", response_model=HttpTemplate, status_code=201)
async def create_template(template: HttpTemplate, request: Request) -> HttpTemplate:
    request.app.state.store.add_template(template)
    logger.info("Template %s (%s) created via API", template.id, template.name)
    return template


@templates_router.get("/{template_id}", response_model=HttpTemplate)
async def get_template(template_id: str, request: Request) -> HttpTemplate:
    return _load_template(request, template_id)


@templates_router.delete("/{template_id}", status_code=204)
async def delete_template(template_id: str, request: Request) -> Response:
    """Delete a template. Jobs that use it fail at their next run."""
    if not request.app.state.store.remove_template(template_id):
        raise HTTPException(status_code=404, detail=f"Template '{template_id}' not found")
    return Response(status_code=204)


@templates_router.post("/test", response_model=ExecutionResponse)
async def send_unsaved_template(template: HttpTemplate, request: Request) -> ExecutionResponse:
    """Send an unsaved template once, without retries or logging."""
    result = await request.app.state.http_executor.execute(template, 0)
    return ExecutionResponse.from_result(result)


@templates_router.post("/{template_id}/test", response_model=ExecutionResponse)
async def send_template(template_id: str, request: Request) -> ExecutionResponse:
    """Send a saved template once, without retries or logging."""
    template = _load_template(request, template_id)
    logger.info("Test request for template %s (%s)", template.id, template.name)
    result = await request.app.state.http_executor.execute(template, 0)
    return ExecutionResponse.from_result(result)

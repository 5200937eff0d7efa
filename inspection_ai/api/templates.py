"""Prompt template version endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from inspection_ai.api.models import TemplateActivate, TemplateResponse, TemplateVersionCreate
from inspection_ai.core.errors import ConfigurationError
from inspection_ai.core.registry import PromptTemplateRegistry, get_registry

router = APIRouter()


@router.get("", response_model=list[str])
async def list_templates(
    registry: PromptTemplateRegistry = Depends(get_registry),
) -> list[str]:
    """List template names."""
    return registry.list_names()


@router.get("/{name}/versions", response_model=list[TemplateResponse])
async def list_versions(
    name: str,
    registry: PromptTemplateRegistry = Depends(get_registry),
) -> list[TemplateResponse]:
    """All versions of a template, newest first."""
    versions = registry.list_versions(name)
    if not versions:
        raise HTTPException(status_code=404, detail=f"Template '{name}' not found")
    return [TemplateResponse(**v.model_dump()) for v in versions]


@router.get("/{name}/active", response_model=TemplateResponse)
async def get_active(
    name: str,
    registry: PromptTemplateRegistry = Depends(get_registry),
) -> TemplateResponse:
    """The version pipelines currently resolve to."""
    try:
        return TemplateResponse(**registry.get_active_template(name).model_dump())
    except ConfigurationError as e:
        raise HTTPException(status_code=404, detail=e.message)


@router.post("/{name}/versions", response_model=TemplateResponse, status_code=201)
async def create_version(
    name: str,
    data: TemplateVersionCreate,
    registry: PromptTemplateRegistry = Depends(get_registry),
) -> TemplateResponse:
    """Add a new version; by default it becomes the active one."""
    row = registry.create_version(name, data.body, activate=data.activate, author=data.author)
    return TemplateResponse(**row.model_dump())


@router.post("/{name}/activate", response_model=TemplateResponse)
async def activate_version(
    name: str,
    data: TemplateActivate,
    registry: PromptTemplateRegistry = Depends(get_registry),
) -> TemplateResponse:
    """Activate an existing version (rollback)."""
    try:
        return TemplateResponse(**registry.activate_version(name, data.version).model_dump())
    except ConfigurationError as e:
        raise HTTPException(status_code=404, detail=e.message)

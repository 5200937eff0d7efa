"""Pydantic request/response models for the API.

Wire format is camelCase to match the platform's other clients.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Analysis requests ---


class ReportAnalysisRequest(CamelModel):
    """Analyse an inspection report."""

    report_id: str = Field(..., min_length=1)
    industry: str | None = None
    client: str | None = None
    images: list[Any] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)


class ImageAnalysisRequest(CamelModel):
    """Detect anomalies in a single image."""

    image_url: str = Field(..., min_length=1)
    industry: str | None = None
    context: dict[str, Any] = Field(default_factory=dict)
    report_id: str | None = None


class MissionReadinessRequest(CamelModel):
    """Validate a deployment's readiness."""

    deployment_id: str = Field(..., min_length=1)
    assets: list[Any] = Field(default_factory=list)
    personnel: list[Any] = Field(default_factory=list)
    weather: dict[str, Any] = Field(default_factory=dict)
    regulations: list[Any] = Field(default_factory=list)


class DailySummaryRequest(CamelModel):
    """Generate a daily operational summary."""

    date: str = Field(..., min_length=1)
    mission_data: dict[str, Any] = Field(default_factory=dict)
    daily_logs: list[Any] = Field(default_factory=list)
    total_cost: float = 0


# --- Reports ---


class OverrideRequest(CamelModel):
    """Human correction of an analysis result."""

    override_by: str = Field(..., min_length=1)
    reason: str = Field(..., min_length=1)
    human_override: bool = True


class ComplianceRequest(CamelModel):
    start_date: str
    end_date: str


# --- Prompt templates ---


class TemplateVersionCreate(CamelModel):
    """Create a new template version."""

    body: str = Field(..., min_length=1)
    activate: bool = True
    author: str = "system"


class TemplateActivate(CamelModel):
    version: int = Field(..., ge=1)


class TemplateResponse(CamelModel):
    id: UUID
    name: str
    version: int
    body: str
    is_active: bool
    author: str
    created_at: datetime

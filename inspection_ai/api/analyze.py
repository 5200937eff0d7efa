"""Governed analysis endpoints.

Each endpoint hands its payload to the category's pipeline and maps the
confidence gate to the status code: 200 AUTO_APPROVED, 202 NEEDS_REVIEW.
Pipeline failures propagate to the PipelineError handler in ``main``.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends, Header
from fastapi.responses import JSONResponse

from inspection_ai.api.models import (
    DailySummaryRequest,
    ImageAnalysisRequest,
    MissionReadinessRequest,
    ReportAnalysisRequest,
)
from inspection_ai.core.pipeline import DecisionPipeline, get_pipelines

logger = structlog.get_logger()

router = APIRouter()


async def _run(pipeline: DecisionPipeline, user_id: str, payload: dict[str, Any]) -> JSONResponse:
    result = await pipeline.run(user_id, payload)
    return JSONResponse(status_code=result.http_status, content=result.to_envelope())


@router.post("/report")
async def analyze_report(
    data: ReportAnalysisRequest,
    x_user_id: str = Header(...),
    pipelines: dict[str, DecisionPipeline] = Depends(get_pipelines),
) -> JSONResponse:
    """Analyse inspection report data."""
    logger.info("analyze.report", report_id=data.report_id, industry=data.industry, user_id=x_user_id)
    return await _run(pipelines["inspection_analysis"], x_user_id, data.model_dump(by_alias=True))


@router.post("/image")
async def analyze_image(
    data: ImageAnalysisRequest,
    x_user_id: str = Header(...),
    pipelines: dict[str, DecisionPipeline] = Depends(get_pipelines),
) -> JSONResponse:
    """Detect anomalies in a single image."""
    logger.info("analyze.image", image_url=data.image_url[:100], user_id=x_user_id)
    return await _run(pipelines["anomaly_detection"], x_user_id, data.model_dump(by_alias=True))


@router.post("/mission")
async def analyze_mission(
    data: MissionReadinessRequest,
    x_user_id: str = Header(...),
    pipelines: dict[str, DecisionPipeline] = Depends(get_pipelines),
) -> JSONResponse:
    """Validate mission readiness."""
    logger.info("analyze.mission", deployment_id=data.deployment_id, user_id=x_user_id)
    return await _run(pipelines["mission_readiness"], x_user_id, data.model_dump(by_alias=True))


@router.post("/daily-summary")
async def analyze_daily_summary(
    data: DailySummaryRequest,
    x_user_id: str = Header(...),
    pipelines: dict[str, DecisionPipeline] = Depends(get_pipelines),
) -> JSONResponse:
    """Generate a daily operational summary."""
    logger.info("analyze.daily_summary", date=data.date, user_id=x_user_id)
    return await _run(pipelines["daily_summary"], x_user_id, data.model_dump(by_alias=True))

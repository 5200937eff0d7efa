"""Main API router: aggregates all endpoint modules."""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from inspection_ai.api.analyze import router as analyze_router
from inspection_ai.api.reports import router as reports_router
from inspection_ai.api.templates import router as templates_router
from inspection_ai.api.usage import router as usage_router
from inspection_ai.core.confidence import get_thresholds
from inspection_ai.core.pipeline import API_VERSION
from inspection_ai.core.provider import LLMProvider, get_provider

api_router = APIRouter()

api_router.include_router(analyze_router, prefix="/analyze", tags=["analyze"])
api_router.include_router(reports_router, tags=["reports"])
api_router.include_router(templates_router, prefix="/templates", tags=["templates"])
api_router.include_router(usage_router, prefix="/usage", tags=["usage"])


@api_router.get("/health", tags=["health"])
async def ai_health(provider: LLMProvider = Depends(get_provider)) -> dict:
    """Health of the AI layer."""
    return {
        "success": True,
        "version": API_VERSION,
        "data": {
            "status": "ok",
            "aiAvailable": provider.is_available(),
            "thresholds": get_thresholds(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    }

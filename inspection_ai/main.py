"""FastAPI application entry point."""

from __future__ import annotations

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from inspection_ai.api.router import api_router
from inspection_ai.config import get_settings
from inspection_ai.core.errors import PipelineError, SchemaValidationError
from inspection_ai.core.events import get_event_publisher
from inspection_ai.core.pipeline import API_VERSION
from inspection_ai.db.client import get_supabase_client
from inspection_ai.utils.logging import setup_logging

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    settings = get_settings()
    setup_logging(settings.log_level)
    logger.info("inspection_ai.starting", port=settings.port, model=settings.model_version)

    get_supabase_client()
    logger.info("inspection_ai.supabase_connected")

    # Decision events are optional; the pipeline runs without NATS.
    publisher = get_event_publisher()
    await publisher.connect()

    yield

    await publisher.disconnect()
    logger.info("inspection_ai.shutdown")


app = FastAPI(
    title="Inspection AI",
    description="Governed, auditable AI decisions for drone inspection operations",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(PipelineError)
async def pipeline_error_handler(request: Request, exc: PipelineError) -> JSONResponse:
    """Render typed pipeline failures as the API error envelope."""
    logger.warning(
        "pipeline.failed",
        path=request.url.path,
        code=exc.code,
        status=exc.status_code,
        error=exc.message,
    )
    body = {"success": False, "version": API_VERSION, "error": exc.message, "code": exc.code}
    if isinstance(exc, SchemaValidationError):
        body["error"] = "AI analysis produced invalid output"
        body["errors"] = exc.errors
    return JSONResponse(status_code=exc.status_code, content=body)


app.include_router(api_router, prefix="/api/v1")


@app.get("/")
async def root():
    """Service info endpoint."""
    return {"service": "inspection-ai", "version": "0.1.0"}


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "service": "inspection-ai", "version": "0.1.0"}

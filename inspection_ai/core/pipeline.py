"""Pipeline Orchestrator: one governed LLM decision per request.

    resolve template -> render -> call with retry -> parse -> validate
    -> score -> gate -> record decision -> record analysis -> account -> respond

Every category (inspection analysis, anomaly detection, mission readiness,
daily summary) runs through the same ``DecisionPipeline``, instantiated with a
``CategoryConfig``. Collaborators are injected; nothing is looked up from
module state inside a run. The request deadline ends at "gate"; recording
always runs to completion.
"""

from __future__ import annotations

import asyncio
import json
import time
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from typing import Any, Awaitable, Callable
from uuid import uuid4

import structlog

from inspection_ai.config import get_settings
from inspection_ai.core import confidence
from inspection_ai.core.confidence import ConfidenceScore, Scorer
from inspection_ai.core.errors import PipelineTimeoutError, ProviderError
from inspection_ai.core.events import EventPublisher, get_event_publisher
from inspection_ai.core.ledger import AnalysisProjection, DecisionLedger, get_ledger
from inspection_ai.core.parser import parse_structured_output
from inspection_ai.core.provider import LLMProvider, get_provider
from inspection_ai.core.registry import PromptTemplateRegistry, get_registry
from inspection_ai.core.renderer import find_unresolved, render
from inspection_ai.core.retry import RetryConfig, RetryingExecutor
from inspection_ai.core.usage import UsageAccountant, get_usage_accountant
from inspection_ai.core.validator import validate_or_raise
from inspection_ai.db.models import PromptTemplateRow

logger = structlog.get_logger()

API_VERSION = "1.0"


class DecisionStatus(str, Enum):
    AUTO_APPROVED = "AUTO_APPROVED"
    NEEDS_REVIEW = "NEEDS_REVIEW"


@dataclass(frozen=True)
class CategoryConfig:
    """Everything that differs between governed endpoints."""

    name: str
    endpoint: str
    prompt_name: str
    schema_name: str
    result_key: str
    scorer: Scorer
    build_variables: Callable[[dict[str, Any]], dict[str, Any]]
    # None means the category keeps its output on the decision only.
    project: Callable[[dict[str, Any], dict[str, Any]], AnalysisProjection] | None = None


@dataclass
class PipelineResult:
    category: CategoryConfig
    status: DecisionStatus
    request_id: str
    decision_id: str | None
    analysis_id: str | None
    output: dict[str, Any]
    confidence: ConfidenceScore
    prompt_name: str
    prompt_version: int
    model_version: str
    processing_time_ms: int
    token_count: int
    attempts: int = 1
    warnings: list[str] = field(default_factory=list)

    @property
    def http_status(self) -> int:
        return 200 if self.status is DecisionStatus.AUTO_APPROVED else 202

    def to_envelope(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "status": self.status.value,
            "decisionId": self.decision_id,
            "requestId": self.request_id,
            self.category.result_key: self.output,
            "confidence": self.confidence.to_dict(),
            "metadata": {
                "modelVersion": self.model_version,
                "tokenCount": self.token_count,
                "processingTimeMs": self.processing_time_ms,
                "attempts": self.attempts,
                "warnings": self.warnings,
            },
            "prompt": {"name": self.prompt_name, "version": self.prompt_version},
        }
        if self.category.project is not None:
            data["analysisId"] = self.analysis_id
        return {"success": True, "version": API_VERSION, "data": data}


@dataclass
class _Draft:
    """A scored, gated decision that has not been persisted yet."""

    template: PromptTemplateRow
    variables: dict[str, Any]
    output: Any
    score: ConfidenceScore
    status: DecisionStatus
    attempts: int
    token_count: int
    processing_time_ms: int
    warnings: list[str]


class DecisionPipeline:
    """Runs one category's governed decision flow."""

    def __init__(
        self,
        category: CategoryConfig,
        registry: PromptTemplateRegistry,
        provider: LLMProvider,
        ledger: DecisionLedger,
        accountant: UsageAccountant,
        retry_config: RetryConfig | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        publisher: EventPublisher | None = None,
        deadline_seconds: float | None = 60.0,
        daily_request_limit: int = 0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.category = category
        self.registry = registry
        self.provider = provider
        self.ledger = ledger
        self.accountant = accountant
        self.executor = RetryingExecutor(retry_config, sleep=sleep)
        self.publisher = publisher
        self.deadline_seconds = deadline_seconds
        self.daily_request_limit = daily_request_limit
        self._clock = clock

    async def run(self, user_id: str, payload: dict[str, Any]) -> PipelineResult:
        """Run the pipeline.

        The request deadline ends once the decision is gated; persisting it is
        never cut short. The provider call in flight when the deadline passes
        is abandoned, not cancelled upstream.
        """
        category = self.category
        request_id = str(uuid4())

        with structlog.contextvars.bound_contextvars(
            request_id=request_id, endpoint=category.endpoint, user_id=user_id
        ):
            if not self.provider.is_available():
                raise ProviderError("AI service is not available")

            reserved = await asyncio.to_thread(
                self.accountant.reserve_quota, user_id, category.endpoint, self.daily_request_limit
            )
            try:
                draft = await self._decide_within_deadline(user_id, payload)
                return await self._persist(request_id, user_id, payload, draft)
            finally:
                if reserved:
                    self.accountant.release_quota(user_id, category.endpoint)

    async def _decide_within_deadline(self, user_id: str, payload: dict[str, Any]) -> _Draft:
        if self.deadline_seconds is None:
            return await self._decide(payload)
        try:
            return await asyncio.wait_for(self._decide(payload), timeout=self.deadline_seconds)
        except asyncio.TimeoutError as e:
            logger.error(
                "pipeline.timeout",
                endpoint=self.category.endpoint,
                user_id=user_id,
                deadline_seconds=self.deadline_seconds,
            )
            raise PipelineTimeoutError(
                f"AI analysis did not complete within {self.deadline_seconds:g}s"
            ) from e

    async def _decide(self, payload: dict[str, Any]) -> _Draft:
        category = self.category
        template = await asyncio.to_thread(self.registry.get_active_template, category.prompt_name)
        variables = category.build_variables(payload)
        prompt = render(template.body, variables)

        warnings: list[str] = []
        unresolved = find_unresolved(prompt)
        if unresolved:
            warnings.append(f"Unresolved variables: {', '.join(unresolved)}")
            logger.warning("pipeline.unresolved_variables", variables=unresolved)

        logger.info(
            "pipeline.started",
            prompt_name=template.name,
            prompt_version=template.version,
        )

        # Provider latency only.
        started = self._clock()
        outcome = await self.executor.execute(lambda: self.provider.generate(prompt))
        generation = outcome.value
        output = parse_structured_output(generation.text)
        processing_time_ms = int((self._clock() - started) * 1000)

        # Nothing is recorded for output that fails validation.
        validate_or_raise(category.schema_name, output)

        score = category.scorer(output, processing_time_ms)
        status = DecisionStatus.AUTO_APPROVED if score.meets_minimum else DecisionStatus.NEEDS_REVIEW
        return _Draft(
            template=template,
            variables=variables,
            output=output,
            score=score,
            status=status,
            attempts=outcome.attempts,
            token_count=generation.token_usage,
            processing_time_ms=processing_time_ms,
            warnings=warnings,
        )

    async def _persist(
        self, request_id: str, user_id: str, payload: dict[str, Any], draft: _Draft
    ) -> PipelineResult:
        category = self.category
        template, score, status = draft.template, draft.score, draft.status
        warnings = list(draft.warnings)

        decision = await asyncio.to_thread(
            self.ledger.record_decision,
            request_id=request_id,
            user_id=user_id,
            endpoint=category.endpoint,
            input_data={"prompt_name": template.name, "variables": draft.variables},
            output_data=draft.output,
            model_version=self.provider.model_version,
            prompt_version=str(template.version),
            confidence_score=score.overall,
            processing_time_ms=draft.processing_time_ms,
            token_count=draft.token_count,
            metadata={
                "status": status.value,
                "confidence": score.to_dict(),
                "prompt_name": template.name,
                "attempts": draft.attempts,
            },
        )
        decision_id = str(decision["id"]) if decision else None

        analysis_id = None
        if category.project is not None:
            if decision_id is None:
                warnings.append("Decision was not recorded; analysis result skipped")
            else:
                analysis = await asyncio.to_thread(
                    self.ledger.record_analysis_result,
                    decision_id,
                    category.endpoint,
                    category.project(draft.output, payload),
                    score.to_dict(),
                )
                analysis_id = str(analysis["id"]) if analysis else None

        await asyncio.to_thread(
            self.accountant.record,
            user_id,
            category.endpoint,
            draft.token_count,
            draft.processing_time_ms,
        )

        logger.info(
            "pipeline.completed",
            status=status.value,
            confidence=score.overall,
            level=score.level,
            processing_time_ms=draft.processing_time_ms,
            attempts=draft.attempts,
        )

        if self.publisher is not None and self.publisher.connected:
            await self.publisher.publish_decision(
                status.value,
                request_id,
                {
                    "decision_id": decision_id,
                    "endpoint": category.endpoint,
                    "user_id": user_id,
                    "confidence": score.overall,
                },
            )

        return PipelineResult(
            category=category,
            status=status,
            request_id=request_id,
            decision_id=decision_id,
            analysis_id=analysis_id,
            output=draft.output,
            confidence=score,
            prompt_name=template.name,
            prompt_version=template.version,
            model_version=self.provider.model_version,
            processing_time_ms=draft.processing_time_ms,
            token_count=draft.token_count,
            attempts=draft.attempts,
            warnings=warnings,
        )


# --- Categories ---


def _json(value: Any) -> str:
    return json.dumps(value, default=str)


def _inspection_variables(payload: dict[str, Any]) -> dict[str, Any]:
    return {
        "industry": payload.get("industry") or "General",
        "client": payload.get("client") or "Unknown",
        "image_count": len(payload.get("images") or []),
        "metadata": _json(payload.get("metadata") or {}),
    }


def _anomaly_variables(payload: dict[str, Any]) -> dict[str, Any]:
    return {
        "industry": payload.get("industry") or "General",
        "image_url": payload.get("imageUrl") or "",
        "context": _json(payload.get("context") or {}),
    }


def _mission_variables(payload: dict[str, Any]) -> dict[str, Any]:
    return {
        "assets": _json(payload.get("assets") or []),
        "personnel": _json(payload.get("personnel") or []),
        "weather": _json(payload.get("weather") or {}),
        "regulations": _json(payload.get("regulations") or []),
    }


def _daily_summary_variables(payload: dict[str, Any]) -> dict[str, Any]:
    return {
        "date": payload.get("date") or "",
        "mission_data": _json(payload.get("missionData") or {}),
        "daily_logs": _json(payload.get("dailyLogs") or []),
        "total_cost": payload.get("totalCost") or 0,
    }


def _project_inspection(output: dict[str, Any], payload: dict[str, Any]) -> AnalysisProjection:
    return AnalysisProjection(
        findings=output.get("findings", []),
        severity=output.get("severity"),
        risk_score=output.get("riskScore"),
        recommendations=output.get("recommendations", []),
        report_id=payload.get("reportId"),
    )


def _project_anomalies(output: dict[str, Any], payload: dict[str, Any]) -> AnalysisProjection:
    return AnalysisProjection(
        findings=output.get("anomalies", []),
        severity=output.get("overallRisk"),
        risk_score=None,
        recommendations=[],
        report_id=payload.get("reportId"),
    )


CATEGORIES: dict[str, CategoryConfig] = {
    "inspection_analysis": CategoryConfig(
        name="inspection_analysis",
        endpoint="/analyze/report",
        prompt_name="inspection_analysis",
        schema_name="inspection_analysis",
        result_key="analysis",
        scorer=confidence.score_inspection_analysis,
        build_variables=_inspection_variables,
        project=_project_inspection,
    ),
    "anomaly_detection": CategoryConfig(
        name="anomaly_detection",
        endpoint="/analyze/image",
        prompt_name="anomaly_detection",
        schema_name="anomaly_detection",
        result_key="detection",
        scorer=confidence.score_anomaly_detection,
        build_variables=_anomaly_variables,
        project=_project_anomalies,
    ),
    "mission_readiness": CategoryConfig(
        name="mission_readiness",
        endpoint="/analyze/mission",
        prompt_name="mission_readiness",
        schema_name="mission_readiness",
        result_key="readiness",
        scorer=confidence.score_mission_readiness,
        build_variables=_mission_variables,
    ),
    "daily_summary": CategoryConfig(
        name="daily_summary",
        endpoint="/analyze/daily-summary",
        prompt_name="daily_operational_summary",
        schema_name="daily_summary",
        result_key="summary",
        scorer=confidence.score_daily_summary,
        build_variables=_daily_summary_variables,
    ),
}


def build_pipelines(
    registry: PromptTemplateRegistry,
    provider: LLMProvider,
    ledger: DecisionLedger,
    accountant: UsageAccountant,
    **options: Any,
) -> dict[str, DecisionPipeline]:
    """One pipeline per category sharing the same collaborators."""
    return {
        name: DecisionPipeline(category, registry, provider, ledger, accountant, **options)
        for name, category in CATEGORIES.items()
    }


@lru_cache
def get_pipelines() -> dict[str, DecisionPipeline]:
    """Get cached pipelines wired from settings."""
    settings = get_settings()
    return build_pipelines(
        get_registry(),
        get_provider(),
        get_ledger(),
        get_usage_accountant(),
        retry_config=RetryConfig.from_settings(settings),
        publisher=get_event_publisher(),
        deadline_seconds=settings.request_deadline_seconds,
        daily_request_limit=settings.daily_request_limit,
    )

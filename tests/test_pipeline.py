"""Tests for the decision pipeline orchestrator."""

from __future__ import annotations

import asyncio
import time
from unittest.mock import AsyncMock, MagicMock

import pytest

from inspection_ai.core.errors import (
    ConfigurationError,
    MalformedOutputError,
    PipelineTimeoutError,
    ProviderAuthError,
    ProviderError,
    RateLimitedError,
    SchemaValidationError,
)
from inspection_ai.core.ledger import DecisionLedger
from inspection_ai.core.pipeline import CATEGORIES, DecisionPipeline, DecisionStatus
from inspection_ai.core.registry import PromptTemplateRegistry
from inspection_ai.core.retry import RetryConfig
from tests.conftest import (
    FakeProvider,
    MockSupabaseClient,
    StepClock,
    daily_summary_output,
    inspection_output,
    no_sleep,
)

REPORT_PAYLOAD = {
    "reportId": "RPT-100",
    "industry": "Energy",
    "client": "Northwind Utilities",
    "images": ["a.jpg", "b.jpg", "c.jpg"],
    "metadata": {"site": "Substation 4"},
}


def _pipeline(category, registry, provider, ledger, accountant, **options):
    options.setdefault("sleep", no_sleep)
    options.setdefault("clock", StepClock())
    options.setdefault("retry_config", RetryConfig(max_retries=3))
    return DecisionPipeline(CATEGORIES[category], registry, provider, ledger, accountant, **options)


class TestHappyPath:
    @pytest.mark.asyncio
    async def test_high_confidence_is_auto_approved(self, pipelines, provider, mock_db):
        result = await pipelines["inspection_analysis"].run("user-1", REPORT_PAYLOAD)

        assert result.status is DecisionStatus.AUTO_APPROVED
        assert result.http_status == 200
        assert result.confidence.overall >= 0.85
        assert result.confidence.level == "HIGH"
        assert result.processing_time_ms == 1500
        assert result.prompt_version == 1
        assert result.attempts == 1

        decisions = mock_db.rows("ai_decisions")
        assert len(decisions) == 1
        decision = decisions[0]
        assert decision["request_id"] == result.request_id
        assert decision["prompt_version"] == "1"
        assert decision["model_version"] == "test-model"
        assert decision["confidence_score"] == result.confidence.overall
        assert decision["token_count"] == 120
        assert decision["input_data"]["variables"]["image_count"] == 3

        analyses = mock_db.rows("ai_analysis_results")
        assert len(analyses) == 1
        assert analyses[0]["decision_id"] == decision["id"]
        assert analyses[0]["report_id"] == "RPT-100"
        assert analyses[0]["severity"] == "HIGH"
        assert analyses[0]["risk_score"] == 70

        usage = mock_db.rows("ai_usage_metrics")
        assert len(usage) == 1
        assert usage[0]["request_count"] == 1
        assert usage[0]["total_tokens"] == 120
        assert usage[0]["endpoint"] == "/analyze/report"

    @pytest.mark.asyncio
    async def test_prompt_is_rendered_from_payload(self, pipelines, provider):
        await pipelines["inspection_analysis"].run("user-1", REPORT_PAYLOAD)
        prompt = provider.prompts[0]
        assert "Energy" in prompt
        assert "Northwind Utilities" in prompt
        assert "(3 images)" in prompt
        assert "{{" not in prompt

    @pytest.mark.asyncio
    async def test_envelope(self, pipelines):
        result = await pipelines["inspection_analysis"].run("user-1", REPORT_PAYLOAD)
        envelope = result.to_envelope()
        assert envelope["success"] is True
        assert envelope["version"] == "1.0"
        data = envelope["data"]
        assert data["status"] == "AUTO_APPROVED"
        assert data["decisionId"] == result.decision_id
        assert data["analysisId"] == result.analysis_id
        assert data["analysis"] == inspection_output()
        assert data["confidence"]["meetsMinimum"] is True
        assert data["metadata"]["modelVersion"] == "test-model"
        assert data["metadata"]["tokenCount"] == 120
        assert data["prompt"] == {"name": "inspection_analysis", "version": 1}

    @pytest.mark.asyncio
    async def test_latest_active_version_is_used(self, pipelines, registry, mock_db):
        registry.create_version("inspection_analysis", "v2 for {{industry}}")
        result = await pipelines["inspection_analysis"].run("user-1", REPORT_PAYLOAD)
        assert result.prompt_version == 2
        assert mock_db.rows("ai_decisions")[0]["prompt_version"] == "2"


class TestReviewGate:
    @pytest.mark.asyncio
    async def test_low_confidence_needs_review(self, pipelines, provider, mock_db):
        provider.default = daily_summary_output(
            workCompleted="Done", financialStatus="n/a", overrunAlerts="", recommendations=""
        )
        result = await pipelines["daily_summary"].run("user-1", {"date": "2026-03-14"})

        assert result.status is DecisionStatus.NEEDS_REVIEW
        assert result.http_status == 202
        assert not result.confidence.meets_minimum
        # Low-confidence decisions are still recorded.
        assert len(mock_db.rows("ai_decisions")) == 1
        assert mock_db.rows("ai_decisions")[0]["metadata"]["status"] == "NEEDS_REVIEW"

        envelope = result.to_envelope()
        assert envelope["success"] is True
        assert "summary" in envelope["data"]
        assert "analysisId" not in envelope["data"]

    @pytest.mark.asyncio
    async def test_daily_summary_has_no_analysis_result(self, pipelines, provider, mock_db):
        provider.default = daily_summary_output()
        await pipelines["daily_summary"].run("user-1", {"date": "2026-03-14", "totalCost": 1200})
        assert mock_db.rows("ai_analysis_results") == []
        assert "$1200" in provider.prompts[0]


class TestFailures:
    @pytest.mark.asyncio
    async def test_malformed_output_writes_nothing(self, pipelines, provider, mock_db):
        provider.default = "I could not analyse this report."
        with pytest.raises(MalformedOutputError):
            await pipelines["inspection_analysis"].run("user-1", REPORT_PAYLOAD)
        assert provider.calls == 1
        assert mock_db.rows("ai_decisions") == []
        assert mock_db.rows("ai_usage_metrics") == []

    @pytest.mark.asyncio
    async def test_non_finite_output_writes_nothing(self, pipelines, provider, mock_db):
        provider.default = (
            '{"findings": [], "severity": "LOW", "riskScore": NaN, "recommendations": []}'
        )
        with pytest.raises(MalformedOutputError):
            await pipelines["inspection_analysis"].run("user-1", REPORT_PAYLOAD)
        assert mock_db.rows("ai_decisions") == []
        assert mock_db.rows("ai_usage_metrics") == []

    @pytest.mark.asyncio
    async def test_schema_failure_writes_nothing(self, pipelines, provider, mock_db):
        provider.default = {"findings": [], "severity": "LOW"}
        with pytest.raises(SchemaValidationError) as exc_info:
            await pipelines["inspection_analysis"].run("user-1", REPORT_PAYLOAD)
        assert len(exc_info.value.errors) == 2
        assert mock_db.rows("ai_decisions") == []
        assert mock_db.rows("ai_analysis_results") == []
        assert mock_db.rows("ai_usage_metrics") == []

    @pytest.mark.asyncio
    async def test_missing_template_is_configuration_error(self, ledger, accountant):
        registry = PromptTemplateRegistry(MockSupabaseClient())
        provider = FakeProvider(default=inspection_output())
        pipeline = _pipeline("inspection_analysis", registry, provider, ledger, accountant)
        with pytest.raises(ConfigurationError):
            await pipeline.run("user-1", REPORT_PAYLOAD)
        assert provider.calls == 0

    @pytest.mark.asyncio
    async def test_unavailable_provider(self, registry, ledger, accountant):
        provider = FakeProvider(available=False)
        pipeline = _pipeline("inspection_analysis", registry, provider, ledger, accountant)
        with pytest.raises(ProviderError):
            await pipeline.run("user-1", REPORT_PAYLOAD)
        assert provider.calls == 0

    @pytest.mark.asyncio
    async def test_transient_failures_are_retried(self, pipelines, provider, mock_db):
        provider.responses = [ConnectionError("reset"), ConnectionError("reset")]
        result = await pipelines["inspection_analysis"].run("user-1", REPORT_PAYLOAD)
        assert result.attempts == 3
        assert provider.calls == 3
        assert len(mock_db.rows("ai_decisions")) == 1

    @pytest.mark.asyncio
    async def test_exhausted_retries(self, pipelines, provider, mock_db):
        provider.default = ConnectionError("gateway down")
        with pytest.raises(ProviderError):
            await pipelines["inspection_analysis"].run("user-1", REPORT_PAYLOAD)
        assert provider.calls == 4
        assert mock_db.rows("ai_decisions") == []

    @pytest.mark.asyncio
    async def test_auth_failure_is_not_retried(self, pipelines, provider):
        provider.default = ProviderAuthError("Provider rejected credentials (401)")
        with pytest.raises(ProviderAuthError):
            await pipelines["inspection_analysis"].run("user-1", REPORT_PAYLOAD)
        assert provider.calls == 1

    @pytest.mark.asyncio
    async def test_decision_write_failure_still_answers(self, pipelines, mock_db):
        mock_db.failing_tables.add("ai_decisions")
        result = await pipelines["inspection_analysis"].run("user-1", REPORT_PAYLOAD)

        assert result.status is DecisionStatus.AUTO_APPROVED
        assert result.decision_id is None
        assert result.analysis_id is None
        assert any("analysis result skipped" in w for w in result.warnings)
        assert mock_db.rows("ai_analysis_results") == []
        assert mock_db.rows("ai_usage_metrics")[0]["request_count"] == 1

    @pytest.mark.asyncio
    async def test_usage_failure_still_answers(self, pipelines, mock_db):
        mock_db.failing_tables.add("ai_usage_metrics")
        result = await pipelines["inspection_analysis"].run("user-1", REPORT_PAYLOAD)
        assert result.decision_id is not None

    @pytest.mark.asyncio
    async def test_unresolved_placeholders_are_warned(self, pipelines, registry, provider):
        registry.create_version("inspection_analysis", "{{industry}} {{site_owner}}")
        result = await pipelines["inspection_analysis"].run("user-1", REPORT_PAYLOAD)
        assert result.warnings == ["Unresolved variables: site_owner"]
        assert "{{site_owner}}" in provider.prompts[0]

    @pytest.mark.asyncio
    async def test_deadline(self, registry, ledger, accountant, mock_db):
        provider = FakeProvider(default=inspection_output(), delay=5)
        pipeline = _pipeline(
            "inspection_analysis", registry, provider, ledger, accountant, deadline_seconds=0.05
        )
        with pytest.raises(PipelineTimeoutError):
            await pipeline.run("user-1", REPORT_PAYLOAD)
        assert mock_db.rows("ai_decisions") == []

    @pytest.mark.asyncio
    async def test_deadline_does_not_cut_off_recording(self, mock_db, registry, provider, accountant):
        class SlowLedger(DecisionLedger):
            def record_analysis_result(self, *args, **kwargs):
                time.sleep(0.3)
                return super().record_analysis_result(*args, **kwargs)

        pipeline = _pipeline(
            "inspection_analysis",
            registry,
            provider,
            SlowLedger(mock_db),
            accountant,
            deadline_seconds=0.1,
        )
        result = await pipeline.run("user-1", REPORT_PAYLOAD)

        assert result.analysis_id is not None
        assert len(mock_db.rows("ai_decisions")) == 1
        assert len(mock_db.rows("ai_analysis_results")) == 1
        assert mock_db.rows("ai_usage_metrics")[0]["request_count"] == 1

    @pytest.mark.asyncio
    async def test_processing_time_excludes_template_lookup(
        self, monkeypatch, registry, provider, ledger, accountant
    ):
        clock = StepClock()
        lookup = registry.get_active_template

        def slow_lookup(name):
            clock.now += 100
            return lookup(name)

        monkeypatch.setattr(registry, "get_active_template", slow_lookup)
        pipeline = _pipeline("inspection_analysis", registry, provider, ledger, accountant, clock=clock)
        result = await pipeline.run("user-1", REPORT_PAYLOAD)
        assert result.processing_time_ms == 1500

    @pytest.mark.asyncio
    async def test_daily_quota(self, registry, provider, ledger, accountant):
        pipeline = _pipeline(
            "inspection_analysis", registry, provider, ledger, accountant, daily_request_limit=1
        )
        await pipeline.run("user-1", REPORT_PAYLOAD)
        with pytest.raises(RateLimitedError):
            await pipeline.run("user-1", REPORT_PAYLOAD)
        await pipeline.run("user-2", REPORT_PAYLOAD)
        assert provider.calls == 2


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_concurrent_runs_count_every_request(self, pipelines, mock_db):
        pipeline = pipelines["inspection_analysis"]
        results = await asyncio.gather(*(pipeline.run("user-1", REPORT_PAYLOAD) for _ in range(50)))

        assert len({r.request_id for r in results}) == 50
        assert len(mock_db.rows("ai_decisions")) == 50
        usage = mock_db.rows("ai_usage_metrics")
        assert len(usage) == 1
        assert usage[0]["request_count"] == 50
        assert usage[0]["total_tokens"] == 50 * 120

    @pytest.mark.asyncio
    async def test_concurrent_runs_respect_daily_quota(self, registry, ledger, accountant, mock_db):
        provider = FakeProvider(default=inspection_output(), delay=0.01)
        pipeline = _pipeline(
            "inspection_analysis", registry, provider, ledger, accountant, daily_request_limit=3
        )
        results = await asyncio.gather(
            *(pipeline.run("user-1", REPORT_PAYLOAD) for _ in range(10)), return_exceptions=True
        )

        limited = [r for r in results if isinstance(r, RateLimitedError)]
        assert len(limited) == 7
        assert provider.calls == 3
        assert mock_db.rows("ai_usage_metrics")[0]["request_count"] == 3


class TestEvents:
    @pytest.mark.asyncio
    async def test_publishes_decision_status(self, registry, provider, ledger, accountant):
        publisher = MagicMock()
        publisher.connected = True
        publisher.publish_decision = AsyncMock(return_value=True)
        pipeline = _pipeline(
            "inspection_analysis", registry, provider, ledger, accountant, publisher=publisher
        )
        result = await pipeline.run("user-1", REPORT_PAYLOAD)

        publisher.publish_decision.assert_awaited_once()
        status, request_id, data = publisher.publish_decision.call_args[0]
        assert status == "AUTO_APPROVED"
        assert request_id == result.request_id
        assert data["decision_id"] == result.decision_id

    @pytest.mark.asyncio
    async def test_disconnected_publisher_skipped(self, registry, provider, ledger, accountant):
        publisher = MagicMock()
        publisher.connected = False
        publisher.publish_decision = AsyncMock()
        pipeline = _pipeline(
            "inspection_analysis", registry, provider, ledger, accountant, publisher=publisher
        )
        await pipeline.run("user-1", REPORT_PAYLOAD)
        publisher.publish_decision.assert_not_awaited()

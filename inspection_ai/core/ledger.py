"""Decision Ledger: immutable audit trail of AI decisions.

One ``ai_decisions`` row per pipeline run, optionally projected into an
``ai_analysis_results`` row. Decisions are append-only: the ledger exposes no
way to update or delete them. The only mutation path is a human override on an
analysis result.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any

import structlog

from inspection_ai.core.confidence import MEDIUM
from inspection_ai.db.client import SupabaseClient, get_supabase_client

logger = structlog.get_logger()

DECISIONS = "ai_decisions"
ANALYSIS_RESULTS = "ai_analysis_results"

OVERRIDE_FIELDS = ("human_override", "override_reason", "override_by", "override_at")


@dataclass
class AnalysisProjection:
    """Domain-specific slice of a decision's output."""

    findings: list[dict[str, Any]]
    severity: str | None
    risk_score: float | None
    recommendations: list[Any]
    report_id: str | None = None


class DecisionLedger:
    """Writes and queries decisions and their analysis results."""

    def __init__(self, db: SupabaseClient) -> None:
        self.db = db

    def record_decision(
        self,
        request_id: str,
        user_id: str,
        endpoint: str,
        input_data: dict[str, Any],
        output_data: Any,
        model_version: str,
        prompt_version: str | None,
        confidence_score: float | None,
        processing_time_ms: int,
        token_count: int | None,
        metadata: dict[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        """Append a decision row.

        Best-effort: a failed write is logged and returns None so the caller's
        response is not lost with it.
        """
        try:
            row = self.db.insert(
                DECISIONS,
                {
                    "request_id": request_id,
                    "user_id": user_id,
                    "endpoint": endpoint,
                    "input_data": input_data,
                    "output_data": output_data,
                    "model_version": model_version,
                    "prompt_version": prompt_version,
                    "confidence_score": confidence_score,
                    "processing_time_ms": processing_time_ms,
                    "token_count": token_count,
                    "metadata": metadata or {},
                },
            )
        except Exception as e:
            logger.error(
                "ledger.decision_write_failed",
                request_id=request_id,
                endpoint=endpoint,
                error=str(e),
            )
            return None

        logger.info(
            "ledger.decision_recorded",
            request_id=request_id,
            endpoint=endpoint,
            confidence=confidence_score,
            processing_time_ms=processing_time_ms,
        )
        return row

    def record_analysis_result(
        self,
        decision_id: str,
        endpoint: str,
        projection: AnalysisProjection,
        confidence: dict[str, Any],
        reasoning: dict[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        """Materialise an analysis result linked to ``decision_id``. Best-effort."""
        try:
            row = self.db.insert(
                ANALYSIS_RESULTS,
                {
                    "decision_id": decision_id,
                    "report_id": projection.report_id,
                    "endpoint": endpoint,
                    "findings": projection.findings,
                    "severity": projection.severity,
                    "risk_score": projection.risk_score,
                    "recommendations": projection.recommendations,
                    "confidence": confidence,
                    "reasoning": reasoning or {"chain": [], "evidence": [], "assumptions": []},
                    "human_override": False,
                    "override_reason": None,
                    "override_by": None,
                    "override_at": None,
                },
            )
        except Exception as e:
            logger.error("ledger.analysis_write_failed", decision_id=decision_id, error=str(e))
            return None

        logger.info("ledger.analysis_recorded", decision_id=decision_id, analysis_id=row["id"])
        return row

    def apply_override(
        self,
        analysis_id: str,
        override_by: str,
        reason: str,
        override: bool = True,
    ) -> dict[str, Any] | None:
        """Attach a reviewer's correction to an analysis result.

        Touches only the override columns; the underlying decision is never
        modified. Returns None when the analysis result does not exist.
        """
        rows = self.db.select(ANALYSIS_RESULTS, filters={"id": analysis_id}, limit=1)
        if not rows:
            return None

        updated = self.db.update(
            ANALYSIS_RESULTS,
            analysis_id,
            {
                "human_override": override,
                "override_reason": reason,
                "override_by": override_by,
                "override_at": datetime.now(timezone.utc).isoformat(),
            },
        )
        logger.info("ledger.override_applied", analysis_id=analysis_id, override_by=override_by)
        return updated

    def get_decision(self, decision_id: str) -> dict[str, Any] | None:
        rows = self.db.select(DECISIONS, filters={"id": decision_id}, limit=1)
        return rows[0] if rows else None

    def get_decision_by_request(self, request_id: str) -> dict[str, Any] | None:
        rows = self.db.select(DECISIONS, filters={"request_id": request_id}, limit=1)
        return rows[0] if rows else None

    def query_decisions(
        self,
        endpoint: str | None = None,
        user_id: str | None = None,
        since: str | None = None,
        until: str | None = None,
        limit: int = 50,
    ) -> list[dict[str, Any]]:
        """Decisions newest first, filtered by endpoint, user and time window."""
        filters: dict[str, Any] = {}
        if endpoint:
            filters["endpoint"] = endpoint
        if user_id:
            filters["user_id"] = user_id

        rows = self.db.select(
            DECISIONS,
            filters=filters if filters else None,
            order_by="created_at",
            ascending=False,
        )

        # Client-side time filtering
        results = []
        for row in rows:
            created = row.get("created_at", "")
            if since and created < since:
                continue
            if until and created > until:
                continue
            results.append(row)

        return results[:limit]

    def report_history(self, report_id: str) -> list[dict[str, Any]]:
        """Analysis results for a report, each joined with its decision's metadata."""
        results = self.db.select(
            ANALYSIS_RESULTS,
            filters={"report_id": report_id},
            order_by="created_at",
            ascending=False,
        )
        history = []
        for result in results:
            decision = self.get_decision(str(result["decision_id"])) or {}
            history.append(
                {
                    **result,
                    "model_version": decision.get("model_version"),
                    "prompt_version": decision.get("prompt_version"),
                    "processing_time_ms": decision.get("processing_time_ms"),
                    "decision_timestamp": decision.get("created_at"),
                }
            )
        return history

    def report_decisions(self, report_id: str) -> list[dict[str, Any]]:
        """Decisions that produced analysis results for a report, newest first."""
        results = self.db.select(ANALYSIS_RESULTS, filters={"report_id": report_id})
        decisions = [self.get_decision(str(r["decision_id"])) for r in results]
        found = [d for d in decisions if d is not None]
        return sorted(found, key=lambda d: d.get("created_at", ""), reverse=True)

    def compliance_summary(self, start: str, end: str) -> dict[str, Any]:
        """Aggregate the audit trail over ``[start, end]`` for compliance review."""
        decisions = self.db.select_range(DECISIONS, "created_at", start, end)
        analyses = self.db.select_range(ANALYSIS_RESULTS, "created_at", start, end)

        by_endpoint: dict[str, list[dict[str, Any]]] = {}
        for d in decisions:
            by_endpoint.setdefault(d["endpoint"], []).append(d)

        endpoint_metrics = []
        for endpoint, rows in by_endpoint.items():
            scores = [r["confidence_score"] for r in rows if r.get("confidence_score") is not None]
            times = [r["processing_time_ms"] for r in rows if r.get("processing_time_ms") is not None]
            endpoint_metrics.append(
                {
                    "endpoint": endpoint,
                    "total_requests": len(rows),
                    "avg_confidence": round(sum(scores) / len(scores), 4) if scores else None,
                    "avg_processing_time_ms": round(sum(times) / len(times), 1) if times else None,
                    "total_tokens": sum(r.get("token_count") or 0 for r in rows),
                    "low_confidence_count": sum(1 for s in scores if s < MEDIUM),
                }
            )
        endpoint_metrics.sort(key=lambda m: m["total_requests"], reverse=True)

        versions: dict[tuple[str | None, str | None], int] = {}
        for d in decisions:
            key = (d.get("prompt_version"), d.get("model_version"))
            versions[key] = versions.get(key, 0) + 1
        prompt_versions = [
            {"prompt_version": p, "model_version": m, "usage_count": n}
            for (p, m), n in sorted(versions.items(), key=lambda kv: kv[1], reverse=True)
        ]

        overrides = [a for a in analyses if a.get("human_override")]
        all_scores = [d["confidence_score"] for d in decisions if d.get("confidence_score") is not None]
        average_confidence = round(sum(all_scores) / len(all_scores), 4) if all_scores else 0.0

        return {
            "period": {"start": start, "end": end},
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "summary": {
                "total_decisions": len(decisions),
                "total_human_overrides": len(overrides),
                "average_confidence": average_confidence,
                "total_tokens_used": sum(d.get("token_count") or 0 for d in decisions),
            },
            "endpoint_metrics": endpoint_metrics,
            "prompt_versions": prompt_versions,
            "compliance": {
                "confidence_threshold_met": all(
                    m["avg_confidence"] is None or m["avg_confidence"] >= MEDIUM
                    for m in endpoint_metrics
                ),
                "human_oversight_active": len(overrides) > 0,
            },
        }


@lru_cache
def get_ledger() -> DecisionLedger:
    """Get cached ledger instance."""
    return DecisionLedger(get_supabase_client())

"""Decision history, human override and compliance endpoints."""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Query

from inspection_ai.api.models import ComplianceRequest, OverrideRequest
from inspection_ai.core.ledger import DecisionLedger, get_ledger
from inspection_ai.core.pipeline import API_VERSION

logger = structlog.get_logger()

router = APIRouter()


def _envelope(data: Any) -> dict[str, Any]:
    return {"success": True, "version": API_VERSION, "data": data}


def _history_entry(row: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": row["id"],
        "reportId": row.get("report_id"),
        "decisionId": row.get("decision_id"),
        "findings": row.get("findings"),
        "severity": row.get("severity"),
        "riskScore": row.get("risk_score"),
        "recommendations": row.get("recommendations"),
        "confidence": row.get("confidence"),
        "reasoning": row.get("reasoning"),
        "humanOverride": row.get("human_override", False),
        "overrideReason": row.get("override_reason"),
        "overrideBy": row.get("override_by"),
        "overrideAt": row.get("override_at"),
        "createdAt": row.get("created_at"),
        "updatedAt": row.get("updated_at"),
        "metadata": {
            "modelVersion": row.get("model_version"),
            "promptVersion": row.get("prompt_version"),
            "processingTime": row.get("processing_time_ms"),
            "decisionTimestamp": row.get("decision_timestamp"),
        },
    }


@router.post("/reports/compliance")
async def compliance_report(
    data: ComplianceRequest,
    x_user_id: str = Header(...),
    ledger: DecisionLedger = Depends(get_ledger),
) -> dict[str, Any]:
    """Summarise the decision audit trail over a period."""
    logger.info("reports.compliance", start=data.start_date, end=data.end_date, user_id=x_user_id)
    summary = ledger.compliance_summary(data.start_date, data.end_date)
    summary["generated_by"] = x_user_id
    return _envelope(summary)


@router.get("/reports/{report_id}")
async def report_history(
    report_id: str,
    ledger: DecisionLedger = Depends(get_ledger),
) -> dict[str, Any]:
    """Analysis history for a report."""
    history = [_history_entry(row) for row in ledger.report_history(report_id)]
    if not history:
        raise HTTPException(status_code=404, detail="No analysis history found for this report")
    return _envelope({"reportId": report_id, "analysisCount": len(history), "history": history})


@router.get("/reports/{report_id}/decisions")
async def report_decisions(
    report_id: str,
    ledger: DecisionLedger = Depends(get_ledger),
) -> dict[str, Any]:
    """Decision log behind a report's analyses."""
    return _envelope({"reportId": report_id, "decisions": ledger.report_decisions(report_id)})


@router.get("/decisions")
async def query_decisions(
    endpoint: str | None = None,
    user_id: str | None = None,
    since: str | None = None,
    until: str | None = None,
    limit: int = Query(default=50, le=200),
    ledger: DecisionLedger = Depends(get_ledger),
) -> dict[str, Any]:
    """Query the decision ledger."""
    decisions = ledger.query_decisions(
        endpoint=endpoint, user_id=user_id, since=since, until=until, limit=limit
    )
    return _envelope({"decisions": decisions})


@router.get("/decisions/{request_id}")
async def get_decision(
    request_id: str,
    ledger: DecisionLedger = Depends(get_ledger),
) -> dict[str, Any]:
    """Fetch one decision by its request id."""
    decision = ledger.get_decision_by_request(request_id)
    if not decision:
        raise HTTPException(status_code=404, detail=f"Decision '{request_id}' not found")
    return _envelope(decision)


@router.post("/analysis/{analysis_id}/override")
async def override_analysis(
    analysis_id: str,
    data: OverrideRequest,
    ledger: DecisionLedger = Depends(get_ledger),
) -> dict[str, Any]:
    """Attach a human reviewer's override to an analysis result."""
    updated = ledger.apply_override(
        analysis_id,
        override_by=data.override_by,
        reason=data.reason,
        override=data.human_override,
    )
    if not updated:
        raise HTTPException(status_code=404, detail=f"Analysis '{analysis_id}' not found")
    return _envelope(_history_entry(updated))

"""Confidence Scorer: weighted multi-factor confidence for AI decisions.

Each category scorer emits a handful of factors (score in [0, 1] times a fixed
weight). Factors are conditional, so the overall score divides by the weights
that were actually applied rather than by a constant.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from typing import Any, Callable

import structlog

logger = structlog.get_logger()

HIGH = 0.85
MEDIUM = 0.70
LOW = 0.50
MINIMUM = 0.30

THRESHOLDS = {"HIGH": HIGH, "MEDIUM": MEDIUM, "LOW": LOW, "MINIMUM": MINIMUM}

SEVERITY_RISK_RANGES: dict[str, tuple[float, float]] = {
    "LOW": (0, 25),
    "MEDIUM": (25, 60),
    "HIGH": (60, 85),
    "CRITICAL": (85, 100),
}

DEFAULT_ITEM_CONFIDENCE = 0.5
INCONSISTENCY_PENALTY = 0.7

_MONEY = re.compile(r"\$|cost|total|pay|usd")


@dataclass(frozen=True)
class Factor:
    name: str
    score: float
    weight: float
    description: str


@dataclass
class ConfidenceScore:
    overall: float
    level: str
    factors: list[Factor] = field(default_factory=list)
    meets_minimum: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "overall": self.overall,
            "level": self.level,
            "factors": [asdict(f) for f in self.factors],
            "meetsMinimum": self.meets_minimum,
        }


def confidence_level(overall: float) -> str:
    """Highest threshold ``overall`` meets, else VERY_LOW."""
    if overall >= HIGH:
        return "HIGH"
    if overall >= MEDIUM:
        return "MEDIUM"
    if overall >= LOW:
        return "LOW"
    return "VERY_LOW"


def meets_minimum(overall: float) -> bool:
    return overall >= MINIMUM


def combine_factors(factors: list[Factor]) -> ConfidenceScore:
    """Weight-normalised sum of ``factors``.

    Level and gate use the unrounded value; ``overall`` is reported to four places.
    """
    total_weight = sum(f.weight for f in factors)
    weighted_sum = sum(f.score * f.weight for f in factors)
    overall = weighted_sum / total_weight if total_weight > 0 else 0.0
    overall = min(1.0, max(0.0, overall))

    result = ConfidenceScore(
        overall=round(overall, 4),
        level=confidence_level(overall),
        factors=list(factors),
        meets_minimum=meets_minimum(overall),
    )
    logger.debug(
        "confidence.calculated",
        overall=result.overall,
        level=result.level,
        factor_count=len(factors),
    )
    return result


def _average_confidence(items: list[dict[str, Any]]) -> float:
    values = [
        item.get("confidence") if item.get("confidence") is not None else DEFAULT_ITEM_CONFIDENCE
        for item in items
    ]
    return sum(values) / len(values)


def _count_severity(items: list[dict[str, Any]], severity: str) -> int:
    return sum(1 for item in items if item.get("severity") == severity)


def score_inspection_analysis(
    analysis: dict[str, Any], processing_time_ms: int | None = None
) -> ConfidenceScore:
    factors: list[Factor] = []

    findings = analysis.get("findings") or []
    if findings:
        factors.append(
            Factor(
                "finding_confidence",
                _average_confidence(findings),
                0.4,
                "Average confidence of individual findings",
            )
        )

    required = ("findings", "severity", "riskScore", "recommendations")
    present = sum(1 for name in required if name in analysis)
    factors.append(
        Factor("schema_completeness", present / len(required), 0.2, "Completeness of required fields")
    )

    quality = 1.0
    severity = analysis.get("severity")
    risk_score = analysis.get("riskScore")
    if severity and risk_score is not None and severity in SEVERITY_RISK_RANGES:
        low, high = SEVERITY_RISK_RANGES[severity]
        if risk_score < low or risk_score > high:
            quality *= INCONSISTENCY_PENALTY
    factors.append(Factor("data_quality", quality, 0.2, "Internal consistency of analysis"))

    # Under 1s and over 30s are both penalised.
    timing = 0.8
    if processing_time_ms:
        if processing_time_ms < 1000:
            timing *= 0.8
        if processing_time_ms > 30000:
            timing *= 0.9
    factors.append(Factor("processing_metadata", timing, 0.2, "Processing quality indicators"))

    return combine_factors(factors)


def score_anomaly_detection(
    detection: dict[str, Any], processing_time_ms: int | None = None
) -> ConfidenceScore:
    factors: list[Factor] = []
    anomalies = detection.get("anomalies") or []

    if anomalies:
        factors.append(
            Factor(
                "anomaly_confidence",
                _average_confidence(anomalies),
                0.5,
                "Average confidence of detected anomalies",
            )
        )
    else:
        factors.append(
            Factor("no_anomalies", 0.9, 0.5, "High confidence in absence of anomalies")
        )

    consistency = 1.0
    overall_risk = detection.get("overallRisk")
    if overall_risk:
        critical = _count_severity(anomalies, "CRITICAL")
        high = _count_severity(anomalies, "HIGH")
        if overall_risk == "CRITICAL" and critical == 0:
            consistency *= 0.6
        if overall_risk == "LOW" and (critical > 0 or high > 0):
            consistency *= 0.6
    factors.append(
        Factor("risk_consistency", consistency, 0.3, "Consistency between anomalies and overall risk")
    )

    processing = 0.9 if processing_time_ms and processing_time_ms < 15000 else 0.7
    factors.append(Factor("processing_quality", processing, 0.2, "Processing time and quality"))

    return combine_factors(factors)


def score_mission_readiness(
    readiness: dict[str, Any], processing_time_ms: int | None = None
) -> ConfidenceScore:
    factors: list[Factor] = []

    risk = 1.0
    flags = readiness.get("riskFlags") or []
    if flags:
        risk -= _count_severity(flags, "CRITICAL") * 0.3 + _count_severity(flags, "HIGH") * 0.15
        risk = max(0.0, risk)
    factors.append(Factor("risk_assessment", risk, 0.4, "Quality of risk flag assessment"))

    consistency = 1.0
    ready = readiness.get("ready")
    score = readiness.get("score")
    if ready is not None and score is not None:
        if ready and score < 70:
            consistency *= INCONSISTENCY_PENALTY
        if not ready and score > 70:
            consistency *= INCONSISTENCY_PENALTY
    factors.append(
        Factor("readiness_consistency", consistency, 0.3, "Consistency between ready flag and score")
    )

    has_recommendations = bool(readiness.get("recommendations"))
    factors.append(
        Factor(
            "recommendations",
            0.9 if has_recommendations else 0.6,
            0.3,
            "Presence and quality of recommendations",
        )
    )

    return combine_factors(factors)


def score_daily_summary(
    summary: dict[str, Any], processing_time_ms: int | None = None
) -> ConfidenceScore:
    factors: list[Factor] = []

    required = ("workCompleted", "financialStatus", "overrunAlerts", "recommendations")
    detailed = sum(
        1 for name in required if isinstance(summary.get(name), str) and len(summary[name]) > 10
    )
    factors.append(
        Factor(
            "detail_completeness",
            detailed / len(required),
            0.5,
            "Quality and length of required narrative fields",
        )
    )

    financial = str(summary.get("financialStatus") or "").lower()
    factors.append(
        Factor(
            "financial_clarity",
            1.0 if _MONEY.search(financial) else 0.4,
            0.3,
            "Presence of financial data in summary",
        )
    )

    depth = 0.9 if processing_time_ms and processing_time_ms > 2000 else 0.7
    factors.append(
        Factor("processing_depth", depth, 0.2, "Estimated depth of reasoning based on processing")
    )

    return combine_factors(factors)


Scorer = Callable[..., ConfidenceScore]


def get_thresholds() -> dict[str, float]:
    return dict(THRESHOLDS)

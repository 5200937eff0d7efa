"""Structural contracts for model output.

A schema is a tree built from a closed set of node kinds. The validator in
``inspection_ai.core.validator`` interprets these trees; nothing here knows
how to validate.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union

import structlog

logger = structlog.get_logger()

SEVERITIES = ("LOW", "MEDIUM", "HIGH", "CRITICAL")
PRIORITIES = ("LOW", "MEDIUM", "HIGH", "URGENT")


@dataclass(frozen=True)
class StringNode:
    enum: tuple[str, ...] | None = None
    min_length: int | None = None
    max_length: int | None = None
    kind: str = field(default="string", init=False)


@dataclass(frozen=True)
class NumberNode:
    minimum: float | None = None
    maximum: float | None = None
    enum: tuple[float, ...] | None = None
    kind: str = field(default="number", init=False)


@dataclass(frozen=True)
class BooleanNode:
    enum: tuple[bool, ...] | None = None
    kind: str = field(default="boolean", init=False)


@dataclass(frozen=True)
class ArrayNode:
    items: SchemaNode | None = None
    min_items: int | None = None
    max_items: int | None = None
    enum: tuple[Any, ...] | None = None
    kind: str = field(default="array", init=False)


@dataclass(frozen=True)
class ObjectNode:
    properties: dict[str, SchemaNode] = field(default_factory=dict)
    required: tuple[str, ...] = ()
    enum: tuple[Any, ...] | None = None
    kind: str = field(default="object", init=False)


SchemaNode = Union[StringNode, NumberNode, BooleanNode, ArrayNode, ObjectNode]


INSPECTION_ANALYSIS = ObjectNode(
    required=("findings", "severity", "riskScore", "recommendations"),
    properties={
        "findings": ArrayNode(
            items=ObjectNode(
                required=("id", "type", "severity", "description"),
                properties={
                    "id": StringNode(),
                    "type": StringNode(),
                    "severity": StringNode(enum=SEVERITIES),
                    "description": StringNode(),
                    "location": StringNode(),
                    "confidence": NumberNode(minimum=0, maximum=1),
                },
            )
        ),
        "severity": StringNode(enum=SEVERITIES),
        "riskScore": NumberNode(minimum=0, maximum=100),
        "recommendations": ArrayNode(
            items=ObjectNode(
                required=("priority", "action", "rationale"),
                properties={
                    "priority": StringNode(enum=PRIORITIES),
                    "action": StringNode(),
                    "rationale": StringNode(),
                    "estimatedCost": NumberNode(minimum=0),
                },
            )
        ),
    },
)

ANOMALY_DETECTION = ObjectNode(
    required=("anomalies", "overallRisk"),
    properties={
        "anomalies": ArrayNode(
            items=ObjectNode(
                required=("type", "severity", "confidence", "description"),
                properties={
                    "type": StringNode(),
                    "severity": StringNode(enum=SEVERITIES),
                    "confidence": NumberNode(minimum=0, maximum=1),
                    "description": StringNode(),
                    "location": ObjectNode(),
                },
            )
        ),
        "overallRisk": StringNode(enum=SEVERITIES),
    },
)

MISSION_READINESS = ObjectNode(
    required=("ready", "riskFlags", "score"),
    properties={
        "ready": BooleanNode(),
        "score": NumberNode(minimum=0, maximum=100),
        "riskFlags": ArrayNode(
            items=ObjectNode(
                required=("category", "severity", "description"),
                properties={
                    "category": StringNode(),
                    "severity": StringNode(enum=SEVERITIES),
                    "description": StringNode(),
                    "mitigation": StringNode(),
                },
            )
        ),
        "recommendations": ArrayNode(items=StringNode()),
    },
)

DAILY_SUMMARY = ObjectNode(
    required=("workCompleted", "financialStatus", "overrunAlerts", "recommendations"),
    properties={
        "workCompleted": StringNode(min_length=1),
        "financialStatus": StringNode(min_length=1),
        "overrunAlerts": StringNode(),
        "recommendations": StringNode(),
        "highlights": ArrayNode(items=StringNode()),
    },
)

_SCHEMAS: dict[str, SchemaNode] = {
    "inspection_analysis": INSPECTION_ANALYSIS,
    "anomaly_detection": ANOMALY_DETECTION,
    "mission_readiness": MISSION_READINESS,
    "daily_summary": DAILY_SUMMARY,
}


def get_schema(name: str) -> SchemaNode | None:
    return _SCHEMAS.get(name)


def list_schemas() -> list[str]:
    return list(_SCHEMAS)


def register_schema(name: str, schema: SchemaNode) -> None:
    """Add or replace a named schema."""
    if name in _SCHEMAS:
        logger.warning("schema.overwritten", name=name)
    _SCHEMAS[name] = schema

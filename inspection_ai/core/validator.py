"""Schema Validator: recursive structural checks over named schemas."""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from typing import Any

import structlog

from inspection_ai.core.errors import ConfigurationError, SchemaValidationError
from inspection_ai.core.schemas import (
    ArrayNode,
    NumberNode,
    ObjectNode,
    SchemaNode,
    StringNode,
    get_schema,
)

logger = structlog.get_logger()


@dataclass
class ValidationResult:
    valid: bool
    errors: list[str] = field(default_factory=list)


def type_name(value: Any) -> str:
    """JSON type name of a decoded value. Booleans are not numbers."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


def _fmt(value: Any) -> str:
    return value if isinstance(value, str) else json.dumps(value, default=str)


def validate_node(value: Any, node: SchemaNode, path: str = "") -> list[str]:
    """Collect every violation of ``node`` in ``value``.

    A type mismatch stops validation of that subtree only.
    """
    actual = type_name(value)
    if actual != node.kind:
        return [f"{path}: Expected type {node.kind}, got {actual}"]

    errors: list[str] = []

    if node.enum is not None and value not in node.enum:
        allowed = ", ".join(_fmt(v) for v in node.enum)
        errors.append(f"{path}: Value must be one of [{allowed}], got {_fmt(value)}")

    if isinstance(node, NumberNode):
        if not math.isfinite(value):
            errors.append(f"{path}: Value {value} is not a finite number")
        else:
            if node.minimum is not None and value < node.minimum:
                errors.append(f"{path}: Value {value} is less than minimum {node.minimum}")
            if node.maximum is not None and value > node.maximum:
                errors.append(f"{path}: Value {value} is greater than maximum {node.maximum}")

    elif isinstance(node, StringNode):
        if node.min_length is not None and len(value) < node.min_length:
            errors.append(
                f"{path}: String length {len(value)} is less than minimum {node.min_length}"
            )
        if node.max_length is not None and len(value) > node.max_length:
            errors.append(
                f"{path}: String length {len(value)} is greater than maximum {node.max_length}"
            )

    elif isinstance(node, ArrayNode):
        if node.items is not None:
            for index, item in enumerate(value):
                errors.extend(validate_node(item, node.items, f"{path}[{index}]"))
        if node.min_items is not None and len(value) < node.min_items:
            errors.append(f"{path}: Array length {len(value)} is less than minimum {node.min_items}")
        if node.max_items is not None and len(value) > node.max_items:
            errors.append(
                f"{path}: Array length {len(value)} is greater than maximum {node.max_items}"
            )

    elif isinstance(node, ObjectNode):
        for name in node.required:
            if name not in value:
                errors.append(f"{path}: Missing required property '{name}'")
        for name, child in node.properties.items():
            if name in value:
                child_path = f"{path}.{name}" if path else name
                errors.extend(validate_node(value[name], child, child_path))

    return errors


def validate(schema_name: str, data: Any) -> ValidationResult:
    """Validate ``data`` against a named schema, returning every violation."""
    schema = get_schema(schema_name)
    if schema is None:
        raise ConfigurationError(f"Unknown schema: {schema_name}")

    errors = validate_node(data, schema, schema_name)
    if errors:
        logger.warning(
            "schema.validation_failed",
            schema=schema_name,
            errors=errors,
            data=json.dumps(data, default=str)[:500],
        )
        return ValidationResult(valid=False, errors=errors)
    return ValidationResult(valid=True)


def validate_or_raise(schema_name: str, data: Any) -> None:
    """Like ``validate`` but raises SchemaValidationError when invalid."""
    result = validate(schema_name, data)
    if not result.valid:
        raise SchemaValidationError(
            f"Schema validation failed: {'; '.join(result.errors)}", errors=result.errors
        )

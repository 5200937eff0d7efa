"""Output parser: pulls a JSON payload out of raw model text."""

from __future__ import annotations

import json
import re
from typing import Any

import structlog

from inspection_ai.core.errors import MalformedOutputError

logger = structlog.get_logger()

PREVIEW_CHARS = 500

_JSON_FENCE = re.compile(r"```json\s*([\s\S]*?)\s*```")
_ANY_FENCE = re.compile(r"```\s*([\s\S]*?)\s*```")


def extract_payload_text(text: str) -> str:
    """Prefer a ```json fence, then any fence, else the raw text."""
    match = _JSON_FENCE.search(text) or _ANY_FENCE.search(text)
    return (match.group(1) if match else text).strip()


def _reject_constant(name: str) -> Any:
    raise ValueError(f"Non-finite number {name} is not valid JSON")


def parse_structured_output(text: str | None) -> Any:
    """Decode the structured payload in ``text``.

    Raises MalformedOutputError (with a truncated preview) on anything that is
    not strict JSON.
    """
    raw = text or ""
    candidate = extract_payload_text(raw)
    try:
        return json.loads(candidate, parse_constant=_reject_constant)
    except (json.JSONDecodeError, ValueError) as e:
        preview = raw[:PREVIEW_CHARS]
        logger.error("parser.invalid_json", error=str(e), response=preview)
        raise MalformedOutputError("LLM returned invalid JSON response", preview=preview) from e

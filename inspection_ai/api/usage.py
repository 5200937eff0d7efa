"""Usage metric endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from inspection_ai.core.pipeline import API_VERSION
from inspection_ai.core.usage import UsageAccountant, get_usage_accountant

router = APIRouter()


@router.get("/{user_id}")
async def user_usage(
    user_id: str,
    since: str | None = None,
    until: str | None = None,
    accountant: UsageAccountant = Depends(get_usage_accountant),
) -> dict[str, Any]:
    """Per day/endpoint usage for a user with period totals."""
    rows = accountant.usage_for_user(user_id, since=since, until=until)

    by_endpoint: dict[str, dict[str, int]] = {}
    for row in rows:
        bucket = by_endpoint.setdefault(
            row["endpoint"], {"request_count": 0, "total_tokens": 0, "total_processing_time_ms": 0}
        )
        bucket["request_count"] += row.get("request_count", 0)
        bucket["total_tokens"] += row.get("total_tokens", 0)
        bucket["total_processing_time_ms"] += row.get("total_processing_time_ms", 0)

    return {
        "success": True,
        "version": API_VERSION,
        "data": {
            "userId": user_id,
            "totals": accountant.totals(rows),
            "byEndpoint": by_endpoint,
            "metrics": rows,
        },
    }

"""Usage Accountant: per user/day/endpoint counters for AI requests."""

from __future__ import annotations

import threading
from datetime import date, datetime, timezone
from functools import lru_cache
from typing import Any

import structlog

from inspection_ai.core.errors import RateLimitedError
from inspection_ai.db.client import SupabaseClient, get_supabase_client

logger = structlog.get_logger()

TABLE = "ai_usage_metrics"

# INSERT ... ON CONFLICT (user_id, date, endpoint) DO UPDATE SET col = col + excluded.col,
# see migrations/001_decision_pipeline.sql.
INCREMENT_FUNCTION = "increment_usage_metric"


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


class UsageAccountant:
    """Maintains additive usage counters.

    Increments happen inside the database in one statement, so concurrent runs
    for the same key never lose updates.
    """

    def __init__(self, db: SupabaseClient) -> None:
        self.db = db
        self._quota_lock = threading.Lock()
        self._in_flight: dict[tuple[str, str], int] = {}

    def record(
        self,
        user_id: str,
        endpoint: str,
        tokens: int,
        processing_time_ms: int,
        day: date | None = None,
    ) -> bool:
        """Add one request to the counters. Best-effort: failures are logged."""
        day = day or utc_today()
        try:
            self.db.rpc(
                INCREMENT_FUNCTION,
                {
                    "p_user_id": user_id,
                    "p_date": day.isoformat(),
                    "p_endpoint": endpoint,
                    "p_tokens": int(tokens or 0),
                    "p_processing_time_ms": int(processing_time_ms),
                },
            )
        except Exception as e:
            logger.error("usage.update_failed", user_id=user_id, endpoint=endpoint, error=str(e))
            return False
        return True

    def get_metric(self, user_id: str, endpoint: str, day: date | None = None) -> dict[str, Any] | None:
        day = day or utc_today()
        rows = self.db.select(
            TABLE,
            filters={"user_id": user_id, "date": day.isoformat(), "endpoint": endpoint},
            limit=1,
        )
        return rows[0] if rows else None

    def reserve_quota(self, user_id: str, endpoint: str, daily_limit: int) -> bool:
        """Claim one of today's ``daily_limit`` requests (0 = unlimited).

        Requests still in flight in this process count against the limit, so
        concurrent runs cannot all pass on the same stored count. Returns True
        when a slot was reserved; pair it with ``release_quota``. Raises
        RateLimitedError once stored plus in-flight requests reach the limit.
        Other processes only see each other's completed requests.
        """
        if daily_limit <= 0:
            return False
        key = (user_id, endpoint)
        with self._quota_lock:
            metric = self.get_metric(user_id, endpoint)
            used = (metric["request_count"] if metric else 0) + self._in_flight.get(key, 0)
            if used >= daily_limit:
                logger.warning("usage.quota_exceeded", user_id=user_id, endpoint=endpoint, used=used)
                raise RateLimitedError(
                    f"Daily limit of {daily_limit} AI requests reached for {endpoint}. "
                    "Please wait before submitting more."
                )
            self._in_flight[key] = self._in_flight.get(key, 0) + 1
        return True

    def release_quota(self, user_id: str, endpoint: str) -> None:
        key = (user_id, endpoint)
        with self._quota_lock:
            remaining = self._in_flight.get(key, 0) - 1
            if remaining > 0:
                self._in_flight[key] = remaining
            else:
                self._in_flight.pop(key, None)

    def usage_for_user(
        self,
        user_id: str,
        since: str | None = None,
        until: str | None = None,
    ) -> list[dict[str, Any]]:
        """Usage rows for a user, newest day first, within an optional date window."""
        return self.db.select_range(TABLE, "date", since, until, filters={"user_id": user_id})

    @staticmethod
    def totals(rows: list[dict[str, Any]]) -> dict[str, int]:
        return {
            "request_count": sum(r.get("request_count", 0) for r in rows),
            "total_tokens": sum(r.get("total_tokens", 0) for r in rows),
            "total_processing_time_ms": sum(r.get("total_processing_time_ms", 0) for r in rows),
        }


@lru_cache
def get_usage_accountant() -> UsageAccountant:
    """Get cached usage accountant instance."""
    return UsageAccountant(get_supabase_client())

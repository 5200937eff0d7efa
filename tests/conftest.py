"""Test fixtures: mock Supabase client, fake LLM provider and shared test data."""

from __future__ import annotations

import asyncio
import json
import threading
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from inspection_ai.core.ledger import DecisionLedger
from inspection_ai.core.pipeline import build_pipelines
from inspection_ai.core.provider import Generation
from inspection_ai.core.registry import PromptTemplateRegistry
from inspection_ai.core.retry import RetryConfig
from inspection_ai.core.usage import UsageAccountant
from inspection_ai.db.client import SupabaseClient


class MockSupabaseClient(SupabaseClient):
    """In-memory mock of the Supabase client for testing."""

    def __init__(self):
        self._tables: dict[str, list[dict[str, Any]]] = {
            "ai_prompt_templates": [],
            "ai_decisions": [],
            "ai_analysis_results": [],
            "ai_usage_metrics": [],
        }
        self._lock = threading.Lock()
        self._seq = 0
        self._epoch = datetime.now(timezone.utc)
        # Tables whose inserts should fail, to exercise best-effort writes.
        self.failing_tables: set[str] = set()

    def _now(self) -> str:
        # Strictly increasing timestamps so ordering by created_at is stable.
        self._seq += 1
        return (self._epoch + timedelta(microseconds=self._seq)).isoformat()

    def insert(self, table: str, data: dict[str, Any]) -> dict[str, Any]:
        if table in self.failing_tables:
            raise RuntimeError(f"insert into {table} failed")
        with self._lock:
            now = self._now()
            record = {"id": str(uuid4()), "created_at": now, "updated_at": now, **data}
            self._tables.setdefault(table, []).append(record)
        return record

    def select(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        ascending: bool = True,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        rows = list(self._tables.get(table, []))
        if filters:
            for key, value in filters.items():
                rows = [r for r in rows if r.get(key) == value]
        if order_by:
            rows = sorted(rows, key=lambda r: r.get(order_by, 0), reverse=not ascending)
        if limit:
            rows = rows[:limit]
        return rows

    def select_range(
        self,
        table: str,
        column: str,
        start: str | None = None,
        end: str | None = None,
        filters: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        rows = self.select(table, filters=filters)
        if start:
            rows = [r for r in rows if r.get(column, "") >= start]
        if end:
            rows = [r for r in rows if r.get(column, "") <= end]
        return sorted(rows, key=lambda r: r.get(column, ""), reverse=True)

    def update(self, table: str, id: str, data: dict[str, Any]) -> dict[str, Any]:
        for row in self._tables.get(table, []):
            if row["id"] == id:
                row.update(data)
                row["updated_at"] = self._now()
                return row
        raise ValueError(f"Row {id} not found in {table}")

    def update_where(self, table: str, filters: dict[str, Any], data: dict[str, Any]) -> None:
        for row in self._tables.get(table, []):
            if all(row.get(k) == v for k, v in filters.items()):
                row.update(data)

    def rpc(self, function: str, params: dict[str, Any]) -> Any:
        if function != "increment_usage_metric":
            raise ValueError(f"Unknown function {function}")
        if "ai_usage_metrics" in self.failing_tables:
            raise RuntimeError("usage upsert failed")
        key = (params["p_user_id"], params["p_date"], params["p_endpoint"])
        with self._lock:
            for row in self._tables["ai_usage_metrics"]:
                if (row["user_id"], row["date"], row["endpoint"]) == key:
                    row["request_count"] += 1
                    row["total_tokens"] += params["p_tokens"]
                    row["total_processing_time_ms"] += params["p_processing_time_ms"]
                    return row
            row = {
                "id": str(uuid4()),
                "user_id": key[0],
                "date": key[1],
                "endpoint": key[2],
                "request_count": 1,
                "total_tokens": params["p_tokens"],
                "total_processing_time_ms": params["p_processing_time_ms"],
            }
            self._tables["ai_usage_metrics"].append(row)
            return row

    def rows(self, table: str) -> list[dict[str, Any]]:
        return self._tables.get(table, [])


class FakeProvider:
    """Scripted LLM provider.

    ``responses`` are consumed in order; each is a dict (sent as JSON), raw
    text, or an exception to raise. Once exhausted, ``default`` is returned.
    """

    def __init__(
        self,
        responses: list[Any] | None = None,
        default: Any = None,
        tokens: int = 120,
        available: bool = True,
        delay: float = 0.0,
        model_version: str = "test-model",
    ) -> None:
        self.responses = list(responses or [])
        self.default = default
        self.tokens = tokens
        self.available = available
        self.delay = delay
        self.model_version = model_version
        self.prompts: list[str] = []

    @property
    def calls(self) -> int:
        return len(self.prompts)

    def is_available(self) -> bool:
        return self.available

    async def generate(self, prompt: str) -> Generation:
        self.prompts.append(prompt)
        await asyncio.sleep(self.delay)
        item = self.responses.pop(0) if self.responses else self.default
        if isinstance(item, BaseException):
            raise item
        text = item if isinstance(item, str) else json.dumps(item)
        return Generation(text=text, token_usage=self.tokens)


class StepClock:
    """Monotonic clock advancing ``step`` seconds per reading."""

    def __init__(self, step: float = 1.5) -> None:
        self.step = step
        self.now = 0.0

    def __call__(self) -> float:
        value = self.now
        self.now += self.step
        return value


async def no_sleep(delay: float) -> None:
    return None


TEMPLATE_BODIES = {
    "inspection_analysis": (
        "Analyse the {{industry}} inspection for {{client}} ({{image_count}} images). "
        "Metadata: {{metadata}}"
    ),
    "anomaly_detection": "Find anomalies for {{industry}} in {{image_url}}. Context: {{context}}",
    "mission_readiness": (
        "Assets {{assets}} personnel {{personnel}} weather {{weather}} rules {{regulations}}"
    ),
    "daily_operational_summary": (
        "Summary for {{date}}: {{mission_data}} {{daily_logs}} cost ${{total_cost}}"
    ),
}


def inspection_output(**overrides: Any) -> dict[str, Any]:
    """A valid, internally consistent inspection analysis."""
    data = {
        "findings": [
            {
                "id": "F1",
                "type": "corrosion",
                "severity": "HIGH",
                "description": "Corrosion on the north flange",
                "location": "Tower 3",
                "confidence": 0.9,
            }
        ],
        "severity": "HIGH",
        "riskScore": 70,
        "recommendations": [
            {"priority": "HIGH", "action": "Replace flange", "rationale": "Section loss"}
        ],
    }
    data.update(overrides)
    return data


def daily_summary_output(**overrides: Any) -> dict[str, Any]:
    data = {
        "workCompleted": "Completed 4 roof inspections across two sites",
        "financialStatus": "Spent $1,200 of the $5,000 budget",
        "overrunAlerts": "No overruns recorded today",
        "recommendations": "Schedule the remaining two sites for tomorrow morning",
    }
    data.update(overrides)
    return data


@pytest.fixture
def mock_db() -> MockSupabaseClient:
    """Fresh mock database for each test."""
    return MockSupabaseClient()


@pytest.fixture
def registry(mock_db) -> PromptTemplateRegistry:
    """Registry seeded with version 1 of every category template."""
    reg = PromptTemplateRegistry(mock_db)
    for name, body in TEMPLATE_BODIES.items():
        reg.create_version(name, body)
    return reg


@pytest.fixture
def ledger(mock_db) -> DecisionLedger:
    return DecisionLedger(mock_db)


@pytest.fixture
def accountant(mock_db) -> UsageAccountant:
    return UsageAccountant(mock_db)


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider(default=inspection_output())


@pytest.fixture
def pipelines(registry, provider, ledger, accountant):
    return build_pipelines(
        registry,
        provider,
        ledger,
        accountant,
        retry_config=RetryConfig(max_retries=3),
        sleep=no_sleep,
        clock=StepClock(),
    )


@pytest.fixture
def app(mock_db, registry, ledger, accountant, provider, pipelines):
    """FastAPI test app with mocked dependencies."""
    from inspection_ai.core.ledger import get_ledger
    from inspection_ai.core.pipeline import get_pipelines
    from inspection_ai.core.provider import get_provider
    from inspection_ai.core.registry import get_registry
    from inspection_ai.core.usage import get_usage_accountant
    from inspection_ai.db.client import get_supabase_client
    from inspection_ai.main import app as _app

    _app.dependency_overrides[get_registry] = lambda: registry
    _app.dependency_overrides[get_ledger] = lambda: ledger
    _app.dependency_overrides[get_usage_accountant] = lambda: accountant
    _app.dependency_overrides[get_provider] = lambda: provider
    _app.dependency_overrides[get_pipelines] = lambda: pipelines
    _app.dependency_overrides[get_supabase_client] = lambda: mock_db

    yield _app

    _app.dependency_overrides.clear()


@pytest.fixture
def client(app) -> TestClient:
    """HTTP test client."""
    return TestClient(app)

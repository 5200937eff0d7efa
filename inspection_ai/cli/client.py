"""API client for the Inspection AI REST API."""

from __future__ import annotations

from typing import Any

import httpx


class InspectionClient:
    """HTTP client wrapping the Inspection AI endpoints."""

    def __init__(
        self,
        base_url: str = "http://localhost:8500",
        user_id: str | None = None,
        auth_token: str | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        headers = {}
        if auth_token:
            headers["Authorization"] = f"Bearer {auth_token}"
        if user_id:
            headers["X-User-Id"] = user_id
        self._client = httpx.Client(base_url=f"{self.base_url}/api/v1", headers=headers, timeout=120)

    def _handle(self, resp: httpx.Response) -> Any:
        if resp.status_code >= 400:
            try:
                body = resp.json()
                detail = body.get("error") or body.get("detail") or resp.text
            except ValueError:
                detail = resp.text
            raise RuntimeError(f"API error ({resp.status_code}): {detail}")
        return resp.json()

    # --- Analysis ---

    def analyze(self, kind: str, payload: dict) -> dict:
        return self._handle(self._client.post(f"/analyze/{kind}", json=payload))

    # --- Templates ---

    def list_templates(self) -> list[str]:
        return self._handle(self._client.get("/templates"))

    def list_template_versions(self, name: str) -> list[dict]:
        return self._handle(self._client.get(f"/templates/{name}/versions"))

    def get_active_template(self, name: str) -> dict:
        return self._handle(self._client.get(f"/templates/{name}/active"))

    def create_template_version(self, name: str, data: dict) -> dict:
        return self._handle(self._client.post(f"/templates/{name}/versions", json=data))

    def activate_template(self, name: str, version: int) -> dict:
        return self._handle(self._client.post(f"/templates/{name}/activate", json={"version": version}))

    # --- Decisions / reports ---

    def query_decisions(self, **params: Any) -> dict:
        return self._handle(self._client.get("/decisions", params=params))

    def get_decision(self, request_id: str) -> dict:
        return self._handle(self._client.get(f"/decisions/{request_id}"))

    def report_history(self, report_id: str) -> dict:
        return self._handle(self._client.get(f"/reports/{report_id}"))

    def override(self, analysis_id: str, data: dict) -> dict:
        return self._handle(self._client.post(f"/analysis/{analysis_id}/override", json=data))

    def compliance(self, start_date: str, end_date: str) -> dict:
        return self._handle(
            self._client.post(
                "/reports/compliance", json={"startDate": start_date, "endDate": end_date}
            )
        )

    # --- Usage ---

    def usage(self, user_id: str, **params: Any) -> dict:
        return self._handle(self._client.get(f"/usage/{user_id}", params=params))

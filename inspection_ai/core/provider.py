"""LLM provider client.

The pipeline depends only on the ``LLMProvider`` protocol; ``GatewayProvider``
talks to an OpenAI-compatible chat completions gateway.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Protocol

import httpx
import structlog

from inspection_ai.config import get_settings
from inspection_ai.core.errors import ProviderAuthError

logger = structlog.get_logger()


@dataclass(frozen=True)
class Generation:
    """Raw text plus token accounting from one provider call."""

    text: str
    token_usage: int = 0


class LLMProvider(Protocol):
    model_version: str

    def is_available(self) -> bool: ...

    async def generate(self, prompt: str) -> Generation: ...


class GatewayProvider:
    """Calls ``/v1/chat/completions`` on the configured gateway."""

    def __init__(
        self,
        gateway_url: str,
        api_key: str = "",
        model_version: str = "gemini-1.5-pro",
        timeout: float = 60.0,
        max_tokens: int = 4096,
    ) -> None:
        self.gateway_url = gateway_url.rstrip("/")
        self.api_key = api_key
        self.model_version = model_version
        self.timeout = timeout
        self.max_tokens = max_tokens

    def is_available(self) -> bool:
        return bool(self.gateway_url and self.api_key)

    async def generate(self, prompt: str) -> Generation:
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        async with httpx.AsyncClient(timeout=self.timeout, headers=headers) as client:
            resp = await client.post(
                f"{self.gateway_url}/v1/chat/completions",
                json={
                    "model": self.model_version,
                    "messages": [{"role": "user", "content": prompt}],
                    "max_tokens": self.max_tokens,
                    "response_format": {"type": "json_object"},
                },
            )
            if resp.status_code in (401, 403):
                raise ProviderAuthError(
                    f"Provider rejected credentials ({resp.status_code})"
                )
            resp.raise_for_status()
            data = resp.json()

        usage = data.get("usage") or {}
        text = data["choices"][0]["message"]["content"] or ""
        logger.debug("provider.generated", model=self.model_version, tokens=usage.get("total_tokens"))
        return Generation(text=text, token_usage=int(usage.get("total_tokens") or 0))


@lru_cache
def get_provider() -> GatewayProvider:
    """Get cached provider built from settings."""
    settings = get_settings()
    return GatewayProvider(
        gateway_url=settings.llm_gateway_url,
        api_key=settings.llm_api_key,
        model_version=settings.model_version,
        timeout=settings.llm_timeout_seconds,
        max_tokens=settings.llm_max_tokens,
    )

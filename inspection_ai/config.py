"""Application configuration: reads from environment variables and Docker Swarm secrets."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings


def _read_secret(name: str) -> str | None:
    """Read a Docker Swarm secret from /run/secrets/."""
    secret_path = Path(f"/run/secrets/{name}")
    if secret_path.exists():
        return secret_path.read_text().strip()
    return None


class Settings(BaseSettings):
    """Application settings with env var and secret support."""

    supabase_url: str = ""
    supabase_key: str = ""

    # LLM gateway (OpenAI-compatible chat completions)
    llm_gateway_url: str = "http://localhost:18789"
    llm_api_key: str = ""
    model_version: str = "gemini-1.5-pro"
    llm_timeout_seconds: float = 60.0
    llm_max_tokens: int = 4096

    # Retry envelope around a single provider call
    retry_max_retries: int = 3
    retry_initial_delay: float = 1.0
    retry_max_delay: float = 10.0
    retry_backoff_multiplier: float = 2.0

    # Overall deadline for one pipeline run
    request_deadline_seconds: float = 60.0

    # Per user/day/endpoint request quota, 0 disables
    daily_request_limit: int = 0

    nats_url: str = "nats://localhost:4222"
    port: int = 8500
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        # Override with Docker Swarm secrets if available
        if secret := _read_secret("supabase_url"):
            self.supabase_url = secret
        if secret := _read_secret("supabase_key"):
            self.supabase_key = secret
        if secret := _read_secret("llm_api_key"):
            self.llm_api_key = secret
        if secret := _read_secret("llm_gateway_url"):
            self.llm_gateway_url = secret


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()

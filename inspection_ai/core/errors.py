"""Typed pipeline failures.

Each error carries the HTTP status the API layer maps it to and a stable
machine-readable ``code``.
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for failures surfaced to callers of the decision pipeline."""

    status_code = 500
    code = "pipeline_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(PipelineError):
    """Operator misconfiguration, e.g. no active prompt template. Never retried."""

    code = "configuration_error"


class ProviderError(PipelineError):
    """The LLM provider could not produce a response."""

    status_code = 503
    code = "provider_unavailable"


class ProviderAuthError(ProviderError):
    """The provider rejected our credentials. Retrying cannot help."""

    code = "provider_auth_failed"


class MalformedOutputError(PipelineError):
    """The provider answered, but not with decodable JSON."""

    code = "malformed_output"

    def __init__(self, message: str, preview: str = "") -> None:
        super().__init__(message)
        self.preview = preview


class SchemaValidationError(PipelineError):
    """Well-formed output that violates the category's structural contract."""

    code = "schema_validation_failed"

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or []


class RateLimitedError(PipelineError):
    """The caller exhausted their request allowance and must wait."""

    status_code = 429
    code = "rate_limited"


class PipelineTimeoutError(PipelineError):
    """The overall request deadline elapsed before the pipeline finished."""

    status_code = 504
    code = "pipeline_timeout"

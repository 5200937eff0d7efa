"""Retrying call executor: bounded exponential backoff around one provider call.

The executor is a small state machine::

    ATTEMPTING -> WAITING -> ATTEMPTING -> ... -> SUCCEEDED | EXHAUSTED
    ATTEMPTING -> ABORTED              (authentication failures)

Attempt and delay counters live on the executor run, not in closures, and the
sleep coroutine is injectable so tests can drive the clock.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, TypeVar

import httpx
import structlog

from inspection_ai.config import Settings
from inspection_ai.core.errors import ProviderAuthError, ProviderError

logger = structlog.get_logger()

T = TypeVar("T")

AUTH_MARKERS = ("api key", "authentication", "unauthorized", "permission denied")


class RetryState(str, Enum):
    ATTEMPTING = "attempting"
    WAITING = "waiting"
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"
    ABORTED = "aborted"


@dataclass(frozen=True)
class RetryConfig:
    """Backoff envelope. ``max_retries`` counts attempts after the first."""

    max_retries: int = 3
    initial_delay: float = 1.0
    max_delay: float = 10.0
    backoff_multiplier: float = 2.0

    @classmethod
    def from_settings(cls, settings: Settings) -> RetryConfig:
        return cls(
            max_retries=settings.retry_max_retries,
            initial_delay=settings.retry_initial_delay,
            max_delay=settings.retry_max_delay,
            backoff_multiplier=settings.retry_backoff_multiplier,
        )


@dataclass
class RetryOutcome(Generic[T]):
    """Result of a successful execution and the path taken to reach it."""

    value: T
    attempts: int
    delays: list[float] = field(default_factory=list)


def is_auth_error(error: BaseException) -> bool:
    """True for failures that can never succeed on retry."""
    if isinstance(error, ProviderAuthError):
        return True
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code in (401, 403)
    message = str(error).lower()
    return any(marker in message for marker in AUTH_MARKERS)


class RetryingExecutor:
    """Runs one async call under the configured retry envelope."""

    def __init__(
        self,
        config: RetryConfig | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.config = config or RetryConfig()
        self._sleep = sleep

    async def execute(self, fn: Callable[[], Awaitable[T]]) -> RetryOutcome[T]:
        """Call ``fn`` until it succeeds or the envelope is exhausted.

        Raises ProviderAuthError immediately on authentication failures and
        ProviderError (chained from the last failure) on exhaustion.
        """
        state = RetryState.ATTEMPTING
        attempts = 0
        delay = self.config.initial_delay
        delays: list[float] = []
        last_error: BaseException | None = None

        while True:
            if state is RetryState.ATTEMPTING:
                attempts += 1
                try:
                    value = await fn()
                except Exception as e:
                    last_error = e
                    if is_auth_error(e):
                        state = RetryState.ABORTED
                    elif attempts > self.config.max_retries:
                        state = RetryState.EXHAUSTED
                    else:
                        state = RetryState.WAITING
                else:
                    state = RetryState.SUCCEEDED

            elif state is RetryState.WAITING:
                logger.warning(
                    "retry.waiting",
                    attempt=attempts,
                    max_retries=self.config.max_retries,
                    delay=delay,
                    error=str(last_error),
                )
                await self._sleep(delay)
                delays.append(delay)
                delay = min(delay * self.config.backoff_multiplier, self.config.max_delay)
                state = RetryState.ATTEMPTING

            elif state is RetryState.SUCCEEDED:
                if attempts > 1:
                    logger.info("retry.recovered", attempts=attempts)
                return RetryOutcome(value=value, attempts=attempts, delays=delays)

            elif state is RetryState.ABORTED:
                logger.error("retry.auth_failure", attempts=attempts, error=str(last_error))
                if isinstance(last_error, ProviderAuthError):
                    raise last_error
                raise ProviderAuthError(f"Provider authentication failed: {last_error}") from last_error

            else:  # EXHAUSTED
                logger.error("retry.exhausted", attempts=attempts, error=str(last_error))
                raise ProviderError(
                    f"Provider call failed after {attempts} attempts: {last_error}"
                ) from last_error

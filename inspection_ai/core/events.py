"""NATS event publishing for recorded AI decisions.

Downstream consumers (review queues, notifications) subscribe to
``ai.decision.<status>``. Publishing is best-effort and never blocks a response.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

import nats
import structlog

from inspection_ai.config import get_settings

logger = structlog.get_logger()


class EventPublisher:
    """Publishes decision lifecycle events to NATS."""

    def __init__(self, nats_url: str = "nats://localhost:4222") -> None:
        self.nats_url = nats_url
        self._nc = None
        self._connected = False

    @property
    def connected(self) -> bool:
        return self._connected

    async def connect(self) -> bool:
        """Connect to NATS. Returns True if successful."""
        try:
            self._nc = await nats.connect(self.nats_url)
            self._connected = True
            logger.info("events.nats_connected", url=self.nats_url)
            return True
        except Exception as e:
            logger.warning("events.nats_connect_failed", error=str(e))
            self._connected = False
            return False

    async def disconnect(self) -> None:
        """Disconnect from NATS."""
        if self._nc and self._connected:
            try:
                await self._nc.close()
            except Exception as e:
                logger.warning("events.nats_close_failed", error=str(e))
            self._connected = False

    async def publish(
        self,
        event_type: str,
        subject: str,
        data: dict[str, Any],
        correlation_id: str | None = None,
    ) -> bool:
        """Publish an event envelope. Returns False if NATS is unavailable."""
        if not self._connected or not self._nc:
            return False

        envelope = {
            "id": str(uuid4()),
            "type": event_type,
            "source": "inspection-ai",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "correlation_id": correlation_id or str(uuid4()),
            "data": data,
        }

        try:
            await self._nc.publish(subject, json.dumps(envelope, default=str).encode())
            logger.debug("events.published", subject=subject, type=event_type)
            return True
        except Exception as e:
            logger.warning("events.publish_failed", subject=subject, error=str(e))
            return False

    async def publish_decision(
        self,
        status: str,
        request_id: str,
        data: dict[str, Any],
    ) -> bool:
        """Publish ``ai.decision.<status>`` correlated by request id."""
        action = status.lower().replace("_", "-")
        return await self.publish(
            event_type=f"ai.decision.{action}",
            subject=f"ai.decision.{action}",
            data=data,
            correlation_id=request_id,
        )


_publisher: EventPublisher | None = None


def get_event_publisher() -> EventPublisher:
    """Get the global event publisher (lazy init)."""
    global _publisher
    if _publisher is None:
        _publisher = EventPublisher(get_settings().nats_url)
    return _publisher

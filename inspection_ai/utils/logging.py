"""Structured logging configuration using structlog."""

from __future__ import annotations

import logging
import sys

import structlog

SERVICE_NAME = "inspection-ai"

# Client libraries that log every request at INFO.
NOISY_LOGGERS = ("httpx", "httpcore", "nats", "hpack")


def add_service(logger, method_name: str, event_dict: dict) -> dict:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def setup_logging(level: str = "INFO", json_logs: bool | None = None) -> None:
    """Configure structured logging for the application.

    Pipeline runs bind ``request_id``, ``endpoint`` and ``user_id`` through
    ``structlog.contextvars``; ``merge_contextvars`` stamps them on every event.
    JSON output is used whenever stderr is not a terminal unless ``json_logs``
    says otherwise.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    if json_logs is None:
        json_logs = not sys.stderr.isatty()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            add_service,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info if json_logs else structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(level=log_level, stream=sys.stderr, format="%(name)s %(levelname)s %(message)s")
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

"""Prometheus metrics instrumentation for the gateway.

Provides:
- Auto-instrumentation of all HTTP endpoints via prometheus-fastapi-instrumentator
- Application counters for auth events, conversations, messages and rate limiting
"""

import logging

from fastapi import FastAPI
from prometheus_client import Counter
from prometheus_fastapi_instrumentator import Instrumentator

logger = logging.getLogger(__name__)


def setup_metrics(app: FastAPI) -> None:
    """Instrument the FastAPI app and expose ``/metrics``.

    Args:
        app: The FastAPI application instance to instrument.
    """
    instrumentator = Instrumentator(
        should_group_status_codes=True,
        should_ignore_untemplated=True,
        excluded_handlers=[
            "/health",
            "/api/auth/health",
            "/api/conversations/health",
            "/metrics",
            "/docs",
            "/redoc",
            "/openapi.json",
        ],
    )
    instrumentator.instrument(app).expose(
        app,
        endpoint="/metrics",
        include_in_schema=False,
    )
    logger.info("Prometheus metrics enabled at /metrics")


# ── Auth ───────────────────────────────────────────────────────────────
auth_events_total = Counter(
    "auth_events_total",
    "Authentication operations by outcome",
    ["event", "status"],  # event: signup | signin | signout | ...; status: success | failure
)

# ── Conversations ──────────────────────────────────────────────────────
conversations_created_total = Counter(
    "conversations_created_total",
    "Total conversations created",
)
messages_saved_total = Counter(
    "messages_saved_total",
    "Total messages appended to conversations",
)

# ── Rate limiting ──────────────────────────────────────────────────────
rate_limit_rejections_total = Counter(
    "rate_limit_rejections_total",
    "Requests rejected by the tier rate limiter",
    ["tier", "reason"],  # reason: frequency | quota
)

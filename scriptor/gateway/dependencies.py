"""Dependency wiring for the FastAPI app."""

from __future__ import annotations

import logging

from fastapi import Request

from scriptor.db.supabase_backend import SupabaseBackend
from scriptor.gateway.errors import UnexpectedError

logger = logging.getLogger(__name__)


def get_backend(request: Request) -> SupabaseBackend:
    """Return the backend adapter created at start-up (or injected by tests)."""
    backend = getattr(request.app.state, "backend", None)
    if backend is None:
        logger.error("Backend adapter is not configured; check SUPABASE_* settings")
        raise UnexpectedError("Service is not configured")
    return backend

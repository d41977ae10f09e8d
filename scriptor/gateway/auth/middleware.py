"""FastAPI authentication dependencies."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Annotated, Any

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from scriptor.db.supabase_backend import SupabaseBackend
from scriptor.gateway.dependencies import get_backend
from scriptor.gateway.errors import AuthenticationError

logger = logging.getLogger(__name__)

_bearer_scheme = HTTPBearer(auto_error=False)

_WWW_AUTHENTICATE = {"WWW-Authenticate": "Bearer"}


@dataclass
class AuthContext:
    """The authenticated caller, as attached to the request."""

    user: dict[str, Any]
    profile: dict[str, Any] | None
    token: str

    @property
    def user_id(self) -> str:
        return self.user["id"]


async def get_current_user(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer_scheme)],
    backend: Annotated[SupabaseBackend, Depends(get_backend)],
) -> AuthContext:
    """FastAPI dependency that resolves the bearer token to a user and profile.

    The user and profile are also stored on ``request.state``. A missing
    profile is tolerated (``None``); it is not created here.
    Raises 401 when the token is missing or does not verify.
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationError(
            "Please provide a valid access token",
            error="Access token required",
            headers=_WWW_AUTHENTICATE,
        )

    user = await backend.verify_token(credentials.credentials)
    if user is None:
        raise AuthenticationError(
            "The provided access token is invalid or has expired",
            error="Invalid or expired token",
            headers=_WWW_AUTHENTICATE,
        )

    lookup = await backend.get_user_profile(user["id"])
    if lookup.is_error:
        logger.warning(f"Profile lookup failed for user {user['id']}; continuing without profile")
    profile = lookup.value_or_none()

    request.state.user = user
    request.state.profile = profile
    return AuthContext(user=user, profile=profile, token=credentials.credentials)


CurrentUser = Annotated[AuthContext, Depends(get_current_user)]

"""Authentication API routes."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Annotated, Any

from fastapi import APIRouter, Depends, status

from scriptor.config.settings import get_settings
from scriptor.db.supabase_backend import SupabaseBackend, utc_now_iso
from scriptor.gateway.auth.middleware import CurrentUser
from scriptor.gateway.auth.models import (
    AuthResponse,
    MessageResponse,
    PasswordResetRequest,
    PasswordUpdateRequest,
    ProfileResponse,
    ProfileUpdateRequest,
    ProfileUpdateResponse,
    RefreshRequest,
    SessionResponse,
    SignInRequest,
    SignUpRequest,
    UserSummary,
)
from scriptor.gateway.dependencies import get_backend
from scriptor.gateway.errors import (
    ApiError,
    NotFoundError,
    UnexpectedError,
    UpstreamError,
    ValidationError,
)
from scriptor.gateway.metrics import auth_events_total

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

Backend = Annotated[SupabaseBackend, Depends(get_backend)]


def _record(event: str, ok: bool) -> None:
    auth_events_total.labels(event=event, status="success" if ok else "failure").inc()


@router.post(
    "/signup",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Sign Up",
    description="Create a user account with email and password and return its profile and session.",
)
async def signup(request: SignUpRequest, backend: Backend) -> AuthResponse:
    """Register a new user and make sure a profile row exists.

    The session is None when the project requires email confirmation.

    Raises:
        ValidationError: 400 if email or password is missing.
        UpstreamError: 400 with the provider's message if sign-up is refused.
    """
    if not request.email or not request.password:
        raise ValidationError("Email and password are required")

    try:
        user, session = await backend.sign_up(request.email, request.password, request.full_name)
        if user is None:
            raise UpstreamError("Failed to create user account", error="Signup failed")

        # The signup trigger usually creates the profile; this covers projects without it
        profile = await backend.ensure_user_profile(user)
        if profile.is_error:
            logger.warning(f"Profile could not be created for new user {user['id']}")

        _record("signup", True)
        logger.info(f"New user signed up: {user['id']}")
        return AuthResponse(
            message="User created successfully",
            user=UserSummary.from_user(user),
            profile=profile.value_or_none(),
            session=session,
        )
    except ApiError:
        _record("signup", False)
        raise
    except Exception:
        _record("signup", False)
        logger.exception("Signup error")
        raise UnexpectedError("An error occurred during signup")


@router.post(
    "/signin",
    response_model=AuthResponse,
    summary="Sign In",
    description="Authenticate with email and password.",
)
async def signin(request: SignInRequest, backend: Backend) -> AuthResponse:
    """Authenticate a user and return the session with their profile.

    Raises:
        ValidationError: 400 if email or password is missing.
        UpstreamError: 401 if the provider rejects the credentials.
    """
    if not request.email or not request.password:
        raise ValidationError("Email and password are required")

    try:
        user, session = await backend.sign_in(request.email, request.password)
        profile = await backend.get_user_profile(user["id"])

        _record("signin", True)
        logger.info(f"User signed in: {user['id']}")
        return AuthResponse(
            message="Signed in successfully",
            user=UserSummary.from_user(user),
            profile=profile.value_or_none(),
            session=session,
        )
    except UpstreamError as e:
        _record("signin", False)
        raise UpstreamError(e.message, error=e.error, status_code=status.HTTP_401_UNAUTHORIZED) from e
    except ApiError:
        _record("signin", False)
        raise
    except Exception:
        _record("signin", False)
        logger.exception("Signin error")
        raise UnexpectedError("An error occurred during signin")


@router.post(
    "/signout",
    response_model=MessageResponse,
    summary="Sign Out",
    description="Revoke the session of the presented access token.",
)
async def signout(auth: CurrentUser, backend: Backend) -> MessageResponse:
    try:
        await backend.sign_out(auth.token)
        _record("signout", True)
        logger.info(f"User signed out: {auth.user_id}")
        return MessageResponse(message="Signed out successfully")
    except ApiError:
        _record("signout", False)
        raise
    except Exception:
        _record("signout", False)
        logger.exception("Signout error")
        raise UnexpectedError("An error occurred during signout")


@router.get(
    "/profile",
    response_model=ProfileResponse,
    summary="Get Profile",
    description="Return the authenticated user and their profile.",
)
async def get_profile(auth: CurrentUser) -> ProfileResponse:
    try:
        return ProfileResponse(user=UserSummary.from_user(auth.user), profile=auth.profile)
    except Exception:
        logger.exception("Profile fetch error")
        raise UnexpectedError("An error occurred while fetching profile")


@router.put(
    "/profile",
    response_model=ProfileUpdateResponse,
    summary="Update Profile",
    description="Update display name and/or avatar URL. Omitted fields are left unchanged.",
)
async def update_profile(
    request: ProfileUpdateRequest, auth: CurrentUser, backend: Backend
) -> ProfileUpdateResponse:
    """Partially update the caller's profile.

    Raises:
        UpstreamError: 400 if the backend rejects the update.
        NotFoundError: 404 if the caller has no profile row.
    """
    try:
        updates: dict[str, Any] = request.model_dump(exclude_unset=True)
        updates["updated_at"] = utc_now_iso()

        result = await backend.update_user_profile(auth.user_id, updates)
        if result.is_error:
            raise UpstreamError(result.error or "Profile could not be updated", error="Profile update failed")
        if result.is_not_found:
            raise NotFoundError("No profile exists for this user", error="Profile not found")

        _record("profile_update", True)
        return ProfileUpdateResponse(message="Profile updated successfully", profile=result.value)
    except ApiError:
        _record("profile_update", False)
        raise
    except Exception:
        _record("profile_update", False)
        logger.exception("Profile update error")
        raise UnexpectedError("An error occurred while updating profile")


@router.post(
    "/reset-password",
    response_model=MessageResponse,
    summary="Request Password Reset",
    description="Send a password reset email that links back to the frontend.",
)
async def reset_password(request: PasswordResetRequest, backend: Backend) -> MessageResponse:
    if not request.email:
        raise ValidationError("Email is required for password reset", error="Missing email")

    try:
        await backend.send_password_reset(request.email, get_settings().password_reset_url)
        _record("password_reset", True)
        return MessageResponse(message="Password reset email sent successfully")
    except ApiError:
        _record("password_reset", False)
        raise
    except Exception:
        _record("password_reset", False)
        logger.exception("Password reset error")
        raise UnexpectedError("An error occurred during password reset")


@router.put(
    "/password",
    response_model=MessageResponse,
    summary="Update Password",
    description="Set a new password for the authenticated user.",
)
async def update_password(
    request: PasswordUpdateRequest, auth: CurrentUser, backend: Backend
) -> MessageResponse:
    if not request.new_password:
        raise ValidationError("New password is required", error="Missing password")

    try:
        await backend.update_password(auth.user_id, request.new_password)
        _record("password_update", True)
        logger.info(f"Password updated for user {auth.user_id}")
        return MessageResponse(message="Password updated successfully")
    except ApiError:
        _record("password_update", False)
        raise
    except Exception:
        _record("password_update", False)
        logger.exception("Password update error")
        raise UnexpectedError("An error occurred while updating password")


@router.post(
    "/refresh",
    response_model=SessionResponse,
    summary="Refresh Session",
    description="Exchange a refresh token for a new session.",
)
async def refresh(request: RefreshRequest, backend: Backend) -> SessionResponse:
    """Refresh a session.

    Raises:
        ValidationError: 400 if the refresh token is missing.
        UpstreamError: 401 if the provider rejects the refresh token.
    """
    if not request.refresh_token:
        raise ValidationError("Refresh token is required", error="Missing refresh token")

    try:
        session = await backend.refresh_session(request.refresh_token)
        _record("refresh", True)
        return SessionResponse(message="Session refreshed successfully", session=session)
    except UpstreamError as e:
        _record("refresh", False)
        raise UpstreamError(e.message, error=e.error, status_code=status.HTTP_401_UNAUTHORIZED) from e
    except ApiError:
        _record("refresh", False)
        raise
    except Exception:
        _record("refresh", False)
        logger.exception("Token refresh error")
        raise UnexpectedError("An error occurred during token refresh")


@router.get("/health", summary="Auth Service Health")
async def health() -> dict[str, Any]:
    """Static status plus whether the Supabase settings are present. No auth."""
    return {
        "status": "OK",
        "service": "Authentication API",
        "supabase_configured": get_settings().supabase_configured,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

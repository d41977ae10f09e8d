"""Pydantic schemas for the auth API.

Request fields are optional at the schema level: missing required fields are
reported by the handlers as 400 with the standard error envelope rather than
as schema errors. Field names follow the web client's camelCase.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class SignUpRequest(CamelModel):
    """Request body for POST /signup."""

    email: str | None = None
    password: str | None = None
    full_name: str | None = Field(default=None, alias="fullName")


class SignInRequest(CamelModel):
    email: str | None = None
    password: str | None = None


class ProfileUpdateRequest(CamelModel):
    """Partial profile update. Only fields present in the body are written."""

    full_name: str | None = Field(default=None, alias="fullName")
    avatar_url: str | None = Field(default=None, alias="avatarUrl")


class PasswordResetRequest(CamelModel):
    email: str | None = None


class PasswordUpdateRequest(CamelModel):
    new_password: str | None = Field(default=None, alias="newPassword")


class RefreshRequest(CamelModel):
    refresh_token: str | None = Field(default=None, alias="refreshToken")


class UserSummary(CamelModel):
    """Public user information returned in API responses."""

    id: str
    email: str | None = None
    email_confirmed: bool = Field(default=False, serialization_alias="emailConfirmed")

    @classmethod
    def from_user(cls, user: dict[str, Any]) -> UserSummary:
        return cls(
            id=user["id"],
            email=user.get("email"),
            email_confirmed=user.get("email_confirmed_at") is not None,
        )


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class SessionResponse(MessageResponse):
    session: dict[str, Any] | None = None


class ProfileResponse(BaseModel):
    success: bool = True
    user: UserSummary
    profile: dict[str, Any] | None = None


class ProfileUpdateResponse(MessageResponse):
    profile: dict[str, Any] | None = None


class AuthResponse(SessionResponse):
    """Response for signup and signin."""

    user: UserSummary
    profile: dict[str, Any] | None = None

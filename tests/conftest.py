"""Shared test fixtures for the test suite."""

from __future__ import annotations

import itertools
import os
import uuid
from collections.abc import AsyncGenerator, Generator
from datetime import datetime, timedelta, timezone
from typing import Any
from unittest.mock import patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from scriptor.config.settings import reset_settings
from scriptor.db.results import Lookup
from scriptor.db.supabase_backend import DEFAULT_CONVERSATION_TITLE, default_full_name, within_quota
from scriptor.gateway.errors import UpstreamError
from scriptor.gateway.redis_connection import reset_redis_connection

TEST_ENV = {
    "SUPABASE_URL": "https://project.supabase.co",
    "SUPABASE_ANON_KEY": "anon-key",
    "SUPABASE_SERVICE_ROLE_KEY": "service-role-key",
    "FRONTEND_URL": "https://app.example.com",
}

_EPOCH = datetime(2025, 1, 1, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def gateway_env() -> Generator[None, None, None]:
    """Deterministic settings for every test; no Redis so rate limiting fails open."""
    with patch.dict(os.environ, TEST_ENV):
        os.environ.pop("REDIS_URL", None)
        reset_settings()
        reset_redis_connection()
        yield
    reset_settings()
    reset_redis_connection()


class FakeBackend:
    """In-memory stand-in for ``SupabaseBackend``.

    Mirrors the adapter's contract: data helpers return ``Lookup`` results,
    auth flows raise ``UpstreamError``. Names in ``fail`` make the matching
    helper report a backend error. Every call is recorded in ``calls``.
    """

    def __init__(self) -> None:
        self.accounts: dict[str, dict[str, Any]] = {}  # email -> {"user", "password"}
        self.access_tokens: dict[str, str] = {}
        self.refresh_tokens: dict[str, str] = {}
        self.profiles: dict[str, dict[str, Any]] = {}
        self.conversations: dict[str, dict[str, Any]] = {}
        self.messages: list[dict[str, Any]] = []
        self.usage: list[dict[str, Any]] = []
        self.password_resets: list[tuple[str, str]] = []
        self.calls: list[str] = []
        self.fail: set[str] = set()
        self.trigger_creates_profile = False
        self._ticks = itertools.count(1)

    # ── helpers for tests ────────────────────────────────────────────────

    def _now(self) -> str:
        return (_EPOCH + timedelta(seconds=next(self._ticks))).isoformat()

    def _issue_session(self, user: dict[str, Any]) -> dict[str, Any]:
        access, refresh = uuid.uuid4().hex, uuid.uuid4().hex
        self.access_tokens[access] = user["id"]
        self.refresh_tokens[refresh] = user["id"]
        return {
            "access_token": access,
            "refresh_token": refresh,
            "token_type": "bearer",
            "expires_in": 3600,
            "user": user,
        }

    def _user(self, user_id: str) -> dict[str, Any]:
        return next(a["user"] for a in self.accounts.values() if a["user"]["id"] == user_id)

    def _record(self, name: str) -> bool:
        self.calls.append(name)
        return name in self.fail

    def add_user(
        self,
        email: str = "writer@example.com",
        password: str = "secret-pass",
        *,
        full_name: str | None = "Writer",
        with_profile: bool = True,
        **profile_fields: Any,
    ) -> tuple[dict[str, Any], str]:
        """Create a confirmed user directly; returns (user, access_token)."""
        user = {
            "id": str(uuid.uuid4()),
            "email": email,
            "email_confirmed_at": self._now(),
            "user_metadata": {"full_name": full_name} if full_name else {},
        }
        self.accounts[email] = {"user": user, "password": password}
        if with_profile:
            self._insert_profile(user, **profile_fields)
        session = self._issue_session(user)
        return user, session["access_token"]

    def _insert_profile(self, user: dict[str, Any], **overrides: Any) -> dict[str, Any]:
        now = self._now()
        profile = {
            "id": user["id"],
            "email": user["email"],
            "full_name": default_full_name(user),
            "avatar_url": None,
            "subscription_tier": "free",
            "api_usage_count": 0,
            "api_usage_limit": 100,
            "created_at": now,
            "updated_at": now,
        }
        profile.update(overrides)
        self.profiles[user["id"]] = profile
        return profile

    # ── auth provider ────────────────────────────────────────────────────

    async def verify_token(self, token: str) -> dict[str, Any] | None:
        self.calls.append("verify_token")
        user_id = self.access_tokens.get(token)
        return self._user(user_id) if user_id else None

    async def sign_up(self, email: str, password: str, full_name: str | None = None):
        self.calls.append("sign_up")
        if email in self.accounts:
            raise UpstreamError("User already registered", error="Signup failed")
        user = {
            "id": str(uuid.uuid4()),
            "email": email,
            "email_confirmed_at": None,
            "user_metadata": {"full_name": full_name or email.split("@")[0]},
        }
        self.accounts[email] = {"user": user, "password": password}
        if self.trigger_creates_profile:
            self._insert_profile(user)
        return user, self._issue_session(user)

    async def sign_in(self, email: str, password: str):
        self.calls.append("sign_in")
        account = self.accounts.get(email)
        if account is None or account["password"] != password:
            raise UpstreamError("Invalid login credentials", error="Authentication failed")
        return account["user"], self._issue_session(account["user"])

    async def sign_out(self, access_token: str) -> None:
        self.calls.append("sign_out")
        if self.access_tokens.pop(access_token, None) is None:
            raise UpstreamError("Session not found", error="Signout failed")

    async def send_password_reset(self, email: str, redirect_to: str) -> None:
        self.calls.append("send_password_reset")
        self.password_resets.append((email, redirect_to))

    async def update_password(self, user_id: str, new_password: str) -> None:
        self.calls.append("update_password")
        if len(new_password) < 6:
            raise UpstreamError("Password should be at least 6 characters", error="Password update failed")
        self._user_account(user_id)["password"] = new_password

    def _user_account(self, user_id: str) -> dict[str, Any]:
        return next(a for a in self.accounts.values() if a["user"]["id"] == user_id)

    async def refresh_session(self, refresh_token: str) -> dict[str, Any]:
        self.calls.append("refresh_session")
        user_id = self.refresh_tokens.pop(refresh_token, None)
        if user_id is None:
            raise UpstreamError("Invalid Refresh Token: Refresh Token Not Found", error="Token refresh failed")
        return self._issue_session(self._user(user_id))

    # ── profiles ─────────────────────────────────────────────────────────

    async def get_user_profile(self, user_id: str) -> Lookup[dict[str, Any]]:
        if self._record("get_user_profile"):
            return Lookup.failed("connection refused")
        profile = self.profiles.get(user_id)
        return Lookup.found(dict(profile)) if profile else Lookup.not_found()

    async def create_user_profile(self, user: dict[str, Any]) -> Lookup[dict[str, Any]]:
        if self._record("create_user_profile"):
            return Lookup.failed("insert failed")
        if user["id"] in self.profiles:
            return Lookup.failed('duplicate key value violates unique constraint "user_profiles_pkey"')
        return Lookup.found(dict(self._insert_profile(user)))

    async def ensure_user_profile(self, user: dict[str, Any]) -> Lookup[dict[str, Any]]:
        existing = await self.get_user_profile(user["id"])
        if not existing.is_not_found:
            return existing
        return await self.create_user_profile(user)

    async def update_user_profile(self, user_id: str, updates: dict[str, Any]) -> Lookup[dict[str, Any]]:
        if self._record("update_user_profile"):
            return Lookup.failed('column "bogus" does not exist')
        profile = self.profiles.get(user_id)
        if profile is None:
            return Lookup.not_found()
        profile.update(updates)
        return Lookup.found(dict(profile))

    async def update_api_usage(self, user_id: str, tokens_used: int = 1, cost_cents: int = 0, endpoint: str = "") -> bool:
        if self._record("update_api_usage"):
            return False
        self.usage.append({"user_id": user_id, "tokens_used": tokens_used, "cost_cents": cost_cents})
        self.profiles[user_id]["api_usage_count"] += tokens_used
        return True

    async def check_api_quota(self, user_id: str) -> bool:
        profile = await self.get_user_profile(user_id)
        return profile.is_found and within_quota(profile.value)

    # ── conversations ────────────────────────────────────────────────────

    async def create_conversation(self, user_id: str, title: str = DEFAULT_CONVERSATION_TITLE, thread_id: str | None = None):
        if self._record("create_conversation"):
            return Lookup.failed("insert failed")
        now = self._now()
        conversation = {
            "id": str(uuid.uuid4()),
            "user_id": user_id,
            "title": title,
            "thread_id": thread_id,
            "is_archived": False,
            "created_at": now,
            "updated_at": now,
        }
        self.conversations[conversation["id"]] = conversation
        return Lookup.found(dict(conversation))

    async def get_conversation(self, conversation_id: str, user_id: str):
        if self._record("get_conversation"):
            return Lookup.failed("connection reset")
        conversation = self.conversations.get(conversation_id)
        if conversation is None or conversation["user_id"] != user_id:
            return Lookup.not_found()
        return Lookup.found(dict(conversation))

    async def get_user_conversations(self, user_id: str):
        if self._record("get_user_conversations"):
            return Lookup.failed("connection reset")
        rows = [c for c in self.conversations.values() if c["user_id"] == user_id and not c["is_archived"]]
        rows.sort(key=lambda c: c["updated_at"], reverse=True)
        return Lookup.found([dict(c) for c in rows])

    async def update_conversation(self, conversation_id: str, user_id: str, updates: dict[str, Any]):
        if self._record("update_conversation"):
            return Lookup.failed("connection reset")
        conversation = self.conversations.get(conversation_id)
        if conversation is None or conversation["user_id"] != user_id:
            return Lookup.not_found()
        conversation.update(updates)
        conversation["updated_at"] = self._now()
        return Lookup.found(dict(conversation))

    # ── messages ─────────────────────────────────────────────────────────

    async def save_message(self, conversation_id: str, user_id: str, role: str, content: str, metadata=None):
        if self._record("save_message"):
            return Lookup.failed("insert failed")
        message = {
            "id": str(uuid.uuid4()),
            "conversation_id": conversation_id,
            "user_id": user_id,
            "role": role,
            "content": content,
            "metadata": metadata or {},
            "created_at": self._now(),
        }
        self.messages.append(message)
        self.conversations[conversation_id]["updated_at"] = message["created_at"]
        return Lookup.found(dict(message))

    async def get_conversation_messages(self, conversation_id: str, user_id: str):
        if self._record("get_conversation_messages"):
            return Lookup.failed("connection reset")
        rows = [m for m in self.messages if m["conversation_id"] == conversation_id and m["user_id"] == user_id]
        rows.sort(key=lambda m: m["created_at"])
        return Lookup.found([dict(m) for m in rows])


@pytest.fixture()
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture()
def app(backend: FakeBackend):
    from scriptor.gateway.app import create_app

    return create_app(backend=backend)


@pytest_asyncio.fixture()
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the test app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture()
def user_and_token(backend: FakeBackend) -> tuple[dict[str, Any], str]:
    return backend.add_user()


@pytest.fixture()
def auth_headers(user_and_token) -> dict[str, str]:
    return {"Authorization": f"Bearer {user_and_token[1]}"}

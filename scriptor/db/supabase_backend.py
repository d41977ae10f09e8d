"""Supabase adapter for authentication and conversation storage.

Wraps two long-lived async client handles and one short-lived kind:

- ``client``: built with the anon key. Used for stateless auth calls
  (token verification, password reset emails).
- ``admin``: built with the service-role key. Used for table access, where
  ownership is enforced by filtering every query on the owner id, and for
  per-user auth operations (sign-out, password update).
- session auth clients: a fresh anon-key GoTrue client per sign-up, sign-in
  or refresh, closed right after. A session obtained for one user never
  lands on a handle that serves other requests.

Data helpers never raise: they return a ``Lookup`` and log the failure.
Auth-provider flows raise ``UpstreamError`` with the provider's message.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from supabase import AsyncClient, AsyncClientOptions, AuthError, acreate_client
from supabase_auth import AsyncGoTrueClient

from scriptor.config.settings import Settings
from scriptor.db.results import Lookup
from scriptor.gateway.errors import UpstreamError

logger = logging.getLogger(__name__)

PROFILES_TABLE = "user_profiles"
CONVERSATIONS_TABLE = "conversations"
MESSAGES_TABLE = "messages"
USAGE_TABLE = "api_usage"

DEFAULT_CONVERSATION_TITLE = "New Conversation"
DEFAULT_TIER = "free"
DEFAULT_USAGE_LIMIT = 100
DEFAULT_USAGE_ENDPOINT = "/api/chat/completion"


def _dump(model: Any) -> dict[str, Any] | None:
    """Convert a supabase-auth pydantic model (User, Session) to plain JSON data."""
    if model is None:
        return None
    if isinstance(model, dict):
        return model
    return model.model_dump(mode="json")


def default_full_name(user: dict[str, Any]) -> str:
    metadata = user.get("user_metadata") or {}
    return metadata.get("full_name") or (user.get("email") or "").split("@")[0]


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


SessionAuthFactory = Callable[[], AsyncGoTrueClient]


def session_auth_factory(client: AsyncClient) -> SessionAuthFactory:
    """Build single-use GoTrue clients with the same URL and anon key as ``client``."""
    url = str(client.auth_url)
    key = client.supabase_key

    def build() -> AsyncGoTrueClient:
        return AsyncGoTrueClient(
            url=url,
            headers={"apiKey": key, "Authorization": f"Bearer {key}"},
            auto_refresh_token=False,
            persist_session=False,
        )

    return build


class SupabaseBackend:
    """Typed helpers over the Supabase auth and PostgREST clients."""

    def __init__(
        self,
        client: AsyncClient,
        admin: AsyncClient | None = None,
        session_auth: SessionAuthFactory | None = None,
    ) -> None:
        self.client = client
        self.admin = admin if admin is not None else client
        self._session_auth_factory = session_auth

    def _session_auth(self) -> AsyncGoTrueClient:
        """A fresh auth client for one session-creating call. Use with ``async with``."""
        if self._session_auth_factory is None:
            self._session_auth_factory = session_auth_factory(self.client)
        return self._session_auth_factory()

    @classmethod
    async def connect(cls, settings: Settings) -> SupabaseBackend:
        """Build both client handles from settings.

        Sessions are never persisted or refreshed inside these handles;
        session-creating flows get their own short-lived auth client.
        """
        options = AsyncClientOptions(auto_refresh_token=False, persist_session=False)
        client = await acreate_client(settings.supabase_url, settings.supabase_anon_key, options=options)
        admin = None
        if settings.admin_configured:
            admin = await acreate_client(
                settings.supabase_url,
                settings.supabase_service_role_key,
                options=AsyncClientOptions(auto_refresh_token=False, persist_session=False),
            )
        else:
            logger.warning("SUPABASE_SERVICE_ROLE_KEY not set; table access will go through the anon client")
        logger.info(f"Supabase clients created for {settings.supabase_url}")
        return cls(client, admin, session_auth_factory(client))

    # ── internal helpers ─────────────────────────────────────────────────

    async def _single(self, query: Any, action: str) -> Lookup[dict[str, Any]]:
        try:
            result = await query.execute()
        except Exception as e:
            logger.error(f"Error {action}: {e}")
            return Lookup.failed(str(e))
        if result.data:
            return Lookup.found(result.data[0])
        return Lookup.not_found()

    async def _many(self, query: Any, action: str) -> Lookup[list[dict[str, Any]]]:
        try:
            result = await query.execute()
        except Exception as e:
            logger.error(f"Error {action}: {e}")
            return Lookup.failed(str(e))
        return Lookup.found(list(result.data or []))

    # ── Auth provider ────────────────────────────────────────────────────

    async def verify_token(self, token: str) -> dict[str, Any] | None:
        """Resolve an access token to its user, or None if it does not verify."""
        try:
            response = await self.client.auth.get_user(token)
        except Exception as e:
            logger.warning(f"Token verification error: {e}")
            return None
        if response is None or response.user is None:
            return None
        return _dump(response.user)

    async def sign_up(
        self, email: str, password: str, full_name: str | None = None
    ) -> tuple[dict[str, Any] | None, dict[str, Any] | None]:
        """Register a user. Returns ``(user, session)``; session is None until email is confirmed."""
        try:
            async with self._session_auth() as auth:
                response = await auth.sign_up(
                    {
                        "email": email,
                        "password": password,
                        "options": {"data": {"full_name": full_name or email.split("@")[0]}},
                    }
                )
        except AuthError as e:
            raise UpstreamError(e.message, error="Signup failed") from e
        return _dump(response.user), _dump(response.session)

    async def sign_in(self, email: str, password: str) -> tuple[dict[str, Any], dict[str, Any] | None]:
        try:
            async with self._session_auth() as auth:
                response = await auth.sign_in_with_password({"email": email, "password": password})
        except AuthError as e:
            raise UpstreamError(e.message, error="Authentication failed") from e
        if response.user is None:
            raise UpstreamError("Invalid login credentials", error="Authentication failed")
        return _dump(response.user), _dump(response.session)

    async def sign_out(self, access_token: str) -> None:
        """Revoke the session the access token belongs to."""
        try:
            await self.admin.auth.admin.sign_out(access_token)
        except AuthError as e:
            raise UpstreamError(e.message, error="Signout failed") from e

    async def send_password_reset(self, email: str, redirect_to: str) -> None:
        try:
            await self.client.auth.reset_password_for_email(email, {"redirect_to": redirect_to})
        except AuthError as e:
            raise UpstreamError(e.message, error="Password reset failed") from e

    async def update_password(self, user_id: str, new_password: str) -> None:
        try:
            await self.admin.auth.admin.update_user_by_id(user_id, {"password": new_password})
        except AuthError as e:
            raise UpstreamError(e.message, error="Password update failed") from e

    async def refresh_session(self, refresh_token: str) -> dict[str, Any]:
        try:
            async with self._session_auth() as auth:
                response = await auth.refresh_session(refresh_token)
        except AuthError as e:
            raise UpstreamError(e.message, error="Token refresh failed") from e
        if response.session is None:
            raise UpstreamError("Session could not be refreshed", error="Token refresh failed")
        return _dump(response.session)

    # ── Profiles ─────────────────────────────────────────────────────────

    async def get_user_profile(self, user_id: str) -> Lookup[dict[str, Any]]:
        query = self.admin.table(PROFILES_TABLE).select("*").eq("id", user_id).limit(1)
        return await self._single(query, f"getting profile for user {user_id}")

    async def create_user_profile(self, user: dict[str, Any]) -> Lookup[dict[str, Any]]:
        row = {
            "id": user["id"],
            "email": user.get("email"),
            "full_name": default_full_name(user),
            "subscription_tier": DEFAULT_TIER,
            "api_usage_count": 0,
            "api_usage_limit": DEFAULT_USAGE_LIMIT,
        }
        query = self.admin.table(PROFILES_TABLE).insert(row)
        return await self._single(query, f"creating profile for user {user['id']}")

    async def ensure_user_profile(self, user: dict[str, Any]) -> Lookup[dict[str, Any]]:
        """Fetch the profile, creating it if missing.

        The signup trigger may insert the same row concurrently, so a failed
        insert is followed by one more read before giving up.
        """
        existing = await self.get_user_profile(user["id"])
        if not existing.is_not_found:
            return existing

        created = await self.create_user_profile(user)
        if not created.is_error:
            return created

        retry = await self.get_user_profile(user["id"])
        return retry if retry.is_found else created

    async def update_user_profile(self, user_id: str, updates: dict[str, Any]) -> Lookup[dict[str, Any]]:
        query = self.admin.table(PROFILES_TABLE).update(updates).eq("id", user_id)
        return await self._single(query, f"updating profile for user {user_id}")

    # ── Usage and quota ──────────────────────────────────────────────────

    async def update_api_usage(
        self,
        user_id: str,
        tokens_used: int = 1,
        cost_cents: int = 0,
        endpoint: str = DEFAULT_USAGE_ENDPOINT,
    ) -> bool:
        """Append a usage record and bump the profile's usage counter."""
        try:
            await (
                self.admin.table(USAGE_TABLE)
                .insert(
                    {
                        "user_id": user_id,
                        "endpoint": endpoint,
                        "tokens_used": tokens_used,
                        "cost_cents": cost_cents,
                    }
                )
                .execute()
            )
            await self.admin.rpc(
                "increment_api_usage",
                {"p_user_id": user_id, "p_amount": tokens_used},
            ).execute()
        except Exception as e:
            logger.error(f"Error updating API usage for user {user_id}: {e}")
            return False
        return True

    async def check_api_quota(self, user_id: str) -> bool:
        """True iff the user's usage count is below their limit."""
        profile = await self.get_user_profile(user_id)
        if not profile.is_found:
            return False
        return within_quota(profile.value)

    # ── Conversations ────────────────────────────────────────────────────

    async def create_conversation(
        self,
        user_id: str,
        title: str = DEFAULT_CONVERSATION_TITLE,
        thread_id: str | None = None,
    ) -> Lookup[dict[str, Any]]:
        query = self.admin.table(CONVERSATIONS_TABLE).insert(
            {"user_id": user_id, "title": title, "thread_id": thread_id}
        )
        return await self._single(query, f"creating conversation for user {user_id}")

    async def get_conversation(self, conversation_id: str, user_id: str) -> Lookup[dict[str, Any]]:
        query = (
            self.admin.table(CONVERSATIONS_TABLE)
            .select("*")
            .eq("id", conversation_id)
            .eq("user_id", user_id)
            .limit(1)
        )
        return await self._single(query, f"getting conversation {conversation_id}")

    async def get_user_conversations(self, user_id: str) -> Lookup[list[dict[str, Any]]]:
        query = (
            self.admin.table(CONVERSATIONS_TABLE)
            .select("*")
            .eq("user_id", user_id)
            .eq("is_archived", False)
            .order("updated_at", desc=True)
        )
        return await self._many(query, f"listing conversations for user {user_id}")

    async def update_conversation(
        self, conversation_id: str, user_id: str, updates: dict[str, Any]
    ) -> Lookup[dict[str, Any]]:
        """Apply ``updates`` only if the row is owned by ``user_id``, in one statement."""
        query = (
            self.admin.table(CONVERSATIONS_TABLE)
            .update(updates)
            .eq("id", conversation_id)
            .eq("user_id", user_id)
        )
        return await self._single(query, f"updating conversation {conversation_id}")

    # ── Messages ─────────────────────────────────────────────────────────

    async def save_message(
        self,
        conversation_id: str,
        user_id: str,
        role: str,
        content: str,
        metadata: dict[str, Any] | None = None,
    ) -> Lookup[dict[str, Any]]:
        query = self.admin.table(MESSAGES_TABLE).insert(
            {
                "conversation_id": conversation_id,
                "user_id": user_id,
                "role": role,
                "content": content,
                "metadata": metadata or {},
            }
        )
        return await self._single(query, f"saving message to conversation {conversation_id}")

    async def get_conversation_messages(self, conversation_id: str, user_id: str) -> Lookup[list[dict[str, Any]]]:
        query = (
            self.admin.table(MESSAGES_TABLE)
            .select("*")
            .eq("conversation_id", conversation_id)
            .eq("user_id", user_id)
            .order("created_at")
        )
        return await self._many(query, f"getting messages for conversation {conversation_id}")


def within_quota(profile: dict[str, Any]) -> bool:
    return (profile.get("api_usage_count") or 0) < (profile.get("api_usage_limit") or 0)

"""Conversation router.

User-scoped conversation and message storage. Every item endpoint looks the
conversation up by id AND owner, so a conversation that belongs to someone
else is indistinguishable from one that does not exist (404).
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Annotated, Any

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, Field, field_validator

from scriptor.db.results import Lookup
from scriptor.db.supabase_backend import DEFAULT_CONVERSATION_TITLE, SupabaseBackend
from scriptor.gateway.auth.middleware import CurrentUser
from scriptor.gateway.dependencies import get_backend
from scriptor.gateway.errors import ApiError, NotFoundError, UnexpectedError, ValidationError
from scriptor.gateway.metrics import conversations_created_total, messages_saved_total
from scriptor.gateway.rate_limiter import RateLimitedUser

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/conversations", tags=["conversations"])

Backend = Annotated[SupabaseBackend, Depends(get_backend)]

NOT_FOUND_MESSAGE = "The requested conversation does not exist or you do not have access to it"


# ── Pydantic Models ──────────────────────────────────────────────────────────


class ConversationCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str | None = None
    thread_id: str | None = Field(default=None, alias="threadId")


class ConversationUpdateRequest(BaseModel):
    """Fields to change. Omitted fields are left as they are."""

    model_config = ConfigDict(populate_by_name=True)

    title: str | None = None
    is_archived: bool | None = Field(default=None, alias="isArchived")

    @field_validator("title", "is_archived")
    @classmethod
    def _not_null(cls, value: Any) -> Any:
        # Both columns are NOT NULL; an explicit null is a bad request, not a reset
        if value is None:
            raise ValueError("may be omitted but not set to null")
        return value


class MessageCreateRequest(BaseModel):
    role: str | None = None
    content: str | None = None
    metadata: dict[str, Any] | None = None


# ── Helpers ──────────────────────────────────────────────────────────────────


def _conversation_not_found() -> NotFoundError:
    return NotFoundError(NOT_FOUND_MESSAGE, error="Conversation not found")


def _conversation_id(conversation_id: str) -> str:
    """Path id in canonical UUID form. Anything else cannot name a conversation."""
    try:
        return str(uuid.UUID(conversation_id))
    except ValueError:
        raise _conversation_not_found() from None


ConversationId = Annotated[str, Depends(_conversation_id)]


def _unwrap(lookup: Lookup, failure: str) -> Any:
    """Return the looked-up value; 404 when absent, 500 when the backend failed."""
    if lookup.is_not_found:
        raise _conversation_not_found()
    if lookup.is_error:
        raise UnexpectedError(failure)
    return lookup.value


async def _owned_conversation(backend: SupabaseBackend, conversation_id: str, user_id: str) -> dict[str, Any]:
    lookup = await backend.get_conversation(conversation_id, user_id)
    return _unwrap(lookup, "An error occurred while loading the conversation")


# ── Collection Endpoints (/api/conversations) ────────────────────────────────


@router.get("")
async def list_conversations(auth: CurrentUser, backend: Backend) -> dict[str, Any]:
    """List the caller's non-archived conversations, most recently updated first."""
    try:
        lookup = await backend.get_user_conversations(auth.user_id)
        if lookup.is_error:
            raise UnexpectedError("An error occurred while fetching your conversations")
        conversations = lookup.value
        return {"success": True, "conversations": conversations, "count": len(conversations)}
    except ApiError:
        raise
    except Exception:
        logger.exception(f"Error listing conversations for user {auth.user_id}")
        raise UnexpectedError("An error occurred while fetching your conversations")


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_conversation(
    auth: RateLimitedUser, backend: Backend, request: ConversationCreateRequest | None = None
) -> dict[str, Any]:
    """Create a conversation. The body is optional; the title defaults to "New Conversation"."""
    request = request or ConversationCreateRequest()
    try:
        lookup = await backend.create_conversation(
            auth.user_id,
            request.title or DEFAULT_CONVERSATION_TITLE,
            request.thread_id,
        )
        if not lookup.is_found:
            raise UnexpectedError("An error occurred while creating the conversation")

        conversations_created_total.inc()
        logger.info(f"Created conversation {lookup.value.get('id')} for user {auth.user_id}")
        return {
            "success": True,
            "conversation": lookup.value,
            "message": "Conversation created successfully",
        }
    except ApiError:
        raise
    except Exception:
        logger.exception(f"Error creating conversation for user {auth.user_id}")
        raise UnexpectedError("An error occurred while creating the conversation")


@router.get("/health")
async def health() -> dict[str, str]:
    """Static status. Registered before ``/{conversation_id}`` so it is not shadowed."""
    return {
        "status": "OK",
        "service": "Conversations API",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


# ── Item Endpoints (/api/conversations/{conversation_id}) ────────────────────


@router.get("/{conversation_id}")
async def get_conversation(auth: CurrentUser, conversation_id: ConversationId, backend: Backend) -> dict[str, Any]:
    """Return a conversation with its messages in creation order."""
    try:
        conversation = await _owned_conversation(backend, conversation_id, auth.user_id)
        messages = _unwrap(
            await backend.get_conversation_messages(conversation_id, auth.user_id),
            "An error occurred while fetching the conversation",
        )
        return {
            "success": True,
            "conversation": conversation,
            "messages": messages,
            "count": len(messages),
        }
    except ApiError:
        raise
    except Exception:
        logger.exception(f"Error fetching conversation {conversation_id}")
        raise UnexpectedError("An error occurred while fetching the conversation")


@router.put("/{conversation_id}")
async def update_conversation(
    request: ConversationUpdateRequest,
    auth: CurrentUser,
    conversation_id: ConversationId,
    backend: Backend,
) -> dict[str, Any]:
    """Rename and/or (un)archive a conversation owned by the caller."""
    try:
        updates = request.model_dump(exclude_unset=True)
        if not updates:
            # Nothing to write; answer with the current row
            conversation = await _owned_conversation(backend, conversation_id, auth.user_id)
        else:
            conversation = _unwrap(
                await backend.update_conversation(conversation_id, auth.user_id, updates),
                "An error occurred while updating the conversation",
            )

        logger.info(f"Updated conversation {conversation_id} for user {auth.user_id}")
        return {
            "success": True,
            "conversation": conversation,
            "message": "Conversation updated successfully",
        }
    except ApiError:
        raise
    except Exception:
        logger.exception(f"Error updating conversation {conversation_id}")
        raise UnexpectedError("An error occurred while updating the conversation")


@router.delete("/{conversation_id}")
async def archive_conversation(auth: CurrentUser, conversation_id: ConversationId, backend: Backend) -> dict[str, Any]:
    """Archive the conversation. Rows are never physically deleted."""
    try:
        _unwrap(
            await backend.update_conversation(conversation_id, auth.user_id, {"is_archived": True}),
            "An error occurred while archiving the conversation",
        )
        logger.info(f"Archived conversation {conversation_id} for user {auth.user_id}")
        return {"success": True, "message": "Conversation archived successfully"}
    except ApiError:
        raise
    except Exception:
        logger.exception(f"Error archiving conversation {conversation_id}")
        raise UnexpectedError("An error occurred while archiving the conversation")


@router.post("/{conversation_id}/messages", status_code=status.HTTP_201_CREATED)
async def add_message(
    request: MessageCreateRequest,
    auth: RateLimitedUser,
    conversation_id: ConversationId,
    backend: Backend,
) -> dict[str, Any]:
    """Append a message to a conversation owned by the caller.

    Raises:
        ValidationError: 400 if role or content is missing.
        NotFoundError: 404 if the conversation is missing or not the caller's.
    """
    if not request.role or not request.content:
        raise ValidationError("Role and content are required")

    try:
        await _owned_conversation(backend, conversation_id, auth.user_id)

        lookup = await backend.save_message(
            conversation_id,
            auth.user_id,
            request.role,
            request.content,
            request.metadata or {},
        )
        if not lookup.is_found:
            raise UnexpectedError("An error occurred while saving the message")

        messages_saved_total.inc()
        return {"success": True, "message": lookup.value}
    except ApiError:
        raise
    except Exception:
        logger.exception(f"Error saving message to conversation {conversation_id}")
        raise UnexpectedError("An error occurred while saving the message")


@router.get("/{conversation_id}/messages")
async def list_messages(auth: CurrentUser, conversation_id: ConversationId, backend: Backend) -> dict[str, Any]:
    try:
        await _owned_conversation(backend, conversation_id, auth.user_id)
        messages = _unwrap(
            await backend.get_conversation_messages(conversation_id, auth.user_id),
            "An error occurred while fetching the messages",
        )
        return {"success": True, "messages": messages, "count": len(messages)}
    except ApiError:
        raise
    except Exception:
        logger.exception(f"Error fetching messages for conversation {conversation_id}")
        raise UnexpectedError("An error occurred while fetching the messages")

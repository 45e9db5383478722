"""
API Models - Pydantic models for request/response validation.

NO DICTIONARIES - All data structures are strongly typed.
"""

from enum import Enum
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field


class MessageRole(str, Enum):
    """Conversation message role."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


# ============================================================================
# Account Models
# ============================================================================


class SignUpResponse(BaseModel):
    """POST /v1/signup response."""

    user_id: UUID
    access_token: str


class LaunchResponse(BaseModel):
    """GET /v1/launch response."""

    user_id: UUID
    free_messages_left: int
    paid_messages_left: int
    is_using_paid: bool


# ============================================================================
# Chat Models
# ============================================================================


class ChatRequest(BaseModel):
    """POST /v1/chat request body."""

    chat_id: str | None = Field(None, max_length=64)
    prompt: str = Field("", max_length=20000)
    image_paths: list[str] = Field(default_factory=list, max_length=10)
    voice_paths: list[str] = Field(default_factory=list, max_length=10)


class ChatResponse(BaseModel):
    """POST /v1/chat response."""

    chat_id: UUID
    response: str


class HistoryMessage(BaseModel):
    """Client-facing history entry (no system rows, no transcriptions)."""

    role: MessageRole
    content: str
    image_paths: list[str] = Field(default_factory=list)
    voice_paths: list[str] = Field(default_factory=list)
    created_at: str


class ChatSummaryResponse(BaseModel):
    """GET /v1/chats list item."""

    id: UUID
    title: str


class ConfirmationResponse(BaseModel):
    """GET /v1/confirmation response."""

    confirmed: bool


class ErrorResponse(BaseModel):
    """Structured error body returned for every ChatGateError."""

    error_type: str
    description: str


# ============================================================================
# Billing Webhook Models
# ============================================================================


class RevenueCatEventPayload(BaseModel):
    """The `event` object of a RevenueCat webhook."""

    app_user_id: str = Field(..., min_length=1, max_length=255)
    type: str = Field("", max_length=100)


class RevenueCatWebhookRequest(BaseModel):
    """POST /v1/webhooks/revenuecat request body."""

    event: RevenueCatEventPayload


class WebhookAck(BaseModel):
    """Immediate acknowledgement returned to the billing provider."""

    status: Literal["accepted"] = "accepted"


class HealthResponse(BaseModel):
    """GET /health response."""

    status: Literal["healthy", "unhealthy"]
    database: Literal["connected", "disconnected"]
    timestamp: str

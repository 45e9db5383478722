"""
Exception Classes - Strongly typed exception hierarchy.

Every user-visible failure carries a machine-readable kind, the HTTP status
it maps to, and a human-readable message.
"""

from uuid import UUID


class ChatGateError(Exception):
    """Base exception for all chat and entitlement errors."""

    kind: str = "internal_error"
    status_code: int = 500

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class UnauthorizedError(ChatGateError):
    """Raised when the bearer credential is missing or unknown."""

    kind = "unauthorized"
    status_code = 401

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Unauthorized: {reason}")


class UserNotFoundError(ChatGateError):
    """Raised when a user has no entitlement ledger row."""

    kind = "not_found"
    status_code = 404

    def __init__(self, user_id: UUID | str) -> None:
        self.user_id = user_id
        super().__init__(f"User not found: {user_id}")


class ChatNotFoundError(ChatGateError):
    """Raised when a chat id does not exist."""

    kind = "not_found"
    status_code = 404

    def __init__(self, chat_id: UUID | str) -> None:
        self.chat_id = chat_id
        super().__init__(f"Chat not found: {chat_id}")


class ChatForbiddenError(ChatGateError):
    """Raised when a chat belongs to a different user."""

    kind = "forbidden"
    status_code = 403

    def __init__(self, chat_id: UUID | str) -> None:
        self.chat_id = chat_id
        super().__init__(f"Chat {chat_id} does not belong to the requesting user")


class MessagesExhaustedError(ChatGateError):
    """Raised when both free and paid balances are used up."""

    kind = "no_messages"
    status_code = 402

    def __init__(self, user_id: UUID | str) -> None:
        self.user_id = user_id
        super().__init__("You have used all of your available messages")


class MediaRequiresPaidError(ChatGateError):
    """Raised when images or voice are sent without a paid balance."""

    kind = "images_not_allowed_for_free"
    status_code = 402

    def __init__(self, media: str) -> None:
        self.media = media
        super().__init__(f"Sending {media} requires purchased messages")


class UpstreamResolutionError(ChatGateError):
    """Raised when a storage path cannot be resolved to a fetchable URL."""

    kind = "supabase_signed_url_error"
    status_code = 502

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Could not resolve storage object {path}: {reason}")


class TranscriptionError(ChatGateError):
    """Raised when voice input cannot be transcribed."""

    kind = "voice_transcription_error"
    status_code = 502

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Voice transcription failed: {reason}")


class ModelCallError(ChatGateError):
    """Raised when the model provider fails or returns no completion."""

    kind = "openai_error"
    status_code = 502

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Model call failed: {reason}")


class PersistenceError(ChatGateError):
    """Raised when a database operation fails unexpectedly."""

    kind = "db_error"
    status_code = 500

    def __init__(self, operation: str, reason: str) -> None:
        self.operation = operation
        self.reason = reason
        super().__init__(f"Database error during {operation}: {reason}")


class BillingProviderError(ChatGateError):
    """Raised when the billing provider cannot be queried."""

    kind = "billing_provider_error"
    status_code = 502

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Billing provider error: {reason}")

"""
Domain Models - Internal business logic models using dataclasses.

NO DICTIONARIES - All data structures are strongly typed immutable dataclasses.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from uuid import UUID

from chatgate.models.api import MessageRole


@dataclass(frozen=True)
class BalanceSnapshot:
    """Free/paid message balances read once at gate-check time."""

    free_left: int
    paid_left: int

    def __post_init__(self) -> None:
        """Validate balance constraints."""
        if self.free_left < 0:
            raise ValueError(f"Free balance cannot be negative: {self.free_left}")
        if self.paid_left < 0:
            raise ValueError(f"Paid balance cannot be negative: {self.paid_left}")

    @property
    def has_messages(self) -> bool:
        """A turn is permitted iff either balance is positive."""
        return self.free_left > 0 or self.paid_left > 0

    @property
    def uses_paid(self) -> bool:
        """Paid balance is preferred over free when both are available."""
        return self.paid_left > 0


@dataclass(frozen=True)
class LedgerData:
    """Immutable entitlement ledger row."""

    user_id: UUID
    free_messages_left: int
    paid_messages_left: int
    is_using_paid: bool

    def to_snapshot(self) -> BalanceSnapshot:
        """Convert to BalanceSnapshot."""
        return BalanceSnapshot(
            free_left=self.free_messages_left,
            paid_left=self.paid_messages_left,
        )


@dataclass(frozen=True)
class NewUser:
    """A freshly signed-up user. The plaintext token is shown once."""

    user_id: UUID
    access_token: str


@dataclass(frozen=True)
class ChatSummary:
    """Chat id and display title."""

    chat_id: UUID
    title: str
    created_at: datetime


@dataclass(frozen=True)
class MessageData:
    """Immutable persisted conversation message."""

    message_id: UUID
    chat_id: UUID
    role: MessageRole
    content: str
    image_refs: tuple[str, ...] = ()
    voice_refs: tuple[str, ...] = ()
    voice_transcription: str | None = None
    created_at: datetime | None = None


# ============================================================================
# Model Payload
# ============================================================================


class ContentKind(str, Enum):
    """Tag of a multi-modal content part."""

    TEXT = "text"
    IMAGE = "image_url"


@dataclass(frozen=True)
class ContentPart:
    """One tagged part of a model message: text, or an image URL with a fidelity hint."""

    kind: ContentKind
    text: str | None = None
    image_url: str | None = None
    detail: str = "auto"

    def __post_init__(self) -> None:
        """Validate the part matches its tag."""
        if self.kind == ContentKind.TEXT and self.text is None:
            raise ValueError("Text part requires text")
        if self.kind == ContentKind.IMAGE and not self.image_url:
            raise ValueError("Image part requires image_url")

    @classmethod
    def of_text(cls, text: str) -> "ContentPart":
        return cls(kind=ContentKind.TEXT, text=text)

    @classmethod
    def of_image(cls, url: str, detail: str = "auto") -> "ContentPart":
        return cls(kind=ContentKind.IMAGE, image_url=url, detail=detail)


@dataclass(frozen=True)
class ModelMessage:
    """A role plus its ordered content parts."""

    role: MessageRole
    parts: tuple[ContentPart, ...]


@dataclass(frozen=True)
class ModelRequest:
    """Ordered messages sent to the model capability."""

    model: str
    messages: tuple[ModelMessage, ...]


# ============================================================================
# Turn Models
# ============================================================================


@dataclass(frozen=True)
class TurnRequest:
    """One incoming client turn."""

    user_id: UUID
    prompt: str
    chat_id: UUID | None = None
    image_refs: tuple[str, ...] = ()
    voice_refs: tuple[str, ...] = ()


@dataclass(frozen=True)
class TurnResult:
    """Successful turn outcome returned to the client."""

    chat_id: UUID
    reply: str


# ============================================================================
# Billing Models
# ============================================================================


class StorageBucket(str, Enum):
    """Object storage bucket family."""

    IMAGES = "images"
    VOICES = "voices"


@dataclass(frozen=True)
class BillingEvent:
    """Inbound billing provider event. Only the subject id is trusted."""

    app_user_id: str
    event_type: str

    def __post_init__(self) -> None:
        """Validate event fields."""
        if not self.app_user_id:
            raise ValueError("app_user_id cannot be empty")


@dataclass(frozen=True)
class Purchase:
    """One non-subscription purchase line item from the billing provider."""

    product_id: str
    transaction_id: str
    purchase_date: str | None = None


@dataclass(frozen=True)
class ReconcileSummary:
    """Per-event reconciliation outcome counts."""

    credited: int = 0
    already_processed: int = 0
    unknown_product: int = 0
    failed: int = 0
    credited_transactions: tuple[str, ...] = field(default_factory=tuple)

"""
Database Models - SQLAlchemy ORM models with strict typing.

NO DICTIONARIES - All columns use Mapped[] type annotations.
"""

from datetime import UTC, datetime
from uuid import UUID, uuid4

from sqlalchemy import (
    ARRAY,
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Identity,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


class User(Base):
    """
    ORM model for users table.

    Identity plus the SHA-256 hash of the opaque bearer credential.
    """

    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    access_token_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<User(id={self.id})>"


class UserCredits(Base):
    """
    ORM model for user_credits table.

    The entitlement ledger: one row per user, the only contended mutable state.
    """

    __tablename__ = "user_credits"

    user_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )
    free_messages_left: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    paid_messages_left: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # Monotonic: set on first reconciled purchase, never reset
    is_using_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint("free_messages_left >= 0", name="ck_free_messages_non_negative"),
        CheckConstraint("paid_messages_left >= 0", name="ck_paid_messages_non_negative"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<UserCredits(user_id={self.user_id}, free={self.free_messages_left}, "
            f"paid={self.paid_messages_left})>"
        )


class Chat(Base):
    """ORM model for chats table."""

    __tablename__ = "chats"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    title: Mapped[str] = mapped_column(String(50), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (Index("idx_chats_user_created", "user_id", "created_at"),)

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<Chat(id={self.id}, user_id={self.user_id}, title={self.title!r})>"


class Message(Base):
    """
    ORM model for messages table.

    Append-only conversation log. `seq` breaks created_at ties so that
    ordering within a chat is total.
    """

    __tablename__ = "messages"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    seq: Mapped[int] = mapped_column(BigInteger, Identity(always=True), nullable=False)
    chat_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("chats.id", ondelete="CASCADE"),
        nullable=False,
    )
    role: Mapped[str] = mapped_column(String(16), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    image_paths: Mapped[list[str]] = mapped_column(ARRAY(String), nullable=False, default=list)
    voice_paths: Mapped[list[str]] = mapped_column(ARRAY(String), nullable=False, default=list)
    voice_transcription: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        CheckConstraint("role IN ('system', 'user', 'assistant')", name="ck_message_role"),
        Index("idx_messages_chat_order", "chat_id", "created_at", "seq"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<Message(id={self.id}, chat_id={self.chat_id}, role={self.role})>"


class ProcessedTransaction(Base):
    """
    ORM model for processed_transactions table.

    Idempotency barrier for purchase reconciliation: the unique
    transaction_id guarantees at most one ledger credit per transaction.
    """

    __tablename__ = "processed_transactions"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    transaction_id: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    product_id: Mapped[str] = mapped_column(String(255), nullable=False)
    credited_messages: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        CheckConstraint("credited_messages > 0", name="ck_credited_messages_positive"),
        Index("idx_processed_transactions_user", "user_id"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<ProcessedTransaction(transaction_id={self.transaction_id}, "
            f"product_id={self.product_id})>"
        )

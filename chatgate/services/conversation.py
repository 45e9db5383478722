"""
Conversation Store - Append-only ordered message log per chat.

NO DICTIONARIES - Rows are converted to immutable domain models on read.
"""

from collections.abc import Sequence
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from chatgate.db.models import Chat, Message, utc_now
from chatgate.exceptions import ChatForbiddenError, ChatNotFoundError, PersistenceError
from chatgate.models.api import MessageRole
from chatgate.models.domain import ChatSummary, MessageData
from chatgate.observability.logging import get_logger

logger = get_logger(__name__)


def derive_chat_title(prompt: str, default: str = "New Chat", max_length: int = 50) -> str:
    """Chat title from the first prompt: truncated to max_length characters, or the default."""
    title = prompt.strip()
    if not title:
        return default
    return title[:max_length]


class ConversationStore:
    """Chats and their messages. Messages are never updated or deleted."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize store with database session."""
        self.session = session

    async def create_chat(self, user_id: UUID, title: str, system_prompt: str) -> UUID:
        """
        Create a chat together with its system message.

        Both rows are committed in one transaction so that no chat ever
        exists without its leading system message.
        """
        now = utc_now()
        chat = Chat(id=uuid4(), user_id=user_id, title=title, created_at=now)
        system_message = Message(
            id=uuid4(),
            chat_id=chat.id,
            role=MessageRole.SYSTEM.value,
            content=system_prompt,
            image_paths=[],
            voice_paths=[],
            created_at=now,
        )

        try:
            self.session.add(chat)
            await self.session.flush()
            self.session.add(system_message)
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise PersistenceError("create_chat", str(e)) from e

        logger.info("chat_created", chat_id=str(chat.id), user_id=str(user_id))
        return chat.id

    async def append_message(
        self,
        chat_id: UUID,
        role: MessageRole,
        content: str,
        image_refs: Sequence[str] = (),
        voice_refs: Sequence[str] = (),
        voice_transcription: str | None = None,
    ) -> MessageData:
        """Append one message to a chat and return it as written."""
        message = Message(
            id=uuid4(),
            chat_id=chat_id,
            role=role.value,
            content=content,
            image_paths=list(image_refs),
            voice_paths=list(voice_refs),
            voice_transcription=voice_transcription or None,
            created_at=utc_now(),
        )

        try:
            self.session.add(message)
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise PersistenceError("append_message", str(e)) from e

        return self._message_to_domain(message, include_transcription=True)

    async def list_messages(self, chat_id: UUID, include_system: bool) -> list[MessageData]:
        """
        List a chat's messages oldest first.

        With include_system=False (client-facing history) the system message
        is dropped and cached voice transcriptions are withheld. With
        include_system=True (model payload) everything is returned.
        """
        stmt = select(Message).where(Message.chat_id == chat_id)
        if not include_system:
            stmt = stmt.where(Message.role != MessageRole.SYSTEM.value)
        stmt = stmt.order_by(Message.created_at.asc(), Message.seq.asc())

        try:
            result = await self.session.execute(stmt)
            messages = [
                self._message_to_domain(row, include_transcription=include_system)
                for row in result.scalars().all()
            ]
            # End the read transaction; assembly and the model call follow
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise PersistenceError("list_messages", str(e)) from e
        return messages

    async def list_chats_for_user(self, user_id: UUID) -> list[ChatSummary]:
        """List a user's chats, newest first."""
        stmt = (
            select(Chat)
            .where(Chat.user_id == user_id)
            .order_by(Chat.created_at.desc(), Chat.id.desc())
        )
        try:
            result = await self.session.execute(stmt)
            chats = [
                ChatSummary(chat_id=row.id, title=row.title, created_at=row.created_at)
                for row in result.scalars().all()
            ]
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise PersistenceError("list_chats", str(e)) from e
        return chats

    async def get_owned_chat(self, chat_id: UUID, user_id: UUID) -> ChatSummary:
        """
        Load a chat and verify the requester owns it.

        Raises:
            ChatNotFoundError: Chat does not exist
            ChatForbiddenError: Chat belongs to another user
        """
        stmt = select(Chat).where(Chat.id == chat_id)
        try:
            result = await self.session.execute(stmt)
            chat = result.scalar_one_or_none()
            # End the read transaction; voice transcription may follow
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise PersistenceError("get_chat", str(e)) from e

        if chat is None:
            raise ChatNotFoundError(chat_id)
        if chat.user_id != user_id:
            logger.warning(
                "chat_ownership_mismatch", chat_id=str(chat_id), user_id=str(user_id)
            )
            raise ChatForbiddenError(chat_id)
        return ChatSummary(chat_id=chat.id, title=chat.title, created_at=chat.created_at)

    def _message_to_domain(self, message: Message, include_transcription: bool) -> MessageData:
        """Convert ORM model to domain model."""
        return MessageData(
            message_id=message.id,
            chat_id=message.chat_id,
            role=MessageRole(message.role),
            content=message.content,
            image_refs=tuple(message.image_paths or ()),
            voice_refs=tuple(message.voice_paths or ()),
            voice_transcription=message.voice_transcription if include_transcription else None,
            created_at=message.created_at,
        )

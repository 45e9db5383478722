"""
Account Service - Sign-up, bearer credential authentication, launch snapshot.

Only the SHA-256 hash of an access token is stored; the plaintext token is
returned once at sign-up.
"""

import hashlib
import secrets
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from chatgate.db.models import User, UserCredits
from chatgate.exceptions import PersistenceError, UnauthorizedError
from chatgate.models.domain import LedgerData, NewUser
from chatgate.observability.logging import get_logger
from chatgate.observability.metrics import metrics
from chatgate.services.ledger import EntitlementLedger

logger = get_logger(__name__)


def hash_access_token(token: str) -> str:
    """Hash a bearer token for storage and lookup."""
    return hashlib.sha256(token.encode()).hexdigest()


def generate_access_token() -> str:
    """Generate an opaque, URL-safe bearer token."""
    return secrets.token_urlsafe(32)


class AccountService:
    """Users and their bearer credentials."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize account service with database session."""
        self.session = session

    async def sign_up(self, free_messages: int) -> NewUser:
        """
        Create a user with a fresh bearer token and a starting free balance.

        User and ledger rows are committed together.
        """
        token = generate_access_token()
        user = User(id=uuid4(), access_token_hash=hash_access_token(token))
        credits = UserCredits(
            user_id=user.id,
            free_messages_left=free_messages,
            paid_messages_left=0,
            is_using_paid=False,
        )

        try:
            self.session.add(user)
            await self.session.flush()
            self.session.add(credits)
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise PersistenceError("sign_up", str(e)) from e

        metrics.users_created_total.inc()
        logger.info("user_signed_up", user_id=str(user.id), free_messages=free_messages)
        return NewUser(user_id=user.id, access_token=token)

    async def authenticate(self, token: str | None) -> UUID:
        """
        Resolve a bearer token to its user id.

        Raises:
            UnauthorizedError: Token missing, blank or unknown
        """
        if token is None or not token.strip():
            raise UnauthorizedError("missing bearer token")

        stmt = select(User.id).where(User.access_token_hash == hash_access_token(token.strip()))
        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as e:
            raise PersistenceError("authenticate", str(e)) from e

        user_id = result.scalar_one_or_none()
        if user_id is None:
            raise UnauthorizedError("unknown bearer token")
        return user_id

    async def launch(self, user_id: UUID) -> LedgerData:
        """Ledger snapshot shown when the app starts."""
        return await EntitlementLedger(self.session).get_ledger(user_id)

"""
Entitlement Ledger - Free/paid message balances per user.

NO DICTIONARIES - All operations use strongly typed domain models.

Balances only move through single-row conditional UPDATE statements, so
concurrent turns for the same user can never drive a balance below zero.
"""

from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from chatgate.db.models import ProcessedTransaction, UserCredits, utc_now
from chatgate.exceptions import (
    MediaRequiresPaidError,
    MessagesExhaustedError,
    PersistenceError,
    UserNotFoundError,
)
from chatgate.models.domain import BalanceSnapshot, LedgerData
from chatgate.observability.logging import get_logger
from chatgate.observability.metrics import metrics

logger = get_logger(__name__)


class EntitlementLedger:
    """Metered-usage ledger backed by the user_credits table."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize ledger with database session."""
        self.session = session

    async def get_ledger(self, user_id: UUID) -> LedgerData:
        """
        Read the ledger row for a user.

        Raises:
            UserNotFoundError: No ledger row exists
            PersistenceError: Database failure
        """
        stmt = select(UserCredits).where(UserCredits.user_id == user_id)
        try:
            result = await self.session.execute(stmt)
            row = result.scalar_one_or_none()
            ledger = self._credits_to_domain(row) if row is not None else None
            # End the read transaction; a turn calls out to providers next
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise PersistenceError("ledger_read", str(e)) from e

        if ledger is None:
            raise UserNotFoundError(user_id)
        return ledger

    async def check_and_classify(self, user_id: UUID) -> BalanceSnapshot:
        """
        Read both balances once and decide whether a turn may proceed.

        Raises:
            UserNotFoundError: No ledger row exists
            MessagesExhaustedError: Both balances are zero
        """
        snapshot = (await self.get_ledger(user_id)).to_snapshot()
        if not snapshot.has_messages:
            raise MessagesExhaustedError(user_id)
        return snapshot

    @staticmethod
    def require_media_allowed(paid_left: int, has_images: bool, has_voice: bool) -> None:
        """
        Gate image and voice content on the paid balance alone.

        Raises:
            MediaRequiresPaidError: Media present and no paid messages left
        """
        if paid_left > 0:
            return
        if has_images:
            raise MediaRequiresPaidError("images")
        if has_voice:
            raise MediaRequiresPaidError("voice messages")

    async def debit_one_message(self, user_id: UUID, used_paid: bool) -> bool:
        """
        Take one message from the paid or free balance.

        The decrement is conditional on the balance still being positive.
        Returns False when a concurrent turn already drained it (the turn
        is not failed; the unit is simply not taken).
        """
        column = UserCredits.paid_messages_left if used_paid else UserCredits.free_messages_left
        stmt = (
            update(UserCredits)
            .where(UserCredits.user_id == user_id, column > 0)
            .values({column: column - 1, UserCredits.updated_at: utc_now()})
        )
        try:
            result = await self.session.execute(stmt)
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise PersistenceError("ledger_debit", str(e)) from e

        applied = result.rowcount == 1
        metrics.record_debit(used_paid=used_paid, applied=applied)
        if not applied:
            logger.warning(
                "debit_skipped_balance_exhausted", user_id=str(user_id), used_paid=used_paid
            )
        return applied

    async def credit_purchase(
        self,
        user_id: UUID,
        transaction_id: str,
        product_id: str,
        messages: int,
    ) -> bool:
        """
        Record a purchase transaction and credit its paid messages, exactly once.

        The processed-transaction insert and the balance increment share one
        database transaction. A transaction id that is already recorded makes
        this a no-op.

        Returns:
            True if the balance was credited, False if already processed

        Raises:
            UserNotFoundError: No ledger row exists for the user
            PersistenceError: Database failure
        """
        if messages <= 0:
            raise ValueError(f"Credited messages must be positive: {messages}")

        record = (
            pg_insert(ProcessedTransaction)
            .values(
                user_id=user_id,
                transaction_id=transaction_id,
                product_id=product_id,
                credited_messages=messages,
            )
            .on_conflict_do_nothing(index_elements=[ProcessedTransaction.transaction_id])
            .returning(ProcessedTransaction.id)
        )
        credit = (
            update(UserCredits)
            .where(UserCredits.user_id == user_id)
            .values(
                paid_messages_left=UserCredits.paid_messages_left + messages,
                is_using_paid=True,
                updated_at=utc_now(),
            )
        )

        try:
            inserted = (await self.session.execute(record)).scalar_one_or_none()
            if inserted is None:
                await self.session.rollback()
                return False

            result = await self.session.execute(credit)
            if result.rowcount != 1:
                await self.session.rollback()
                raise UserNotFoundError(user_id)

            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise PersistenceError("ledger_credit", str(e)) from e

        logger.info(
            "purchase_credited",
            user_id=str(user_id),
            transaction_id=transaction_id,
            product_id=product_id,
            messages=messages,
        )
        return True

    async def is_transaction_processed(self, transaction_id: str) -> bool:
        """Check whether a billing transaction was already credited."""
        stmt = select(ProcessedTransaction.id).where(
            ProcessedTransaction.transaction_id == transaction_id
        )
        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise PersistenceError("transaction_lookup", str(e)) from e
        return result.scalar_one_or_none() is not None

    async def is_confirmed(self, transaction_id: str, user_id: UUID) -> bool:
        """Check whether a transaction was credited to this particular user."""
        stmt = select(ProcessedTransaction.id).where(
            ProcessedTransaction.transaction_id == transaction_id,
            ProcessedTransaction.user_id == user_id,
        )
        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise PersistenceError("confirmation_lookup", str(e)) from e
        return result.scalar_one_or_none() is not None

    def _credits_to_domain(self, row: UserCredits) -> LedgerData:
        """Convert ORM model to domain model."""
        return LedgerData(
            user_id=row.user_id,
            free_messages_left=row.free_messages_left,
            paid_messages_left=row.paid_messages_left,
            is_using_paid=row.is_using_paid,
        )

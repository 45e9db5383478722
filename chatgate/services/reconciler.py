"""
Purchase Reconciler - Credits billing provider purchases exactly once.

Billing events are delivered at least once. The event payload is trusted
only for its subject id; the purchase list is re-fetched from the provider
and every line item passes through the processed-transaction barrier.
"""

from uuid import UUID

from chatgate.db.session import get_write_session
from chatgate.exceptions import ChatGateError, PersistenceError, UserNotFoundError
from chatgate.models.domain import BillingEvent, Purchase, ReconcileSummary
from chatgate.observability.logging import get_logger, log_context
from chatgate.observability.metrics import metrics
from chatgate.services.capabilities import PurchaseHistorySource
from chatgate.services.ledger import EntitlementLedger
from chatgate.services.products import get_product
from chatgate.services.provider_registry import get_revenuecat_client

logger = get_logger(__name__)


class PurchaseReconciler:
    """Applies a subject's purchase history to the entitlement ledger."""

    def __init__(self, ledger: EntitlementLedger, source: PurchaseHistorySource) -> None:
        self.ledger = ledger
        self.source = source

    async def reconcile(self, event: BillingEvent) -> ReconcileSummary:
        """
        Reconcile one billing event.

        Line items are independent: a skipped or failed item never stops the
        others. Skip reasons are logged, never surfaced.

        Raises:
            BillingProviderError: Purchase history could not be fetched
        """
        try:
            user_id = UUID(event.app_user_id)
        except ValueError:
            logger.warning(
                "reconcile_invalid_subject",
                app_user_id=event.app_user_id,
                event_type=event.event_type,
            )
            return ReconcileSummary()

        purchases = await self.source.fetch_non_subscription_purchases(event.app_user_id)

        credited: list[str] = []
        already_processed = unknown_product = failed = 0
        for purchase in purchases:
            outcome = await self._apply(user_id, purchase)
            metrics.record_purchase(outcome)
            if outcome == "credited":
                credited.append(purchase.transaction_id)
            elif outcome == "already_processed":
                already_processed += 1
            elif outcome == "unknown_product":
                unknown_product += 1
            else:
                failed += 1

        summary = ReconcileSummary(
            credited=len(credited),
            already_processed=already_processed,
            unknown_product=unknown_product,
            failed=failed,
            credited_transactions=tuple(credited),
        )
        logger.info(
            "reconcile_completed",
            user_id=str(user_id),
            event_type=event.event_type,
            purchases=len(purchases),
            credited=summary.credited,
            already_processed=summary.already_processed,
            unknown_product=summary.unknown_product,
            failed=summary.failed,
        )
        return summary

    async def _apply(self, user_id: UUID, purchase: Purchase) -> str:
        """Credit one line item; returns its outcome label."""
        try:
            if await self.ledger.is_transaction_processed(purchase.transaction_id):
                logger.debug(
                    "purchase_skipped_already_processed",
                    transaction_id=purchase.transaction_id,
                )
                return "already_processed"

            try:
                product = get_product(purchase.product_id)
            except ValueError:
                logger.warning(
                    "purchase_skipped_unknown_product",
                    user_id=str(user_id),
                    transaction_id=purchase.transaction_id,
                    product_id=purchase.product_id,
                )
                return "unknown_product"

            applied = await self.ledger.credit_purchase(
                user_id, purchase.transaction_id, purchase.product_id, product.messages
            )
        except (UserNotFoundError, PersistenceError) as e:
            logger.error(
                "purchase_credit_failed",
                user_id=str(user_id),
                transaction_id=purchase.transaction_id,
                error_type=e.kind,
                error=e.message,
            )
            return "failed"

        # A concurrent delivery of the same event may win the insert race
        return "credited" if applied else "already_processed"


async def reconcile_in_background(event: BillingEvent) -> None:
    """
    Background task entry point for billing webhooks.

    Runs after the HTTP response has been sent, with its own session.
    """
    with log_context(app_user_id=event.app_user_id, event_type=event.event_type):
        try:
            async with get_write_session() as session:
                reconciler = PurchaseReconciler(EntitlementLedger(session), get_revenuecat_client())
                await reconciler.reconcile(event)
        except ChatGateError as e:
            logger.error("reconcile_failed", error_type=e.kind, error=e.message)
            metrics.record_error(e.kind, "reconcile")

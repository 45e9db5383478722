"""
RevenueCat client - authoritative purchase history for a subscriber.

Implements the PurchaseHistorySource capability.
"""

from urllib.parse import quote

import httpx

from chatgate.exceptions import BillingProviderError
from chatgate.models.domain import Purchase
from chatgate.observability.logging import get_logger

logger = get_logger(__name__)


class RevenueCatClient:
    """RevenueCat REST API v1 client."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.revenuecat.com",
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._http_client = http_client

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Get HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    async def fetch_non_subscription_purchases(self, app_user_id: str) -> list[Purchase]:
        """
        List consumable purchases for a subscriber.

        Flattens the `subscriber.non_subscriptions` map of product id to
        purchase list into Purchase line items.
        """
        url = f"{self.base_url}/v1/subscribers/{quote(app_user_id, safe='')}"
        try:
            response = await self.http_client.get(
                url,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Accept": "application/json",
                },
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(
                "revenuecat_subscriber_fetch_failed",
                app_user_id=app_user_id,
                status=e.response.status_code,
            )
            raise BillingProviderError(f"subscriber lookup returned {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error("revenuecat_subscriber_fetch_error", app_user_id=app_user_id, error=str(e))
            raise BillingProviderError(str(e)) from e

        if not isinstance(data, dict) or not isinstance(data.get("subscriber") or {}, dict):
            logger.error("revenuecat_unexpected_body", app_user_id=app_user_id)
            raise BillingProviderError("unexpected response body")
        non_subscriptions = (data.get("subscriber") or {}).get("non_subscriptions") or {}

        purchases: list[Purchase] = []
        for product_id, items in non_subscriptions.items():
            for item in items or []:
                transaction_id = item.get("id") or item.get("store_transaction_id")
                if not transaction_id:
                    logger.warning(
                        "revenuecat_purchase_missing_transaction_id",
                        app_user_id=app_user_id,
                        product_id=product_id,
                    )
                    continue
                purchases.append(
                    Purchase(
                        product_id=product_id,
                        transaction_id=str(transaction_id),
                        purchase_date=item.get("purchase_date"),
                    )
                )

        logger.info(
            "revenuecat_purchases_fetched", app_user_id=app_user_id, count=len(purchases)
        )
        return purchases

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

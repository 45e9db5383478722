"""
Message pack product catalog.

Maps store product identifiers to the number of paid messages they grant.
"""

from dataclasses import dataclass

from chatgate.config import settings


@dataclass(frozen=True)
class MessagePack:
    """Consumable in-app product granting paid messages."""

    sku: str
    messages: int
    name: str

    def __post_init__(self) -> None:
        """Validate product configuration."""
        if self.messages <= 0:
            raise ValueError(f"Messages must be positive: {self.messages}")
        if not self.sku:
            raise ValueError("SKU required")
        if not self.name:
            raise ValueError("Name required")


# Product catalog (must match App Store / Play Console configuration).
# messages.1001 is sold as the "1000 + bonus" pack and grants 1000.
MESSAGE_PRODUCTS: dict[str, MessagePack] = {
    "messages.10": MessagePack(sku="messages.10", messages=10, name="10 Messages"),
    "messages.20": MessagePack(sku="messages.20", messages=20, name="20 Messages"),
    "messages.100": MessagePack(sku="messages.100", messages=100, name="100 Messages"),
    "messages.1001": MessagePack(sku="messages.1001", messages=1000, name="1000 Messages"),
}


def normalize_product_id(product_id: str) -> str:
    """Strip the store bundle prefix, leaving the bare SKU."""
    prefix = settings.store_product_prefix
    if prefix and product_id.startswith(prefix):
        return product_id[len(prefix) :]
    return product_id


def get_product(product_id: str) -> MessagePack:
    """
    Get product configuration by ID.

    Accepts either the bare SKU or the fully qualified store identifier.

    Args:
        product_id: Store product ID

    Returns:
        Product configuration

    Raises:
        ValueError: If product ID not found
    """
    product = MESSAGE_PRODUCTS.get(normalize_product_id(product_id))
    if not product:
        raise ValueError(f"Unknown product ID: {product_id}")
    return product

"""Cart line item entity."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from .product import Product


class CartItem(BaseModel):
    """One line of a user's cart with the product embedded.

    ``quantity`` may be missing on the wire; it is never clamped or removed
    at zero here.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    id: int
    user_id: int | None = None
    product_id: int
    quantity: int | None = None
    created_at: datetime | None = None
    product: Product

    @property
    def effective_quantity(self) -> int:
        return self.quantity or 0

    @property
    def line_total(self) -> Decimal:
        return self.product.price_value * self.effective_quantity

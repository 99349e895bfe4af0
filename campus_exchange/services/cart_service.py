"""
Per-user cart state backed by the query cache.

Cart items live in the query cache under ``("/api/cart", user_id)``; every
successful mutation invalidates that key so the next read reflects the
backend. Count and total are derived from the cached list on each access.

``add_to_cart`` and ``clear_cart`` do nothing without a signed-in user while
``update_quantity`` and ``remove_from_cart`` always send their request: they
address a cart item id, not the user.

Overlapping mutations are neither de-duplicated nor ordered. Each one
invalidates the cart and the refetch that resolves last decides the cached
list.
"""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

from pydantic import ValidationError

from campus_exchange.core.api_client import ApiClient
from campus_exchange.core.exceptions import (
    AuthorizationException,
    CampusExchangeException,
    InvalidResponseException,
    ValidationException,
)
from campus_exchange.core.mutations import Mutation, any_pending
from campus_exchange.core.query_cache import QueryCache, QueryKey
from campus_exchange.core.utils import CENTS, price_with_fee
from campus_exchange.domain.entities import CartItem
from campus_exchange.services.auth_service import AuthService

logger = logging.getLogger(__name__)

CART_PATH = "/api/cart"
PAYMENT_INTENT_PATH = "/api/create-payment-intent"


def cart_query_key(user_id: int | None) -> QueryKey:
    return (CART_PATH, user_id)


class CartService:
    """Cart line items of whoever ``auth`` says is logged in."""

    def __init__(self, api: ApiClient, query_cache: QueryCache, auth: AuthService) -> None:
        self._api = api
        self._query_cache = query_cache
        self._auth = auth
        self.is_open = False

        self._add = Mutation("add_to_cart", self._post_item, self._invalidate_cart)
        self._update = Mutation("update_quantity", self._put_quantity, self._invalidate_cart)
        self._remove = Mutation("remove_from_cart", self._delete_item, self._invalidate_cart)
        self._clear = Mutation("clear_cart", self._delete_all, self._invalidate_cart)

    # ------------------------------------------------------------------
    # Query
    # ------------------------------------------------------------------
    @property
    def user_id(self) -> int | None:
        user = self._auth.user
        return user.id if user else None

    @property
    def query_key(self) -> QueryKey:
        return cart_query_key(self.user_id)

    @property
    def enabled(self) -> bool:
        """The cart query only runs while someone is logged in."""
        return self.user_id is not None

    async def fetch_items(self) -> list[CartItem]:
        user_id = self.user_id
        if user_id is None:
            return []
        return await self._query_cache.fetch_query(
            cart_query_key(user_id), lambda: self._fetch_cart(user_id)
        )

    async def _fetch_cart(self, user_id: int) -> list[CartItem]:
        data = await self._api.get_json(CART_PATH, params={"userId": user_id})
        if data is None:
            return []
        if not isinstance(data, list):
            raise InvalidResponseException(f"{CART_PATH} did not return a list")
        try:
            return [CartItem.model_validate(item) for item in data]
        except ValidationError as exc:
            raise InvalidResponseException(f"{CART_PATH} returned malformed items") from exc

    @property
    def cart_items(self) -> list[CartItem]:
        if not self.enabled:
            return []
        return self._query_cache.get_query_data(self.query_key) or []

    @property
    def cart_count(self) -> int:
        return sum(item.effective_quantity for item in self.cart_items)

    @property
    def cart_total(self) -> Decimal:
        """Sum of price x quantity.

        Returns a ``Decimal``: compare with ``Decimal("19.98")``, not the float ``19.98``.
        """
        return sum((item.line_total for item in self.cart_items), Decimal("0"))

    @property
    def cart_total_with_fee(self) -> Decimal:
        return price_with_fee(self.cart_total)

    @property
    def is_loading(self) -> bool:
        return self.enabled and self._query_cache.is_fetching(self.query_key)

    @property
    def is_mutating(self) -> bool:
        return any_pending(self._add, self._update, self._remove, self._clear)

    # ------------------------------------------------------------------
    # Visibility
    # ------------------------------------------------------------------
    def open_cart(self) -> None:
        self.is_open = True

    def close_cart(self) -> None:
        self.is_open = False

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    async def add_to_cart(self, product_id: int, quantity: int = 1) -> Any:
        if self._auth.user is None:
            return None
        if quantity < 1:
            raise ValidationException("Quantity must be at least 1")
        return await self._add.mutate(product_id, quantity)

    async def update_quantity(self, cart_item_id: int, quantity: int) -> Any:
        if quantity < 0:
            raise ValidationException("Quantity cannot be negative")
        return await self._update.mutate(cart_item_id, quantity)

    async def remove_from_cart(self, cart_item_id: int) -> Any:
        return await self._remove.mutate(cart_item_id)

    async def clear_cart(self) -> Any:
        if self._auth.user is None:
            return None
        return await self._clear.mutate()

    async def create_payment_intent(self) -> str:
        """Start checkout for the current cart; returns the client secret."""
        if self._auth.user is None:
            raise AuthorizationException("Please sign in to proceed with checkout")
        items = await self.fetch_items()
        if not items:
            raise ValidationException("Add items to your cart before checking out")
        total = sum((item.line_total for item in items), Decimal("0"))
        body = {
            "amount": float(total.quantize(CENTS)),
            "cartItems": [
                {
                    "productId": item.product.id,
                    "quantity": item.quantity,
                    "price": item.product.price,
                }
                for item in items
            ],
        }
        data = await self._api.request("POST", PAYMENT_INTENT_PATH, body)
        if not isinstance(data, dict) or not data.get("clientSecret"):
            raise InvalidResponseException(f"{PAYMENT_INTENT_PATH} returned no client secret")
        return str(data["clientSecret"])

    async def _post_item(self, product_id: int, quantity: int) -> Any:
        user = self._auth.user
        if user is None:
            raise AuthorizationException("Please sign in to add items to your cart")
        return await self._api.request(
            "POST", CART_PATH, {"userId": user.id, "productId": product_id, "quantity": quantity}
        )

    async def _put_quantity(self, cart_item_id: int, quantity: int) -> Any:
        return await self._api.request("PUT", f"{CART_PATH}/{cart_item_id}", {"quantity": quantity})

    async def _delete_item(self, cart_item_id: int) -> Any:
        return await self._api.request("DELETE", f"{CART_PATH}/{cart_item_id}")

    async def _delete_all(self) -> Any:
        user = self._auth.user
        if user is None:
            raise AuthorizationException("Please sign in to clear your cart")
        return await self._api.request("DELETE", f"{CART_PATH}/user/{user.id}")

    async def _invalidate_cart(self, *_args: Any) -> None:
        matched = await self._query_cache.invalidate_queries(self.query_key)
        if matched or not self.enabled:
            return
        # The cart query is always active while signed in, even if never read yet.
        try:
            await self.fetch_items()
        except CampusExchangeException as exc:
            logger.warning("Cart refetch after mutation failed: %s", exc)

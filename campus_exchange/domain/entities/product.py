"""Product, store and category entities embedded in cart items."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from campus_exchange.core.utils import parse_price
from campus_exchange.domain.value_objects import ApprovalStatus

_WIRE_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class Category(BaseModel):
    model_config = _WIRE_CONFIG

    id: int
    name: str = ""
    icon: str = ""
    color: str = ""


class Store(BaseModel):
    model_config = _WIRE_CONFIG

    id: int
    user_id: int | None = None
    name: str = ""
    description: str = ""
    university: str | None = None
    campus: str | None = None
    city: str | None = None
    rating: str | None = None
    review_count: int | None = 0
    is_active: bool | None = True
    user: dict[str, Any] | None = None


class Product(BaseModel):
    """Listing snapshot; ``price`` stays decimal text exactly as sent."""

    model_config = _WIRE_CONFIG

    id: int
    store_id: int | None = None
    category_id: int | None = None
    title: str = ""
    description: str = ""
    price: str = Field("0", description="Decimal as text, e.g. '9.99'")
    original_price: str | None = None
    condition: str | None = None
    images: list[str] = Field(default_factory=list)
    special_offer: str | None = None
    is_available: bool | None = True
    approval_status: ApprovalStatus | str | None = ApprovalStatus.PENDING
    view_count: int | None = 0
    created_at: datetime | None = None
    store: Store | None = None
    category: Category | None = None

    @field_validator("price", "original_price", mode="before")
    @classmethod
    def coerce_price_text(cls, v: Any) -> Any:
        """Backends may send numbers; keep the text form."""
        if v is None or isinstance(v, str):
            return v
        return str(v)

    @property
    def price_value(self) -> Decimal:
        return parse_price(self.price)

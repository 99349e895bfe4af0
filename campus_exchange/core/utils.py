"""Price and contact helpers shared by services."""
from __future__ import annotations

import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

PLATFORM_FEE_RATE = Decimal("0.001")
CENTS = Decimal("0.01")

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
PHONE_PATTERN = re.compile(r"^\+?\d{10,15}$")


def parse_price(value: Any) -> Decimal:
    """Parse a decimal-as-text price; anything unparseable counts as zero."""
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    try:
        price = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return Decimal("0")
    if not price.is_finite():
        return Decimal("0")
    return price


def price_with_fee(price: Any) -> Decimal:
    """Price plus the 0.1% platform fee."""
    return parse_price(price) * (Decimal("1") + PLATFORM_FEE_RATE)


def format_price(price: Any) -> str:
    return str(parse_price(price).quantize(CENTS, rounding=ROUND_HALF_UP))


def format_price_with_fee(price: Any) -> str:
    return format_price(price_with_fee(price))


def clean_phone(phone: str | None) -> str:
    """Strip spaces and common separators from a phone number."""
    if not phone:
        return ""
    return re.sub(r"[\s\-()]", "", phone.strip())


def is_email(value: str | None) -> bool:
    return bool(value and EMAIL_PATTERN.match(value.strip()))


def is_phone(value: str | None) -> bool:
    return bool(PHONE_PATTERN.match(clean_phone(value)))

"""Value Objects for domain model."""
from __future__ import annotations

from enum import Enum


class UserRole(str, Enum):
    """User roles derived from account flags."""

    BUYER = "buyer"
    MERCHANT = "merchant"
    ADMIN = "admin"


class ApprovalStatus(str, Enum):
    """Product moderation status."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class OtpChannel(str, Enum):
    """Out-of-band channel an OTP is delivered through."""

    EMAIL = "email"
    WHATSAPP = "whatsapp"

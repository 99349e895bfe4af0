"""Application services: session, password reset and cart state."""

from .auth_service import AuthService
from .cart_service import CartService, cart_query_key
from .password_reset_service import PasswordResetService, ResetTokenStatus

__all__ = [
    "AuthService",
    "CartService",
    "cart_query_key",
    "PasswordResetService",
    "ResetTokenStatus",
]

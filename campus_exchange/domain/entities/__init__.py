"""Domain entities package."""

from .cart import CartItem
from .product import Category, Product, Store
from .user import AuthSession, User

__all__ = [
    "User",
    "AuthSession",
    "Product",
    "Store",
    "Category",
    "CartItem",
]

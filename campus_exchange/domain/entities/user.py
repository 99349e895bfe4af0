"""User entity model."""
from __future__ import annotations

import json
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from campus_exchange.domain.value_objects import UserRole


class User(BaseModel):
    """Account record as returned by the backend (password never included)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    id: int = Field(..., description="Backend user ID")
    email: str | None = Field(None, description="Email address")
    username: str | None = Field(None, description="Unique username")
    first_name: str = Field("", description="First name")
    last_name: str = Field("", description="Last name")
    university: str | None = Field(None, description="University")
    campus: str | None = Field(None, description="Campus")
    city: str | None = Field(None, description="City")
    phone_number: str | None = Field(None, description="Phone number")
    is_phone_verified: bool = Field(False, description="Phone verified via OTP")
    is_merchant: bool = Field(False, description="Has a store")
    is_admin: bool = Field(False, description="Administrator")
    avatar: str | None = Field(None, description="Avatar URL")
    created_at: datetime | None = Field(None, description="Registration timestamp")

    @property
    def role(self) -> UserRole:
        if self.is_admin:
            return UserRole.ADMIN
        if self.is_merchant:
            return UserRole.MERCHANT
        return UserRole.BUYER

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)

    @property
    def display_name(self) -> str:
        """Get user's display name."""
        return self.full_name or self.username or self.email or f"user-{self.id}"

    def to_storage(self) -> str:
        """Serialize for durable storage, camelCase like the wire format."""
        return json.dumps(self.model_dump(by_alias=True, mode="json"))

    @classmethod
    def from_storage(cls, raw: str) -> User:
        """Parse a stored copy; raises ValueError when it is not a user."""
        return cls.model_validate_json(raw)


class AuthSession(BaseModel):
    """Body of a successful login/registration."""

    model_config = ConfigDict(extra="ignore")

    user: User
    token: str = Field(..., min_length=1)

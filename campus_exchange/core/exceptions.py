"""Custom exceptions for the Campus Exchange client."""
from __future__ import annotations

from typing import Any


class CampusExchangeException(Exception):
    """Base exception for all Campus Exchange client errors."""

    def __init__(self, message: str, *args: object) -> None:
        super().__init__(message, *args)
        self.message = message


class ValidationException(CampusExchangeException):
    """Input rejected before any request was sent."""

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or [message]


class AuthorizationException(CampusExchangeException):
    """Operation needs a signed-in user."""

    pass


class ApiRequestException(CampusExchangeException):
    """Backend answered with a non-2xx status."""

    def __init__(self, status: int, text: str, body: Any = None) -> None:
        super().__init__(f"{status}: {text}")
        self.status = status
        self.text = text
        self.body = body

    @property
    def detail(self) -> str:
        """Backend-provided message when the body carried one."""
        if isinstance(self.body, dict) and self.body.get("message"):
            return str(self.body["message"])
        return self.text

    @property
    def is_unauthorized(self) -> bool:
        return self.status == 401


class NetworkException(ApiRequestException):
    """Request never produced a response (connection error, timeout)."""

    def __init__(self, reason: str) -> None:
        super().__init__(0, reason)


class InvalidResponseException(CampusExchangeException):
    """Successful response whose body has an unexpected shape."""

    pass


class StorageException(CampusExchangeException):
    """Durable client storage read/write errors."""

    pass


class ConfigurationException(CampusExchangeException):
    """Configuration errors."""

    pass

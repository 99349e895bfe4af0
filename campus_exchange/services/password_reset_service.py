"""Password reset: request a link, verify its token, set a new password."""
from __future__ import annotations

from dataclasses import dataclass

from campus_exchange.core.api_client import ApiClient
from campus_exchange.core.exceptions import ApiRequestException, ValidationException
from campus_exchange.core.utils import is_email
from campus_exchange.domain.payloads import PasswordResetPayload, validate_payload

REQUEST_RESET_PATH = "/api/auth/request-password-reset"
VERIFY_TOKEN_PATH = "/api/auth/verify-reset-token"
RESET_PASSWORD_PATH = "/api/auth/reset-password"


@dataclass(slots=True)
class ResetTokenStatus:
    valid: bool
    message: str


class PasswordResetService:
    """Never touches the session; the user logs in again afterwards."""

    def __init__(self, api: ApiClient) -> None:
        self._api = api

    async def request_reset(self, email: str) -> str:
        if not is_email(email):
            raise ValidationException("Please enter a valid email address")
        data = await self._api.request("POST", REQUEST_RESET_PATH, {"email": email.strip()})
        return _message(data)

    async def verify_token(self, token: str | None) -> ResetTokenStatus:
        if not token:
            return ResetTokenStatus(valid=False, message="No reset token found in URL")
        try:
            data = await self._api.request("GET", VERIFY_TOKEN_PATH, params={"token": token})
        except ApiRequestException as exc:
            # Rejected tokens may come back as 4xx/5xx with a {valid, message} body.
            if not isinstance(exc.body, dict):
                raise
            return ResetTokenStatus(valid=False, message=exc.detail)
        if not isinstance(data, dict):
            return ResetTokenStatus(valid=False, message="")
        return ResetTokenStatus(valid=bool(data.get("valid")), message=_message(data))

    async def reset_password(self, token: str, new_password: str, confirm_password: str) -> str:
        payload = validate_payload(
            PasswordResetPayload,
            {"token": token, "new_password": new_password, "confirm_password": confirm_password},
        )
        data = await self._api.request("POST", RESET_PASSWORD_PATH, payload.to_wire())
        return _message(data)


def _message(data: object) -> str:
    if isinstance(data, dict):
        return str(data.get("message", ""))
    return ""

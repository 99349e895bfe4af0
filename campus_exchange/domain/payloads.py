"""
Request payloads validated at the client boundary.

Everything here raises ``ValidationException`` before a request is sent:
unknown fields, missing required fields, malformed credential combinations.
Whether credentials are *correct* is decided by the backend.
"""
from __future__ import annotations

from collections.abc import Mapping
from typing import Annotated, Any, TypeVar, Union

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic.alias_generators import to_camel, to_snake

from campus_exchange.core.exceptions import ValidationException
from campus_exchange.core.utils import clean_phone, is_email, is_phone
from campus_exchange.domain.value_objects import OtpChannel

P = TypeVar("P", bound="WirePayload")

OTP_LENGTH = 6
MIN_RESET_PASSWORD_LENGTH = 8


def _error_messages(exc: ValidationError) -> list[str]:
    messages = []
    for error in exc.errors():
        msg = str(error.get("msg", "Invalid value"))
        if msg.startswith("Value error, "):
            msg = msg[len("Value error, ") :]
        location = ".".join(str(part) for part in error.get("loc", ()))
        if error.get("type") in {"extra_forbidden", "missing"} and location:
            msg = f"{location}: {msg}"
        messages.append(msg)
    return messages


class WirePayload(BaseModel):
    """Base for bodies sent to the backend in camelCase."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


def validate_payload(model: type[P], data: Mapping[str, Any] | P) -> P:
    """Build ``model`` from a mapping, turning pydantic errors into ours."""
    if isinstance(data, model):
        return data
    if not isinstance(data, Mapping):
        raise ValidationException(f"{model.__name__} expects a mapping")
    try:
        return model.model_validate(dict(data))
    except ValidationError as exc:
        errors = _error_messages(exc)
        raise ValidationException(errors[0], errors) from exc


def _check_otp(v: str) -> str:
    if len(v) != OTP_LENGTH or not v.isdigit():
        raise ValueError(f"OTP code must be {OTP_LENGTH} digits")
    return v


def _check_phone(v: str) -> str:
    if not is_phone(v):
        raise ValueError("Please enter a valid phone number (at least 10 digits)")
    return clean_phone(v)


def _check_email(v: str) -> str:
    if not is_email(v):
        raise ValueError("Please enter a valid email address")
    return v.strip()


EmailAddress = Annotated[str, AfterValidator(_check_email)]
PhoneNumber = Annotated[str, AfterValidator(_check_phone)]
OtpCode = Annotated[str, AfterValidator(_check_otp)]


# =============================================================================
# LOGIN CREDENTIALS
# =============================================================================


class EmailPasswordCredentials(WirePayload):
    email: EmailAddress
    password: str = Field(..., min_length=1)


class UsernamePasswordCredentials(WirePayload):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class PhoneOtpCredentials(WirePayload):
    phone_number: PhoneNumber
    otp_code: OtpCode


class EmailOtpCredentials(WirePayload):
    email: EmailAddress
    otp_code: OtpCode


class WhatsappOtpCredentials(WirePayload):
    whatsapp_number: PhoneNumber
    whatsapp_otp_code: OtpCode


LoginCredentials = Union[
    EmailPasswordCredentials,
    UsernamePasswordCredentials,
    PhoneOtpCredentials,
    EmailOtpCredentials,
    WhatsappOtpCredentials,
]

_CREDENTIAL_SHAPES: tuple[tuple[frozenset[str], type[WirePayload]], ...] = (
    (frozenset({"email", "password"}), EmailPasswordCredentials),
    (frozenset({"username", "password"}), UsernamePasswordCredentials),
    (frozenset({"phone_number", "otp_code"}), PhoneOtpCredentials),
    (frozenset({"email", "otp_code"}), EmailOtpCredentials),
    (frozenset({"whatsapp_number", "whatsapp_otp_code"}), WhatsappOtpCredentials),
)
_CREDENTIAL_TYPES = tuple(model for _, model in _CREDENTIAL_SHAPES)
_CREDENTIAL_FIELDS = frozenset().union(*(shape for shape, _ in _CREDENTIAL_SHAPES))

CREDENTIALS_REQUIRED_MESSAGE = (
    "Valid credentials required (email/password, username/password, "
    "phone/OTP, email/OTP, or WhatsApp/OTP)"
)


def parse_credentials(credentials: Mapping[str, Any] | LoginCredentials) -> LoginCredentials:
    """Resolve a loose credential mapping to exactly one credential type."""
    if isinstance(credentials, _CREDENTIAL_TYPES):
        return credentials
    if not isinstance(credentials, Mapping):
        raise ValidationException(CREDENTIALS_REQUIRED_MESSAGE)

    supplied = {
        to_snake(str(key)): value
        for key, value in credentials.items()
        if value is not None and value != ""
    }
    unknown = set(supplied) - _CREDENTIAL_FIELDS
    if unknown:
        raise ValidationException(f"Unknown credential fields: {', '.join(sorted(unknown))}")

    for shape, model in _CREDENTIAL_SHAPES:
        if set(supplied) == shape:
            return validate_payload(model, supplied)  # type: ignore[return-value]
    raise ValidationException(CREDENTIALS_REQUIRED_MESSAGE)


# =============================================================================
# REGISTRATION
# =============================================================================


class RegistrationPayload(WirePayload):
    """Buyer/seller sign-up; the OTP proves control of phone or email."""

    username: str = Field(..., min_length=3)
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    university: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    campus: str | None = None
    phone_number: PhoneNumber | None = None
    email: EmailAddress | None = None
    password: str | None = Field(None, min_length=6)
    otp_code: OtpCode | None = None
    is_merchant: bool = False

    @model_validator(mode="after")
    def require_contact(self) -> RegistrationPayload:
        if not self.phone_number and not self.email:
            raise ValueError("A phone number or email address is required")
        return self


class SellerRegistrationPayload(WirePayload):
    """Seller sign-up; the WhatsApp number is verified with a one-time code."""

    whatsapp_number: PhoneNumber
    whatsapp_otp_code: OtpCode
    email: EmailAddress
    username: str = Field(..., min_length=3)
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    university: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    campus: str | None = None


class AdminRegistrationPayload(WirePayload):
    """Invitation-based admin account creation."""

    email: EmailAddress
    password: str = Field(..., min_length=6)
    username: str = Field(..., min_length=3)
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    invite_token: str | None = None


# =============================================================================
# OTP / PASSWORD RESET
# =============================================================================


class OtpRequest(WirePayload):
    """Where to deliver a one-time code."""

    email: str | None = None
    phone_number: str | None = None

    @property
    def channel(self) -> OtpChannel:
        return OtpChannel.EMAIL if self.email else OtpChannel.WHATSAPP


def parse_otp_identifier(identifier: str) -> OtpRequest:
    """An email address goes to email, anything phone-like to WhatsApp."""
    value = (identifier or "").strip()
    if is_email(value):
        return OtpRequest(email=value)
    if is_phone(value):
        return OtpRequest(phone_number=clean_phone(value))
    raise ValidationException(
        "Please enter a valid email address or phone number (at least 10 digits)"
    )


class PasswordResetPayload(WirePayload):
    token: str = Field(..., min_length=1)
    new_password: str
    confirm_password: str = Field(..., exclude=True)

    @model_validator(mode="after")
    def check_passwords(self) -> PasswordResetPayload:
        if self.new_password != self.confirm_password:
            raise ValueError("Passwords do not match")
        if len(self.new_password) < MIN_RESET_PASSWORD_LENGTH:
            raise ValueError(
                f"Password must be at least {MIN_RESET_PASSWORD_LENGTH} characters long"
            )
        return self

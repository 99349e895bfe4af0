"""Session state: who is logged in, and the only place sessions are created."""
from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from campus_exchange.core.api_client import ApiClient
from campus_exchange.core.exceptions import InvalidResponseException, StorageException
from campus_exchange.core.mutations import Mutation, any_pending
from campus_exchange.core.query_cache import QueryCache
from campus_exchange.core.storage import TOKEN_KEY, USER_KEY, ClientStorage
from campus_exchange.domain.entities import AuthSession, User
from campus_exchange.domain.payloads import (
    AdminRegistrationPayload,
    LoginCredentials,
    RegistrationPayload,
    SellerRegistrationPayload,
    parse_credentials,
    parse_otp_identifier,
    validate_payload,
)
from campus_exchange.domain.value_objects import OtpChannel
from campus_exchange.integrations.geolocation import GeoLocator

logger = logging.getLogger(__name__)

LOGIN_PATH = "/api/auth/login"
REGISTER_PATH = "/api/auth/register"
SELLER_REGISTER_PATH = "/api/auth/seller/register"
ADMIN_REGISTER_PATH = "/api/auth/admin/register"
SEND_OTP_PATH = "/api/auth/send-otp"
SEND_WHATSAPP_OTP_PATH = "/api/auth/send-whatsapp-otp"


class AuthService:
    """
    Holds the current user and the session token.

    The in-memory user and the stored ``user``/``token`` entries change
    together: a session is written to storage first and mirrored in memory
    only once both writes succeeded. Failed requests leave everything as is.
    """

    def __init__(
        self,
        api: ApiClient,
        storage: ClientStorage,
        query_cache: QueryCache,
        geolocator: GeoLocator | None = None,
        default_country: str = "US",
    ) -> None:
        self._api = api
        self._storage = storage
        self._query_cache = query_cache
        self._geolocator = geolocator
        self.country_code = geolocator.default_country if geolocator else default_country
        self._user: User | None = None

        self._login = Mutation("login", self._post_session_factory(LOGIN_PATH), self._apply_session)
        self._register = Mutation(
            "register", self._post_session_factory(REGISTER_PATH), self._apply_session
        )
        self._register_seller = Mutation(
            "register_seller", self._post_session_factory(SELLER_REGISTER_PATH), self._apply_session
        )
        self._register_admin = Mutation(
            "register_admin", self._post_session_factory(ADMIN_REGISTER_PATH), self._apply_session
        )
        self._send_otp = Mutation("send_otp", self._post_otp)

        self._restore_user()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------
    @property
    def user(self) -> User | None:
        return self._user

    @property
    def token(self) -> str | None:
        return self._storage.get_item(TOKEN_KEY)

    @property
    def is_authenticated(self) -> bool:
        return self._user is not None

    @property
    def is_loading(self) -> bool:
        return any_pending(
            self._login,
            self._register,
            self._register_seller,
            self._register_admin,
            self._send_otp,
        )

    def _restore_user(self) -> None:
        """Adopt a persisted user without asking the backend."""
        raw = self._storage.get_item(USER_KEY)
        if raw is None:
            return
        try:
            self._user = User.from_storage(raw)
        except ValueError:
            logger.warning("Discarding corrupt stored user entry")
            self._storage.remove_item(USER_KEY)
            return
        logger.info("Restored session for user %s", self._user.id)

    async def detect_country(self) -> str:
        if self._geolocator is not None:
            self.country_code = await self._geolocator.detect_country()
        return self.country_code

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------
    async def login(self, credentials: Mapping[str, Any] | LoginCredentials) -> User:
        payload = parse_credentials(credentials)
        session = await self._login.mutate(payload.to_wire())
        logger.info("User %s logged in", session.user.id)
        return session.user

    async def register(self, user_data: Mapping[str, Any] | RegistrationPayload) -> User:
        payload = validate_payload(RegistrationPayload, user_data)
        session = await self._register.mutate(payload.to_wire())
        logger.info("User %s registered", session.user.id)
        return session.user

    async def register_seller(
        self, seller_data: Mapping[str, Any] | SellerRegistrationPayload
    ) -> User:
        """Create a seller account verified through a WhatsApp one-time code."""
        payload = validate_payload(SellerRegistrationPayload, seller_data)
        session = await self._register_seller.mutate(payload.to_wire())
        logger.info("Seller %s registered", session.user.id)
        return session.user

    async def register_admin(
        self, admin_data: Mapping[str, Any] | AdminRegistrationPayload
    ) -> User:
        payload = validate_payload(AdminRegistrationPayload, admin_data)
        session = await self._register_admin.mutate(payload.to_wire())
        logger.info("Admin %s registered", session.user.id)
        return session.user

    async def send_otp(self, identifier: str) -> str:
        """Ask the backend to deliver a one-time code; returns its message."""
        request = parse_otp_identifier(identifier)
        return await self._send_otp.mutate(request)

    def logout(self) -> None:
        previous = self._user.id if self._user else None
        self._user = None
        self._storage.remove_item(USER_KEY)
        self._storage.remove_item(TOKEN_KEY)
        self._query_cache.clear()
        logger.info("User %s logged out", previous)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------
    def _post_session_factory(self, path: str):
        async def _post(body: dict[str, Any]) -> AuthSession:
            data = await self._api.request("POST", path, body)
            try:
                return AuthSession.model_validate(data)
            except ValidationError as exc:
                raise InvalidResponseException(f"{path} returned no user/token") from exc

        return _post

    async def _post_otp(self, request) -> str:
        if request.channel is OtpChannel.EMAIL:
            data = await self._api.request("POST", SEND_OTP_PATH, {"email": request.email})
        else:
            data = await self._api.request(
                "POST", SEND_WHATSAPP_OTP_PATH, {"phoneNumber": request.phone_number}
            )
        if isinstance(data, dict):
            return str(data.get("message", ""))
        return ""

    def _apply_session(self, session: AuthSession, *_args: Any) -> None:
        try:
            self._storage.set_item(USER_KEY, session.user.to_storage())
            self._storage.set_item(TOKEN_KEY, session.token)
        except StorageException:
            logger.error("Could not persist session, clearing stored entries")
            self._discard_stored_session()
            raise
        self._user = session.user

    def _discard_stored_session(self) -> None:
        """Remove both entries, then mirror whatever storage still holds."""
        for key in (USER_KEY, TOKEN_KEY):
            try:
                self._storage.remove_item(key)
            except StorageException as exc:
                logger.error("Could not remove stored %s entry: %s", key, exc)
        self._user = None
        if self._storage.get_item(TOKEN_KEY) is not None:
            self._restore_user()

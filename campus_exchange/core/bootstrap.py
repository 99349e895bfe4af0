"""Application bootstrap wiring storage, HTTP client, cache and services."""
from __future__ import annotations

import logging
from dataclasses import dataclass

from campus_exchange.integrations.geolocation import GeoLocator
from campus_exchange.logging_config import setup_logging
from campus_exchange.services.auth_service import AuthService
from campus_exchange.services.cart_service import CartService
from campus_exchange.services.password_reset_service import PasswordResetService

from .api_client import ApiClient
from .config import Settings, load_settings
from .query_cache import QueryCache
from .storage import TOKEN_KEY, ClientStorage, create_storage

logger = logging.getLogger(__name__)


@dataclass
class CampusExchangeApp:
    """Explicit application state handed to whatever drives the client."""

    settings: Settings
    storage: ClientStorage
    api: ApiClient
    query_cache: QueryCache
    auth: AuthService
    cart: CartService
    password_reset: PasswordResetService

    async def start(self) -> CampusExchangeApp:
        """Run the one-shot startup work (country lookup)."""
        await self.auth.detect_country()
        return self

    async def close(self) -> None:
        await self.api.close()

    async def __aenter__(self) -> CampusExchangeApp:
        return await self.start()

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()


def build_application(
    settings: Settings | None = None, storage: ClientStorage | None = None
) -> CampusExchangeApp:
    """Create client runtime components from configuration."""
    settings = settings or load_settings()
    setup_logging(settings.log_level)

    storage = storage or create_storage(settings)
    api = ApiClient(
        settings.api_url,
        token_provider=lambda: storage.get_item(TOKEN_KEY),
        timeout=settings.request_timeout,
    )
    query_cache = QueryCache(stale_time=settings.query_stale_time)
    geolocator = GeoLocator(
        url=settings.geolocation.url,
        default_country=settings.geolocation.default_country,
        enabled=settings.geolocation.enabled,
    )
    auth = AuthService(api, storage, query_cache, geolocator=geolocator)
    cart = CartService(api, query_cache, auth)
    password_reset = PasswordResetService(api)

    logger.info("Campus Exchange client ready for %s", settings.api_url)
    return CampusExchangeApp(
        settings=settings,
        storage=storage,
        api=api,
        query_cache=query_cache,
        auth=auth,
        cart=cart,
        password_reset=password_reset,
    )

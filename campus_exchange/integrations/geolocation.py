"""
Best-effort IP geolocation (ipapi.co).

Only used to pick the default country for phone-number formatting. Every
failure falls back to the configured default country.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Optional

import aiohttp

from campus_exchange.core.config import DEFAULT_COUNTRY_CODE, DEFAULT_GEOLOCATION_URL

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 5.0


def _normalize_country(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    value = value.strip().upper()
    if len(value) != 2 or not value.isalpha():
        return None
    return value


@dataclass(slots=True)
class GeoLocation:
    country_code: str
    country_name: str | None = None
    city: str | None = None
    region: str | None = None


class GeoLocator:
    def __init__(
        self,
        url: str = DEFAULT_GEOLOCATION_URL,
        default_country: str = DEFAULT_COUNTRY_CODE,
        timeout: float = _DEFAULT_TIMEOUT,
        enabled: bool = True,
    ) -> None:
        self._url = url
        self._default_country = default_country
        self._timeout = timeout
        self._enabled = enabled
        self._cached: GeoLocation | None = None

    @property
    def default_country(self) -> str:
        return self._default_country

    async def _request_json(self) -> Optional[Any]:
        try:
            timeout = aiohttp.ClientTimeout(total=self._timeout)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(self._url) as resp:
                    if resp.status != 200:
                        return None
                    return await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            logger.debug("Geolocation lookup failed: %s", exc)
            return None

    async def locate(self) -> Optional[GeoLocation]:
        """One lookup per locator; later calls reuse the first answer."""
        if not self._enabled:
            return None
        if self._cached is not None:
            return self._cached
        data = await self._request_json()
        if not isinstance(data, dict):
            return None
        country = _normalize_country(data.get("country_code"))
        if not country:
            return None
        self._cached = GeoLocation(
            country_code=country,
            country_name=data.get("country_name"),
            city=data.get("city"),
            region=data.get("region"),
        )
        return self._cached

    async def detect_country(self) -> str:
        location = await self.locate()
        if location is None:
            return self._default_country
        return location.country_code

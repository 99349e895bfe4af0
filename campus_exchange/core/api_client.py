"""
HTTP client for the Campus Exchange backend.

Sends JSON bodies, attaches the session token as a bearer header and turns
every non-2xx answer into an ``ApiRequestException``. There is no retry: a
failed request is reported to the caller once.
"""
from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable, Hashable, Sequence
from typing import Any, Literal

import aiohttp

from .exceptions import ApiRequestException, InvalidResponseException, NetworkException

logger = logging.getLogger(__name__)

UnauthorizedBehavior = Literal["throw", "return_null"]


def _stringify_params(params: dict[str, Any] | None) -> dict[str, str] | None:
    if not params:
        return None
    return {key: str(value) for key, value in params.items() if value is not None}


def _parse_body(text: str) -> Any:
    if not text:
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return None


class ApiClient:
    """
    Thin async wrapper around ``aiohttp.ClientSession``.

    Example:
    ```python
    client = ApiClient("https://campus.example", token_provider=lambda: token)
    user = await client.request("GET", "/api/users/1")
    await client.close()
    ```
    """

    def __init__(
        self,
        base_url: str,
        token_provider: Callable[[], str | None] | None = None,
        timeout: float | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._token_provider = token_provider
        self._timeout = timeout
        self._session: aiohttp.ClientSession | None = None

    @property
    def base_url(self) -> str:
        return self._base_url

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create the HTTP session."""
        if self._session is None or self._session.closed:
            if self._timeout is not None:
                self._session = aiohttp.ClientSession(
                    timeout=aiohttp.ClientTimeout(total=self._timeout)
                )
            else:
                self._session = aiohttp.ClientSession()
        return self._session

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> ApiClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def build_url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        if not path.startswith("/"):
            path = f"/{path}"
        return f"{self._base_url}{path}"

    def _headers(self, has_body: bool) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if has_body:
            headers["Content-Type"] = "application/json"
        token = self._token_provider() if self._token_provider else None
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def _send(
        self,
        method: str,
        path: str,
        data: Any = None,
        params: dict[str, Any] | None = None,
    ) -> tuple[int, str]:
        session = await self._get_session()
        url = self.build_url(path)
        body = json.dumps(data) if data is not None else None
        try:
            async with session.request(
                method.upper(),
                url,
                data=body,
                params=_stringify_params(params),
                headers=self._headers(body is not None),
            ) as response:
                try:
                    text = await response.text()
                except UnicodeDecodeError as exc:
                    logger.warning("%s %s returned an undecodable body", method.upper(), path)
                    if response.status >= 400:
                        raise ApiRequestException(response.status, response.reason or "") from exc
                    raise InvalidResponseException(
                        f"{method.upper()} {path} returned an undecodable body"
                    ) from exc
                if response.status >= 400:
                    logger.warning(
                        "%s %s failed with HTTP %s", method.upper(), path, response.status
                    )
                    raise ApiRequestException(
                        response.status, text or response.reason or "", _parse_body(text)
                    )
                return response.status, text
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.warning("%s %s failed: %s", method.upper(), path, exc)
            raise NetworkException(str(exc) or exc.__class__.__name__) from exc

    async def request(
        self,
        method: str,
        path: str,
        data: Any = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Send a request and return the decoded JSON body (None when empty)."""
        _, text = await self._send(method, path, data=data, params=params)
        if not text:
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise InvalidResponseException(
                f"{method.upper()} {path} returned a non-JSON body"
            ) from exc

    async def get_json(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        on_unauthorized: UnauthorizedBehavior = "throw",
    ) -> Any:
        """GET helper used by queries; may map 401 to ``None``."""
        try:
            return await self.request("GET", path, params=params)
        except ApiRequestException as exc:
            if exc.is_unauthorized and on_unauthorized == "return_null":
                return None
            raise

    async def fetch_query_key(self, key: Sequence[Hashable]) -> Any:
        """Default query fetcher: the key parts joined with ``/`` form the path."""
        path = "/".join(str(part) for part in key)
        return await self.get_json(path)

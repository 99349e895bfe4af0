"""Durable client storage: small string key-value store surviving restarts.

Mirrors browser ``localStorage`` semantics: string keys, string values,
``get_item`` returns ``None`` for unknown keys.
"""
from __future__ import annotations

import contextlib
import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path

import redis

from .config import Settings
from .exceptions import StorageException

logger = logging.getLogger(__name__)

USER_KEY = "user"
TOKEN_KEY = "token"


class ClientStorage(ABC):
    """Abstract durable storage backend."""

    @abstractmethod
    def get_item(self, key: str) -> str | None:
        """Get stored value or None."""

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        """Store value under key."""

    @abstractmethod
    def remove_item(self, key: str) -> None:
        """Remove key if present."""

    @abstractmethod
    def clear(self) -> None:
        """Remove every key."""


class MemoryStorage(ClientStorage):
    """Process-local storage, used in tests and as a fallback."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> str | None:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._data[key] = str(value)

    def remove_item(self, key: str) -> None:
        self._data.pop(key, None)

    def clear(self) -> None:
        self._data.clear()

    def keys(self) -> list[str]:
        return list(self._data)


class JsonFileStorage(ClientStorage):
    """Storage persisted as a single JSON object on disk.

    Every write replaces the file atomically so a crash mid-write never
    leaves a truncated document behind.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self._path = Path(path)
        self._data: dict[str, str] = self._load()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            raw = self._path.read_text(encoding="utf-8")
        except OSError as exc:
            raise StorageException(f"Cannot read storage file {self._path}: {exc}") from exc
        try:
            payload = json.loads(raw) if raw.strip() else {}
        except json.JSONDecodeError:
            logger.warning("Storage file %s is corrupt, starting empty", self._path)
            return {}
        if not isinstance(payload, dict):
            logger.warning("Storage file %s is not an object, starting empty", self._path)
            return {}
        return {str(k): str(v) for k, v in payload.items() if v is not None}

    def _flush(self) -> None:
        tmp_name = None
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=".storage-", dir=self._path.parent)
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(self._data, fh, ensure_ascii=False)
            os.replace(tmp_name, self._path)
        except OSError as exc:
            if tmp_name is not None:
                with contextlib.suppress(OSError):
                    os.unlink(tmp_name)
            raise StorageException(f"Cannot write storage file {self._path}: {exc}") from exc

    def _write(self, data: dict[str, str]) -> None:
        """Persist ``data``; on failure the previous contents stay in place."""
        previous = self._data
        self._data = data
        try:
            self._flush()
        except StorageException:
            self._data = previous
            raise

    def get_item(self, key: str) -> str | None:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._write({**self._data, key: str(value)})

    def remove_item(self, key: str) -> None:
        if key in self._data:
            self._write({k: v for k, v in self._data.items() if k != key})

    def clear(self) -> None:
        self._write({})


class RedisStorage(ClientStorage):
    """Storage kept in Redis, shared by every client process on the host."""

    def __init__(self, redis_url: str, prefix: str = "campus:storage:") -> None:
        self._redis_url = redis_url
        self._prefix = prefix
        self._fallback = MemoryStorage()
        self._client = self._init_client()

    def _init_client(self):
        try:
            client = redis.from_url(
                self._redis_url,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
            )
            client.ping()
            logger.info("Redis client storage enabled")
            return client
        except (redis.RedisError, ValueError) as exc:
            logger.warning("Redis storage init failed, fallback to in-memory: %s", exc)
            return None

    def _switch_to_memory_fallback(self, reason: Exception | str) -> None:
        logger.warning("Redis storage fallback to memory mode: %s", reason)
        self._client = None

    @property
    def is_fallback(self) -> bool:
        return self._client is None

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def get_item(self, key: str) -> str | None:
        if self._client is None:
            return self._fallback.get_item(key)
        try:
            return self._client.get(self._key(key))
        except redis.RedisError as exc:
            self._switch_to_memory_fallback(exc)
            return self._fallback.get_item(key)

    def set_item(self, key: str, value: str) -> None:
        if self._client is not None:
            try:
                self._client.set(self._key(key), str(value))
                return
            except redis.RedisError as exc:
                self._switch_to_memory_fallback(exc)
        self._fallback.set_item(key, value)

    def remove_item(self, key: str) -> None:
        if self._client is not None:
            try:
                self._client.delete(self._key(key))
                return
            except redis.RedisError as exc:
                self._switch_to_memory_fallback(exc)
        self._fallback.remove_item(key)

    def clear(self) -> None:
        if self._client is not None:
            try:
                keys = list(self._client.scan_iter(f"{self._prefix}*"))
                if keys:
                    self._client.delete(*keys)
                return
            except redis.RedisError as exc:
                self._switch_to_memory_fallback(exc)
        self._fallback.clear()


def create_storage(settings: Settings) -> ClientStorage:
    """Pick the storage backend from configuration."""
    # Priority 1: Redis
    if settings.redis_url:
        storage = RedisStorage(settings.redis_url)
        if not storage.is_fallback:
            return storage
        logger.warning("Redis unavailable, using JSON file storage at %s", settings.storage_path)

    # Priority 2: JSON file
    return JsonFileStorage(settings.storage_path)

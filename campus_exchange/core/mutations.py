"""Async mutation handles with their own pending/result state."""
from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class MutationStatus(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"


class Mutation(Generic[T]):
    """
    Wraps one server-side write.

    ``is_pending`` stays true while any call is in flight, including the
    ``on_success`` hook (cache invalidation). Overlapping calls are not
    de-duplicated; each one runs to completion.
    """

    def __init__(
        self,
        name: str,
        mutation_fn: Callable[..., Awaitable[T]],
        on_success: Callable[..., Any] | None = None,
    ) -> None:
        self.name = name
        self._mutation_fn = mutation_fn
        self._on_success = on_success
        self._pending = 0
        self.status = MutationStatus.IDLE
        self.data: T | None = None
        self.error: BaseException | None = None

    @property
    def is_pending(self) -> bool:
        return self._pending > 0

    @property
    def pending_count(self) -> int:
        return self._pending

    def reset(self) -> None:
        self.status = MutationStatus.IDLE
        self.data = None
        self.error = None

    async def mutate(self, *args: Any, **kwargs: Any) -> T:
        """Run the mutation; errors propagate to the caller unchanged."""
        self._pending += 1
        self.status = MutationStatus.PENDING
        finished = False
        try:
            result = await self._mutation_fn(*args, **kwargs)
            if self._on_success is not None:
                hook_result = self._on_success(result, *args, **kwargs)
                if inspect.isawaitable(hook_result):
                    await hook_result
            finished = True
        except Exception as exc:
            self.error = exc
            self.status = MutationStatus.ERROR
            logger.debug("Mutation %s failed: %s", self.name, exc)
            raise
        finally:
            self._pending -= 1
            # Cancellation skips both branches above.
            if self.status is MutationStatus.PENDING and not self._pending and not finished:
                self.status = MutationStatus.IDLE

        self.data = result
        self.error = None
        self.status = MutationStatus.SUCCESS
        return result


def any_pending(*mutations: Mutation[Any]) -> bool:
    """Logical OR of the pending flags."""
    return any(mutation.is_pending for mutation in mutations)

"""Cancellation and time budgets for operations against the store.

A `Deadline` is passed by the caller to any client verb. It is checked before
every remote call and after every backoff pause; once it has been cancelled
or has expired no further request is issued.
"""

import asyncio
from collections.abc import Awaitable, Callable
import logging
import time
from typing import TypeVar

from .exceptions import OperationCancelledError

__all__ = ["Deadline"]

_LOGGER = logging.getLogger(__name__)

_T = TypeVar("_T")


class Deadline:
    """An optional time budget that can also be cancelled explicitly."""

    def __init__(
        self,
        timeout: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize Deadline, starting the budget now."""
        self._clock = clock
        self._expires_at = clock() + timeout if timeout is not None else None
        self._cancelled = asyncio.Event()
        self._reason: str | None = None

    def cancel(self, reason: str | None = None) -> None:
        """Cancel every operation using this deadline."""
        _LOGGER.debug("Deadline cancelled: %s", reason)
        self._reason = reason
        self._cancelled.set()

    @property
    def expired(self) -> bool:
        return self._expires_at is not None and self._clock() >= self._expires_at

    @property
    def cancelled(self) -> bool:
        """True once cancelled explicitly or when the time budget ran out."""
        return self._cancelled.is_set() or self.expired

    def remaining(self) -> float | None:
        """Seconds left in the budget, or None when unbounded."""
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - self._clock())

    def check(self, operation: str) -> None:
        """Raise OperationCancelledError if no more work may be started."""
        if self._cancelled.is_set():
            raise OperationCancelledError(
                f"{operation} cancelled: {self._reason or 'cancelled by caller'}"
            )
        if self.expired:
            raise OperationCancelledError(f"{operation} cancelled: deadline exceeded")

    async def run(self, operation: str, call: Callable[[], Awaitable[_T]]) -> _T:
        """Issue a remote call bounded by the remaining time budget."""
        self.check(operation)
        try:
            return await asyncio.wait_for(call(), self.remaining())
        except TimeoutError as err:
            raise OperationCancelledError(
                f"{operation} cancelled: deadline exceeded"
            ) from err

    async def wait(self, delay: float) -> None:
        """Pause for the delay, returning early if cancelled."""
        if (remaining := self.remaining()) is not None:
            delay = min(delay, remaining)
        try:
            await asyncio.wait_for(self._cancelled.wait(), delay)
        except TimeoutError:
            pass

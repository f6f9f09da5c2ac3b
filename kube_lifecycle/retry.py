"""Retry a read-modify-write cycle when the store reports a version conflict.

The operation passed to the executor must perform the whole cycle: fetch the
current object, apply the change in memory, and submit the update. On a
conflict the entire operation is run again so that the fetch observes the
version written by the competing writer. The operation may therefore be
replayed several times and must not have side effects beyond the object it
fetched.

Example:

    async def scale() -> None:
        deployment = await client.get("api")
        deployment.spec.replicas = 2
        await client.update(deployment)

    await retry_on_conflict(scale)
"""

import asyncio
from collections.abc import Awaitable, Callable, Generator
from dataclasses import dataclass
import logging
import random
from typing import TypeVar

from .deadline import Deadline
from .exceptions import ConflictError, RetryExhaustedError, TransportError

__all__ = [
    "Backoff",
    "DEFAULT_RETRY",
    "DEFAULT_BACKOFF",
    "ConflictRetryExecutor",
    "retry_on_conflict",
    "is_conflict",
    "is_conflict_or_transport",
]

_LOGGER = logging.getLogger(__name__)

_T = TypeVar("_T")


@dataclass(frozen=True)
class Backoff:
    """Schedule of pauses between attempts."""

    steps: int
    """Maximum number of attempts."""

    duration: float
    """Initial pause in seconds."""

    factor: float = 1.0
    """Multiplier applied to the pause after every attempt."""

    jitter: float = 0.0
    """Fraction of the pause added at random."""

    cap: float | None = None
    """Upper bound of the pause before jitter is added."""

    def __post_init__(self) -> None:
        if self.steps < 1:
            raise ValueError("Backoff must allow at least one attempt")
        if self.duration < 0 or self.factor < 0 or self.jitter < 0:
            raise ValueError("Backoff values must not be negative")

    def delays(
        self, rand: Callable[[], float] = random.random
    ) -> Generator[float, None, None]:
        """Yield the pause before each retry, one fewer than the attempts."""
        duration = self.duration
        for _ in range(self.steps - 1):
            delay = duration if self.cap is None else min(duration, self.cap)
            if self.jitter:
                delay += delay * self.jitter * rand()
            yield delay
            duration *= self.factor


DEFAULT_RETRY = Backoff(steps=5, duration=0.01, factor=2.0, jitter=0.1, cap=1.0)
"""Schedule for conflicts, which are expected to resolve quickly."""

DEFAULT_BACKOFF = Backoff(steps=4, duration=0.01, factor=5.0, jitter=0.1, cap=10.0)
"""Schedule for slower failures such as transport errors."""


def is_conflict(err: Exception) -> bool:
    """Retry only version conflicts."""
    return isinstance(err, ConflictError)


def is_conflict_or_transport(err: Exception) -> bool:
    """Retry version conflicts and transport failures."""
    return isinstance(err, (ConflictError, TransportError))


class ConflictRetryExecutor:
    """Runs an operation until it stops failing with a retriable error.

    The pause between attempts uses the injected `sleep` when provided, which
    lets tests run without real delays. Otherwise the pause waits on the
    deadline so a cancellation wakes it up immediately.
    """

    def __init__(
        self,
        backoff: Backoff = DEFAULT_RETRY,
        *,
        retriable: Callable[[Exception], bool] = is_conflict,
        sleep: Callable[[float], Awaitable[None]] | None = None,
        rand: Callable[[], float] = random.random,
    ) -> None:
        """Initialize ConflictRetryExecutor."""
        self._backoff = backoff
        self._retriable = retriable
        self._sleep = sleep
        self._rand = rand

    @property
    def backoff(self) -> Backoff:
        return self._backoff

    async def run(
        self,
        operation: Callable[[], Awaitable[_T]],
        deadline: Deadline | None = None,
    ) -> _T:
        """Run the operation, retrying the whole of it on retriable errors.

        Raises RetryExhaustedError if the last allowed attempt still failed
        with a retriable error. Any other error is raised unchanged.
        """
        delays = self._backoff.delays(self._rand)
        attempt = 0
        while True:
            if deadline is not None:
                deadline.check("retry")
            attempt += 1
            try:
                return await operation()
            except Exception as err:
                if not self._retriable(err):
                    raise
                if (delay := next(delays, None)) is None:
                    _LOGGER.warning(
                        "Giving up after %d attempts: %s", attempt, err
                    )
                    raise RetryExhaustedError(attempt, err) from err
                _LOGGER.debug(
                    "Attempt %d failed (%s), retrying in %0.3fs", attempt, err, delay
                )
            await self._pause(delay, deadline)

    async def _pause(self, delay: float, deadline: Deadline | None) -> None:
        if self._sleep is not None:
            await self._sleep(delay)
        elif deadline is not None:
            await deadline.wait(delay)
        else:
            await asyncio.sleep(delay)


async def retry_on_conflict(
    operation: Callable[[], Awaitable[_T]],
    backoff: Backoff = DEFAULT_RETRY,
    deadline: Deadline | None = None,
) -> _T:
    """Run the operation, retrying it whenever it fails with a conflict."""
    return await ConflictRetryExecutor(backoff).run(operation, deadline)

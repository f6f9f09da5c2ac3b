"""Tests for the conflict retry executor."""

import asyncio
import logging

import pytest

from kube_lifecycle.deadline import Deadline
from kube_lifecycle.exceptions import (
    ConflictError,
    NotFoundError,
    OperationCancelledError,
    RetryExhaustedError,
    TransportError,
)
from kube_lifecycle.manifest import NamedResource
from kube_lifecycle.retry import (
    Backoff,
    ConflictRetryExecutor,
    DEFAULT_BACKOFF,
    DEFAULT_RETRY,
    is_conflict_or_transport,
    retry_on_conflict,
)

from .conftest import FakeSleep

RESOURCE_ID = NamedResource("deployments", "default", "api")


class FlakyOperation:
    """Fails with the given errors, then succeeds."""

    def __init__(self, *errors: Exception) -> None:
        self.errors = list(errors)
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return "done"


def conflict() -> ConflictError:
    return ConflictError(RESOURCE_ID, "1", "2")


def test_backoff_delays() -> None:
    """Delays grow by the factor and stop one short of the attempts."""
    backoff = Backoff(steps=4, duration=1.0, factor=2.0)
    assert list(backoff.delays()) == [1.0, 2.0, 4.0]


def test_backoff_cap_and_jitter() -> None:
    """The cap bounds the delay before jitter is added."""
    backoff = Backoff(steps=5, duration=1.0, factor=3.0, jitter=0.5, cap=5.0)
    assert list(backoff.delays(lambda: 1.0)) == [1.5, 4.5, 7.5, 7.5]
    assert list(backoff.delays(lambda: 0.0)) == [1.0, 3.0, 5.0, 5.0]


def test_backoff_single_step() -> None:
    """A single attempt never pauses."""
    assert list(Backoff(steps=1, duration=1.0).delays()) == []


@pytest.mark.parametrize(
    "kwargs",
    [
        {"steps": 0, "duration": 1.0},
        {"steps": 1, "duration": -1.0},
        {"steps": 1, "duration": 1.0, "jitter": -0.1},
    ],
)
def test_backoff_invalid(kwargs: dict[str, float]) -> None:
    """Invalid schedules are rejected."""
    with pytest.raises(ValueError):
        Backoff(**kwargs)  # type: ignore[arg-type]


def test_default_schedules() -> None:
    """The default schedules match the kubernetes client defaults."""
    assert DEFAULT_RETRY == Backoff(
        steps=5, duration=0.01, factor=2.0, jitter=0.1, cap=1.0
    )
    assert DEFAULT_BACKOFF == Backoff(
        steps=4, duration=0.01, factor=5.0, jitter=0.1, cap=10.0
    )


async def test_success_first_attempt(
    executor: ConflictRetryExecutor, fake_sleep: FakeSleep
) -> None:
    """An operation that succeeds runs once without pausing."""
    operation = FlakyOperation()
    assert await executor.run(operation) == "done"
    assert operation.calls == 1
    assert fake_sleep.delays == []


async def test_retry_conflicts(
    executor: ConflictRetryExecutor, fake_sleep: FakeSleep
) -> None:
    """Conflicts are retried following the backoff schedule."""
    operation = FlakyOperation(conflict(), conflict())
    assert await executor.run(operation) == "done"
    assert operation.calls == 3
    assert fake_sleep.delays == pytest.approx([0.01, 0.02])


async def test_retry_exhausted(
    executor: ConflictRetryExecutor,
    fake_sleep: FakeSleep,
    caplog: pytest.LogCaptureFixture,
) -> None:
    """Persistent conflicts give up after the allowed attempts."""
    errors = [conflict() for _ in range(10)]
    operation = FlakyOperation(*errors)
    with caplog.at_level(logging.WARNING), pytest.raises(
        RetryExhaustedError
    ) as exc_info:
        await executor.run(operation)
    assert operation.calls == 5
    assert exc_info.value.attempts == 5
    assert exc_info.value.last_error is errors[4]
    assert exc_info.value.__cause__ is errors[4]
    assert not isinstance(exc_info.value, ConflictError)
    assert fake_sleep.delays == pytest.approx([0.01, 0.02, 0.04, 0.08])
    assert "Giving up after 5 attempts" in caplog.text


async def test_non_retriable_error(
    executor: ConflictRetryExecutor, fake_sleep: FakeSleep
) -> None:
    """Other errors propagate immediately and unchanged."""
    error = NotFoundError(RESOURCE_ID)
    operation = FlakyOperation(conflict(), error)
    with pytest.raises(NotFoundError) as exc_info:
        await executor.run(operation)
    assert exc_info.value is error
    assert operation.calls == 2
    assert len(fake_sleep.delays) == 1


async def test_transport_not_retried_by_default(
    executor: ConflictRetryExecutor,
) -> None:
    """Transport failures are only retried when the predicate allows it."""
    operation = FlakyOperation(TransportError("connection reset"))
    with pytest.raises(TransportError):
        await executor.run(operation)
    assert operation.calls == 1


async def test_retry_transport(fake_sleep: FakeSleep) -> None:
    """A custom predicate retries transport failures."""
    executor = ConflictRetryExecutor(
        DEFAULT_BACKOFF,
        retriable=is_conflict_or_transport,
        sleep=fake_sleep,
        rand=lambda: 0.0,
    )
    operation = FlakyOperation(TransportError("connection reset"), conflict())
    assert await executor.run(operation) == "done"
    assert operation.calls == 3
    assert fake_sleep.delays == pytest.approx([0.01, 0.05])


async def test_cancelled_before_first_attempt(
    executor: ConflictRetryExecutor,
) -> None:
    """No attempt is made once the deadline is cancelled."""
    deadline = Deadline()
    deadline.cancel("shutting down")
    operation = FlakyOperation()
    with pytest.raises(OperationCancelledError, match="shutting down"):
        await executor.run(operation, deadline)
    assert operation.calls == 0


async def test_cancelled_during_retry(
    executor: ConflictRetryExecutor,
) -> None:
    """Cancelling while an attempt fails stops before the next attempt."""
    deadline = Deadline()
    calls = 0

    async def operation() -> None:
        nonlocal calls
        calls += 1
        deadline.cancel()
        raise conflict()

    with pytest.raises(OperationCancelledError):
        await executor.run(operation, deadline)
    assert calls == 1


async def test_cancel_wakes_pause() -> None:
    """A cancelled deadline interrupts a long pause between attempts."""
    executor = ConflictRetryExecutor(Backoff(steps=2, duration=60.0))
    deadline = Deadline()
    operation = FlakyOperation(conflict())
    asyncio.get_running_loop().call_later(0.01, deadline.cancel)
    with pytest.raises(OperationCancelledError):
        await asyncio.wait_for(executor.run(operation, deadline), 5)
    assert operation.calls == 1


async def test_retry_on_conflict() -> None:
    """The helper builds an executor with the given schedule."""
    operation = FlakyOperation(conflict())
    result = await retry_on_conflict(operation, Backoff(steps=2, duration=0.0))
    assert result == "done"
    assert operation.calls == 2

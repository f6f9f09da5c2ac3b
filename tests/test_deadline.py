"""Tests for deadlines."""

import asyncio

import pytest

from kube_lifecycle.deadline import Deadline
from kube_lifecycle.exceptions import OperationCancelledError


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def test_unbounded() -> None:
    """A deadline without a timeout only ends when cancelled."""
    deadline = Deadline()
    assert not deadline.cancelled
    assert deadline.remaining() is None
    deadline.check("get")
    deadline.cancel("user request")
    assert deadline.cancelled
    with pytest.raises(OperationCancelledError, match="get cancelled: user request"):
        deadline.check("get")


def test_expiry() -> None:
    """The time budget is measured from creation."""
    clock = FakeClock()
    deadline = Deadline(5.0, clock=clock)
    assert deadline.remaining() == 5.0
    clock.now += 3.0
    assert deadline.remaining() == 2.0
    assert not deadline.expired
    clock.now += 2.0
    assert deadline.expired
    assert deadline.cancelled
    assert deadline.remaining() == 0.0
    with pytest.raises(OperationCancelledError, match="deadline exceeded"):
        deadline.check("update")


async def test_run() -> None:
    """Calls within the budget return their result."""

    async def call() -> str:
        return "result"

    assert await Deadline(5.0).run("get", call) == "result"


async def test_run_timeout() -> None:
    """A call outlasting the budget is abandoned."""

    async def call() -> None:
        await asyncio.sleep(60)

    with pytest.raises(OperationCancelledError, match="list cancelled: deadline exceeded"):
        await Deadline(0.01).run("list", call)


async def test_run_cancelled() -> None:
    """No call is issued once cancelled."""
    calls = 0

    async def call() -> None:
        nonlocal calls
        calls += 1

    deadline = Deadline()
    deadline.cancel()
    with pytest.raises(OperationCancelledError, match="cancelled by caller"):
        await deadline.run("delete", call)
    assert calls == 0


async def test_wait() -> None:
    """Waiting returns after the delay, or early once cancelled."""
    deadline = Deadline()
    await deadline.wait(0.0)
    asyncio.get_running_loop().call_later(0.01, deadline.cancel)
    await asyncio.wait_for(deadline.wait(60), 5)
    assert deadline.cancelled


async def test_wait_bounded_by_budget() -> None:
    """Waiting never outlasts the remaining budget."""
    deadline = Deadline(0.01)
    await asyncio.wait_for(deadline.wait(60), 5)
    assert not deadline._cancelled.is_set()

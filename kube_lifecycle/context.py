"""Tracing of the requests issued against the store.

Every remote call made by a client runs inside `trace_context`, which logs the
operation nested under any enclosing ones, e.g. `mutate deployments > get
apps/v1/deployments`, together with its duration. Within `collect_timings`
the durations are also accumulated per operation.
"""

import contextvars
from contextlib import contextmanager
from dataclasses import dataclass, field
import logging
from time import perf_counter
from typing import Generator


_LOGGER = logging.getLogger(__name__)

__all__ = [
    "Timings",
    "trace_context",
    "collect_timings",
]


@dataclass
class Timings:
    """Accumulated duration and count of each traced operation."""

    durations: dict[str, float] = field(default_factory=dict)
    counts: dict[str, int] = field(default_factory=dict)

    def add(self, name: str, duration: float) -> None:
        self.durations[name] = self.durations.get(name, 0.0) + duration
        self.counts[name] = self.counts.get(name, 0) + 1

    def summary(self) -> list[str]:
        """Return one line per operation, slowest first."""
        return [
            f"{name}: {duration:0.3f}s (count: {self.counts[name]})"
            for name, duration in sorted(
                self.durations.items(), key=lambda item: item[1], reverse=True
            )
        ]


_stack: contextvars.ContextVar[tuple[str, ...]] = contextvars.ContextVar(
    "trace_stack", default=()
)
_timings: contextvars.ContextVar[Timings | None] = contextvars.ContextVar(
    "trace_timings", default=None
)


@contextmanager
def trace_context(name: str) -> Generator[None, None, None]:
    """Log the operation and its duration at debug level."""
    stack = _stack.get() + (name,)
    token = _stack.set(stack)
    label = " > ".join(stack)
    start = perf_counter()
    _LOGGER.debug("[Trace] > %s", label)
    try:
        yield
    finally:
        elapsed = perf_counter() - start
        _stack.reset(token)
        if (timings := _timings.get()) is not None:
            timings.add(name, elapsed)
        _LOGGER.debug("[Trace] < %s (%0.3fs)", label, elapsed)


@contextmanager
def collect_timings() -> Generator[Timings, None, None]:
    """Accumulate the timings of every operation traced within the block."""
    timings = Timings()
    token = _timings.set(timings)
    try:
        yield timings
    finally:
        _timings.reset(token)

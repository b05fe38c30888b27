"""Deterministic clocks and sleep for throttle, duration and retry tests."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta


@dataclass
class FakeClock:
    """Monotonic clock that only moves when advanced."""

    now: float = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@dataclass
class FakeWallClock:
    """Wall clock returning a fixed instant, advanced manually."""

    moment: datetime = field(
        default_factory=lambda: datetime(2024, 5, 6, 14, 30, 0, tzinfo=UTC)
    )

    def __call__(self) -> datetime:
        return self.moment

    def advance(self, seconds: float) -> None:
        self.moment += timedelta(seconds=seconds)


@dataclass
class FakeSleep:
    """Stand-in for await_interruptible that never really waits.

    Each call advances ``clock`` by the requested delay, runs ``on_sleep``
    with the call number, then yields a few times so tasks created by the
    code under test make progress. Returns True (interrupted) when the
    interrupt event is set or once ``interrupt_after`` calls were made.
    """

    clock: FakeClock | None = None
    interrupt_after: int | None = None
    on_sleep: Callable[[int], None] | None = None
    delays: list[float] = field(default_factory=list)

    async def __call__(
        self, delay: float, interrupt_event: asyncio.Event | None
    ) -> bool:
        self.delays.append(delay)
        if self.clock is not None:
            self.clock.advance(delay)
        if self.on_sleep is not None:
            self.on_sleep(len(self.delays))
        for _ in range(10):
            await asyncio.sleep(0)
        if interrupt_event is not None and interrupt_event.is_set():
            return True
        return self.interrupt_after is not None and len(self.delays) >= self.interrupt_after

"""Fixtures for real-time layer tests.

FakeClock stands in for the event loop's timer so scheduler behaviour can be
driven tick by tick without sleeping.
"""

from __future__ import annotations

import itertools
from collections.abc import Callable

import pytest

from app.realtime.clock import Clock


class FakeTimer:
    def __init__(self, when: float, seq: int, callback: Callable[[], None]) -> None:
        self.when = when
        self.seq = seq
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeClock(Clock):
    """Clock that only moves when advance() is called."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start
        self._timers: list[FakeTimer] = []
        self._seq = itertools.count()

    def time(self) -> float:
        return self.now

    def call_later(self, delay: float, callback: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(self.now + max(delay, 0.0), next(self._seq), callback)
        self._timers.append(timer)
        return timer

    def pending(self) -> list[FakeTimer]:
        return [t for t in self._timers if not t.cancelled]

    def advance(self, seconds: float) -> None:
        """Move time forward, firing every timer that falls due, in order."""
        target = self.now + seconds
        while True:
            due = [t for t in self._timers if not t.cancelled and t.when <= target]
            if not due:
                break
            timer = min(due, key=lambda t: (t.when, t.seq))
            self._timers.remove(timer)
            self.now = timer.when
            timer.callback()
        self.now = target


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()

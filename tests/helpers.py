"""Shared helpers for tests that drive the scheduler."""

import threading
import time

from weatherstation.scheduling.scheduler import MonotonicClock


class FakeClock(MonotonicClock):
    """Clock that only moves when the test advances it."""

    def __init__(self):
        self._now = 0.0
        self._changed = threading.Condition()

    def now(self):
        with self._changed:
            return self._now

    def wait_until(self, event, deadline):
        with self._changed:
            while not event.is_set() and self._now < deadline:
                # Cancellation does not notify, so poll for it
                self._changed.wait(0.01)
            return event.is_set()

    def advance(self, seconds):
        with self._changed:
            self._now += seconds
            self._changed.notify_all()


def wait_for(condition, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(0.005)
    return condition()


def advance_ticks(clock, job, ticks, interval=1.0):
    """Move the clock one interval at a time, waiting for each tick to finish."""
    for _ in range(ticks):
        expected = job.runs + 1
        clock.advance(interval)
        assert wait_for(lambda: job.runs >= expected)

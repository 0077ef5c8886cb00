from __future__ import annotations

import itertools
import threading

from atlas_acl.convergence import BackoffPolicy, Deadline, SystemClock
from tests.convergence.conftest import FakeClock


def test_backoff_doubles_from_min_interval_up_to_cap() -> None:
    policy = BackoffPolicy(min_interval_seconds=2.0, max_interval_seconds=10.0)

    assert list(itertools.islice(policy.intervals(), 6)) == [2.0, 4.0, 8.0, 10.0, 10.0, 10.0]


def test_deadline_sleep_never_overruns_remaining_time() -> None:
    clock = FakeClock()
    deadline = Deadline(clock=clock, timeout_seconds=5.0)

    assert deadline.sleep(3.0) is True
    assert deadline.sleep(3.0) is False
    assert clock.sleeps == [3.0, 2.0]
    assert deadline.expired()


def test_narrowed_deadline_ends_first() -> None:
    clock = FakeClock()
    outer = Deadline(clock=clock, timeout_seconds=100.0)
    inner = outer.narrowed(10.0)

    clock.now = 11.0

    assert inner.expired()
    assert not outer.expired()


def test_cancelled_deadline_is_expired_without_sleeping() -> None:
    clock = FakeClock()
    cancel_event = threading.Event()
    deadline = Deadline(clock=clock, timeout_seconds=60.0, cancel_event=cancel_event)

    cancel_event.set()

    assert deadline.cancelled
    assert deadline.sleep(5.0) is False
    assert clock.sleeps == []


def test_system_clock_sleep_returns_promptly_when_cancelled() -> None:
    clock = SystemClock()
    cancel_event = threading.Event()
    cancel_event.set()

    started = clock.monotonic()
    clock.sleep(30.0, cancel_event=cancel_event)

    assert clock.monotonic() - started < 1.0

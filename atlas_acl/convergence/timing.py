"""Clock, deadline and backoff primitives shared by the convergence loops."""

from __future__ import annotations

import threading
import time
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Protocol


class Clock(Protocol):
    def monotonic(self) -> float:
        """Return a monotonic timestamp in seconds."""

    def sleep(self, seconds: float, *, cancel_event: threading.Event | None = None) -> None:
        """Block for up to ``seconds``, returning early once ``cancel_event`` is set."""


class SystemClock:
    def monotonic(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float, *, cancel_event: threading.Event | None = None) -> None:
        if seconds <= 0:
            return
        if cancel_event is None:
            time.sleep(seconds)
            return
        cancel_event.wait(seconds)


@dataclass(frozen=True, slots=True)
class BackoffPolicy:
    initial_delay_seconds: float = 0.0
    min_interval_seconds: float = 0.5
    max_interval_seconds: float = 10.0
    multiplier: float = 2.0

    def intervals(self) -> Iterator[float]:
        """Yield the wait before each retry: min interval, doubling up to the cap."""
        interval = self.min_interval_seconds
        while True:
            yield min(interval, self.max_interval_seconds)
            interval = min(interval * self.multiplier, self.max_interval_seconds)


class Deadline:
    """Absolute expiry on an injected clock plus an optional cancellation signal."""

    def __init__(
        self,
        *,
        clock: Clock,
        timeout_seconds: float,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self._clock = clock
        self._expires_at = clock.monotonic() + max(0.0, timeout_seconds)
        self._cancel_event = cancel_event

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def cancel_event(self) -> threading.Event | None:
        return self._cancel_event

    @property
    def cancelled(self) -> bool:
        return self._cancel_event is not None and self._cancel_event.is_set()

    def remaining(self) -> float:
        return max(0.0, self._expires_at - self._clock.monotonic())

    def expired(self) -> bool:
        return self.cancelled or self.remaining() <= 0

    def narrowed(self, timeout_seconds: float) -> Deadline:
        """Return a deadline that ends at whichever comes first: this one or now + timeout."""
        return Deadline(
            clock=self._clock,
            timeout_seconds=min(self.remaining(), timeout_seconds),
            cancel_event=self._cancel_event,
        )

    def sleep(self, seconds: float) -> bool:
        """Sleep without overrunning the deadline; return False once it has passed."""
        if self.expired():
            return False
        if seconds > 0:
            self._clock.sleep(min(seconds, self.remaining()), cancel_event=self._cancel_event)
        return not self.expired()

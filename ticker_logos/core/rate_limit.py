"""
Token bucket rate limiting for LLM spend.

One bucket is shared by every concurrent LLM call in the process. Tokens
are reserved under a lock, so two callers can never consume the same
token; the wait that follows a reservation happens outside the lock and
can be interrupted by the caller's cancellation event.
"""

import threading
import time
from typing import Callable, Optional

from .errors import Cancelled


class TokenBucket:
    """Thread-safe token bucket admitting ``rate_per_minute`` calls.

    With ``burst=1`` calls are strictly paced one interval apart.
    """

    def __init__(
        self,
        rate_per_minute: float,
        burst: int = 1,
        clock: Callable[[], float] = time.monotonic,
    ):
        if rate_per_minute <= 0:
            raise ValueError("rate_per_minute must be > 0")
        if burst < 1:
            raise ValueError("burst must be >= 1")
        self.interval = 60.0 / rate_per_minute
        self.burst = burst
        self._clock = clock
        self._tokens = float(burst)
        self._last = clock()
        self._lock = threading.Lock()

    def _refill(self, now: float) -> None:
        elapsed = max(0.0, now - self._last)
        self._tokens = min(float(self.burst), self._tokens + elapsed / self.interval)
        self._last = now

    def reserve(self) -> float:
        """Take one token and return how many seconds to wait before using it.

        The token count may go negative; later callers then queue behind
        earlier reservations.
        """
        with self._lock:
            self._refill(self._clock())
            self._tokens -= 1.0
            if self._tokens >= 0:
                return 0.0
            return -self._tokens * self.interval

    def cancel_reservation(self) -> None:
        """Return a reserved but unused token."""
        with self._lock:
            self._refill(self._clock())
            self._tokens = min(float(self.burst), self._tokens + 1.0)

    def wait(self, cancel: Optional[threading.Event] = None) -> None:
        """Block until a call is admitted.

        Raises:
            Cancelled: If the cancel event is set before or during the wait
        """
        if cancel is not None and cancel.is_set():
            raise Cancelled("rate limit wait cancelled")

        delay = self.reserve()
        if delay <= 0:
            return

        if cancel is None:
            time.sleep(delay)
            return

        if cancel.wait(delay):
            self.cancel_reservation()
            raise Cancelled("rate limit wait cancelled")

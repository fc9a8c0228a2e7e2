"""Run-wide shared counters: request rate ceiling and error budget."""

import threading
import time
from typing import Callable, Optional


class RateState:
    """Requests-before-pause ceiling shared by every transport call.

    ``acquire()`` is one critical section: the worker that finds the ceiling
    reached sleeps while holding the lock, then resets the counter to 1.
    Workers already past ``acquire()`` are unaffected.
    """

    def __init__(self, requests_limit: int = 2000, sleep_time: float = 5,
                 verbose: bool = False, sink=None, logger=None,
                 sleep: Callable[[float], None] = time.sleep):
        self.requests_limit = max(1, int(requests_limit))
        self.sleep_time = sleep_time
        self.verbose = verbose
        self.requests_sent = 0
        self.pauses = 0
        self.sink = sink
        self.logger = logger
        self._sleep = sleep
        self._lock = threading.Lock()

    def acquire(self) -> None:
        with self._lock:
            if self.requests_sent >= self.requests_limit:
                msg = (f"The rate limit for requests has been reached. "
                       f"Sleeping for {self.sleep_time} seconds...")
                show = self.verbose and self.sink is not None
                if show:
                    self.sink.println(msg)
                elif self.logger:
                    self.logger.debug(msg)
                self._sleep(self.sleep_time)
                self.pauses += 1
                self.requests_sent = 1
                if show:
                    self.sink.println("Continuing...")
            else:
                self.requests_sent += 1

    def snapshot(self) -> dict:
        """Read-only view for scripts."""
        with self._lock:
            return {
                "requests_sent": self.requests_sent,
                "requests_limit": self.requests_limit,
                "sleep_time": self.sleep_time,
                "pauses": self.pauses,
            }


class ErrorBudget:
    """Counts recoverable failures; ``exit_after=0`` means unlimited."""

    def __init__(self, exit_after: int = 2000, on_exhausted: Optional[Callable[[], None]] = None):
        self.exit_after = max(0, int(exit_after))
        self.errors = 0
        self._on_exhausted = on_exhausted
        self._lock = threading.Lock()
        self._exhausted = threading.Event()

    def record(self) -> bool:
        """Count one error. Returns True once the threshold is reached."""
        with self._lock:
            self.errors += 1
            hit = bool(self.exit_after) and self.errors >= self.exit_after
            first = hit and not self._exhausted.is_set()
            if hit:
                self._exhausted.set()
        if first and self._on_exhausted:
            self._on_exhausted()
        return hit

    @property
    def exhausted(self) -> bool:
        return self._exhausted.is_set()

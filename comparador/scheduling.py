"""Cancellable timers, debouncing and request generations.

Lookups triggered by user input are delayed (debounce / settle) and every
request carries a generation token. A response is only committed when its
token is still the current one, so a slow stale response never overwrites
newer data.
"""

import threading
from typing import Any, Callable, Optional


class CancellableTimer:
    """A one-shot scheduled call that can be cancelled before it fires."""

    def __init__(self, delay_seconds: float, callback: Callable[..., Any], *args, **kwargs):
        self.delay_seconds = delay_seconds
        self.callback = callback
        self.args = args
        self.kwargs = kwargs
        self._timer: Optional[threading.Timer] = None
        self._fired = threading.Event()
        self._claim_lock = threading.Lock()

    def start(self) -> "CancellableTimer":
        self._timer = threading.Timer(self.delay_seconds, self._run)
        self._timer.daemon = True
        self._timer.start()
        return self

    def claim(self) -> bool:
        """Mark the call as taken. Only the first claimant may run the callback."""
        with self._claim_lock:
            if self._fired.is_set():
                return False
            self._fired.set()
            return True

    def run_now(self) -> bool:
        self.cancel()
        if not self.claim():
            return False
        self.callback(*self.args, **self.kwargs)
        return True

    def _run(self):
        if self.claim():
            self.callback(*self.args, **self.kwargs)

    def cancel(self):
        if self._timer is not None:
            self._timer.cancel()

    @property
    def fired(self) -> bool:
        return self._fired.is_set()

    @property
    def active(self) -> bool:
        return self._timer is not None and self._timer.is_alive() and not self.fired


class Debouncer:
    """Coalesce rapid calls into one call after ``delay_seconds`` of quiet.

    Each call cancels the pending timer and reschedules with the latest
    arguments.
    """

    def __init__(self, delay_seconds: float, callback: Callable[..., Any]):
        self.delay_seconds = delay_seconds
        self.callback = callback
        self._pending: Optional[CancellableTimer] = None
        self._lock = threading.Lock()

    def __call__(self, *args, **kwargs):
        with self._lock:
            if self._pending is not None:
                self._pending.cancel()
            self._pending = CancellableTimer(self.delay_seconds, self.callback, *args, **kwargs).start()

    def cancel(self):
        with self._lock:
            if self._pending is not None:
                self._pending.cancel()
                self._pending = None

    def flush(self) -> bool:
        """Run the pending call now. Returns False if nothing was pending."""
        with self._lock:
            pending = self._pending
            self._pending = None
        if pending is None:
            return False
        return pending.run_now()

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._pending is not None and self._pending.active


class RequestGeneration:
    """Monotonic request counter used to discard superseded responses."""

    def __init__(self):
        self._value = 0
        self._lock = threading.Lock()

    def next(self) -> int:
        with self._lock:
            self._value += 1
            return self._value

    def invalidate(self):
        self.next()

    @property
    def current(self) -> int:
        with self._lock:
            return self._value

    def is_current(self, token: int) -> bool:
        return token == self.current

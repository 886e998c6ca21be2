from __future__ import annotations

import threading
import time
from typing import Callable, Dict, Optional

from .backoff import sleep_or_cancel


class RateLimiter:
    """Thread-safe per-domain throttle based on requests per minute.

    Calling acquire(domain) blocks the current thread until a request to that
    domain is allowed, then records the issuance time. Requests to the same
    domain are serialized by a per-domain lock so their issuance times are
    always at least ``60 / requests_per_minute`` seconds apart; different
    domains never wait on each other."""

    def __init__(
        self,
        requests_per_minute: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._interval = 60.0 / requests_per_minute if requests_per_minute > 0 else 0.0
        self._clock = clock
        self._lock = threading.Lock()
        self._domain_locks: Dict[str, threading.Lock] = {}
        self._last_request: Dict[str, float] = {}

    @property
    def interval(self) -> float:
        return self._interval

    def last_request_time(self, domain: str) -> Optional[float]:
        with self._lock:
            return self._last_request.get(domain.lower())

    def acquire(self, domain: str, cancel: Optional[threading.Event] = None) -> float:
        """Block until a request to ``domain`` is permitted and return its issuance time."""
        key = domain.lower()
        with self._domain_lock(key):
            while True:
                now = self._clock()
                last = self.last_request_time(key)
                wait = 0.0 if last is None else last + self._interval - now
                if wait <= 0:
                    break
                sleep_or_cancel(wait, cancel)
            with self._lock:
                self._last_request[key] = now
            return now

    def reset(self) -> None:
        with self._lock:
            self._last_request.clear()

    def _domain_lock(self, key: str) -> threading.Lock:
        with self._lock:
            lock = self._domain_locks.get(key)
            if lock is None:
                lock = self._domain_locks[key] = threading.Lock()
            return lock

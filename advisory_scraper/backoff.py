from __future__ import annotations

import random
import threading
import time
from typing import Optional

from .errors import ScrapeCancelled


class BackoffStrategy:
    """Exponential backoff with additive jitter for retry delays.

    The delay after failed attempt ``n`` is ``min(base * 2^(n-1), max)``
    plus a uniform random jitter in ``[0, jitter_max]``."""

    def __init__(self, base_seconds: float = 2.0, max_seconds: float = 30.0, jitter_max: float = 1.0) -> None:
        self._base = base_seconds
        self._max = max_seconds
        self._jitter_max = jitter_max

    def base_delay(self, attempt: int) -> float:
        """Delay without jitter after the given failed attempt (1-based)."""
        return min(self._max, self._base * (2 ** max(attempt - 1, 0)))

    def get_sleep(self, attempt: int, error_type: Optional[str] = None) -> float:
        """Calculate the backoff sleep duration in seconds for a given retry attempt."""
        jitter = random.uniform(0, self._jitter_max) if self._jitter_max > 0 else 0.0
        return self.base_delay(attempt) + jitter


def sleep_or_cancel(seconds: float, cancel: Optional[threading.Event] = None) -> None:
    """Sleep for ``seconds`` unless ``cancel`` is set first.

    Raises ScrapeCancelled if the event is already set or gets set while
    sleeping."""
    if cancel is None:
        if seconds > 0:
            time.sleep(seconds)
        return
    if cancel.is_set():
        raise ScrapeCancelled("cancelled before sleep")
    if seconds > 0 and cancel.wait(seconds):
        raise ScrapeCancelled("cancelled while sleeping")

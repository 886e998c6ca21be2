from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Optional

from .models import ScrapeOutcome


class ThreadPoolController:
    """Runs per-URL work on a bounded thread pool.

    submit() blocks while ``max_workers`` URLs are already in flight. stop() sets
    the shared cancellation event so in-flight URLs abort at their next
    sleep or retry, and URLs submitted afterwards come back as failed
    without running.
    """

    def __init__(self, max_workers: int, cancel: Optional[threading.Event] = None) -> None:
        self._executor = ThreadPoolExecutor(max_workers=max_workers)

        self._lock = threading.Lock()
        self._cv = threading.Condition(self._lock)

        self._limit = max(1, max_workers)
        self._active = 0
        self._running = False
        self.cancel = cancel or threading.Event()

    def start(self) -> None:
        self._running = True

    def stop(self, wait: bool = True) -> None:
        with self._cv:
            self._running = False
            self.cancel.set()
            self._cv.notify_all()
        self._executor.shutdown(wait=wait, cancel_futures=False)

    def shutdown(self) -> None:
        """Wait for in-flight work without cancelling it."""
        with self._cv:
            self._running = False
            self._cv.notify_all()
        self._executor.shutdown(wait=True)

    def submit(self, fn: Callable[[str], ScrapeOutcome], url: str) -> Future:
        """Submit a URL for processing, blocking if at concurrency limit."""
        with self._cv:
            while self._running and self._active >= self._limit:
                self._cv.wait(timeout=0.5)

            if not self._running:
                return self._executor.submit(self._stopped_result, url)

            self._active += 1

        return self._executor.submit(self._wrap_task, fn, url)

    def _wrap_task(self, fn: Callable[[str], ScrapeOutcome], url: str) -> ScrapeOutcome:
        try:
            return fn(url)
        finally:
            with self._cv:
                self._active = max(0, self._active - 1)
                self._cv.notify_all()

    @staticmethod
    def _stopped_result(url: str) -> ScrapeOutcome:
        return ScrapeOutcome.failed(url, "ControllerStopped")

    @property
    def active(self) -> int:
        with self._cv:
            return self._active

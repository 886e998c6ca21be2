"""Tests for the ThreadPoolController."""

import threading
import time
import unittest

from advisory_scraper.controller import ThreadPoolController
from advisory_scraper.models import ScrapeOutcome, ScrapeStatus


class TestThreadPoolController(unittest.TestCase):
    """Verify bounded concurrency and stop semantics."""

    def test_runs_submitted_work(self):
        """Results come back in submission order."""
        controller = ThreadPoolController(max_workers=2)
        controller.start()
        futures = [controller.submit(lambda u: ScrapeOutcome.failed(u, "done"), f"https://e.com/{i}") for i in range(4)]
        results = [f.result() for f in futures]
        controller.shutdown()
        self.assertEqual([r.url for r in results], [f"https://e.com/{i}" for i in range(4)])

    def test_never_exceeds_limit(self):
        """No more than max_workers tasks run at once."""
        controller = ThreadPoolController(max_workers=2)
        controller.start()
        lock = threading.Lock()
        running = [0]
        peak = [0]

        def work(url):
            with lock:
                running[0] += 1
                peak[0] = max(peak[0], running[0])
            time.sleep(0.02)
            with lock:
                running[0] -= 1
            return ScrapeOutcome.failed(url, "done")

        futures = [controller.submit(work, f"https://e.com/{i}") for i in range(6)]
        for f in futures:
            f.result()
        controller.shutdown()
        self.assertLessEqual(peak[0], 2)
        self.assertEqual(controller.active, 0)

    def test_stopped_result(self):
        """Stopped submissions produce a failed outcome."""
        outcome = ThreadPoolController._stopped_result("https://e.com/x")
        self.assertEqual(outcome.status, ScrapeStatus.FAILED)
        self.assertEqual(outcome.record.issues, ("ControllerStopped",))

    def test_not_started_returns_stopped(self):
        """Work submitted before start() is not run."""
        controller = ThreadPoolController(max_workers=1)
        future = controller.submit(lambda u: ScrapeOutcome.failed(u, "ran"), "https://e.com/x")
        self.assertEqual(future.result().record.issues, ("ControllerStopped",))
        controller.shutdown()

    def test_shares_cancel_event(self):
        """stop() sets the caller's cancel event."""
        cancel = threading.Event()
        controller = ThreadPoolController(max_workers=1, cancel=cancel)
        self.assertIs(controller.cancel, cancel)
        controller.stop()
        self.assertTrue(cancel.is_set())


if __name__ == "__main__":
    unittest.main()

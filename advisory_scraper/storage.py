from __future__ import annotations

import csv
import json
import logging
import os
import queue
import threading
from abc import ABC, abstractmethod
from typing import Dict, Iterable, Optional

from .models import ExtractedRecord, ScrapeOutcome, ScrapeState

logger = logging.getLogger(__name__)


class StateStore(ABC):
    """Abstract base class for persisted scrape state.

    The orchestrator reads a URL's previous outcome before doing any network
    work (idempotency) and writes the terminal outcome afterwards. Writes are
    whole-record overwrites keyed by URL.
    """

    @abstractmethod
    def get(self, url: str) -> Optional[ScrapeOutcome]:
        """Return the last stored outcome for ``url``, if any."""

    @abstractmethod
    def put(self, outcome: ScrapeOutcome) -> None:
        """Persist a single terminal outcome."""

    def close(self) -> None:
        """Flush pending writes and release resources."""


class InMemoryStateStore(StateStore):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._outcomes: Dict[str, ScrapeOutcome] = {}

    def get(self, url: str) -> Optional[ScrapeOutcome]:
        with self._lock:
            return self._outcomes.get(url)

    def put(self, outcome: ScrapeOutcome) -> None:
        with self._lock:
            self._outcomes[outcome.url] = outcome

    def __len__(self) -> int:
        with self._lock:
            return len(self._outcomes)


class JsonlStateStore(StateStore):
    """Stores outcomes as JSON Lines (.jsonl) using a background writer thread.

    The file is append-only; on load the last line for a URL wins."""

    def __init__(self, path: str) -> None:
        self._path = path
        self._lock = threading.Lock()
        self._outcomes: Dict[str, ScrapeOutcome] = self._load(path)
        self._queue: queue.Queue[Optional[ScrapeOutcome]] = queue.Queue()
        self._thread = threading.Thread(target=self._writer, daemon=True)
        self._thread.start()

    def get(self, url: str) -> Optional[ScrapeOutcome]:
        with self._lock:
            return self._outcomes.get(url)

    def put(self, outcome: ScrapeOutcome) -> None:
        """Record the outcome and enqueue it for background writing."""
        with self._lock:
            self._outcomes[outcome.url] = outcome
        self._queue.put(outcome)

    def close(self) -> None:
        """Signal the writer thread to flush and stop."""
        self._queue.put(None)
        self._thread.join(timeout=5)

    def _writer(self) -> None:
        with open(self._path, "a", encoding="utf-8") as f:
            while True:
                item = self._queue.get()
                if item is None:
                    break
                record = {"state": item.state.to_dict(), "record": item.record.to_dict()}
                f.write(json.dumps(record, ensure_ascii=False) + "\n")
                f.flush()

    @staticmethod
    def _load(path: str) -> Dict[str, ScrapeOutcome]:
        outcomes: Dict[str, ScrapeOutcome] = {}
        if not os.path.exists(path):
            return outcomes
        with open(path, "r", encoding="utf-8") as f:
            for lineno, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    data = json.loads(line)
                    state = ScrapeState.from_dict(data["state"])
                    record = ExtractedRecord.from_dict(data["record"])
                except (ValueError, KeyError, TypeError) as exc:
                    logger.warning("skipping unreadable line %d in %s: %s", lineno, path, exc)
                    continue
                outcomes[state.url] = ScrapeOutcome(state=state, record=record)
        return outcomes


CSV_COLUMNS = (
    "url", "status", "scraped_at", "vendor_used", "patch_id", "fix_version", "affected_versions",
    "remediation", "download_links", "identifiers", "quality_score", "classification", "issues",
)


def write_csv(outcomes: Iterable[ScrapeOutcome], path: str) -> int:
    """Write one row per outcome; list fields are joined with ``" | "``. Returns the row count."""
    rows = 0
    with open(path, "w", encoding="utf-8", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=CSV_COLUMNS)
        writer.writeheader()
        for outcome in outcomes:
            record = outcome.record.to_dict()
            for name in ("download_links", "identifiers", "issues"):
                record[name] = " | ".join(record[name])
            record["status"] = outcome.status.value
            record["scraped_at"] = outcome.state.scraped_at or ""
            writer.writerow({column: record.get(column) for column in CSV_COLUMNS})
            rows += 1
    logger.info("wrote %d rows to %s", rows, path)
    return rows

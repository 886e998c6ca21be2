"""Tests for the state stores."""

import csv
import json
import os
import tempfile
import unittest

from advisory_scraper.models import ExtractedRecord, ScrapeOutcome, ScrapeState, ScrapeStatus
from advisory_scraper.storage import CSV_COLUMNS, InMemoryStateStore, JsonlStateStore, write_csv


def _outcome(url, status=ScrapeStatus.SUCCESS, patch_id="USN-6543-1"):
    state = ScrapeState(url=url, status=status, scraped_at="2024-05-01T10:00:00+00:00", attempts=1,
                        history=[ScrapeStatus.PENDING, ScrapeStatus.FETCHING, status])
    record = ExtractedRecord(url=url, vendor_used="Ubuntu", patch_id=patch_id, quality_score=25)
    return ScrapeOutcome(state=state, record=record)


class TestInMemoryStateStore(unittest.TestCase):
    def test_put_overwrites(self):
        """A second put for the same URL replaces the first."""
        store = InMemoryStateStore()
        store.put(_outcome("https://e.com/a", patch_id="USN-1-1"))
        store.put(_outcome("https://e.com/a", patch_id="USN-2-1"))
        self.assertEqual(len(store), 1)
        self.assertEqual(store.get("https://e.com/a").record.patch_id, "USN-2-1")
        self.assertIsNone(store.get("https://e.com/b"))


class TestJsonlStateStore(unittest.TestCase):
    """Verify persistence across store instances."""

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.path = os.path.join(self.tmpdir.name, "results.jsonl")

    def tearDown(self):
        self.tmpdir.cleanup()

    def test_written_and_reloaded(self):
        """Outcomes written to disk load back in a new store."""
        store = JsonlStateStore(self.path)
        store.put(_outcome("https://e.com/a"))
        store.put(_outcome("https://e.com/b", status=ScrapeStatus.BLOCKED, patch_id=None))
        store.close()

        with open(self.path, encoding="utf-8") as f:
            lines = [json.loads(line) for line in f if line.strip()]
        self.assertEqual(len(lines), 2)
        self.assertEqual(lines[0]["state"]["status"], "Success")
        self.assertEqual(lines[1]["record"]["url"], "https://e.com/b")

        reloaded = JsonlStateStore(self.path)
        try:
            outcome = reloaded.get("https://e.com/a")
            self.assertEqual(outcome.record.patch_id, "USN-6543-1")
            self.assertEqual(outcome.state.scraped_at, "2024-05-01T10:00:00+00:00")
            self.assertEqual(reloaded.get("https://e.com/b").status, ScrapeStatus.BLOCKED)
        finally:
            reloaded.close()

    def test_last_line_wins(self):
        """The latest line for a URL wins on load."""
        store = JsonlStateStore(self.path)
        store.put(_outcome("https://e.com/a", patch_id="USN-1-1"))
        store.put(_outcome("https://e.com/a", patch_id="USN-2-1"))
        store.close()

        reloaded = JsonlStateStore(self.path)
        try:
            self.assertEqual(reloaded.get("https://e.com/a").record.patch_id, "USN-2-1")
        finally:
            reloaded.close()

    def test_unreadable_lines_skipped(self):
        """Malformed lines are skipped on load."""
        with open(self.path, "w", encoding="utf-8") as f:
            f.write("not json\n")
            f.write(json.dumps({"state": {"status": "Success"}}) + "\n")
            f.write("\n")
        with self.assertLogs("advisory_scraper.storage", level="WARNING") as logs:
            store = JsonlStateStore(self.path)
        try:
            self.assertEqual(len(logs.records), 2)
            self.assertIsNone(store.get("https://e.com/a"))
        finally:
            store.close()


class TestWriteCsv(unittest.TestCase):
    def test_one_row_per_outcome(self):
        """Each outcome becomes one CSV row."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "records.csv")
            outcome = ScrapeOutcome(
                state=ScrapeState(url="https://e.com/a", status=ScrapeStatus.SUCCESS, scraped_at="2024-05-01T10:00:00+00:00"),
                record=ExtractedRecord(
                    url="https://e.com/a",
                    vendor_used="Generic",
                    fix_version="1.2.3",
                    download_links=("https://e.com/a.zip", "https://e.com/b.zip"),
                    issues=("Text too short",),
                ),
            )
            rows = write_csv([outcome, _outcome("https://e.com/b", status=ScrapeStatus.BLOCKED)], path)
            with open(path, encoding="utf-8", newline="") as f:
                reader = list(csv.DictReader(f))
        self.assertEqual(rows, 2)
        self.assertEqual(tuple(reader[0].keys()), CSV_COLUMNS)
        self.assertEqual(reader[0]["download_links"], "https://e.com/a.zip | https://e.com/b.zip")
        self.assertEqual(reader[0]["status"], "Success")
        self.assertEqual(reader[0]["patch_id"], "")
        self.assertEqual(reader[1]["status"], "Blocked")


if __name__ == "__main__":
    unittest.main()

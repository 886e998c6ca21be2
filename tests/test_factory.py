"""Tests for pipeline composition."""

import unittest

from advisory_scraper.config import ScraperConfig
from advisory_scraper.factory import build_fetcher, build_orchestrator, default_strategies
from advisory_scraper.models import FetchRequest, ScrapeStatus
from advisory_scraper.vendors import GenericStrategy, MsrcStrategy

from fakes import FakeBulletinClient, FakeResponse, ScriptedSessionFactory


class TestDefaultStrategies(unittest.TestCase):
    """Verify the default vendor registry."""

    def test_generic_is_last_and_shared(self):
        """Exactly one fallback strategy, placed last."""
        strategies = default_strategies()
        self.assertIsInstance(strategies[-1], GenericStrategy)
        self.assertTrue(strategies[-1].fallback)
        self.assertEqual(sum(1 for s in strategies if s.fallback), 1)

    def test_bulletin_client_wired_into_msrc(self):
        """The bulletin client reaches the Microsoft strategy."""
        client = FakeBulletinClient()
        msrc = next(s for s in default_strategies(client) if isinstance(s, MsrcStrategy))
        url = "https://msrc.microsoft.com/update-guide/vulnerability/CVE-2024-20666"
        msrc.get_api_data(url, fetcher=None)
        self.assertEqual(client.years_listed, [2024, 2023, 2025])


class TestBuilders(unittest.TestCase):
    def test_build_fetcher_uses_config(self):
        """Retry count comes from the configuration."""
        config = ScraperConfig(max_retries=2, requests_per_minute=0, base_delay=0, jitter_max=0)
        factory = ScriptedSessionFactory(default=FakeResponse(500))
        fetcher = build_fetcher(config, session_factory=factory)
        result = fetcher.fetch(FetchRequest("https://e.com/a"))
        self.assertEqual(fetcher.max_retries, 2)
        self.assertEqual(result.attempts, 2)

    def test_build_orchestrator(self):
        """A built orchestrator runs a URL end to end."""
        config = ScraperConfig(max_retries=1, requests_per_minute=0)
        factory = ScriptedSessionFactory({"https://e.com/a": [FakeResponse(403)]})
        orchestrator = build_orchestrator(config, session_factory=factory)
        outcome = orchestrator.run("https://e.com/a")
        self.assertEqual(outcome.status, ScrapeStatus.BLOCKED)
        self.assertIs(orchestrator.state_store.get("https://e.com/a"), outcome)


if __name__ == "__main__":
    unittest.main()

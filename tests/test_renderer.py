"""Tests for PlaywrightRenderer with the browser mocked out."""

import unittest
from unittest import mock

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeout

from advisory_scraper.base import Renderer
from advisory_scraper.renderer import PlaywrightRenderer

URL = "https://msrc.microsoft.com/update-guide/vulnerability/CVE-2024-20666"


def _browser(status=200, content="<html><body>KB5001234</body></html>", goto_error=None):
    page = mock.MagicMock()
    if goto_error is not None:
        page.goto.side_effect = goto_error
    else:
        page.goto.return_value = mock.MagicMock(status=status)
    page.content.return_value = content
    browser = mock.MagicMock()
    browser.new_page.return_value = page
    playwright = mock.MagicMock()
    playwright.chromium.launch.return_value = browser
    manager = mock.MagicMock()
    manager.return_value.__enter__.return_value = playwright
    return manager, browser, page


class TestPlaywrightRenderer(unittest.TestCase):
    """Verify that rendering never raises and reports failures as results."""

    def test_is_a_renderer(self):
        """PlaywrightRenderer satisfies the Renderer protocol."""
        self.assertIsInstance(PlaywrightRenderer(), Renderer)

    def test_success(self):
        """A loaded page returns its DOM."""
        manager, browser, page = _browser()
        with mock.patch("advisory_scraper.renderer.sync_playwright", manager):
            result = PlaywrightRenderer(timeout_seconds=10).render(URL, wait_seconds=2)
        self.assertTrue(result.success)
        self.assertIn("KB5001234", result.content)
        self.assertEqual(result.status_code, 200)
        page.wait_for_timeout.assert_called_once_with(2000)
        browser.close.assert_called_once()

    def test_error_status(self):
        """An HTTP error status is a failed render."""
        manager, _, _ = _browser(status=404)
        with mock.patch("advisory_scraper.renderer.sync_playwright", manager):
            result = PlaywrightRenderer().render(URL)
        self.assertFalse(result.success)
        self.assertEqual(result.error, "HTTP 404")

    def test_timeout(self):
        """Navigation timeouts are reported, not raised."""
        manager, browser, _ = _browser(goto_error=PlaywrightTimeout("Timeout 30000ms exceeded"))
        with mock.patch("advisory_scraper.renderer.sync_playwright", manager):
            result = PlaywrightRenderer().render(URL)
        self.assertFalse(result.success)
        self.assertIn("Timeout", result.error)
        browser.close.assert_called_once()

    def test_browser_error(self):
        """Browser errors are reported, not raised."""
        manager, _, _ = _browser(goto_error=PlaywrightError("net::ERR_NAME_NOT_RESOLVED"))
        with mock.patch("advisory_scraper.renderer.sync_playwright", manager):
            result = PlaywrightRenderer().render(URL)
        self.assertFalse(result.success)
        self.assertIn("ERR_NAME_NOT_RESOLVED", result.error)

    def test_network_idle_timeout_is_tolerated(self):
        """A page that never goes idle is still returned."""
        manager, _, page = _browser()
        page.wait_for_load_state.side_effect = PlaywrightTimeout("still loading")
        with mock.patch("advisory_scraper.renderer.sync_playwright", manager):
            result = PlaywrightRenderer().render(URL, wait_seconds=0)
        self.assertTrue(result.success)


if __name__ == "__main__":
    unittest.main()

"""Tests for the VendorStrategy base class and host helpers."""

import unittest

from advisory_scraper.base import Renderer, VendorStrategy, host_matches, host_of
from advisory_scraper.models import PartialRecord

from fakes import FakeRenderer, failed_render


class ShellStrategy(VendorStrategy):
    name = "Shell"
    render_sensitive = True
    js_shell_threshold = 100

    def can_handle(self, url):
        return True

    def extract_data(self, content, url):
        return PartialRecord()


class TestVendorStrategy(unittest.TestCase):
    """Verify the defaults every strategy inherits."""

    def test_cannot_instantiate_abstract(self):
        """The strategy base class cannot be used directly."""
        with self.assertRaises(TypeError):
            VendorStrategy()

    def test_default_api_path_fails(self):
        """Strategies without an API report a failed API result naming themselves."""
        result = ShellStrategy().get_api_data("https://e.com", fetcher=None)
        self.assertFalse(result.success)
        self.assertIn("Shell", result.error)

    def test_needs_render_counts_bytes(self):
        """Pages under the byte threshold need rendering."""
        strategy = ShellStrategy()
        self.assertTrue(strategy.needs_render(None))
        self.assertTrue(strategy.needs_render("x" * 99))
        self.assertFalse(strategy.needs_render("x" * 100))
        # 34 characters, 102 bytes in UTF-8
        self.assertFalse(strategy.needs_render("€" * 34))

    def test_repr(self):
        """repr shows the strategy name."""
        self.assertEqual(repr(ShellStrategy()), "ShellStrategy(name='Shell')")


class TestHostHelpers(unittest.TestCase):
    def test_host_of_strips_www(self):
        """Hosts are lowercased without a leading www."""
        self.assertEqual(host_of("https://WWW.Ubuntu.com/security"), "ubuntu.com")

    def test_host_matches_subdomains(self):
        """Subdomains match, lookalike hosts do not."""
        self.assertTrue(host_matches("https://security.ubuntu.com/x", "ubuntu.com"))
        self.assertTrue(host_matches("https://ubuntu.com/x", "ubuntu.com"))
        self.assertFalse(host_matches("https://notubuntu.com/x", "ubuntu.com"))


class TestRendererProtocol(unittest.TestCase):
    def test_objects_with_render_conform(self):
        """Anything with a render(url, wait_seconds) method is a Renderer."""
        self.assertIsInstance(FakeRenderer(failed_render()), Renderer)
        self.assertNotIsInstance(object(), Renderer)


if __name__ == "__main__":
    unittest.main()

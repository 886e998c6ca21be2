"""Tests for the stateless extraction helpers."""

import unittest

from advisory_scraper.errors import ExtractionFieldError
from advisory_scraper.extractor import (
    clean_html,
    extract_commit_hashes,
    extract_download_links,
    extract_identifiers,
    extract_kbs,
    extract_versions,
    filter_links,
    guard_field,
    is_excluded_link,
    looks_downloadable,
    unique,
)

BASE = "https://vendor.example.com/advisories/1"


class TestCleanHtml(unittest.TestCase):
    """Verify tag, script and entity removal."""

    def test_strips_tags_scripts_and_entities(self):
        """Tags and scripts are removed and entities decoded."""
        html = "<p>Hello&nbsp;<b>world</b></p><script>var x = 1;</script>"
        self.assertEqual(clean_html(html), "Hello world")

    def test_block_tags_become_newlines(self):
        """Block level tags break lines."""
        html = "<h2>Fix</h2><p>Upgrade now</p>"
        self.assertEqual(clean_html(html), "Fix\nUpgrade now")

    def test_removes_style_noscript_and_comments(self):
        """Style, noscript and comment blocks are dropped."""
        html = "<style>.a{color:red}</style><noscript>enable js</noscript><!-- hidden -->Visible"
        self.assertEqual(clean_html(html), "Visible")

    def test_removes_script_artifacts(self):
        """Leftover script fragments are stripped from text."""
        text = clean_html("<div>Patch undefined {x: 1} available</div>")
        self.assertNotIn("undefined", text)
        self.assertNotIn("{", text)
        self.assertEqual(text, "Patch available")

    def test_decodes_common_entities(self):
        """Named entities map to plain characters."""
        self.assertEqual(clean_html("a &amp; b &lt;c&gt; &quot;d&quot;"), 'a & b <c> "d"')

    def test_empty_input(self):
        """Empty or missing HTML yields an empty string."""
        self.assertEqual(clean_html(None), "")
        self.assertEqual(clean_html(""), "")


class TestEntityExtraction(unittest.TestCase):
    def test_identifiers_are_unique_and_uppercased(self):
        """CVE identifiers are uppercased and deduplicated."""
        text = "cve-2024-1234 and CVE-2024-1234, also CVE-2023-44487"
        self.assertEqual(extract_identifiers(text), ["CVE-2024-1234", "CVE-2023-44487"])

    def test_kbs(self):
        """KB numbers are found with or without a space."""
        text = "Install KB5034441 and kb 5034439; KB5034441 again"
        self.assertEqual(extract_kbs(text), ["KB5034441", "KB5034439"])

    def test_kb_needs_six_digits(self):
        """Short KB numbers are ignored."""
        self.assertEqual(extract_kbs("KB12345"), [])

    def test_versions(self):
        """Version strings are found in text."""
        versions = extract_versions("Fixed in version 2.4.58 and v1.2.3-rc1")
        self.assertIn("2.4.58", versions)
        self.assertIn("1.2.3-rc1", versions)

    def test_commit_hashes(self):
        """Commit hashes come from commit URLs and bare SHA-1s."""
        sha = "0123456789abcdef0123456789abcdef01234567"
        text = f"see https://github.com/o/r/commit/ABC1234DEF and {sha}"
        self.assertEqual(extract_commit_hashes(text), ["abc1234def", sha])

    def test_unique_keeps_order(self):
        """unique() keeps first occurrences in order."""
        self.assertEqual(unique(["b", "a", "b", "c", "a"]), ["b", "a", "c"])


class TestDownloadLinks(unittest.TestCase):
    """Verify that only downloadable artifacts survive link extraction."""

    def test_extracts_and_filters(self):
        """Artifacts are kept, assets and mail links dropped."""
        html = (
            '<a href="/files/tool-1.2.zip">zip</a>'
            '<link rel="stylesheet" href="/static/app.css">'
            '<script src="https://cdn.example.com/jquery.min.js"></script>'
            '<a href="https://github.com/o/r/releases/download/v1/a.tar.gz">tarball</a>'
            '<a href="mailto:security@example.com">mail</a>'
            '<a href="/advisories/page.html">other advisory</a>'
        )
        links = extract_download_links(html, BASE)
        self.assertEqual(
            links,
            [
                "https://vendor.example.com/files/tool-1.2.zip",
                "https://github.com/o/r/releases/download/v1/a.tar.gz",
            ],
        )

    def test_unescapes_query_strings(self):
        """Entity-encoded query strings are decoded."""
        html = '<a href="https://download.microsoft.com/download/a/b/fix.msu?x=1&amp;y=2">msu</a>'
        self.assertEqual(
            extract_download_links(html, BASE),
            ["https://download.microsoft.com/download/a/b/fix.msu?x=1&y=2"],
        )

    def test_bare_urls_in_text(self):
        """URLs in plain text are harvested."""
        html = "<pre>Get it from https://www.catalog.update.microsoft.com/Search.aspx?q=KB5034441</pre>"
        self.assertEqual(
            extract_download_links(html, BASE),
            ["https://www.catalog.update.microsoft.com/Search.aspx?q=KB5034441"],
        )

    def test_fragment_is_dropped_from_link(self):
        """A checksum anchor on an artifact link must not hide the artifact."""
        html = '<a href="/downloads/fix-1.2.zip#sha256">fix</a>'
        self.assertEqual(
            extract_download_links(html, BASE),
            ["https://vendor.example.com/downloads/fix-1.2.zip"],
        )

    def test_unquoted_href(self):
        """Unquoted attribute values are still harvested."""
        html = "<p><a href=/downloads/fix-1.2.zip>fix</a></p>"
        self.assertEqual(
            extract_download_links(html, BASE),
            ["https://vendor.example.com/downloads/fix-1.2.zip"],
        )

    def test_empty(self):
        """Empty HTML yields no links."""
        self.assertEqual(extract_download_links("", BASE), [])

    def test_exclusion_rules(self):
        """Stylesheets, images and CMS assets are excluded."""
        self.assertTrue(is_excluded_link("https://example.com/site.css"))
        self.assertTrue(is_excluded_link("https://example.com/wp-content/plugins/x/y.zip"))
        self.assertTrue(is_excluded_link("https://example.com/logo.PNG"))
        self.assertFalse(is_excluded_link("https://example.com/pkg.rpm"))

    def test_downloadable_rules(self):
        """Archive extensions and download paths look downloadable."""
        self.assertTrue(looks_downloadable("https://example.com/pkg-1.0.deb"))
        self.assertTrue(looks_downloadable("https://software.cisco.com/download/home/123"))
        self.assertFalse(looks_downloadable("https://example.com/about"))

    def test_filter_links(self):
        """filter_links drops duplicates, blanks and excluded links."""
        links = ["https://e.com/a.zip", "https://e.com/a.zip", "https://e.com/b.css", ""]
        self.assertEqual(filter_links(links), ["https://e.com/a.zip"])


class TestGuardField(unittest.TestCase):
    """Verify that one failing field never aborts the record."""

    def test_returns_value(self):
        """A successful extractor's value is returned."""
        issues = []
        self.assertEqual(guard_field(issues, "fix_version", lambda: "1.2.3"), "1.2.3")
        self.assertEqual(issues, [])

    def test_field_error_recorded(self):
        """An ExtractionFieldError is recorded as an issue."""
        def boom():
            raise ExtractionFieldError("fix_version", "no version table")

        issues = []
        self.assertIsNone(guard_field(issues, "fix_version", boom))
        self.assertEqual(issues, ["fix_version: no version table"])

    def test_unexpected_error_recorded(self):
        """Other exceptions are recorded with the field name."""
        def boom():
            raise KeyError("missing")

        issues = []
        self.assertIsNone(guard_field(issues, "remediation", boom))
        self.assertEqual(len(issues), 1)
        self.assertTrue(issues[0].startswith("remediation: KeyError"))


if __name__ == "__main__":
    unittest.main()

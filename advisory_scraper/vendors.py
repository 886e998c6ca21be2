from __future__ import annotations

import base64
import json as _json
import logging
import re
from typing import Any, List, Optional, Pattern, Tuple
from urllib.parse import urlsplit

from bs4 import BeautifulSoup

from .base import VendorStrategy, host_matches
from .errors import BulletinLookupError, ScrapeCancelled
from .extractor import (
    clean_html,
    extract_commit_hashes,
    extract_download_links,
    extract_identifiers,
    extract_kbs,
    guard_field,
    looks_downloadable,
    unique,
)
from .models import ApiResult, FetchRequest, PartialRecord

logger = logging.getLogger(__name__)

MAX_REMEDIATION_CHARS = 1000

_REMEDIATION_SELECTORS = (
    '[id*="remediation" i]', '[class*="remediation" i]',
    '[id*="solution" i]', '[class*="solution" i]',
    '[id*="mitigation" i]', '[class*="mitigation" i]',
    '[id*="workaround" i]', '[class*="workaround" i]',
)

_REMEDIATION_HEADING_RE = re.compile(
    r"\b(?:remediation|solutions?|mitigations?|workarounds?|fix(?:es|ed)?|patch(?:es)?|"
    r"recommendations?|resolution|fixed releases?|update instructions)\b",
    re.IGNORECASE,
)

_HEADING_TAGS = ("h1", "h2", "h3", "h4", "h5", "h6", "dt")

_REMEDIATION_TEXT_RES = (
    re.compile(r"(?:remediation|solution|resolution)\s*[:\-]\s*([^\n]{20,800})", re.IGNORECASE),
    re.compile(r"(?:mitigations?|workarounds?)\s*[:\-]\s*([^\n]{20,800})", re.IGNORECASE),
    re.compile(r"((?:upgrade|update) to (?:version\s*)?v?\d[^\n]{0,300})", re.IGNORECASE),
    re.compile(r"((?:apply|install) (?:the )?(?:latest )?(?:security )?(?:update|patch)[^\n]{0,300})", re.IGNORECASE),
)

_VERSION_TOKEN = r"v?(\d+(?:\.\d+)+[\w.\-]*)"

_FIX_VERSION_RES = (
    re.compile(r"(?:fixed|patched|resolved|addressed) in (?:version\s*)?" + _VERSION_TOKEN, re.IGNORECASE),
    re.compile(r"(?:patched|fixed) versions?\s*:?\s*" + _VERSION_TOKEN, re.IGNORECASE),
    re.compile(r"(?:upgrade|update) to (?:version\s*)?" + _VERSION_TOKEN, re.IGNORECASE),
)

_AFFECTED_RES = (
    re.compile(r"affected versions?\s*:\s*([^\n]{3,200})", re.IGNORECASE),
    re.compile(
        r"(?:versions?\s+)?(?:prior to|before|earlier than|up to(?: and including)?)\s+(?:version\s*)?v?\d+(?:\.\d+)+[\w.\-]*",
        re.IGNORECASE,
    ),
)


def _truncate(text: str, limit: int = MAX_REMEDIATION_CHARS) -> str:
    text = re.sub(r"\s+", " ", text).strip()
    return text if len(text) <= limit else text[:limit].rstrip() + "..."


def _from_marked_section(soup: BeautifulSoup, text: str) -> Optional[str]:
    for selector in _REMEDIATION_SELECTORS:
        for element in soup.select(selector):
            found = element.get_text(" ", strip=True)
            if len(found) >= 20:
                return found
    return None


def _from_heading(soup: BeautifulSoup, text: str) -> Optional[str]:
    for heading in soup.find_all(_HEADING_TAGS):
        title = heading.get_text(" ", strip=True)
        if not title or len(title) > 80 or not _REMEDIATION_HEADING_RE.search(title):
            continue
        parts: List[str] = []
        for sibling in heading.find_next_siblings():
            if sibling.name in _HEADING_TAGS:
                break
            chunk = sibling.get_text(" ", strip=True)
            if chunk:
                parts.append(chunk)
            if sum(len(p) for p in parts) >= MAX_REMEDIATION_CHARS:
                break
        found = " ".join(parts)
        if len(found) >= 20:
            return found
    return None


def _from_labelled_text(soup: BeautifulSoup, text: str) -> Optional[str]:
    for pattern in _REMEDIATION_TEXT_RES:
        m = pattern.search(text)
        if m:
            return m.group(1)
    return None


# First match wins.
REMEDIATION_FINDERS = (_from_marked_section, _from_heading, _from_labelled_text)


def find_remediation(html: str, text: Optional[str] = None) -> Optional[str]:
    soup = BeautifulSoup(html or "", "html.parser")
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()
    if text is None:
        text = clean_html(html)
    for finder in REMEDIATION_FINDERS:
        found = finder(soup, text)
        if found:
            return _truncate(found)
    return None


def find_fix_version(text: str) -> Optional[str]:
    for pattern in _FIX_VERSION_RES:
        m = pattern.search(text)
        if m:
            return m.group(1).rstrip(".-")
    return None


def find_affected_versions(text: str) -> Optional[str]:
    for pattern in _AFFECTED_RES:
        m = pattern.search(text)
        if m:
            value = m.group(1) if pattern.groups else m.group(0)
            return _truncate(value.rstrip(".,;"), 200)
    return None


class GenericStrategy(VendorStrategy):
    """Catch-all extraction for any page; always last in dispatch order."""

    name = "Generic"
    fallback = True

    def can_handle(self, url: str) -> bool:
        return True

    def extract_data(self, content: str, url: str) -> PartialRecord:
        record = PartialRecord()
        text = clean_html(content)
        record.remediation = guard_field(record.issues, "remediation", lambda: find_remediation(content, text))
        record.fix_version = guard_field(record.issues, "fix_version", lambda: find_fix_version(text))
        record.affected_versions = guard_field(
            record.issues, "affected_versions", lambda: find_affected_versions(text)
        )
        record.add_links(guard_field(record.issues, "download_links", lambda: extract_download_links(content, url)) or [])
        record.identifiers = extract_identifiers(text)
        return record


class PatternVendorStrategy(VendorStrategy):
    """Vendor whose advisory id is visible in the URL or in a narrow content pattern.

    The id becomes the patch id; everything else comes from the generic
    extractor."""

    domains: Tuple[str, ...] = ()
    id_pattern: Pattern = re.compile(r"(?!)")
    uppercase_id: bool = True

    def __init__(self, generic: Optional[GenericStrategy] = None) -> None:
        self._generic = generic or GenericStrategy()

    def can_handle(self, url: str) -> bool:
        return host_matches(url, *self.domains)

    def advisory_id(self, url: str, content: Optional[str] = None) -> Optional[str]:
        m = self.id_pattern.search(url) or (self.id_pattern.search(content) if content else None)
        if not m:
            return None
        return m.group(0).upper() if self.uppercase_id else m.group(0)

    def extract_data(self, content: str, url: str) -> PartialRecord:
        record = self._generic.extract_data(content, url)
        advisory_id = guard_field(record.issues, "patch_id", lambda: self.advisory_id(url, content))
        if advisory_id:
            record.patch_id = advisory_id
        return record


class CiscoStrategy(PatternVendorStrategy):
    name = "Cisco"
    domains = ("sec.cloudapps.cisco.com", "tools.cisco.com")
    # the suffix after the product slug is case sensitive
    id_pattern = re.compile(r"cisco-sa-[A-Za-z0-9-]+", re.IGNORECASE)
    uppercase_id = False


class RedHatStrategy(PatternVendorStrategy):
    name = "RedHat"
    domains = ("access.redhat.com",)
    id_pattern = re.compile(r"RH[SBE]A-\d{4}:\d{4,5}", re.IGNORECASE)


class UbuntuStrategy(PatternVendorStrategy):
    name = "Ubuntu"
    domains = ("ubuntu.com",)
    id_pattern = re.compile(r"USN-\d{3,5}-\d{1,2}", re.IGNORECASE)


class FortinetStrategy(PatternVendorStrategy):
    name = "Fortinet"
    domains = ("fortiguard.com", "fortiguard.fortinet.com")
    id_pattern = re.compile(r"FG-IR-\d{2}-\d{3,4}", re.IGNORECASE)


GITHUB_API_BASE = "https://api.github.com"
GITHUB_API_HEADERS = {
    "Accept": "application/vnd.github+json",
    "User-Agent": "advisory-scraper/1.0",
    "X-GitHub-Api-Version": "2022-11-28",
}
README_EXCERPT_CHARS = 500

_GITHUB_RESERVED_OWNERS = frozenset(
    {"advisories", "orgs", "settings", "marketplace", "topics", "features", "security", "sponsors", "login", "about"}
)
_GHSA_RE = re.compile(r"GHSA(?:-[23456789cfghjmpqrvwx]{4}){3}", re.IGNORECASE)
_FENCED_CODE_RE = re.compile(r"```.*?```", re.DOTALL)
_MD_IMAGE_RE = re.compile(r"!\[[^\]]*\]\([^)]*\)")


def _json_payload(content: str) -> Any:
    try:
        return _json.loads(content)
    except ValueError:
        return None


class GitHubStrategy(VendorStrategy):
    """Repository host. Prefers the REST API over scraping the HTML page."""

    name = "GitHub"
    supports_api = True

    def can_handle(self, url: str) -> bool:
        return host_matches(url, "github.com")

    @staticmethod
    def repo_of(url: str) -> Optional[Tuple[str, str]]:
        parts = [p for p in urlsplit(url).path.split("/") if p]
        if len(parts) < 2 or parts[0].lower() in _GITHUB_RESERVED_OWNERS:
            return None
        repo = parts[1][:-4] if parts[1].endswith(".git") else parts[1]
        return parts[0], repo

    @staticmethod
    def patch_id_of(url: str) -> Optional[str]:
        m = _GHSA_RE.search(url)
        if m:
            return m.group(0)[:4].upper() + m.group(0)[4:].lower()
        if "/commit/" in url:
            hashes = extract_commit_hashes(url)
            if hashes:
                return hashes[0]
        return None

    def get_api_data(self, url: str, fetcher, cancel=None) -> ApiResult:
        repo = self.repo_of(url)
        if repo is None:
            return ApiResult(success=False, error=f"no repository in {url}")
        owner, name = repo
        api_root = f"{GITHUB_API_BASE}/repos/{owner}/{name}"

        meta_result = fetcher.fetch(FetchRequest(api_root, headers=GITHUB_API_HEADERS, use_session=False), cancel)
        attempts = meta_result.attempts
        if not meta_result.success:
            return ApiResult(success=False, error=meta_result.error, attempts=attempts)
        meta = _json_payload(meta_result.content)
        if not isinstance(meta, dict):
            return ApiResult(success=False, error="repository metadata is not a JSON object", attempts=attempts)

        record = PartialRecord()

        readme_result = fetcher.fetch(FetchRequest(f"{api_root}/readme", headers=GITHUB_API_HEADERS, use_session=False), cancel)
        attempts += readme_result.attempts
        readme = None
        if readme_result.success:
            readme = guard_field(record.issues, "readme", lambda: self._readme_excerpt(readme_result.content))
        else:
            record.issues.append(f"readme: {readme_result.error}")

        releases_result = fetcher.fetch(
            FetchRequest(f"{api_root}/releases?per_page=10", headers=GITHUB_API_HEADERS, use_session=False), cancel
        )
        attempts += releases_result.attempts
        releases: List[dict] = []
        if releases_result.success:
            payload = _json_payload(releases_result.content)
            releases = [r for r in payload if isinstance(r, dict)] if isinstance(payload, list) else []
        else:
            record.issues.append(f"releases: {releases_result.error}")

        latest = releases[0] if releases else None
        latest_tag = (latest or {}).get("tag_name")

        record.patch_id = self.patch_id_of(url)
        record.fix_version = latest_tag
        record.remediation = self._summary(meta, readme, latest)
        for release in releases:
            record.add_links(
                asset["browser_download_url"]
                for asset in release.get("assets") or []
                if isinstance(asset, dict) and asset.get("browser_download_url")
            )
        if latest_tag:
            html_root = meta.get("html_url") or f"https://github.com/{owner}/{name}"
            record.add_links(
                [
                    f"{html_root}/archive/refs/tags/{latest_tag}.zip",
                    f"{html_root}/archive/refs/tags/{latest_tag}.tar.gz",
                ]
            )
        record.identifiers = extract_identifiers(" ".join(filter(None, [url, meta.get("description"), readme])))
        return ApiResult(success=True, record=record, attempts=attempts)

    def extract_data(self, content: str, url: str) -> PartialRecord:
        record = PartialRecord(patch_id=self.patch_id_of(url))
        record.add_links(guard_field(record.issues, "download_links", lambda: extract_download_links(content, url)) or [])
        record.identifiers = extract_identifiers(clean_html(content))
        return record

    @staticmethod
    def _readme_excerpt(content: str) -> Optional[str]:
        payload = _json_payload(content)
        if not isinstance(payload, dict) or not payload.get("content"):
            return None
        raw = base64.b64decode(payload["content"]).decode("utf-8", errors="replace")
        raw = _FENCED_CODE_RE.sub(" ", raw)
        raw = _MD_IMAGE_RE.sub(" ", raw)
        text = re.sub(r"\s+", " ", clean_html(raw)).strip()
        return text[:README_EXCERPT_CHARS] if text else None

    @staticmethod
    def _summary(meta: dict, readme: Optional[str], latest: Optional[dict]) -> Optional[str]:
        parts = []
        if meta.get("description"):
            parts.append(meta["description"].strip())
        if readme:
            parts.append(f"README: {readme}")
        if latest and latest.get("tag_name"):
            line = f"Latest release: {latest['tag_name']}"
            if latest.get("name") and latest["name"] != latest["tag_name"]:
                line += f" ({latest['name']})"
            parts.append(line)
        return "\n".join(parts) or None


CATALOG_URL = "https://www.catalog.update.microsoft.com/Search.aspx?q={kb}"
_NUMERIC_KB_RE = re.compile(r"^\s*(\d{6,7})\s*$")


def catalog_link(kb: str) -> str:
    return CATALOG_URL.format(kb=kb)


class MsrcStrategy(VendorStrategy):
    """Vendor security bulletins looked up through the bulletin API.

    Bulletins are filed by month, and an identifier is not always filed under
    its own year, so the lookup searches the identifier's year, then the
    year before and the year after. The update guide HTML is a JavaScript
    shell; if the lookup fails, the orchestrator renders the page when the
    static HTML is below js_shell_threshold and extract_data scans it for
    KB references.
    """

    name = "Microsoft"
    supports_api = True
    render_sensitive = True
    js_shell_threshold = 5000

    def __init__(self, bulletin_client=None, generic: Optional[GenericStrategy] = None) -> None:
        self._client = bulletin_client
        self._generic = generic or GenericStrategy()

    def can_handle(self, url: str) -> bool:
        return host_matches(url, "msrc.microsoft.com")

    @staticmethod
    def search_years(identifier: str) -> List[int]:
        year = int(identifier.split("-")[1])
        return [year, year - 1, year + 1]

    def get_api_data(self, url: str, fetcher, cancel=None) -> ApiResult:
        if self._client is None:
            return ApiResult(success=False, error="bulletin lookup unavailable")
        identifiers = extract_identifiers(url)
        if not identifiers:
            return ApiResult(success=False, error=f"no CVE identifier in {url}")
        identifier = identifiers[0]

        for year in self.search_years(identifier):
            if cancel is not None and cancel.is_set():
                raise ScrapeCancelled("cancelled during bulletin lookup", url)
            try:
                updates = self._client.list_updates(year)
            except BulletinLookupError as exc:
                return ApiResult(success=False, error=str(exc))
            for update in updates:
                try:
                    document = self._client.get_document(update.id)
                except BulletinLookupError as exc:
                    logger.warning("skipping bulletin %s: %s", update.id, exc)
                    continue
                if identifier not in document.identifiers:
                    continue
                record = self.record_from_document(identifier, document)
                if record.has_key_fields():
                    logger.info("found %s in bulletin %s", identifier, document.id)
                    return ApiResult(success=True, record=record)
        return ApiResult(success=False, error=f"{identifier} not found in bulletins")

    def record_from_document(self, identifier: str, document) -> PartialRecord:
        record = PartialRecord(identifiers=[identifier])
        remediations = document.remediations_for(identifier)

        kbs: List[str] = []
        for rem in remediations:
            m = _NUMERIC_KB_RE.match(rem.description or "")
            if m:
                kbs.append(f"KB{m.group(1)}")
            kbs.extend(extract_kbs(f"{rem.description} {rem.url}"))
        kbs = unique(kbs)

        if kbs:
            record.patch_id = ", ".join(kbs)
            record.remediation = f"Install security update {', '.join(kbs)}"
            record.add_links(catalog_link(kb) for kb in kbs)
        else:
            notes = unique(r.description.strip() for r in remediations if r.description and r.description.strip())
            record.remediation = "; ".join(notes) or None
        record.add_links(r.url for r in remediations if r.url and looks_downloadable(r.url))

        products = unique(p.name for p in document.products_for(identifier) if p.name)
        if products:
            record.affected_versions = "; ".join(products)
        return record

    def extract_data(self, content: str, url: str) -> PartialRecord:
        record = self._generic.extract_data(content, url)
        kbs = guard_field(record.issues, "patch_id", lambda: unique(extract_kbs(clean_html(content)) + extract_kbs(content)))
        if kbs:
            record.patch_id = ", ".join(kbs)
            record.add_links(catalog_link(kb) for kb in kbs)
        record.identifiers = unique(extract_identifiers(url) + record.identifiers)
        return record

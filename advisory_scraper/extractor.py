"""Stateless entity extraction over fetched HTML and text.

Everything in here is a pure function of its string arguments: no I/O, no
shared state. Vendor strategies call these directly and the orchestrator
runs them once more over every page as a generic pass.
"""
from __future__ import annotations

import html as _html
import re
from typing import Callable, Iterable, List, Optional, TypeVar
from urllib.parse import urldefrag, urljoin, urlsplit

from bs4 import BeautifulSoup

from .errors import ExtractionFieldError

T = TypeVar("T")

_SCRIPT_BLOCK_RE = re.compile(r"<script\b[^>]*>.*?</script\s*>", re.IGNORECASE | re.DOTALL)
_STYLE_BLOCK_RE = re.compile(r"<style\b[^>]*>.*?</style\s*>", re.IGNORECASE | re.DOTALL)
_NOSCRIPT_BLOCK_RE = re.compile(r"<noscript\b[^>]*>.*?</noscript\s*>", re.IGNORECASE | re.DOTALL)
_COMMENT_RE = re.compile(r"<!--.*?-->", re.DOTALL)
_BLOCK_TAG_RE = re.compile(
    r"</?(?:p|div|br|li|ul|ol|tr|td|th|table|h[1-6]|section|article|header|footer|pre|blockquote|dt|dd)\b[^>]*>",
    re.IGNORECASE,
)
_TAG_RE = re.compile(r"<[^>]+>")

ENTITY_TABLE = {
    "&nbsp;": " ",
    "&amp;": "&",
    "&lt;": "<",
    "&gt;": ">",
    "&quot;": '"',
    "&#39;": "'",
    "&#x27;": "'",
    "&apos;": "'",
    "&ndash;": "-",
    "&mdash;": "-",
    "&hellip;": "...",
    "&copy;": "(c)",
    "&reg;": "(R)",
    "&trade;": "(TM)",
    "&rsquo;": "'",
    "&lsquo;": "'",
    "&rdquo;": '"',
    "&ldquo;": '"',
}

_ARTIFACT_RES = (
    re.compile(r"\bundefined\b"),
    re.compile(r"\bvar\s+"),
    re.compile(r"\{[^{}\n]{0,40}\}"),
)

CVE_RE = re.compile(r"\bCVE-\d{4}-\d{4,7}\b", re.IGNORECASE)
KB_RE = re.compile(r"\bKB\s?(\d{6,7})\b", re.IGNORECASE)
VERSION_RE = re.compile(
    r"\b(?:v(?:ersion)?\s*)?(\d+\.\d+(?:\.\d+){0,2}(?:[-.]?(?:rc|beta|alpha|p)\d*)?)\b",
    re.IGNORECASE,
)
COMMIT_RE = re.compile(r"(?:/commits?/|\bcommit\s+)([0-9a-f]{7,40})\b|\b([0-9a-f]{40})\b", re.IGNORECASE)

_BARE_URL_RE = re.compile(r"""https?://[^\s"'<>()\[\]]+""", re.IGNORECASE)

DOWNLOAD_EXTENSIONS = (
    ".zip", ".tar.gz", ".tgz", ".tar.bz2", ".tar.xz", ".gz", ".7z", ".exe", ".msi", ".msu",
    ".msp", ".cab", ".rpm", ".deb", ".pkg", ".dmg", ".jar", ".war", ".whl", ".gem", ".apk",
    ".bin", ".iso", ".img", ".patch", ".diff",
)

DOWNLOAD_PATH_PATTERNS = (
    re.compile(r"catalog\.update\.microsoft\.com", re.IGNORECASE),
    re.compile(r"download\.microsoft\.com/download/", re.IGNORECASE),
    re.compile(r"github\.com/[^/]+/[^/]+/releases/download/", re.IGNORECASE),
    re.compile(r"github\.com/[^/]+/[^/]+/archive/", re.IGNORECASE),
    re.compile(r"software\.cisco\.com/download", re.IGNORECASE),
    re.compile(r"support\.fortinet\.com/.*download", re.IGNORECASE),
    re.compile(r"/downloads?/[^?#]*\.[a-z0-9]{2,4}(?:[?#]|$)", re.IGNORECASE),
)

EXCLUDED_EXTENSIONS = (
    ".css", ".js", ".mjs", ".map", ".json",
    ".png", ".jpg", ".jpeg", ".gif", ".svg", ".ico", ".webp", ".bmp",
    ".woff", ".woff2", ".ttf", ".eot", ".otf",
    ".pdf", ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx", ".txt", ".html", ".htm",
)

EXCLUDED_FRAGMENTS = (
    "jquery", "/themes/", "/theme/", "/wp-content/plugins/", "/wp-includes/", "/static/js/",
    "/assets/css/", "/assets/js/", "fonts.googleapis", "googletagmanager", "google-analytics",
    "/favicon", "/bootstrap",
)


def clean_html(text: Optional[str]) -> str:
    if not text:
        return ""
    text = _SCRIPT_BLOCK_RE.sub(" ", text)
    text = _STYLE_BLOCK_RE.sub(" ", text)
    text = _NOSCRIPT_BLOCK_RE.sub(" ", text)
    text = _COMMENT_RE.sub(" ", text)
    text = _BLOCK_TAG_RE.sub("\n", text)
    text = _TAG_RE.sub(" ", text)
    for entity, replacement in ENTITY_TABLE.items():
        text = text.replace(entity, replacement)
    for pattern in _ARTIFACT_RES:
        text = pattern.sub(" ", text)
    text = re.sub(r"[ \t\r\f\v\u00a0]+", " ", text)
    text = re.sub(r" *\n[ \n]*", "\n", text)
    return text.strip()


def unique(items: Iterable[T]) -> List[T]:
    """De-duplicate while keeping first-seen order."""
    seen = set()
    out: List[T] = []
    for item in items:
        if item in seen:
            continue
        seen.add(item)
        out.append(item)
    return out


def extract_identifiers(text: Optional[str]) -> List[str]:
    """CVE identifiers, upper-cased."""
    if not text:
        return []
    return unique(m.group(0).upper() for m in CVE_RE.finditer(text))


def extract_kbs(text: Optional[str]) -> List[str]:
    if not text:
        return []
    return unique(f"KB{m.group(1)}" for m in KB_RE.finditer(text))


def extract_versions(text: Optional[str]) -> List[str]:
    if not text:
        return []
    return unique(m.group(1) for m in VERSION_RE.finditer(text))


def extract_commit_hashes(text: Optional[str]) -> List[str]:
    if not text:
        return []
    return unique((m.group(1) or m.group(2)).lower() for m in COMMIT_RE.finditer(text))


def is_excluded_link(url: str) -> bool:
    lowered = url.lower()
    path = urlsplit(lowered).path
    if path.endswith(EXCLUDED_EXTENSIONS):
        return True
    return any(fragment in lowered for fragment in EXCLUDED_FRAGMENTS)


def looks_downloadable(url: str) -> bool:
    path = urlsplit(url.lower()).path
    if path.endswith(DOWNLOAD_EXTENSIONS):
        return True
    return any(pattern.search(url) for pattern in DOWNLOAD_PATH_PATTERNS)


def extract_download_links(html: Optional[str], base_url: str) -> List[str]:
    """Absolute URLs in ``html`` that look like downloadable artifacts."""
    if not html:
        return []
    soup = BeautifulSoup(html, "html.parser")
    candidates = [
        tag.get(attr)
        for tag in soup.find_all(lambda t: t.has_attr("href") or t.has_attr("src"))
        for attr in ("href", "src")
        if isinstance(tag.get(attr), str)
    ]
    candidates.extend(_html.unescape(m.group(0)) for m in _BARE_URL_RE.finditer(html))

    links: List[str] = []
    for raw in candidates:
        raw = raw.strip().rstrip(".,;")
        if not raw or raw.lower().startswith(("javascript:", "mailto:", "data:")):
            continue
        absolute = urldefrag(urljoin(base_url, raw))[0]
        if not absolute.lower().startswith(("http://", "https://")):
            continue
        if is_excluded_link(absolute) or not looks_downloadable(absolute):
            continue
        links.append(absolute)
    return unique(links)


def filter_links(links: Iterable[str]) -> List[str]:
    return unique(link for link in links if link and not is_excluded_link(link))


def guard_field(issues: List[str], name: str, fn: Callable[[], Optional[T]]) -> Optional[T]:
    """Run one field extractor; on failure leave the field empty and note it."""
    try:
        return fn()
    except ExtractionFieldError as exc:
        issues.append(str(exc))
    except Exception as exc:  # noqa: BLE001
        issues.append(f"{name}: {type(exc).__name__}: {exc}")
    return None

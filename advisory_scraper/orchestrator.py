from __future__ import annotations

import json
import logging
import threading
import time
from typing import Iterable, List, Optional
from urllib.parse import urlsplit

from .base import Renderer, VendorStrategy
from .controller import ThreadPoolController
from .dispatcher import VendorDispatcher
from .errors import InvalidInputUrl, ScrapeCancelled
from .extractor import (
    clean_html,
    extract_download_links,
    extract_identifiers,
    extract_kbs,
    filter_links,
    guard_field,
    unique,
)
from .fetcher import RetryingFetcher
from .models import (
    KEY_FIELDS,
    ApiResult,
    ExtractedRecord,
    FetchRequest,
    PartialRecord,
    RenderResult,
    ScrapeOutcome,
    ScrapeState,
    ScrapeStatus,
    ScrapeSummary,
    utc_now_iso,
)
from .quality import assess_quality
from .storage import InMemoryStateStore, StateStore

logger = logging.getLogger(__name__)


def validate_url(url: str) -> str:
    if not isinstance(url, str) or not url.strip():
        raise InvalidInputUrl(f"not an absolute http(s) URL: {url!r}")
    parts = urlsplit(url.strip())
    if parts.scheme.lower() not in ("http", "https") or not parts.hostname:
        raise InvalidInputUrl(f"not an absolute http(s) URL: {url!r}")
    return url.strip()


def generic_pass(content: Optional[str], url: str, primary: PartialRecord) -> PartialRecord:
    """Vendor-independent entities found in the page and in the primary record's text."""
    found = PartialRecord()
    text = clean_html(content) if content else ""
    if content:
        found.add_links(guard_field(found.issues, "download_links", lambda: extract_download_links(content, url)) or [])
        kbs = guard_field(found.issues, "patch_id", lambda: extract_kbs(text)) or []
        if kbs:
            found.patch_id = ", ".join(kbs)
    found.identifiers = extract_identifiers(" ".join(filter(None, [url, primary.remediation, text])))
    return found


def merge_records(primary: PartialRecord, secondary: PartialRecord) -> PartialRecord:
    """Primary fields win; links, identifiers and issues are unioned."""
    merged = PartialRecord()
    for name in KEY_FIELDS:
        value = (getattr(primary, name) or "").strip() or (getattr(secondary, name) or "").strip()
        setattr(merged, name, value or None)
    merged.download_links = filter_links(list(primary.download_links) + list(secondary.download_links))
    merged.identifiers = unique(list(primary.identifiers) + list(secondary.identifiers))
    merged.issues = unique(list(primary.issues) + list(secondary.issues))
    return merged


def finalize_record(url: str, vendor_used: str, partial: PartialRecord) -> ExtractedRecord:
    quality = assess_quality(partial)
    return ExtractedRecord(
        url=url,
        vendor_used=vendor_used,
        patch_id=partial.patch_id,
        fix_version=partial.fix_version,
        affected_versions=partial.affected_versions,
        remediation=partial.remediation,
        download_links=tuple(filter_links(partial.download_links)),
        identifiers=tuple(partial.identifiers),
        quality_score=quality.score,
        issues=tuple(partial.issues) + quality.issues,
        classification=quality.classification,
    )


class ScrapeOrchestrator:
    """Drives one advisory URL through the fetch-and-extract state machine.

    Pending -> Fetching -> (RenderFallback) -> Extracting -> terminal, where
    terminal is one of Success, Blocked, Empty or Failed. Every fallback
    (API -> HTML, HTML -> rendered HTML) is an explicit branch here, and
    every terminal outcome is persisted to the state store.
    """

    def __init__(
        self,
        dispatcher: VendorDispatcher,
        fetcher: RetryingFetcher,
        renderer: Optional[Renderer] = None,
        state_store: Optional[StateStore] = None,
        force_rescrape: bool = False,
        render_wait_seconds: float = 5.0,
        timeout: Optional[float] = None,
        use_session: bool = True,
        max_workers: int = 1,
    ) -> None:
        self._dispatcher = dispatcher
        self._fetcher = fetcher
        self._renderer = renderer
        self._store = state_store if state_store is not None else InMemoryStateStore()
        self._force = force_rescrape
        self._render_wait = render_wait_seconds
        self._timeout = timeout
        self._use_session = use_session
        self._max_workers = max(1, max_workers)

    @property
    def state_store(self) -> StateStore:
        return self._store

    def run(self, url: str, cancel: Optional[threading.Event] = None) -> ScrapeOutcome:
        """Process one URL. Raises InvalidInputUrl; every other failure becomes an outcome."""
        url = validate_url(url)

        stored = self._store.get(url)
        if stored is not None and stored.state.scraped_at and not self._force:
            logger.info("skipping %s (scraped at %s, status %s)", url, stored.state.scraped_at, stored.status.value)
            return ScrapeOutcome(state=stored.state, record=stored.record, skipped=True)

        state = ScrapeState(url=url)
        state.history.append(ScrapeStatus.PENDING)
        strategy = self._dispatcher.select(url)
        try:
            return self._process(url, state, strategy, cancel)
        except ScrapeCancelled as exc:
            logger.warning("cancelled %s: %s", url, exc)
            record = ExtractedRecord(url=url, vendor_used=strategy.name, issues=(f"Cancelled: {exc}",))
            # no scraped_at: a later run picks the URL up again
            return self._finish(state, ScrapeStatus.FAILED, record, mark_scraped=False)

    def run_all(
        self,
        urls: Iterable[str],
        max_workers: Optional[int] = None,
        cancel: Optional[threading.Event] = None,
    ) -> ScrapeSummary:
        valid: List[str] = []
        rejected: List[str] = []
        for url in urls:
            try:
                url = validate_url(url)
            except InvalidInputUrl as exc:
                logger.warning("rejected input: %s", exc)
                rejected.append(url)
                continue
            if url not in valid:
                valid.append(url)

        workers = max(1, max_workers or self._max_workers)
        if workers == 1:
            outcomes = [self.run(url, cancel) for url in valid]
        else:
            controller = ThreadPoolController(max_workers=workers, cancel=cancel)
            controller.start()
            try:
                futures = [controller.submit(lambda u: self.run(u, controller.cancel), url) for url in valid]
                outcomes = [future.result() for future in futures]
            finally:
                controller.shutdown()
        return ScrapeSummary(outcomes=tuple(outcomes), rejected=tuple(rejected))

    def _process(
        self, url: str, state: ScrapeState, strategy: VendorStrategy, cancel: Optional[threading.Event]
    ) -> ScrapeOutcome:
        self._transition(state, ScrapeStatus.FETCHING)
        partial: Optional[PartialRecord] = None
        content: Optional[str] = None
        notes: List[str] = []

        if strategy.supports_api:
            api = self._call_api(strategy, url, cancel)
            state.attempts += api.attempts
            if api.success and api.record is not None:
                partial = api.record
            else:
                logger.info("%s API path failed for %s (%s), fetching HTML", strategy.name, url, api.error)
                notes.append(f"API: {api.error}")

        if partial is None:
            result = self._fetcher.fetch(
                FetchRequest(url, timeout=self._timeout, use_session=self._use_session), cancel
            )
            state.attempts += result.attempts
            if result.blocked:
                issue = result.error or f"HTTP 403 Forbidden - manual review required: {url}"
                record = ExtractedRecord(url=url, vendor_used=strategy.name, issues=tuple(notes) + (issue,))
                return self._finish(state, ScrapeStatus.BLOCKED, record)
            if not result.success:
                issue = f"Fetch failed after {result.attempts} attempts: {result.error}"
                record = ExtractedRecord(url=url, vendor_used=strategy.name, issues=tuple(notes) + (issue,))
                return self._finish(state, ScrapeStatus.FAILED, record)
            content = result.content

            if strategy.needs_render(content):
                if self._renderer is None:
                    notes.append(f"Page is {len(content.encode('utf-8'))} bytes, likely a JavaScript shell; no renderer")
                else:
                    self._transition(state, ScrapeStatus.RENDER_FALLBACK)
                    content = self._render(url, content, notes)

        self._transition(state, ScrapeStatus.EXTRACTING)
        if partial is None:
            partial = self._extract(strategy, content or "", url)
        merged = merge_records(partial, generic_pass(content, url, partial))
        merged.issues = notes + merged.issues
        record = finalize_record(url, strategy.name, merged)
        status = ScrapeStatus.SUCCESS if record.has_key_fields() else ScrapeStatus.EMPTY
        return self._finish(state, status, record)

    def _call_api(self, strategy: VendorStrategy, url: str, cancel: Optional[threading.Event]) -> ApiResult:
        if cancel is not None and cancel.is_set():
            raise ScrapeCancelled("cancelled before API call", url)
        try:
            return strategy.get_api_data(url, self._fetcher, cancel)
        except ScrapeCancelled:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.warning("%s API path raised for %s: %s", strategy.name, url, exc)
            return ApiResult(success=False, error=f"{type(exc).__name__}: {exc}")

    def _render(self, url: str, original: str, notes: List[str]) -> str:
        logger.info("static HTML for %s is %d bytes, rendering", url, len(original))
        try:
            rendered = self._renderer.render(url, self._render_wait)
        except Exception as exc:  # noqa: BLE001
            logger.warning("renderer raised for %s: %s", url, exc)
            rendered = RenderResult(success=False, error=f"{type(exc).__name__}: {exc}")
        if rendered.success and rendered.content:
            return rendered.content
        notes.append(f"Render failed: {rendered.error or 'empty content'}")
        return original

    @staticmethod
    def _extract(strategy: VendorStrategy, content: str, url: str) -> PartialRecord:
        try:
            return strategy.extract_data(content, url)
        except Exception as exc:  # noqa: BLE001
            logger.warning("%s extraction failed for %s: %s", strategy.name, url, exc)
            return PartialRecord(issues=[f"{strategy.name} extraction failed: {type(exc).__name__}: {exc}"])

    def _transition(self, state: ScrapeState, status: ScrapeStatus) -> None:
        logger.debug("%s: %s -> %s", state.url, state.status.value, status.value)
        state.status = status
        state.history.append(status)

    def _finish(
        self, state: ScrapeState, status: ScrapeStatus, record: ExtractedRecord, mark_scraped: bool = True
    ) -> ScrapeOutcome:
        self._transition(state, status)
        if mark_scraped:
            state.scraped_at = utc_now_iso()
        outcome = ScrapeOutcome(state=state, record=record)
        self._store.put(outcome)
        log = {
            "timestamp": time.time(),
            "url": state.url,
            "status": status.value,
            "vendor": record.vendor_used,
            "attempts": state.attempts,
            "quality_score": record.quality_score,
            "classification": record.classification.value,
        }
        logger.info(json.dumps(log, ensure_ascii=False))
        return outcome

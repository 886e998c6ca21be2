"""Advisory scraper package.

Fetches vulnerability advisory pages from repository hosts, vendor security
bulletins and generic web pages, extracts remediation data and scores the
quality of each extracted record.

Key modules:
    rate_limiter    -- RateLimiter, per-domain request throttling
    session_store   -- SessionStore, per-domain session reuse
    backoff         -- BackoffStrategy for exponential retry delays
    fetcher         -- RetryingFetcher, rate-limited HTTP with retries
    base            -- VendorStrategy abstract class
    vendors         -- concrete vendor strategies and the generic fallback
    dispatcher      -- VendorDispatcher, ordered strategy selection
    bulletins       -- MsrcBulletinClient for the bulletin lookup API
    renderer        -- PlaywrightRenderer for JavaScript-only pages
    extractor       -- stateless entity extraction (ids, KBs, links)
    quality         -- quality scoring of extracted records
    orchestrator    -- ScrapeOrchestrator, the per-URL state machine
    controller      -- ThreadPoolController for bounded concurrency
    storage         -- StateStore backends for idempotent re-runs
    factory         -- startup composition of the pipeline
    config          -- ScraperConfig settings
    models          -- requests, results, records and state dataclasses
    errors          -- exception taxonomy
"""

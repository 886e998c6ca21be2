from __future__ import annotations

from typing import List, Optional

from .backoff import BackoffStrategy
from .base import VendorStrategy
from .config import ScraperConfig
from .dispatcher import VendorDispatcher
from .fetcher import RetryingFetcher
from .orchestrator import ScrapeOrchestrator
from .rate_limiter import RateLimiter
from .session_store import SessionStore
from .storage import StateStore
from .vendors import (
    CiscoStrategy,
    FortinetStrategy,
    GenericStrategy,
    GitHubStrategy,
    MsrcStrategy,
    RedHatStrategy,
    UbuntuStrategy,
)


def default_strategies(bulletin_client=None) -> List[VendorStrategy]:
    """Supported sources, most specific first and the generic fallback last."""
    generic = GenericStrategy()
    return [
        GitHubStrategy(),
        MsrcStrategy(bulletin_client=bulletin_client, generic=generic),
        CiscoStrategy(generic),
        RedHatStrategy(generic),
        UbuntuStrategy(generic),
        FortinetStrategy(generic),
        generic,
    ]


def build_fetcher(config: ScraperConfig, session_factory=None) -> RetryingFetcher:
    kwargs = {}
    if session_factory is not None:
        kwargs["session_factory"] = session_factory
    return RetryingFetcher(
        rate_limiter=RateLimiter(requests_per_minute=config.requests_per_minute),
        session_store=SessionStore(),
        backoff=BackoffStrategy(config.base_delay, config.max_delay, config.jitter_max),
        max_retries=config.max_retries,
        timeout=config.timeout,
        impersonate=config.impersonate or None,
        **kwargs,
    )


def build_orchestrator(
    config: Optional[ScraperConfig] = None,
    renderer=None,
    bulletin_client=None,
    state_store: Optional[StateStore] = None,
    session_factory=None,
) -> ScrapeOrchestrator:
    """Compose the pipeline once at startup."""
    config = config or ScraperConfig()
    return ScrapeOrchestrator(
        dispatcher=VendorDispatcher(default_strategies(bulletin_client)),
        fetcher=build_fetcher(config, session_factory),
        renderer=renderer,
        state_store=state_store,
        force_rescrape=config.force_rescrape,
        render_wait_seconds=config.render_wait_seconds,
        timeout=config.timeout,
        use_session=config.use_session,
        max_workers=config.max_workers,
    )

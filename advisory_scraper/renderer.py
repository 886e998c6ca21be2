"""JavaScript rendering through a headless Chromium (Playwright).

Only used as a fallback when a render-sensitive vendor page comes back as an
empty JavaScript shell. Requires the ``render`` extra and installed browsers
(``playwright install chromium``).
"""
from __future__ import annotations

import logging
from typing import Optional

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeout
from playwright.sync_api import sync_playwright

from .fetcher import DEFAULT_HEADERS
from .models import RenderResult

logger = logging.getLogger(__name__)


class PlaywrightRenderer:
    """Renders a page and returns the resulting DOM as HTML. Never raises."""

    def __init__(self, headless: bool = True, timeout_seconds: float = 30, user_agent: Optional[str] = None) -> None:
        self._headless = headless
        self._timeout_ms = int(timeout_seconds * 1000)
        self._user_agent = user_agent or DEFAULT_HEADERS["User-Agent"]

    def render(self, url: str, wait_seconds: float = 5) -> RenderResult:
        try:
            with sync_playwright() as p:
                browser = p.chromium.launch(
                    headless=self._headless,
                    args=["--no-sandbox", "--disable-dev-shm-usage", "--disable-gpu"],
                )
                try:
                    page = browser.new_page(user_agent=self._user_agent)
                    response = page.goto(url, timeout=self._timeout_ms, wait_until="domcontentloaded")
                    try:
                        page.wait_for_load_state("networkidle", timeout=self._timeout_ms)
                    except PlaywrightTimeout:
                        pass
                    # hydration
                    page.wait_for_timeout(int(wait_seconds * 1000))
                    html = page.content()
                    status = response.status if response is not None else None
                finally:
                    browser.close()
        except PlaywrightTimeout:
            logger.warning("render timed out for %s", url)
            return RenderResult(success=False, error=f"Timeout while rendering {url}")
        except PlaywrightError as e:
            logger.warning("render failed for %s: %s", url, e)
            return RenderResult(success=False, error=f"Failed to render {url}: {e}")

        ok = bool(html) and (status is None or 200 <= status < 400)
        return RenderResult(success=ok, content=html or "", status_code=status, error=None if ok else f"HTTP {status}")

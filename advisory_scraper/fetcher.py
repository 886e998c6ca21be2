from __future__ import annotations

import logging
import threading
import time as _time
from typing import Any, Callable, Dict, Optional
from urllib.parse import urlsplit

from curl_cffi import requests as curl_requests

from .backoff import BackoffStrategy, sleep_or_cancel
from .errors import FetchError, HttpForbidden, HttpOtherError, ScrapeCancelled, TransientNetworkError
from .models import FetchMethod, FetchRequest, FetchResult
from .rate_limiter import RateLimiter
from .session_store import SessionStore

logger = logging.getLogger(__name__)

DEFAULT_HEADERS: Dict[str, str] = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
    "Upgrade-Insecure-Requests": "1",
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "none",
}


def domain_of(url: str) -> str:
    return (urlsplit(url).hostname or "").lower()


class RetryingFetcher:
    """Issues rate-limited, session-bound HTTP GETs with retry and backoff.

    - 2xx: success, the session is stored for the domain.
    - 403: terminal, returned immediately without retry.
    - other 4xx/5xx and transport errors: retried up to ``max_retries``
      attempts in total.

    fetch() never raises for network problems; it always returns a
    FetchResult. Only ScrapeCancelled escapes, when ``cancel`` is set.
    """

    def __init__(
        self,
        rate_limiter: RateLimiter,
        session_store: SessionStore,
        backoff: BackoffStrategy,
        max_retries: int = 3,
        timeout: float = 30,
        impersonate: Optional[str] = "chrome120",
        session_factory: Callable[[], Any] = curl_requests.Session,
        sleep: Callable[[float, Optional[threading.Event]], None] = sleep_or_cancel,
    ) -> None:
        self._rate_limiter = rate_limiter
        self._sessions = session_store
        self._backoff = backoff
        self._max_retries = max(1, max_retries)
        self._timeout = timeout
        self._impersonate = impersonate
        self._session_factory = session_factory
        self._sleep = sleep

    @property
    def max_retries(self) -> int:
        return self._max_retries

    def fetch(self, request: FetchRequest, cancel: Optional[threading.Event] = None) -> FetchResult:
        domain = domain_of(request.url)
        start = _time.monotonic()
        last_error: Optional[FetchError] = None
        attempt = 0

        while attempt < self._max_retries:
            attempt += 1
            if cancel is not None and cancel.is_set():
                raise ScrapeCancelled("cancelled before attempt", request.url)
            self._rate_limiter.acquire(domain, cancel)
            try:
                response = self._attempt(request, domain)
            except FetchError as exc:
                last_error = exc
                if not exc.retryable:
                    logger.warning("HTTP 403 Forbidden for %s, not retrying", request.url)
                    break
                if attempt >= self._max_retries:
                    break
                sleep_s = self._backoff.get_sleep(attempt, type(exc).__name__)
                logger.warning(
                    "attempt %d/%d for %s failed (%s: %s), retrying in %.2fs",
                    attempt, self._max_retries, request.url, type(exc).__name__, exc, sleep_s,
                )
                self._sleep(sleep_s, cancel)
                continue

            return FetchResult(
                url=request.url,
                success=True,
                content=response.text or "",
                status_code=int(response.status_code),
                method=FetchMethod.HTTP,
                elapsed=_time.monotonic() - start,
                attempts=attempt,
                final_url=str(getattr(response, "url", "") or request.url),
            )

        return FetchResult(
            url=request.url,
            success=False,
            content="",
            status_code=last_error.status_code if last_error else None,
            method=FetchMethod.HTTP,
            elapsed=_time.monotonic() - start,
            attempts=attempt,
            error=str(last_error) if last_error else "no attempt made",
            error_type=type(last_error).__name__ if last_error else None,
        )

    def build_headers(self, request: FetchRequest) -> Dict[str, str]:
        headers = dict(DEFAULT_HEADERS)
        if request.headers:
            headers.update(request.headers)
        return headers

    def _attempt(self, request: FetchRequest, domain: str) -> Any:
        stored = self._sessions.get(domain) if request.use_session else None
        session = stored if stored is not None else self._session_factory()
        kwargs: Dict[str, Any] = {
            "headers": self.build_headers(request),
            "timeout": request.timeout if request.timeout is not None else self._timeout,
            "allow_redirects": True,
        }
        if self._impersonate:
            kwargs["impersonate"] = self._impersonate
        try:
            response = session.get(request.url, **kwargs)
        except Exception as exc:  # noqa: BLE001
            if stored is None:
                _close(session)
            raise TransientNetworkError(f"{type(exc).__name__}: {exc}", request.url) from exc

        status_code = int(getattr(response, "status_code", 0) or 0)
        if 200 <= status_code < 300:
            if request.use_session and stored is None:
                self._sessions.put(domain, session)
            elif stored is None:
                _close(session)
            return response

        if stored is None:
            _close(session)
        if status_code == 403:
            raise HttpForbidden("HTTP 403 Forbidden - manual review required", request.url, 403)
        raise HttpOtherError(f"HTTP {status_code}", request.url, status_code)


def _close(session: Any) -> None:
    close = getattr(session, "close", None)
    if callable(close):
        close()

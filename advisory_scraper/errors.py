from __future__ import annotations

from typing import Optional


class ScrapeError(Exception):
    """Base exception for every failure raised inside the scraping pipeline."""

    def __init__(self, message: str, url: Optional[str] = None) -> None:
        self.url = url
        super().__init__(message)

    def __str__(self) -> str:
        if self.url:
            return f"{super().__str__()} ({self.url})"
        return super().__str__()


class FetchError(ScrapeError):
    """Raised by a single fetch attempt; the retry loop decides what happens next."""

    retryable = True

    def __init__(self, message: str, url: Optional[str] = None, status_code: Optional[int] = None) -> None:
        self.status_code = status_code
        super().__init__(message, url)


class TransientNetworkError(FetchError):
    """Timeout, connection reset and other transport-level failures."""


class HttpForbidden(FetchError):
    """HTTP 403. The site is refusing us; retrying only makes it worse."""

    retryable = False


class HttpOtherError(FetchError):
    """Any other 4xx/5xx response."""


class ExtractionFieldError(ScrapeError):
    """A single record field could not be extracted."""

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        super().__init__(f"{field}: {message}")


class InvalidInputUrl(ScrapeError):
    """The input is not an absolute http(s) URL."""


class ScrapeCancelled(ScrapeError):
    """The cancellation event was set while waiting to issue or retry a request."""


class BulletinLookupError(ScrapeError):
    """The bulletin lookup service could not be reached or returned garbage."""


class ConfigError(ValueError):
    """Invalid configuration value."""

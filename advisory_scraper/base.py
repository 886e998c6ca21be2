from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Optional, Protocol, runtime_checkable
from urllib.parse import urlsplit

from .models import ApiResult, PartialRecord, RenderResult

if TYPE_CHECKING:
    from .fetcher import RetryingFetcher


class VendorStrategy(ABC):
    """Extraction logic for one advisory source.

    Subclasses decide which URLs they own (can_handle) and turn fetched
    content into a PartialRecord (extract_data). Sources with a structured
    API override supports_api/get_api_data; the orchestrator then tries
    that path before fetching HTML. Strategies whose pages are JavaScript
    shells set render_sensitive and a js_shell_threshold in bytes.
    """

    name: str = "Generic"
    fallback: bool = False
    supports_api: bool = False
    render_sensitive: bool = False
    js_shell_threshold: int = 0

    @abstractmethod
    def can_handle(self, url: str) -> bool:
        ...

    @abstractmethod
    def extract_data(self, content: str, url: str) -> PartialRecord:
        ...

    def get_api_data(self, url: str, fetcher: "RetryingFetcher", cancel=None) -> ApiResult:
        return ApiResult(success=False, error=f"{self.name} has no API path")

    def needs_render(self, content: Optional[str]) -> bool:
        """True if ``content`` is small enough to be an unrendered JavaScript shell."""
        if not self.render_sensitive:
            return False
        return len((content or "").encode("utf-8")) < self.js_shell_threshold

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r})"


def host_of(url: str) -> str:
    host = (urlsplit(url).hostname or "").lower()
    return host[4:] if host.startswith("www.") else host


def host_matches(url: str, *domains: str) -> bool:
    host = host_of(url)
    return any(host == d or host.endswith("." + d) for d in domains)


@runtime_checkable
class Renderer(Protocol):
    """Turns a JavaScript-only page into HTML; failures come back in the result."""

    def render(self, url: str, wait_seconds: float) -> RenderResult:
        ...

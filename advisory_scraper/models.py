from __future__ import annotations

import datetime as _dt
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class FetchMethod(str, Enum):
    HTTP = "HTTP"
    RENDERED_HTML = "RenderedHTML"
    API = "API"


class Classification(str, Enum):
    EXCELLENT = "Excellent"
    GOOD = "Good"
    POOR = "Poor"
    FAILED = "Failed"


class ScrapeStatus(str, Enum):
    PENDING = "Pending"
    FETCHING = "Fetching"
    RENDER_FALLBACK = "RenderFallback"
    EXTRACTING = "Extracting"
    SUCCESS = "Success"
    BLOCKED = "Blocked"
    EMPTY = "Empty"
    FAILED = "Failed"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATUSES


_TERMINAL_STATUSES = frozenset(
    {ScrapeStatus.SUCCESS, ScrapeStatus.BLOCKED, ScrapeStatus.EMPTY, ScrapeStatus.FAILED}
)

KEY_FIELDS = ("patch_id", "fix_version", "affected_versions", "remediation")


@dataclass(frozen=True)
class FetchRequest:
    url: str
    headers: Optional[Dict[str, str]] = None
    timeout: Optional[float] = None
    use_session: bool = True


@dataclass(frozen=True)
class FetchResult:
    url: str
    success: bool
    content: str
    status_code: Optional[int]
    method: FetchMethod
    elapsed: float
    attempts: int = 1
    error: Optional[str] = None
    error_type: Optional[str] = None
    final_url: Optional[str] = None

    @property
    def blocked(self) -> bool:
        return self.status_code == 403


@dataclass(frozen=True)
class RenderResult:
    success: bool
    content: str = ""
    status_code: Optional[int] = None
    error: Optional[str] = None


@dataclass
class PartialRecord:
    """Fields produced by one extraction pass before merging and scoring."""

    patch_id: Optional[str] = None
    fix_version: Optional[str] = None
    affected_versions: Optional[str] = None
    remediation: Optional[str] = None
    download_links: List[str] = field(default_factory=list)
    identifiers: List[str] = field(default_factory=list)
    issues: List[str] = field(default_factory=list)

    def has_key_fields(self) -> bool:
        return any((getattr(self, name) or "").strip() for name in KEY_FIELDS)

    def add_links(self, links) -> None:
        for link in links:
            if link not in self.download_links:
                self.download_links.append(link)


@dataclass(frozen=True)
class ApiResult:
    success: bool
    record: Optional[PartialRecord] = None
    error: Optional[str] = None
    attempts: int = 0


@dataclass(frozen=True)
class QualityReport:
    score: int
    issues: Tuple[str, ...]
    classification: Classification


@dataclass(frozen=True)
class ExtractedRecord:
    url: str
    vendor_used: str
    patch_id: Optional[str] = None
    fix_version: Optional[str] = None
    affected_versions: Optional[str] = None
    remediation: Optional[str] = None
    download_links: Tuple[str, ...] = ()
    identifiers: Tuple[str, ...] = ()
    quality_score: int = 0
    issues: Tuple[str, ...] = ()
    classification: Classification = Classification.FAILED

    def has_key_fields(self) -> bool:
        return any((getattr(self, name) or "").strip() for name in KEY_FIELDS)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "vendor_used": self.vendor_used,
            "patch_id": self.patch_id,
            "fix_version": self.fix_version,
            "affected_versions": self.affected_versions,
            "remediation": self.remediation,
            "download_links": list(self.download_links),
            "identifiers": list(self.identifiers),
            "quality_score": self.quality_score,
            "issues": list(self.issues),
            "classification": self.classification.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExtractedRecord":
        return cls(
            url=data["url"],
            vendor_used=data.get("vendor_used") or "",
            patch_id=data.get("patch_id"),
            fix_version=data.get("fix_version"),
            affected_versions=data.get("affected_versions"),
            remediation=data.get("remediation"),
            download_links=tuple(data.get("download_links") or ()),
            identifiers=tuple(data.get("identifiers") or ()),
            quality_score=int(data.get("quality_score") or 0),
            issues=tuple(data.get("issues") or ()),
            classification=Classification(data.get("classification") or Classification.FAILED.value),
        )


@dataclass
class ScrapeState:
    """Lifecycle of one URL. Mutated only by the orchestrator."""

    url: str
    status: ScrapeStatus = ScrapeStatus.PENDING
    scraped_at: Optional[str] = None
    attempts: int = 0
    history: List[ScrapeStatus] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "status": self.status.value,
            "scraped_at": self.scraped_at,
            "attempts": self.attempts,
            "history": [s.value for s in self.history],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScrapeState":
        return cls(
            url=data["url"],
            status=ScrapeStatus(data.get("status") or ScrapeStatus.PENDING.value),
            scraped_at=data.get("scraped_at"),
            attempts=int(data.get("attempts") or 0),
            history=[ScrapeStatus(s) for s in data.get("history") or ()],
        )


@dataclass(frozen=True)
class ScrapeOutcome:
    state: ScrapeState
    record: ExtractedRecord
    skipped: bool = False

    @property
    def url(self) -> str:
        return self.state.url

    @property
    def status(self) -> ScrapeStatus:
        return self.state.status

    @classmethod
    def failed(cls, url: str, reason: str, vendor_used: str = "") -> "ScrapeOutcome":
        state = ScrapeState(url=url, status=ScrapeStatus.FAILED, history=[ScrapeStatus.FAILED])
        record = ExtractedRecord(url=url, vendor_used=vendor_used, issues=(reason,))
        return cls(state=state, record=record)


@dataclass(frozen=True)
class ScrapeSummary:
    outcomes: Tuple[ScrapeOutcome, ...]
    rejected: Tuple[str, ...] = ()

    def urls_with(self, status: ScrapeStatus) -> List[str]:
        return [o.url for o in self.outcomes if o.status == status]

    @property
    def succeeded(self) -> List[str]:
        return self.urls_with(ScrapeStatus.SUCCESS)

    @property
    def blocked(self) -> List[str]:
        return self.urls_with(ScrapeStatus.BLOCKED)

    @property
    def empty(self) -> List[str]:
        return self.urls_with(ScrapeStatus.EMPTY)

    @property
    def failed(self) -> List[str]:
        return self.urls_with(ScrapeStatus.FAILED)

    def format(self) -> str:
        lines = [
            f"DONE: success={len(self.succeeded)} blocked={len(self.blocked)} "
            f"empty={len(self.empty)} failed={len(self.failed)} "
            f"rejected={len(self.rejected)} total={len(self.outcomes) + len(self.rejected)}"
        ]
        if self.blocked:
            lines.append("Blocked (review manually):")
            lines.extend(f"  {url}" for url in self.blocked)
        if self.failed:
            lines.append("Failed:")
            lines.extend(f"  {url}" for url in self.failed)
        if self.rejected:
            lines.append("Rejected input:")
            lines.extend(f"  {url}" for url in self.rejected)
        return "\n".join(lines)


def utc_now_iso() -> str:
    return _dt.datetime.now(_dt.timezone.utc).isoformat(timespec="seconds")

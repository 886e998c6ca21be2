from __future__ import annotations

import os
from dataclasses import dataclass, fields
from typing import Mapping, Optional

from .errors import ConfigError

ENV_PREFIX = "ADVISORY_SCRAPER_"

_TRUE_VALUES = ("1", "true", "yes")


@dataclass(frozen=True)
class ScraperConfig:
    """Runtime settings for one scraping run.

    Defaults mirror the behaviour of the interactive tool: sequential
    processing, 30 requests per minute per domain and three attempts per
    request. Values can be overridden from ``ADVISORY_SCRAPER_*`` environment
    variables via :meth:`from_env` and from the command line in ``main.py``.
    """

    requests_per_minute: float = 30.0
    max_retries: int = 3
    base_delay: float = 2.0
    max_delay: float = 30.0
    jitter_max: float = 1.0
    timeout: float = 30.0
    use_session: bool = True
    render_wait_seconds: float = 5.0
    max_workers: int = 1
    force_rescrape: bool = False
    impersonate: str = "chrome120"
    results_path: str = "results.jsonl"

    def __post_init__(self) -> None:
        if self.requests_per_minute < 0:
            raise ConfigError("requests_per_minute must be >= 0")
        if self.max_retries < 1:
            raise ConfigError("max_retries must be >= 1")
        if self.max_workers < 1:
            raise ConfigError("max_workers must be >= 1")
        for name in ("base_delay", "max_delay", "jitter_max", "timeout", "render_wait_seconds"):
            if getattr(self, name) < 0:
                raise ConfigError(f"{name} must be >= 0")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ScraperConfig":
        env = os.environ if environ is None else environ
        values = {}
        for f in fields(cls):
            raw = env.get(ENV_PREFIX + f.name.upper())
            if raw is None or raw == "":
                continue
            values[f.name] = _coerce(f.name, f.default, raw)
        return cls(**values)


def _coerce(name: str, default, raw: str):
    if isinstance(default, bool):
        return raw.strip().lower() in _TRUE_VALUES
    try:
        if isinstance(default, int):
            return int(raw)
        if isinstance(default, float):
            return float(raw)
    except ValueError as exc:
        raise ConfigError(f"invalid value for {name}: {raw!r}") from exc
    return raw

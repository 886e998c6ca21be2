from __future__ import annotations

import argparse
import dataclasses
import logging
import threading

from advisory_scraper.bulletins import MsrcBulletinClient
from advisory_scraper.config import ScraperConfig
from advisory_scraper.factory import build_orchestrator
from advisory_scraper.storage import JsonlStateStore, write_csv

DEFAULT_URL_LIST_PATH = "urls.txt"


def _load_urls(path: str, limit: int = 0) -> list[str]:
    urls: list[str] = []
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            url = line.strip()
            if not url or url.startswith("#"):
                continue
            urls.append(url)
            if limit and len(urls) >= limit:
                break
    if not urls:
        raise ValueError(f"No URLs found in {path}")
    return urls


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def run(config: ScraperConfig, url_path: str, limit: int, render: bool, csv_path: str = "") -> int:
    renderer = None
    if render:
        from advisory_scraper.renderer import PlaywrightRenderer

        renderer = PlaywrightRenderer(timeout_seconds=config.timeout)

    storage = JsonlStateStore(config.results_path)
    orchestrator = build_orchestrator(
        config,
        renderer=renderer,
        bulletin_client=MsrcBulletinClient(timeout=config.timeout),
        state_store=storage,
    )
    cancel = threading.Event()

    try:
        summary = orchestrator.run_all(_load_urls(url_path, limit), max_workers=config.max_workers, cancel=cancel)
    except KeyboardInterrupt:
        cancel.set()
        raise
    finally:
        storage.close()

    for outcome in summary.outcomes:
        record = outcome.record
        print(
            f"url={outcome.url} status={outcome.status.value} vendor={record.vendor_used} "
            f"score={record.quality_score} class={record.classification.value} "
            f"patch={record.patch_id or '-'} links={len(record.download_links)}"
            + (" (cached)" if outcome.skipped else "")
        )

    if csv_path:
        write_csv(summary.outcomes, csv_path)

    print()
    print(summary.format())
    return 0 if not summary.failed else 1


def main() -> None:
    base = ScraperConfig.from_env()

    parser = argparse.ArgumentParser(description="Scrape remediation data from vulnerability advisory pages")
    parser.add_argument("--urls", default=DEFAULT_URL_LIST_PATH, help="Path to a file with one advisory URL per line")
    parser.add_argument("--results", default=base.results_path, help="JSONL state file (also used to skip done URLs)")
    parser.add_argument("--csv", default="", help="Also write the records of this run to a CSV file")
    parser.add_argument("--limit", type=int, default=0, help="Max number of URLs to load (0 = all)")
    parser.add_argument("--force", action="store_true", default=base.force_rescrape, help="Re-scrape URLs already done")

    parser.add_argument("--rpm", type=float, default=base.requests_per_minute, help="Requests per minute per domain")
    parser.add_argument("--max-retries", type=int, default=base.max_retries, help="Max attempts per request")
    parser.add_argument("--timeout", type=float, default=base.timeout, help="Per-attempt timeout in seconds")
    parser.add_argument("--workers", type=int, default=base.max_workers, help="Concurrent URLs")
    parser.add_argument("--no-session", action="store_true", help="Do not reuse sessions per domain")
    parser.add_argument("--render", action="store_true", help="Render JavaScript-only pages with Playwright")

    parser.add_argument("--log-level", default="INFO", help="Logging level")

    args = parser.parse_args()
    _configure_logging(args.log_level)

    config = dataclasses.replace(
        base,
        results_path=args.results,
        force_rescrape=args.force,
        requests_per_minute=args.rpm,
        max_retries=args.max_retries,
        timeout=args.timeout,
        max_workers=args.workers,
        use_session=base.use_session and not args.no_session,
    )
    raise SystemExit(run(config, args.urls, args.limit, args.render, args.csv))


if __name__ == "__main__":
    main()

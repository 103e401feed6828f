"""
Feed import and periodic updates.

- import_csv: analyze and store the domains listed in a CSV file
- update_from_feed: pull the daily removed-domains list and store new ones
- run_scheduler: run update_from_feed on a cron schedule (APScheduler)
"""

import asyncio
import csv
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Iterable

import httpx
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

from config import Settings, get_settings
from http_client import get_http_client, managed_http_client
from scoring.analyzer import TrafficAnalyzer
from security import DomainValidationError, normalize_domain
from store import DomainStore, retry_operation

logger = logging.getLogger(__name__)

DOMAINS_MONITOR_URL = "https://domains-monitor.com/api/v1/{token}/dailyremove/json/"

CSV_DOMAIN_COLUMN = "domain"


@dataclass
class ImportSummary:
    added: int = 0
    skipped: int = 0
    failed: int = 0

    def to_dict(self) -> dict[str, int]:
        return {"added": self.added, "skipped": self.skipped, "failed": self.failed}


def _feed_entry_domain(entry: Any) -> str | None:
    if isinstance(entry, str):
        return entry
    if isinstance(entry, dict):
        return entry.get("domain")
    return None


async def fetch_removed_domains(
    token: str | None,
    client: httpx.AsyncClient | None = None,
) -> list[str]:
    """Fetch today's removed-domains list. Returns [] when the feed is unavailable."""
    if not token:
        logger.warning("DOMAINS_MONITOR_TOKEN is not set, skipping feed")
        return []

    client = client or await get_http_client()
    try:
        response = await client.get(DOMAINS_MONITOR_URL.format(token=token))
        response.raise_for_status()
        entries = response.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.error("Error fetching removed domains: %s", e)
        return []

    if not isinstance(entries, list):
        logger.error("Removed-domains feed returned %s, expected a list", type(entries).__name__)
        return []

    return [domain for domain in map(_feed_entry_domain, entries) if domain]


async def import_domains(
    domains: Iterable[str],
    store: DomainStore,
    analyzer: TrafficAnalyzer,
    pause: float = 0.0,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> ImportSummary:
    """
    Analyze and store every domain the store does not have yet.

    Invalid and already tracked domains are skipped. A failure on one
    domain is logged and the pass continues with the next.
    """
    summary = ImportSummary()
    new_domains: list[str] = []
    loop = asyncio.get_running_loop()

    for raw in domains:
        try:
            domain = normalize_domain(raw)
        except DomainValidationError as e:
            logger.warning("Skipping invalid domain %r: %s", raw, e)
            summary.failed += 1
            continue

        if domain in new_domains or await loop.run_in_executor(
            None, retry_operation, lambda: store.exists(domain)
        ):
            logger.info("Domain %s already exists, skipping", domain)
            summary.skipped += 1
            continue
        new_domains.append(domain)

    if not new_domains:
        return summary

    analyses = await analyzer.analyze_batch(new_domains)
    for index, analysis in enumerate(analyses):
        if index and pause:
            await sleep(pause)
        try:
            await loop.run_in_executor(None, retry_operation, lambda: store.save_analysis(analysis))
        except Exception:
            logger.exception("Error saving domain %s", analysis.domain)
            summary.failed += 1
            continue
        logger.info("Added domain %s (score %d)", analysis.domain, analysis.traffic_score)
        summary.added += 1

    return summary


def read_csv_domains(path: str | Path) -> list[str]:
    """Read the ``domain`` column of a CSV file, skipping blank cells."""
    with open(path, newline="", encoding="utf-8") as handle:
        reader = csv.DictReader(handle)
        if not reader.fieldnames or CSV_DOMAIN_COLUMN not in reader.fieldnames:
            raise ValueError(f"{path}: CSV has no '{CSV_DOMAIN_COLUMN}' column")
        return [
            row[CSV_DOMAIN_COLUMN].strip()
            for row in reader
            if (row.get(CSV_DOMAIN_COLUMN) or "").strip()
        ]


async def import_csv(
    path: str | Path,
    store: DomainStore,
    analyzer: TrafficAnalyzer,
    pause: float = 0.0,
) -> ImportSummary:
    """Import domains listed in a CSV file with a ``domain`` column."""
    domains = read_csv_domains(path)
    logger.info("Importing %d domains from %s", len(domains), path)
    summary = await import_domains(domains, store, analyzer, pause=pause)
    logger.info("Import completed: %s", summary.to_dict())
    return summary


async def update_from_feed(
    store: DomainStore,
    analyzer: TrafficAnalyzer,
    settings: Settings | None = None,
    client: httpx.AsyncClient | None = None,
) -> ImportSummary:
    """One update pass over the removed-domains feed."""
    settings = settings or get_settings()
    logger.info("Starting database update")
    domains = await fetch_removed_domains(settings.domains_monitor_token, client=client)
    summary = await import_domains(domains, store, analyzer, pause=settings.update_delay)
    logger.info("Database update completed: %s", summary.to_dict())
    return summary


def job_update(settings: Settings | None = None) -> None:
    """Scheduled job: one feed update pass with its own event loop and HTTP client."""
    settings = settings or get_settings()
    store = DomainStore(settings.database_url)

    async def run() -> ImportSummary:
        async with managed_http_client():
            analyzer = TrafficAnalyzer.from_settings(settings)
            return await update_from_feed(store, analyzer, settings)

    try:
        store.init_db()
        asyncio.run(run())
    except Exception:
        logger.exception("Scheduled update failed")
        raise
    finally:
        store.dispose()


def build_scheduler(settings: Settings | None = None) -> BlockingScheduler:
    """Scheduler that runs the update every UPDATE_INTERVAL_HOURS hours, and once right away."""
    settings = settings or get_settings()
    scheduler = BlockingScheduler()
    scheduler.add_job(
        job_update,
        CronTrigger(hour=f"*/{settings.update_interval_hours}", minute=0),
        args=[settings],
        id="lapsewatch_feed_update",
        max_instances=1,
        coalesce=True,
    )
    # No trigger: run once as soon as the scheduler starts
    scheduler.add_job(job_update, args=[settings], id="lapsewatch_feed_update_startup")
    return scheduler


def run_scheduler(settings: Settings | None = None) -> None:
    settings = settings or get_settings()
    scheduler = build_scheduler(settings)
    logger.info("Scheduler started, updating every %d hours", settings.update_interval_hours)
    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Scheduler stopped")

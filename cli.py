"""
Lapsewatch command line.

Usage:
  lapsewatch analyze example.com other.net      # full analysis, JSON to stdout
  lapsewatch analyze --quick example.com        # heuristic + DNS only
  lapsewatch import domains.csv                 # analyze and store a CSV of domains
  lapsewatch update                             # one pass over the removed-domains feed
  lapsewatch schedule                           # run update on a cron schedule
  lapsewatch serve --port 8000                  # JSON API
"""

import argparse
import asyncio
import json
import logging
import sys

from config import configure_logging, get_settings
from http_client import managed_http_client
from scoring import ScoringScheme, TrafficAnalyzer
from scoring.models import DomainAnalysis
from store import DomainStore

logger = logging.getLogger(__name__)


async def _analyze(domains: list[str], scheme: str | None, quick: bool) -> list[DomainAnalysis]:
    async with managed_http_client():
        analyzer = TrafficAnalyzer.from_settings(scheme=scheme)
        if quick:
            return list(await asyncio.gather(*(analyzer.quick_analyze(d) for d in domains)))
        return await analyzer.analyze_batch(domains)


def cmd_analyze(args: argparse.Namespace) -> int:
    analyses = asyncio.run(_analyze(args.domains, args.scheme, args.quick))
    json.dump([a.to_dict() for a in analyses], sys.stdout, indent=2)
    sys.stdout.write("\n")
    return 0


def cmd_import(args: argparse.Namespace) -> int:
    from scheduler import import_csv

    settings = get_settings()
    store = DomainStore(settings.database_url)
    store.init_db()

    async def run():
        async with managed_http_client():
            analyzer = TrafficAnalyzer.from_settings(settings)
            return await import_csv(args.csv_path, store, analyzer, pause=settings.update_delay)

    try:
        summary = asyncio.run(run())
    except (OSError, ValueError) as e:
        logger.error("Import failed: %s", e)
        return 1
    finally:
        store.dispose()
    print(json.dumps(summary.to_dict()))
    return 0


def cmd_update(args: argparse.Namespace) -> int:
    from scheduler import job_update

    job_update(get_settings())
    return 0


def cmd_schedule(args: argparse.Namespace) -> int:
    from scheduler import run_scheduler

    run_scheduler(get_settings())
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("main:app", host=args.host, port=args.port, log_level=get_settings().log_level.lower())
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lapsewatch",
        description="Estimate traffic for expired and available domain names.",
    )
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL (DEBUG, INFO, ...)")
    sub = parser.add_subparsers(dest="command", required=True)

    analyze = sub.add_parser("analyze", help="Analyze domains and print JSON.")
    analyze.add_argument("domains", nargs="+", metavar="DOMAIN")
    analyze.add_argument(
        "--scheme",
        choices=[s.value for s in ScoringScheme],
        default=None,
        help="Scoring scheme (default: SCORING_SCHEME)",
    )
    analyze.add_argument("--quick", action="store_true", help="Name heuristics plus one DNS lookup.")
    analyze.set_defaults(func=cmd_analyze)

    importer = sub.add_parser("import", help="Analyze and store domains from a CSV with a 'domain' column.")
    importer.add_argument("csv_path", metavar="CSV")
    importer.set_defaults(func=cmd_import)

    update = sub.add_parser("update", help="Run one removed-domains feed update.")
    update.set_defaults(func=cmd_update)

    schedule = sub.add_parser("schedule", help="Run feed updates every UPDATE_INTERVAL_HOURS hours.")
    schedule.set_defaults(func=cmd_schedule)

    serve = sub.add_parser("serve", help="Serve the JSON API with uvicorn.")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.set_defaults(func=cmd_serve)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level.upper() if args.log_level else None)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())

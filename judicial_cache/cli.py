"""
Judicial Cache Administration

Operator commands, all run as the service caller.
Usage:
    judicial-cache-admin init-db
    judicial-cache-admin rebuild
    judicial-cache-admin reconcile --batch-size 1000
    judicial-cache-admin cache-stats
    judicial-cache-admin clear-stale --days 180
    judicial-cache-admin readiness --top 20
    judicial-cache-admin health
"""

import argparse
import asyncio
import json
import sys

from judicial_cache.access import Caller
from judicial_cache.config.logging import configure_logging
from judicial_cache.database import (
    check_database_health,
    close_database,
    create_schema,
    get_session_factory,
    init_database,
)
from judicial_cache.quality import ReadinessReporter
from judicial_cache.services import build_services

SERVICE_CALLER = Caller.service("cache-admin")


def _print_json(payload: dict) -> None:
    print(json.dumps(payload, indent=2, default=str))


async def cmd_init_db(args) -> int:
    await create_schema()
    print("✅ Schema ready")
    return 0


async def cmd_rebuild(args) -> int:
    services = build_services(get_session_factory())
    report = await services.decision_counts.rebuild(SERVICE_CALLER)
    _print_json(report.model_dump(mode="json"))
    if not report.success:
        print(f"❌ Rebuild failed: {report.error_message}", file=sys.stderr)
        return 1
    print(f"✅ Generation {report.generation} active with {report.row_count:,} buckets")
    return 0


async def cmd_reconcile(args) -> int:
    services = build_services(get_session_factory())
    report = await services.progress.reconcile(SERVICE_CALLER, batch_size=args.batch_size)
    _print_json(report.model_dump(mode="json"))
    return 0


async def cmd_cache_stats(args) -> int:
    services = build_services(get_session_factory())
    stats = await services.analytics.stats(SERVICE_CALLER)
    _print_json(stats.model_dump(mode="json"))
    return 0


async def cmd_clear_stale(args) -> int:
    services = build_services(get_session_factory())
    report = await services.analytics.clear_stale(SERVICE_CALLER, days_old=args.days)
    _print_json(report.model_dump(mode="json"))
    return 0


async def cmd_readiness(args) -> int:
    services = build_services(get_session_factory())
    snapshots = await services.progress.snapshots(SERVICE_CALLER)
    report = ReadinessReporter(settings=services.settings, top_n=args.top).build(snapshots)
    _print_json(report.model_dump(mode="json"))
    return 0 if report.consistent else 1


async def cmd_health(args) -> int:
    health = await check_database_health()
    _print_json(health)
    return 0 if health["status"] == "healthy" else 1


COMMANDS = {
    "init-db": cmd_init_db,
    "rebuild": cmd_rebuild,
    "reconcile": cmd_reconcile,
    "cache-stats": cmd_cache_stats,
    "clear-stale": cmd_clear_stale,
    "readiness": cmd_readiness,
    "health": cmd_health,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Judicial cache administration")
    parser.add_argument(
        "--database-url",
        default=None,
        help="Async database URL (default: from POSTGRES_* / DATABASE_URL settings)",
    )
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("init-db", help="Create tables and indexes")
    sub.add_parser("rebuild", help="Rebuild the decision count aggregate")

    reconcile = sub.add_parser("reconcile", help="Re-derive sync progress columns")
    reconcile.add_argument("--batch-size", type=int, default=None)

    sub.add_parser("cache-stats", help="Analytics cache statistics")

    clear = sub.add_parser("clear-stale", help="Delete stale analytics entries")
    clear.add_argument("--days", type=int, default=None, help="Age cutoff in days")

    readiness = sub.add_parser("readiness", help="Data readiness report")
    readiness.add_argument("--top", type=int, default=10, help="Number of top judges to list")

    sub.add_parser("health", help="Database connectivity check")
    return parser


async def run(args) -> int:
    await init_database(args.database_url)
    try:
        return await COMMANDS[args.command](args)
    finally:
        await close_database()


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())

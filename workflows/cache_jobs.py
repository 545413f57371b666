"""
Prefect Workflow Orchestration - Cache Maintenance

Scheduled jobs for the judicial cache:
- Nightly decision count rebuild
- Sync progress reconciliation
- Analytics cache stale-entry cleanup
- Data readiness reporting
"""

from typing import Optional

from prefect import flow, task, get_run_logger

from judicial_cache.access import Caller
from judicial_cache.config import get_settings
from judicial_cache.config.logging import configure_logging
from judicial_cache.database import close_database, get_session_factory, init_database
from judicial_cache.errors import JudicialCacheError
from judicial_cache.quality import ReadinessReporter
from judicial_cache.services import CacheServices, build_services

SERVICE_CALLER = Caller.service("prefect")


async def _open_services() -> CacheServices:
    configure_logging()
    await init_database()
    return build_services(get_session_factory())


# =============================================================================
# TASKS
# =============================================================================

@task(
    name="rebuild_decision_counts",
    description="Recompute the per-judge yearly decision count buckets",
    retries=3,
    retry_delay_seconds=120,
)
async def rebuild_decision_counts(services: CacheServices) -> dict:
    """Rebuild the aggregate; a failed rebuild raises so the task is retried"""
    logger = get_run_logger()

    report = await services.decision_counts.rebuild(SERVICE_CALLER)
    if not report.success:
        raise JudicialCacheError(f"Decision count rebuild failed: {report.error_message}")

    logger.info(
        f"Decision counts rebuilt: generation {report.generation}, "
        f"{report.row_count} buckets in {report.duration_ms}ms"
    )
    return report.model_dump(mode="json")


@task(
    name="reconcile_sync_progress",
    description="Re-derive phase and readiness columns for every progress record",
    retries=2,
    retry_delay_seconds=60,
)
async def reconcile_sync_progress(services: CacheServices, batch_size: Optional[int] = None) -> dict:
    logger = get_run_logger()

    report = await services.progress.reconcile(SERVICE_CALLER, batch_size=batch_size)

    logger.info(f"Reconciled {report.scanned} progress records, corrected {report.corrected}")
    return report.model_dump(mode="json")


@task(
    name="clear_stale_analytics",
    description="Delete analytics cache entries that have not been rewritten recently",
    retries=2,
    retry_delay_seconds=30,
)
async def clear_stale_analytics(services: CacheServices, days_old: Optional[int] = None) -> dict:
    logger = get_run_logger()

    report = await services.analytics.clear_stale(SERVICE_CALLER, days_old=days_old)

    logger.info(f"Cleared {report.deleted_count} stale analytics entries older than {report.cutoff}")
    return report.model_dump(mode="json")


@task(
    name="analytics_cache_stats",
    description="Collect analytics cache size and age statistics",
)
async def analytics_cache_stats(services: CacheServices) -> dict:
    logger = get_run_logger()

    stats = await services.analytics.stats(SERVICE_CALLER)
    if stats.stale_entries:
        logger.warning(
            f"{stats.stale_entries} of {stats.total_entries} analytics entries "
            f"are older than {stats.stale_after_days} days"
        )
    return stats.model_dump(mode="json")


@task(
    name="readiness_report",
    description="Summarize ingestion completeness and check derived columns",
)
async def readiness_report(services: CacheServices) -> dict:
    logger = get_run_logger()

    snapshots = await services.progress.snapshots(SERVICE_CALLER)
    report = ReadinessReporter(settings=services.settings).build(snapshots)

    if not report.consistent:
        logger.warning(f"Progress consistency checks failed: {report.consistency_failures}")

    logger.info(
        f"Readiness: {report.summary.analytics_ready}/{report.summary.total_judges} analytics-ready, "
        f"{report.summary.completion_percentage}% complete"
    )
    return report.model_dump(mode="json")


# =============================================================================
# FLOWS
# =============================================================================

@flow(
    name="rebuild_decision_counts",
    description="Nightly rebuild of the judge decision count aggregate",
)
async def rebuild_decision_counts_flow() -> dict:
    services = await _open_services()
    try:
        return await rebuild_decision_counts(services)
    finally:
        await close_database()


@flow(
    name="reconcile_sync_progress",
    description="Repair derived sync progress columns after out-of-band edits",
)
async def reconcile_sync_progress_flow(batch_size: Optional[int] = None) -> dict:
    """
    Reconcile progress records, then report readiness.

    The readiness report runs after reconciliation so its consistency checks
    reflect the repaired rows.
    """
    services = await _open_services()
    try:
        reconciled = await reconcile_sync_progress(services, batch_size=batch_size)
        readiness = await readiness_report(services)
    finally:
        await close_database()

    return {"reconcile": reconciled, "readiness": readiness}


@flow(
    name="analytics_cache_maintenance",
    description="Weekly analytics cache cleanup and statistics",
)
async def analytics_cache_maintenance_flow(days_old: Optional[int] = None) -> dict:
    logger = get_run_logger()
    days_old = days_old if days_old is not None else get_settings().cache.stale_clear_days

    services = await _open_services()
    try:
        cleared = await clear_stale_analytics(services, days_old=days_old)
        stats = await analytics_cache_stats(services)
    finally:
        await close_database()

    logger.info(f"Analytics cache maintenance complete: {stats['total_entries']} entries remain")
    return {"cleared": cleared, "stats": stats}


# =============================================================================
# DEPLOYMENT CONFIGURATION
# =============================================================================

if __name__ == "__main__":
    import asyncio

    asyncio.run(rebuild_decision_counts_flow())

"""Daily cron syncs of every configured user (one job per broker) and fund prices."""
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from portfolio_sync.services.fund_prices import FundPriceService
from portfolio_sync.services.sync import SyncService

logger = logging.getLogger(__name__)
_scheduler: AsyncIOScheduler | None = None


async def job_sync_all(service: SyncService, broker: str) -> None:
    """Scheduled batch for one broker; per-user failures are handled by the service."""
    logger.info("[SCHEDULE] starting %s batch sync", broker)
    result = await service.sync_all(broker)
    logger.info(
        "[SCHEDULE] %s batch done: %d/%d synced, %d errors",
        broker, result.synced, result.total, result.errors,
    )


async def job_refresh_fund_prices(service: FundPriceService) -> None:
    """Scheduled fund price refresh; per-ISIN failures are handled by the service."""
    logger.info("[SCHEDULE] starting fund price refresh")
    result = await service.refresh_prices()
    logger.info(
        "[SCHEDULE] fund prices done: %d holdings updated, %d errors, %d ISINs",
        result.updated, result.errors, result.isins_processed,
    )


def start_scheduler(
    service: SyncService,
    hour: int = 2,
    fund_prices: FundPriceService | None = None,
) -> AsyncIOScheduler:
    """Start the scheduler on the running event loop (idempotent).

    Broker batches run at HH:00 UTC; the fund price refresh, when its
    service is given and configured, runs at HH:30.
    """
    global _scheduler  # pylint: disable=global-statement
    if _scheduler:
        return _scheduler

    _scheduler = AsyncIOScheduler(timezone="UTC")
    for broker in service.brokers:
        _scheduler.add_job(
            job_sync_all,
            "cron",
            hour=hour,
            minute=0,
            args=[service, broker],
            id=f"sync_{broker}",
            max_instances=1,
            coalesce=True,
        )
    if fund_prices is not None and fund_prices.enabled:
        _scheduler.add_job(
            job_refresh_fund_prices,
            "cron",
            hour=hour,
            minute=30,
            args=[fund_prices],
            id="sync_fund_prices",
            max_instances=1,
            coalesce=True,
        )
    _scheduler.start()
    logger.info("[SCHEDULE] started: %s daily at %02d:00 UTC", ", ".join(service.brokers), hour)
    return _scheduler


def shutdown_scheduler() -> None:
    global _scheduler  # pylint: disable=global-statement
    if _scheduler:
        _scheduler.shutdown(wait=False)
        logger.info("[SCHEDULE] stopped")
        _scheduler = None


def get_scheduler_status() -> dict:
    """Current scheduler state and its jobs."""
    if not _scheduler:
        return {"running": False, "jobs": []}
    return {
        "running": _scheduler.running,
        "jobs": [
            {"id": job.id, "next_run": job.next_run_time, "trigger": str(job.trigger)}
            for job in _scheduler.get_jobs()
        ],
    }

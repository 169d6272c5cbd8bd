"""
Pipeline worker entry point.

Usage:
    python -m riskwatch.main

Runs the pipeline against the polled update feed (FEED_URL) plus an
APScheduler maintenance job that purges expired ledger/cache entries and
retries buffered incident writes. No web server.
"""

import asyncio
import signal
import sys

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from riskwatch.config import settings
from riskwatch.container import Services, build_services
from riskwatch.log_config import configure_logging
from riskwatch.pipeline.source import PollingUpdateSource

logger = structlog.get_logger(__name__)


async def run_maintenance(services: Services) -> None:
    purged = services.orchestrator.purge_expired()
    flushed = await services.incidents.flush_pending()
    logger.info("maintenance_completed", purged=purged, flushed=flushed)


async def main() -> int:
    configure_logging(settings)
    logger.info("worker_starting", version=settings.app_version, environment=settings.environment)

    if not settings.feed_url:
        logger.error("worker_not_configured", reason="FEED_URL is empty")
        return 1

    services = build_services(settings)
    await services.startup()

    source = PollingUpdateSource(
        settings.feed_url,
        interval_seconds=settings.feed_poll_seconds,
        timeout=settings.provider_timeout_seconds,
    )
    await services.orchestrator.start(source)

    maintenance = AsyncIOScheduler()
    maintenance.add_job(
        run_maintenance,
        IntervalTrigger(minutes=settings.maintenance_interval_minutes),
        args=[services],
        id="maintenance",
        max_instances=1,
        replace_existing=True,
    )
    maintenance.start()

    # Graceful shutdown handling
    stop_event = asyncio.Event()

    def _handle_signal(signum, frame):
        logger.info("shutdown_signal_received", signal=signum)
        stop_event.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    logger.info("worker_running", feed=settings.feed_url)
    await stop_event.wait()

    maintenance.shutdown(wait=False)
    await services.shutdown()
    logger.info("worker_shutdown_complete")
    return 0


if __name__ == "__main__":
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        pass

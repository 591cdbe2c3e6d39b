"""Background task scheduler using APScheduler.

Manages scheduled jobs for:
- Checkpoint cleanup: finished checkpoints past retention and abandoned
  in-progress ones past the recovery window (every
  CHECKPOINT_CLEANUP_INTERVAL_MINUTES)
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from apscheduler.schedulers.asyncio import (  # type: ignore[import-untyped]
    AsyncIOScheduler,
)
from apscheduler.triggers.interval import (  # type: ignore[import-untyped]
    IntervalTrigger,
)

from core.config import Settings, get_settings
from services.analysis.checkpoints import CheckpointStore
from services.analysis.exceptions import CheckpointStoreError


logger = logging.getLogger(__name__)

scheduler: AsyncIOScheduler | None = None


async def run_checkpoint_cleanup(store: CheckpointStore) -> int:
    """Scheduled job: delete stale analysis checkpoints.

    Returns the number of rows removed, or 0 when the store is unavailable.
    """
    logger.info("Starting scheduled checkpoint cleanup")
    try:
        deleted = await store.cleanup()
    except CheckpointStoreError as e:
        logger.error(f"Checkpoint cleanup failed: {e}", exc_info=True)
        return 0
    if deleted > 0:
        stats = await store.stats()
        logger.info(
            f"Checkpoint cleanup completed: {deleted} removed, {stats.total} remaining"
        )
    return deleted


def setup_scheduler(
    store: CheckpointStore, settings: Settings | None = None
) -> AsyncIOScheduler:
    """Initialize APScheduler with the checkpoint cleanup job."""
    global scheduler
    settings = settings or get_settings()
    scheduler = AsyncIOScheduler(timezone="UTC")

    interval = settings.CHECKPOINT_CLEANUP_INTERVAL_MINUTES
    scheduler.add_job(
        run_checkpoint_cleanup,
        trigger=IntervalTrigger(minutes=interval),
        args=[store],
        id="cleanup_analysis_checkpoints",
        name="Stale analysis checkpoint cleanup",
        replace_existing=True,
    )

    logger.info(f"Scheduler configured: checkpoint cleanup ({interval} min)")
    return scheduler


@asynccontextmanager
async def scheduler_lifespan(
    store: CheckpointStore, settings: Settings | None = None
) -> AsyncGenerator[None, None]:
    """Context manager for scheduler lifecycle.

    Usage in FastAPI:
        @asynccontextmanager
        async def lifespan(app: FastAPI):
            async with scheduler_lifespan(store):
                yield
    """
    settings = settings or get_settings()
    if not settings.ENABLE_SCHEDULER:
        logger.info("Background scheduler disabled")
        yield
        return

    setup_scheduler(store, settings)
    if scheduler:
        scheduler.start()
        logger.info("Background scheduler started")
    try:
        yield
    finally:
        if scheduler and scheduler.running:
            scheduler.shutdown(wait=True)
            logger.info("Background scheduler shut down")

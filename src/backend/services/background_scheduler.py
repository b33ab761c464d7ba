"""
Background Scheduler Service

Manages scheduled background tasks using APScheduler:
- Verified-badge notification retries
- Expired rate limit window cleanup

This runs in-process with the FastAPI application.
"""

import logging
import time
from datetime import timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from core.config import settings

logger = logging.getLogger(__name__)

# Global scheduler instance
_scheduler: AsyncIOScheduler | None = None


async def retry_notifications_job() -> None:
    """
    Background job to redeliver pending badge notifications.

    Picks up outbox rows whose delivery failed, or that were never attempted
    because the process stopped right after the verifying commit.
    """
    from services.notification_service import VerificationNotifier

    try:
        result = await VerificationNotifier().retry_pending()
        if result["due"]:
            logger.info(
                f"Notification retry completed: due={result['due']}, "
                f"delivered={result['delivered']}, failed={result['failed']}"
            )
    except Exception as e:
        logger.error(f"Notification retry job failed: {e}", exc_info=True)


async def purge_rate_limits_job() -> None:
    """Background job to delete rate limit windows past the retention period."""
    from db.session import async_session_maker
    from repositories.rate_limit_repository import RateLimitRepository

    try:
        async with async_session_maker() as db:
            removed = await RateLimitRepository(db).purge_expired(
                before=time.time() - settings.RATE_LIMIT_RETENTION_SECONDS
            )
            await db.commit()
        if removed:
            logger.info(f"Purged {removed} expired rate limit windows")
    except Exception as e:
        logger.error(f"Rate limit cleanup job failed: {e}", exc_info=True)


def get_scheduler() -> AsyncIOScheduler:
    """Get the global scheduler instance."""
    global _scheduler
    if _scheduler is None:
        _scheduler = AsyncIOScheduler(timezone=timezone.utc)
    return _scheduler


async def start_scheduler() -> None:
    """Start the background scheduler with all jobs."""
    scheduler = get_scheduler()

    if scheduler.running:
        logger.info("Scheduler already running")
        return

    scheduler.add_job(
        retry_notifications_job,
        trigger=IntervalTrigger(seconds=settings.NOTIFICATION_RETRY_INTERVAL_SECONDS),
        id="verification_notification_retry",
        name="Verification Notification Retry",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    logger.info(f"Added notification retry job (every {settings.NOTIFICATION_RETRY_INTERVAL_SECONDS}s)")

    scheduler.add_job(
        purge_rate_limits_job,
        trigger=IntervalTrigger(seconds=settings.RATE_LIMIT_CLEANUP_INTERVAL_SECONDS),
        id="rate_limit_cleanup",
        name="Rate Limit Window Cleanup",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    logger.info(f"Added rate limit cleanup job (every {settings.RATE_LIMIT_CLEANUP_INTERVAL_SECONDS}s)")

    scheduler.start()
    logger.info("Background scheduler started")


async def stop_scheduler() -> None:
    """Stop the background scheduler gracefully."""
    global _scheduler

    if _scheduler and _scheduler.running:
        logger.info("Stopping background scheduler...")
        _scheduler.shutdown(wait=True)
        logger.info("Background scheduler stopped")

    _scheduler = None

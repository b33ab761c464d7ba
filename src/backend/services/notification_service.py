"""
Verified Badge Notification Service

Delivers the "video verified" transition to the owner's profile.

The intent to notify is written to the ``verification_notifications`` outbox
in the same transaction that flips the video to verified, so it survives a
crash between commit and delivery. Delivery itself never affects the
verification result: failures are logged, counted and retried with
exponential backoff by the background scheduler.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from models.verification_notification import NotificationStatus, VerificationNotification
from repositories.notification_repository import NotificationRepository
from services.profile_service import VideoOwnerProfileService, get_profile_service

logger = structlog.get_logger(__name__)

# Deliveries started off the request path; strong references keep them alive
_background_deliveries: set[asyncio.Task] = set()


class VerificationNotifier:
    """
    Status transition notifier.

    Features:
    - Delivers each video's badge notification at most once as ``delivered``
    - Retries failed deliveries with exponential backoff
    - Gives up after ``NOTIFICATION_MAX_ATTEMPTS`` and marks the row ``failed``
    """

    def __init__(
        self,
        session_factory: Optional[Callable[[], AsyncSession]] = None,
        profile_service: Optional[VideoOwnerProfileService] = None,
    ):
        if session_factory is None:
            from db.session import async_session_maker

            session_factory = async_session_maker
        self.session_factory = session_factory
        self.profile_service = profile_service or get_profile_service()

    async def on_verified(self, video_id: str, owner_id: str) -> bool:
        """
        Deliver the badge notification for a freshly verified video.

        Returns True when the notification is delivered by this call.
        """
        async with self.session_factory() as db:
            repo = NotificationRepository(db)
            notification = await repo.get_by_video_id(video_id)
            if notification is None:
                logger.warning("verification_notification_missing", video_id=video_id, owner_id=owner_id)
                return False
            if notification.status != NotificationStatus.PENDING.value:
                return False
            return await self._deliver(db, repo, notification)

    def dispatch(self, video_id: str, owner_id: str) -> asyncio.Task:
        """Start ``on_verified`` in the background and return its task."""
        task = asyncio.create_task(self._on_verified_logged(video_id, owner_id))
        _background_deliveries.add(task)
        task.add_done_callback(_background_deliveries.discard)
        return task

    async def _on_verified_logged(self, video_id: str, owner_id: str) -> None:
        try:
            await self.on_verified(video_id, owner_id)
        except Exception:
            # The outbox row stays pending and the scheduler retries it
            logger.exception("verified_notification_error", video_id=video_id, owner_id=owner_id)

    async def retry_pending(self, limit: int = 50) -> dict:
        """
        Retry every pending notification that is due.

        Returns:
            Dict with delivery stats
        """
        delivered = 0
        failed = 0
        async with self.session_factory() as db:
            repo = NotificationRepository(db)
            due = await repo.list_due(limit=limit)
            for notification in due:
                if await self._deliver(db, repo, notification):
                    delivered += 1
                else:
                    failed += 1

        if due:
            logger.info("verification_notifications_retried", due=len(due), delivered=delivered, failed=failed)
        return {"due": len(due), "delivered": delivered, "failed": failed}

    async def _deliver(
        self,
        db: AsyncSession,
        repo: NotificationRepository,
        notification: VerificationNotification,
    ) -> bool:
        try:
            await self.profile_service.set_verified_badge(notification.owner_id)
        except Exception as e:
            attempts = notification.attempts + 1
            give_up = attempts >= settings.NOTIFICATION_MAX_ATTEMPTS
            await repo.record_failure(
                notification.id,
                error=f"{type(e).__name__}: {e}",
                next_attempt_at=self._next_attempt_at(attempts),
                give_up=give_up,
            )
            await db.commit()
            logger.warning(
                "verified_badge_delivery_failed",
                video_id=notification.video_id,
                owner_id=notification.owner_id,
                attempts=attempts,
                gave_up=give_up,
                error=str(e),
            )
            return False

        await repo.mark_delivered(notification.id)
        await db.commit()
        logger.info(
            "verified_badge_delivered",
            video_id=notification.video_id,
            owner_id=notification.owner_id,
        )
        return True

    def _next_attempt_at(self, attempts: int) -> datetime:
        delay = settings.NOTIFICATION_BACKOFF_BASE_SECONDS * (2 ** (attempts - 1))
        return datetime.now(timezone.utc) + timedelta(seconds=delay)


async def drain_background_deliveries() -> None:
    """Wait for every dispatched delivery to finish (shutdown, tests)."""
    while _background_deliveries:
        await asyncio.gather(*list(_background_deliveries), return_exceptions=True)

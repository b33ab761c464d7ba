"""
Badge notification outbox repository.
"""

from datetime import datetime, timezone
from typing import Any, Optional
from uuid import uuid4

from sqlalchemy import and_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from models.verification_notification import NotificationStatus, VerificationNotification


class NotificationRepository:
    """Repository for the verification notification outbox."""

    def __init__(self, db: AsyncSession):
        self.db = db

    def _get_rowcount(self, result: Any) -> int:
        """Safely get rowcount from result."""
        return getattr(result, "rowcount", 0) or 0

    async def enqueue(self, video_id: str, owner_id: str) -> VerificationNotification:
        """Record the intent to notify; must run in the transaction that verified the video."""
        notification = VerificationNotification(
            id=str(uuid4()),
            video_id=video_id,
            owner_id=owner_id,
            status=NotificationStatus.PENDING.value,
            attempts=0,
            next_attempt_at=datetime.now(timezone.utc),
        )
        self.db.add(notification)
        await self.db.flush()
        return notification

    async def get_by_video_id(self, video_id: str) -> Optional[VerificationNotification]:
        result = await self.db.execute(
            select(VerificationNotification)
            .where(VerificationNotification.video_id == video_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_due(self, limit: int = 50) -> list[VerificationNotification]:
        """Pending notifications whose next attempt time has arrived."""
        now = datetime.now(timezone.utc)
        result = await self.db.execute(
            select(VerificationNotification)
            .where(
                and_(
                    VerificationNotification.status == NotificationStatus.PENDING.value,
                    VerificationNotification.next_attempt_at <= now,
                )
            )
            .order_by(VerificationNotification.next_attempt_at.asc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def mark_delivered(self, notification_id: str) -> bool:
        """Mark delivered; a no-op if another worker already did."""
        now = datetime.now(timezone.utc)
        result = await self.db.execute(
            update(VerificationNotification)
            .where(
                and_(
                    VerificationNotification.id == notification_id,
                    VerificationNotification.status == NotificationStatus.PENDING.value,
                )
            )
            .values(
                status=NotificationStatus.DELIVERED.value,
                attempts=VerificationNotification.attempts + 1,
                delivered_at=now,
                last_error=None,
            )
            .execution_options(synchronize_session=False)
        )
        return self._get_rowcount(result) == 1

    async def record_failure(
        self,
        notification_id: str,
        error: str,
        next_attempt_at: datetime,
        give_up: bool = False,
    ) -> bool:
        """Count a failed attempt and schedule the next one (or give up)."""
        status = NotificationStatus.FAILED.value if give_up else NotificationStatus.PENDING.value
        result = await self.db.execute(
            update(VerificationNotification)
            .where(
                and_(
                    VerificationNotification.id == notification_id,
                    VerificationNotification.status == NotificationStatus.PENDING.value,
                )
            )
            .values(
                status=status,
                attempts=VerificationNotification.attempts + 1,
                last_error=error[:1000],
                next_attempt_at=next_attempt_at,
            )
            .execution_options(synchronize_session=False)
        )
        return self._get_rowcount(result) == 1

"""
Single-video moderation for administrators.

Approve, reject, flag and goal changes go through the same guarded UPDATE
statements as community votes, so an admin action racing a vote can never
verify a video twice or revert a verified one.
"""

from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import VideoNotFound
from core.security import mask_email
from models.talent_video import VerificationStatus
from repositories.notification_repository import NotificationRepository
from repositories.talent_video_repository import TalentVideoRepository
from repositories.verification_repository import VerificationRepository
from schemas.talent_video import ModerationResult, TalentVideoResponse, VerificationStats
from schemas.verification import VerificationAuditEntry
from services.notification_service import VerificationNotifier

logger = structlog.get_logger(__name__)


class ModerationService:
    """Admin-side operations on talent videos."""

    def __init__(self, db: AsyncSession, notifier: Optional[VerificationNotifier] = None):
        self.db = db
        self.videos = TalentVideoRepository(db)
        self.records = VerificationRepository(db)
        self.outbox = NotificationRepository(db)
        self._notifier = notifier

    @property
    def notifier(self) -> VerificationNotifier:
        if self._notifier is None:
            self._notifier = VerificationNotifier()
        return self._notifier

    async def list_videos(
        self,
        status: Optional[str] = None,
        flagged_only: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> list[TalentVideoResponse]:
        videos = await self.videos.list_videos(status=status, flagged_only=flagged_only, limit=limit, offset=offset)
        return [TalentVideoResponse.model_validate(video) for video in videos]

    async def get_stats(self) -> VerificationStats:
        counts = await self.videos.get_status_counts()
        return VerificationStats(
            total=counts["total"],
            pending=counts[VerificationStatus.PENDING.value],
            verified=counts[VerificationStatus.VERIFIED.value],
            rejected=counts[VerificationStatus.REJECTED.value],
        )

    async def get_audit_trail(self, video_id: str) -> list[VerificationAuditEntry]:
        """Votes for a video with verifier emails masked."""
        await self._require_video(video_id)
        records = await self.records.list_by_video(video_id)
        return [
            VerificationAuditEntry(
                id=record.id,
                verifier_name=record.verifier_name,
                verifier_email=mask_email(record.verifier_email),
                verifier_relationship=record.verifier_relationship,
                verification_message=record.verification_message,
                ip_address=record.ip_address,
                user_agent=record.user_agent,
                submitted_at=record.submitted_at,
            )
            for record in records
        ]

    async def approve(self, video_id: str, admin_id: str) -> ModerationResult:
        """Verify a pending video regardless of its vote count."""
        video = await self._require_video(video_id)

        changed = await self.videos.try_set_verified(video_id, require_goal_met=False)
        if changed:
            await self.outbox.enqueue(video.id, video.owner_id)
        await self.db.commit()

        if changed:
            logger.info("talent_video_approved", video_id=video_id, admin_id=admin_id)
            try:
                await self.notifier.on_verified(video.id, video.owner_id)
            except Exception:
                logger.exception("verified_notification_error", video_id=video_id, owner_id=video.owner_id)

        return await self._result(video_id, changed, "Video verified." if changed else "Video is not pending.")

    async def reject(self, video_id: str, reason: str, admin_id: str) -> ModerationResult:
        """Reject a pending video; verified videos stay verified."""
        await self._require_video(video_id)
        changed = await self.videos.set_rejected(video_id, reason)
        await self.db.commit()
        if changed:
            logger.info("talent_video_rejected", video_id=video_id, admin_id=admin_id)
        return await self._result(video_id, changed, "Video rejected." if changed else "Video is not pending.")

    async def flag(self, video_id: str, reason: str, admin_id: str) -> ModerationResult:
        await self._require_video(video_id)
        changed = await self.videos.set_flagged(video_id, reason)
        await self.db.commit()
        logger.info("talent_video_flagged", video_id=video_id, admin_id=admin_id)
        return await self._result(video_id, changed, "Video flagged for review.")

    async def update_goal(self, video_id: str, goal: int, admin_id: str) -> ModerationResult:
        """
        Change the goal of a pending video.

        Lowering the goal to or below the current count verifies the video in
        the same transaction.
        """
        video = await self._require_video(video_id)
        changed = await self.videos.update_goal(video_id, goal)
        verified = False
        if changed:
            verified = await self.videos.try_set_verified(video_id)
            if verified:
                await self.outbox.enqueue(video.id, video.owner_id)
        await self.db.commit()

        if verified:
            try:
                await self.notifier.on_verified(video.id, video.owner_id)
            except Exception:
                logger.exception("verified_notification_error", video_id=video_id, owner_id=video.owner_id)

        if changed:
            logger.info("verification_goal_updated", video_id=video_id, goal=goal, verified=verified, admin_id=admin_id)
        message = f"Goal set to {goal}." if changed else "Goal can only change while the video is pending."
        return await self._result(video_id, changed, message)

    async def _require_video(self, video_id: str):
        video = await self.videos.get_by_id(video_id)
        if video is None:
            raise VideoNotFound(video_id)
        return video

    async def _result(self, video_id: str, changed: bool, message: str) -> ModerationResult:
        video = await self._require_video(video_id)
        return ModerationResult(
            video_id=video_id,
            status=video.verification_status,
            changed=changed,
            message=message,
        )

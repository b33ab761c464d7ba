"""
Talent video repository for database operations.

Status and counter changes are single guarded UPDATE statements so that
concurrent submissions never need an application-level lock.
"""

from datetime import datetime, timezone
from typing import Any, Optional
from uuid import uuid4

from sqlalchemy import and_, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from models.talent_video import TalentVideo, VerificationStatus


class TalentVideoRepository:
    """Repository for talent video database operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    def _get_rowcount(self, result: Any) -> int:
        """Safely get rowcount from result."""
        return getattr(result, "rowcount", 0) or 0

    async def get_by_id(self, video_id: str) -> Optional[TalentVideo]:
        """Get a talent video by ID, always reloading column values."""
        result = await self.db.execute(
            select(TalentVideo).where(TalentVideo.id == video_id).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def create(
        self,
        owner_id: str,
        title: str,
        video_url: str,
        verification_goal: Optional[int] = None,
        **fields: Any,
    ) -> TalentVideo:
        """Create a talent video in ``pending`` state (goal defaults to the configured one)."""
        video = TalentVideo(
            id=fields.pop("id", None) or str(uuid4()),
            owner_id=owner_id,
            title=title,
            video_url=video_url,
            verification_goal=verification_goal or settings.DEFAULT_VERIFICATION_GOAL,
            verification_count=0,
            verification_status=VerificationStatus.PENDING.value,
            **fields,
        )
        self.db.add(video)
        await self.db.flush()
        return video

    async def list_videos(
        self,
        status: Optional[str] = None,
        flagged_only: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> list[TalentVideo]:
        """List videos for moderation, newest first."""
        query = select(TalentVideo)
        if status:
            query = query.where(TalentVideo.verification_status == status)
        if flagged_only:
            query = query.where(TalentVideo.is_flagged.is_(True))
        result = await self.db.execute(
            query.order_by(TalentVideo.created_at.desc()).limit(limit).offset(offset)
        )
        return list(result.scalars().all())

    # =========================================================================
    # Verification aggregate
    # =========================================================================

    async def increment_verification_count(self, video_id: str, cap_at_goal: bool = False) -> Optional[int]:
        """
        Atomically add one vote to the aggregate and return the new count.

        With ``cap_at_goal`` the increment only applies while the video is
        pending and below its goal; ``None`` is returned when that guard fails.
        """
        conditions = [TalentVideo.id == video_id]
        if cap_at_goal:
            conditions.append(TalentVideo.verification_status == VerificationStatus.PENDING.value)
            conditions.append(TalentVideo.verification_count < TalentVideo.verification_goal)

        result = await self.db.execute(
            update(TalentVideo)
            .where(and_(*conditions))
            .values(
                verification_count=TalentVideo.verification_count + 1,
                updated_at=datetime.now(timezone.utc),
            )
            .returning(TalentVideo.verification_count)
            .execution_options(synchronize_session=False)
        )
        return result.scalar_one_or_none()

    async def try_set_verified(
        self,
        video_id: str,
        expected_prior_status: str = VerificationStatus.PENDING.value,
        require_goal_met: bool = True,
    ) -> bool:
        """
        Compare-and-set the video to ``verified``.

        Exactly one caller observes ``True`` for a given video, no matter how
        many race on the same row.
        """
        now = datetime.now(timezone.utc)
        conditions = [
            TalentVideo.id == video_id,
            TalentVideo.verification_status == expected_prior_status,
        ]
        if require_goal_met:
            conditions.append(TalentVideo.verification_count >= TalentVideo.verification_goal)

        result = await self.db.execute(
            update(TalentVideo)
            .where(and_(*conditions))
            .values(
                verification_status=VerificationStatus.VERIFIED.value,
                verified_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return self._get_rowcount(result) == 1

    # =========================================================================
    # Moderation
    # =========================================================================

    async def set_rejected(self, video_id: str, reason: str) -> bool:
        """Reject a pending video. Verified videos are never reverted."""
        now = datetime.now(timezone.utc)
        result = await self.db.execute(
            update(TalentVideo)
            .where(
                and_(
                    TalentVideo.id == video_id,
                    TalentVideo.verification_status == VerificationStatus.PENDING.value,
                )
            )
            .values(
                verification_status=VerificationStatus.REJECTED.value,
                rejection_reason=reason,
                rejected_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return self._get_rowcount(result) == 1

    async def set_flagged(self, video_id: str, reason: str) -> bool:
        """Flag a video for review without changing its status."""
        now = datetime.now(timezone.utc)
        result = await self.db.execute(
            update(TalentVideo)
            .where(TalentVideo.id == video_id)
            .values(is_flagged=True, flag_reason=reason, flagged_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return self._get_rowcount(result) == 1

    async def update_goal(self, video_id: str, goal: int) -> bool:
        """Change the quorum target of a pending video."""
        result = await self.db.execute(
            update(TalentVideo)
            .where(
                and_(
                    TalentVideo.id == video_id,
                    TalentVideo.verification_status == VerificationStatus.PENDING.value,
                )
            )
            .values(verification_goal=goal, updated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        return self._get_rowcount(result) == 1

    async def get_status_counts(self) -> dict[str, int]:
        """Count videos per verification status."""
        result = await self.db.execute(
            select(TalentVideo.verification_status, func.count(TalentVideo.id)).group_by(
                TalentVideo.verification_status
            )
        )
        counts = {status.value: 0 for status in VerificationStatus}
        for status, count in result.all():
            counts[str(status)] = count
        counts["total"] = sum(counts.values())
        return counts

"""
Admin endpoints for talent video moderation.

Single-video actions only; every endpoint requires an admin token.
"""

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_current_admin_user
from db.session import get_db
from models.talent_video import VerificationStatus
from schemas.talent_video import (
    GoalUpdate,
    ModerationReason,
    ModerationResult,
    TalentVideoResponse,
    VerificationStats,
)
from schemas.user import UserInDB
from schemas.verification import VerificationAuditEntry
from services.moderation_service import ModerationService

router = APIRouter()


@router.get("", response_model=list[TalentVideoResponse])
async def list_talent_videos(
    _admin: Annotated[UserInDB, Depends(get_current_admin_user)],
    status: Optional[VerificationStatus] = None,
    flagged: bool = False,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
) -> list[TalentVideoResponse]:
    """List talent videos, optionally filtered by status or flag."""
    return await ModerationService(db).list_videos(
        status=status.value if status else None,
        flagged_only=flagged,
        limit=limit,
        offset=offset,
    )


@router.get("/stats", response_model=VerificationStats)
async def get_verification_stats(
    _admin: Annotated[UserInDB, Depends(get_current_admin_user)],
    db: AsyncSession = Depends(get_db),
) -> VerificationStats:
    """Number of videos per verification status."""
    return await ModerationService(db).get_stats()


@router.get("/{video_id}/verifications", response_model=list[VerificationAuditEntry])
async def get_verification_audit_trail(
    video_id: str,
    _admin: Annotated[UserInDB, Depends(get_current_admin_user)],
    db: AsyncSession = Depends(get_db),
) -> list[VerificationAuditEntry]:
    """Every vote recorded for a video, with emails masked."""
    return await ModerationService(db).get_audit_trail(video_id)


@router.post("/{video_id}/approve", response_model=ModerationResult)
async def approve_talent_video(
    video_id: str,
    admin: Annotated[UserInDB, Depends(get_current_admin_user)],
    db: AsyncSession = Depends(get_db),
) -> ModerationResult:
    """Verify a pending video without waiting for its goal."""
    return await ModerationService(db).approve(video_id, admin_id=admin.id)


@router.post("/{video_id}/reject", response_model=ModerationResult)
async def reject_talent_video(
    video_id: str,
    body: ModerationReason,
    admin: Annotated[UserInDB, Depends(get_current_admin_user)],
    db: AsyncSession = Depends(get_db),
) -> ModerationResult:
    """Reject a pending video. Verified videos cannot be rejected."""
    return await ModerationService(db).reject(video_id, body.reason, admin_id=admin.id)


@router.post("/{video_id}/flag", response_model=ModerationResult)
async def flag_talent_video(
    video_id: str,
    body: ModerationReason,
    admin: Annotated[UserInDB, Depends(get_current_admin_user)],
    db: AsyncSession = Depends(get_db),
) -> ModerationResult:
    """Flag a video for review."""
    return await ModerationService(db).flag(video_id, body.reason, admin_id=admin.id)


@router.patch("/{video_id}/goal", response_model=ModerationResult)
async def update_verification_goal(
    video_id: str,
    body: GoalUpdate,
    admin: Annotated[UserInDB, Depends(get_current_admin_user)],
    db: AsyncSession = Depends(get_db),
) -> ModerationResult:
    """Change how many votes a pending video needs."""
    return await ModerationService(db).update_goal(video_id, body.goal, admin_id=admin.id)

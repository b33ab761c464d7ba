"""
Talent video Pydantic schemas (moderation views).
"""

from datetime import datetime
from typing import Optional

from pydantic import Field

from schemas.verification import CamelModel


class TalentVideoResponse(CamelModel):
    id: str
    owner_id: str
    title: str
    sport: Optional[str] = None
    skill_category: Optional[str] = None
    video_url: str
    thumbnail_url: Optional[str] = None
    verification_status: str
    verification_goal: int
    verification_count: int
    verification_deadline: Optional[datetime] = None
    verified_at: Optional[datetime] = None
    is_flagged: bool = False
    flag_reason: Optional[str] = None
    rejection_reason: Optional[str] = None
    created_at: Optional[datetime] = None


class ModerationReason(CamelModel):
    reason: str = Field(..., min_length=1, max_length=1000)


class GoalUpdate(CamelModel):
    goal: int = Field(..., ge=1, le=1000)


class ModerationResult(CamelModel):
    video_id: str
    status: str
    changed: bool
    message: str


class VerificationStats(CamelModel):
    total: int
    pending: int
    verified: int
    rejected: int

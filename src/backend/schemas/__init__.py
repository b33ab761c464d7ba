"""Schemas module initialization."""

from schemas.talent_video import (
    GoalUpdate,
    ModerationReason,
    ModerationResult,
    TalentVideoResponse,
    VerificationStats,
)
from schemas.user import UserInDB
from schemas.verification import (
    PreCheckRequest,
    PreCheckResult,
    ShareLink,
    VerificationAuditEntry,
    VerificationProgress,
    VerificationResult,
    VerificationSubmission,
)

__all__ = [
    "UserInDB",
    "VerificationSubmission",
    "VerificationResult",
    "VerificationProgress",
    "PreCheckRequest",
    "PreCheckResult",
    "ShareLink",
    "VerificationAuditEntry",
    "TalentVideoResponse",
    "ModerationReason",
    "ModerationResult",
    "GoalUpdate",
    "VerificationStats",
]

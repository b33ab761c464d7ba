"""Database models module."""

from models.rate_limit_window import RateLimitWindow
from models.talent_video import TalentVideo, VerificationStatus
from models.user import User
from models.verification_notification import NotificationStatus, VerificationNotification
from models.verification_record import VerificationRecord, VerifierRelationship

__all__ = [
    "User",
    "TalentVideo",
    "VerificationStatus",
    "VerificationRecord",
    "VerifierRelationship",
    "VerificationNotification",
    "NotificationStatus",
    "RateLimitWindow",
]

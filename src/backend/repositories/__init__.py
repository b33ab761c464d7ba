"""Repository modules for database access."""

from repositories.notification_repository import NotificationRepository
from repositories.talent_video_repository import TalentVideoRepository
from repositories.user_repository import UserRepository
from repositories.verification_repository import (
    FraudSignatureConflict,
    SignatureConflict,
    VerificationRepository,
)

__all__ = [
    "TalentVideoRepository",
    "VerificationRepository",
    "NotificationRepository",
    "UserRepository",
    "FraudSignatureConflict",
    "SignatureConflict",
]

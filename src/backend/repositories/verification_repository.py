"""
Verification record repository (fraud signature index).

The unique constraints on ``verification_records`` decide whether a vote is a
duplicate. ``find_conflict`` only explains an existing conflict; it never
authorizes a write.
"""

from dataclasses import dataclass
from typing import Optional
from uuid import uuid4

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from models.verification_record import DEVICE_CONSTRAINT, IP_CONSTRAINT, VerificationRecord


class FraudSignatureConflict(Exception):
    """Raised when an insert violates a (video, device) or (video, IP) constraint."""

    def __init__(self, video_id: str, original: Optional[BaseException] = None):
        self.video_id = video_id
        self.original = original
        super().__init__(f"Fraud signature conflict on video {video_id}")


# SQLite reports the violated columns instead of the constraint name
_SIGNATURE_COLUMNS = ("verification_records.device_fingerprint", "verification_records.ip_address")


def is_signature_violation(error: IntegrityError) -> bool:
    """True when the error comes from the (video, device) or (video, IP) constraint."""
    message = str(error.orig)
    if DEVICE_CONSTRAINT in message or IP_CONSTRAINT in message:
        return True
    return "UNIQUE constraint failed" in message and any(column in message for column in _SIGNATURE_COLUMNS)


@dataclass(frozen=True)
class SignatureConflict:
    """Which signal matched an earlier vote, and who cast it."""

    matched_signal: str  # "device", "ip" or "both"
    original_verifier_name: str
    own_prior_vote: bool = False


class VerificationRepository:
    """Repository for verification record database operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_conflict(
        self,
        video_id: str,
        device_fingerprint: str,
        ip_address: Optional[str],
        verifier_email: Optional[str] = None,
    ) -> Optional[SignatureConflict]:
        """
        Look up an earlier vote sharing the device or IP on this video.

        ``ip_address`` of ``None`` (unresolvable) is never matched.
        """
        signals = [VerificationRecord.device_fingerprint == device_fingerprint]
        if ip_address:
            signals.append(VerificationRecord.ip_address == ip_address)

        result = await self.db.execute(
            select(VerificationRecord)
            .where(VerificationRecord.video_id == video_id, or_(*signals))
            .order_by(VerificationRecord.submitted_at.asc())
            .limit(1)
        )
        record = result.scalar_one_or_none()
        if record is None:
            return None

        device_match = record.device_fingerprint == device_fingerprint
        ip_match = bool(ip_address) and record.ip_address == ip_address
        if device_match and ip_match:
            matched = "both"
        elif device_match:
            matched = "device"
        else:
            matched = "ip"

        own_prior_vote = (
            matched == "both"
            and verifier_email is not None
            and record.verifier_email.lower() == verifier_email.lower()
        )
        return SignatureConflict(
            matched_signal=matched,
            original_verifier_name=record.verifier_name,
            own_prior_vote=own_prior_vote,
        )

    async def insert_if_absent(
        self,
        video_id: str,
        verifier_name: str,
        verifier_email: str,
        verifier_relationship: str,
        device_fingerprint: str,
        ip_address: Optional[str],
        verification_message: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> VerificationRecord:
        """
        Insert a vote, relying on the unique constraints to reject duplicates.

        Raises:
            FraudSignatureConflict: the device or IP already voted on this video.
            IntegrityError: any other constraint failed.
        """
        record = VerificationRecord(
            id=str(uuid4()),
            video_id=video_id,
            verifier_name=verifier_name,
            verifier_email=verifier_email,
            verifier_relationship=verifier_relationship,
            verification_message=verification_message,
            device_fingerprint=device_fingerprint,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        self.db.add(record)
        try:
            await self.db.flush()
        except IntegrityError as e:
            if not is_signature_violation(e):
                raise
            raise FraudSignatureConflict(video_id, e) from e
        return record

    async def count_by_video(self, video_id: str) -> int:
        """Number of accepted votes for a video."""
        result = await self.db.execute(
            select(func.count(VerificationRecord.id)).where(VerificationRecord.video_id == video_id)
        )
        return result.scalar() or 0

    async def list_by_video(self, video_id: str, limit: int = 100) -> list[VerificationRecord]:
        """Audit trail of votes for a video, oldest first."""
        result = await self.db.execute(
            select(VerificationRecord)
            .where(VerificationRecord.video_id == video_id)
            .order_by(VerificationRecord.submitted_at.asc())
            .limit(limit)
        )
        return list(result.scalars().all())

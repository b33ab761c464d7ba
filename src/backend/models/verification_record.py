"""
Verification record model.

One row per accepted community vote. Rows are append-only. The two unique
constraints are the fraud signature: per video, a device fingerprint and an
IP address may each appear at most once.
"""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Optional
from uuid import uuid4

from sqlalchemy import DateTime, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import Base
from models.talent_video import utcnow

if TYPE_CHECKING:
    from models.talent_video import TalentVideo


class VerifierRelationship(str, Enum):
    """How the verifier knows the athlete."""

    COACH = "coach"
    TEAMMATE = "teammate"
    PARENT = "parent"
    FRIEND = "friend"
    WITNESS = "witness"
    OTHER = "other"


DEVICE_CONSTRAINT = "uq_verification_records_video_device"
IP_CONSTRAINT = "uq_verification_records_video_ip"


class VerificationRecord(Base):
    """Accepted vote vouching for a talent video."""

    __tablename__ = "verification_records"

    __table_args__ = (
        UniqueConstraint("video_id", "device_fingerprint", name=DEVICE_CONSTRAINT),
        # NULL ip_address (unresolvable IP) never collides
        UniqueConstraint("video_id", "ip_address", name=IP_CONSTRAINT),
        Index("ix_verification_records_video_submitted", "video_id", "submitted_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    video_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("talent_videos.id", ondelete="CASCADE"),
        index=True,
    )

    verifier_name: Mapped[str] = mapped_column(String(100))
    verifier_email: Mapped[str] = mapped_column(String(255))
    verifier_relationship: Mapped[str] = mapped_column(String(20), default=VerifierRelationship.OTHER.value)
    verification_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Fraud signature (normalized before storage)
    device_fingerprint: Mapped[str] = mapped_column(String(255))
    ip_address: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    video: Mapped["TalentVideo"] = relationship("TalentVideo", back_populates="verifications", lazy="noload")

    def __repr__(self) -> str:
        return f"<VerificationRecord(id={self.id}, video_id={self.video_id}, verifier={self.verifier_name})>"

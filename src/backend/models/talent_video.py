"""
Talent video model.

A talent video is an athlete's performance clip. It starts ``pending`` and is
promoted to ``verified`` once enough distinct community members vouch for it.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Optional
from uuid import uuid4

from sqlalchemy import Boolean, CheckConstraint, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import Base

if TYPE_CHECKING:
    from models.verification_record import VerificationRecord


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class VerificationStatus(str, Enum):
    """Talent video verification lifecycle."""

    PENDING = "pending"  # Collecting community votes
    VERIFIED = "verified"  # Quorum reached (or admin approved); never reverts
    REJECTED = "rejected"  # Rejected by an administrator


class TalentVideo(Base):
    """
    Talent video with its materialized verification aggregate.

    ``verification_count`` always equals the number of verification records
    for the video; both are written in the same transaction.
    """

    __tablename__ = "talent_videos"

    __table_args__ = (
        Index("ix_talent_videos_owner_status", "owner_id", "verification_status"),
        CheckConstraint("verification_goal >= 1", name="ck_talent_videos_goal_positive"),
        CheckConstraint("verification_count >= 0", name="ck_talent_videos_count_non_negative"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    owner_id: Mapped[str] = mapped_column(String(36), index=True)

    # Media metadata (uploaded by the media layer)
    title: Mapped[str] = mapped_column(String(200))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    sport: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    skill_category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    video_url: Mapped[str] = mapped_column(String(1000))
    thumbnail_url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)

    # Verification aggregate
    verification_status: Mapped[str] = mapped_column(
        String(20),
        default=VerificationStatus.PENDING.value,
        index=True,
    )
    verification_goal: Mapped[int] = mapped_column(Integer, default=1)
    verification_count: Mapped[int] = mapped_column(Integer, default=0)
    verification_deadline: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    verified_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Moderation
    rejected_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_flagged: Mapped[bool] = mapped_column(Boolean, default=False)
    flag_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    flagged_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    verifications: Mapped[list["VerificationRecord"]] = relationship(
        "VerificationRecord",
        back_populates="video",
        lazy="noload",
    )

    @property
    def is_final(self) -> bool:
        return self.verification_status in (
            VerificationStatus.VERIFIED.value,
            VerificationStatus.REJECTED.value,
        )

    @property
    def deadline_passed(self) -> bool:
        if self.verification_deadline is None:
            return False
        deadline = self.verification_deadline
        # SQLite hands back naive datetimes; they are stored as UTC
        if deadline.tzinfo is None:
            deadline = deadline.replace(tzinfo=timezone.utc)
        return utcnow() > deadline

    def __repr__(self) -> str:
        return (
            f"<TalentVideo(id={self.id}, status={self.verification_status}, "
            f"count={self.verification_count}/{self.verification_goal})>"
        )

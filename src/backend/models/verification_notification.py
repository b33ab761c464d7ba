"""
Verified-badge notification outbox.

A row is inserted in the same transaction that flips a video to
``verified``; delivery to the profile service happens after commit and is
retried by the background scheduler until it succeeds or runs out of attempts.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import uuid4

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base
from models.talent_video import utcnow


class NotificationStatus(str, Enum):
    PENDING = "pending"
    DELIVERED = "delivered"
    FAILED = "failed"


class VerificationNotification(Base):
    """At most one badge notification per video (unique ``video_id``)."""

    __tablename__ = "verification_notifications"

    __table_args__ = (Index("ix_verification_notifications_status_next", "status", "next_attempt_at"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    video_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("talent_videos.id", ondelete="CASCADE"),
        unique=True,
    )
    owner_id: Mapped[str] = mapped_column(String(36))

    status: Mapped[str] = mapped_column(String(20), default=NotificationStatus.PENDING.value)
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    next_attempt_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    delivered_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    def __repr__(self) -> str:
        return f"<VerificationNotification(video_id={self.video_id}, status={self.status}, attempts={self.attempts})>"

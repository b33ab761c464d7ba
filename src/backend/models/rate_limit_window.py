"""
Rate limit window model.

One row per (identifier, action). The row holds a fixed window: ``hits``
counts attempts since ``window_start`` and resets once the window has
elapsed. Every API process shares the table, so limits hold across replicas.
"""

from uuid import uuid4

from sqlalchemy import Float, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base

RATE_LIMIT_KEY_CONSTRAINT = "uq_rate_limit_windows_identifier_action"


class RateLimitWindow(Base):
    """Attempt counter for one identifier (device, network or email) and action."""

    __tablename__ = "rate_limit_windows"

    __table_args__ = (
        UniqueConstraint("identifier", "action_key", name=RATE_LIMIT_KEY_CONSTRAINT),
        Index("ix_rate_limit_windows_window_start", "window_start"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    identifier: Mapped[str] = mapped_column(Text)
    action_key: Mapped[str] = mapped_column(String(50))
    hits: Mapped[int] = mapped_column(Integer, default=1)
    # Epoch seconds, shared by every process through the wall clock
    window_start: Mapped[float] = mapped_column(Float)

    def __repr__(self) -> str:
        return f"<RateLimitWindow(action={self.action_key}, identifier={self.identifier[:20]}, hits={self.hits})>"

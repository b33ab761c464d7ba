"""
Verification-related Pydantic schemas.

Field names are camelCase on the wire (the web client's convention) and
snake_case in Python; both spellings are accepted on input.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class VerificationSubmission(CamelModel):
    """
    A community vote for a talent video.

    Fields are deliberately optional here: missing values are reported by the
    verification service with a specific reason (``ValidationError`` naming the
    field, or ``PrecheckIncomplete`` for unresolved signals) instead of a
    generic 422 from request parsing.
    """

    verifier_name: Optional[str] = None
    verifier_email: Optional[str] = None
    verifier_relationship: Optional[str] = None
    verification_message: Optional[str] = None
    device_fingerprint: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


class VerificationResult(CamelModel):
    """Outcome of an accepted vote (rejections use the error body)."""

    accepted: bool = True
    new_count: int
    goal: int
    status: str
    threshold_crossed: bool = False


class VerificationProgress(CamelModel):
    """Progress of a video towards its verification goal."""

    video_id: str
    current: int
    goal: int
    remaining: int
    percentage: int
    is_complete: bool
    status: str
    verification_deadline: Optional[datetime] = None


class PreCheckRequest(CamelModel):
    device_fingerprint: Optional[str] = None
    ip_address: Optional[str] = None


class PreCheckResult(CamelModel):
    """Advisory answer to "can this device/network still vote?"."""

    can_verify: bool
    status: str
    reason: Optional[str] = None
    message: Optional[str] = None
    matched_signal: Optional[str] = None
    original_verifier_name: Optional[str] = None


class ShareLink(CamelModel):
    video_id: str
    url: str


class VerificationAuditEntry(CamelModel):
    """One vote as shown to administrators; contact details are masked."""

    id: str
    verifier_name: str
    verifier_email: Optional[str] = None
    verifier_relationship: str
    verification_message: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    submitted_at: datetime

"""
Verification error taxonomy.

Each error carries a stable ``reason`` code (the class name), the HTTP status
it maps to, and whether the client may retry. Handlers registered in
``main.py`` render them as ``{"accepted": false, "reason": ..., ...}``.
"""

from typing import Any

from fastapi import status
from pydantic.alias_generators import to_camel


class VerificationError(Exception):
    """Base class for every rejected verification attempt."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    retryable: bool = False
    default_message: str = "Verification could not be recorded."

    def __init__(self, message: str | None = None, **details: Any):
        self.message = message or self.default_message
        self.details = {k: v for k, v in details.items() if v is not None}
        super().__init__(self.message)

    @property
    def reason(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict[str, Any]:
        """Response body for this error, camelCased like the success body."""
        return {
            "accepted": False,
            "reason": self.reason,
            "message": self.message,
            "retryable": self.retryable,
            **{to_camel(key): value for key, value in self.details.items()},
        }


class ValidationError(VerificationError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_message = "Please fill in all required fields."

    def __init__(self, field: str, message: str | None = None):
        self.field = field
        super().__init__(message, field=field)


class PrecheckIncomplete(VerificationError):
    """Device fingerprint or IP has not been resolved yet."""

    status_code = status.HTTP_428_PRECONDITION_REQUIRED
    retryable = True
    default_message = "Verification system is initializing. Please wait a moment and try again."


class DuplicateVerification(VerificationError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "This video has already been verified from this device or network."

    def __init__(
        self,
        matched_signal: str,
        original_verifier_name: str | None = None,
        own_prior_vote: bool = False,
        message: str | None = None,
    ):
        self.matched_signal = matched_signal
        self.original_verifier_name = original_verifier_name
        self.own_prior_vote = own_prior_vote
        super().__init__(
            message or _duplicate_message(matched_signal, original_verifier_name),
            matched_signal=matched_signal,
            original_verifier_name=original_verifier_name,
            own_prior_vote=own_prior_vote,
        )


class SelfVerificationForbidden(VerificationError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "You cannot verify your own talent video."


class VideoNotFound(VerificationError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Talent video not found."

    def __init__(self, video_id: str):
        self.video_id = video_id
        super().__init__(video_id=video_id)


class AlreadyFinal(VerificationError):
    """Informational: the video no longer accepts votes. Carries the final count and goal."""

    status_code = status.HTTP_200_OK

    def __init__(
        self,
        video_status: str,
        new_count: int | None = None,
        goal: int | None = None,
        message: str | None = None,
    ):
        self.video_status = video_status
        self.new_count = new_count
        self.goal = goal
        super().__init__(
            message or f"This video is already {video_status}.",
            new_count=new_count,
            goal=goal,
            status=video_status,
        )


class VerificationWindowClosed(VerificationError):
    status_code = status.HTTP_410_GONE
    default_message = "The verification window for this video has closed."


class RateLimited(VerificationError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    retryable = True
    default_message = "Too many verification attempts. Please try again later."

    def __init__(self, retry_after: int, message: str | None = None):
        self.retry_after = retry_after
        super().__init__(message, retry_after=retry_after)


class TransientStorageError(VerificationError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    retryable = True
    default_message = "Failed to submit verification. Please try again."


def _duplicate_message(matched_signal: str, original_verifier_name: str | None) -> str:
    source = {
        "both": "same device and network",
        "device": "same device",
        "ip": "same network/IP address",
    }.get(matched_signal, "same device or network")
    if original_verifier_name:
        return f"This video has already been verified from this {source} by {original_verifier_name}."
    return f"This video has already been verified from this {source}."

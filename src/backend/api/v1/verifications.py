"""
Talent video verification endpoints.

Anyone with the share link can vouch for a talent video. No account is
required; each vote is tied to the voter's device fingerprint and network,
and each of those may vouch for a given video only once.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import (
    get_current_user_optional,
    rate_limit_default,
    rate_limit_verification,
    verification_rate_key,
)
from db.session import get_db
from schemas.user import UserInDB
from schemas.verification import (
    PreCheckRequest,
    PreCheckResult,
    ShareLink,
    VerificationProgress,
    VerificationResult,
    VerificationSubmission,
)
from services.risk_signals import RequestRiskSignalProvider, collect_signals
from services.verification_service import VerificationService

router = APIRouter()

REJECTION_RESPONSES = {
    status.HTTP_200_OK: {"description": "Accepted vote, or AlreadyFinal with accepted=false"},
    status.HTTP_403_FORBIDDEN: {"description": "SelfVerificationForbidden"},
    status.HTTP_404_NOT_FOUND: {"description": "VideoNotFound"},
    status.HTTP_409_CONFLICT: {"description": "DuplicateVerification"},
    status.HTTP_410_GONE: {"description": "VerificationWindowClosed"},
    status.HTTP_422_UNPROCESSABLE_ENTITY: {"description": "ValidationError"},
    status.HTTP_428_PRECONDITION_REQUIRED: {"description": "PrecheckIncomplete"},
    status.HTTP_429_TOO_MANY_REQUESTS: {"description": "RateLimited"},
    status.HTTP_503_SERVICE_UNAVAILABLE: {"description": "TransientStorageError"},
}


@router.post(
    "/{video_id}/verifications",
    response_model=VerificationResult,
    status_code=status.HTTP_201_CREATED,
    responses=REJECTION_RESPONSES,
)
async def submit_verification(
    video_id: str,
    submission: VerificationSubmission,
    request: Request,
    current_user: Annotated[UserInDB | None, Depends(get_current_user_optional)],
    db: AsyncSession = Depends(get_db),
) -> VerificationResult:
    """
    Vouch for a talent video.

    The device fingerprint must be supplied by the client. The IP address
    falls back to the connection (proxy headers first) when the client could
    not resolve it. Attempts are limited per device, then network, then email.
    """
    provider = RequestRiskSignalProvider(
        request,
        device_fingerprint=submission.device_fingerprint,
        ip_address=submission.ip_address,
    )
    signals = await collect_signals(provider, user_agent=provider.user_agent(submission.user_agent))

    await rate_limit_verification.check(
        db,
        verification_rate_key(signals.device_fingerprint, signals.ip_address, submission.verifier_email),
    )

    submission = submission.model_copy(
        update={
            "device_fingerprint": signals.device_fingerprint,
            "ip_address": signals.ip_address,
            "user_agent": signals.user_agent,
        }
    )
    service = VerificationService(db)
    return await service.submit_verification(
        video_id,
        submission,
        requester_id=current_user.id if current_user else None,
    )


@router.get("/{video_id}/verification", response_model=VerificationProgress)
async def get_verification_progress(
    video_id: str,
    db: AsyncSession = Depends(get_db),
) -> VerificationProgress:
    """Current vote count, goal and status of a talent video."""
    return await VerificationService(db).get_progress(video_id)


@router.post(
    "/{video_id}/verifications/pre-check",
    response_model=PreCheckResult,
    dependencies=[Depends(rate_limit_default)],
)
async def pre_check_verification(
    video_id: str,
    body: PreCheckRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> PreCheckResult:
    """
    Tell the verification page whether this device/network already vouched.

    Advisory only: the submission endpoint makes the final decision.
    """
    provider = RequestRiskSignalProvider(request, body.device_fingerprint, body.ip_address)
    signals = await collect_signals(provider)
    return await VerificationService(db).pre_check(video_id, signals.device_fingerprint, signals.ip_address)


@router.get("/{video_id}/verification/share-link", response_model=ShareLink)
async def get_share_link(
    video_id: str,
    db: AsyncSession = Depends(get_db),
) -> ShareLink:
    """Shareable link to the public verification page."""
    return await VerificationService(db).get_share_link(video_id)

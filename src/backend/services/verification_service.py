"""
Talent Video Verification Service.

Records anonymous community votes for talent videos and promotes a video to
``verified`` once its goal is reached.

Each submission runs through:
1. Field validation
2. Risk signal check (device fingerprint + IP must be resolved)
3. Video lookup (exists, still pending, window open)
4. Self-verification rejection
5. One transaction: insert the vote (unique constraints reject duplicate
   devices/networks), bump the counter, compare-and-set pending -> verified
   and enqueue the badge notification
6. After commit, notify the owner's profile if this vote crossed the goal

No application lock is taken. The unique constraints and the guarded UPDATE
statements are the only arbiters, so the service is safe to run on any number
of replicas.
"""

import asyncio
from dataclasses import dataclass
from typing import Optional

import structlog
from pydantic import EmailStr, TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.exceptions import (
    AlreadyFinal,
    DuplicateVerification,
    PrecheckIncomplete,
    SelfVerificationForbidden,
    TransientStorageError,
    ValidationError,
    VerificationWindowClosed,
    VideoNotFound,
)
from models.talent_video import TalentVideo, VerificationStatus
from models.verification_record import VerifierRelationship
from repositories.notification_repository import NotificationRepository
from repositories.talent_video_repository import TalentVideoRepository
from repositories.user_repository import UserRepository
from repositories.verification_repository import FraudSignatureConflict, VerificationRepository
from schemas.verification import (
    PreCheckResult,
    ShareLink,
    VerificationProgress,
    VerificationResult,
    VerificationSubmission,
)
from services.notification_service import VerificationNotifier
from services.risk_signals import InvalidSignal, ip_for_storage, normalize_fingerprint, normalize_ip

logger = structlog.get_logger(__name__)

_email_adapter = TypeAdapter(EmailStr)
MAX_NAME_LENGTH = 100
MAX_EMAIL_LENGTH = 255


@dataclass(frozen=True)
class VoteFields:
    """Submission fields after validation and normalization."""

    verifier_name: str
    verifier_email: str
    verifier_relationship: str
    verification_message: Optional[str]
    device_fingerprint: str
    ip_address: Optional[str]  # None when the client reported "unknown"
    user_agent: Optional[str]


class VerificationService:
    """Verification submission handler and read-side queries."""

    def __init__(self, db: AsyncSession, notifier: Optional[VerificationNotifier] = None):
        self.db = db
        self.videos = TalentVideoRepository(db)
        self.records = VerificationRepository(db)
        self.outbox = NotificationRepository(db)
        self.users = UserRepository(db)
        self._notifier = notifier

    @property
    def notifier(self) -> VerificationNotifier:
        if self._notifier is None:
            self._notifier = VerificationNotifier()
        return self._notifier

    # =========================================================================
    # Submission
    # =========================================================================

    async def submit_verification(
        self,
        video_id: str,
        submission: VerificationSubmission,
        requester_id: Optional[str] = None,
    ) -> VerificationResult:
        """
        Record one community vote.

        Raises:
            ValidationError, PrecheckIncomplete, VideoNotFound, AlreadyFinal,
            VerificationWindowClosed, SelfVerificationForbidden,
            DuplicateVerification, TransientStorageError
        """
        log = logger.bind(video_id=video_id, requester_id=requester_id)

        # 1-2. Fields and signals
        fields = self._validate(submission)

        # 3. Video must exist and still accept votes
        video = await self._get_open_video(video_id)

        # 4. Owners never vote on their own videos, whatever their signals say
        await self._reject_self_verification(video, fields, requester_id)

        # Rollbacks below expire ORM instances; keep plain values only
        owner_id = video.owner_id

        # 5. Atomic insert + count + transition, retried on transient failures
        result = await self._record_with_retries(video_id, owner_id, fields, log)

        # 6. Notify after commit, off the request path; the outbox covers failures
        if result.threshold_crossed:
            self.notifier.dispatch(video_id, owner_id)

        log.info(
            "verification_accepted",
            new_count=result.new_count,
            goal=result.goal,
            status=result.status,
            threshold_crossed=result.threshold_crossed,
            device=fields.device_fingerprint[:8],
        )
        return result

    def _validate(self, submission: VerificationSubmission) -> VoteFields:
        name = (submission.verifier_name or "").strip()
        if not name:
            raise ValidationError("verifier_name", "Please enter your name.")
        if len(name) > MAX_NAME_LENGTH:
            raise ValidationError("verifier_name", "Name is too long.")

        email = (submission.verifier_email or "").strip()
        if not email:
            raise ValidationError("verifier_email", "Please enter your email.")
        if len(email) > MAX_EMAIL_LENGTH:
            raise ValidationError("verifier_email", "Please enter a valid email address.")
        try:
            _email_adapter.validate_python(email)
        except PydanticValidationError as e:
            raise ValidationError("verifier_email", "Please enter a valid email address.") from e

        relationship = (submission.verifier_relationship or VerifierRelationship.OTHER.value).strip().lower()
        if relationship not in {r.value for r in VerifierRelationship}:
            raise ValidationError("verifier_relationship", "Please choose how you know this athlete.")

        message = (submission.verification_message or "").strip() or None
        if message and len(message) > settings.VERIFICATION_MESSAGE_MAX_LENGTH:
            raise ValidationError("verification_message", "Message is too long.")

        try:
            fingerprint = normalize_fingerprint(submission.device_fingerprint)
            ip = normalize_ip(submission.ip_address)
        except InvalidSignal as e:
            raise ValidationError(e.field, str(e)) from e

        missing = [
            field
            for field, value in (("device_fingerprint", fingerprint), ("ip_address", ip))
            if not value
        ]
        if missing:
            raise PrecheckIncomplete(missing=missing)

        return VoteFields(
            verifier_name=name,
            verifier_email=email,
            verifier_relationship=relationship,
            verification_message=message,
            device_fingerprint=fingerprint,
            ip_address=ip_for_storage(ip),
            user_agent=(submission.user_agent or "")[:500] or None,
        )

    async def _get_open_video(self, video_id: str) -> TalentVideo:
        video = await self.videos.get_by_id(video_id)
        if video is None:
            raise VideoNotFound(video_id)
        if video.is_final:
            raise AlreadyFinal(
                video.verification_status,
                new_count=video.verification_count,
                goal=video.verification_goal,
            )
        if settings.VERIFICATION_ENFORCE_DEADLINE and video.deadline_passed:
            raise VerificationWindowClosed(deadline=video.verification_deadline.isoformat())
        return video

    async def _reject_self_verification(
        self,
        video: TalentVideo,
        fields: VoteFields,
        requester_id: Optional[str],
    ) -> None:
        if requester_id and requester_id == video.owner_id:
            logger.warning("self_verification_blocked", video_id=video.id, match="account")
            raise SelfVerificationForbidden()

        owner_email = await self.users.get_email(video.owner_id)
        if owner_email and owner_email.lower() == fields.verifier_email.lower():
            logger.warning("self_verification_blocked", video_id=video.id, match="email")
            raise SelfVerificationForbidden()

    async def _record_with_retries(
        self,
        video_id: str,
        owner_id: str,
        fields: VoteFields,
        log,
    ) -> VerificationResult:
        max_attempts = max(1, settings.VERIFICATION_MAX_RETRIES)
        for attempt in range(1, max_attempts + 1):
            if attempt > 1:
                await asyncio.sleep(settings.VERIFICATION_RETRY_BACKOFF_SECONDS * (2 ** (attempt - 2)))
                # The video may have been verified or rejected meanwhile
                await self._get_open_video(video_id)
            try:
                return await self._record_vote(video_id, owner_id, fields)
            except FraudSignatureConflict:
                await self.db.rollback()
                conflict = await self.records.find_conflict(
                    video_id,
                    fields.device_fingerprint,
                    fields.ip_address,
                    verifier_email=fields.verifier_email,
                )
                if conflict is not None:
                    log.info(
                        "verification_duplicate",
                        matched_signal=conflict.matched_signal,
                        own_prior_vote=conflict.own_prior_vote,
                    )
                    raise DuplicateVerification(
                        matched_signal=conflict.matched_signal,
                        original_verifier_name=conflict.original_verifier_name,
                        own_prior_vote=conflict.own_prior_vote,
                    )
                # The conflicting transaction rolled back before we could see it
                log.warning("verification_conflict_not_visible", attempt=attempt)
            except (OperationalError, IntegrityError) as e:
                await self.db.rollback()
                log.warning("verification_storage_retry", attempt=attempt, error=str(e))

        log.error("verification_storage_exhausted", attempts=max_attempts)
        raise TransientStorageError()

    async def _record_vote(self, video_id: str, owner_id: str, fields: VoteFields) -> VerificationResult:
        """Single transaction: vote row, counter, CAS and outbox, then commit."""
        await self.records.insert_if_absent(
            video_id=video_id,
            verifier_name=fields.verifier_name,
            verifier_email=fields.verifier_email,
            verifier_relationship=fields.verifier_relationship,
            device_fingerprint=fields.device_fingerprint,
            ip_address=fields.ip_address,
            verification_message=fields.verification_message,
            user_agent=fields.user_agent,
        )

        cap = settings.VERIFICATION_POST_GOAL_POLICY == "cap"
        new_count = await self.videos.increment_verification_count(video_id, cap_at_goal=cap)
        if new_count is None:
            # Goal already reached by votes committed while this one was in flight
            await self.db.rollback()
            current = await self.videos.get_by_id(video_id)
            if current is None:
                raise VideoNotFound(video_id)
            raise AlreadyFinal(
                current.verification_status,
                new_count=current.verification_count,
                goal=current.verification_goal,
            )

        # The guarded UPDATE decides; at most one transaction ever sees True
        threshold_crossed = await self.videos.try_set_verified(video_id)
        if threshold_crossed:
            await self.outbox.enqueue(video_id, owner_id)

        state = await self.videos.get_by_id(video_id)
        await self.db.commit()

        return VerificationResult(
            new_count=new_count,
            goal=state.verification_goal,
            status=state.verification_status,
            threshold_crossed=threshold_crossed,
        )

    # =========================================================================
    # Read side
    # =========================================================================

    async def get_progress(self, video_id: str) -> VerificationProgress:
        """Progress towards the goal: current, goal, remaining, percentage."""
        video = await self.videos.get_by_id(video_id)
        if video is None:
            raise VideoNotFound(video_id)

        current = video.verification_count
        goal = max(video.verification_goal, 1)
        return VerificationProgress(
            video_id=video.id,
            current=current,
            goal=goal,
            remaining=max(goal - current, 0),
            percentage=min(100, round(current * 100 / goal)),
            is_complete=video.verification_status == VerificationStatus.VERIFIED.value or current >= goal,
            status=video.verification_status,
            verification_deadline=video.verification_deadline,
        )

    async def pre_check(
        self,
        video_id: str,
        device_fingerprint: Optional[str],
        ip_address: Optional[str],
    ) -> PreCheckResult:
        """
        Advisory duplicate check for the verification page.

        Read-only; a positive answer does not reserve anything and the
        submission can still be rejected.
        """
        video = await self.videos.get_by_id(video_id)
        if video is None:
            raise VideoNotFound(video_id)

        status = video.verification_status
        if video.is_final:
            error = AlreadyFinal(status)
            return PreCheckResult(can_verify=False, status=status, reason=error.reason, message=error.message)
        if settings.VERIFICATION_ENFORCE_DEADLINE and video.deadline_passed:
            error = VerificationWindowClosed()
            return PreCheckResult(can_verify=False, status=status, reason=error.reason, message=error.message)

        try:
            fingerprint = normalize_fingerprint(device_fingerprint)
            ip = normalize_ip(ip_address)
        except InvalidSignal as e:
            return PreCheckResult(can_verify=False, status=status, reason=ValidationError.__name__, message=str(e))
        if not fingerprint or not ip:
            error = PrecheckIncomplete()
            return PreCheckResult(can_verify=False, status=status, reason=error.reason, message=error.message)

        conflict = await self.records.find_conflict(video.id, fingerprint, ip_for_storage(ip))
        if conflict is not None:
            error = DuplicateVerification(conflict.matched_signal, conflict.original_verifier_name)
            return PreCheckResult(
                can_verify=False,
                status=status,
                reason=error.reason,
                message=error.message,
                matched_signal=conflict.matched_signal,
                original_verifier_name=conflict.original_verifier_name,
            )

        return PreCheckResult(can_verify=True, status=status)

    async def get_share_link(self, video_id: str) -> ShareLink:
        """Link the athlete shares so others can vouch for the video."""
        video = await self.videos.get_by_id(video_id)
        if video is None:
            raise VideoNotFound(video_id)
        return ShareLink(video_id=video.id, url=f"{settings.FRONTEND_URL.rstrip('/')}/verify/{video.id}")

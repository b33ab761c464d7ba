"""Tests for admin moderation of talent videos."""

import pytest

from core.exceptions import VideoNotFound
from services.moderation_service import ModerationService


async def _vote(session_maker, make_service, video_id, submission):
    async with session_maker() as session:
        return await make_service(session).submit_verification(video_id, submission)


@pytest.mark.unit
class TestModerationActions:
    """Approve, reject, flag and goal changes."""

    async def test_approve_pending_video(self, session_maker, make_video, notifier, profile_service) -> None:
        video_id, owner_id = await make_video(goal=5)

        async with session_maker() as session:
            result = await ModerationService(session, notifier=notifier).approve(video_id, admin_id="admin-1")

        assert result.changed is True
        assert result.status == "verified"
        assert profile_service.calls == [owner_id]

    async def test_approve_twice_is_noop(self, session_maker, make_video, notifier, profile_service) -> None:
        video_id, _ = await make_video(goal=5)

        async with session_maker() as session:
            await ModerationService(session, notifier=notifier).approve(video_id, admin_id="admin-1")
        async with session_maker() as session:
            result = await ModerationService(session, notifier=notifier).approve(video_id, admin_id="admin-1")

        assert result.changed is False
        assert len(profile_service.calls) == 1

    async def test_reject_pending_video(self, session_maker, make_video, notifier) -> None:
        video_id, _ = await make_video()

        async with session_maker() as session:
            result = await ModerationService(session, notifier=notifier).reject(video_id, "Not a real match", "a1")

        assert result.changed is True
        assert result.status == "rejected"

    async def test_verified_video_cannot_be_rejected(
        self, session_maker, make_video, make_service, make_submission, notifier
    ) -> None:
        video_id, _ = await make_video()
        await _vote(session_maker, make_service, video_id, make_submission(1))

        async with session_maker() as session:
            result = await ModerationService(session, notifier=notifier).reject(video_id, "Changed my mind", "a1")

        assert result.changed is False
        assert result.status == "verified"

    async def test_flag_keeps_status(self, session_maker, make_video, notifier) -> None:
        video_id, _ = await make_video(goal=2)

        async with session_maker() as session:
            service = ModerationService(session, notifier=notifier)
            result = await service.flag(video_id, "Suspicious votes", "a1")
            flagged = await service.list_videos(flagged_only=True)

        assert result.changed is True
        assert result.status == "pending"
        assert [v.id for v in flagged] == [video_id]
        assert flagged[0].flag_reason == "Suspicious votes"

    async def test_lowering_goal_verifies(
        self, session_maker, make_video, make_service, make_submission, notifier, profile_service
    ) -> None:
        video_id, owner_id = await make_video(goal=3)
        await _vote(session_maker, make_service, video_id, make_submission(1))
        await _vote(session_maker, make_service, video_id, make_submission(2))

        async with session_maker() as session:
            result = await ModerationService(session, notifier=notifier).update_goal(video_id, 2, "a1")

        assert result.changed is True
        assert result.status == "verified"
        assert profile_service.calls == [owner_id]

    async def test_raising_goal_keeps_pending(self, session_maker, make_video, notifier, profile_service) -> None:
        video_id, _ = await make_video(goal=1)

        async with session_maker() as session:
            result = await ModerationService(session, notifier=notifier).update_goal(video_id, 4, "a1")

        assert result.changed is True
        assert result.status == "pending"
        assert profile_service.calls == []

    async def test_goal_of_final_video_is_fixed(self, session_maker, make_video, notifier) -> None:
        video_id, _ = await make_video()

        async with session_maker() as session:
            service = ModerationService(session, notifier=notifier)
            await service.reject(video_id, "spam", "a1")
            result = await service.update_goal(video_id, 3, "a1")

        assert result.changed is False
        assert result.status == "rejected"

    async def test_unknown_video(self, session_maker, notifier) -> None:
        async with session_maker() as session:
            with pytest.raises(VideoNotFound):
                await ModerationService(session, notifier=notifier).approve("missing", admin_id="a1")


@pytest.mark.unit
class TestModerationQueries:
    """Lists, stats and the audit trail."""

    async def test_stats(self, session_maker, make_video, make_service, make_submission, notifier) -> None:
        verified_id, _ = await make_video()
        rejected_id, _ = await make_video()
        await make_video(goal=2)
        await _vote(session_maker, make_service, verified_id, make_submission(1))

        async with session_maker() as session:
            service = ModerationService(session, notifier=notifier)
            await service.reject(rejected_id, "duplicate upload", "a1")
            stats = await service.get_stats()
            pending = await service.list_videos(status="pending")

        assert (stats.total, stats.pending, stats.verified, stats.rejected) == (3, 1, 1, 1)
        assert len(pending) == 1

    async def test_audit_trail_masks_emails(
        self, session_maker, make_video, make_service, make_submission, notifier
    ) -> None:
        video_id, _ = await make_video(goal=3)
        await _vote(session_maker, make_service, video_id, make_submission(1, verifier_email="coach.smith@example.com"))

        async with session_maker() as session:
            trail = await ModerationService(session, notifier=notifier).get_audit_trail(video_id)

        assert len(trail) == 1
        assert trail[0].verifier_name == "Fan 1"
        assert trail[0].verifier_email != "coach.smith@example.com"
        assert trail[0].verifier_email.endswith("@example.com")

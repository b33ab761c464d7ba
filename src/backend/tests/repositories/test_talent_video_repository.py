"""
Tests for talent video repository.

The guarded UPDATE statements are exercised against SQLite so the WHERE
clauses are actually evaluated.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from repositories.talent_video_repository import TalentVideoRepository


async def _create(session_maker, goal: int = 2) -> str:
    async with session_maker() as session:
        video = await TalentVideoRepository(session).create(
            owner_id="owner-1",
            title="Free kick",
            video_url="https://cdn.amaplayer.test/v.mp4",
            verification_goal=goal,
        )
        await session.commit()
        return video.id


@pytest.mark.unit
class TestTalentVideoRepositoryMocked:
    """Behavior that does not need a database."""

    def test_rowcount_helper(self) -> None:
        repo = TalentVideoRepository(AsyncMock())
        assert repo._get_rowcount(MagicMock(rowcount=1)) == 1
        assert repo._get_rowcount(object()) == 0

    async def test_try_set_verified_reports_lost_race(self) -> None:
        session = AsyncMock()
        session.execute = AsyncMock(return_value=MagicMock(rowcount=0))

        repo = TalentVideoRepository(session)
        assert await repo.try_set_verified("video-1") is False


@pytest.mark.unit
class TestTalentVideoRepository:
    """Aggregate and moderation updates."""

    async def test_create_defaults(self, session_maker) -> None:
        async with session_maker() as session:
            video = await TalentVideoRepository(session).create(
                owner_id="owner-1",
                title="Sprint",
                video_url="https://cdn.amaplayer.test/s.mp4",
            )
            await session.commit()

        assert video.verification_status == "pending"
        assert video.verification_goal == 1
        assert video.verification_count == 0

    async def test_increment_returns_new_count(self, session_maker) -> None:
        video_id = await _create(session_maker)

        async with session_maker() as session:
            repo = TalentVideoRepository(session)
            assert await repo.increment_verification_count(video_id) == 1
            assert await repo.increment_verification_count(video_id) == 2
            assert await repo.increment_verification_count(video_id) == 3
            await session.commit()

    async def test_increment_with_cap(self, session_maker) -> None:
        video_id = await _create(session_maker, goal=2)

        async with session_maker() as session:
            repo = TalentVideoRepository(session)
            assert await repo.increment_verification_count(video_id, cap_at_goal=True) == 1
            assert await repo.increment_verification_count(video_id, cap_at_goal=True) == 2
            assert await repo.increment_verification_count(video_id, cap_at_goal=True) is None
            await session.commit()

    async def test_increment_unknown_video(self, session_maker) -> None:
        async with session_maker() as session:
            assert await TalentVideoRepository(session).increment_verification_count("missing") is None

    async def test_try_set_verified_requires_goal(self, session_maker) -> None:
        video_id = await _create(session_maker, goal=2)

        async with session_maker() as session:
            repo = TalentVideoRepository(session)
            await repo.increment_verification_count(video_id)
            assert await repo.try_set_verified(video_id) is False
            await repo.increment_verification_count(video_id)
            assert await repo.try_set_verified(video_id) is True
            # Second transition attempt loses: the row is no longer pending
            assert await repo.try_set_verified(video_id) is False
            await session.commit()

            video = await repo.get_by_id(video_id)
            assert video.verification_status == "verified"
            assert video.verified_at is not None

    async def test_try_set_verified_without_goal(self, session_maker) -> None:
        video_id = await _create(session_maker, goal=5)

        async with session_maker() as session:
            repo = TalentVideoRepository(session)
            assert await repo.try_set_verified(video_id, require_goal_met=False) is True
            await session.commit()

    async def test_reject_only_pending(self, session_maker) -> None:
        video_id = await _create(session_maker, goal=1)

        async with session_maker() as session:
            repo = TalentVideoRepository(session)
            await repo.increment_verification_count(video_id)
            await repo.try_set_verified(video_id)
            assert await repo.set_rejected(video_id, "late objection") is False
            assert await repo.update_goal(video_id, 3) is False
            await session.commit()

            video = await repo.get_by_id(video_id)
            assert video.verification_status == "verified"
            assert video.rejection_reason is None

    async def test_rejected_video_cannot_be_verified(self, session_maker) -> None:
        video_id = await _create(session_maker, goal=1)

        async with session_maker() as session:
            repo = TalentVideoRepository(session)
            assert await repo.set_rejected(video_id, "wrong athlete") is True
            await repo.increment_verification_count(video_id)
            assert await repo.try_set_verified(video_id) is False
            await session.commit()

    async def test_flag_and_list(self, session_maker) -> None:
        first = await _create(session_maker)
        await _create(session_maker)

        async with session_maker() as session:
            repo = TalentVideoRepository(session)
            assert await repo.set_flagged(first, "check votes") is True
            await session.commit()

            assert [v.id for v in await repo.list_videos(flagged_only=True)] == [first]
            assert len(await repo.list_videos(status="pending")) == 2
            assert len(await repo.list_videos(limit=1)) == 1

    async def test_status_counts(self, session_maker) -> None:
        verified = await _create(session_maker, goal=1)
        await _create(session_maker)

        async with session_maker() as session:
            repo = TalentVideoRepository(session)
            await repo.try_set_verified(verified, require_goal_met=False)
            await session.commit()
            counts = await repo.get_status_counts()

        assert counts == {"pending": 1, "verified": 1, "rejected": 0, "total": 2}

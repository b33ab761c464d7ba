"""
Tests for verification record repository.
"""

import pytest
from sqlalchemy.exc import IntegrityError

from repositories.talent_video_repository import TalentVideoRepository
from repositories.verification_repository import (
    FraudSignatureConflict,
    VerificationRepository,
    is_signature_violation,
)


async def _video(session_maker) -> str:
    async with session_maker() as session:
        video = await TalentVideoRepository(session).create(
            owner_id="owner-1",
            title="Header goal",
            video_url="https://cdn.amaplayer.test/h.mp4",
            verification_goal=5,
        )
        await session.commit()
        return video.id


async def _insert(session_maker, video_id, fp, ip, name="Ana", email="ana@example.com"):
    async with session_maker() as session:
        record = await VerificationRepository(session).insert_if_absent(
            video_id=video_id,
            verifier_name=name,
            verifier_email=email,
            verifier_relationship="coach",
            device_fingerprint=fp,
            ip_address=ip,
        )
        await session.commit()
        return record


@pytest.mark.unit
class TestInsertIfAbsent:
    """Unique constraints reject a second vote per device or network."""

    async def test_insert(self, session_maker) -> None:
        video_id = await _video(session_maker)

        record = await _insert(session_maker, video_id, "fp-a", "203.0.113.1")

        assert record.id
        assert record.submitted_at is not None

    async def test_duplicate_device(self, session_maker) -> None:
        video_id = await _video(session_maker)
        await _insert(session_maker, video_id, "fp-a", "203.0.113.1")

        with pytest.raises(FraudSignatureConflict) as exc_info:
            await _insert(session_maker, video_id, "fp-a", "203.0.113.2")

        assert exc_info.value.video_id == video_id

    async def test_duplicate_ip(self, session_maker) -> None:
        video_id = await _video(session_maker)
        await _insert(session_maker, video_id, "fp-a", "203.0.113.1")

        with pytest.raises(FraudSignatureConflict):
            await _insert(session_maker, video_id, "fp-b", "203.0.113.1")

    async def test_null_ips_do_not_conflict(self, session_maker) -> None:
        video_id = await _video(session_maker)
        await _insert(session_maker, video_id, "fp-a", None)
        await _insert(session_maker, video_id, "fp-b", None)

        async with session_maker() as session:
            assert await VerificationRepository(session).count_by_video(video_id) == 2

    async def test_other_integrity_errors_propagate(self, session_maker) -> None:
        video_id = await _video(session_maker)

        with pytest.raises(IntegrityError):
            await _insert(session_maker, video_id, "fp-a", "203.0.113.1", name=None)

        async with session_maker() as session:
            assert await VerificationRepository(session).count_by_video(video_id) == 0


@pytest.mark.unit
class TestSignatureViolation:
    """Only the device and IP constraints count as a duplicate vote."""

    @pytest.mark.parametrize(
        "message,expected",
        [
            (
                'duplicate key value violates unique constraint "uq_verification_records_video_device"',
                True,
            ),
            ('duplicate key value violates unique constraint "uq_verification_records_video_ip"', True),
            (
                "UNIQUE constraint failed: verification_records.video_id, verification_records.ip_address",
                True,
            ),
            ("UNIQUE constraint failed: verification_records.id", False),
            ("NOT NULL constraint failed: verification_records.verifier_name", False),
            (
                'insert or update on table "verification_records" violates foreign key constraint '
                '"verification_records_video_id_fkey"',
                False,
            ),
        ],
    )
    def test_matches_signature_constraints(self, message, expected) -> None:
        error = IntegrityError("INSERT INTO verification_records", {}, Exception(message))

        assert is_signature_violation(error) is expected


@pytest.mark.unit
class TestFindConflict:
    """Explaining which signal matched an earlier vote."""

    async def test_no_conflict(self, session_maker) -> None:
        video_id = await _video(session_maker)
        await _insert(session_maker, video_id, "fp-a", "203.0.113.1")

        async with session_maker() as session:
            assert await VerificationRepository(session).find_conflict(video_id, "fp-b", "203.0.113.2") is None

    @pytest.mark.parametrize(
        "fp,ip,expected",
        [
            ("fp-a", "203.0.113.1", "both"),
            ("fp-a", "203.0.113.9", "device"),
            ("fp-z", "203.0.113.1", "ip"),
        ],
    )
    async def test_matched_signal(self, session_maker, fp, ip, expected) -> None:
        video_id = await _video(session_maker)
        await _insert(session_maker, video_id, "fp-a", "203.0.113.1", name="Ana")

        async with session_maker() as session:
            conflict = await VerificationRepository(session).find_conflict(video_id, fp, ip)

        assert conflict.matched_signal == expected
        assert conflict.original_verifier_name == "Ana"
        assert conflict.own_prior_vote is False

    async def test_own_prior_vote_needs_every_signal(self, session_maker) -> None:
        video_id = await _video(session_maker)
        await _insert(session_maker, video_id, "fp-a", "203.0.113.1", email="ana@example.com")

        async with session_maker() as session:
            repo = VerificationRepository(session)
            same = await repo.find_conflict(video_id, "fp-a", "203.0.113.1", verifier_email="ANA@example.com")
            device_only = await repo.find_conflict(video_id, "fp-a", "203.0.113.7", verifier_email="ana@example.com")

        assert same.own_prior_vote is True
        assert device_only.own_prior_vote is False

    async def test_null_ip_only_matches_device(self, session_maker) -> None:
        video_id = await _video(session_maker)
        await _insert(session_maker, video_id, "fp-a", None)

        async with session_maker() as session:
            repo = VerificationRepository(session)
            assert await repo.find_conflict(video_id, "fp-b", None) is None
            conflict = await repo.find_conflict(video_id, "fp-a", None)

        assert conflict.matched_signal == "device"

    async def test_scoped_to_video(self, session_maker) -> None:
        first = await _video(session_maker)
        second = await _video(session_maker)
        await _insert(session_maker, first, "fp-a", "203.0.113.1")

        async with session_maker() as session:
            assert await VerificationRepository(session).find_conflict(second, "fp-a", "203.0.113.1") is None

    async def test_list_by_video_oldest_first(self, session_maker) -> None:
        video_id = await _video(session_maker)
        await _insert(session_maker, video_id, "fp-a", "203.0.113.1", name="First")
        await _insert(session_maker, video_id, "fp-b", "203.0.113.2", name="Second")

        async with session_maker() as session:
            records = await VerificationRepository(session).list_by_video(video_id)

        assert [r.verifier_name for r in records] == ["First", "Second"]

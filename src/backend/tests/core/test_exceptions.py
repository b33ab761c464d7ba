"""
Tests for the verification error taxonomy.
"""

import pytest

from core.exceptions import (
    AlreadyFinal,
    DuplicateVerification,
    PrecheckIncomplete,
    RateLimited,
    SelfVerificationForbidden,
    TransientStorageError,
    ValidationError,
    VerificationWindowClosed,
    VideoNotFound,
)


@pytest.mark.unit
class TestErrorCodes:
    """Each error maps to a stable reason, status and retry hint."""

    @pytest.mark.parametrize(
        "error,status_code,retryable",
        [
            (ValidationError("verifier_name"), 422, False),
            (PrecheckIncomplete(), 428, True),
            (DuplicateVerification("device"), 409, False),
            (SelfVerificationForbidden(), 403, False),
            (VideoNotFound("v1"), 404, False),
            (AlreadyFinal("verified"), 200, False),
            (VerificationWindowClosed(), 410, False),
            (RateLimited(retry_after=30), 429, True),
            (TransientStorageError(), 503, True),
        ],
    )
    def test_status_and_retryable(self, error, status_code, retryable) -> None:
        assert error.status_code == status_code
        assert error.retryable is retryable
        assert error.reason == type(error).__name__
        assert error.to_dict()["accepted"] is False

    def test_details_are_camel_cased(self) -> None:
        body = DuplicateVerification("both", "Ana", own_prior_vote=True).to_dict()

        assert body["reason"] == "DuplicateVerification"
        assert body["matchedSignal"] == "both"
        assert body["originalVerifierName"] == "Ana"
        assert body["ownPriorVote"] is True

    def test_none_details_dropped(self) -> None:
        body = DuplicateVerification("ip").to_dict()
        assert "originalVerifierName" not in body


@pytest.mark.unit
class TestDuplicateMessage:
    @pytest.mark.parametrize(
        "signal,fragment",
        [
            ("both", "same device and network"),
            ("device", "same device"),
            ("ip", "same network/IP address"),
        ],
    )
    def test_message_names_signal(self, signal, fragment) -> None:
        assert fragment in DuplicateVerification(signal).message

    def test_message_names_original_verifier(self) -> None:
        error = DuplicateVerification("device", "Ana")
        assert error.message == "This video has already been verified from this same device by Ana."

    def test_already_final_message(self) -> None:
        error = AlreadyFinal("rejected")
        assert error.message == "This video is already rejected."
        assert error.to_dict()["status"] == "rejected"

    def test_already_final_carries_count_and_goal(self) -> None:
        body = AlreadyFinal("verified", new_count=3, goal=3).to_dict()

        assert body["accepted"] is False
        assert body["newCount"] == 3
        assert body["goal"] == 3
        assert body["status"] == "verified"

"""Unit tests for commit status messages."""

import pytest

from worktrack.commit.manager import CommitResult
from worktrack.commit.messages import (
    MESSAGES,
    CommitStatus,
    CommitStatusMessage,
    post_commit_message,
    structured_wait_message,
)
from worktrack.commit.modes import CommitMode


def test_payload_shape():
    """Test payloads omit empty fields and serialize enums."""
    payload = CommitStatusMessage.create(
        CommitStatus.SUCCESS, CommitMode.CHECKPOINT, commit_hash="b2"
    ).to_payload()

    assert payload["type"] == "system"
    assert payload["subtype"] == "autocommit_success"
    assert payload["mode"] == "checkpoint"
    assert payload["commit_hash"] == "b2"
    assert payload["message"] == MESSAGES[CommitStatus.SUCCESS]
    assert "error" not in payload
    assert "timestamp" in payload


@pytest.mark.parametrize("mode", list(CommitMode))
def test_failure_reported_in_every_mode(mode):
    """Test commit errors always produce an error message."""
    message = post_commit_message(mode, CommitResult(success=False, error="boom"))

    assert message.subtype == CommitStatus.ERROR
    assert message.error == "boom"
    assert message.mode == mode


def test_checkpoint_commit_reported():
    message = post_commit_message(
        CommitMode.CHECKPOINT, CommitResult(success=True, commit_hash="b2")
    )

    assert message.subtype == CommitStatus.SUCCESS
    assert message.commit_hash == "b2"


def test_checkpoint_without_commit_still_reported():
    """Test a clean tree checkpoint reports success without a hash."""
    message = post_commit_message(CommitMode.CHECKPOINT, CommitResult(success=True))

    assert message.subtype == CommitStatus.SUCCESS
    assert "commit_hash" not in message.to_payload()


def test_structured_mode_announced():
    message = post_commit_message(CommitMode.STRUCTURED, CommitResult(success=True))

    assert message.subtype == CommitStatus.MODE


def test_disabled_success_silent():
    assert post_commit_message(CommitMode.DISABLED, CommitResult(success=True)) is None


def test_structured_wait_messages():
    """Test timeout and detected commit outcomes."""
    timeout = structured_wait_message(
        CommitResult(success=False, error="No commit detected within 5000ms")
    )
    detected = structured_wait_message(CommitResult(success=True, commit_hash="c3"))

    assert timeout.subtype == CommitStatus.TIMEOUT
    assert timeout.error == "No commit detected within 5000ms"
    assert detected.subtype == CommitStatus.AGENT_SUCCESS
    assert detected.commit_hash == "c3"
    assert detected.mode == CommitMode.STRUCTURED

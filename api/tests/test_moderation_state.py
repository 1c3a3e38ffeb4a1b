from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from ranaojobs.services.errors import RepositoryInvalidStateError, RepositoryValidationError
from ranaojobs.services.moderation import (
    ModerationAction,
    ModerationDecision,
    activity_timestamp,
    check_invariants,
    decide,
    role_after_decision,
    validate_status_filter,
    validate_subject_type,
)

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def test_approve_pending_sets_decision_fields() -> None:
    decision = decide(current_status="pending", action=ModerationAction.APPROVE, actor_id="admin-1", now=NOW)

    assert decision == ModerationDecision(status="approved", decided_at=NOW, decided_by="admin-1")
    check_invariants(decision.as_fields())


def test_reject_pending_stores_trimmed_reason() -> None:
    decision = decide(current_status="pending", action="reject", actor_id="admin-1", reason="  Missing salary info ")

    assert decision.status == "rejected"
    assert decision.rejection_reason == "Missing salary info"
    check_invariants(decision.as_fields())


@pytest.mark.parametrize("reason", [None, "", "   "])
def test_reject_requires_non_blank_reason(reason: str | None) -> None:
    with pytest.raises(RepositoryValidationError):
        decide(current_status="pending", action=ModerationAction.REJECT, actor_id="admin-1", reason=reason)


def test_blank_reason_is_reported_before_state_errors() -> None:
    with pytest.raises(RepositoryValidationError):
        decide(current_status="approved", action=ModerationAction.REJECT, actor_id="admin-1", reason=" ")


@pytest.mark.parametrize("current_status", ["approved", "rejected"])
@pytest.mark.parametrize("action", list(ModerationAction))
def test_decided_subjects_are_terminal(current_status: str, action: ModerationAction) -> None:
    with pytest.raises(RepositoryInvalidStateError):
        decide(current_status=current_status, action=action, actor_id="admin-1", reason="late")


def test_unknown_status_is_invalid() -> None:
    with pytest.raises(RepositoryInvalidStateError):
        decide(current_status="archived", action=ModerationAction.APPROVE, actor_id="admin-1")


def test_missing_actor_is_rejected() -> None:
    with pytest.raises(RepositoryValidationError):
        decide(current_status="pending", action=ModerationAction.APPROVE, actor_id="")


@pytest.mark.parametrize(
    "record",
    [
        {"status": "pending", "decided_at": NOW, "decided_by": "admin-1", "rejection_reason": None},
        {"status": "pending", "decided_at": None, "decided_by": None, "rejection_reason": "stale"},
        {"status": "approved", "decided_at": None, "decided_by": None, "rejection_reason": None},
        {"status": "approved", "decided_at": NOW, "decided_by": "admin-1", "rejection_reason": "nope"},
        {"status": "rejected", "decided_at": NOW, "decided_by": "admin-1", "rejection_reason": "  "},
    ],
)
def test_check_invariants_flags_inconsistent_records(record: dict) -> None:
    with pytest.raises(RepositoryInvalidStateError):
        check_invariants(record)


def test_check_invariants_accepts_pending_record() -> None:
    check_invariants({"status": "pending", "decided_at": None, "decided_by": None, "rejection_reason": None})


def test_activity_timestamp_prefers_decision_time() -> None:
    submitted = NOW - timedelta(days=2)
    assert activity_timestamp({"submitted_at": submitted, "decided_at": None}) == submitted
    assert activity_timestamp({"submitted_at": submitted, "decided_at": NOW}) == NOW


def test_role_after_multi_role_approval_preserves_active_role() -> None:
    approved = ModerationDecision(status="approved", decided_at=NOW, decided_by="admin-1")
    payload = {"previous_role": "employer", "active_role": "employer"}

    assert role_after_decision(approved, payload) == ("multi", "employer")
    assert role_after_decision(approved, {"previous_role": "employer"}) == ("multi", "employer")


def test_role_after_multi_role_rejection_restores_previous_role() -> None:
    rejected = ModerationDecision(status="rejected", decided_at=NOW, decided_by="admin-1", rejection_reason="no")

    assert role_after_decision(rejected, {"previous_role": "employer", "active_role": "employer"}) == (
        "employer",
        "employer",
    )


def test_subject_type_and_status_filters() -> None:
    assert validate_subject_type("multi_role") == "multi_role"
    assert validate_status_filter(None) is None
    with pytest.raises(RepositoryValidationError):
        validate_subject_type("application")
    with pytest.raises(RepositoryValidationError):
        validate_status_filter("archived")

"""Moderation state machine shared by employer, job and multi-role subjects.

Every subject lives in exactly one of ``pending``, ``approved`` or ``rejected``.
Only ``pending`` subjects can be decided; both decided states are terminal.
The decision fields (``decided_at``, ``decided_by``) are set iff the subject
is decided, and ``rejection_reason`` is set iff it was rejected.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from ranaojobs.services.errors import RepositoryInvalidStateError, RepositoryValidationError

SUBJECT_TYPES = ("employer", "job", "multi_role")
MODERATION_STATUSES = ("pending", "approved", "rejected")
DECIDED_STATUSES = ("approved", "rejected")

PENDING_ROLE_MARKER = "multi-role"
MULTI_ROLE = "multi"
DEFAULT_ACTIVE_ROLE = "employer"


class ModerationAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


@dataclass(slots=True, frozen=True)
class ModerationDecision:
    status: str
    decided_at: datetime
    decided_by: str
    rejection_reason: str | None = None

    def as_fields(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "decided_at": self.decided_at,
            "decided_by": self.decided_by,
            "rejection_reason": self.rejection_reason,
        }


def normalize_reason(reason: str | None) -> str | None:
    if reason is None:
        return None
    stripped = reason.strip()
    return stripped or None


def decide(
    *,
    current_status: str,
    action: ModerationAction | str,
    actor_id: str,
    reason: str | None = None,
    now: datetime | None = None,
) -> ModerationDecision:
    action = ModerationAction(action)
    normalized_reason = normalize_reason(reason)
    if action is ModerationAction.REJECT and normalized_reason is None:
        raise RepositoryValidationError("rejection reason is required")
    if not actor_id:
        raise RepositoryValidationError("deciding actor is required")
    if current_status not in MODERATION_STATUSES:
        raise RepositoryInvalidStateError(f"unknown moderation status: {current_status}")
    if current_status != "pending":
        raise RepositoryInvalidStateError(f"invalid moderation transition: {current_status} -> {action.value}")

    decided_at = now or datetime.now(timezone.utc)
    if action is ModerationAction.APPROVE:
        return ModerationDecision(status="approved", decided_at=decided_at, decided_by=actor_id)
    return ModerationDecision(
        status="rejected",
        decided_at=decided_at,
        decided_by=actor_id,
        rejection_reason=normalized_reason,
    )


def check_invariants(record: dict[str, Any]) -> None:
    status = record.get("status")
    if status not in MODERATION_STATUSES:
        raise RepositoryInvalidStateError(f"unknown moderation status: {status}")

    decided = record.get("decided_at") is not None and bool(record.get("decided_by"))
    undecided = record.get("decided_at") is None and not record.get("decided_by")
    has_reason = bool(normalize_reason(record.get("rejection_reason")))

    if status == "pending" and not (undecided and not has_reason):
        raise RepositoryInvalidStateError("pending subject carries decision fields")
    if status == "approved" and not (decided and not has_reason):
        raise RepositoryInvalidStateError("approved subject must have decision fields and no reason")
    if status == "rejected" and not (decided and has_reason):
        raise RepositoryInvalidStateError("rejected subject must have decision fields and a reason")


def activity_timestamp(record: dict[str, Any]) -> datetime:
    return record.get("decided_at") or record["submitted_at"]


def validate_subject_type(subject_type: str) -> str:
    if subject_type not in SUBJECT_TYPES:
        raise RepositoryValidationError(f"subject_type must be one of: {', '.join(SUBJECT_TYPES)}")
    return subject_type


def validate_status_filter(status: str | None) -> str | None:
    if status is not None and status not in MODERATION_STATUSES:
        raise RepositoryValidationError(f"status must be one of: {', '.join(MODERATION_STATUSES)}")
    return status


def role_after_decision(decision: ModerationDecision, payload: dict[str, Any]) -> tuple[str, str | None]:
    """Resolve ``(role, active_role)`` for a decided multi-role request."""
    if decision.status == "approved":
        return MULTI_ROLE, payload.get("active_role") or DEFAULT_ACTIVE_ROLE
    return payload.get("previous_role") or DEFAULT_ACTIVE_ROLE, payload.get("active_role")

"""Status rules for job applications.

An application starts ``pending`` and is moved along by the employer that owns
the job. ``hired`` and ``rejected`` close it; a closed application cannot be
moved again.
"""

from __future__ import annotations

from ranaojobs.services.errors import RepositoryInvalidStateError, RepositoryValidationError

APPLICATION_STATUSES = ("pending", "reviewed", "shortlisted", "interview", "hired", "rejected")
CLOSED_APPLICATION_STATUSES = ("hired", "rejected")


def validate_application_status_filter(status: str | None) -> str | None:
    if status is not None and status not in APPLICATION_STATUSES:
        raise RepositoryValidationError(f"status must be one of: {', '.join(APPLICATION_STATUSES)}")
    return status


def check_application_transition(current_status: str, new_status: str) -> None:
    if new_status not in APPLICATION_STATUSES or new_status == "pending":
        raise RepositoryValidationError(
            f"status must be one of: {', '.join(APPLICATION_STATUSES[1:])}"
        )
    if current_status in CLOSED_APPLICATION_STATUSES and new_status != current_status:
        raise RepositoryInvalidStateError(f"invalid application transition: {current_status} -> {new_status}")


def job_is_public(job: dict) -> bool:
    """Approved and active postings are the only ones visible outside moderation."""
    return job.get("verification_status") == "approved" and bool(job.get("active"))

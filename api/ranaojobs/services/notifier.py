"""Turns committed domain events into notification records.

Publishing happens after the triggering state change has been committed and
never raises: a failed notification write is logged and the remaining
drafts are still attempted.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Literal

from fastapi import Depends

from ranaojobs.core.config import Settings, get_settings
from ranaojobs.services.repository import get_repository

logger = logging.getLogger(__name__)

NotificationAudience = Literal["employer", "jobseeker", "admin"]
NOTIFICATION_TYPES = ("application", "job", "approval", "rejection", "system", "review", "verification")
ADMIN_BROADCAST = "all"


@dataclass(slots=True, frozen=True)
class SubjectSubmitted:
    subject_type: str
    subject_id: str
    owner_id: str
    label: str


@dataclass(slots=True, frozen=True)
class SubjectDecided:
    subject_type: str
    subject_id: str
    owner_id: str
    label: str
    status: str
    decided_by: str
    rejection_reason: str | None = None


@dataclass(slots=True, frozen=True)
class ReviewCreated:
    review_id: str
    job_id: str
    job_title: str
    employer_id: str
    jobseeker_id: str
    rating: int


@dataclass(slots=True, frozen=True)
class ReviewFlagged:
    review_id: str
    job_id: str
    flagged_by: str


@dataclass(slots=True, frozen=True)
class UserRegistered:
    user_id: str
    role: str
    name: str


@dataclass(slots=True, frozen=True)
class ApplicationSubmitted:
    application_id: str
    job_id: str
    job_title: str
    employer_id: str
    jobseeker_id: str
    applicant_name: str


@dataclass(slots=True, frozen=True)
class ApplicationStatusChanged:
    application_id: str
    job_id: str
    job_title: str
    jobseeker_id: str
    status: str


DomainEvent = (
    SubjectSubmitted
    | SubjectDecided
    | ReviewCreated
    | ReviewFlagged
    | UserRegistered
    | ApplicationSubmitted
    | ApplicationStatusChanged
)


@dataclass(slots=True, frozen=True)
class NotificationDraft:
    audience: NotificationAudience
    recipient_id: str
    title: str
    message: str
    type: str
    link: str | None = None
    related_job_id: str | None = None
    application_id: str | None = None

    def __post_init__(self) -> None:
        if self.type not in NOTIFICATION_TYPES:
            raise ValueError(f"unknown notification type: {self.type}")

    def as_fields(self) -> dict[str, Any]:
        return {
            "audience": self.audience,
            "recipient_id": self.recipient_id,
            "title": self.title,
            "message": self.message,
            "type": self.type,
            "link": self.link,
            "related_job_id": self.related_job_id,
            "application_id": self.application_id,
        }


_SUBMITTED_TEMPLATES: dict[str, tuple[str, str, str]] = {
    "job": (
        "New Job Verification Required",
        'New job posting "{label}" requires verification.',
        "/admin/jobs/verification/{subject_id}",
    ),
    "employer": (
        "Employer Verification Requested",
        "{label} has submitted business details and needs verification.",
        "/admin/verifications/{subject_id}",
    ),
    "multi_role": (
        "Multi-Role Upgrade Request",
        "{label} has requested to upgrade to a multi-role account.",
        "/admin/multirole-requests/{subject_id}",
    ),
}

_APPROVED_TEMPLATES: dict[str, tuple[str, str, str]] = {
    "job": (
        "Job Posting Approved",
        'Your job posting "{label}" has been approved and is now visible to job seekers.',
        "/employer/jobs/{subject_id}",
    ),
    "employer": (
        "Employer Account Verified",
        "Your employer account for {label} has been verified.",
        "/employer/profile",
    ),
    "multi_role": (
        "Multi-Role Request Approved",
        "Your multi-role account request has been approved. You can now switch between employer and job seeker.",
        "/employer/profile",
    ),
}

_REJECTED_TEMPLATES: dict[str, tuple[str, str, str]] = {
    "job": (
        "Job Posting Rejected",
        'Your job posting "{label}" has been rejected. Reason: {reason}',
        "/employer/jobs/{subject_id}",
    ),
    "employer": (
        "Employer Verification Rejected",
        "Your employer verification for {label} has been rejected. Reason: {reason}",
        "/employer/profile",
    ),
    "multi_role": (
        "Multi-Role Request Rejected",
        "Your multi-role account request has been rejected. Reason: {reason}",
        "/employer/profile",
    ),
}


def _subject_submitted(event: SubjectSubmitted) -> list[NotificationDraft]:
    title, message, link = _SUBMITTED_TEMPLATES[event.subject_type]
    return [
        NotificationDraft(
            audience="admin",
            recipient_id=ADMIN_BROADCAST,
            title=title,
            message=message.format(label=event.label),
            type="verification",
            link=link.format(subject_id=event.subject_id),
            related_job_id=event.subject_id if event.subject_type == "job" else None,
        )
    ]


def _subject_decided(event: SubjectDecided) -> list[NotificationDraft]:
    templates = _APPROVED_TEMPLATES if event.status == "approved" else _REJECTED_TEMPLATES
    title, message, link = templates[event.subject_type]
    return [
        NotificationDraft(
            audience="employer",
            recipient_id=event.owner_id,
            title=title,
            message=message.format(label=event.label, reason=event.rejection_reason or ""),
            type="approval" if event.status == "approved" else "rejection",
            link=link.format(subject_id=event.subject_id),
            related_job_id=event.subject_id if event.subject_type == "job" else None,
        )
    ]


def _review_created(event: ReviewCreated) -> list[NotificationDraft]:
    return [
        NotificationDraft(
            audience="employer",
            recipient_id=event.employer_id,
            title="New Job Review",
            message=f"A jobseeker has left a {event.rating}-star review for your job: {event.job_title}",
            type="review",
            link=f"/employer/jobs/{event.job_id}",
            related_job_id=event.job_id,
        )
    ]


def _review_flagged(event: ReviewFlagged) -> list[NotificationDraft]:
    return [
        NotificationDraft(
            audience="admin",
            recipient_id=ADMIN_BROADCAST,
            title="Review Flagged",
            message="A job review has been flagged as inappropriate.",
            type="system",
            link=f"/admin/reviews/{event.review_id}",
            related_job_id=event.job_id,
        )
    ]


_REGISTERED_TEMPLATES: dict[str, tuple[str, str, str]] = {
    "employer": (
        "New Employer Registration",
        "{name} has registered as an employer and needs verification.",
        "verification",
    ),
    "jobseeker": (
        "New Jobseeker Registration",
        "{name} has registered as a jobseeker.",
        "system",
    ),
}

_APPLICATION_STATUS_MESSAGES = {
    "reviewed": ("Application Reviewed", 'Your application for "{job_title}" has been reviewed.'),
    "shortlisted": ("Application Shortlisted", 'You have been shortlisted for "{job_title}".'),
    "interview": ("Interview Scheduled", 'The employer wants to interview you for "{job_title}".'),
    "hired": ("Congratulations! You're Hired", 'You have been hired for "{job_title}".'),
    "rejected": ("Application Update", 'Your application for "{job_title}" was not selected.'),
}


def _user_registered(event: UserRegistered) -> list[NotificationDraft]:
    title, message, kind = _REGISTERED_TEMPLATES[event.role]
    return [
        NotificationDraft(
            audience="admin",
            recipient_id=ADMIN_BROADCAST,
            title=title,
            message=message.format(name=event.name),
            type=kind,
            link=f"/admin/users/{event.user_id}",
        )
    ]


def _application_submitted(event: ApplicationSubmitted) -> list[NotificationDraft]:
    return [
        NotificationDraft(
            audience="employer",
            recipient_id=event.employer_id,
            title="New Job Application",
            message=f"{event.applicant_name} has applied for your job: {event.job_title}",
            type="application",
            link=f"/employer/applicants/{event.job_id}",
            related_job_id=event.job_id,
            application_id=event.application_id,
        ),
        NotificationDraft(
            audience="admin",
            recipient_id=ADMIN_BROADCAST,
            title="New Job Application",
            message=f"{event.applicant_name} has applied for the job: {event.job_title}",
            type="application",
            link=f"/admin/users/{event.jobseeker_id}",
            related_job_id=event.job_id,
            application_id=event.application_id,
        ),
    ]


def _application_status_changed(event: ApplicationStatusChanged) -> list[NotificationDraft]:
    title, message = _APPLICATION_STATUS_MESSAGES[event.status]
    return [
        NotificationDraft(
            audience="jobseeker",
            recipient_id=event.jobseeker_id,
            title=title,
            message=message.format(job_title=event.job_title),
            type="application",
            link="/jobseeker/applications",
            related_job_id=event.job_id,
            application_id=event.application_id,
        )
    ]


NOTIFICATION_BUILDERS: dict[type, Callable[[Any], list[NotificationDraft]]] = {
    SubjectSubmitted: _subject_submitted,
    SubjectDecided: _subject_decided,
    ReviewCreated: _review_created,
    ReviewFlagged: _review_flagged,
    UserRegistered: _user_registered,
    ApplicationSubmitted: _application_submitted,
    ApplicationStatusChanged: _application_status_changed,
}


def build_notifications(event: DomainEvent) -> list[NotificationDraft]:
    builder = NOTIFICATION_BUILDERS.get(type(event))
    if builder is None:
        raise ValueError(f"no notification builder for event {type(event).__name__}")
    return builder(event)


class Notifier:
    def __init__(self, repository: Any, link_base: str = "") -> None:
        self.repository = repository
        self.link_base = link_base.rstrip("/")

    async def publish(self, event: DomainEvent) -> int:
        delivered = 0
        for draft in build_notifications(event):
            fields = draft.as_fields()
            if fields["link"] and self.link_base:
                fields["link"] = f"{self.link_base}{fields['link']}"
            try:
                await self.repository.create_notification(**fields)
            except Exception:
                logger.exception(
                    "notification delivery failed event=%s recipient=%s",
                    type(event).__name__,
                    draft.recipient_id,
                )
                continue
            delivered += 1
        return delivered


def get_notifier(
    settings: Settings = Depends(get_settings),
    repository=Depends(get_repository),
) -> Notifier:
    return Notifier(repository, link_base=settings.notification_link_base)

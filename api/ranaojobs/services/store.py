from __future__ import annotations

import asyncio
import copy
from collections import defaultdict
from datetime import datetime, timezone
from itertools import count
from typing import Any
from uuid import uuid4

from ranaojobs.services.errors import (
    RepositoryDuplicateError,
    RepositoryForbiddenError,
    RepositoryInvalidStateError,
    RepositoryNotFoundError,
    RepositoryValidationError,
)
from ranaojobs.services.applications import (
    check_application_transition,
    job_is_public,
    validate_application_status_filter,
)
from ranaojobs.services.moderation import (
    ModerationAction,
    activity_timestamp,
    check_invariants,
    decide,
    normalize_reason,
    role_after_decision,
    validate_status_filter,
    validate_subject_type,
)
from ranaojobs.services.ratings import REVIEW_STATUSES, empty_distribution, is_valid_rating, summarize_ratings
from ranaojobs.services.repository import (
    EMPLOYER_ROLES,
    NOTIFICATION_AUDIENCES,
    REGISTRABLE_ROLES,
    REVIEW_UPDATE_FIELDS,
    SWITCHABLE_ROLES,
    apply_profile_fields,
    diff_profile_fields,
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryRepository:
    """Process-local store with the same surface as ``PostgresRepository``.

    Used for local runs (``RJ_STORAGE_BACKEND=memory``) and tests. Review
    writes for a job are serialized by a per-job ``asyncio.Lock`` so the
    rating re-scan always sees a consistent set of reviews. Listings iterate
    newest insertion first so the stable sort breaks timestamp ties by
    creation order.
    """

    def __init__(self) -> None:
        self.users: dict[str, dict[str, Any]] = {}
        self.jobs: dict[str, dict[str, Any]] = {}
        self.subjects: dict[tuple[str, str], dict[str, Any]] = {}
        self.applications: dict[str, dict[str, Any]] = {}
        self.reviews: dict[str, dict[str, Any]] = {}
        self.helpfulness: dict[tuple[str, str], bool] = {}
        self.flags: list[dict[str, Any]] = []
        self.notifications: dict[str, dict[str, Any]] = {}
        self.activity: list[dict[str, Any]] = []
        self._activity_ids = count(1)
        self._job_locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._subject_lock = asyncio.Lock()

    async def close(self) -> None:
        return None

    # users

    async def get_user(self, user_id: str) -> dict[str, Any] | None:
        user = self.users.get(user_id)
        return self._user_out(user) if user else None

    async def register_user(
        self,
        *,
        user_id: str,
        role: str,
        email: str | None,
        first_name: str,
        last_name: str,
        company_name: str | None = None,
    ) -> dict[str, Any]:
        if role not in REGISTRABLE_ROLES:
            raise RepositoryValidationError("role must be one of: employer, jobseeker")
        if role == "employer" and not (company_name or "").strip():
            raise RepositoryValidationError("company_name is required for employer accounts")
        if user_id in self.users:
            raise RepositoryDuplicateError("user is already registered")

        now = _now()
        self.users[user_id] = {
            "id": user_id,
            "email": (email or "").strip() or None,
            "first_name": first_name.strip(),
            "last_name": last_name.strip(),
            "company_name": (company_name or "").strip() or None,
            "role": role,
            "active_role": role,
            "profile": {},
            "average_rating": 0.0,
            "review_count": 0,
            "rating_distribution": empty_distribution(),
            "created_at": now,
            "updated_at": now,
        }
        self._record_activity(user_id, "registration", f"Registered as {role}", {"role": role})
        return self._user_out(self.users[user_id])

    def add_user(self, *, user_id: str, role: str, **fields: Any) -> dict[str, Any]:
        """Seed a user with any role, including ``admin``."""
        now = _now()
        self.users[user_id] = {
            "id": user_id,
            "email": fields.get("email"),
            "first_name": fields.get("first_name", ""),
            "last_name": fields.get("last_name", ""),
            "company_name": fields.get("company_name"),
            "role": role,
            "active_role": fields.get("active_role"),
            "profile": dict(fields.get("profile") or {}),
            "average_rating": 0.0,
            "review_count": 0,
            "rating_distribution": empty_distribution(),
            "created_at": now,
            "updated_at": now,
        }
        return self._user_out(self.users[user_id])

    async def update_user_profile(self, *, user_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        user = self._require_user(user_id)
        after = apply_profile_fields(user, fields)
        changes = diff_profile_fields(user, after)
        if changes:
            for key in ("email", "first_name", "last_name", "company_name", "profile"):
                user[key] = after[key]
            user["updated_at"] = _now()
            self._record_activity(user_id, "profile_update", "Updated profile information", {"changes": changes})
        return self._user_out(user)

    async def switch_active_role(self, *, user_id: str, active_role: str) -> dict[str, Any]:
        if active_role not in SWITCHABLE_ROLES:
            raise RepositoryValidationError("active_role must be one of: employer, jobseeker")
        user = self._require_user(user_id)
        if user["role"] != "multi":
            raise RepositoryForbiddenError("only multi-role accounts can switch roles")
        if user["active_role"] != active_role:
            self._record_activity(
                user_id,
                "role_switch",
                f"Switched active role to {active_role}",
                {"from": user["active_role"], "to": active_role},
            )
            user["active_role"] = active_role
            user["updated_at"] = _now()
        return self._user_out(user)

    # jobs and subject submission

    async def create_job(
        self,
        *,
        employer_id: str,
        title: str,
        description: str,
        category: str | None = None,
        job_type: str | None = None,
        location: str | None = None,
        salary: str | None = None,
    ) -> dict[str, Any]:
        normalized_title = (title or "").strip()
        if not normalized_title:
            raise RepositoryValidationError("title must be a non-empty string")
        employer = self.users.get(employer_id)
        if not employer:
            raise RepositoryNotFoundError("employer not found")
        if employer["role"] not in EMPLOYER_ROLES:
            raise RepositoryForbiddenError("only employers can post jobs")

        job_id = str(uuid4())
        now = _now()
        self.jobs[job_id] = {
            "id": job_id,
            "employer_id": employer_id,
            "title": normalized_title,
            "description": description or "",
            "category": category,
            "job_type": job_type,
            "location": location,
            "salary": salary,
            "company_name": employer["company_name"],
            "active": True,
            "average_rating": 0.0,
            "review_count": 0,
            "rating_distribution": empty_distribution(),
            "created_at": now,
            "updated_at": now,
        }
        async with self._subject_lock:
            self._insert_subject("job", job_id, owner_id=employer_id, label=normalized_title, payload={})
        self._record_activity(
            employer_id,
            "job_post",
            f"You posted a new job: {normalized_title}",
            {
                "job_id": job_id,
                "job_title": normalized_title,
                "job_type": job_type,
                "job_category": category,
                "salary": salary,
            },
        )
        return self._job_out(self.jobs[job_id])

    async def get_job(self, job_id: str) -> dict[str, Any]:
        return self._job_out(self._require_job(job_id))

    async def list_public_jobs(self, *, category: str | None, limit: int, offset: int) -> list[dict[str, Any]]:
        rows = [
            self._job_out(job)
            for job in reversed(self.jobs.values())
            if job["active"] and (category is None or job["category"] == category)
        ]
        rows = [row for row in rows if row["verification_status"] == "approved"]
        rows.sort(key=lambda row: row["created_at"], reverse=True)
        return rows[offset : offset + limit]

    async def list_employer_jobs(self, *, employer_id: str, limit: int, offset: int) -> list[dict[str, Any]]:
        rows = [self._job_out(job) for job in reversed(self.jobs.values()) if job["employer_id"] == employer_id]
        rows.sort(key=lambda row: row["created_at"], reverse=True)
        return rows[offset : offset + limit]

    async def set_job_active(self, *, job_id: str, actor_id: str, active: bool) -> dict[str, Any]:
        job = self._require_job(job_id)
        if job["employer_id"] != actor_id:
            raise RepositoryForbiddenError("only the job owner can change its status")
        subject = self.subjects.get(("job", job_id))
        if active and subject and subject["status"] == "rejected":
            raise RepositoryInvalidStateError("rejected job postings cannot be re-activated")
        job["active"] = bool(active)
        job["updated_at"] = _now()
        return self._job_out(job)

    async def submit_employer_verification(self, *, user_id: str, details: dict[str, Any]) -> dict[str, Any]:
        user = self._require_user(user_id)
        if user["role"] not in EMPLOYER_ROLES:
            raise RepositoryForbiddenError("only employers can request verification")
        label = user["company_name"] or f"{user['first_name']} {user['last_name']}".strip()
        async with self._subject_lock:
            subject = self._insert_subject("employer", user_id, owner_id=user_id, label=label, payload=details)
        self._record_activity(
            user_id,
            "verification_request",
            "Submitted business verification documents",
            {"documents": len(details.get("documents") or [])},
        )
        return copy.deepcopy(subject)

    async def request_multi_role_upgrade(self, *, user_id: str, jobseeker_profile: dict[str, Any]) -> dict[str, Any]:
        user = self._require_user(user_id)
        if user["role"] != "employer":
            raise RepositoryInvalidStateError(
                f"multi-role upgrade requires an employer account, current role is {user['role']}"
            )
        label = f"{user['first_name']} {user['last_name']}".strip() or user["company_name"] or user_id
        async with self._subject_lock:
            subject = self._insert_subject(
                "multi_role",
                user_id,
                owner_id=user_id,
                label=label,
                payload={
                    "previous_role": user["role"],
                    "active_role": user["active_role"],
                    "jobseeker_profile": copy.deepcopy(jobseeker_profile),
                },
            )
        user["role"] = "multi-role"
        user["profile"].update(jobseeker_profile)
        user["updated_at"] = _now()
        self._record_activity(
            user_id,
            "multi_role_request",
            "Requested an upgrade to a multi-role account",
            {"fields": sorted(jobseeker_profile)},
        )
        return copy.deepcopy(subject)

    # moderation

    async def get_subject(self, *, subject_type: str, subject_id: str) -> dict[str, Any]:
        validate_subject_type(subject_type)
        subject = self.subjects.get((subject_type, subject_id))
        if not subject:
            raise RepositoryNotFoundError(f"{subject_type} subject not found")
        return copy.deepcopy(subject)

    async def list_subjects(
        self,
        *,
        subject_type: str,
        status: str | None,
        limit: int,
        offset: int,
    ) -> list[dict[str, Any]]:
        validate_subject_type(subject_type)
        validate_status_filter(status)
        rows = [
            subject
            for (kind, _), subject in reversed(self.subjects.items())
            if kind == subject_type and (status is None or subject["status"] == status)
        ]
        rows.sort(key=activity_timestamp, reverse=True)
        return [copy.deepcopy(row) for row in rows[offset : offset + limit]]

    async def approve_subject(self, *, subject_type: str, subject_id: str, actor_id: str) -> dict[str, Any]:
        return await self._decide_subject(subject_type, subject_id, actor_id, ModerationAction.APPROVE, None)

    async def reject_subject(
        self,
        *,
        subject_type: str,
        subject_id: str,
        actor_id: str,
        reason: str | None,
    ) -> dict[str, Any]:
        return await self._decide_subject(subject_type, subject_id, actor_id, ModerationAction.REJECT, reason)

    async def _decide_subject(
        self,
        subject_type: str,
        subject_id: str,
        actor_id: str,
        action: ModerationAction,
        reason: str | None,
    ) -> dict[str, Any]:
        validate_subject_type(subject_type)
        async with self._subject_lock:
            subject = self.subjects.get((subject_type, subject_id))
            if not subject:
                raise RepositoryNotFoundError(f"{subject_type} subject not found")

            decision = decide(current_status=subject["status"], action=action, actor_id=actor_id, reason=reason)
            check_invariants({**subject, **decision.as_fields()})
            subject.update(decision.as_fields())
            subject["updated_at"] = decision.decided_at

            if subject_type == "job" and decision.status == "rejected":
                job = self.jobs.get(subject_id)
                if job:
                    job["active"] = False
                    job["updated_at"] = decision.decided_at
            if subject_type == "multi_role":
                owner = self.users.get(subject["owner_id"])
                if owner:
                    owner["role"], owner["active_role"] = role_after_decision(decision, subject["payload"])
                    owner["updated_at"] = decision.decided_at

            self._record_decision_activity(subject, decision.status, actor_id)
            return copy.deepcopy(subject)

    # reviews

    async def create_review(
        self,
        *,
        job_id: str,
        jobseeker_id: str,
        rating: int,
        review: str,
        worked_at_company: bool = False,
        anonymous: bool = False,
    ) -> dict[str, Any]:
        if not is_valid_rating(rating):
            raise RepositoryValidationError("rating must be an integer between 1 and 5")
        job = self._require_job(job_id)
        if not job_is_public(self._job_out(job)):
            raise RepositoryNotFoundError("job not found")
        if jobseeker_id not in self.users:
            raise RepositoryNotFoundError("reviewer not found")

        async with self._job_locks[job_id]:
            if any(
                row["job_id"] == job_id and row["jobseeker_id"] == jobseeker_id for row in self.reviews.values()
            ):
                raise RepositoryDuplicateError("you have already reviewed this job")

            review_id = str(uuid4())
            now = _now()
            self.reviews[review_id] = {
                "id": review_id,
                "job_id": job_id,
                "jobseeker_id": jobseeker_id,
                "employer_id": job["employer_id"],
                "rating": rating,
                "review": review or "",
                "applied_to_job": self._has_applied(job_id, jobseeker_id),
                "worked_at_company": bool(worked_at_company),
                "anonymous": bool(anonymous),
                "status": "active",
                "helpful": 0,
                "not_helpful": 0,
                "created_at": now,
                "updated_at": now,
            }
            self._recompute_ratings(job_id, job["employer_id"])
        self._record_activity(
            jobseeker_id,
            "review",
            f"You reviewed {job['title']}",
            {"job_id": job_id, "review_id": review_id, "rating": rating},
        )
        return self._review_out(self.reviews[review_id])

    async def get_review(self, review_id: str) -> dict[str, Any]:
        return self._review_out(self._require_review(review_id))

    async def update_review(self, *, review_id: str, actor_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        updates = {key: value for key, value in fields.items() if key in REVIEW_UPDATE_FIELDS and value is not None}
        if "rating" in updates and not is_valid_rating(updates["rating"]):
            raise RepositoryValidationError("rating must be an integer between 1 and 5")

        current = self._require_review(review_id)
        async with self._job_locks[current["job_id"]]:
            if current["jobseeker_id"] != actor_id:
                raise RepositoryForbiddenError("you are not authorized to update this review")
            rating_changed = "rating" in updates and updates["rating"] != current["rating"]
            current.update(updates)
            current["updated_at"] = _now()
            if rating_changed:
                self._recompute_ratings(current["job_id"], current["employer_id"])
        return self._review_out(current)

    async def delete_review(self, *, review_id: str, actor_id: str, is_admin: bool = False) -> None:
        current = self._require_review(review_id)
        async with self._job_locks[current["job_id"]]:
            if current["jobseeker_id"] != actor_id and not is_admin:
                raise RepositoryForbiddenError("you are not authorized to delete this review")
            self.reviews.pop(review_id, None)
            for key in [key for key in self.helpfulness if key[0] == review_id]:
                del self.helpfulness[key]
            self._recompute_ratings(current["job_id"], current["employer_id"])

    async def set_review_status(self, *, review_id: str, status: str, actor_id: str) -> dict[str, Any]:
        if status not in REVIEW_STATUSES:
            raise RepositoryValidationError("status must be one of: active, flagged, removed")
        current = self._require_review(review_id)
        async with self._job_locks[current["job_id"]]:
            previous = current["status"]
            if previous != status:
                current["status"] = status
                current["updated_at"] = _now()
                self._recompute_ratings(current["job_id"], current["employer_id"])
                self._record_activity(
                    actor_id,
                    "review_moderation",
                    f"Set review status to {status}",
                    {"review_id": review_id, "from": previous, "to": status},
                )
        return self._review_out(current)

    async def mark_review_helpfulness(self, *, review_id: str, user_id: str, is_helpful: bool) -> dict[str, Any]:
        current = self._require_review(review_id)
        previous = self.helpfulness.get((review_id, user_id))
        if previous is None:
            current["helpful" if is_helpful else "not_helpful"] += 1
        elif previous != is_helpful:
            if is_helpful:
                current["helpful"] += 1
                current["not_helpful"] = max(current["not_helpful"] - 1, 0)
            else:
                current["not_helpful"] += 1
                current["helpful"] = max(current["helpful"] - 1, 0)
        self.helpfulness[(review_id, user_id)] = is_helpful
        return self._review_out(current)

    async def flag_review(self, *, review_id: str, user_id: str, reason: str | None) -> dict[str, Any]:
        normalized_reason = normalize_reason(reason)
        if not normalized_reason:
            raise RepositoryValidationError("flag reason is required")
        review = self._require_review(review_id)
        flag = {
            "id": str(uuid4()),
            "review_id": review_id,
            "job_id": review["job_id"],
            "user_id": user_id,
            "reason": normalized_reason,
            "status": "pending",
            "created_at": _now(),
        }
        self.flags.append(flag)
        return dict(flag)

    async def list_job_reviews(self, *, job_id: str, limit: int, offset: int) -> list[dict[str, Any]]:
        if not job_is_public(self._job_out(self._require_job(job_id))):
            raise RepositoryNotFoundError("job not found")
        rows = [
            row
            for row in reversed(self.reviews.values())
            if row["job_id"] == job_id and row["status"] == "active"
        ]
        rows.sort(key=lambda row: row["created_at"], reverse=True)
        return [self._review_out(row) for row in rows[offset : offset + limit]]

    async def list_user_reviews(self, *, jobseeker_id: str, limit: int, offset: int) -> list[dict[str, Any]]:
        rows = [row for row in reversed(self.reviews.values()) if row["jobseeker_id"] == jobseeker_id]
        rows.sort(key=lambda row: row["created_at"], reverse=True)
        return [self._review_out(row) for row in rows[offset : offset + limit]]

    async def get_job_rating(self, job_id: str) -> dict[str, Any]:
        job = self._require_job(job_id)
        return self._rating_out(job)

    async def get_employer_rating(self, employer_id: str) -> dict[str, Any]:
        user = self.users.get(employer_id)
        if not user or user["role"] not in EMPLOYER_ROLES:
            raise RepositoryNotFoundError("employer not found")
        return self._rating_out(user)

    # applications

    async def apply_to_job(
        self,
        *,
        job_id: str,
        jobseeker_id: str,
        cover_letter: str = "",
        phone_number: str | None = None,
    ) -> dict[str, Any]:
        job = self._require_job(job_id)
        if not job_is_public(self._job_out(job)):
            raise RepositoryNotFoundError("job not found")
        if job["employer_id"] == jobseeker_id:
            raise RepositoryForbiddenError("you cannot apply to your own job posting")
        applicant = self.users.get(jobseeker_id)
        if not applicant:
            raise RepositoryNotFoundError("applicant not found")

        async with self._job_locks[job_id]:
            if self._has_applied(job_id, jobseeker_id):
                raise RepositoryDuplicateError("you have already applied to this job")
            application_id = str(uuid4())
            now = _now()
            self.applications[application_id] = {
                "id": application_id,
                "job_id": job_id,
                "employer_id": job["employer_id"],
                "jobseeker_id": jobseeker_id,
                "applicant_name": f"{applicant['first_name']} {applicant['last_name']}".strip() or jobseeker_id,
                "cover_letter": cover_letter or "",
                "phone_number": (phone_number or "").strip() or None,
                "status": "pending",
                "created_at": now,
                "updated_at": now,
            }
        self._record_activity(
            jobseeker_id,
            "application",
            f"You applied for {job['title']}",
            {"job_id": job_id, "application_id": application_id},
        )
        return self._application_out(self.applications[application_id])

    async def list_job_applications(
        self,
        *,
        job_id: str,
        employer_id: str,
        status: str | None,
        limit: int,
        offset: int,
    ) -> list[dict[str, Any]]:
        validate_application_status_filter(status)
        job = self._require_job(job_id)
        if job["employer_id"] != employer_id:
            raise RepositoryForbiddenError("only the job owner can view its applications")
        rows = [
            row
            for row in reversed(self.applications.values())
            if row["job_id"] == job_id and (status is None or row["status"] == status)
        ]
        rows.sort(key=lambda row: row["created_at"], reverse=True)
        return [self._application_out(row) for row in rows[offset : offset + limit]]

    async def list_user_applications(self, *, jobseeker_id: str, limit: int, offset: int) -> list[dict[str, Any]]:
        rows = [row for row in reversed(self.applications.values()) if row["jobseeker_id"] == jobseeker_id]
        rows.sort(key=lambda row: row["created_at"], reverse=True)
        return [self._application_out(row) for row in rows[offset : offset + limit]]

    async def set_application_status(self, *, application_id: str, actor_id: str, status: str) -> dict[str, Any]:
        current = self.applications.get(application_id)
        if not current:
            raise RepositoryNotFoundError("application not found")
        async with self._job_locks[current["job_id"]]:
            if current["employer_id"] != actor_id:
                raise RepositoryForbiddenError("only the job owner can update this application")
            check_application_transition(current["status"], status)
            previous = current["status"]
            if previous != status:
                current["status"] = status
                current["updated_at"] = _now()
                self._record_activity(
                    actor_id,
                    "application_status",
                    f"Moved an application to {status}",
                    {
                        "application_id": application_id,
                        "jobseeker_id": current["jobseeker_id"],
                        "from": previous,
                        "to": status,
                    },
                )
        out = self._application_out(current)
        out["previous_status"] = previous
        return out

    # notifications

    async def create_notification(
        self,
        *,
        audience: str,
        recipient_id: str,
        title: str,
        message: str,
        type: str,
        link: str | None = None,
        related_job_id: str | None = None,
        application_id: str | None = None,
    ) -> dict[str, Any]:
        if audience not in NOTIFICATION_AUDIENCES:
            raise RepositoryValidationError("audience must be one of: admin, employer, jobseeker")
        notification_id = str(uuid4())
        self.notifications[notification_id] = {
            "id": notification_id,
            "audience": audience,
            "recipient_id": recipient_id,
            "title": title,
            "message": message,
            "type": type,
            "is_read": False,
            "link": link,
            "related_job_id": related_job_id,
            "application_id": application_id,
            "created_at": _now(),
        }
        return dict(self.notifications[notification_id])

    async def list_notifications(
        self,
        *,
        recipient_ids: list[str],
        audience: str | None,
        unread_only: bool,
        limit: int,
        offset: int,
    ) -> list[dict[str, Any]]:
        rows = [
            row
            for row in reversed(self.notifications.values())
            if row["recipient_id"] in recipient_ids
            and (audience is None or row["audience"] == audience)
            and (not unread_only or not row["is_read"])
        ]
        rows.sort(key=lambda row: row["created_at"], reverse=True)
        return [dict(row) for row in rows[offset : offset + limit]]

    async def mark_notification_read(self, *, notification_id: str, recipient_ids: list[str]) -> dict[str, Any]:
        row = self._require_notification(notification_id, recipient_ids)
        row["is_read"] = True
        return dict(row)

    async def mark_all_notifications_read(self, *, recipient_ids: list[str]) -> int:
        updated = 0
        for row in self.notifications.values():
            if row["recipient_id"] in recipient_ids and not row["is_read"]:
                row["is_read"] = True
                updated += 1
        return updated

    async def delete_notification(self, *, notification_id: str, recipient_ids: list[str]) -> None:
        self._require_notification(notification_id, recipient_ids)
        del self.notifications[notification_id]

    async def clear_notifications(self, *, audience: str | None) -> int:
        if audience is not None and audience not in NOTIFICATION_AUDIENCES:
            raise RepositoryValidationError("audience must be one of: admin, employer, jobseeker")
        doomed = [key for key, row in self.notifications.items() if audience is None or row["audience"] == audience]
        for key in doomed:
            del self.notifications[key]
        return len(doomed)

    # activity

    async def list_activity(
        self,
        *,
        user_id: str | None,
        type: str | None,
        limit: int,
        offset: int,
    ) -> list[dict[str, Any]]:
        rows = [
            row
            for row in self.activity
            if (user_id is None or row["user_id"] == user_id) and (type is None or row["type"] == type)
        ]
        rows.sort(key=lambda row: (row["created_at"], row["id"]), reverse=True)
        return [copy.deepcopy(row) for row in rows[offset : offset + limit]]

    async def clear_activity(self, *, user_id: str | None = None) -> int:
        kept = [row for row in self.activity if user_id is not None and row["user_id"] != user_id]
        removed = len(self.activity) - len(kept)
        self.activity = kept
        return removed

    # internals

    def _insert_subject(
        self,
        subject_type: str,
        subject_id: str,
        *,
        owner_id: str,
        label: str,
        payload: dict[str, Any],
    ) -> dict[str, Any]:
        key = (subject_type, subject_id)
        existing = self.subjects.get(key)
        if existing:
            raise RepositoryInvalidStateError(
                f"{subject_type} request already submitted with status {existing['status']}"
            )
        now = _now()
        self.subjects[key] = {
            "id": str(uuid4()),
            "subject_type": subject_type,
            "subject_id": subject_id,
            "owner_id": owner_id,
            "label": label,
            "status": "pending",
            "payload": copy.deepcopy(payload),
            "submitted_at": now,
            "decided_at": None,
            "decided_by": None,
            "rejection_reason": None,
            "updated_at": now,
        }
        return self.subjects[key]

    def _record_decision_activity(self, subject: dict[str, Any], status: str, actor_id: str) -> None:
        subject_type = subject["subject_type"]
        label = subject["label"]
        verb = "approved" if status == "approved" else "rejected"
        owner_descriptions = {
            "job": f"Your job posting for {label} has been {verb}.",
            "employer": f"Your employer verification has been {verb}.",
            "multi_role": f"Your multi-role account request has been {verb}.",
        }
        self._record_activity(
            subject["owner_id"],
            "approval" if status == "approved" else "rejection",
            owner_descriptions[subject_type],
            {"subject_type": subject_type, "subject_id": subject["subject_id"]},
        )
        self._record_activity(
            actor_id,
            "moderation_decision",
            f"{verb.capitalize()} {subject_type} {label}",
            {
                "subject_type": subject_type,
                "subject_id": subject["subject_id"],
                "owner_id": subject["owner_id"],
                "status": status,
            },
        )

    def _record_activity(self, user_id: str, type: str, description: str, metadata: dict[str, Any]) -> None:
        self.activity.append(
            {
                "id": next(self._activity_ids),
                "user_id": user_id,
                "type": type,
                "description": description,
                "metadata": copy.deepcopy(metadata),
                "created_at": _now(),
            }
        )

    def _recompute_ratings(self, job_id: str, employer_id: str) -> None:
        job_summary = summarize_ratings(
            row["rating"] for row in self.reviews.values() if row["job_id"] == job_id and row["status"] == "active"
        )
        job = self.jobs.get(job_id)
        if job:
            job.update(job_summary.as_fields())
            job["updated_at"] = _now()

        employer_summary = summarize_ratings(
            row["rating"]
            for row in self.reviews.values()
            if row["employer_id"] == employer_id and row["status"] == "active"
        )
        employer = self.users.get(employer_id)
        if employer:
            employer.update(employer_summary.as_fields())

    def _has_applied(self, job_id: str, jobseeker_id: str) -> bool:
        return any(
            row["job_id"] == job_id and row["jobseeker_id"] == jobseeker_id for row in self.applications.values()
        )

    def _require_user(self, user_id: str) -> dict[str, Any]:
        user = self.users.get(user_id)
        if not user:
            raise RepositoryNotFoundError("user not found")
        return user

    def _require_job(self, job_id: str) -> dict[str, Any]:
        job = self.jobs.get(job_id)
        if not job:
            raise RepositoryNotFoundError("job not found")
        return job

    def _require_review(self, review_id: str) -> dict[str, Any]:
        review = self.reviews.get(review_id)
        if not review:
            raise RepositoryNotFoundError("review not found")
        return review

    def _require_notification(self, notification_id: str, recipient_ids: list[str]) -> dict[str, Any]:
        row = self.notifications.get(notification_id)
        if not row or row["recipient_id"] not in recipient_ids:
            raise RepositoryNotFoundError("notification not found")
        return row

    def _user_out(self, user: dict[str, Any]) -> dict[str, Any]:
        out = copy.deepcopy(user)
        employer_subject = self.subjects.get(("employer", user["id"]))
        multi_role_subject = self.subjects.get(("multi_role", user["id"]))
        out["employer_verification_status"] = employer_subject["status"] if employer_subject else None
        out["multi_role_status"] = multi_role_subject["status"] if multi_role_subject else None
        return out

    def _job_out(self, job: dict[str, Any]) -> dict[str, Any]:
        out = copy.deepcopy(job)
        subject = self.subjects.get(("job", job["id"]))
        out["verification_status"] = subject["status"] if subject else "pending"
        out["verified_at"] = subject["decided_at"] if subject else None
        out["rejection_reason"] = subject["rejection_reason"] if subject else None
        return out

    def _review_out(self, review: dict[str, Any]) -> dict[str, Any]:
        out = dict(review)
        job = self.jobs.get(review["job_id"])
        out["job_title"] = job["title"] if job else ""
        return out

    def _application_out(self, application: dict[str, Any]) -> dict[str, Any]:
        out = dict(application)
        job = self.jobs.get(application["job_id"])
        out["job_title"] = job["title"] if job else ""
        return out

    @staticmethod
    def _rating_out(entity: dict[str, Any]) -> dict[str, Any]:
        return {
            "average_rating": entity["average_rating"],
            "review_count": entity["review_count"],
            "rating_distribution": dict(entity["rating_distribution"]),
        }

from __future__ import annotations

import json
import uuid
from functools import lru_cache
from typing import Any

import asyncpg  # type: ignore[import-untyped]
from asyncpg import exceptions as pg_exc

from ranaojobs.core.config import get_settings
from ranaojobs.services.errors import (
    RepositoryConflictError,
    RepositoryDuplicateError,
    RepositoryError,
    RepositoryForbiddenError,
    RepositoryInvalidStateError,
    RepositoryNotFoundError,
    RepositoryUnavailableError,
    RepositoryValidationError,
)
from ranaojobs.services.applications import (
    check_application_transition,
    job_is_public,
    validate_application_status_filter,
)
from ranaojobs.services.moderation import (
    ModerationAction,
    check_invariants,
    decide,
    normalize_reason,
    role_after_decision,
    validate_status_filter,
    validate_subject_type,
)
from ranaojobs.services.ratings import (
    REVIEW_STATUSES,
    coerce_distribution,
    is_valid_rating,
    summarize_ratings,
)

__all__ = [
    "PostgresRepository",
    "RepositoryConflictError",
    "RepositoryDuplicateError",
    "RepositoryError",
    "RepositoryForbiddenError",
    "RepositoryInvalidStateError",
    "RepositoryNotFoundError",
    "RepositoryUnavailableError",
    "RepositoryValidationError",
    "get_repository",
]

REGISTRABLE_ROLES = {"jobseeker", "employer"}
EMPLOYER_ROLES = {"employer", "multi-role", "multi"}
SWITCHABLE_ROLES = {"jobseeker", "employer"}
PROFILE_FIELDS = ("email", "first_name", "last_name", "company_name")
REVIEW_UPDATE_FIELDS = ("rating", "review", "anonymous", "worked_at_company")
NOTIFICATION_AUDIENCES = {"employer", "jobseeker", "admin"}

_USER_SELECT = """
    select
      u.id,
      u.email,
      u.first_name,
      u.last_name,
      u.company_name,
      u.role::text as role,
      u.active_role,
      u.profile,
      u.average_rating,
      u.review_count,
      u.rating_distribution,
      ev.status::text as employer_verification_status,
      mr.status::text as multi_role_status,
      u.created_at,
      u.updated_at
    from users u
    left join moderation_subjects ev
      on ev.subject_type = 'employer' and ev.subject_id = u.id
    left join moderation_subjects mr
      on mr.subject_type = 'multi_role' and mr.subject_id = u.id
"""

_JOB_SELECT = """
    select
      j.id::text as id,
      j.employer_id,
      j.title,
      j.description,
      j.category,
      j.job_type,
      j.location,
      j.salary,
      j.company_name,
      j.active,
      coalesce(ms.status::text, 'pending') as verification_status,
      ms.decided_at as verified_at,
      ms.rejection_reason,
      j.average_rating,
      j.review_count,
      j.rating_distribution,
      j.created_at,
      j.updated_at
    from jobs j
    left join moderation_subjects ms
      on ms.subject_type = 'job' and ms.subject_id = j.id::text
"""

_SUBJECT_COLUMNS = """
      id::text as id,
      subject_type::text as subject_type,
      subject_id,
      owner_id,
      label,
      status::text as status,
      payload,
      submitted_at,
      decided_at,
      decided_by,
      rejection_reason,
      updated_at
"""

_REVIEW_SELECT = """
    select
      r.id::text as id,
      r.job_id::text as job_id,
      j.title as job_title,
      r.jobseeker_id,
      r.employer_id,
      r.rating,
      r.review,
      r.applied_to_job,
      r.worked_at_company,
      r.anonymous,
      r.status::text as status,
      r.helpful,
      r.not_helpful,
      r.created_at,
      r.updated_at
    from job_reviews r
    join jobs j on j.id = r.job_id
"""

_APPLICATION_SELECT = """
    select
      a.id::text as id,
      a.job_id::text as job_id,
      j.title as job_title,
      a.employer_id,
      a.jobseeker_id,
      a.applicant_name,
      a.cover_letter,
      a.phone_number,
      a.status::text as status,
      a.created_at,
      a.updated_at
    from applications a
    join jobs j on j.id = a.job_id
"""

_NOTIFICATION_COLUMNS = """
      id::text as id,
      audience::text as audience,
      recipient_id,
      title,
      message,
      type,
      is_read,
      link,
      related_job_id,
      application_id,
      created_at
"""


def apply_profile_fields(before: dict[str, Any], fields: dict[str, Any]) -> dict[str, Any]:
    after = dict(before)
    after["profile"] = dict(before.get("profile") or {})
    for key in PROFILE_FIELDS:
        if key in fields and fields[key] is not None:
            value = fields[key].strip() if isinstance(fields[key], str) else fields[key]
            after[key] = value
    extra = fields.get("profile")
    if isinstance(extra, dict):
        after["profile"].update(extra)
    return after


def diff_profile_fields(before: dict[str, Any], after: dict[str, Any]) -> dict[str, dict[str, Any]]:
    """Field-level ``{"from", "to"}`` diff recorded as activity metadata."""
    changes: dict[str, dict[str, Any]] = {}
    for key in PROFILE_FIELDS:
        if before.get(key) != after.get(key):
            changes[key] = {"from": before.get(key), "to": after.get(key)}
    before_profile = before.get("profile") or {}
    after_profile = after.get("profile") or {}
    for key in sorted(set(before_profile) | set(after_profile)):
        if before_profile.get(key) != after_profile.get(key):
            changes[f"profile.{key}"] = {"from": before_profile.get(key), "to": after_profile.get(key)}
    return changes


class PostgresRepository:
    def __init__(
        self,
        database_url: str | None,
        min_pool_size: int,
        max_pool_size: int,
        command_timeout_seconds: float = 15.0,
    ) -> None:
        self.database_url = database_url
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self.command_timeout_seconds = command_timeout_seconds
        self._pool: asyncpg.Pool | None = None

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    # users

    async def get_user(self, user_id: str) -> dict[str, Any] | None:
        pool = await self._get_pool()
        row = await pool.fetchrow(f"{_USER_SELECT} where u.id = $1", user_id)
        return self._user_row_to_dict(row) if row else None

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
        if role == "employer" and not self._coerce_text(company_name):
            raise RepositoryValidationError("company_name is required for employer accounts")

        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                inserted = await conn.fetchval(
                    """
                    insert into users (id, email, first_name, last_name, company_name, role, active_role)
                    values ($1, $2, $3, $4, $5, $6::text::user_role, $6::text)
                    on conflict (id) do nothing
                    returning id
                    """,
                    user_id,
                    self._coerce_text(email),
                    first_name.strip(),
                    last_name.strip(),
                    self._coerce_text(company_name),
                    role,
                )
                if not inserted:
                    raise RepositoryDuplicateError("user is already registered")
                await self._record_activity(
                    conn,
                    user_id=user_id,
                    type="registration",
                    description=f"Registered as {role}",
                    metadata={"role": role},
                )
                row = await conn.fetchrow(f"{_USER_SELECT} where u.id = $1", user_id)
        return self._user_row_to_dict(row)

    async def update_user_profile(self, *, user_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                existing = await conn.fetchrow(
                    """
                    select email, first_name, last_name, company_name, profile
                    from users
                    where id = $1
                    for update
                    """,
                    user_id,
                )
                if not existing:
                    raise RepositoryNotFoundError("user not found")

                before = dict(existing)
                before["profile"] = self._coerce_json_dict(before["profile"])
                after = apply_profile_fields(before, fields)
                changes = diff_profile_fields(before, after)
                if changes:
                    await conn.execute(
                        """
                        update users
                        set
                          email = $2,
                          first_name = $3,
                          last_name = $4,
                          company_name = $5,
                          profile = $6::jsonb
                        where id = $1
                        """,
                        user_id,
                        after["email"],
                        after["first_name"],
                        after["last_name"],
                        after["company_name"],
                        json.dumps(after["profile"]),
                    )
                    await self._record_activity(
                        conn,
                        user_id=user_id,
                        type="profile_update",
                        description="Updated profile information",
                        metadata={"changes": changes},
                    )
                row = await conn.fetchrow(f"{_USER_SELECT} where u.id = $1", user_id)
        return self._user_row_to_dict(row)

    async def switch_active_role(self, *, user_id: str, active_role: str) -> dict[str, Any]:
        if active_role not in SWITCHABLE_ROLES:
            raise RepositoryValidationError("active_role must be one of: employer, jobseeker")

        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                existing = await conn.fetchrow(
                    "select role::text as role, active_role from users where id = $1 for update",
                    user_id,
                )
                if not existing:
                    raise RepositoryNotFoundError("user not found")
                if existing["role"] != "multi":
                    raise RepositoryForbiddenError("only multi-role accounts can switch roles")
                if existing["active_role"] != active_role:
                    await conn.execute("update users set active_role = $2 where id = $1", user_id, active_role)
                    await self._record_activity(
                        conn,
                        user_id=user_id,
                        type="role_switch",
                        description=f"Switched active role to {active_role}",
                        metadata={"from": existing["active_role"], "to": active_role},
                    )
                row = await conn.fetchrow(f"{_USER_SELECT} where u.id = $1", user_id)
        return self._user_row_to_dict(row)

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
        normalized_title = self._coerce_text(title)
        if not normalized_title:
            raise RepositoryValidationError("title must be a non-empty string")

        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                employer = await conn.fetchrow(
                    "select role::text as role, company_name from users where id = $1",
                    employer_id,
                )
                if not employer:
                    raise RepositoryNotFoundError("employer not found")
                if employer["role"] not in EMPLOYER_ROLES:
                    raise RepositoryForbiddenError("only employers can post jobs")

                job_id = await conn.fetchval(
                    """
                    insert into jobs (
                      employer_id, title, description, category, job_type, location, salary, company_name
                    )
                    values ($1, $2, $3, $4, $5, $6, $7, $8)
                    returning id::text
                    """,
                    employer_id,
                    normalized_title,
                    description or "",
                    self._coerce_text(category),
                    self._coerce_text(job_type),
                    self._coerce_text(location),
                    self._coerce_text(salary),
                    employer["company_name"],
                )
                await self._insert_subject(
                    conn,
                    subject_type="job",
                    subject_id=job_id,
                    owner_id=employer_id,
                    label=normalized_title,
                    payload={},
                )
                await self._record_activity(
                    conn,
                    user_id=employer_id,
                    type="job_post",
                    description=f"You posted a new job: {normalized_title}",
                    metadata={
                        "job_id": job_id,
                        "job_title": normalized_title,
                        "job_type": job_type,
                        "job_category": category,
                        "salary": salary,
                    },
                )
                row = await conn.fetchrow(f"{_JOB_SELECT} where j.id = $1::uuid", job_id)
        return self._job_row_to_dict(row)

    async def get_job(self, job_id: str) -> dict[str, Any]:
        self._require_uuid(job_id, "job")
        pool = await self._get_pool()
        row = await pool.fetchrow(f"{_JOB_SELECT} where j.id = $1::uuid", job_id)
        if not row:
            raise RepositoryNotFoundError("job not found")
        return self._job_row_to_dict(row)

    async def list_public_jobs(self, *, category: str | None, limit: int, offset: int) -> list[dict[str, Any]]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            f"""
            {_JOB_SELECT}
            where j.active = true
              and ms.status = 'approved'
              and ($1::text is null or j.category = $1::text)
            order by j.created_at desc
            limit $2
            offset $3
            """,
            self._coerce_text(category),
            limit,
            offset,
        )
        return [self._job_row_to_dict(row) for row in rows]

    async def list_employer_jobs(self, *, employer_id: str, limit: int, offset: int) -> list[dict[str, Any]]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            f"""
            {_JOB_SELECT}
            where j.employer_id = $1
            order by j.created_at desc
            limit $2
            offset $3
            """,
            employer_id,
            limit,
            offset,
        )
        return [self._job_row_to_dict(row) for row in rows]

    async def set_job_active(self, *, job_id: str, actor_id: str, active: bool) -> dict[str, Any]:
        self._require_uuid(job_id, "job")
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                existing = await conn.fetchrow(
                    f"{_JOB_SELECT} where j.id = $1::uuid for update of j",
                    job_id,
                )
                if not existing:
                    raise RepositoryNotFoundError("job not found")
                if existing["employer_id"] != actor_id:
                    raise RepositoryForbiddenError("only the job owner can change its status")
                if active and existing["verification_status"] == "rejected":
                    raise RepositoryInvalidStateError("rejected job postings cannot be re-activated")

                await conn.execute("update jobs set active = $2 where id = $1::uuid", job_id, bool(active))
                row = await conn.fetchrow(f"{_JOB_SELECT} where j.id = $1::uuid", job_id)
        return self._job_row_to_dict(row)

    async def submit_employer_verification(self, *, user_id: str, details: dict[str, Any]) -> dict[str, Any]:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                user = await conn.fetchrow(
                    "select role::text as role, company_name, first_name, last_name from users where id = $1 for update",
                    user_id,
                )
                if not user:
                    raise RepositoryNotFoundError("user not found")
                if user["role"] not in EMPLOYER_ROLES:
                    raise RepositoryForbiddenError("only employers can request verification")

                label = user["company_name"] or f"{user['first_name']} {user['last_name']}".strip()
                row = await self._insert_subject(
                    conn,
                    subject_type="employer",
                    subject_id=user_id,
                    owner_id=user_id,
                    label=label,
                    payload=details,
                )
                await self._record_activity(
                    conn,
                    user_id=user_id,
                    type="verification_request",
                    description="Submitted business verification documents",
                    metadata={"documents": len(details.get("documents") or [])},
                )
        return self._subject_row_to_dict(row)

    async def request_multi_role_upgrade(self, *, user_id: str, jobseeker_profile: dict[str, Any]) -> dict[str, Any]:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                user = await conn.fetchrow(
                    """
                    select role::text as role, active_role, first_name, last_name, company_name, profile
                    from users
                    where id = $1
                    for update
                    """,
                    user_id,
                )
                if not user:
                    raise RepositoryNotFoundError("user not found")
                if user["role"] != "employer":
                    raise RepositoryInvalidStateError(
                        f"multi-role upgrade requires an employer account, current role is {user['role']}"
                    )

                label = f"{user['first_name']} {user['last_name']}".strip() or user["company_name"] or user_id
                row = await self._insert_subject(
                    conn,
                    subject_type="multi_role",
                    subject_id=user_id,
                    owner_id=user_id,
                    label=label,
                    payload={
                        "previous_role": user["role"],
                        "active_role": user["active_role"],
                        "jobseeker_profile": jobseeker_profile,
                    },
                )
                profile = self._coerce_json_dict(user["profile"])
                profile.update(jobseeker_profile)
                await conn.execute(
                    """
                    update users
                    set role = 'multi-role'::user_role, profile = $2::jsonb
                    where id = $1
                    """,
                    user_id,
                    json.dumps(profile),
                )
                await self._record_activity(
                    conn,
                    user_id=user_id,
                    type="multi_role_request",
                    description="Requested an upgrade to a multi-role account",
                    metadata={"fields": sorted(jobseeker_profile)},
                )
        return self._subject_row_to_dict(row)

    # moderation

    async def get_subject(self, *, subject_type: str, subject_id: str) -> dict[str, Any]:
        validate_subject_type(subject_type)
        pool = await self._get_pool()
        row = await pool.fetchrow(
            f"""
            select {_SUBJECT_COLUMNS}
            from moderation_subjects
            where subject_type = $1::moderation_subject_type and subject_id = $2
            """,
            subject_type,
            subject_id,
        )
        if not row:
            raise RepositoryNotFoundError(f"{subject_type} subject not found")
        return self._subject_row_to_dict(row)

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
        pool = await self._get_pool()
        rows = await pool.fetch(
            f"""
            select {_SUBJECT_COLUMNS}
            from moderation_subjects
            where subject_type = $1::moderation_subject_type
              and ($2::text is null or status::text = $2::text)
            order by coalesce(decided_at, submitted_at) desc, id desc
            limit $3
            offset $4
            """,
            subject_type,
            status,
            limit,
            offset,
        )
        return [self._subject_row_to_dict(row) for row in rows]

    async def approve_subject(self, *, subject_type: str, subject_id: str, actor_id: str) -> dict[str, Any]:
        return await self._decide_subject(
            subject_type=subject_type,
            subject_id=subject_id,
            actor_id=actor_id,
            action=ModerationAction.APPROVE,
            reason=None,
        )

    async def reject_subject(
        self,
        *,
        subject_type: str,
        subject_id: str,
        actor_id: str,
        reason: str | None,
    ) -> dict[str, Any]:
        return await self._decide_subject(
            subject_type=subject_type,
            subject_id=subject_id,
            actor_id=actor_id,
            action=ModerationAction.REJECT,
            reason=reason,
        )

    async def _decide_subject(
        self,
        *,
        subject_type: str,
        subject_id: str,
        actor_id: str,
        action: ModerationAction,
        reason: str | None,
    ) -> dict[str, Any]:
        validate_subject_type(subject_type)
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                existing = await conn.fetchrow(
                    f"""
                    select {_SUBJECT_COLUMNS}
                    from moderation_subjects
                    where subject_type = $1::moderation_subject_type and subject_id = $2
                    for update
                    """,
                    subject_type,
                    subject_id,
                )
                if not existing:
                    raise RepositoryNotFoundError(f"{subject_type} subject not found")

                decision = decide(
                    current_status=existing["status"],
                    action=action,
                    actor_id=actor_id,
                    reason=reason,
                )
                check_invariants({**dict(existing), **decision.as_fields()})
                row = await conn.fetchrow(
                    f"""
                    update moderation_subjects
                    set
                      status = $3::moderation_status,
                      decided_at = $4,
                      decided_by = $5,
                      rejection_reason = $6
                    where subject_type = $1::moderation_subject_type and subject_id = $2
                    returning {_SUBJECT_COLUMNS}
                    """,
                    subject_type,
                    subject_id,
                    decision.status,
                    decision.decided_at,
                    decision.decided_by,
                    decision.rejection_reason,
                )

                if subject_type == "job" and decision.status == "rejected":
                    await conn.execute("update jobs set active = false where id = $1::uuid", subject_id)
                if subject_type == "multi_role":
                    role, active_role = role_after_decision(decision, self._coerce_json_dict(existing["payload"]))
                    await conn.execute(
                        "update users set role = $2::user_role, active_role = $3 where id = $1",
                        existing["owner_id"],
                        role,
                        active_role,
                    )

                await self._record_decision_activity(conn, subject=existing, status=decision.status, actor_id=actor_id)
        return self._subject_row_to_dict(row)

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
        self._require_uuid(job_id, "job")
        if not is_valid_rating(rating):
            raise RepositoryValidationError("rating must be an integer between 1 and 5")

        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                job = await self._lock_job(conn, job_id)
                if not job_is_public(dict(job)):
                    raise RepositoryNotFoundError("job not found")
                applied_to_job = await conn.fetchval(
                    "select exists(select 1 from applications where job_id = $1::uuid and jobseeker_id = $2)",
                    job_id,
                    jobseeker_id,
                )
                try:
                    review_id = await conn.fetchval(
                        """
                        insert into job_reviews (
                          job_id, jobseeker_id, employer_id, rating, review,
                          applied_to_job, worked_at_company, anonymous
                        )
                        values ($1::uuid, $2, $3, $4, $5, $6, $7, $8)
                        returning id::text
                        """,
                        job_id,
                        jobseeker_id,
                        job["employer_id"],
                        rating,
                        review or "",
                        bool(applied_to_job),
                        bool(worked_at_company),
                        bool(anonymous),
                    )
                except pg_exc.UniqueViolationError as exc:
                    raise RepositoryDuplicateError("you have already reviewed this job") from exc
                except pg_exc.ForeignKeyViolationError as exc:
                    raise RepositoryNotFoundError("reviewer not found") from exc

                await self._recompute_ratings(conn, job_id=job_id, employer_id=job["employer_id"])
                await self._record_activity(
                    conn,
                    user_id=jobseeker_id,
                    type="review",
                    description=f"You reviewed {job['title']}",
                    metadata={"job_id": job_id, "review_id": review_id, "rating": rating},
                )
                row = await conn.fetchrow(f"{_REVIEW_SELECT} where r.id = $1::uuid", review_id)
        return self._review_row_to_dict(row)

    async def get_review(self, review_id: str) -> dict[str, Any]:
        self._require_uuid(review_id, "review")
        pool = await self._get_pool()
        row = await pool.fetchrow(f"{_REVIEW_SELECT} where r.id = $1::uuid", review_id)
        if not row:
            raise RepositoryNotFoundError("review not found")
        return self._review_row_to_dict(row)

    async def update_review(self, *, review_id: str, actor_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        updates = {key: value for key, value in fields.items() if key in REVIEW_UPDATE_FIELDS and value is not None}
        if "rating" in updates and not is_valid_rating(updates["rating"]):
            raise RepositoryValidationError("rating must be an integer between 1 and 5")

        current = await self.get_review(review_id)
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                job = await self._lock_job(conn, current["job_id"])
                existing = await self._lock_review(conn, review_id)
                if existing["jobseeker_id"] != actor_id:
                    raise RepositoryForbiddenError("you are not authorized to update this review")

                await conn.execute(
                    """
                    update job_reviews
                    set
                      rating = coalesce($2, rating),
                      review = coalesce($3, review),
                      anonymous = coalesce($4, anonymous),
                      worked_at_company = coalesce($5, worked_at_company)
                    where id = $1::uuid
                    """,
                    review_id,
                    updates.get("rating"),
                    updates.get("review"),
                    updates.get("anonymous"),
                    updates.get("worked_at_company"),
                )
                if "rating" in updates and updates["rating"] != existing["rating"]:
                    await self._recompute_ratings(conn, job_id=current["job_id"], employer_id=job["employer_id"])
                row = await conn.fetchrow(f"{_REVIEW_SELECT} where r.id = $1::uuid", review_id)
        return self._review_row_to_dict(row)

    async def delete_review(self, *, review_id: str, actor_id: str, is_admin: bool = False) -> None:
        current = await self.get_review(review_id)
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                job = await self._lock_job(conn, current["job_id"])
                existing = await self._lock_review(conn, review_id)
                if existing["jobseeker_id"] != actor_id and not is_admin:
                    raise RepositoryForbiddenError("you are not authorized to delete this review")

                await conn.execute("delete from job_reviews where id = $1::uuid", review_id)
                await self._recompute_ratings(conn, job_id=current["job_id"], employer_id=job["employer_id"])

    async def set_review_status(self, *, review_id: str, status: str, actor_id: str) -> dict[str, Any]:
        if status not in REVIEW_STATUSES:
            raise RepositoryValidationError("status must be one of: active, flagged, removed")

        current = await self.get_review(review_id)
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                job = await self._lock_job(conn, current["job_id"])
                existing = await self._lock_review(conn, review_id)
                if existing["status"] != status:
                    await conn.execute(
                        "update job_reviews set status = $2::review_status where id = $1::uuid",
                        review_id,
                        status,
                    )
                    await self._recompute_ratings(conn, job_id=current["job_id"], employer_id=job["employer_id"])
                    await self._record_activity(
                        conn,
                        user_id=actor_id,
                        type="review_moderation",
                        description=f"Set review status to {status}",
                        metadata={"review_id": review_id, "from": existing["status"], "to": status},
                    )
                row = await conn.fetchrow(f"{_REVIEW_SELECT} where r.id = $1::uuid", review_id)
        return self._review_row_to_dict(row)

    async def mark_review_helpfulness(self, *, review_id: str, user_id: str, is_helpful: bool) -> dict[str, Any]:
        self._require_uuid(review_id, "review")
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                await self._lock_review(conn, review_id)
                previous = await conn.fetchval(
                    "select is_helpful from review_helpfulness where review_id = $1::uuid and user_id = $2",
                    review_id,
                    user_id,
                )
                if previous is None:
                    await conn.execute(
                        """
                        insert into review_helpfulness (review_id, user_id, is_helpful)
                        values ($1::uuid, $2, $3)
                        """,
                        review_id,
                        user_id,
                        is_helpful,
                    )
                    await conn.execute(
                        """
                        update job_reviews
                        set
                          helpful = helpful + case when $2::boolean then 1 else 0 end,
                          not_helpful = not_helpful + case when $2::boolean then 0 else 1 end
                        where id = $1::uuid
                        """,
                        review_id,
                        is_helpful,
                    )
                elif previous != is_helpful:
                    await conn.execute(
                        """
                        update review_helpfulness
                        set is_helpful = $3, updated_at = now()
                        where review_id = $1::uuid and user_id = $2
                        """,
                        review_id,
                        user_id,
                        is_helpful,
                    )
                    await conn.execute(
                        """
                        update job_reviews
                        set
                          helpful = greatest(helpful + case when $2::boolean then 1 else -1 end, 0),
                          not_helpful = greatest(not_helpful + case when $2::boolean then -1 else 1 end, 0)
                        where id = $1::uuid
                        """,
                        review_id,
                        is_helpful,
                    )
                row = await conn.fetchrow(f"{_REVIEW_SELECT} where r.id = $1::uuid", review_id)
        return self._review_row_to_dict(row)

    async def flag_review(self, *, review_id: str, user_id: str, reason: str | None) -> dict[str, Any]:
        normalized_reason = normalize_reason(reason)
        if not normalized_reason:
            raise RepositoryValidationError("flag reason is required")
        review = await self.get_review(review_id)

        pool = await self._get_pool()
        row = await pool.fetchrow(
            """
            insert into review_flags (review_id, user_id, reason)
            values ($1::uuid, $2, $3)
            returning id::text as id, review_id::text as review_id, user_id, reason, status, created_at
            """,
            review_id,
            user_id,
            normalized_reason,
        )
        flag = dict(row)
        flag["job_id"] = review["job_id"]
        return flag

    async def list_job_reviews(self, *, job_id: str, limit: int, offset: int) -> list[dict[str, Any]]:
        if not job_is_public(await self.get_job(job_id)):
            raise RepositoryNotFoundError("job not found")
        pool = await self._get_pool()
        rows = await pool.fetch(
            f"""
            {_REVIEW_SELECT}
            where r.job_id = $1::uuid and r.status = 'active'
            order by r.created_at desc, r.id desc
            limit $2
            offset $3
            """,
            job_id,
            limit,
            offset,
        )
        return [self._review_row_to_dict(row) for row in rows]

    async def list_user_reviews(self, *, jobseeker_id: str, limit: int, offset: int) -> list[dict[str, Any]]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            f"""
            {_REVIEW_SELECT}
            where r.jobseeker_id = $1
            order by r.created_at desc, r.id desc
            limit $2
            offset $3
            """,
            jobseeker_id,
            limit,
            offset,
        )
        return [self._review_row_to_dict(row) for row in rows]

    async def get_job_rating(self, job_id: str) -> dict[str, Any]:
        job = await self.get_job(job_id)
        return {
            "average_rating": job["average_rating"],
            "review_count": job["review_count"],
            "rating_distribution": job["rating_distribution"],
        }

    async def get_employer_rating(self, employer_id: str) -> dict[str, Any]:
        user = await self.get_user(employer_id)
        if not user or user["role"] not in EMPLOYER_ROLES:
            raise RepositoryNotFoundError("employer not found")
        return {
            "average_rating": user["average_rating"],
            "review_count": user["review_count"],
            "rating_distribution": user["rating_distribution"],
        }

    # applications

    async def apply_to_job(
        self,
        *,
        job_id: str,
        jobseeker_id: str,
        cover_letter: str = "",
        phone_number: str | None = None,
    ) -> dict[str, Any]:
        self._require_uuid(job_id, "job")
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                job = await conn.fetchrow(f"{_JOB_SELECT} where j.id = $1::uuid", job_id)
                if not job or not job_is_public(dict(job)):
                    raise RepositoryNotFoundError("job not found")
                if job["employer_id"] == jobseeker_id:
                    raise RepositoryForbiddenError("you cannot apply to your own job posting")
                applicant = await conn.fetchrow(
                    "select first_name, last_name from users where id = $1",
                    jobseeker_id,
                )
                if not applicant:
                    raise RepositoryNotFoundError("applicant not found")

                applicant_name = f"{applicant['first_name']} {applicant['last_name']}".strip() or jobseeker_id
                try:
                    application_id = await conn.fetchval(
                        """
                        insert into applications (
                          job_id, jobseeker_id, employer_id, applicant_name, cover_letter, phone_number
                        )
                        values ($1::uuid, $2, $3, $4, $5, $6)
                        returning id::text
                        """,
                        job_id,
                        jobseeker_id,
                        job["employer_id"],
                        applicant_name,
                        cover_letter or "",
                        self._coerce_text(phone_number),
                    )
                except pg_exc.UniqueViolationError as exc:
                    raise RepositoryDuplicateError("you have already applied to this job") from exc

                await self._record_activity(
                    conn,
                    user_id=jobseeker_id,
                    type="application",
                    description=f"You applied for {job['title']}",
                    metadata={"job_id": job_id, "application_id": application_id},
                )
                row = await conn.fetchrow(f"{_APPLICATION_SELECT} where a.id = $1::uuid", application_id)
        return self._application_row_to_dict(row)

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
        job = await self.get_job(job_id)
        if job["employer_id"] != employer_id:
            raise RepositoryForbiddenError("only the job owner can view its applications")

        pool = await self._get_pool()
        rows = await pool.fetch(
            f"""
            {_APPLICATION_SELECT}
            where a.job_id = $1::uuid
              and ($2::text is null or a.status::text = $2::text)
            order by a.created_at desc, a.id desc
            limit $3
            offset $4
            """,
            job_id,
            status,
            limit,
            offset,
        )
        return [self._application_row_to_dict(row) for row in rows]

    async def list_user_applications(self, *, jobseeker_id: str, limit: int, offset: int) -> list[dict[str, Any]]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            f"""
            {_APPLICATION_SELECT}
            where a.jobseeker_id = $1
            order by a.created_at desc, a.id desc
            limit $2
            offset $3
            """,
            jobseeker_id,
            limit,
            offset,
        )
        return [self._application_row_to_dict(row) for row in rows]

    async def set_application_status(self, *, application_id: str, actor_id: str, status: str) -> dict[str, Any]:
        """Returns the application with ``previous_status`` so callers can tell a no-op apart."""
        self._require_uuid(application_id, "application")
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                existing = await conn.fetchrow(
                    """
                    select employer_id, status::text as status, jobseeker_id
                    from applications
                    where id = $1::uuid
                    for update
                    """,
                    application_id,
                )
                if not existing:
                    raise RepositoryNotFoundError("application not found")
                if existing["employer_id"] != actor_id:
                    raise RepositoryForbiddenError("only the job owner can update this application")
                check_application_transition(existing["status"], status)

                if existing["status"] != status:
                    await conn.execute(
                        "update applications set status = $2::application_status where id = $1::uuid",
                        application_id,
                        status,
                    )
                    await self._record_activity(
                        conn,
                        user_id=actor_id,
                        type="application_status",
                        description=f"Moved an application to {status}",
                        metadata={
                            "application_id": application_id,
                            "jobseeker_id": existing["jobseeker_id"],
                            "from": existing["status"],
                            "to": status,
                        },
                    )
                row = await conn.fetchrow(f"{_APPLICATION_SELECT} where a.id = $1::uuid", application_id)
        out = self._application_row_to_dict(row)
        out["previous_status"] = existing["status"]
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
        pool = await self._get_pool()
        row = await pool.fetchrow(
            f"""
            insert into notifications (
              audience, recipient_id, title, message, type, link, related_job_id, application_id
            )
            values ($1::notification_audience, $2, $3, $4, $5, $6, $7, $8)
            returning {_NOTIFICATION_COLUMNS}
            """,
            audience,
            recipient_id,
            title,
            message,
            type,
            link,
            related_job_id,
            application_id,
        )
        return dict(row)

    async def list_notifications(
        self,
        *,
        recipient_ids: list[str],
        audience: str | None,
        unread_only: bool,
        limit: int,
        offset: int,
    ) -> list[dict[str, Any]]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            f"""
            select {_NOTIFICATION_COLUMNS}
            from notifications
            where recipient_id = any($1::text[])
              and ($2::text is null or audience::text = $2::text)
              and ($3::boolean = false or is_read = false)
            order by created_at desc, id desc
            limit $4
            offset $5
            """,
            recipient_ids,
            audience,
            unread_only,
            limit,
            offset,
        )
        return [dict(row) for row in rows]

    async def mark_notification_read(self, *, notification_id: str, recipient_ids: list[str]) -> dict[str, Any]:
        self._require_uuid(notification_id, "notification")
        pool = await self._get_pool()
        row = await pool.fetchrow(
            f"""
            update notifications
            set is_read = true
            where id = $1::uuid and recipient_id = any($2::text[])
            returning {_NOTIFICATION_COLUMNS}
            """,
            notification_id,
            recipient_ids,
        )
        if not row:
            raise RepositoryNotFoundError("notification not found")
        return dict(row)

    async def mark_all_notifications_read(self, *, recipient_ids: list[str]) -> int:
        pool = await self._get_pool()
        return await pool.fetchval(
            """
            with updated as (
              update notifications
              set is_read = true
              where recipient_id = any($1::text[]) and is_read = false
              returning 1
            )
            select count(*) from updated
            """,
            recipient_ids,
        )

    async def delete_notification(self, *, notification_id: str, recipient_ids: list[str]) -> None:
        self._require_uuid(notification_id, "notification")
        pool = await self._get_pool()
        deleted = await pool.fetchval(
            """
            delete from notifications
            where id = $1::uuid and recipient_id = any($2::text[])
            returning id
            """,
            notification_id,
            recipient_ids,
        )
        if not deleted:
            raise RepositoryNotFoundError("notification not found")

    async def clear_notifications(self, *, audience: str | None) -> int:
        if audience is not None and audience not in NOTIFICATION_AUDIENCES:
            raise RepositoryValidationError("audience must be one of: admin, employer, jobseeker")
        pool = await self._get_pool()
        return await pool.fetchval(
            """
            with deleted as (
              delete from notifications
              where $1::text is null or audience::text = $1::text
              returning 1
            )
            select count(*) from deleted
            """,
            audience,
        )

    # activity

    async def list_activity(
        self,
        *,
        user_id: str | None,
        type: str | None,
        limit: int,
        offset: int,
    ) -> list[dict[str, Any]]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            """
            select id, user_id, type, description, metadata, created_at
            from activity_log
            where ($1::text is null or user_id = $1::text)
              and ($2::text is null or type = $2::text)
            order by created_at desc, id desc
            limit $3
            offset $4
            """,
            user_id,
            type,
            limit,
            offset,
        )
        return [self._activity_row_to_dict(row) for row in rows]

    async def clear_activity(self, *, user_id: str | None = None) -> int:
        pool = await self._get_pool()
        return await pool.fetchval(
            """
            with deleted as (
              delete from activity_log
              where $1::text is null or user_id = $1::text
              returning 1
            )
            select count(*) from deleted
            """,
            user_id,
        )

    # internals

    async def _insert_subject(
        self,
        conn: asyncpg.Connection,
        *,
        subject_type: str,
        subject_id: str,
        owner_id: str,
        label: str,
        payload: dict[str, Any],
    ) -> asyncpg.Record:
        row = await conn.fetchrow(
            f"""
            insert into moderation_subjects (subject_type, subject_id, owner_id, label, payload)
            values ($1::moderation_subject_type, $2, $3, $4, $5::jsonb)
            on conflict (subject_type, subject_id) do nothing
            returning {_SUBJECT_COLUMNS}
            """,
            subject_type,
            subject_id,
            owner_id,
            label,
            json.dumps(payload, default=str),
        )
        if row:
            return row

        current_status = await conn.fetchval(
            """
            select status::text
            from moderation_subjects
            where subject_type = $1::moderation_subject_type and subject_id = $2
            """,
            subject_type,
            subject_id,
        )
        raise RepositoryInvalidStateError(f"{subject_type} request already submitted with status {current_status}")

    async def _record_decision_activity(
        self,
        conn: asyncpg.Connection,
        *,
        subject: asyncpg.Record,
        status: str,
        actor_id: str,
    ) -> None:
        subject_type = subject["subject_type"]
        label = subject["label"]
        verb = "approved" if status == "approved" else "rejected"
        owner_descriptions = {
            "job": f"Your job posting for {label} has been {verb}.",
            "employer": f"Your employer verification has been {verb}.",
            "multi_role": f"Your multi-role account request has been {verb}.",
        }
        await self._record_activity(
            conn,
            user_id=subject["owner_id"],
            type="approval" if status == "approved" else "rejection",
            description=owner_descriptions[subject_type],
            metadata={"subject_type": subject_type, "subject_id": subject["subject_id"]},
        )
        await self._record_activity(
            conn,
            user_id=actor_id,
            type="moderation_decision",
            description=f"{verb.capitalize()} {subject_type} {label}",
            metadata={
                "subject_type": subject_type,
                "subject_id": subject["subject_id"],
                "owner_id": subject["owner_id"],
                "status": status,
            },
        )

    async def _record_activity(
        self,
        conn: asyncpg.Connection,
        *,
        user_id: str,
        type: str,
        description: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        await conn.execute(
            """
            insert into activity_log (user_id, type, description, metadata)
            values ($1, $2, $3, $4::jsonb)
            """,
            user_id,
            type,
            description,
            json.dumps(metadata or {}, default=str),
        )

    async def _lock_job(self, conn: asyncpg.Connection, job_id: str) -> asyncpg.Record:
        job = await conn.fetchrow(
            """
            select
              j.id::text as id,
              j.employer_id,
              j.title,
              j.active,
              coalesce(ms.status::text, 'pending') as verification_status
            from jobs j
            left join moderation_subjects ms
              on ms.subject_type = 'job' and ms.subject_id = j.id::text
            where j.id = $1::uuid
            for update of j
            """,
            job_id,
        )
        if not job:
            raise RepositoryNotFoundError("job not found")
        await conn.execute("select 1 from users where id = $1 for update", job["employer_id"])
        return job

    async def _lock_review(self, conn: asyncpg.Connection, review_id: str) -> asyncpg.Record:
        review = await conn.fetchrow(
            """
            select id::text as id, jobseeker_id, rating, status::text as status
            from job_reviews
            where id = $1::uuid
            for update
            """,
            review_id,
        )
        if not review:
            raise RepositoryNotFoundError("review not found")
        return review

    async def _recompute_ratings(self, conn: asyncpg.Connection, *, job_id: str, employer_id: str) -> None:
        job_ratings = await conn.fetch(
            "select rating from job_reviews where job_id = $1::uuid and status = 'active'",
            job_id,
        )
        job_summary = summarize_ratings(int(row["rating"]) for row in job_ratings)
        await conn.execute(
            """
            update jobs
            set average_rating = $2, review_count = $3, rating_distribution = $4::jsonb
            where id = $1::uuid
            """,
            job_id,
            job_summary.average_rating,
            job_summary.review_count,
            json.dumps({str(key): value for key, value in job_summary.rating_distribution.items()}),
        )

        employer_ratings = await conn.fetch(
            "select rating from job_reviews where employer_id = $1 and status = 'active'",
            employer_id,
        )
        employer_summary = summarize_ratings(int(row["rating"]) for row in employer_ratings)
        await conn.execute(
            """
            update users
            set average_rating = $2, review_count = $3, rating_distribution = $4::jsonb
            where id = $1
            """,
            employer_id,
            employer_summary.average_rating,
            employer_summary.review_count,
            json.dumps({str(key): value for key, value in employer_summary.rating_distribution.items()}),
        )

    async def _get_pool(self) -> asyncpg.Pool:
        if not self.database_url:
            raise RepositoryUnavailableError("RJ_DATABASE_URL is required")

        if self._pool is not None:
            return self._pool

        try:
            self._pool = await asyncpg.create_pool(
                dsn=self.database_url,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
                command_timeout=self.command_timeout_seconds,
            )
            return self._pool
        except Exception as exc:  # pragma: no cover - depends on environment
            raise RepositoryUnavailableError("database unavailable") from exc

    @staticmethod
    def _require_uuid(value: str, entity: str) -> None:
        try:
            uuid.UUID(str(value))
        except ValueError as exc:
            raise RepositoryNotFoundError(f"{entity} not found") from exc

    def _user_row_to_dict(self, row: asyncpg.Record) -> dict[str, Any]:
        return {
            "id": row["id"],
            "email": row["email"],
            "first_name": row["first_name"],
            "last_name": row["last_name"],
            "company_name": row["company_name"],
            "role": row["role"],
            "active_role": row["active_role"],
            "profile": self._coerce_json_dict(row["profile"]),
            "employer_verification_status": row["employer_verification_status"],
            "multi_role_status": row["multi_role_status"],
            "average_rating": float(row["average_rating"] or 0),
            "review_count": int(row["review_count"] or 0),
            "rating_distribution": coerce_distribution(self._coerce_json_dict(row["rating_distribution"])),
            "created_at": row["created_at"],
            "updated_at": row["updated_at"],
        }

    def _job_row_to_dict(self, row: asyncpg.Record) -> dict[str, Any]:
        return {
            "id": row["id"],
            "employer_id": row["employer_id"],
            "title": row["title"],
            "description": row["description"],
            "category": row["category"],
            "job_type": row["job_type"],
            "location": row["location"],
            "salary": row["salary"],
            "company_name": row["company_name"],
            "active": bool(row["active"]),
            "verification_status": row["verification_status"],
            "verified_at": row["verified_at"],
            "rejection_reason": row["rejection_reason"],
            "average_rating": float(row["average_rating"] or 0),
            "review_count": int(row["review_count"] or 0),
            "rating_distribution": coerce_distribution(self._coerce_json_dict(row["rating_distribution"])),
            "created_at": row["created_at"],
            "updated_at": row["updated_at"],
        }

    def _subject_row_to_dict(self, row: asyncpg.Record) -> dict[str, Any]:
        return {
            "id": row["id"],
            "subject_type": row["subject_type"],
            "subject_id": row["subject_id"],
            "owner_id": row["owner_id"],
            "label": row["label"],
            "status": row["status"],
            "payload": self._coerce_json_dict(row["payload"]),
            "submitted_at": row["submitted_at"],
            "decided_at": row["decided_at"],
            "decided_by": row["decided_by"],
            "rejection_reason": row["rejection_reason"],
            "updated_at": row["updated_at"],
        }

    @staticmethod
    def _review_row_to_dict(row: asyncpg.Record) -> dict[str, Any]:
        return {
            "id": row["id"],
            "job_id": row["job_id"],
            "job_title": row["job_title"],
            "jobseeker_id": row["jobseeker_id"],
            "employer_id": row["employer_id"],
            "rating": int(row["rating"]),
            "review": row["review"],
            "applied_to_job": bool(row["applied_to_job"]),
            "worked_at_company": bool(row["worked_at_company"]),
            "anonymous": bool(row["anonymous"]),
            "status": row["status"],
            "helpful": int(row["helpful"]),
            "not_helpful": int(row["not_helpful"]),
            "created_at": row["created_at"],
            "updated_at": row["updated_at"],
        }

    @staticmethod
    def _application_row_to_dict(row: asyncpg.Record) -> dict[str, Any]:
        return {
            "id": row["id"],
            "job_id": row["job_id"],
            "job_title": row["job_title"],
            "employer_id": row["employer_id"],
            "jobseeker_id": row["jobseeker_id"],
            "applicant_name": row["applicant_name"],
            "cover_letter": row["cover_letter"],
            "phone_number": row["phone_number"],
            "status": row["status"],
            "created_at": row["created_at"],
            "updated_at": row["updated_at"],
        }

    def _activity_row_to_dict(self, row: asyncpg.Record) -> dict[str, Any]:
        return {
            "id": row["id"],
            "user_id": row["user_id"],
            "type": row["type"],
            "description": row["description"],
            "metadata": self._coerce_json_dict(row["metadata"]),
            "created_at": row["created_at"],
        }

    @staticmethod
    def _coerce_text(value: Any) -> str | None:
        if value is None:
            return None
        if isinstance(value, str):
            stripped = value.strip()
            return stripped or None
        return str(value)

    @staticmethod
    def _coerce_json_dict(value: Any) -> dict[str, Any]:
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except json.JSONDecodeError:
                return {}
        if isinstance(value, dict):
            return value
        return {}


@lru_cache
def get_repository():
    settings = get_settings()
    if settings.storage_backend == "memory":
        from ranaojobs.services.store import InMemoryRepository

        return InMemoryRepository()
    return PostgresRepository(
        database_url=settings.database_url,
        min_pool_size=settings.database_pool_min_size,
        max_pool_size=settings.database_pool_max_size,
        command_timeout_seconds=settings.database_command_timeout_seconds,
    )

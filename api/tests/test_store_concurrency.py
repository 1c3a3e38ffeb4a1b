from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from ranaojobs.services.errors import RepositoryConflictError, RepositoryDuplicateError, RepositoryInvalidStateError
from ranaojobs.services.moderation import ModerationDecision
from ranaojobs.services.store import InMemoryRepository


async def _seed_job(repo: InMemoryRepository, reviewers: int, approved: bool = True) -> str:
    repo.add_user(user_id="employer-1", role="employer", company_name="Ranao Coffee")
    for index in range(reviewers):
        repo.add_user(user_id=f"seeker-{index}", role="jobseeker")
    job = await repo.create_job(employer_id="employer-1", title="Barista", description="")
    if approved:
        await repo.approve_subject(subject_type="job", subject_id=job["id"], actor_id="admin-1")
    return job["id"]


def test_concurrent_reviews_produce_consistent_aggregate() -> None:
    async def scenario() -> dict:
        repo = InMemoryRepository()
        job_id = await _seed_job(repo, reviewers=20)
        await asyncio.gather(
            *(
                repo.create_review(job_id=job_id, jobseeker_id=f"seeker-{index}", rating=index % 5 + 1, review="")
                for index in range(20)
            )
        )
        return await repo.get_job_rating(job_id)

    rating = asyncio.run(scenario())

    assert rating["review_count"] == 20
    assert rating["average_rating"] == 3.0
    assert rating["rating_distribution"] == {1: 4, 2: 4, 3: 4, 4: 4, 5: 4}


def test_concurrent_duplicate_reviews_keep_one() -> None:
    async def scenario() -> list:
        repo = InMemoryRepository()
        job_id = await _seed_job(repo, reviewers=1)
        return await asyncio.gather(
            *(
                repo.create_review(job_id=job_id, jobseeker_id="seeker-0", rating=5, review="")
                for _ in range(3)
            ),
            return_exceptions=True,
        )

    results = asyncio.run(scenario())

    assert sum(isinstance(result, dict) for result in results) == 1
    assert sum(isinstance(result, RepositoryDuplicateError) for result in results) == 2


def test_concurrent_decisions_allow_exactly_one() -> None:
    async def scenario() -> tuple[list, dict]:
        repo = InMemoryRepository()
        job_id = await _seed_job(repo, reviewers=0, approved=False)
        results = await asyncio.gather(
            repo.approve_subject(subject_type="job", subject_id=job_id, actor_id="admin-1"),
            repo.reject_subject(subject_type="job", subject_id=job_id, actor_id="admin-2", reason="dup"),
            repo.approve_subject(subject_type="job", subject_id=job_id, actor_id="admin-3"),
            return_exceptions=True,
        )
        return results, await repo.get_subject(subject_type="job", subject_id=job_id)

    results, subject = asyncio.run(scenario())

    winners = [result for result in results if isinstance(result, dict)]
    assert len(winners) == 1
    assert all(isinstance(result, RepositoryConflictError) for result in results if not isinstance(result, dict))
    assert subject["status"] == winners[0]["status"]
    assert subject["decided_by"] == winners[0]["decided_by"]


@pytest.mark.parametrize("status", ["flagged", "removed"])
def test_status_change_recomputes_employer_aggregate(status: str) -> None:
    async def scenario() -> dict:
        repo = InMemoryRepository()
        job_id = await _seed_job(repo, reviewers=2)
        first = await repo.create_review(job_id=job_id, jobseeker_id="seeker-0", rating=5, review="")
        await repo.create_review(job_id=job_id, jobseeker_id="seeker-1", rating=3, review="")
        await repo.set_review_status(review_id=first["id"], status=status, actor_id="admin-1")
        return await repo.get_employer_rating("employer-1")

    rating = asyncio.run(scenario())

    assert (rating["average_rating"], rating["review_count"]) == (3.0, 1)


def test_decision_breaking_invariants_leaves_subject_untouched(monkeypatch: pytest.MonkeyPatch) -> None:
    import ranaojobs.services.store as store

    def _reason_less_rejection(**kwargs: object) -> ModerationDecision:
        return ModerationDecision(status="rejected", decided_at=datetime.now(timezone.utc), decided_by="admin-1")

    monkeypatch.setattr(store, "decide", _reason_less_rejection)

    async def scenario() -> dict:
        repo = InMemoryRepository()
        job_id = await _seed_job(repo, reviewers=0, approved=False)
        with pytest.raises(RepositoryInvalidStateError):
            await repo.reject_subject(subject_type="job", subject_id=job_id, actor_id="admin-1", reason="dup")
        return await repo.get_subject(subject_type="job", subject_id=job_id)

    subject = asyncio.run(scenario())

    assert (subject["status"], subject["decided_by"], subject["rejection_reason"]) == ("pending", None, None)


def test_applying_before_review_marks_review_as_applied() -> None:
    async def scenario() -> tuple[dict, dict]:
        repo = InMemoryRepository()
        job_id = await _seed_job(repo, reviewers=2)
        await repo.apply_to_job(job_id=job_id, jobseeker_id="seeker-0")
        applied = await repo.create_review(job_id=job_id, jobseeker_id="seeker-0", rating=4, review="")
        walk_in = await repo.create_review(job_id=job_id, jobseeker_id="seeker-1", rating=4, review="")
        return applied, walk_in

    applied, walk_in = asyncio.run(scenario())

    assert applied["applied_to_job"] is True
    assert walk_in["applied_to_job"] is False

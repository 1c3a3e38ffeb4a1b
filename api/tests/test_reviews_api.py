from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from conftest import ADMIN_ID, EMPLOYER_ID, JOBSEEKER_ID, auth
from ranaojobs.services.store import InMemoryRepository

OTHER_JOBSEEKER_ID = "jobseeker-2"


@pytest.fixture
def job_id(api_client: TestClient, repo: InMemoryRepository) -> str:
    repo.add_user(user_id=OTHER_JOBSEEKER_ID, role="jobseeker", active_role="jobseeker", first_name="Mo")
    response = api_client.post("/jobs", json={"title": "Barista"}, headers=auth(EMPLOYER_ID))
    job = response.json()
    api_client.post(f"/moderation/job/{job['id']}/approve", headers=auth(ADMIN_ID))
    return job["id"]


def _review(client: TestClient, job_id: str, user_id: str, rating: int, **extra: object):
    return client.post(
        f"/jobs/{job_id}/reviews",
        json={"rating": rating, "review": f"{rating} stars", **extra},
        headers=auth(user_id),
    )


def test_two_reviews_update_job_and_employer_aggregates(api_client: TestClient, job_id: str) -> None:
    assert _review(api_client, job_id, JOBSEEKER_ID, 4).status_code == 201
    assert _review(api_client, job_id, OTHER_JOBSEEKER_ID, 2).status_code == 201

    rating = api_client.get(f"/jobs/{job_id}/rating").json()
    assert rating == {
        "average_rating": 3.0,
        "review_count": 2,
        "rating_distribution": {"1": 0, "2": 1, "3": 0, "4": 1, "5": 0},
    }
    assert api_client.get(f"/employers/{EMPLOYER_ID}/rating").json() == rating


def test_review_notifies_employer(api_client: TestClient, repo: InMemoryRepository, job_id: str) -> None:
    _review(api_client, job_id, JOBSEEKER_ID, 5)

    [notification] = [row for row in repo.notifications.values() if row["type"] == "review"]
    assert notification["recipient_id"] == EMPLOYER_ID
    assert notification["related_job_id"] == job_id


def test_duplicate_review_conflicts(api_client: TestClient, job_id: str) -> None:
    assert _review(api_client, job_id, JOBSEEKER_ID, 4).status_code == 201
    duplicate = _review(api_client, job_id, JOBSEEKER_ID, 1)

    assert duplicate.status_code == 409
    assert api_client.get(f"/jobs/{job_id}/rating").json()["review_count"] == 1


@pytest.mark.parametrize("rating", [0, 6])
def test_out_of_range_rating_is_rejected(api_client: TestClient, job_id: str, rating: int) -> None:
    assert _review(api_client, job_id, JOBSEEKER_ID, rating).status_code == 422


def test_review_for_unknown_job(api_client: TestClient) -> None:
    assert _review(api_client, "no-such-job", JOBSEEKER_ID, 3).status_code == 404


def test_employers_cannot_review(api_client: TestClient, job_id: str) -> None:
    assert _review(api_client, job_id, EMPLOYER_ID, 5).status_code == 403


def test_rating_change_and_delete_recompute(api_client: TestClient, job_id: str) -> None:
    review = _review(api_client, job_id, JOBSEEKER_ID, 4).json()

    patched = api_client.patch(f"/reviews/{review['id']}", json={"rating": 2}, headers=auth(JOBSEEKER_ID))
    assert patched.status_code == 200
    assert api_client.get(f"/jobs/{job_id}/rating").json()["average_rating"] == 2.0

    deleted = api_client.delete(f"/reviews/{review['id']}", headers=auth(JOBSEEKER_ID))
    assert deleted.status_code == 204
    assert api_client.get(f"/jobs/{job_id}/rating").json() == {
        "average_rating": 0.0,
        "review_count": 0,
        "rating_distribution": {"1": 0, "2": 0, "3": 0, "4": 0, "5": 0},
    }


def test_only_author_may_edit_or_delete(api_client: TestClient, job_id: str) -> None:
    review = _review(api_client, job_id, JOBSEEKER_ID, 4).json()

    edit = api_client.patch(f"/reviews/{review['id']}", json={"review": "hijacked"}, headers=auth(OTHER_JOBSEEKER_ID))
    delete = api_client.delete(f"/reviews/{review['id']}", headers=auth(OTHER_JOBSEEKER_ID))

    assert edit.status_code == 403
    assert delete.status_code == 403
    assert api_client.delete(f"/reviews/{review['id']}", headers=auth(ADMIN_ID)).status_code == 204


def test_removed_reviews_leave_the_aggregate(api_client: TestClient, job_id: str) -> None:
    first = _review(api_client, job_id, JOBSEEKER_ID, 5).json()
    _review(api_client, job_id, OTHER_JOBSEEKER_ID, 1)

    removed = api_client.patch(f"/admin/reviews/{first['id']}", json={"status": "removed"}, headers=auth(ADMIN_ID))

    assert removed.status_code == 200
    assert removed.json()["status"] == "removed"
    rating = api_client.get(f"/jobs/{job_id}/rating").json()
    assert (rating["average_rating"], rating["review_count"]) == (1.0, 1)
    assert [row["rating"] for row in api_client.get(f"/jobs/{job_id}/reviews").json()] == [1]


def test_anonymous_reviews_hide_author_in_public_listing(api_client: TestClient, job_id: str) -> None:
    _review(api_client, job_id, JOBSEEKER_ID, 4, anonymous=True)

    [public] = api_client.get(f"/jobs/{job_id}/reviews").json()
    [own] = api_client.get("/users/me/reviews", headers=auth(JOBSEEKER_ID)).json()

    assert public["jobseeker_id"] is None
    assert own["jobseeker_id"] == JOBSEEKER_ID
    assert own["job_title"] == "Barista"


def test_helpfulness_votes_once_per_user(api_client: TestClient, job_id: str) -> None:
    review = _review(api_client, job_id, JOBSEEKER_ID, 4).json()
    url = f"/reviews/{review['id']}/helpfulness"

    api_client.post(url, json={"is_helpful": True}, headers=auth(OTHER_JOBSEEKER_ID))
    repeat = api_client.post(url, json={"is_helpful": True}, headers=auth(OTHER_JOBSEEKER_ID)).json()
    assert (repeat["helpful"], repeat["not_helpful"]) == (1, 0)

    changed = api_client.post(url, json={"is_helpful": False}, headers=auth(OTHER_JOBSEEKER_ID)).json()
    assert (changed["helpful"], changed["not_helpful"]) == (0, 1)


def test_flagging_notifies_admins(api_client: TestClient, repo: InMemoryRepository, job_id: str) -> None:
    review = _review(api_client, job_id, JOBSEEKER_ID, 1).json()

    blank = api_client.post(f"/reviews/{review['id']}/flags", json={"reason": " "}, headers=auth(EMPLOYER_ID))
    flagged = api_client.post(f"/reviews/{review['id']}/flags", json={"reason": "Spam"}, headers=auth(EMPLOYER_ID))

    assert blank.status_code == 422
    assert flagged.status_code == 201
    assert flagged.json()["job_id"] == job_id
    admin_types = [row["type"] for row in repo.notifications.values() if row["recipient_id"] == "all"]
    assert admin_types.count("system") == 1


def test_unapproved_jobs_cannot_be_reviewed(api_client: TestClient, repo: InMemoryRepository) -> None:
    pending = api_client.post("/jobs", json={"title": "Cook"}, headers=auth(EMPLOYER_ID)).json()

    assert _review(api_client, pending["id"], JOBSEEKER_ID, 1).status_code == 404
    assert api_client.get(f"/jobs/{pending['id']}/reviews").status_code == 404

    api_client.post(f"/moderation/job/{pending['id']}/reject", json={"reason": "Spam"}, headers=auth(ADMIN_ID))

    assert _review(api_client, pending["id"], JOBSEEKER_ID, 1).status_code == 404
    assert api_client.get(f"/jobs/{pending['id']}/rating").json()["review_count"] == 0
    assert api_client.get(f"/employers/{EMPLOYER_ID}/rating").json()["review_count"] == 0
    assert not [row for row in repo.notifications.values() if row["type"] == "review"]


def test_deactivated_jobs_hide_their_reviews(api_client: TestClient, job_id: str) -> None:
    _review(api_client, job_id, JOBSEEKER_ID, 4)

    api_client.patch(f"/jobs/{job_id}/active", json={"active": False}, headers=auth(EMPLOYER_ID))

    assert api_client.get(f"/jobs/{job_id}/reviews").status_code == 404
    assert _review(api_client, job_id, OTHER_JOBSEEKER_ID, 2).status_code == 404


def test_applied_flag_comes_from_applications(api_client: TestClient, job_id: str) -> None:
    api_client.post(f"/jobs/{job_id}/applications", json={"cover_letter": "Hi"}, headers=auth(JOBSEEKER_ID))

    applied = _review(api_client, job_id, JOBSEEKER_ID, 5).json()
    claimed = _review(api_client, job_id, OTHER_JOBSEEKER_ID, 3, applied_to_job=True).json()

    assert applied["applied_to_job"] is True
    assert claimed["applied_to_job"] is False

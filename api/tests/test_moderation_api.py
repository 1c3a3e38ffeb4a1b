from __future__ import annotations

from fastapi.testclient import TestClient

from conftest import ADMIN_ID, EMPLOYER_ID, JOBSEEKER_ID, auth
from ranaojobs.services.store import InMemoryRepository


def _post_job(client: TestClient, title: str = "Barista") -> dict:
    response = client.post(
        "/jobs",
        json={"title": title, "description": "Morning shift", "category": "food", "salary": "₱18,000"},
        headers=auth(EMPLOYER_ID),
    )
    assert response.status_code == 201
    return response.json()


def _notifications_for(repo: InMemoryRepository, recipient_id: str) -> list[dict]:
    return [row for row in repo.notifications.values() if row["recipient_id"] == recipient_id]


def test_new_job_starts_pending_and_notifies_admins(api_client: TestClient, repo: InMemoryRepository) -> None:
    job = _post_job(api_client)

    assert job["verification_status"] == "pending"
    assert job["verified_at"] is None
    [notification] = _notifications_for(repo, "all")
    assert notification["audience"] == "admin"
    assert notification["type"] == "verification"
    assert notification["related_job_id"] == job["id"]

    listing = api_client.get("/moderation/job", params={"status": "pending"}, headers=auth(ADMIN_ID))
    assert listing.status_code == 200
    assert [row["subject_id"] for row in listing.json()] == [job["id"]]


def test_reject_job_with_reason_notifies_owner(api_client: TestClient, repo: InMemoryRepository) -> None:
    job = _post_job(api_client)

    response = api_client.post(
        f"/moderation/job/{job['id']}/reject",
        json={"reason": "Missing salary info"},
        headers=auth(ADMIN_ID),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "rejected"
    assert body["rejection_reason"] == "Missing salary info"
    assert body["decided_by"] == ADMIN_ID
    assert body["decided_at"] is not None

    [notification] = _notifications_for(repo, EMPLOYER_ID)
    assert notification["type"] == "rejection"
    assert "Missing salary info" in notification["message"]

    mine = api_client.get("/jobs/mine", headers=auth(EMPLOYER_ID)).json()
    assert mine[0]["verification_status"] == "rejected"
    assert mine[0]["active"] is False
    assert mine[0]["rejection_reason"] == "Missing salary info"


def test_blank_reason_rejection_leaves_subject_pending(api_client: TestClient, repo: InMemoryRepository) -> None:
    job = _post_job(api_client)

    response = api_client.post(f"/moderation/job/{job['id']}/reject", json={"reason": "   "}, headers=auth(ADMIN_ID))

    assert response.status_code == 422
    subject = api_client.get(f"/moderation/job/{job['id']}", headers=auth(ADMIN_ID)).json()
    assert subject["status"] == "pending"
    assert subject["decided_at"] is None
    assert _notifications_for(repo, EMPLOYER_ID) == []


def test_second_approval_conflicts_without_second_notification(
    api_client: TestClient,
    repo: InMemoryRepository,
) -> None:
    job = _post_job(api_client)

    first = api_client.post(f"/moderation/job/{job['id']}/approve", headers=auth(ADMIN_ID))
    second = api_client.post(f"/moderation/job/{job['id']}/approve", headers=auth(ADMIN_ID))
    late_reject = api_client.post(
        f"/moderation/job/{job['id']}/reject",
        json={"reason": "changed my mind"},
        headers=auth(ADMIN_ID),
    )

    assert first.status_code == 200
    assert second.status_code == 409
    assert late_reject.status_code == 409
    assert len(_notifications_for(repo, EMPLOYER_ID)) == 1

    public = api_client.get("/jobs").json()
    assert [row["id"] for row in public] == [job["id"]]
    assert api_client.get(f"/jobs/{job['id']}").status_code == 200


def test_multi_role_approval_preserves_active_role(api_client: TestClient, repo: InMemoryRepository) -> None:
    response = api_client.post(
        "/users/me/multi-role-request",
        json={"jobseeker_profile": {"skills": ["latte art"]}},
        headers=auth(EMPLOYER_ID),
    )
    assert response.status_code == 201
    assert response.json()["status"] == "pending"

    pending_user = api_client.get("/users/me", headers=auth(EMPLOYER_ID)).json()
    assert pending_user["role"] == "multi-role"
    assert pending_user["multi_role_status"] == "pending"
    assert pending_user["profile"]["skills"] == ["latte art"]

    approved = api_client.post(f"/moderation/multi_role/{EMPLOYER_ID}/approve", headers=auth(ADMIN_ID))
    assert approved.status_code == 200

    user = api_client.get("/users/me", headers=auth(EMPLOYER_ID)).json()
    assert user["role"] == "multi"
    assert user["active_role"] == "employer"
    assert user["multi_role_status"] == "approved"

    switched = api_client.patch("/users/me/active-role", json={"active_role": "jobseeker"}, headers=auth(EMPLOYER_ID))
    assert switched.status_code == 200
    assert switched.json()["active_role"] == "jobseeker"


def test_multi_role_rejection_restores_employer_role(api_client: TestClient) -> None:
    api_client.post("/users/me/multi-role-request", json={"jobseeker_profile": {}}, headers=auth(EMPLOYER_ID))

    rejected = api_client.post(
        f"/moderation/multi_role/{EMPLOYER_ID}/reject",
        json={"reason": "Incomplete profile"},
        headers=auth(ADMIN_ID),
    )

    assert rejected.status_code == 200
    user = api_client.get("/users/me", headers=auth(EMPLOYER_ID)).json()
    assert user["role"] == "employer"
    assert user["multi_role_status"] == "rejected"

    again = api_client.post("/users/me/multi-role-request", json={"jobseeker_profile": {}}, headers=auth(EMPLOYER_ID))
    assert again.status_code == 409


def test_multi_role_request_requires_employer(api_client: TestClient) -> None:
    response = api_client.post("/users/me/multi-role-request", json={}, headers=auth(JOBSEEKER_ID))
    assert response.status_code == 403


def test_employer_verification_flow(api_client: TestClient, repo: InMemoryRepository) -> None:
    submitted = api_client.post(
        "/users/me/employer-verification",
        json={"business_name": "Ranao Coffee", "documents": ["permit.pdf", "dti.pdf"]},
        headers=auth(EMPLOYER_ID),
    )
    assert submitted.status_code == 201
    assert submitted.json()["label"] == "Ranao Coffee"

    duplicate = api_client.post("/users/me/employer-verification", json={}, headers=auth(EMPLOYER_ID))
    assert duplicate.status_code == 409

    approved = api_client.post(f"/moderation/employer/{EMPLOYER_ID}/approve", headers=auth(ADMIN_ID))
    assert approved.status_code == 200
    assert approved.json()["rejection_reason"] is None

    user = api_client.get("/users/me", headers=auth(EMPLOYER_ID)).json()
    assert user["employer_verification_status"] == "approved"
    titles = [row["title"] for row in _notifications_for(repo, EMPLOYER_ID)]
    assert titles == ["Employer Account Verified"]


def test_moderation_list_orders_by_most_recent_activity(api_client: TestClient) -> None:
    older = _post_job(api_client, "Cashier")
    newer = _post_job(api_client, "Cook")
    api_client.post(f"/moderation/job/{older['id']}/approve", headers=auth(ADMIN_ID))

    rows = api_client.get("/moderation/job", headers=auth(ADMIN_ID)).json()

    assert [row["subject_id"] for row in rows] == [older["id"], newer["id"]]


def test_moderation_endpoints_reject_non_admins(api_client: TestClient) -> None:
    job = _post_job(api_client)

    assert api_client.get("/moderation/job", headers=auth(EMPLOYER_ID)).status_code == 403
    assert api_client.post(f"/moderation/job/{job['id']}/approve", headers=auth(EMPLOYER_ID)).status_code == 403
    assert api_client.post(f"/moderation/job/{job['id']}/approve", headers=auth(JOBSEEKER_ID)).status_code == 403


def test_moderation_unknown_subject(api_client: TestClient) -> None:
    assert api_client.post("/moderation/job/missing/approve", headers=auth(ADMIN_ID)).status_code == 404
    assert api_client.get("/moderation/application", headers=auth(ADMIN_ID)).status_code == 422


def test_decisions_are_recorded_in_activity(api_client: TestClient) -> None:
    job = _post_job(api_client)
    api_client.post(f"/moderation/job/{job['id']}/approve", headers=auth(ADMIN_ID))

    owner_types = [row["type"] for row in api_client.get("/activity", headers=auth(EMPLOYER_ID)).json()]
    admin_rows = api_client.get(
        "/admin/activity",
        params={"user_id": ADMIN_ID, "type": "moderation_decision"},
        headers=auth(ADMIN_ID),
    ).json()

    assert owner_types[:2] == ["approval", "job_post"]
    assert admin_rows[0]["metadata"]["subject_id"] == job["id"]
    assert admin_rows[0]["metadata"]["status"] == "approved"

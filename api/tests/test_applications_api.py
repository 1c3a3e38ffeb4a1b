from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from conftest import ADMIN_ID, EMPLOYER_ID, JOBSEEKER_ID, auth
from ranaojobs.services.store import InMemoryRepository

OTHER_EMPLOYER_ID = "employer-2"


@pytest.fixture
def job_id(api_client: TestClient, repo: InMemoryRepository) -> str:
    repo.add_user(user_id=OTHER_EMPLOYER_ID, role="employer", active_role="employer", company_name="Lake Cafe")
    job = api_client.post("/jobs", json={"title": "Barista"}, headers=auth(EMPLOYER_ID)).json()
    api_client.post(f"/moderation/job/{job['id']}/approve", headers=auth(ADMIN_ID))
    return job["id"]


def _apply(client: TestClient, job_id: str, user_id: str = JOBSEEKER_ID):
    return client.post(
        f"/jobs/{job_id}/applications",
        json={"cover_letter": "I pour a mean latte", "phone_number": " 0917 000 0000 "},
        headers=auth(user_id),
    )


def test_application_notifies_employer_and_admins(
    api_client: TestClient,
    repo: InMemoryRepository,
    job_id: str,
) -> None:
    response = _apply(api_client, job_id)

    assert response.status_code == 201
    application = response.json()
    assert application["status"] == "pending"
    assert application["applicant_name"] == "Jo Seeker"
    assert application["phone_number"] == "0917 000 0000"

    rows = [row for row in repo.notifications.values() if row["type"] == "application"]
    assert sorted(row["recipient_id"] for row in rows) == ["all", EMPLOYER_ID]
    assert all(row["application_id"] == application["id"] for row in rows)
    assert all(row["related_job_id"] == job_id for row in rows)


def test_duplicate_application_conflicts(api_client: TestClient, job_id: str) -> None:
    assert _apply(api_client, job_id).status_code == 201
    assert _apply(api_client, job_id).status_code == 409


def test_hidden_jobs_do_not_accept_applications(api_client: TestClient) -> None:
    pending = api_client.post("/jobs", json={"title": "Cook"}, headers=auth(EMPLOYER_ID)).json()

    assert _apply(api_client, pending["id"]).status_code == 404
    assert _apply(api_client, "no-such-job").status_code == 404


def test_employers_cannot_apply(api_client: TestClient, job_id: str) -> None:
    assert _apply(api_client, job_id, EMPLOYER_ID).status_code == 403


def test_only_owner_lists_applicants(api_client: TestClient, job_id: str) -> None:
    _apply(api_client, job_id)

    owner = api_client.get(f"/jobs/{job_id}/applications", headers=auth(EMPLOYER_ID))
    other = api_client.get(f"/jobs/{job_id}/applications", headers=auth(OTHER_EMPLOYER_ID))
    seeker = api_client.get(f"/jobs/{job_id}/applications", headers=auth(JOBSEEKER_ID))

    assert [row["jobseeker_id"] for row in owner.json()] == [JOBSEEKER_ID]
    assert other.status_code == 403
    assert seeker.status_code == 403
    hired = api_client.get(f"/jobs/{job_id}/applications", params={"status": "hired"}, headers=auth(EMPLOYER_ID))
    unknown = api_client.get(f"/jobs/{job_id}/applications", params={"status": "lost"}, headers=auth(EMPLOYER_ID))
    assert hired.json() == []
    assert unknown.status_code == 422


def test_status_change_notifies_jobseeker_once(
    api_client: TestClient,
    repo: InMemoryRepository,
    job_id: str,
) -> None:
    application = _apply(api_client, job_id).json()
    url = f"/applications/{application['id']}/status"

    first = api_client.patch(url, json={"status": "shortlisted"}, headers=auth(EMPLOYER_ID))
    repeat = api_client.patch(url, json={"status": "shortlisted"}, headers=auth(EMPLOYER_ID))

    assert first.status_code == 200
    assert repeat.json()["status"] == "shortlisted"
    [notification] = [row for row in repo.notifications.values() if row["recipient_id"] == JOBSEEKER_ID]
    assert notification["audience"] == "jobseeker"
    assert notification["title"] == "Application Shortlisted"
    assert notification["application_id"] == application["id"]

    [mine] = api_client.get("/users/me/applications", headers=auth(JOBSEEKER_ID)).json()
    assert (mine["status"], mine["job_title"]) == ("shortlisted", "Barista")


def test_closed_applications_stay_closed(api_client: TestClient, job_id: str) -> None:
    application = _apply(api_client, job_id).json()
    url = f"/applications/{application['id']}/status"

    assert api_client.patch(url, json={"status": "hired"}, headers=auth(EMPLOYER_ID)).status_code == 200
    assert api_client.patch(url, json={"status": "rejected"}, headers=auth(EMPLOYER_ID)).status_code == 409
    assert api_client.patch(url, json={"status": "pending"}, headers=auth(EMPLOYER_ID)).status_code == 422


def test_only_owner_moves_applications(api_client: TestClient, job_id: str) -> None:
    application = _apply(api_client, job_id).json()
    url = f"/applications/{application['id']}/status"

    assert api_client.patch(url, json={"status": "reviewed"}, headers=auth(OTHER_EMPLOYER_ID)).status_code == 403
    assert api_client.patch(url, json={"status": "reviewed"}, headers=auth(JOBSEEKER_ID)).status_code == 403
    missing = api_client.patch("/applications/nope/status", json={"status": "reviewed"}, headers=auth(EMPLOYER_ID))
    assert missing.status_code == 404

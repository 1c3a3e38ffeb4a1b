from __future__ import annotations

import asyncio

import pytest
from fastapi.testclient import TestClient

from conftest import ADMIN_ID, EMPLOYER_ID, JOBSEEKER_ID, auth
from ranaojobs.services.store import InMemoryRepository


@pytest.fixture
def inbox(repo: InMemoryRepository) -> list[str]:
    async def _seed() -> list[str]:
        ids = []
        for title in ("Welcome", "Job Posting Approved", "New Job Review"):
            row = await repo.create_notification(
                audience="employer",
                recipient_id=EMPLOYER_ID,
                title=title,
                message=title,
                type="system",
            )
            ids.append(row["id"])
        await repo.create_notification(
            audience="admin",
            recipient_id="all",
            title="Review Flagged",
            message="A job review has been flagged as inappropriate.",
            type="system",
        )
        return ids

    return asyncio.run(_seed())


def test_list_is_newest_first_and_scoped_to_recipient(api_client: TestClient, inbox: list[str]) -> None:
    rows = api_client.get("/notifications", headers=auth(EMPLOYER_ID)).json()

    assert [row["id"] for row in rows] == list(reversed(inbox))
    assert api_client.get("/notifications", headers=auth(JOBSEEKER_ID)).json() == []


def test_admins_read_the_broadcast_inbox(api_client: TestClient, inbox: list[str]) -> None:
    rows = api_client.get("/notifications", headers=auth(ADMIN_ID)).json()

    assert [row["title"] for row in rows] == ["Review Flagged"]


def test_mark_read_and_unread_filter(api_client: TestClient, inbox: list[str]) -> None:
    marked = api_client.post(f"/notifications/{inbox[0]}/read", headers=auth(EMPLOYER_ID))
    assert marked.status_code == 200
    assert marked.json()["is_read"] is True

    unread = api_client.get("/notifications", params={"unread_only": True}, headers=auth(EMPLOYER_ID)).json()
    assert {row["id"] for row in unread} == set(inbox[1:])

    remaining = api_client.post("/notifications/read-all", headers=auth(EMPLOYER_ID))
    assert remaining.json() == {"count": 2}


def test_other_users_cannot_touch_a_notification(api_client: TestClient, inbox: list[str]) -> None:
    assert api_client.post(f"/notifications/{inbox[0]}/read", headers=auth(JOBSEEKER_ID)).status_code == 404
    assert api_client.delete(f"/notifications/{inbox[0]}", headers=auth(JOBSEEKER_ID)).status_code == 404
    assert api_client.delete(f"/notifications/{inbox[0]}", headers=auth(EMPLOYER_ID)).status_code == 204
    assert len(api_client.get("/notifications", headers=auth(EMPLOYER_ID)).json()) == 2


def test_admin_clear_by_audience(api_client: TestClient, inbox: list[str]) -> None:
    forbidden = api_client.delete("/admin/notifications", headers=auth(EMPLOYER_ID))
    cleared = api_client.delete("/admin/notifications", params={"audience": "employer"}, headers=auth(ADMIN_ID))

    assert forbidden.status_code == 403
    assert cleared.json() == {"count": 3}
    assert api_client.get("/notifications", headers=auth(ADMIN_ID)).json() != []

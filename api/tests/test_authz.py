from __future__ import annotations

import os

import pytest
from fastapi.testclient import TestClient

from conftest import ADMIN_ID, EMPLOYER_ID, JOBSEEKER_ID, auth
from ranaojobs.core.auth import GUEST_ROLE, Principal, ROLE_SCOPES, scopes_for_role


def test_unknown_roles_fall_back_to_guest_scopes() -> None:
    assert scopes_for_role(None) == ROLE_SCOPES[GUEST_ROLE]
    assert scopes_for_role("superuser") == ROLE_SCOPES[GUEST_ROLE]


def test_multi_role_accounts_hold_both_scope_sets() -> None:
    assert {"job:write", "review:write"} <= scopes_for_role("multi")
    assert "review:write" not in scopes_for_role("multi-role")


def test_require_scopes_reports_missing() -> None:
    principal = Principal(subject="u-1", role="jobseeker", scopes=scopes_for_role("jobseeker"))

    with pytest.raises(PermissionError, match="job:write"):
        principal.require_scopes({"job:write"})


def test_token_metadata_cannot_grant_admin(api_client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    import ranaojobs.core.security as security

    async def _fake_fetch(**_: object) -> dict[str, object]:
        return {"id": JOBSEEKER_ID, "app_metadata": {"role": "admin"}, "user_metadata": {"role": "admin"}}

    monkeypatch.setattr(security, "_fetch_supabase_user", _fake_fetch)

    assert api_client.get("/moderation/job", headers=auth("whatever")).status_code == 403


@pytest.mark.parametrize(
    "method, path",
    [
        ("delete", "/admin/activity"),
        ("delete", "/admin/notifications"),
        ("get", "/admin/activity"),
        ("patch", "/admin/reviews/some-review"),
    ],
)
@pytest.mark.parametrize("user_id", [EMPLOYER_ID, JOBSEEKER_ID])
def test_admin_endpoints_require_admin(api_client: TestClient, method: str, path: str, user_id: str) -> None:
    kwargs = {"json": {"status": "removed"}} if method == "patch" else {}
    response = api_client.request(method.upper(), path, headers=auth(user_id), **kwargs)
    assert response.status_code == 403


def test_admin_can_clear_activity(api_client: TestClient) -> None:
    api_client.post("/jobs", json={"title": "Cook"}, headers=auth(EMPLOYER_ID))

    cleared = api_client.delete("/admin/activity", params={"user_id": EMPLOYER_ID}, headers=auth(ADMIN_ID))

    assert cleared.json() == {"count": 1}
    assert api_client.get("/activity", headers=auth(EMPLOYER_ID)).json() == []


def test_auth_not_configured_is_unavailable(api_client: TestClient) -> None:
    from ranaojobs.core.config import get_settings

    os.environ.pop("RJ_SUPABASE_URL")
    get_settings.cache_clear()

    assert api_client.get("/users/me", headers=auth(JOBSEEKER_ID)).status_code == 503

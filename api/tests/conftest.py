"""Shared fixtures for API tests backed by the in-memory repository."""

from __future__ import annotations

import os
from typing import Any

import pytest
from fastapi.testclient import TestClient

import ranaojobs.core.security as security
from ranaojobs.core.config import get_settings
from ranaojobs.main import app
from ranaojobs.services.repository import get_repository
from ranaojobs.services.store import InMemoryRepository

ADMIN_ID = "admin-1"
EMPLOYER_ID = "employer-1"
JOBSEEKER_ID = "jobseeker-1"


def auth(user_id: str) -> dict[str, str]:
    """Bearer headers; the mocked auth lookup treats the token as the user id."""
    return {"Authorization": f"Bearer {user_id}"}


@pytest.fixture
def repo() -> InMemoryRepository:
    repository = InMemoryRepository()
    repository.add_user(user_id=ADMIN_ID, role="admin", first_name="Ada", last_name="Admin")
    repository.add_user(
        user_id=EMPLOYER_ID,
        role="employer",
        active_role="employer",
        first_name="Erin",
        last_name="Employer",
        company_name="Ranao Coffee",
    )
    repository.add_user(
        user_id=JOBSEEKER_ID,
        role="jobseeker",
        active_role="jobseeker",
        first_name="Jo",
        last_name="Seeker",
    )
    return repository


@pytest.fixture
def api_client(repo: InMemoryRepository, monkeypatch: pytest.MonkeyPatch) -> TestClient:
    os.environ["RJ_SUPABASE_URL"] = "https://example.supabase.co"
    os.environ["RJ_SUPABASE_ANON_KEY"] = "anon-key"
    get_settings.cache_clear()

    async def _fake_fetch(**kwargs: Any) -> dict[str, Any]:
        return {"id": kwargs["token"], "email": f"{kwargs['token']}@ranao.test"}

    monkeypatch.setattr(security, "_fetch_supabase_user", _fake_fetch)
    app.dependency_overrides[get_repository] = lambda: repo

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()
    os.environ.pop("RJ_SUPABASE_URL", None)
    os.environ.pop("RJ_SUPABASE_ANON_KEY", None)
    get_settings.cache_clear()

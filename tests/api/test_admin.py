"""Admin-assisted progress edits."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from tests.conftest import mint_token

pytestmark = pytest.mark.usefixtures("sample_catalog")

_URL = "/v1/admin/progress/users/learner-1/materials/1"


def _auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def test_admin_edit_requires_token(client: TestClient) -> None:
    resp = client.put(_URL, json={"progress_rate": 70})
    assert resp.status_code == 401


def test_admin_edit_forbidden_for_learners(client: TestClient, token: str) -> None:
    resp = client.put(_URL, json={"progress_rate": 70}, headers=_auth(token))
    assert resp.status_code == 403
    assert resp.json()["detail"] == "Insufficient permissions"


def test_admin_edit_writes_learner_progress(
    client: TestClient, admin_token: str
) -> None:
    resp = client.put(
        _URL,
        json={"progress_rate": 70, "note": "graded offline"},
        headers=_auth(admin_token),
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["progress"]["user_id"] == "learner-1"
    assert body["history_entry"]["changed_by"] == "test-admin"

    learner = mint_token(username="learner-1")
    leaf = client.get("/v1/progress/materials/1", headers=_auth(learner)).json()
    assert leaf["progress_rate"] == "70.00"
    history = client.get(
        "/v1/progress/materials/1/history", headers=_auth(learner)
    ).json()
    assert [e["changed_by"] for e in history] == ["test-admin"]

    # the admin's own progress is untouched
    own = client.get("/v1/progress/materials/1", headers=_auth(admin_token))
    assert own.json() is None


def test_admin_edit_validation_error(client: TestClient, admin_token: str) -> None:
    resp = client.put(_URL, json={"progress_rate": 101}, headers=_auth(admin_token))
    assert resp.status_code == 400
    assert resp.json()["detail"]["reason"] == "out_of_range"

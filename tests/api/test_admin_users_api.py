"""管理员用户目录接口。"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from cms.common.auth import issue_session_token
from cms.common.config import get_settings
from cms.main import create_app

URL = "/api/admin/users"


def _bearer(role: str, user_id: int = 1) -> dict[str, str]:
    token = issue_session_token(
        get_settings(), user_id=user_id, username=f"{role}-user", role=role
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client(bucket_registry) -> TestClient:
    return TestClient(create_app(bucket_registry=bucket_registry))


def test_requires_authentication(client):
    resp = client.get(URL)
    assert resp.status_code == 401
    assert resp.headers["content-type"].startswith("application/problem+json")
    assert resp.json()["error_code"] == "unauthenticated"


def test_requires_admin_role(client):
    resp = client.get(URL, headers=_bearer("creator"))
    assert resp.status_code == 403
    assert resp.json()["error_code"] == "insufficient_roles"


def test_create_with_generated_password_then_login(client):
    resp = client.post(
        URL, json={"username": "Writer", "role": "creator"}, headers=_bearer("admin")
    )
    assert resp.status_code == 201
    body = resp.json()
    assert body["user"]["username"] == "writer"
    assert body["user"]["role"] == "creator"
    password = body["generated_password"]
    assert password and len(password.split("-")) == 3

    login = client.post("/api/login", json={"username": "writer", "password": password})
    assert login.status_code == 200
    assert login.json()["role"] == "creator"


def test_create_rejects_unknown_role(client):
    resp = client.post(
        URL, json={"username": "someone", "role": "owner"}, headers=_bearer("admin")
    )
    assert resp.status_code == 422


def test_create_conflict(client):
    headers = _bearer("admin")
    assert client.post(URL, json={"username": "dup"}, headers=headers).status_code == 201
    resp = client.post(URL, json={"username": "dup"}, headers=headers)
    assert resp.status_code == 409


def test_list_filters_and_stats(client):
    headers = _bearer("admin")
    for username, role in (("ann", "admin"), ("ben", "user"), ("bea", "user"), ("cal", "guest")):
        client.post(URL, json={"username": username, "role": role}, headers=headers)

    resp = client.get(URL, params={"query": "B", "role": "user"}, headers=headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["total"] == 2
    assert {item["username"] for item in body["items"]} == {"ben", "bea"}
    assert body["stats"] == {"total": 4, "admin": 1, "creator": 0, "user": 2, "guest": 1}
    assert "password_hash" not in body["items"][0]

    paged = client.get(URL, params={"page": 2, "size": 3}, headers=headers).json()
    assert paged["page"] == 2
    assert len(paged["items"]) == 1


def test_list_rejects_oversized_page(client):
    resp = client.get(URL, params={"size": 500}, headers=_bearer("admin"))
    assert resp.status_code == 422
    assert resp.json()["error_code"] == "validation_error"

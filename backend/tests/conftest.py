"""Shared fixtures: an app on a throwaway SQLite database and auth helpers."""

import pytest
from fastapi.testclient import TestClient

from coinfolio.config import Settings
from coinfolio.main import create_app

ADMIN_EMAIL = "admin@coinfolio.test"
ADMIN_PASSWORD = "admin-secret"


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'coinfolio.db'}",
        jwt_secret="test-secret",
        bcrypt_rounds=4,
        log_level="WARNING",
        admin_email=ADMIN_EMAIL,
        admin_username="root_admin",
        admin_password=ADMIN_PASSWORD,
    )


@pytest.fixture
def client(settings):
    with TestClient(create_app(settings)) as c:
        yield c


def register(client: TestClient, username: str = "alice", password: str = "secret1") -> dict:
    """Register ``username`` and return the Authorization header for it."""
    resp = client.post("/api/auth/register", json={
        "email": f"{username}@example.com",
        "username": username,
        "password": password,
    })
    assert resp.status_code == 201, resp.text
    return {"Authorization": f"Bearer {resp.json()['data']['token']}"}


@pytest.fixture
def auth_headers(client) -> dict:
    return register(client)


@pytest.fixture
def admin_headers(client) -> dict:
    resp = client.post("/api/auth/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
    assert resp.status_code == 200, resp.text
    return {"Authorization": f"Bearer {resp.json()['data']['token']}"}


def add_coin(client: TestClient, headers: dict, **overrides) -> dict:
    body = {"symbol": "BTC", "name": "Bitcoin", "quantity": 0.5, "averageBuyPrice": 45000}
    body.update(overrides)
    resp = client.post("/api/coins", json=body, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]

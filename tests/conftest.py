import os
from dataclasses import replace

import pytest
from fastapi.testclient import TestClient

# Ensure we default to memory backend for tests to avoid a database dependency
os.environ.setdefault("PERSISTENCE_BACKEND", "memory")

from todo_backend.main import create_app  # noqa: E402
from todo_backend.settings import get_settings  # noqa: E402

PASSWORD = "passw0rd!"


@pytest.fixture
def settings():
    return replace(
        get_settings(),
        persistence_backend="memory",
        jwt_secret="test-jwt-secret-0123456789abcdef0123456789",
        bcrypt_rounds=4,
        api_versions=["v1"],
    )


@pytest.fixture
def client(settings):
    return TestClient(create_app(settings))


@pytest.fixture
def register_user(client):
    def _register(username="taro@example.com", password=PASSWORD, fullname="Taro Yamada"):
        res = client.post(
            "/v1/auth/create",
            json={"username": username, "password": password, "fullname": fullname},
        )
        assert res.status_code == 200
        return res.json()

    return _register


@pytest.fixture
def login(client):
    def _login(username="taro@example.com", password=PASSWORD):
        return client.post("/v1/auth/login", json={"username": username, "password": password})

    return _login


@pytest.fixture
def auth_headers(client, register_user, login):
    register_user()
    res = login()
    token = res.json()["data"]["token"]
    # Only the header should authenticate the tests using this fixture
    client.cookies.clear()
    return {"Authorization": f"Bearer {token}"}

"""Pytest configuration.

Settings are read from the environment at import time, so the test database
and attachment directories are pointed at a temporary location before any
tickchat module is imported.
"""

import os
import tempfile
from types import SimpleNamespace

_tmp_dir = tempfile.mkdtemp(prefix="tickchat-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_tmp_dir, 'test.db')}"
os.environ["IMAGE_DIR"] = os.path.join(_tmp_dir, "images")
os.environ["UPLOAD_DIR"] = os.path.join(_tmp_dir, "uploads")
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["WS_ALLOW_CLAIMED_IDENTITY"] = "false"
os.environ["PUSH_TIMEOUT_SECONDS"] = "2"

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from tickchat.config import settings
from tickchat.database import AsyncSessionLocal, create_tables, drop_tables
from tickchat.main import create_app


@pytest.fixture
def app():
    return create_app()


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client
        test_client.portal.call(drop_tables)


@pytest_asyncio.fixture
async def db_session():
    await create_tables()
    async with AsyncSessionLocal() as session:
        yield session
    await drop_tables()


def register_user(client: TestClient, username: str) -> SimpleNamespace:
    password = "password123"
    response = client.post(
        "/api/v1/auth/register",
        json={"username": username, "email": f"{username}@example.com", "password": password},
    )
    assert response.status_code == 201, response.text
    user = response.json()

    response = client.post("/api/v1/auth/login-json", json={"username": username, "password": password})
    assert response.status_code == 200, response.text
    token = response.json()["access_token"]

    return SimpleNamespace(
        id=user["id"],
        username=username,
        token=token,
        headers={"Authorization": f"Bearer {token}"},
    )


@pytest.fixture
def alice(client):
    return register_user(client, "alice")


@pytest.fixture
def bob(client):
    return register_user(client, "bob")


@pytest.fixture
def charlie(client):
    return register_user(client, "charlie")


@pytest.fixture
def attachment_dirs():
    return SimpleNamespace(images=settings.IMAGE_DIR, uploads=settings.UPLOAD_DIR)

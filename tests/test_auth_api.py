from __future__ import annotations

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.config import get_settings
from app.core.database import Base, get_db
from app.main import app
from app.models.activity import Activity
from app.platform.security.policies import Role
from tests.factories import DEFAULT_PASSWORD, make_team, make_user


@pytest.fixture(autouse=True)
def setup_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.setenv("PASSWORD_HASH_ITERATIONS", "1000")
    monkeypatch.setenv("MAX_LOGIN_ATTEMPTS", "2")
    monkeypatch.setenv("DB_AUTO_CREATE", "false")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    make_team(db_session, "team-1")
    make_user(db_session, "manager", role=Role.MANAGER, team_id="team-1")

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _login(client: TestClient, email: str = "manager@crm.com", password: str = DEFAULT_PASSWORD):
    return client.post("/auth/login", json={"email": email, "password": password})


def test_login_returns_envelope_with_tokens(client: TestClient) -> None:
    response = _login(client)
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "Login successful"
    assert body["data"]["user"]["email"] == "manager@crm.com"
    assert body["data"]["user"]["role"] == "manager"
    assert "password_hash" not in body["data"]["user"]
    assert body["data"]["access_token"]
    assert body["data"]["refresh_token"]
    assert response.headers["x-correlation-id"]


def test_invalid_credentials_and_lockout(client: TestClient) -> None:
    first = _login(client, password="Wrong123")
    assert first.status_code == 401
    assert first.json()["code"] == "INVALID_CREDENTIALS"
    assert first.json()["success"] is False

    second = _login(client, password="Wrong123")
    assert second.status_code == 401

    locked = _login(client)
    assert locked.status_code == 423
    assert locked.json()["code"] == "ACCOUNT_LOCKED"


def test_login_validation_error_lists_fields(client: TestClient) -> None:
    response = client.post("/auth/login", json={"email": "not-an-email"})
    assert response.status_code == 400
    body = response.json()
    assert body["code"] == "VALIDATION_ERROR"
    fields = {item["field"] for item in body["errors"]}
    assert {"email", "password"} <= fields


def test_register_then_profile(client: TestClient) -> None:
    response = client.post(
        "/auth/register",
        json={"name": "Casey", "email": "casey@crm.com", "password": "Str0ngPass", "phone": "+1-555-0101"},
    )
    assert response.status_code == 201
    data = response.json()["data"]
    assert data["user"]["role"] == "sales_rep"

    profile = client.get("/auth/profile", headers={"Authorization": f"Bearer {data['access_token']}"})
    assert profile.status_code == 200
    assert profile.json()["data"]["email"] == "casey@crm.com"

    duplicate = client.post(
        "/auth/register",
        json={"name": "Casey", "email": "casey@crm.com", "password": "Str0ngPass"},
    )
    assert duplicate.status_code == 409


def test_register_enforces_password_rules(client: TestClient) -> None:
    response = client.post("/auth/register", json={"name": "Weak", "email": "weak@crm.com", "password": "alllowercase1"})
    assert response.status_code == 400
    messages = [item["message"] for item in response.json()["errors"]]
    assert any("one uppercase letter" in message for message in messages)


def test_refresh_token_rotation_over_http(client: TestClient) -> None:
    tokens = _login(client).json()["data"]

    rotated = client.post("/auth/refresh-token", json={"refreshToken": tokens["refresh_token"]})
    assert rotated.status_code == 200
    assert rotated.json()["message"] == "Token refreshed successfully"

    replay = client.post("/auth/refresh-token", json={"refresh_token": tokens["refresh_token"]})
    assert replay.status_code == 401
    assert replay.json()["code"] == "INVALID_REFRESH_TOKEN"

    missing = client.post("/auth/refresh-token", json={})
    assert missing.status_code == 401


def test_logout_always_succeeds_and_records_activity(client: TestClient, db_session: Session) -> None:
    tokens = _login(client).json()["data"]

    anonymous = client.post("/auth/logout")
    assert anonymous.status_code == 200

    response = client.post(
        "/auth/logout",
        json={"refresh_token": tokens["refresh_token"]},
        headers={"Authorization": f"Bearer {tokens['access_token']}"},
    )
    assert response.status_code == 200
    assert response.json()["message"] == "Logout successful"

    refresh = client.post("/auth/refresh-token", json={"refresh_token": tokens["refresh_token"]})
    assert refresh.status_code == 401

    assert db_session.scalar(select(Activity).where(Activity.type == "logout")) is not None


def test_profile_requires_valid_token(client: TestClient) -> None:
    missing = client.get("/auth/profile")
    assert missing.status_code == 401
    assert missing.json()["code"] == "TOKEN_INVALID"

    garbage = client.get("/auth/profile", headers={"Authorization": "Bearer garbage"})
    assert garbage.status_code == 401

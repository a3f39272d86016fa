from __future__ import annotations

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.auth.models import User
from app.core.config import get_settings
from app.core.database import Base, get_db
from app.main import app
from app.platform.security.policies import Role
from tests.factories import DEFAULT_PASSWORD, bearer, make_customer, make_team, make_user


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


@pytest.fixture(autouse=True)
def configure_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.setenv("METRICS_ENABLED", "true")
    monkeypatch.setenv("PASSWORD_HASH_ITERATIONS", "1000")
    monkeypatch.setenv("DB_AUTO_CREATE", "false")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def users(db_session: Session) -> dict[str, User]:
    make_team(db_session, "team-1")
    make_team(db_session, "team-2")
    return {
        "admin": make_user(db_session, "admin", role=Role.ADMIN, team_id="team-1"),
        "rep": make_user(db_session, "rep", team_id="team-1"),
        "other": make_user(db_session, "other", team_id="team-2"),
    }


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def test_metrics_endpoint_exposes_http_auth_and_scope_metrics(
    client: TestClient,
    db_session: Session,
    users: dict[str, User],
) -> None:
    health = client.get("/health")
    assert health.status_code == 200
    assert health.json()["data"]["service"] == "Mini CRM API"

    login = client.post("/auth/login", json={"email": "rep@crm.com", "password": DEFAULT_PASSWORD})
    assert login.status_code == 200

    created = client.post("/customers", json={"name": "Metrics Co"}, headers=bearer(users["rep"]))
    assert created.status_code == 201

    foreign = make_customer(db_session, users["other"])
    denied = client.get(f"/customers/{foreign.id}", headers=bearer(users["rep"]))
    assert denied.status_code == 403

    metrics = client.get("/metrics", headers=bearer(users["admin"]))
    assert metrics.status_code == 200
    body = metrics.text

    assert "http_requests_total" in body
    assert "http_request_duration_seconds" in body
    assert 'auth_login_attempts_total{outcome="success"}' in body
    assert 'scope_denied_total{resource="customers",action="read",reason="record_scope"}' in body
    assert 'audit_activities_written_total{type="create",resource_type="customer"}' in body

    assert 'path="/health"' in body
    assert 'path="/customers/{id}"' in body


def test_metrics_endpoint_is_admin_only(client: TestClient, users: dict[str, User]) -> None:
    anonymous = client.get("/metrics")
    assert anonymous.status_code == 401

    rep = client.get("/metrics", headers=bearer(users["rep"]))
    assert rep.status_code == 403


def test_metrics_endpoint_hidden_when_disabled(
    client: TestClient,
    users: dict[str, User],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("METRICS_ENABLED", "false")
    get_settings.cache_clear()

    response = client.get("/metrics", headers=bearer(users["admin"]))
    assert response.status_code == 404

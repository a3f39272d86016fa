from __future__ import annotations

import json
import logging
from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.auth.models import User
from app.core.config import get_settings
from app.core.database import Base, get_db
from app.logging import JsonLogFormatter
from app.main import app
from app.platform.security.policies import Role
from tests.factories import bearer, make_customer, make_team, make_user


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
def setup_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
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
        "rep": make_user(db_session, "rep", role=Role.SALES_REP, team_id="team-1"),
        "other": make_user(db_session, "other", role=Role.SALES_REP, team_id="team-2"),
    }


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def test_logs_include_correlation_id_for_http(
    client: TestClient,
    users: dict[str, User],
    caplog: pytest.LogCaptureFixture,
) -> None:
    caplog.set_level(logging.INFO)

    response = client.get("/customers/does-not-exist", headers={**bearer(users["rep"]), "X-Correlation-Id": "abc-123"})
    assert response.status_code == 404

    records = [record for record in caplog.records if record.name == "app.request" and record.getMessage() == "http.request"]
    assert records
    assert any(
        getattr(record, "correlation_id", None) == "abc-123"
        and getattr(record, "method", None) == "GET"
        and getattr(record, "path", None) == "/customers/{id}"
        and getattr(record, "status_code", None) == 404
        and record.levelno == logging.WARNING
        and isinstance(getattr(record, "duration_ms", None), float)
        for record in records
    )


def test_scope_denial_is_logged_with_context(
    client: TestClient,
    db_session: Session,
    users: dict[str, User],
    caplog: pytest.LogCaptureFixture,
) -> None:
    caplog.set_level(logging.INFO)
    customer = make_customer(db_session, users["other"])

    response = client.get(f"/customers/{customer.id}", headers={**bearer(users["rep"]), "X-Correlation-Id": "deny-1"})
    assert response.status_code == 403

    denials = [record for record in caplog.records if record.name == "app.security"]
    assert any(
        record.getMessage() == "security.denied"
        and getattr(record, "user_id", None) == "rep"
        and getattr(record, "resource", None) == "customers"
        and getattr(record, "outcome", None) == "record_scope"
        and getattr(record, "correlation_id", None) == "deny-1"
        for record in denials
    )


def test_json_formatter_whitelists_fields() -> None:
    record = logging.makeLogRecord(
        {
            "name": "app.auth",
            "levelno": logging.INFO,
            "levelname": "INFO",
            "msg": "auth.login_succeeded",
            "user_id": "rep",
            "password": "Secret123",
            "correlation_id": "corr-1",
        }
    )
    payload = json.loads(JsonLogFormatter().format(record))

    assert payload["msg"] == "auth.login_succeeded"
    assert payload["correlation_id"] == "corr-1"
    assert payload["fields"] == {"user_id": "rep"}

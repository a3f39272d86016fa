from __future__ import annotations

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.auth.models import RefreshToken, User
from app.core.config import get_settings
from app.core.database import Base, get_db
from app.main import app
from app.models.activity import Activity
from app.platform.security.policies import Role
from tests.factories import DEFAULT_PASSWORD, bearer, make_team, make_user


@pytest.fixture(autouse=True)
def setup_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.setenv("PASSWORD_HASH_ITERATIONS", "1000")
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
def users(db_session: Session) -> dict[str, User]:
    make_team(db_session, "team-1", "Alpha")
    make_team(db_session, "team-2", "Beta")
    return {
        "admin": make_user(db_session, "admin", role=Role.ADMIN, team_id="team-1"),
        "manager": make_user(db_session, "manager", role=Role.MANAGER, team_id="team-1"),
        "rep": make_user(db_session, "rep", team_id="team-1"),
        "outsider": make_user(db_session, "outsider", team_id="team-2"),
    }


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def test_user_directory_visibility(client: TestClient, users: dict[str, User]) -> None:
    admin_view = client.get("/users", headers=bearer(users["admin"])).json()
    assert admin_view["pagination"]["total"] == 4

    rep_view = client.get("/users", headers=bearer(users["rep"])).json()
    assert {row["id"] for row in rep_view["data"]} == {"admin", "manager", "rep"}
    assert all(row["team_name"] == "Alpha" for row in rep_view["data"])
    assert all("password_hash" not in row for row in rep_view["data"])

    managers = client.get("/users", params={"role": "manager"}, headers=bearer(users["admin"])).json()
    assert [row["id"] for row in managers["data"]] == ["manager"]

    hidden = client.get("/users/outsider", headers=bearer(users["rep"]))
    assert hidden.status_code == 404


def test_only_admin_updates_users_and_assignment_is_audited(
    client: TestClient,
    db_session: Session,
    users: dict[str, User],
) -> None:
    denied = client.patch("/users/rep", json={"role": "manager"}, headers=bearer(users["manager"]))
    assert denied.status_code == 403

    response = client.patch("/users/rep", json={"team_id": "team-2"}, headers=bearer(users["admin"]))
    assert response.status_code == 200
    assert response.json()["data"]["team_id"] == "team-2"
    assert response.json()["data"]["team_name"] == "Beta"

    activity = db_session.scalar(select(Activity).where(Activity.resource_id == "rep"))
    assert activity is not None
    assert activity.type == "assign"
    assert activity.changes == {"team_id": {"from": "team-1", "to": "team-2"}}

    renamed = client.patch("/users/rep", json={"name": "Renamed"}, headers=bearer(users["admin"]))
    assert renamed.status_code == 200
    last = db_session.scalar(select(Activity).where(Activity.resource_id == "rep").order_by(Activity.id.desc()))
    assert last.type == "update"

    unknown_team = client.patch("/users/rep", json={"team_id": "team-x"}, headers=bearer(users["admin"]))
    assert unknown_team.status_code == 400


def test_deactivation_revokes_sessions(client: TestClient, db_session: Session, users: dict[str, User]) -> None:
    tokens = client.post("/auth/login", json={"email": "rep@crm.com", "password": DEFAULT_PASSWORD}).json()["data"]

    response = client.delete("/users/rep", headers=bearer(users["admin"]))
    assert response.status_code == 200
    assert response.json()["message"] == "User deactivated successfully"

    assert db_session.scalar(select(func.count(RefreshToken.id)).where(RefreshToken.user_id == "rep")) == 0
    refresh = client.post("/auth/refresh-token", json={"refresh_token": tokens["refresh_token"]})
    assert refresh.status_code == 401

    profile = client.get("/auth/profile", headers={"Authorization": f"Bearer {tokens['access_token']}"})
    assert profile.status_code == 401

    login = client.post("/auth/login", json={"email": "rep@crm.com", "password": DEFAULT_PASSWORD})
    assert login.status_code == 401
    assert login.json()["code"] == "ACCOUNT_INACTIVE"


def test_admin_cannot_deactivate_self(client: TestClient, users: dict[str, User]) -> None:
    response = client.delete("/users/admin", headers=bearer(users["admin"]))
    assert response.status_code == 400


def test_teams_listing_and_creation(client: TestClient, users: dict[str, User]) -> None:
    listing = client.get("/teams", headers=bearer(users["rep"]))
    assert listing.status_code == 200
    counts = {row["name"]: row["member_count"] for row in listing.json()["data"]}
    assert counts == {"Alpha": 3, "Beta": 1}

    denied = client.post("/teams", json={"name": "Gamma"}, headers=bearer(users["manager"]))
    assert denied.status_code == 403

    created = client.post("/teams", json={"name": "Gamma", "manager_id": "manager"}, headers=bearer(users["admin"]))
    assert created.status_code == 201
    assert created.json()["data"]["member_count"] == 0


def test_activity_log_visibility(client: TestClient, users: dict[str, User]) -> None:
    client.post("/customers", json={"name": "Rep Co"}, headers=bearer(users["rep"]))
    client.post("/customers", json={"name": "Manager Co"}, headers=bearer(users["manager"]))

    mine = client.get("/activities", headers=bearer(users["rep"])).json()
    assert mine["pagination"]["total"] == 1
    assert mine["data"][0]["user_id"] == "rep"

    spoofed = client.get("/activities", params={"user_id": "manager"}, headers=bearer(users["rep"])).json()
    assert all(row["user_id"] == "rep" for row in spoofed["data"])

    everything = client.get("/activities", headers=bearer(users["admin"])).json()
    assert everything["pagination"]["total"] == 2

    summary = client.get("/activities/summary", params={"user_id": "manager"}, headers=bearer(users["admin"]))
    assert summary.status_code == 200
    assert summary.json()["data"]["user_id"] == "manager"
    assert summary.json()["data"]["by_type"] == {"create": 1}

    own_summary = client.get("/activities/summary", params={"user_id": "manager"}, headers=bearer(users["rep"]))
    assert own_summary.json()["data"]["user_id"] == "rep"

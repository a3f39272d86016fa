from __future__ import annotations

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.auth.models import User
from app.core.config import get_settings
from app.core.database import Base, get_db
from app.crm.models import Customer
from app.main import app
from app.models.activity import Activity
from app.platform.security.policies import Role
from tests.factories import bearer, make_customer, make_lead, make_team, make_user


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
    make_team(db_session, "team-1")
    make_team(db_session, "team-2")
    return {
        "admin": make_user(db_session, "admin", role=Role.ADMIN, team_id="team-1"),
        "manager": make_user(db_session, "manager", role=Role.MANAGER, team_id="team-1"),
        "rep": make_user(db_session, "rep", team_id="team-1"),
        "outsider": make_user(db_session, "outsider", team_id="team-2"),
    }


@pytest.fixture()
def customer(db_session: Session, users: dict[str, User]) -> Customer:
    return make_customer(db_session, users["rep"], name="Acme Corporation", company="Acme Corp")


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def test_create_lead_with_customer_details(
    client: TestClient,
    db_session: Session,
    users: dict[str, User],
    customer: Customer,
) -> None:
    response = client.post(
        "/leads",
        json={"title": "Enterprise License", "customer_id": customer.id, "value": 150000, "priority": "high"},
        headers=bearer(users["rep"]),
    )
    assert response.status_code == 201
    data = response.json()["data"]
    assert data["status"] == "new"
    assert data["priority"] == "high"
    assert data["customer_name"] == "Acme Corporation"
    assert data["customer_company"] == "Acme Corp"
    assert data["owner_id"] == "rep"
    assert data["team_id"] == "team-1"

    activity = db_session.scalar(select(Activity).where(Activity.resource_type == "lead"))
    assert activity is not None
    assert activity.description == 'Created lead "Enterprise License"'


def test_create_lead_requires_existing_accessible_customer(
    client: TestClient,
    db_session: Session,
    users: dict[str, User],
) -> None:
    missing = client.post("/leads", json={"title": "Ghost", "customer_id": "nope"}, headers=bearer(users["rep"]))
    assert missing.status_code == 400
    assert missing.json()["errors"] == [{"field": "customer_id", "message": "Customer not found"}]

    foreign = make_customer(db_session, users["outsider"])
    forbidden = client.post(
        "/leads",
        json={"title": "Poach", "customer_id": foreign.id},
        headers=bearer(users["rep"]),
    )
    assert forbidden.status_code == 403

    invalid = client.post(
        "/leads",
        json={"title": "Bad", "customer_id": foreign.id, "status": "won", "priority": "urgent"},
        headers=bearer(users["admin"]),
    )
    assert invalid.status_code == 400
    fields = {item["field"] for item in invalid.json()["errors"]}
    assert {"status", "priority"} <= fields


def test_list_leads_scoped_and_filtered(
    client: TestClient,
    db_session: Session,
    users: dict[str, User],
    customer: Customer,
) -> None:
    make_lead(db_session, customer, users["rep"], title="Alpha", priority="high")
    make_lead(db_session, customer, users["rep"], title="Beta", status="qualified")
    foreign_customer = make_customer(db_session, users["outsider"])
    make_lead(db_session, foreign_customer, users["outsider"], title="Gamma")

    rep_view = client.get("/leads", headers=bearer(users["rep"])).json()
    assert {row["title"] for row in rep_view["data"]} == {"Alpha", "Beta"}
    assert rep_view["pagination"]["total"] == 2

    high = client.get("/leads", params={"priority": "high"}, headers=bearer(users["manager"])).json()
    assert [row["title"] for row in high["data"]] == ["Alpha"]

    search = client.get("/leads", params={"search": "gam"}, headers=bearer(users["admin"])).json()
    assert [row["title"] for row in search["data"]] == ["Gamma"]


def test_leads_by_customer_route(
    client: TestClient,
    db_session: Session,
    users: dict[str, User],
    customer: Customer,
) -> None:
    make_lead(db_session, customer, users["rep"], title="First", status="new")
    make_lead(db_session, customer, users["rep"], title="Second", status="proposal")
    make_lead(db_session, customer, users["outsider"], title="Hidden")

    response = client.get(f"/leads/customer/{customer.id}", headers=bearer(users["rep"]))
    assert response.status_code == 200
    body = response.json()
    assert {row["title"] for row in body["data"]} == {"First", "Second"}
    assert body["pagination"] is None

    proposals = client.get(
        f"/leads/customer/{customer.id}",
        params={"status": "proposal"},
        headers=bearer(users["rep"]),
    ).json()
    assert [row["title"] for row in proposals["data"]] == ["Second"]

    admin = client.get(f"/leads/customer/{customer.id}", headers=bearer(users["admin"])).json()
    assert len(admin["data"]) == 3


def test_update_and_delete_lead(
    client: TestClient,
    db_session: Session,
    users: dict[str, User],
    customer: Customer,
) -> None:
    lead = make_lead(db_session, customer, users["rep"], title="Deal", status="new", value=10)

    updated = client.put(
        f"/leads/{lead.id}",
        json={"status": "negotiation", "value": 20},
        headers=bearer(users["rep"]),
    )
    assert updated.status_code == 200
    assert updated.json()["data"]["status"] == "negotiation"

    activity = db_session.scalar(select(Activity).where(Activity.type == "update", Activity.resource_id == lead.id))
    assert activity is not None
    assert activity.description == 'Updated lead "Deal" - changed: status, value'

    rep_delete = client.delete(f"/leads/{lead.id}", headers=bearer(users["rep"]))
    assert rep_delete.status_code == 403

    manager_delete = client.delete(f"/leads/{lead.id}", headers=bearer(users["manager"]))
    assert manager_delete.status_code == 200
    assert manager_delete.json()["message"] == "Lead deleted successfully"

    gone = client.get(f"/leads/{lead.id}", headers=bearer(users["admin"]))
    assert gone.status_code == 404
    assert gone.json()["message"] == "Lead not found"


def test_null_for_required_field_is_ignored(
    client: TestClient,
    db_session: Session,
    users: dict[str, User],
    customer: Customer,
) -> None:
    lead = make_lead(db_session, customer, users["rep"], title="Keep me")

    response = client.put(
        f"/leads/{lead.id}",
        json={"title": None, "description": "Details"},
        headers=bearer(users["rep"]),
    )
    assert response.status_code == 200
    assert response.json()["data"]["title"] == "Keep me"
    assert response.json()["data"]["description"] == "Details"

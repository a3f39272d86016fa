from __future__ import annotations

from collections.abc import Generator
from datetime import timedelta

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.auth.models import Team
from app.auth.service import AuthService
from app.core import celery_app
from app.core.config import get_settings
from app.core.database import Base
from app.crm.models import Customer, Lead
from app.models.activity import Activity
from app.seed import seed_demo_data
from app.services.audit import utcnow


@pytest.fixture(autouse=True)
def setup_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.setenv("PASSWORD_HASH_ITERATIONS", "1000")
    monkeypatch.setenv("ACTIVITY_RETENTION_DAYS", "30")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def session_factory() -> Generator[sessionmaker, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db_session(session_factory: sessionmaker) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


def test_seed_loads_demo_book_and_is_repeatable(db_session: Session) -> None:
    counts = seed_demo_data(db_session)
    assert counts == {"teams": 3, "users": 5, "customers": 5, "leads": 5}

    seed_demo_data(db_session)
    assert db_session.scalar(select(func.count(Customer.id))) == 5
    assert db_session.scalar(select(func.count(Lead.id))) == 5
    assert db_session.get(Team, "team-2").manager_id == "4"

    session = AuthService(get_settings()).login(db_session, "admin@crm.com", "admin123")
    assert session.user.role == "admin"
    assert session.user.team_id == "team-1"


def test_cleanup_task_uses_configured_retention(
    monkeypatch: pytest.MonkeyPatch,
    session_factory: sessionmaker,
    db_session: Session,
) -> None:
    seed_demo_data(db_session)
    db_session.add_all(
        [
            Activity(
                type="create",
                resource_type="customer",
                resource_id="1",
                description="old",
                user_id="1",
                created_at=utcnow() - timedelta(days=45),
            ),
            Activity(type="update", resource_type="customer", resource_id="1", description="recent", user_id="1"),
        ]
    )
    db_session.commit()
    monkeypatch.setattr(celery_app, "SessionLocal", session_factory)

    assert celery_app.cleanup_activities_task.run() == 1
    assert db_session.scalar(select(func.count(Activity.id))) == 1
    assert celery_app.celery_app.conf.beat_schedule["cleanup-activities-daily"]["task"] == "app.tasks.cleanup_activities"

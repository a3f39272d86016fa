"""Demo data: three teams, five users and a small book of customers and leads.

Run with ``python -m app.seed``. Existing rows are wiped first.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import delete
from sqlalchemy.orm import Session

from app.auth.models import RefreshToken, Team, User
from app.core.config import Settings, get_settings
from app.core.database import Base, SessionLocal, engine
from app.core.security import hash_password
from app.crm.models import Customer, Lead
from app.logging import configure_logging
from app.models.activity import Activity

logger = logging.getLogger("app.seed")

DEMO_TEAMS = [
    ("team-1", "Sales Team Alpha", "Primary sales team focusing on enterprise clients", "Sales", "3"),
    ("team-2", "Sales Team Beta", "Secondary sales team focusing on SMB clients", "Sales", "4"),
    ("team-3", "Marketing Team", "Marketing and lead generation team", "Marketing", "5"),
]

# id, name, email, password, role, team, department, phone
DEMO_USERS = [
    ("1", "Admin User", "admin@crm.com", "admin123", "admin", "team-1", "Management", "+1-555-0001"),
    ("2", "John Doe", "john@crm.com", "user123", "sales_rep", "team-1", "Sales", "+1-555-0002"),
    ("3", "Sarah Wilson", "sarah@crm.com", "manager123", "manager", "team-1", "Sales", "+1-555-0003"),
    ("4", "Mike Johnson", "mike@crm.com", "sales123", "sales_rep", "team-2", "Sales", "+1-555-0004"),
    ("5", "Emma Davis", "emma@crm.com", "marketing123", "sales_rep", "team-3", "Marketing", "+1-555-0005"),
]

DEMO_CUSTOMERS = [
    {
        "id": "1",
        "name": "Acme Corporation",
        "email": "contact@acme.com",
        "phone": "+1-555-0123",
        "status": "active",
        "tags": ["enterprise", "priority"],
        "notes": "Important client with multiple projects",
        "last_contact_date": "2024-01-15",
        "owner_id": "2",
        "team_id": "team-1",
        "source": "website",
        "value": 150000,
        "industry": "Technology",
    },
    {
        "id": "2",
        "name": "TechStart Inc",
        "email": "hello@techstart.com",
        "phone": "+1-555-0456",
        "status": "active",
        "tags": ["startup", "tech"],
        "notes": "Growing startup in the tech sector",
        "last_contact_date": "2024-01-10",
        "owner_id": "3",
        "team_id": "team-1",
        "source": "referral",
        "value": 75000,
        "industry": "Software",
    },
    {
        "id": "3",
        "name": "Global Solutions",
        "email": "info@globalsolutions.com",
        "phone": "+1-555-0789",
        "status": "inactive",
        "tags": ["consulting"],
        "notes": "Consulting firm, currently inactive",
        "last_contact_date": "2023-12-20",
        "owner_id": "4",
        "team_id": "team-2",
        "source": "cold_call",
        "value": 25000,
        "industry": "Consulting",
    },
    {
        "id": "4",
        "name": "Enterprise Corp",
        "email": "contact@enterprise.com",
        "phone": "+1-555-0100",
        "status": "active",
        "tags": ["enterprise", "long-term"],
        "notes": "Long-term enterprise client",
        "last_contact_date": "2024-01-20",
        "owner_id": "2",
        "team_id": "team-1",
        "source": "trade_show",
        "value": 300000,
        "industry": "Manufacturing",
    },
    {
        "id": "5",
        "name": "Innovate LLC",
        "email": "team@innovate.com",
        "phone": "+1-555-0200",
        "status": "prospect",
        "tags": ["prospect", "high-potential"],
        "notes": "Promising prospect, follow up needed",
        "last_contact_date": "2024-01-25",
        "owner_id": "5",
        "team_id": "team-3",
        "source": "marketing_campaign",
        "value": 50000,
        "industry": "Design",
    },
]

# id, title, description, customer, status, value, expected close, priority, source
DEMO_LEADS = [
    ("1", "Enterprise Software License", "Acme Corp needs enterprise software licensing for 500+ users",
     "1", "qualified", 150000, "2024-03-15", "high", "website"),
    ("2", "Cloud Migration Project", "TechStart Inc looking to migrate to cloud infrastructure",
     "2", "proposal", 75000, "2024-02-28", "medium", "referral"),
    ("3", "Consulting Services", "Global Solutions interested in our consulting services",
     "3", "new", 25000, "2024-04-10", "low", "cold_call"),
    ("4", "Manufacturing System Upgrade", "Enterprise Corp wants to upgrade their manufacturing systems",
     "4", "negotiation", 300000, "2024-02-15", "critical", "trade_show"),
    ("5", "Design Platform License", "Innovate LLC needs design platform licensing",
     "5", "new", 50000, "2024-03-30", "medium", "marketing_campaign"),
]


def _day(value: str) -> datetime:
    return datetime.fromisoformat(value).replace(tzinfo=timezone.utc)


def clear_data(session: Session) -> None:
    for model in (Activity, RefreshToken, Lead, Customer, User, Team):
        session.execute(delete(model), execution_options={"synchronize_session": False})
    session.commit()


def seed_demo_data(session: Session, settings: Settings | None = None) -> dict[str, int]:
    """Replace the store contents with the demo book; returns row counts."""

    settings = settings or get_settings()
    clear_data(session)

    for team_id, name, description, department, _ in DEMO_TEAMS:
        session.add(Team(id=team_id, name=name, description=description, department=department))
    session.flush()

    for user_id, name, email, password, role, team_id, department, phone in DEMO_USERS:
        session.add(
            User(
                id=user_id,
                name=name,
                email=email,
                password_hash=hash_password(password, settings.password_hash_iterations),
                role=role,
                team_id=team_id,
                department=department,
                phone=phone,
            )
        )
    session.flush()

    # Managers are set once their user rows exist.
    for team_id, _, _, _, manager_id in DEMO_TEAMS:
        session.get(Team, team_id).manager_id = manager_id

    for row in DEMO_CUSTOMERS:
        session.add(
            Customer(
                **{key: value for key, value in row.items() if key != "last_contact_date"},
                company=row["name"],
                last_contact_date=_day(row["last_contact_date"]),
                assigned_to=row["owner_id"],
                created_by=row["owner_id"],
                updated_by=row["owner_id"],
            )
        )
    session.flush()

    owners = {row["id"]: (row["owner_id"], row["team_id"]) for row in DEMO_CUSTOMERS}
    for lead_id, title, description, customer_id, status, value, close_date, priority, source in DEMO_LEADS:
        owner_id, team_id = owners[customer_id]
        session.add(
            Lead(
                id=lead_id,
                title=title,
                description=description,
                customer_id=customer_id,
                status=status,
                value=value,
                expected_close_date=_day(close_date),
                priority=priority,
                source=source,
                owner_id=owner_id,
                team_id=team_id,
                assigned_to=owner_id,
                created_by=owner_id,
                updated_by=owner_id,
            )
        )
    session.commit()

    counts = {
        "teams": len(DEMO_TEAMS),
        "users": len(DEMO_USERS),
        "customers": len(DEMO_CUSTOMERS),
        "leads": len(DEMO_LEADS),
    }
    logger.info("seed.completed", extra=counts)
    return counts


def main() -> None:
    configure_logging()
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        seed_demo_data(session)
    finally:
        session.close()


if __name__ == "__main__":
    main()

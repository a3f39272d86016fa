"""Activity log: the audit trail for mutations and session events.

Writes happen after the business commit and sit in their own failure boundary.
A failed write is logged, counted and rolled back; it is never raised to the
caller, so the operation that triggered it still succeeds.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import delete, func, inspect, select
from sqlalchemy.orm import Session

from app.core.context import RequestContext
from app.metrics import observe_activities_purged, observe_activity_written, observe_audit_write_failure
from app.models.activity import Activity, ActivityType, ResourceType

logger = logging.getLogger("app.audit")

IGNORED_DIFF_FIELDS = frozenset({"created_at", "updated_at", "updated_by"})
SECRET_FIELDS = frozenset({"password_hash", "login_attempts", "lock_until"})


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _json_safe(value: Any) -> Any:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (list, tuple)):
        return [_json_safe(item) for item in value]
    if isinstance(value, dict):
        return {str(key): _json_safe(item) for key, item in value.items()}
    return value


def snapshot_model(instance: Any, *, exclude: frozenset[str] = SECRET_FIELDS) -> dict[str, Any]:
    """Column values of an ORM instance as a JSON-safe dict."""

    mapper = inspect(instance).mapper
    return {
        attr.key: _json_safe(getattr(instance, attr.key))
        for attr in mapper.column_attrs
        if attr.key not in exclude
    }


def diff_snapshots(before: dict[str, Any], after: dict[str, Any]) -> dict[str, dict[str, Any]]:
    changes: dict[str, dict[str, Any]] = {}
    for key in sorted(set(before) | set(after)):
        if key in IGNORED_DIFF_FIELDS:
            continue
        old_value = before.get(key)
        new_value = after.get(key)
        if old_value != new_value:
            changes[key] = {"from": old_value, "to": new_value}
    return changes


def _display_name(snapshot: dict[str, Any] | None, fallback: str) -> str:
    if not snapshot:
        return fallback
    return str(snapshot.get("name") or snapshot.get("title") or snapshot.get("id") or fallback)


class ActivityWriter:
    def record(
        self,
        session: Session,
        *,
        activity_type: ActivityType,
        resource_type: ResourceType,
        resource_id: str,
        user_id: str,
        description: str,
        changes: dict[str, Any] | None = None,
        context: RequestContext | None = None,
    ) -> Activity | None:
        activity = Activity(
            type=activity_type.value,
            resource_type=resource_type.value,
            resource_id=str(resource_id),
            description=description,
            changes=changes,
            user_id=user_id,
            ip_address=context.ip_address if context else None,
            user_agent=context.user_agent if context else None,
        )
        try:
            session.add(activity)
            session.commit()
        except Exception as exc:
            session.rollback()
            observe_audit_write_failure(activity_type.value, resource_type.value)
            logger.exception(
                "audit.write_failed",
                extra={
                    "activity_type": activity_type.value,
                    "resource": resource_type.value,
                    "resource_id": str(resource_id),
                    "user_id": user_id,
                    "error": str(exc),
                },
            )
            return None

        observe_activity_written(activity_type.value, resource_type.value)
        return activity

    def record_change(
        self,
        session: Session,
        *,
        activity_type: ActivityType,
        resource_type: ResourceType,
        resource_id: str,
        user_id: str,
        before: dict[str, Any] | None = None,
        after: dict[str, Any] | None = None,
        context: RequestContext | None = None,
    ) -> Activity | None:
        label = resource_type.value
        changes: dict[str, Any]
        if activity_type is ActivityType.CREATE:
            changes = {"created": after}
            description = f'Created {label} "{_display_name(after, resource_id)}"'
        elif activity_type is ActivityType.DELETE:
            changes = {"deleted": before}
            description = f'Deleted {label} "{_display_name(before, resource_id)}"'
        else:
            changes = diff_snapshots(before or {}, after or {})
            description = f'Updated {label} "{_display_name(after or before, resource_id)}"'
            if changes:
                description += f" - changed: {', '.join(changes)}"

        return self.record(
            session,
            activity_type=activity_type,
            resource_type=resource_type,
            resource_id=resource_id,
            user_id=user_id,
            description=description,
            changes=changes,
            context=context,
        )

    def list_activities(
        self,
        session: Session,
        filters: dict[str, Any],
        *,
        page: int = 1,
        limit: int = 50,
    ) -> tuple[list[Activity], int]:
        stmt = select(Activity)
        for name in ("user_id", "resource_type", "resource_id", "type"):
            value = filters.get(name)
            if value:
                stmt = stmt.where(getattr(Activity, name) == value)
        if filters.get("start_date"):
            stmt = stmt.where(Activity.created_at >= filters["start_date"])
        if filters.get("end_date"):
            stmt = stmt.where(Activity.created_at <= filters["end_date"])

        total = session.scalar(select(func.count()).select_from(stmt.subquery())) or 0
        rows = session.scalars(
            stmt.order_by(Activity.created_at.desc(), Activity.id.desc()).offset((page - 1) * limit).limit(limit)
        ).all()
        return list(rows), int(total)

    def summarize_user(self, session: Session, user_id: str, days: int = 30) -> dict[str, Any]:
        since = utcnow() - timedelta(days=days)
        rows = session.execute(
            select(Activity.type, Activity.resource_type, func.count(Activity.id))
            .where(Activity.user_id == user_id, Activity.created_at >= since)
            .group_by(Activity.type, Activity.resource_type)
            .order_by(Activity.type, Activity.resource_type)
        ).all()

        by_type: dict[str, int] = {}
        by_resource_type: dict[str, int] = {}
        breakdown = []
        for activity_type, resource_type, count in rows:
            by_type[activity_type] = by_type.get(activity_type, 0) + count
            by_resource_type[resource_type] = by_resource_type.get(resource_type, 0) + count
            breakdown.append({"type": activity_type, "resource_type": resource_type, "count": count})

        return {
            "user_id": user_id,
            "days": days,
            "total": sum(by_type.values()),
            "by_type": by_type,
            "by_resource_type": by_resource_type,
            "breakdown": breakdown,
        }

    def cleanup(self, session: Session, days_to_keep: int = 90) -> int:
        cutoff = utcnow() - timedelta(days=days_to_keep)
        result = session.execute(
            delete(Activity).where(Activity.created_at < cutoff),
            execution_options={"synchronize_session": False},
        )
        session.commit()
        deleted_count = int(result.rowcount or 0)
        observe_activities_purged(deleted_count)
        logger.info("audit.cleanup", extra={"deleted_count": deleted_count})
        return deleted_count


activity_writer = ActivityWriter()

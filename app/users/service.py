from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from app.api.responses import Pagination
from app.auth.models import Team, User
from app.auth.service import AuthService
from app.core.context import RequestContext
from app.core.errors import NotFound, ValidationError
from app.models.activity import ActivityType, ResourceType
from app.platform.security.context import Principal
from app.platform.security.policies import Action, Resource
from app.platform.security.rls import ensure_permission
from app.services.audit import ActivityWriter, activity_writer, diff_snapshots, snapshot_model
from app.users.schemas import TeamCreate, TeamRead, UserListItem, UserUpdate

logger = logging.getLogger("app.users")

# Changes to these fields move a user between scopes.
ASSIGNMENT_FIELDS = frozenset({"role", "team_id"})


class UserAdminService:
    """User directory and team administration.

    Admins see every user; everyone else sees the members of their own team.
    Deactivation revokes every refresh token the user holds.
    """

    def __init__(self, auth_service: AuthService, writer: ActivityWriter | None = None) -> None:
        self.auth_service = auth_service
        self.writer = writer or activity_writer

    def _visible(self, stmt, principal: Principal):  # type: ignore[no-untyped-def]
        if principal.is_admin:
            return stmt
        if principal.team_id is None:
            return stmt.where(User.id == principal.id)
        return stmt.where(User.team_id == principal.team_id)

    def list_users(
        self,
        session: Session,
        principal: Principal,
        filters: dict[str, Any],
        page: int,
        limit: int,
    ) -> tuple[list[UserListItem], Pagination]:
        ensure_permission(principal, Resource.USERS, Action.READ)
        stmt = self._visible(select(User), principal)
        if filters.get("role"):
            stmt = stmt.where(User.role == filters["role"])
        if filters.get("team_id"):
            stmt = stmt.where(User.team_id == filters["team_id"])
        if filters.get("search"):
            pattern = f"%{filters['search']}%"
            stmt = stmt.where(or_(User.name.ilike(pattern), User.email.ilike(pattern)))

        total = session.scalar(select(func.count()).select_from(stmt.subquery())) or 0
        rows = session.scalars(stmt.order_by(User.name, User.id).offset((page - 1) * limit).limit(limit)).all()
        return [self._to_item(user) for user in rows], Pagination.build(page=page, limit=limit, total=int(total))

    def get_user(self, session: Session, principal: Principal, user_id: str) -> UserListItem:
        ensure_permission(principal, Resource.USERS, Action.READ)
        user = session.scalar(self._visible(select(User).where(User.id == user_id), principal))
        if user is None:
            raise NotFound("User not found")
        return self._to_item(user)

    def update_user(
        self,
        session: Session,
        principal: Principal,
        user_id: str,
        dto: UserUpdate,
        context: RequestContext | None = None,
    ) -> UserListItem:
        ensure_permission(principal, Resource.USERS, Action.UPDATE)
        user = session.get(User, user_id)
        if user is None:
            raise NotFound("User not found")

        payload = dto.model_dump(exclude_unset=True)
        if payload.get("team_id") is not None and session.get(Team, payload["team_id"]) is None:
            raise ValidationError.for_field("team_id", "Team not found")
        if payload.get("is_active") is False and user.id == principal.id:
            raise ValidationError.for_field("is_active", "You cannot deactivate your own account")

        before = snapshot_model(user)
        for field_name, value in payload.items():
            if value is None and field_name in {"name", "role", "is_active"}:
                continue
            setattr(user, field_name, value)
        if payload.get("is_active") is False:
            self.auth_service.revoke_all(session, user.id)
        session.commit()
        session.refresh(user)

        after = snapshot_model(user)
        changes = diff_snapshots(before, after)
        activity_type = ActivityType.ASSIGN if ASSIGNMENT_FIELDS & set(changes) else ActivityType.UPDATE
        verb = "Assigned" if activity_type is ActivityType.ASSIGN else "Updated"
        description = f'{verb} user "{user.name}"'
        if changes:
            description += f" - changed: {', '.join(changes)}"
        self.writer.record(
            session,
            activity_type=activity_type,
            resource_type=ResourceType.USER,
            resource_id=user.id,
            user_id=principal.id,
            description=description,
            changes=changes,
            context=context,
        )
        return self._to_item(user)

    def deactivate_user(
        self,
        session: Session,
        principal: Principal,
        user_id: str,
        context: RequestContext | None = None,
    ) -> None:
        ensure_permission(principal, Resource.USERS, Action.DELETE)
        if user_id == principal.id:
            raise ValidationError.for_field("id", "You cannot deactivate your own account")
        user = session.get(User, user_id)
        if user is None:
            raise NotFound("User not found")

        user.is_active = False
        revoked = self.auth_service.revoke_all(session, user.id)
        session.commit()
        logger.info("users.deactivated", extra={"user_id": principal.id, "resource_id": user.id})
        self.writer.record(
            session,
            activity_type=ActivityType.DELETE,
            resource_type=ResourceType.USER,
            resource_id=user.id,
            user_id=principal.id,
            description=f'Deactivated user "{user.name}"',
            changes={"is_active": {"from": True, "to": False}, "revoked_tokens": revoked},
            context=context,
        )

    def list_teams(self, session: Session, principal: Principal) -> list[TeamRead]:
        ensure_permission(principal, Resource.TEAMS, Action.READ)
        member_count = (
            select(func.count(User.id)).where(User.team_id == Team.id).correlate(Team).scalar_subquery()
        )
        rows = session.execute(select(Team, member_count).order_by(Team.name, Team.id)).all()
        return [self._to_team(team, count) for team, count in rows]

    def create_team(
        self,
        session: Session,
        principal: Principal,
        dto: TeamCreate,
        context: RequestContext | None = None,
    ) -> TeamRead:
        ensure_permission(principal, Resource.TEAMS, Action.CREATE)
        if dto.manager_id is not None and session.get(User, dto.manager_id) is None:
            raise ValidationError.for_field("manager_id", "Manager not found")

        team = Team(
            name=dto.name.strip(),
            description=dto.description,
            manager_id=dto.manager_id,
            department=dto.department,
        )
        session.add(team)
        session.commit()
        session.refresh(team)
        self.writer.record_change(
            session,
            activity_type=ActivityType.CREATE,
            resource_type=ResourceType.TEAM,
            resource_id=team.id,
            user_id=principal.id,
            after=snapshot_model(team),
            context=context,
        )
        return self._to_team(team, 0)

    @staticmethod
    def _to_item(user: User) -> UserListItem:
        item = UserListItem.model_validate(user)
        item.team_name = user.team.name if user.team is not None else None
        return item

    @staticmethod
    def _to_team(team: Team, member_count: int | None) -> TeamRead:
        read = TeamRead.model_validate(team)
        read.member_count = int(member_count or 0)
        return read

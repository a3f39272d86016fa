from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.auth.models import RefreshToken, User
from app.auth.schemas import AuthSession, RegisterRequest, UserRead, normalize_email
from app.core.config import Settings
from app.core.context import RequestContext
from app.core.errors import (
    AccountInactive,
    AccountLocked,
    Conflict,
    InvalidCredentials,
    InvalidRefreshToken,
    NotFound,
    TokenExpired,
    TokenInvalid,
)
from app.core.security import TokenCodec, hash_password, verify_password
from app.metrics import observe_lockout, observe_login_attempt, observe_token_refresh
from app.models.activity import ActivityType, ResourceType
from app.otel import get_tracer
from app.platform.security.context import Principal
from app.platform.security.policies import Role
from app.services.audit import ActivityWriter, activity_writer

logger = logging.getLogger("app.auth")
tracer = get_tracer("app.auth")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    # sqlite hands back naive datetimes; everything is stored in UTC.
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


@dataclass(slots=True)
class _IssuedPair:
    access_token: str
    refresh_token: str


class AuthService:
    """Credential checks, lockout and the access/refresh token lifecycle.

    Settings are injected once and never mutated. Every method that changes
    state commits before returning; the activity row is written afterwards
    through ``ActivityWriter`` and cannot undo that commit.
    """

    def __init__(self, settings: Settings, writer: ActivityWriter | None = None) -> None:
        self.settings = settings
        self.codec = TokenCodec(settings)
        self.writer = writer or activity_writer

    def login(
        self,
        session: Session,
        email: str,
        password: str,
        context: RequestContext | None = None,
    ) -> AuthSession:
        with tracer.start_as_current_span("auth.login") as span:
            user = session.scalar(select(User).where(User.email == normalize_email(email)))
            if user is None:
                observe_login_attempt("unknown_email")
                raise InvalidCredentials()
            span.set_attribute("user_id", user.id)

            now = utcnow()
            if self.is_locked(user, now):
                observe_login_attempt("locked")
                raise AccountLocked()

            if not user.is_active:
                observe_login_attempt("inactive")
                raise AccountInactive()

            if not verify_password(user.password_hash, password):
                self._register_failed_attempt(session, user, now)
                observe_login_attempt("bad_password")
                raise InvalidCredentials()

            user.login_attempts = 0
            user.lock_until = None
            user.last_login_at = now
            issued = self._issue_tokens(session, user, now)
            session.commit()
            session.refresh(user)

            observe_login_attempt("success")
            logger.info("auth.login_succeeded", extra={"user_id": user.id, "role": user.role})
            self.writer.record(
                session,
                activity_type=ActivityType.LOGIN,
                resource_type=ResourceType.USER,
                resource_id=user.id,
                user_id=user.id,
                description="User logged in",
                context=context,
            )
            return self._to_session(user, issued)

    def register(
        self,
        session: Session,
        dto: RegisterRequest,
        context: RequestContext | None = None,
    ) -> AuthSession:
        email = normalize_email(str(dto.email))
        if session.scalar(select(User.id).where(User.email == email)) is not None:
            raise Conflict("User with this email already exists")

        user = User(
            name=dto.name,
            email=email,
            password_hash=hash_password(dto.password, self.settings.password_hash_iterations),
            role=Role.SALES_REP.value,
            phone=dto.phone,
            department=dto.department,
            is_active=True,
        )
        session.add(user)
        try:
            session.flush()
        except IntegrityError as exc:
            session.rollback()
            raise Conflict("User with this email already exists") from exc

        issued = self._issue_tokens(session, user, utcnow())
        session.commit()
        session.refresh(user)

        logger.info("auth.registered", extra={"user_id": user.id, "role": user.role})
        self.writer.record(
            session,
            activity_type=ActivityType.CREATE,
            resource_type=ResourceType.USER,
            resource_id=user.id,
            user_id=user.id,
            description="User registered",
            context=context,
        )
        return self._to_session(user, issued)

    def refresh(self, session: Session, refresh_token: str | None) -> AuthSession:
        """Rotate a refresh token: the presented one is deleted and a new one persisted.

        Deletion and insertion share one transaction, so a crash in between
        leaves the old token valid rather than leaving no token at all.
        """

        with tracer.start_as_current_span("auth.refresh"):
            if not refresh_token:
                observe_token_refresh("missing")
                raise InvalidRefreshToken("Refresh token required")

            try:
                payload = self.codec.decode_refresh_token(refresh_token)
            except (TokenExpired, TokenInvalid) as exc:
                observe_token_refresh("invalid")
                raise InvalidRefreshToken() from exc

            now = utcnow()
            stored = session.scalar(
                select(RefreshToken).where(
                    RefreshToken.token == refresh_token,
                    RefreshToken.user_id == str(payload["user_id"]),
                    RefreshToken.expires_at > now,
                )
            )
            if stored is None:
                observe_token_refresh("revoked")
                logger.warning("auth.refresh_rejected", extra={"user_id": str(payload["user_id"]), "outcome": "revoked"})
                raise InvalidRefreshToken("Invalid or expired refresh token")

            user = session.scalar(select(User).where(User.id == stored.user_id, User.is_active.is_(True)))
            if user is None:
                observe_token_refresh("inactive")
                raise InvalidRefreshToken("User not found or inactive")

            session.delete(stored)
            issued = self._issue_tokens(session, user, now)
            session.commit()
            session.refresh(user)

            observe_token_refresh("success")
            return self._to_session(user, issued)

    def logout(
        self,
        session: Session,
        refresh_token: str | None,
        principal: Principal | None = None,
        context: RequestContext | None = None,
    ) -> None:
        if refresh_token:
            session.execute(
                delete(RefreshToken).where(RefreshToken.token == refresh_token),
                execution_options={"synchronize_session": False},
            )
            session.commit()

        if principal is not None:
            self.writer.record(
                session,
                activity_type=ActivityType.LOGOUT,
                resource_type=ResourceType.USER,
                resource_id=principal.id,
                user_id=principal.id,
                description="User logged out",
                context=context,
            )

    def authenticate_request(self, session: Session, bearer_token: str | None) -> Principal:
        if not bearer_token:
            raise TokenInvalid("Access token required")

        payload = self.codec.decode_access_token(bearer_token)
        user = session.get(User, str(payload["user_id"]))
        if user is None or not user.is_active:
            raise TokenInvalid("User not found or inactive")

        return Principal(
            id=user.id,
            email=user.email,
            role=Role(user.role),
            team_id=user.team_id,
            name=user.name,
        )

    def get_profile(self, session: Session, principal: Principal) -> UserRead:
        user = session.get(User, principal.id)
        if user is None:
            raise NotFound("User not found")
        return UserRead.model_validate(user)

    def revoke_all(self, session: Session, user_id: str) -> int:
        result = session.execute(
            delete(RefreshToken).where(RefreshToken.user_id == user_id),
            execution_options={"synchronize_session": False},
        )
        return int(result.rowcount or 0)

    @staticmethod
    def is_locked(user: User, now: datetime | None = None) -> bool:
        lock_until = as_utc(user.lock_until)
        return lock_until is not None and lock_until > (now or utcnow())

    def _register_failed_attempt(self, session: Session, user: User, now: datetime) -> None:
        if user.lock_until is not None:
            # The previous lock has run out; count this failure from scratch.
            user.login_attempts = 0
            user.lock_until = None

        user.login_attempts = (user.login_attempts or 0) + 1
        if user.login_attempts >= self.settings.max_login_attempts:
            user.lock_until = now + timedelta(minutes=self.settings.lock_time_minutes)
            observe_lockout()
            logger.warning("auth.account_locked", extra={"user_id": user.id, "attempts": user.login_attempts})
        else:
            logger.info("auth.login_failed", extra={"user_id": user.id, "attempts": user.login_attempts})
        session.commit()

    def _issue_tokens(self, session: Session, user: User, now: datetime) -> _IssuedPair:
        claims = {"user_id": user.id, "email": user.email, "role": user.role}
        access = self.codec.issue_access_token(claims)
        refresh = self.codec.issue_refresh_token(claims)

        session.add(RefreshToken(user_id=user.id, token=refresh.token, expires_at=refresh.expires_at))
        session.execute(
            delete(RefreshToken).where(RefreshToken.expires_at < now),
            execution_options={"synchronize_session": False},
        )
        return _IssuedPair(access_token=access.token, refresh_token=refresh.token)

    @staticmethod
    def _to_session(user: User, issued: _IssuedPair) -> AuthSession:
        return AuthSession(
            user=UserRead.model_validate(user),
            access_token=issued.access_token,
            refresh_token=issued.refresh_token,
        )

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import ExpiredSignatureError, JWTError, jwt
from werkzeug.security import check_password_hash, generate_password_hash

from app.core.config import Settings
from app.core.errors import TokenExpired, TokenInvalid


ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


def hash_password(password: str, iterations: int) -> str:
    return generate_password_hash(password, method=f"pbkdf2:sha256:{iterations}")


def verify_password(password_hash: str, password: str) -> bool:
    if not password_hash:
        return False
    return check_password_hash(password_hash, password)


@dataclass(slots=True)
class IssuedToken:
    token: str
    expires_at: datetime


class TokenCodec:
    """Signs and verifies access and refresh tokens.

    Both token kinds carry the same claim shape (``user_id``, ``email``, ``role``)
    and differ in signing secret, lifetime and the ``type`` claim.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    def issue_access_token(self, claims: dict[str, Any], expires_delta: timedelta | None = None) -> IssuedToken:
        lifetime = expires_delta or timedelta(minutes=self._settings.access_token_expire_minutes)
        return self._encode(claims, ACCESS_TOKEN_TYPE, self._settings.jwt_secret, lifetime)

    def issue_refresh_token(self, claims: dict[str, Any], expires_delta: timedelta | None = None) -> IssuedToken:
        lifetime = expires_delta or timedelta(days=self._settings.refresh_token_expire_days)
        return self._encode(claims, REFRESH_TOKEN_TYPE, self._settings.jwt_refresh_secret, lifetime)

    def decode_access_token(self, token: str) -> dict[str, Any]:
        return self._decode(token, ACCESS_TOKEN_TYPE, self._settings.jwt_secret)

    def decode_refresh_token(self, token: str) -> dict[str, Any]:
        return self._decode(token, REFRESH_TOKEN_TYPE, self._settings.jwt_refresh_secret)

    def _encode(self, claims: dict[str, Any], token_type: str, secret: str, lifetime: timedelta) -> IssuedToken:
        issued_at = datetime.now(timezone.utc)
        expires_at = issued_at + lifetime
        payload = {
            **claims,
            "sub": str(claims["user_id"]),
            "type": token_type,
            "jti": uuid.uuid4().hex,
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
        }
        token = jwt.encode(payload, secret, algorithm=self._settings.jwt_algorithm)
        return IssuedToken(token=token, expires_at=expires_at)

    def _decode(self, token: str, token_type: str, secret: str) -> dict[str, Any]:
        try:
            payload = jwt.decode(token, secret, algorithms=[self._settings.jwt_algorithm])
        except ExpiredSignatureError as exc:
            raise TokenExpired() from exc
        except JWTError as exc:
            raise TokenInvalid() from exc

        if payload.get("type") != token_type or not payload.get("user_id"):
            raise TokenInvalid()
        return payload

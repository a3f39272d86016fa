from __future__ import annotations

from dataclasses import dataclass

from app.platform.security.policies import Role


@dataclass(frozen=True, slots=True)
class Principal:
    """Authenticated user attached to a request after token verification."""

    id: str
    email: str
    role: Role
    team_id: str | None = None
    name: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

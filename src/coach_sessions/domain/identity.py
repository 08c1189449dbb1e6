"""Identidade do chamador: papel e permissões concedidas.

- Admin passa em qualquer checagem de papel
- `admin:all` concede todas as permissões
- A origem da identidade (token, sessão web) é responsabilidade externa
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class Role(StrEnum):
    USER = "user"
    COACH = "coach"
    ADMIN = "admin"


class Permission(StrEnum):
    """Permissões usadas pelas operações de sessão."""

    SESSION_CREATE = "session:create"
    SESSION_READ = "session:read"
    SESSION_UPDATE = "session:update"
    SESSION_CANCEL = "session:cancel"
    SESSION_START = "session:start"
    SESSION_END = "session:end"
    SESSION_RATE = "session:rate"
    ADMIN_ALL = "admin:all"


ROLE_PERMISSIONS: dict[Role, frozenset[str]] = {
    Role.USER: frozenset({
        Permission.SESSION_CREATE,
        Permission.SESSION_READ,
        Permission.SESSION_CANCEL,
        Permission.SESSION_RATE,
    }),
    Role.COACH: frozenset({
        Permission.SESSION_READ,
        Permission.SESSION_UPDATE,
        Permission.SESSION_CANCEL,
        Permission.SESSION_START,
        Permission.SESSION_END,
    }),
    Role.ADMIN: frozenset({Permission.ADMIN_ALL}),
}
"""Concessões padrão por papel."""


def permissions_for_role(role: Role | str) -> frozenset[str]:
    return ROLE_PERMISSIONS.get(Role(role), frozenset())


class Identity(BaseModel):
    """Chamador autenticado."""

    model_config = ConfigDict(frozen=True)

    user_id: str = Field(min_length=1)
    role: Role
    permissions: frozenset[str] = frozenset()

    @classmethod
    def for_role(cls, user_id: str, role: Role | str) -> Identity:
        """Identidade com as concessões padrão do papel."""
        return cls(user_id=user_id, role=role, permissions=permissions_for_role(role))

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN or Permission.ADMIN_ALL in self.permissions

    def has_role(self, *roles: Role | str) -> bool:
        return self.role == Role.ADMIN or self.role in roles

    def has_permission(self, permission: Permission | str) -> bool:
        return Permission.ADMIN_ALL in self.permissions or permission in self.permissions

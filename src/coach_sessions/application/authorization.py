"""Identidade do chamador e checagens de acesso.

A identidade vem de um IdentityProvider (contextvar por request, ou fixa em
testes). `require_access` centraliza as checagens feitas pelo ciclo de vida.
"""

from __future__ import annotations

import contextlib
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextvars import ContextVar

from coach_sessions.domain.errors import AuthRequiredError, PermissionDeniedError
from coach_sessions.domain.identity import Identity, Permission, Role
from coach_sessions.observability.logging import get_logger, mask_id

logger = get_logger(__name__)

_current_identity: ContextVar[Identity | None] = ContextVar("current_identity", default=None)


class IdentityProvider(ABC):
    """Fornece a identidade autenticada do contexto atual."""

    @abstractmethod
    def current_identity(self) -> Identity | None: ...


class ContextIdentityProvider(IdentityProvider):
    """Lê a identidade do contexto (definida com identity_scope)."""

    def current_identity(self) -> Identity | None:
        return _current_identity.get()


class StaticIdentityProvider(IdentityProvider):
    """Identidade fixa (scripts e testes)."""

    def __init__(self, identity: Identity | None = None) -> None:
        self.identity = identity

    def current_identity(self) -> Identity | None:
        return self.identity


@contextlib.contextmanager
def identity_scope(identity: Identity | None) -> Iterator[Identity | None]:
    """Define a identidade do chamador para o bloco.

    Uso:
        with identity_scope(Identity.for_role("c1", Role.COACH)):
            await lifecycle.accept_session(session_id)
    """
    token = _current_identity.set(identity)
    try:
        yield identity
    finally:
        _current_identity.reset(token)


def require_access(
    provider: IdentityProvider,
    operation: str,
    *,
    roles: tuple[Role, ...] = (),
    permissions: tuple[Permission, ...] = (),
) -> Identity:
    """Exige identidade com papel e permissões.

    Raises:
        AuthRequiredError: sem identidade
        PermissionDeniedError: papel ou permissão ausente
    """
    identity = provider.current_identity()
    if identity is None:
        logger.warning("auth_required", extra={"operation": operation})
        raise AuthRequiredError("Authentication required", {"operation": operation})

    if roles and not identity.has_role(*roles):
        logger.warning(
            "permission_denied_role",
            extra={
                "operation": operation,
                "user_id": mask_id(identity.user_id),
                "role": str(identity.role),
            },
        )
        raise PermissionDeniedError(
            f"Role {identity.role} cannot perform {operation}",
            {
                "operation": operation,
                "role": str(identity.role),
                "required_roles": [str(r) for r in roles],
            },
        )

    missing = [str(p) for p in permissions if not identity.has_permission(p)]
    if missing:
        logger.warning(
            "permission_denied_permission",
            extra={"operation": operation, "user_id": mask_id(identity.user_id), "missing": missing},
        )
        raise PermissionDeniedError(
            "Insufficient permissions",
            {"operation": operation, "missing_permissions": missing},
        )

    return identity

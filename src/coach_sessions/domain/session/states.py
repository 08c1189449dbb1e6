"""Status canônicos de uma sessão de coaching.

- Toda sessão nasce em REQUESTED
- COMPLETED e CANCELLED são terminais (sem transições posteriores)
- Transições são explícitas (ver transitions.py)
"""

from __future__ import annotations

from enum import StrEnum


class SessionStatus(StrEnum):
    """5 status de uma sessão (conjunto fechado)."""

    REQUESTED = "requested"
    """Usuário pediu a sessão; aguardando o coach."""

    ACCEPTED = "accepted"
    """Coach aceitou; aguardando início."""

    IN_PROGRESS = "in_progress"
    """Sessão em andamento (contagem de 20 minutos)."""

    COMPLETED = "completed"
    """Sessão encerrada normalmente; pode ser avaliada."""

    CANCELLED = "cancelled"
    """Sessão cancelada ou recusada."""


TERMINAL_STATUSES = frozenset({
    SessionStatus.COMPLETED,
    SessionStatus.CANCELLED,
})
"""Status que encerram a sessão (sem transições posteriores)."""

NON_TERMINAL_STATUSES = frozenset({
    s for s in SessionStatus if s not in TERMINAL_STATUSES
})
"""Status que permitem transições posteriores."""

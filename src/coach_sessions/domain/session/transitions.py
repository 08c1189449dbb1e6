"""Tabela de transições de status da sessão.

- ALLOWED_TRANSITIONS[current] = conjunto de destinos permitidos
- Status terminais não têm transições de saída
- validate_transition é puro: sem side effects, nunca lança exceção
"""

from __future__ import annotations

from coach_sessions.domain.errors import InvalidTransitionError
from coach_sessions.domain.session.states import TERMINAL_STATUSES, SessionStatus

ALLOWED_TRANSITIONS: dict[SessionStatus, frozenset[SessionStatus]] = {
    SessionStatus.REQUESTED: frozenset({SessionStatus.ACCEPTED, SessionStatus.CANCELLED}),
    SessionStatus.ACCEPTED: frozenset({SessionStatus.IN_PROGRESS, SessionStatus.CANCELLED}),
    SessionStatus.IN_PROGRESS: frozenset({SessionStatus.COMPLETED, SessionStatus.CANCELLED}),
    # === Terminais: SEM transições de saída ===
    SessionStatus.COMPLETED: frozenset(),
    SessionStatus.CANCELLED: frozenset(),
}


def allowed_targets(current: SessionStatus) -> frozenset[SessionStatus]:
    """Destinos permitidos a partir de `current`."""
    return ALLOWED_TRANSITIONS.get(SessionStatus(current), frozenset())


def validate_transition(current: SessionStatus, target: SessionStatus) -> tuple[bool, str]:
    """Valida se uma transição é permitida.

    Retorna:
    - (True, ""): transição válida
    - (False, motivo): transição inválida
    """
    if current in TERMINAL_STATUSES:
        return False, f"Terminal status {current} has no transitions"

    if target not in allowed_targets(current):
        return False, f"Cannot transition from {current} to {target}"

    return True, ""


def ensure_transition(current: SessionStatus, target: SessionStatus) -> None:
    """Como validate_transition, mas levanta InvalidTransitionError."""
    ok, reason = validate_transition(current, target)
    if not ok:
        raise InvalidTransitionError(
            reason,
            {
                "current_status": str(current),
                "target_status": str(target),
                "allowed_transitions": sorted(str(s) for s in allowed_targets(current)),
            },
        )

"""Sessão de coaching: modelo, status, transições, eventos e conversões."""

from coach_sessions.domain.session.events import (
    CoachEventType,
    CoachRatingUpdated,
    LifecycleEvent,
    SessionEventType,
)
from coach_sessions.domain.session.models import Session
from coach_sessions.domain.session.policy import DEFAULT_POLICY, SessionPolicy
from coach_sessions.domain.session.states import (
    NON_TERMINAL_STATUSES,
    TERMINAL_STATUSES,
    SessionStatus,
)
from coach_sessions.domain.session.transformer import SessionTransformer
from coach_sessions.domain.session.transitions import (
    ALLOWED_TRANSITIONS,
    ensure_transition,
    validate_transition,
)

__all__ = [
    "ALLOWED_TRANSITIONS",
    "CoachEventType",
    "CoachRatingUpdated",
    "DEFAULT_POLICY",
    "LifecycleEvent",
    "NON_TERMINAL_STATUSES",
    "Session",
    "SessionEventType",
    "SessionPolicy",
    "SessionStatus",
    "SessionTransformer",
    "TERMINAL_STATUSES",
    "ensure_transition",
    "validate_transition",
]

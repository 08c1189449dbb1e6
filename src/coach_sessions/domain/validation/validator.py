"""Validador de sessões: regras por campo + regras de negócio.

Registro campo → regras ordenadas. Mutações (add_rule, clear_rules) trocam o
mapeamento inteiro sob lock (copy-on-write); validate() lê um snapshot
imutável, então validações concorrentes nunca veem um registro pela metade.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from coach_sessions.domain.errors import ValidationError
from coach_sessions.domain.session.policy import DEFAULT_POLICY, SessionPolicy
from coach_sessions.domain.session.states import SessionStatus
from coach_sessions.domain.session.transitions import ensure_transition
from coach_sessions.domain.validation.rules import (
    DateRule,
    FutureDateRule,
    OneOfRule,
    RangeRule,
    RequiredRule,
    StringLengthRule,
    ValidationRule,
)
from coach_sessions.observability.logging import get_logger, mask_id

if TYPE_CHECKING:
    from coach_sessions.domain.session.models import Session

logger = get_logger(__name__)

RuleRegistry = Mapping[str, tuple[ValidationRule, ...]]


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


def default_rules(policy: SessionPolicy = DEFAULT_POLICY) -> dict[str, tuple[ValidationRule, ...]]:
    """Registro padrão, na ordem em que os campos são validados.

    `id` fica de fora: é vazio antes da criação e atribuído pelo store.
    """
    required = RequiredRule()
    date = DateRule()
    party_id = StringLengthRule(1, policy.party_id_max_length)
    return {
        "user_id": (required, party_id),
        "coach_id": (required, party_id),
        "topic": (required, StringLengthRule(policy.topic_min_length, policy.topic_max_length)),
        "description": (StringLengthRule(None, policy.description_max_length),),
        "status": (required, OneOfRule(frozenset(s.value for s in SessionStatus))),
        "rating": (RangeRule(policy.rating_min, policy.rating_max),),
        "start_time": (date,),
        "end_time": (date,),
        "scheduled_time": (date,),
        "created_at": (required, date),
        "updated_at": (required, date),
    }


class SessionValidator:
    """Aplica regras de campo e de negócio a uma Session candidata."""

    def __init__(
        self,
        policy: SessionPolicy = DEFAULT_POLICY,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._policy = policy
        self._clock = clock
        self._lock = threading.Lock()
        self._rules: RuleRegistry = MappingProxyType(default_rules(policy))

    @property
    def policy(self) -> SessionPolicy:
        return self._policy

    def validate(self, session: Session) -> None:
        """Valida campos (na ordem de registro) e depois regras de negócio.

        Raises:
            ValidationError: primeira regra violada
        """
        snapshot = self._rules
        session_id = mask_id(session.id)
        logger.debug("session_validation_started", extra={"session_id": session_id})

        try:
            for field, rules in snapshot.items():
                value = getattr(session, field, None)
                for rule in rules:
                    rule.validate(value, field)
            self._validate_business_rules(session)
        except ValidationError as exc:
            logger.warning(
                "session_validation_failed",
                extra={
                    "session_id": session_id,
                    "field": exc.context.get("field"),
                    "reason": exc.message,
                },
            )
            raise

        logger.debug("session_validation_ok", extra={"session_id": session_id})

    def _validate_business_rules(self, session: Session) -> None:
        start, end = session.start_time, session.end_time
        ceiling = self._policy.duration_minutes

        if start is not None and end is not None:
            elapsed_minutes = (end - start).total_seconds() / 60
            if elapsed_minutes > ceiling:
                raise ValidationError(
                    f"Session duration cannot exceed {ceiling} minutes",
                    {
                        "session_id": session.id,
                        "duration_minutes": round(elapsed_minutes, 2),
                        "max_duration_minutes": ceiling,
                    },
                )
            if end <= start:
                raise ValidationError(
                    "Session end time must be after start time",
                    {
                        "session_id": session.id,
                        "start_time": start.isoformat(),
                        "end_time": end.isoformat(),
                    },
                )

        if session.rating is not None and session.status != SessionStatus.COMPLETED:
            raise ValidationError(
                "Only completed sessions can be rated",
                {"session_id": session.id, "status": str(session.status), "rating": session.rating},
            )

        if session.status == SessionStatus.CANCELLED and start is not None:
            raise ValidationError(
                "Cancelled sessions cannot carry a start time",
                {"session_id": session.id, "start_time": start.isoformat()},
            )

    def validate_creation_request(self, request: Any) -> None:
        """Valida o pedido de criação (antes de existir Session).

        Aceita qualquer objeto com user_id, coach_id, topic, description e
        scheduled_time. scheduled_time, quando informado, deve estar no futuro.
        """
        policy = self._policy
        checks: tuple[tuple[str, tuple[ValidationRule, ...]], ...] = (
            ("user_id", (RequiredRule(), StringLengthRule(1, policy.party_id_max_length))),
            ("coach_id", (RequiredRule(), StringLengthRule(1, policy.party_id_max_length))),
            (
                "topic",
                (RequiredRule(), StringLengthRule(policy.topic_min_length, policy.topic_max_length)),
            ),
            ("description", (StringLengthRule(None, policy.description_max_length),)),
            ("scheduled_time", (FutureDateRule(self._clock),)),
        )
        try:
            for field, rules in checks:
                value = getattr(request, field, None)
                for rule in rules:
                    rule.validate(value, field)
        except ValidationError as exc:
            logger.warning(
                "session_creation_request_invalid",
                extra={"field": exc.context.get("field"), "reason": exc.message},
            )
            raise

    def validate_status_transition(self, current: SessionStatus, target: SessionStatus) -> None:
        """Levanta InvalidTransitionError se current → target não é permitido."""
        ensure_transition(current, target)
        logger.debug(
            "session_status_transition_validated",
            extra={"from_status": str(current), "to_status": str(target)},
        )

    # === Registro extensível ===

    def add_rule(self, field: str, rule: ValidationRule) -> None:
        """Acrescenta `rule` ao fim das regras de `field` (não substitui)."""
        with self._lock:
            updated = dict(self._rules)
            updated[field] = (*updated.get(field, ()), rule)
            self._rules = MappingProxyType(updated)
        logger.debug("validation_rule_added", extra={"field": field, "rule": type(rule).__name__})

    def clear_rules(self, field: str | None = None) -> None:
        """Remove as regras de `field` (ou todas, se None)."""
        with self._lock:
            if field is None:
                self._rules = MappingProxyType({})
            else:
                updated = dict(self._rules)
                updated.pop(field, None)
                self._rules = MappingProxyType(updated)
        logger.debug("validation_rules_cleared", extra={"field": field or "*"})

    def get_rules(self, field: str) -> tuple[ValidationRule, ...]:
        return self._rules.get(field, ())

    def fields(self) -> tuple[str, ...]:
        """Campos registrados, na ordem de validação."""
        return tuple(self._rules)

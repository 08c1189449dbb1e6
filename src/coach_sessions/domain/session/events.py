"""Eventos publicados no barramento a cada transição de sessão.

- O nome do evento segue a operação que o produziu (kebab-case)
- Todo evento carrega timestamp ISO e o payload atualizado da sessão
- Eventos são imutáveis
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import UTC, datetime
from enum import StrEnum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

if TYPE_CHECKING:
    from coach_sessions.domain.session.models import Session


def _freeze(value: Any) -> Any:
    if isinstance(value, Mapping):
        return MappingProxyType({key: _freeze(item) for key, item in value.items()})
    if isinstance(value, list | tuple):
        return tuple(_freeze(item) for item in value)
    return value


def _thaw(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {key: _thaw(item) for key, item in value.items()}
    if isinstance(value, tuple):
        return [_thaw(item) for item in value]
    return value


class SessionEventType(StrEnum):
    """Eventos do ciclo de vida da sessão."""

    SESSION_REQUESTED = "session-requested"
    """Usuário pediu uma sessão (create)."""

    SESSION_ACCEPTED = "session-accepted"
    """Coach aceitou o pedido."""

    SESSION_STARTED = "session-started"
    """Contagem de 20 minutos iniciada."""

    SESSION_ENDED = "session-ended"
    """Sessão concluída (inclui duração em minutos)."""

    SESSION_CANCELLED = "session-cancelled"
    """Sessão cancelada ou recusada pelo coach."""

    SESSION_RATED = "session-rated"
    """Usuário avaliou a sessão concluída."""

    SESSION_TIME_WARNING = "session-time-warning"
    """Sessão em andamento entrou nos minutos finais."""


class CoachEventType(StrEnum):
    """Eventos de estatística de coach (derivados de eventos de sessão)."""

    COACH_RATING_UPDATED = "coach-rating-updated"


class LifecycleEvent(BaseModel):
    """Evento imutável entregue aos assinantes do barramento.

    `session` e `details` são mapeamentos somente leitura: o mesmo evento
    é entregue a todos os assinantes.
    """

    model_config = ConfigDict(frozen=True)

    event_type: SessionEventType
    timestamp: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))
    session_id: str
    user_id: str
    coach_id: str
    session: Mapping[str, Any]
    details: Mapping[str, Any] = Field(default_factory=lambda: MappingProxyType({}))

    @field_validator("session", "details", mode="after")
    @classmethod
    def freeze_mappings(cls, value: Mapping[str, Any]) -> Mapping[str, Any]:
        return _freeze(value)

    @field_serializer("session", "details")
    def serialize_mappings(self, value: Mapping[str, Any]) -> dict[str, Any]:
        return _thaw(value)

    @classmethod
    def for_session(
        cls,
        event_type: SessionEventType,
        session: Session,
        timestamp: datetime,
        **details: Any,
    ) -> LifecycleEvent:
        """Monta o evento a partir da sessão já atualizada."""
        from coach_sessions.domain.session.transformer import SessionTransformer

        return cls(
            event_type=event_type,
            timestamp=timestamp,
            session_id=session.id,
            user_id=session.user_id,
            coach_id=session.coach_id,
            session=SessionTransformer.to_wire(session),
            details=details,
        )

    def to_payload(self) -> dict[str, Any]:
        """Payload JSON-safe (ISO timestamps) para canais de notificação."""
        return self.model_dump(mode="json")


class CoachRatingUpdated(BaseModel):
    """Média de avaliação de um coach após nova avaliação de sessão."""

    model_config = ConfigDict(frozen=True)

    coach_id: str
    new_rating: float
    previous_rating: float
    total_ratings: int
    rated_by: str
    rated_at: datetime
    session_id: str

"""Modelo de sessão (Session).

Session é um valor imutável:
- Uma sessão = um id opaco atribuído pelo store ("" antes da criação)
- Mudanças de status acontecem apenas via SessionLifecycle (copy_with)
- Consultas derivadas são puras; as dependentes de tempo recebem `now`
"""

from __future__ import annotations

import math
from datetime import UTC, datetime, timedelta
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from coach_sessions.domain.session.policy import (
    SESSION_DURATION_MINUTES,
    SESSION_WARNING_MINUTES,
)
from coach_sessions.domain.session.states import TERMINAL_STATUSES, SessionStatus


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


def _round_minutes(delta: timedelta) -> int:
    """Minutos inteiros, arredondando meio minuto para cima."""
    return math.floor(delta.total_seconds() / 60 + 0.5)


class Session(BaseModel):
    """Sessão de coaching entre um usuário e um coach."""

    model_config = ConfigDict(frozen=True)

    id: str = ""
    user_id: str
    coach_id: str
    topic: str
    description: str | None = None
    status: SessionStatus = SessionStatus.REQUESTED
    start_time: datetime | None = None
    end_time: datetime | None = None
    scheduled_time: datetime | None = None
    rating: int | None = None
    feedback: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    user_notes: str | None = None
    coach_notes: str | None = None
    cancellation_reason: str | None = None

    # === Status ===

    def is_active(self) -> bool:
        return self.status == SessionStatus.IN_PROGRESS

    def is_completed(self) -> bool:
        return self.status == SessionStatus.COMPLETED

    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def can_be_rated(self) -> bool:
        """Concluída e ainda sem avaliação."""
        return self.is_completed() and self.rating is None

    def can_be_started(self) -> bool:
        """Aceita e sem start_time."""
        return self.status == SessionStatus.ACCEPTED and self.start_time is None

    def can_be_ended(self) -> bool:
        """Em andamento com start_time.

        Enquanto IN_PROGRESS, end_time guarda o prazo agendado no início
        (start_time + teto); o encerramento efetivo é marcado pelo status.
        """
        return self.is_active() and self.start_time is not None

    # === Tempo ===

    def duration_minutes(self) -> int:
        """Minutos entre start_time e end_time; 0 se algum faltar."""
        if self.start_time is None or self.end_time is None:
            return 0
        return _round_minutes(self.end_time - self.start_time)

    def remaining_minutes(
        self,
        now: datetime | None = None,
        ceiling_minutes: int = SESSION_DURATION_MINUTES,
    ) -> int:
        """Minutos restantes até o teto (só faz sentido em andamento)."""
        if not self.is_active() or self.start_time is None:
            return 0
        now = now or _utcnow()
        remaining = timedelta(minutes=ceiling_minutes) - (now - self.start_time)
        return max(0, _round_minutes(remaining))

    def is_about_to_end(
        self,
        now: datetime | None = None,
        warning_minutes: int = SESSION_WARNING_MINUTES,
        ceiling_minutes: int = SESSION_DURATION_MINUTES,
    ) -> bool:
        remaining = self.remaining_minutes(now, ceiling_minutes)
        return 0 < remaining <= warning_minutes

    def has_exceeded_time_limit(
        self,
        now: datetime | None = None,
        ceiling_minutes: int = SESSION_DURATION_MINUTES,
    ) -> bool:
        return self.is_active() and self.remaining_minutes(now, ceiling_minutes) <= 0

    def formatted_duration(self) -> str:
        duration = self.duration_minutes()
        return f"{duration} min" if duration > 0 else "Not started"

    def formatted_remaining_time(
        self,
        now: datetime | None = None,
        ceiling_minutes: int = SESSION_DURATION_MINUTES,
    ) -> str:
        remaining = self.remaining_minutes(now, ceiling_minutes)
        if remaining <= 0:
            return "Time expired" if self.is_active() else "Not active"
        return f"{remaining} min remaining"

    # === Participantes ===

    def belongs_to_user(self, user_id: str) -> bool:
        return self.user_id == user_id

    def belongs_to_coach(self, coach_id: str) -> bool:
        return self.coach_id == coach_id

    def is_participant(self, party_id: str) -> bool:
        return self.belongs_to_user(party_id) or self.belongs_to_coach(party_id)

    def copy_with(self, **changes: Any) -> Session:
        """Nova sessão com os campos alterados (o original não muda)."""
        return self.model_copy(update=changes)

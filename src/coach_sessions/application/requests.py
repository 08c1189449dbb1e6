"""DTOs de entrada/saída das operações de SessionLifecycle."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from coach_sessions.domain.session.models import Session


class CreateSessionRequest(BaseModel):
    """Pedido de sessão feito pelo usuário.

    Sem restrições de tamanho aqui: o SessionValidator aplica as regras e
    responde com VALIDATION_ERROR.
    """

    model_config = ConfigDict(frozen=True)

    user_id: str
    coach_id: str
    topic: str
    description: str | None = None
    scheduled_time: datetime | None = None


class SessionListResult(BaseModel):
    """Página de sessões já convertidas e validadas."""

    model_config = ConfigDict(frozen=True)

    sessions: list[Session] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 10

    @property
    def has_more(self) -> bool:
        return self.page * self.limit < self.total

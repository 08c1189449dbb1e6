"""Protocolo de domínio para o session store (representação wire).

O store é a fonte da verdade (API remota). Métodos trocam dicts wire
(snake_case, datas ISO-8601); a conversão para Session fica no transformer.
Falhas de I/O devem ser levantadas como ExternalStoreError.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class SessionPage(BaseModel):
    """Página de sessões (wire) retornada por list()."""

    model_config = ConfigDict(frozen=True)

    items: list[dict[str, Any]] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 10

    @property
    def has_more(self) -> bool:
        return self.page * self.limit < self.total


class AsyncSessionStoreProtocol(ABC):
    """Contrato assíncrono create/read/patch/list por session id."""

    @abstractmethod
    async def create(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Cria a sessão e retorna a representação wire com id e timestamps."""

    @abstractmethod
    async def get(self, session_id: str) -> dict[str, Any] | None:
        """Retorna a sessão wire ou None se não existir."""

    @abstractmethod
    async def patch(self, session_id: str, changes: dict[str, Any]) -> dict[str, Any]:
        """Aplica alterações parciais (None limpa o campo) e retorna a sessão.

        Raises:
            SessionNotFoundError: id inexistente
        """

    @abstractmethod
    async def list(
        self,
        *,
        user_id: str | None = None,
        coach_id: str | None = None,
        status: str | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> SessionPage:
        """Lista sessões filtradas, mais recentes primeiro."""

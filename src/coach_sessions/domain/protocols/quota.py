"""Protocolo de domínio para a quota de sessões do plano do usuário."""

from __future__ import annotations

from abc import ABC, abstractmethod


class QuotaProviderProtocol(ABC):
    """Informa quantas sessões o usuário ainda pode solicitar."""

    @abstractmethod
    async def available_sessions(self, user_id: str) -> int: ...

"""Provedores de quota de sessões (plano de assinatura do usuário)."""

from __future__ import annotations

import logging
from urllib.parse import quote

from coach_sessions.domain.errors import ExternalStoreError
from coach_sessions.domain.protocols.quota import QuotaProviderProtocol
from coach_sessions.infra.http import HttpClient, HttpError
from coach_sessions.observability.logging import get_logger, mask_id

logger: logging.Logger = get_logger(__name__)


class StaticQuotaProvider(QuotaProviderProtocol):
    """Quota fixa, com sobrescrita por usuário (dev/testes)."""

    def __init__(self, default: int, overrides: dict[str, int] | None = None) -> None:
        self._default = default
        self._overrides = dict(overrides or {})

    def set_quota(self, user_id: str, available: int) -> None:
        self._overrides[user_id] = available

    async def available_sessions(self, user_id: str) -> int:
        return self._overrides.get(user_id, self._default)


class HttpQuotaProvider(QuotaProviderProtocol):
    """Lê `availableSessions` de GET /users/{id}/subscription."""

    def __init__(self, client: HttpClient) -> None:
        self._client = client

    async def close(self) -> None:
        await self._client.close()

    async def available_sessions(self, user_id: str) -> int:
        try:
            response = await self._client.get(f"/users/{quote(user_id, safe='')}/subscription")
        except HttpError as exc:
            logger.error(
                "subscription_lookup_failed",
                extra={"user_id": mask_id(user_id), "status_code": exc.status_code},
            )
            raise ExternalStoreError(
                "Subscription lookup failed",
                {"user_id": user_id, "status_code": exc.status_code},
                cause=exc,
                is_retryable=exc.is_retryable,
            ) from exc

        try:
            body = response.json()
        except ValueError as exc:
            raise ExternalStoreError(
                "Subscription service returned invalid JSON", {"user_id": user_id}, cause=exc
            ) from exc

        available = body.get("availableSessions") if isinstance(body, dict) else None
        # Ausente ou inválido conta como zero sessões
        if isinstance(available, bool) or not isinstance(available, int):
            return 0
        return available

"""Camada de infraestrutura: adapters para serviços externos.

Este módulo exporta as factories principais:

- Session: InMemorySessionStore, HttpSessionStore, create_session_store
- Quota: StaticQuotaProvider, HttpQuotaProvider, create_quota_provider
- HTTP: HttpClient

Uso típico:
    from coach_sessions.infra import create_session_store

Infraestrutura não decide regra de negócio; domínio não conhece infraestrutura.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from coach_sessions.domain.protocols import AsyncSessionStoreProtocol, QuotaProviderProtocol
from coach_sessions.infra.http import (
    HttpClient,
    HttpClientConfig,
    HttpError,
    create_http_client,
)
from coach_sessions.infra.quota import HttpQuotaProvider, StaticQuotaProvider
from coach_sessions.infra.session_store_http import HttpSessionStore
from coach_sessions.infra.session_store_memory import InMemorySessionStore
from coach_sessions.observability.logging import get_logger

if TYPE_CHECKING:
    import httpx

    from coach_sessions.config.settings import Settings

logger: logging.Logger = get_logger(__name__)


def create_session_store(
    settings: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    client: HttpClient | None = None,
) -> AsyncSessionStoreProtocol:
    """Factory para criar o session store apropriado.

    Usa settings.session_store_backend:
    - "memory": InMemorySessionStore (dev/testes)
    - "http": HttpSessionStore (API remota); usa `client` se informado

    Raises:
        ValueError: backend não reconhecido
    """
    if settings is None:
        from coach_sessions.config.settings import get_settings

        settings = get_settings()

    backend = settings.session_store_backend.lower()
    if backend == "memory":
        logger.info("Using InMemorySessionStore (dev/tests only)")
        return InMemorySessionStore()

    if backend == "http":
        logger.info("Using HttpSessionStore", extra={"base_url": settings.session_store_base_url})
        return HttpSessionStore(client or create_http_client(settings, transport=transport))

    raise ValueError(f"Unknown session store backend: {backend}")


def create_quota_provider(
    settings: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    client: HttpClient | None = None,
) -> QuotaProviderProtocol:
    """Quota via API de assinatura (backend http) ou fixa (memory)."""
    if settings is None:
        from coach_sessions.config.settings import get_settings

        settings = get_settings()

    if settings.session_store_backend.lower() == "http":
        return HttpQuotaProvider(client or create_http_client(settings, transport=transport))
    return StaticQuotaProvider(settings.default_session_quota)


__all__ = [
    "HttpClient",
    "HttpClientConfig",
    "HttpError",
    "HttpQuotaProvider",
    "HttpSessionStore",
    "InMemorySessionStore",
    "StaticQuotaProvider",
    "create_http_client",
    "create_quota_provider",
    "create_session_store",
]

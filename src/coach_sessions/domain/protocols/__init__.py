"""Re-exports dos Protocolos de domínio para uso por Application."""

from __future__ import annotations

from coach_sessions.domain.protocols.quota import QuotaProviderProtocol
from coach_sessions.domain.protocols.session_store import (
    AsyncSessionStoreProtocol,
    SessionPage,
)

__all__ = [
    "AsyncSessionStoreProtocol",
    "QuotaProviderProtocol",
    "SessionPage",
]

"""Implementação de session store em memória (apenas dev/testes)."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from coach_sessions.domain.errors import SessionNotFoundError
from coach_sessions.domain.protocols.session_store import (
    AsyncSessionStoreProtocol,
    SessionPage,
)
from coach_sessions.domain.session.states import SessionStatus
from coach_sessions.domain.session.transformer import WIRE_FIELDS
from coach_sessions.observability.logging import get_logger, mask_id
from coach_sessions.utils.ids import new_session_id

logger: logging.Logger = get_logger(__name__)

_IMMUTABLE_FIELDS = frozenset({"id", "created_at"})


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class InMemorySessionStore(AsyncSessionStoreProtocol):
    """Armazenamento em memória (não usar em produção).

    Guarda dicts wire; cada leitura devolve uma cópia.
    """

    def __init__(self, clock: Callable[[], datetime] = _utcnow) -> None:
        self._clock = clock
        self._sessions: dict[str, dict[str, Any]] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    async def create(self, payload: dict[str, Any]) -> dict[str, Any]:
        now = self._clock().isoformat()
        record: dict[str, Any] = dict.fromkeys(WIRE_FIELDS)
        record.update({k: v for k, v in payload.items() if k in WIRE_FIELDS})
        record["id"] = new_session_id()
        record["status"] = record["status"] or SessionStatus.REQUESTED.value
        record["created_at"] = now
        record["updated_at"] = now
        self._sessions[record["id"]] = record
        logger.debug("Session created (in-memory)", extra={"session_id": mask_id(record["id"])})
        return dict(record)

    async def get(self, session_id: str) -> dict[str, Any] | None:
        record = self._sessions.get(session_id)
        if record is None:
            logger.debug("Session not found (in-memory)", extra={"session_id": mask_id(session_id)})
            return None
        return dict(record)

    async def patch(self, session_id: str, changes: dict[str, Any]) -> dict[str, Any]:
        record = self._sessions.get(session_id)
        if record is None:
            raise SessionNotFoundError("Session not found", {"session_id": session_id})

        updated = dict(record)
        updated.update(
            {k: v for k, v in changes.items() if k in WIRE_FIELDS and k not in _IMMUTABLE_FIELDS}
        )
        updated["updated_at"] = changes.get("updated_at") or self._clock().isoformat()
        self._sessions[session_id] = updated
        logger.debug(
            "Session patched (in-memory)",
            extra={"session_id": mask_id(session_id), "fields": sorted(changes)},
        )
        return dict(updated)

    async def list(
        self,
        *,
        user_id: str | None = None,
        coach_id: str | None = None,
        status: str | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> SessionPage:
        matches = [
            record
            for record in self._sessions.values()
            if (user_id is None or record["user_id"] == user_id)
            and (coach_id is None or record["coach_id"] == coach_id)
            and (status is None or record["status"] == status)
        ]
        matches.sort(key=lambda r: r["created_at"], reverse=True)
        start = (page - 1) * limit
        items = [dict(r) for r in matches[start : start + limit]]
        return SessionPage(items=items, total=len(matches), page=page, limit=limit)

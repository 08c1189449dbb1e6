"""Session store sobre a API REST remota (fonte da verdade).

Endpoints:
- POST  /sessions              cria (corpo wire, status requested)
- GET   /sessions/{id}         lê (404 → None)
- PATCH /sessions/{id}         altera campos (404 → SessionNotFoundError)
- GET   /sessions?user_id=&coach_id=&status=&page=&limit=

Falhas de rede/HTTP viram ExternalStoreError com a causa encadeada.
Somente GETs são retentados (ver HttpClient).
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx

from coach_sessions.domain.errors import ExternalStoreError, SessionNotFoundError
from coach_sessions.domain.protocols.session_store import (
    AsyncSessionStoreProtocol,
    SessionPage,
)
from coach_sessions.infra.http import HttpClient, HttpError
from coach_sessions.observability.logging import get_logger, mask_id

logger: logging.Logger = get_logger(__name__)


def _session_path(session_id: str) -> str:
    return f"/sessions/{quote(session_id, safe='')}"


def _json_object(response: httpx.Response, operation: str) -> dict[str, Any]:
    try:
        body = response.json()
    except ValueError as exc:
        raise ExternalStoreError(
            "Session store returned invalid JSON",
            {"operation": operation, "status_code": response.status_code},
            cause=exc,
        ) from exc
    if not isinstance(body, dict):
        raise ExternalStoreError(
            "Session store returned unexpected body",
            {"operation": operation, "body_type": type(body).__name__},
        )
    return body


def _store_error(exc: HttpError, operation: str, session_id: str | None = None) -> ExternalStoreError:
    logger.error(
        "session_store_request_failed",
        extra={
            "operation": operation,
            "session_id": mask_id(session_id),
            "status_code": exc.status_code,
            "is_retryable": exc.is_retryable,
        },
    )
    return ExternalStoreError(
        f"Session store {operation} failed",
        {"operation": operation, "session_id": session_id, "status_code": exc.status_code},
        cause=exc,
        is_retryable=exc.is_retryable,
    )


class HttpSessionStore(AsyncSessionStoreProtocol):
    """Adapter da API remota de sessões."""

    def __init__(self, client: HttpClient) -> None:
        self._client = client

    async def close(self) -> None:
        await self._client.close()

    async def create(self, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            response = await self._client.post("/sessions", json=payload)
        except HttpError as exc:
            raise _store_error(exc, "create") from exc
        body = _json_object(response, "create")
        logger.info("session_store_created", extra={"session_id": mask_id(body.get("id"))})
        return body

    async def get(self, session_id: str) -> dict[str, Any] | None:
        try:
            response = await self._client.get(_session_path(session_id))
        except HttpError as exc:
            if exc.status_code == 404:
                return None
            raise _store_error(exc, "get", session_id) from exc
        return _json_object(response, "get")

    async def patch(self, session_id: str, changes: dict[str, Any]) -> dict[str, Any]:
        try:
            response = await self._client.patch(_session_path(session_id), json=changes)
        except HttpError as exc:
            if exc.status_code == 404:
                raise SessionNotFoundError(
                    "Session not found", {"session_id": session_id}
                ) from exc
            raise _store_error(exc, "patch", session_id) from exc
        return _json_object(response, "patch")

    async def list(
        self,
        *,
        user_id: str | None = None,
        coach_id: str | None = None,
        status: str | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> SessionPage:
        params: dict[str, Any] = {"page": page, "limit": limit}
        if user_id is not None:
            params["user_id"] = user_id
        if coach_id is not None:
            params["coach_id"] = coach_id
        if status is not None:
            params["status"] = status

        try:
            response = await self._client.get("/sessions", params=params)
        except HttpError as exc:
            raise _store_error(exc, "list") from exc

        body = _json_object(response, "list")
        items = body.get("sessions") or []
        return SessionPage(
            items=items,
            total=body.get("total", len(items)),
            page=body.get("page", page),
            limit=limit,
        )

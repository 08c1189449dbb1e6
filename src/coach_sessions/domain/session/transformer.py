"""Conversão entre Session e suas representações externas.

- Wire (API remota / store): chaves snake_case, datas em ISO-8601
- Client view (UI, notificações): chaves camelCase + campos derivados

Este módulo é a única fronteira de conversão; payload malformado levanta
TransformationError.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from dateutil.parser import isoparse
from pydantic import ValidationError as PydanticValidationError

from coach_sessions.domain.errors import TransformationError
from coach_sessions.domain.session.models import Session
from coach_sessions.domain.session.policy import SESSION_DURATION_MINUTES
from coach_sessions.domain.session.states import SessionStatus
from coach_sessions.observability.logging import get_logger, mask_id

logger = get_logger(__name__)

WIRE_FIELDS: tuple[str, ...] = (
    "id",
    "user_id",
    "coach_id",
    "topic",
    "description",
    "status",
    "start_time",
    "end_time",
    "scheduled_time",
    "rating",
    "feedback",
    "created_at",
    "updated_at",
    "user_notes",
    "coach_notes",
    "cancellation_reason",
)

_REQUIRED_WIRE_FIELDS = ("id", "user_id", "coach_id", "topic", "status", "created_at", "updated_at")
_DATETIME_FIELDS = frozenset({"start_time", "end_time", "scheduled_time", "created_at", "updated_at"})
_IMMUTABLE_FIELDS = frozenset({"id", "created_at"})

# Nome interno (atributo Python) → nome camelCase da client view
_CLIENT_FIELD_NAMES: dict[str, str] = {
    "id": "id",
    "user_id": "userId",
    "coach_id": "coachId",
    "topic": "topic",
    "description": "description",
    "status": "status",
    "start_time": "startTime",
    "end_time": "endTime",
    "scheduled_time": "scheduledTime",
    "rating": "rating",
    "feedback": "feedback",
    "created_at": "createdAt",
    "updated_at": "updatedAt",
    "user_notes": "userNotes",
    "coach_notes": "coachNotes",
    "cancellation_reason": "cancellationReason",
}


def parse_datetime(value: Any) -> datetime | None:
    """Converte string ISO-8601 (ou datetime) em datetime aware (UTC se naive)."""
    if value is None or value == "":
        return None
    parsed = value if isinstance(value, datetime) else isoparse(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def format_datetime(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _wire_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value


class SessionTransformer:
    """Transformações Session ⇄ wire / client view."""

    @classmethod
    def from_wire(cls, payload: Mapping[str, Any]) -> Session:
        """Transforma resposta da API remota em Session.

        Raises:
            TransformationError: payload não é dict, falta campo obrigatório,
                data não parseável ou tipo/status inválido
        """
        if not isinstance(payload, Mapping):
            raise TransformationError(
                "Invalid session data format",
                {"payload_type": type(payload).__name__},
            )

        missing = [f for f in _REQUIRED_WIRE_FIELDS if payload.get(f) in (None, "")]
        if missing:
            logger.error(
                "session_transform_missing_fields",
                extra={"session_id": mask_id(payload.get("id")), "missing": missing},
            )
            raise TransformationError(
                "Invalid session data format",
                {"missing_fields": missing, "payload": dict(payload)},
            )

        data: dict[str, Any] = {}
        try:
            for field in WIRE_FIELDS:
                if field not in payload:
                    continue
                value = payload[field]
                data[field] = parse_datetime(value) if field in _DATETIME_FIELDS else value
            session = Session(**data)
        except (ValueError, TypeError, OverflowError, PydanticValidationError) as exc:
            logger.error(
                "session_transform_failed",
                extra={"session_id": mask_id(payload.get("id")), "error": type(exc).__name__},
            )
            raise TransformationError(
                "Invalid session data format",
                {"payload": dict(payload), "error": str(exc)},
            ) from exc

        logger.debug("session_transformed", extra={"session_id": mask_id(session.id)})
        return session

    @classmethod
    def from_wire_list(cls, payloads: Iterable[Mapping[str, Any]]) -> list[Session]:
        return [cls.from_wire(p) for p in payloads]

    @classmethod
    def to_wire(cls, session: Session) -> dict[str, Any]:
        """Representação wire completa (inclui campos None)."""
        return {field: _wire_value(getattr(session, field)) for field in WIRE_FIELDS}

    @classmethod
    def to_create_request(cls, session: Session) -> dict[str, Any]:
        """Corpo de criação para o store (status sempre requested)."""
        body = {
            "user_id": session.user_id,
            "coach_id": session.coach_id,
            "topic": session.topic,
            "description": session.description,
            "scheduled_time": format_datetime(session.scheduled_time),
            "status": SessionStatus.REQUESTED.value,
        }
        return {k: v for k, v in body.items() if v is not None}

    @classmethod
    def to_update_request(cls, before: Session, after: Session) -> dict[str, Any]:
        """Corpo PATCH com apenas os campos alterados.

        Campos limpos (valor -> None) seguem como null para o store apagá-los.
        """
        changes: dict[str, Any] = {}
        for field in WIRE_FIELDS:
            if field in _IMMUTABLE_FIELDS:
                continue
            new_value = getattr(after, field)
            if getattr(before, field) != new_value:
                changes[field] = _wire_value(new_value)
        return changes

    @classmethod
    def to_client_view(
        cls,
        session: Session,
        now: datetime | None = None,
        ceiling_minutes: int = SESSION_DURATION_MINUTES,
    ) -> dict[str, Any]:
        """Dict camelCase com campos derivados, para UI e notificações."""
        view = {
            camel: _wire_value(getattr(session, field))
            for field, camel in _CLIENT_FIELD_NAMES.items()
        }
        view.update(
            duration=session.duration_minutes(),
            remainingTime=session.remaining_minutes(now, ceiling_minutes),
            isActive=session.is_active(),
            isCompleted=session.is_completed(),
            canBeRated=session.can_be_rated(),
        )
        return view

    # === Coleções ===

    @classmethod
    def filter_by_status(
        cls, sessions: Iterable[Session], status: SessionStatus | str
    ) -> list[Session]:
        return [s for s in sessions if s.status == status]

    @classmethod
    def sort_by_created(
        cls, sessions: Iterable[Session], ascending: bool = False
    ) -> list[Session]:
        """Ordena por created_at (mais recentes primeiro por padrão)."""
        return sorted(sessions, key=lambda s: s.created_at, reverse=not ascending)

    @classmethod
    def group_by_status(cls, sessions: Iterable[Session]) -> dict[SessionStatus, list[Session]]:
        groups: dict[SessionStatus, list[Session]] = defaultdict(list)
        for session in sessions:
            groups[session.status].append(session)
        return dict(groups)

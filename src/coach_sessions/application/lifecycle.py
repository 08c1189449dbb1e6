"""Ciclo de vida de sessões: orquestração da máquina de estados.

Fluxo de cada operação de mutação:
1. Autoriza (identidade, papel, permissão, vínculo com a sessão)
2. Segura o lock do session id
3. Carrega o estado atual do store
4. Valida transição e pré-condições
5. Monta a nova Session imutável e roda o SessionValidator
6. Persiste (PATCH apenas dos campos alterados)
7. Publica o evento no EventBus

Falha em qualquer passo antes do 6 não altera o store nem publica evento.
Transições inválidas nunca são retentadas automaticamente.
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import Awaitable, Callable, Iterator
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any, TypeVar

from coach_sessions.application.authorization import (
    ContextIdentityProvider,
    IdentityProvider,
    require_access,
)
from coach_sessions.application.event_bus import EventBus, get_event_bus
from coach_sessions.application.requests import CreateSessionRequest, SessionListResult
from coach_sessions.application.session_locks import SessionLockRegistry
from coach_sessions.domain.errors import (
    ExternalStoreError,
    InvalidTransitionError,
    PermissionDeniedError,
    QuotaExceededError,
    SessionError,
    SessionNotFoundError,
    ValidationError,
)
from coach_sessions.domain.identity import Identity, Permission, Role
from coach_sessions.domain.session.events import LifecycleEvent, SessionEventType
from coach_sessions.domain.session.models import Session
from coach_sessions.domain.session.policy import SessionPolicy
from coach_sessions.domain.session.states import SessionStatus
from coach_sessions.domain.session.transformer import SessionTransformer
from coach_sessions.domain.validation.validator import SessionValidator
from coach_sessions.observability.logging import get_logger, mask_id
from coach_sessions.observability.timing import timed

if TYPE_CHECKING:
    import httpx

    from coach_sessions.config.settings import Settings
    from coach_sessions.domain.protocols import AsyncSessionStoreProtocol, QuotaProviderProtocol

logger: logging.Logger = get_logger(__name__)

T = TypeVar("T")


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class SessionLifecycle:
    """Operações de ciclo de vida de uma sessão de coaching."""

    def __init__(
        self,
        store: AsyncSessionStoreProtocol,
        quota: QuotaProviderProtocol,
        *,
        bus: EventBus | None = None,
        validator: SessionValidator | None = None,
        identity_provider: IdentityProvider | None = None,
        clock: Callable[[], datetime] = _utcnow,
        locks: SessionLockRegistry | None = None,
    ) -> None:
        self._store = store
        self._quota = quota
        self._bus = bus or get_event_bus()
        self._validator = validator or SessionValidator(clock=clock)
        self._identity = identity_provider or ContextIdentityProvider()
        self._clock = clock
        self._locks = locks or SessionLockRegistry()

    @property
    def policy(self) -> SessionPolicy:
        return self._validator.policy

    @property
    def bus(self) -> EventBus:
        return self._bus

    async def close(self) -> None:
        """Fecha store e provedor de quota (quando expõem `close`)."""
        for resource in (self._store, self._quota):
            close = getattr(resource, "close", None)
            if close is not None:
                await close()
        logger.debug("lifecycle_closed")

    async def __aenter__(self) -> SessionLifecycle:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    # === Criação e leitura ===

    async def create_session(self, request: CreateSessionRequest) -> Session:
        """Cria sessão em REQUESTED e publica session-requested.

        Raises:
            PermissionDeniedError: pedido em nome de outro usuário
            ValidationError: pedido inválido
            QuotaExceededError: plano sem sessões disponíveis
        """
        with self._operation("create_session"):
            identity = require_access(
                self._identity,
                "create_session",
                roles=(Role.USER,),
                permissions=(Permission.SESSION_CREATE,),
            )
            if not identity.is_admin and identity.user_id != request.user_id:
                raise PermissionDeniedError(
                    "Cannot request sessions for another user",
                    {"operation": "create_session"},
                )

            self._validator.validate_creation_request(request)

            available = await self._call_store(
                "available_sessions", None, self._quota.available_sessions(request.user_id)
            )
            if available <= 0:
                raise QuotaExceededError(
                    "No available sessions in your plan",
                    {"user_id": request.user_id, "available_sessions": available},
                )

            now = self._clock()
            candidate = Session(
                user_id=request.user_id,
                coach_id=request.coach_id,
                topic=request.topic,
                description=request.description,
                scheduled_time=request.scheduled_time,
                status=SessionStatus.REQUESTED,
                created_at=now,
                updated_at=now,
            )
            self._validator.validate(candidate)

            raw = await self._call_store(
                "create", None, self._store.create(SessionTransformer.to_create_request(candidate))
            )
            session = SessionTransformer.from_wire(raw)
            self._validator.validate(session)

            self._publish(SessionEventType.SESSION_REQUESTED, session, now)
            logger.info(
                "session_created",
                extra={
                    "session_id": mask_id(session.id),
                    "user_id": mask_id(session.user_id),
                    "coach_id": mask_id(session.coach_id),
                },
            )
            return session

    async def get_session(self, session_id: str) -> Session:
        """Retorna a sessão se o chamador participa dela (ou é admin)."""
        with self._operation("get_session", session_id):
            identity = require_access(
                self._identity, "get_session", permissions=(Permission.SESSION_READ,)
            )
            session = await self._load(session_id)
            self._validator.validate(session)
            self._require_participant(identity, session, "get_session")
            return session

    async def list_user_sessions(
        self,
        user_id: str,
        page: int = 1,
        limit: int = 10,
        status: SessionStatus | str | None = None,
    ) -> SessionListResult:
        return await self._list_sessions("list_user_sessions", page, limit, status, user_id=user_id)

    async def list_coach_sessions(
        self,
        coach_id: str,
        page: int = 1,
        limit: int = 10,
        status: SessionStatus | str | None = None,
    ) -> SessionListResult:
        return await self._list_sessions(
            "list_coach_sessions", page, limit, status, coach_id=coach_id
        )

    async def _list_sessions(
        self,
        operation: str,
        page: int,
        limit: int,
        status: SessionStatus | str | None,
        *,
        user_id: str | None = None,
        coach_id: str | None = None,
    ) -> SessionListResult:
        with self._operation(operation):
            identity = require_access(
                self._identity, operation, permissions=(Permission.SESSION_READ,)
            )
            owner = user_id or coach_id
            if not identity.is_admin and identity.user_id != owner:
                raise PermissionDeniedError(
                    "Cannot list sessions of another party", {"operation": operation}
                )
            if page < 1 or limit < 1:
                raise ValidationError(
                    "page and limit must be positive",
                    {"field": "page" if page < 1 else "limit", "page": page, "limit": limit},
                )
            if status is not None:
                try:
                    status = SessionStatus(status)
                except ValueError as exc:
                    raise ValidationError(
                        "Unknown session status", {"field": "status", "value": status}
                    ) from exc

            result = await self._call_store(
                "list",
                None,
                self._store.list(
                    user_id=user_id,
                    coach_id=coach_id,
                    status=str(status) if status is not None else None,
                    page=page,
                    limit=limit,
                ),
            )
            sessions = SessionTransformer.from_wire_list(result.items)
            for session in sessions:
                self._validator.validate(session)

            return SessionListResult(
                sessions=sessions, total=result.total, page=result.page, limit=result.limit
            )

    # === Transições ===

    async def accept_session(self, session_id: str, notes: str | None = None) -> Session:
        """requested → accepted (coach da sessão)."""

        def changes(current: Session, now: datetime) -> dict[str, Any]:
            return {"coach_notes": notes} if notes is not None else {}

        return await self._transition(
            "accept_session",
            session_id,
            SessionStatus.ACCEPTED,
            SessionEventType.SESSION_ACCEPTED,
            roles=(Role.COACH,),
            permissions=(Permission.SESSION_UPDATE,),
            authorize=self._require_coach,
            changes=changes,
        )

    async def reject_session(self, session_id: str, reason: str | None = None) -> Session:
        """Coach recusa um pedido: requested → cancelled."""

        def precondition(current: Session) -> None:
            if current.status != SessionStatus.REQUESTED:
                raise InvalidTransitionError(
                    f"Cannot reject a session in status {current.status}",
                    {
                        "current_status": str(current.status),
                        "target_status": str(SessionStatus.CANCELLED),
                        "allowed_from": [str(SessionStatus.REQUESTED)],
                    },
                )

        return await self._transition(
            "reject_session",
            session_id,
            SessionStatus.CANCELLED,
            SessionEventType.SESSION_CANCELLED,
            roles=(Role.COACH,),
            permissions=(Permission.SESSION_UPDATE,),
            authorize=self._require_coach,
            precondition=precondition,
            changes=lambda current, now: {"cancellation_reason": reason},
            details=lambda identity, stored: {
                "cancelled_by": "coach",
                "rejected": True,
                "reason": reason,
            },
        )

    async def cancel_session(self, session_id: str, reason: str | None = None) -> Session:
        """Participante (ou admin) cancela: requested/accepted/in_progress → cancelled.

        start_time e end_time são limpos: sessão cancelada não carrega início.
        """
        return await self._transition(
            "cancel_session",
            session_id,
            SessionStatus.CANCELLED,
            SessionEventType.SESSION_CANCELLED,
            roles=(Role.USER, Role.COACH),
            permissions=(Permission.SESSION_CANCEL,),
            authorize=self._require_participant,
            changes=lambda current, now: {
                "cancellation_reason": reason,
                "start_time": None,
                "end_time": None,
            },
            details=lambda identity, stored: {
                "cancelled_by": "system" if identity.role == Role.ADMIN else str(identity.role),
                "rejected": False,
                "reason": reason,
            },
        )

    async def start_session(self, session_id: str) -> Session:
        """accepted → in_progress; inicia a contagem do teto de duração."""
        ceiling = timedelta(minutes=self.policy.duration_minutes)

        def precondition(current: Session) -> None:
            if not current.can_be_started():
                raise InvalidTransitionError(
                    "Session cannot be started",
                    {"current_status": str(current.status), "has_start_time": True},
                )

        return await self._transition(
            "start_session",
            session_id,
            SessionStatus.IN_PROGRESS,
            SessionEventType.SESSION_STARTED,
            roles=(Role.COACH,),
            permissions=(Permission.SESSION_START,),
            authorize=self._require_coach,
            precondition=precondition,
            changes=lambda current, now: {"start_time": now, "end_time": now + ceiling},
            details=lambda identity, stored: {
                "expected_end_time": stored.end_time.isoformat() if stored.end_time else None,
            },
        )

    async def end_session(self, session_id: str) -> Session:
        """in_progress → completed; end_time limitado ao teto de duração."""
        ceiling = timedelta(minutes=self.policy.duration_minutes)

        def precondition(current: Session) -> None:
            if not current.can_be_ended():
                raise InvalidTransitionError(
                    "Session cannot be ended",
                    {"current_status": str(current.status), "has_start_time": False},
                )

        def changes(current: Session, now: datetime) -> dict[str, Any]:
            start = current.start_time or now
            return {"end_time": min(now, start + ceiling)}

        return await self._transition(
            "end_session",
            session_id,
            SessionStatus.COMPLETED,
            SessionEventType.SESSION_ENDED,
            roles=(Role.COACH,),
            permissions=(Permission.SESSION_END,),
            authorize=self._require_coach,
            precondition=precondition,
            changes=changes,
            details=lambda identity, stored: {"duration": stored.duration_minutes()},
        )

    async def rate_session(
        self, session_id: str, rating: int, feedback: str | None = None
    ) -> Session:
        """Usuário da sessão avalia uma sessão concluída (uma única vez).

        Raises:
            ValidationError: sessão não concluída, já avaliada ou rating fora do intervalo
        """
        operation = "rate_session"
        with self._operation(operation, session_id):
            identity = require_access(
                self._identity,
                operation,
                roles=(Role.USER,),
                permissions=(Permission.SESSION_RATE,),
            )
            if isinstance(rating, bool) or not isinstance(rating, int):
                raise ValidationError(
                    "rating must be an integer", {"field": "rating", "value": rating}
                )

            async with self._locks.hold(session_id):
                current = await self._load(session_id)
                if not current.belongs_to_user(identity.user_id):
                    raise PermissionDeniedError(
                        "Can only rate your own sessions",
                        {"operation": operation, "session_id": session_id},
                    )
                if current.rating is not None:
                    raise ValidationError(
                        "Session already rated",
                        {"field": "rating", "session_id": session_id},
                    )

                now = self._clock()
                updated = current.copy_with(rating=rating, feedback=feedback, updated_at=now)
                self._validator.validate(updated)
                stored = await self._persist(current, updated)

                self._publish(
                    SessionEventType.SESSION_RATED,
                    stored,
                    now,
                    rating=rating,
                    rated_by=identity.user_id,
                    has_feedback=bool(feedback),
                )
            return stored

    async def check_time_warning(self, session_id: str) -> bool:
        """Publica session-time-warning se a sessão está nos minutos finais."""
        with self._operation("check_time_warning", session_id):
            identity = require_access(
                self._identity, "check_time_warning", permissions=(Permission.SESSION_READ,)
            )
            session = await self._load(session_id)
            self._require_participant(identity, session, "check_time_warning")

            now = self._clock()
            policy = self.policy
            if not session.is_about_to_end(now, policy.warning_minutes, policy.duration_minutes):
                return False

            self._publish(
                SessionEventType.SESSION_TIME_WARNING,
                session,
                now,
                remaining_minutes=session.remaining_minutes(now, policy.duration_minutes),
            )
            return True

    # === Internos ===

    async def _transition(
        self,
        operation: str,
        session_id: str,
        target: SessionStatus,
        event_type: SessionEventType,
        *,
        roles: tuple[Role, ...],
        permissions: tuple[Permission, ...],
        authorize: Callable[[Identity, Session, str], None],
        changes: Callable[[Session, datetime], dict[str, Any]],
        precondition: Callable[[Session], None] | None = None,
        details: Callable[[Identity, Session], dict[str, Any]] | None = None,
    ) -> Session:
        with self._operation(operation, session_id):
            identity = require_access(
                self._identity, operation, roles=roles, permissions=permissions
            )
            async with self._locks.hold(session_id):
                current = await self._load(session_id)
                authorize(identity, current, operation)
                self._validator.validate_status_transition(current.status, target)
                if precondition is not None:
                    precondition(current)

                now = self._clock()
                updated = current.copy_with(
                    status=target, updated_at=now, **changes(current, now)
                )
                self._validator.validate(updated)
                stored = await self._persist(current, updated)

                extra = details(identity, stored) if details is not None else {}
                self._publish(event_type, stored, now, **extra)

            logger.info(
                "session_transitioned",
                extra={
                    "operation": operation,
                    "session_id": mask_id(session_id),
                    "from_status": str(current.status),
                    "to_status": str(stored.status),
                },
            )
            return stored

    async def _load(self, session_id: str) -> Session:
        raw = await self._call_store("get", session_id, self._store.get(session_id))
        if raw is None:
            raise SessionNotFoundError("Session not found", {"session_id": session_id})
        return SessionTransformer.from_wire(raw)

    async def _persist(self, before: Session, after: Session) -> Session:
        changes = SessionTransformer.to_update_request(before, after)
        raw = await self._call_store("patch", before.id, self._store.patch(before.id, changes))
        return SessionTransformer.from_wire(raw)

    async def _call_store(self, operation: str, session_id: str | None, call: Awaitable[T]) -> T:
        """Aguarda uma chamada externa; falhas fora da taxonomia viram ExternalStoreError."""
        try:
            return await call
        except SessionError:
            raise
        except Exception as exc:
            raise ExternalStoreError(
                f"Session store {operation} failed",
                {"operation": operation, "session_id": session_id},
                cause=exc,
            ) from exc

    def _publish(
        self,
        event_type: SessionEventType,
        session: Session,
        timestamp: datetime,
        **details: Any,
    ) -> None:
        event = LifecycleEvent.for_session(event_type, session, timestamp, **details)
        self._bus.publish(event_type, event)

    @staticmethod
    def _require_participant(identity: Identity, session: Session, operation: str) -> None:
        if identity.is_admin or session.is_participant(identity.user_id):
            return
        raise PermissionDeniedError(
            "Access denied to this session",
            {"operation": operation, "session_id": session.id},
        )

    @staticmethod
    def _require_coach(identity: Identity, session: Session, operation: str) -> None:
        if identity.is_admin or session.belongs_to_coach(identity.user_id):
            return
        raise PermissionDeniedError(
            "Only the session coach can perform this operation",
            {"operation": operation, "session_id": session.id},
        )

    @contextlib.contextmanager
    def _operation(self, operation: str, session_id: str | None = None) -> Iterator[None]:
        fields = {"operation": operation, "session_id": mask_id(session_id)}
        try:
            with timed(f"lifecycle.{operation}", **fields):
                yield
        except ExternalStoreError as exc:
            logger.error("session_operation_failed", extra={**fields, "code": exc.code})
            raise
        except SessionError as exc:
            logger.warning("session_operation_rejected", extra={**fields, "code": exc.code})
            raise


def build_lifecycle(
    settings: Settings | None = None,
    *,
    bus: EventBus | None = None,
    identity_provider: IdentityProvider | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> SessionLifecycle:
    """Monta um SessionLifecycle a partir das configurações.

    Raises:
        ValueError: configuração inválida (lista todos os erros)
    """
    from coach_sessions.infra import (
        create_http_client,
        create_quota_provider,
        create_session_store,
    )

    if settings is None:
        from coach_sessions.config.settings import get_settings

        settings = get_settings()

    errors = settings.validate_session_store_config() + settings.validate_session_policy()
    if errors:
        logger.error("lifecycle_config_invalid", extra={"errors": errors})
        raise ValueError("Invalid configuration: " + "; ".join(errors))

    policy = SessionPolicy.from_settings(settings)
    # Store e quota compartilham um único pool de conexões
    client = None
    if settings.session_store_backend.lower() == "http":
        client = create_http_client(settings, transport=transport)

    return SessionLifecycle(
        create_session_store(settings, client=client),
        create_quota_provider(settings, client=client),
        bus=bus,
        validator=SessionValidator(policy),
        identity_provider=identity_provider,
    )

"""Assinantes de notificação para eventos de sessão.

- NotificationSubscriber: base com id, ativação e isolamento de falhas
- SessionNotificationSubscriber: converte eventos em notificações para a
  parte interessada e envia por canais plugáveis
- O envio é assíncrono: o handler devolve uma coroutine que o EventBus
  agenda em background, sem bloquear o publisher
"""

from __future__ import annotations

import functools
import inspect
import logging
import uuid
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Iterable
from dataclasses import dataclass, field
from typing import Any, ClassVar, Protocol

from coach_sessions.application.event_bus import EventBus, Handler, SubscriptionHandle
from coach_sessions.domain.session.events import LifecycleEvent, SessionEventType
from coach_sessions.observability.logging import get_logger, mask_id

logger: logging.Logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class Notification:
    """Mensagem destinada a um participante."""

    recipient_id: str
    title: str
    body: str
    data: dict[str, Any] = field(default_factory=dict)
    device_token: str | None = None


class NotificationChannel(Protocol):
    """Canal de entrega (push, browser, websocket...)."""

    name: str

    async def send(self, notification: Notification) -> None: ...


class LoggingNotificationChannel:
    """Canal que apenas registra a notificação (dev/testes)."""

    name = "log"

    async def send(self, notification: Notification) -> None:
        logger.info(
            "notification_sent",
            extra={
                "channel": self.name,
                "recipient_id": mask_id(notification.recipient_id),
                "device_token": mask_id(notification.device_token),
                "notification_type": notification.data.get("type"),
            },
        )


class NotificationSubscriber(ABC):
    """Base de assinantes: falhas de um evento nunca escapam para o barramento."""

    subscribed_events: ClassVar[tuple[str, ...]] = ()

    def __init__(self, subscriber_id: str | None = None) -> None:
        self.subscriber_id = subscriber_id or f"subscriber-{uuid.uuid4().hex[:12]}"
        self.is_active = True
        self._handlers: dict[str, Handler] = {}
        self._handles: list[SubscriptionHandle] = []

    @abstractmethod
    def handle_event(self, event_type: str, payload: Any) -> Awaitable[None] | None:
        """Trata um evento; pode devolver awaitable para trabalho assíncrono."""

    def process_event(self, event_type: str, payload: Any) -> Awaitable[None] | None:
        if not self.is_active:
            logger.warning(
                "subscriber_inactive_event_ignored",
                extra={"event_type": event_type, "subscriber_id": self.subscriber_id},
            )
            return None

        try:
            result = self.handle_event(event_type, payload)
        except Exception:
            logger.exception(
                "subscriber_event_failed",
                extra={"event_type": event_type, "subscriber_id": self.subscriber_id},
            )
            return None

        if inspect.isawaitable(result):
            return self._guarded(event_type, result)
        return None

    async def _guarded(self, event_type: str, awaitable: Awaitable[None]) -> None:
        try:
            await awaitable
        except Exception:
            logger.exception(
                "subscriber_event_failed",
                extra={"event_type": event_type, "subscriber_id": self.subscriber_id},
            )

    def attach(self, bus: EventBus) -> list[SubscriptionHandle]:
        """Inscreve o assinante em todos os seus eventos (idempotente)."""
        for event_type in self.subscribed_events:
            handler = self._handlers.setdefault(
                event_type, functools.partial(self.process_event, event_type)
            )
            handle = bus.subscribe(event_type, handler)
            if handle not in self._handles:
                self._handles.append(handle)
        return list(self._handles)

    def detach(self, bus: EventBus) -> None:
        for handle in self._handles:
            bus.unsubscribe(handle)
        self._handles.clear()

    def activate(self) -> None:
        self.is_active = True
        logger.info("subscriber_activated", extra={"subscriber_id": self.subscriber_id})

    def deactivate(self) -> None:
        self.is_active = False
        logger.info("subscriber_deactivated", extra={"subscriber_id": self.subscriber_id})

    def status(self) -> dict[str, Any]:
        return {"subscriber_id": self.subscriber_id, "is_active": self.is_active}


class SessionNotificationSubscriber(NotificationSubscriber):
    """Notifica participantes a cada evento de sessão."""

    subscribed_events = (
        SessionEventType.SESSION_REQUESTED,
        SessionEventType.SESSION_ACCEPTED,
        SessionEventType.SESSION_STARTED,
        SessionEventType.SESSION_ENDED,
        SessionEventType.SESSION_CANCELLED,
        SessionEventType.SESSION_RATED,
        SessionEventType.SESSION_TIME_WARNING,
    )

    def __init__(
        self,
        channels: Iterable[NotificationChannel] = (),
        subscriber_id: str = "session-notification-subscriber",
    ) -> None:
        super().__init__(subscriber_id)
        self._channels = list(channels) or [LoggingNotificationChannel()]
        self._device_tokens: dict[str, str] = {}

    # === Device tokens ===

    def register_device_token(self, party_id: str, device_token: str) -> None:
        self._device_tokens[party_id] = device_token
        logger.debug(
            "device_token_registered",
            extra={"party_id": mask_id(party_id), "token_preview": mask_id(device_token)},
        )

    def unregister_device_token(self, party_id: str) -> bool:
        removed = self._device_tokens.pop(party_id, None) is not None
        logger.debug("device_token_unregistered", extra={"party_id": mask_id(party_id)})
        return removed

    def registered_tokens_count(self) -> int:
        return len(self._device_tokens)

    # === Eventos ===

    def handle_event(self, event_type: str, payload: Any) -> Awaitable[None] | None:
        if not isinstance(payload, LifecycleEvent):
            logger.warning(
                "notification_unexpected_payload",
                extra={"event_type": event_type, "payload_type": type(payload).__name__},
            )
            return None

        notifications = self.build_notifications(payload)
        if not notifications:
            return None
        return self._send_all(notifications)

    def build_notifications(self, event: LifecycleEvent) -> list[Notification]:
        """Notificações (destinatário, título, corpo) para o evento."""
        details = event.details
        user, coach = event.user_id, event.coach_id

        match event.event_type:
            case SessionEventType.SESSION_REQUESTED:
                targets = [
                    (coach, "New Session Request", "A user has requested a coaching session")
                ]
            case SessionEventType.SESSION_ACCEPTED:
                targets = [(user, "Session Accepted", "Your coach is ready for your session")]
            case SessionEventType.SESSION_STARTED:
                body = "Your coaching session is starting now"
                targets = [(user, "Session Starting", body), (coach, "Session Starting", body)]
            case SessionEventType.SESSION_ENDED:
                duration = details.get("duration", 0)
                targets = [
                    (
                        user,
                        "Session Completed",
                        f"Your {duration}-minute session has ended. Please provide feedback.",
                    )
                ]
            case SessionEventType.SESSION_CANCELLED:
                targets = self._cancellation_targets(event)
            case SessionEventType.SESSION_RATED:
                targets = [
                    (
                        coach,
                        "New Session Rating",
                        f"You received a {details.get('rating')}-star rating",
                    )
                ]
            case SessionEventType.SESSION_TIME_WARNING:
                remaining = details.get("remaining_minutes")
                body = f"{remaining} minutes remaining in your session"
                targets = [(user, "Session Ending Soon", body), (coach, "Session Ending Soon", body)]
            case _:
                logger.warning(
                    "notification_unknown_event",
                    extra={"event_type": str(event.event_type), "subscriber_id": self.subscriber_id},
                )
                return []

        return [
            Notification(
                recipient_id=recipient,
                title=title,
                body=body,
                data={"session_id": event.session_id, "type": str(event.event_type)},
                device_token=self._device_tokens.get(recipient),
            )
            for recipient, title, body in targets
        ]

    @staticmethod
    def _cancellation_targets(event: LifecycleEvent) -> list[tuple[str, str, str]]:
        cancelled_by = event.details.get("cancelled_by", "system")
        if event.details.get("rejected"):
            return [(event.user_id, "Session Request Declined", "The coach declined your request")]

        body = f"Session was cancelled by {cancelled_by}"
        if cancelled_by == "coach":
            return [(event.user_id, "Session Cancelled", body)]
        if cancelled_by == "user":
            return [(event.coach_id, "Session Cancelled", body)]
        return [
            (event.user_id, "Session Cancelled", body),
            (event.coach_id, "Session Cancelled", body),
        ]

    async def _send_all(self, notifications: list[Notification]) -> None:
        for notification in notifications:
            for channel in self._channels:
                try:
                    await channel.send(notification)
                except Exception:
                    logger.exception(
                        "notification_channel_failed",
                        extra={
                            "channel": getattr(channel, "name", type(channel).__name__),
                            "recipient_id": mask_id(notification.recipient_id),
                            "subscriber_id": self.subscriber_id,
                        },
                    )
        logger.info(
            "notifications_dispatched",
            extra={"count": len(notifications), "subscriber_id": self.subscriber_id},
        )

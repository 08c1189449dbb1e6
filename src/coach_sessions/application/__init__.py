"""Camada de aplicação: ciclo de vida, barramento de eventos e assinantes.

Uso típico:
    from coach_sessions.application import build_lifecycle, identity_scope
"""

from coach_sessions.application.authorization import (
    ContextIdentityProvider,
    IdentityProvider,
    StaticIdentityProvider,
    identity_scope,
    require_access,
)
from coach_sessions.application.coach_ratings import CoachRatingTracker
from coach_sessions.application.event_bus import (
    EventBus,
    PublishResult,
    SubscriptionHandle,
    get_event_bus,
    shutdown_event_bus,
)
from coach_sessions.application.lifecycle import SessionLifecycle, build_lifecycle
from coach_sessions.application.notifications import (
    LoggingNotificationChannel,
    Notification,
    NotificationChannel,
    NotificationSubscriber,
    SessionNotificationSubscriber,
)
from coach_sessions.application.requests import CreateSessionRequest, SessionListResult
from coach_sessions.application.session_locks import SessionLockRegistry

__all__ = [
    "CoachRatingTracker",
    "ContextIdentityProvider",
    "CreateSessionRequest",
    "EventBus",
    "IdentityProvider",
    "LoggingNotificationChannel",
    "Notification",
    "NotificationChannel",
    "NotificationSubscriber",
    "PublishResult",
    "SessionLifecycle",
    "SessionListResult",
    "SessionLockRegistry",
    "SessionNotificationSubscriber",
    "StaticIdentityProvider",
    "SubscriptionHandle",
    "build_lifecycle",
    "get_event_bus",
    "identity_scope",
    "require_access",
]

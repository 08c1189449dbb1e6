"""Estatística de avaliação por coach.

Separada da avaliação de sessão: escuta `session-rated`, mantém a média
corrente de cada coach e publica `coach-rating-updated`.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass

from coach_sessions.application.event_bus import EventBus, SubscriptionHandle
from coach_sessions.domain.session.events import (
    CoachEventType,
    CoachRatingUpdated,
    LifecycleEvent,
    SessionEventType,
)
from coach_sessions.observability.logging import get_logger, mask_id

logger: logging.Logger = get_logger(__name__)


@dataclass(slots=True)
class _RatingStats:
    total: int = 0
    count: int = 0

    @property
    def average(self) -> float:
        return round(self.total / self.count, 2) if self.count else 0.0


class CoachRatingTracker:
    """Média de avaliações por coach, alimentada pelo EventBus."""

    def __init__(self, bus: EventBus) -> None:
        self._bus = bus
        self._lock = threading.Lock()
        self._stats: dict[str, _RatingStats] = {}
        self._handle: SubscriptionHandle | None = None

    def attach(self) -> None:
        self._handle = self._bus.subscribe(SessionEventType.SESSION_RATED, self.handle_session_rated)

    def detach(self) -> None:
        if self._handle is not None:
            self._bus.unsubscribe(self._handle)
            self._handle = None

    def average_for(self, coach_id: str) -> float:
        with self._lock:
            stats = self._stats.get(coach_id)
            return stats.average if stats else 0.0

    def total_ratings_for(self, coach_id: str) -> int:
        with self._lock:
            stats = self._stats.get(coach_id)
            return stats.count if stats else 0

    def handle_session_rated(self, event: LifecycleEvent) -> CoachRatingUpdated | None:
        rating = event.details.get("rating")
        if rating is None:
            logger.warning(
                "coach_rating_event_without_rating",
                extra={"session_id": mask_id(event.session_id)},
            )
            return None

        with self._lock:
            stats = self._stats.setdefault(event.coach_id, _RatingStats())
            previous = stats.average
            stats.total += rating
            stats.count += 1
            update = CoachRatingUpdated(
                coach_id=event.coach_id,
                new_rating=stats.average,
                previous_rating=previous,
                total_ratings=stats.count,
                rated_by=event.details.get("rated_by", event.user_id),
                rated_at=event.timestamp,
                session_id=event.session_id,
            )

        logger.info(
            "coach_rating_updated",
            extra={
                "coach_id": mask_id(update.coach_id),
                "new_rating": update.new_rating,
                "total_ratings": update.total_ratings,
            },
        )
        self._bus.publish(CoachEventType.COACH_RATING_UPDATED, update)
        return update

"""Constantes e política de tempo/tamanho de uma sessão de coaching."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from coach_sessions.config.settings import Settings

SESSION_DURATION_MINUTES: int = 20
"""Teto de duração de uma sessão em andamento."""

SESSION_WARNING_MINUTES: int = 5
"""Minutos restantes a partir dos quais a sessão está "prestes a terminar"."""

TOPIC_MIN_LENGTH: int = 5
TOPIC_MAX_LENGTH: int = 100
DESCRIPTION_MAX_LENGTH: int = 500
PARTY_ID_MAX_LENGTH: int = 50
RATING_MIN: int = 1
RATING_MAX: int = 5


@dataclass(frozen=True, slots=True)
class SessionPolicy:
    """Limites ajustáveis aplicados pelo validador e pelo ciclo de vida."""

    duration_minutes: int = SESSION_DURATION_MINUTES
    warning_minutes: int = SESSION_WARNING_MINUTES
    topic_min_length: int = TOPIC_MIN_LENGTH
    topic_max_length: int = TOPIC_MAX_LENGTH
    description_max_length: int = DESCRIPTION_MAX_LENGTH
    party_id_max_length: int = PARTY_ID_MAX_LENGTH
    rating_min: int = RATING_MIN
    rating_max: int = RATING_MAX

    @classmethod
    def from_settings(cls, settings: Settings) -> SessionPolicy:
        return cls(
            duration_minutes=settings.session_duration_minutes,
            warning_minutes=settings.session_warning_minutes,
            topic_min_length=settings.session_topic_min_length,
            topic_max_length=settings.session_topic_max_length,
            description_max_length=settings.session_description_max_length,
            rating_min=settings.session_rating_min,
            rating_max=settings.session_rating_max,
        )


DEFAULT_POLICY = SessionPolicy()

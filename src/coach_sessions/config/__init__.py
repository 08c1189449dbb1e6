"""Configurações centralizadas do coach_sessions.

Uso típico:
    from coach_sessions.config import get_settings
"""

from coach_sessions.config.settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
]

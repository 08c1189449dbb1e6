"""coach_sessions: ciclo de vida de sessões de coaching de 20 minutos."""

__version__ = "0.1.0"

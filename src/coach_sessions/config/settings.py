"""Configurações da aplicação via variáveis de ambiente.

Todas as configurações são carregadas de env vars (ou `.env` em development).
Nunca hardcode tokens da API remota.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

_VALID_STORE_BACKENDS = frozenset({"memory", "http"})


class Settings(BaseSettings):
    """Configurações lidas do ambiente."""

    model_config = SettingsConfigDict(
        env_prefix="",
        case_sensitive=False,
        env_file=".env",
        extra="ignore",
    )

    # Aplicação
    service_name: str = "coach_sessions"
    version: str = "0.1.0"
    environment: str = "development"
    log_level: str = "INFO"

    # Política da sessão (teto de 20 minutos, aviso aos 5 minutos finais)
    session_duration_minutes: int = 20
    session_warning_minutes: int = 5
    session_topic_min_length: int = 5
    session_topic_max_length: int = 100
    session_description_max_length: int = 500
    session_rating_min: int = 1
    session_rating_max: int = 5

    # Session store: memory (dev/testes) | http (API remota, fonte da verdade)
    session_store_backend: str = "memory"
    session_store_base_url: str | None = None
    session_store_api_token: str | None = None  # Bearer token da API remota
    session_store_timeout_seconds: float = 10.0
    session_store_max_retries: int = 2  # Apenas leituras (GET) são retentadas
    session_store_backoff_seconds: float = 0.5

    # Quota de sessões quando não há API de assinatura (memory)
    default_session_quota: int = 2

    @property
    def is_development(self) -> bool:
        return self.environment.lower() in ("development", "dev", "local")

    @property
    def is_staging(self) -> bool:
        return self.environment.lower() in ("staging", "stage")

    @property
    def is_production(self) -> bool:
        return self.environment.lower() in ("production", "prod")

    def validate_session_store_config(self) -> list[str]:
        """Valida backend de session store por ambiente.

        Em staging/prod, memory é proibido (a API remota é a fonte da verdade).
        Retorna lista de erros (vazia = tudo OK).
        """
        errors: list[str] = []
        backend = self.session_store_backend.lower()

        if backend not in _VALID_STORE_BACKENDS:
            errors.append(
                f"SESSION_STORE_BACKEND '{backend}' inválido. "
                f"Valores válidos: {sorted(_VALID_STORE_BACKENDS)}"
            )

        if backend == "memory" and (self.is_staging or self.is_production):
            errors.append(
                "SESSION_STORE_BACKEND=memory é proibido em staging/production. "
                "Configure 'http' apontando para a API de sessões."
            )

        if backend == "http" and not self.session_store_base_url:
            errors.append("SESSION_STORE_BACKEND=http requer SESSION_STORE_BASE_URL")

        if self.session_store_max_retries < 0:
            errors.append("SESSION_STORE_MAX_RETRIES não pode ser negativo")

        return errors

    def validate_session_policy(self) -> list[str]:
        """Valida limites da política de sessão."""
        errors: list[str] = []
        if self.session_duration_minutes <= 0:
            errors.append("SESSION_DURATION_MINUTES deve ser positivo")
        if not 0 < self.session_warning_minutes < self.session_duration_minutes:
            errors.append(
                "SESSION_WARNING_MINUTES deve ser positivo e menor que a duração da sessão"
            )
        if self.session_topic_min_length > self.session_topic_max_length:
            errors.append("SESSION_TOPIC_MIN_LENGTH maior que SESSION_TOPIC_MAX_LENGTH")
        if self.session_rating_min > self.session_rating_max:
            errors.append("SESSION_RATING_MIN maior que SESSION_RATING_MAX")
        return errors


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Retorna uma instância cacheada de Settings.

    A cache garante que mesmo múltiplas injeções não criam novos objetos.
    """
    return Settings()

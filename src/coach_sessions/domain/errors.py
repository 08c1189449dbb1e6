"""Taxonomia de erros do ciclo de vida de sessões.

Todos os erros carregam um `code` estável (usado por consumidores/UI) e um
`context` estruturado, seguro para log (sem tópico/feedback em texto livre).
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any


class SessionError(Exception):
    """Erro base com código e contexto estruturado."""

    code: str = "SESSION_ERROR"

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        *,
        code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.context: dict[str, Any] = context or {}
        if code is not None:
            self.code = code
        self.timestamp = datetime.now(tz=UTC)

    def to_dict(self) -> dict[str, Any]:
        """Representação serializável (ex.: resposta de erro ou evento)."""
        return {
            "name": type(self).__name__,
            "code": self.code,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
            "context": self.context,
        }


class ValidationError(SessionError):
    """Violação de regra de campo ou de negócio; recuperável pelo chamador."""

    code = "VALIDATION_ERROR"


class InvalidTransitionError(SessionError):
    """Mudança de status fora da tabela de transições; não retentável."""

    code = "INVALID_TRANSITION"


class TransformationError(SessionError):
    """Payload externo malformado (falha de integridade de dados)."""

    code = "TRANSFORMATION_ERROR"


class AuthRequiredError(SessionError):
    """Nenhuma identidade autenticada no contexto."""

    code = "AUTH_REQUIRED"


class PermissionDeniedError(SessionError):
    """Identidade sem papel, permissão ou vínculo com a sessão."""

    code = "PERMISSION_DENIED"


class QuotaExceededError(PermissionDeniedError):
    """Usuário sem sessões disponíveis no plano."""

    code = "SUBSCRIPTION_LIMIT_EXCEEDED"


class SessionNotFoundError(SessionError):
    """Sessão inexistente no store."""

    code = "SESSION_NOT_FOUND"


class ExternalStoreError(SessionError):
    """Falha do session store remoto (envolve a causa original).

    Leituras idempotentes podem ser retentadas por uma política externa;
    mutações nunca devem ser retentadas sem revalidar o estado atual.
    """

    code = "EXTERNAL_STORE_ERROR"

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        *,
        cause: BaseException | None = None,
        is_retryable: bool = False,
    ) -> None:
        super().__init__(message, context)
        self.cause = cause
        self.is_retryable = is_retryable
        if cause is not None:
            self.__cause__ = cause

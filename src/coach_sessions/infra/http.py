"""Cliente HTTP centralizado com retry, timeout e logging.

Usado pelos adapters da API remota de sessões e de assinatura:
- Retry com backoff exponencial apenas para métodos idempotentes (GET/HEAD)
- Mutações (POST/PATCH/PUT/DELETE) são tentadas uma única vez
- Timeouts configuráveis
- Logging estruturado (sem tokens nem payloads)
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import httpx

from coach_sessions.observability.logging import get_logger

if TYPE_CHECKING:
    from coach_sessions.config.settings import Settings

logger: logging.Logger = get_logger(__name__)

IDEMPOTENT_METHODS = frozenset({"GET", "HEAD"})

# Regex pré-compilado para sanitização de URL
_TOKEN_PATTERN = re.compile(r"(access_token|token)=[^&]+")


def _sanitize_url(url: str) -> str:
    """Remove tokens da URL para logging seguro."""
    if "token=" in url:
        return _TOKEN_PATTERN.sub(r"\1=***", url)
    return url


@dataclass
class HttpClientConfig:
    """Configuração do cliente HTTP.

    Valores padrão são seguros e conservadores.
    """

    base_url: str = ""
    timeout_seconds: float = 10.0
    max_retries: int = 2
    backoff_base_seconds: float = 0.5
    backoff_max_seconds: float = 10.0
    default_headers: dict[str, str] = field(default_factory=dict)
    verify_ssl: bool = True


class HttpError(Exception):
    """Erro de requisição HTTP sem expor informações sensíveis."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        is_retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.is_retryable = is_retryable


def _is_retryable_status(status_code: int) -> bool:
    """Determina se status HTTP permite retry (429 ou 5xx)."""
    return status_code == 429 or 500 <= status_code < 600


def _calculate_backoff(attempt: int, base_seconds: float, max_seconds: float) -> float:
    """Calcula tempo de espera com backoff exponencial."""
    return min((2**attempt) * base_seconds, max_seconds)


def _transient_error(exc: Exception, method: str, url: str, attempt: int) -> HttpError:
    """Converte exceções transitórias (timeout, conexão) em HttpError retentável."""
    if isinstance(exc, httpx.TimeoutException):
        message = "HTTP request timed out"
    elif isinstance(exc, httpx.TransportError):
        message = "HTTP transport error"
    else:
        logger.error(
            "Unexpected HTTP error",
            extra={"method": method, "url": _sanitize_url(url), "error_type": type(exc).__name__},
        )
        raise HttpError(f"Unexpected error: {type(exc).__name__}") from exc

    logger.warning(
        message,
        extra={
            "method": method,
            "url": _sanitize_url(url),
            "attempt": attempt + 1,
            "error_type": type(exc).__name__,
        },
    )
    error = HttpError(message, is_retryable=True)
    error.__cause__ = exc
    return error


class HttpClient:
    """Cliente HTTP assíncrono com retry e logging.

    Uso típico:
        async with HttpClient(config) as client:
            response = await client.get("/sessions/abc")

    `transport` permite injetar httpx.MockTransport em testes.
    """

    def __init__(
        self,
        config: HttpClientConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config or HttpClientConfig()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def config(self) -> HttpClientConfig:
        return self._config

    async def _get_client(self) -> httpx.AsyncClient:
        """Retorna cliente httpx (lazy loading)."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._config.base_url,
                timeout=httpx.Timeout(self._config.timeout_seconds),
                headers=self._config.default_headers,
                verify=self._config.verify_ssl,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Fecha o cliente e libera recursos."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> HttpClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Executa requisição; retenta apenas métodos idempotentes.

        Raises:
            HttpError: status não-2xx ou falha de transporte após as tentativas
        """
        client = await self._get_client()
        cfg = self._config
        attempts = cfg.max_retries + 1 if method in IDEMPOTENT_METHODS else 1
        last_error: HttpError | None = None

        for attempt in range(attempts):
            logger.debug(
                "Executing HTTP request",
                extra={
                    "method": method,
                    "url": _sanitize_url(url),
                    "attempt": attempt + 1,
                    "max_attempts": attempts,
                },
            )
            try:
                response = await client.request(method, url, **kwargs)
            except Exception as exc:
                last_error = _transient_error(exc, method, url, attempt)
            else:
                if response.is_success:
                    logger.debug(
                        "HTTP request succeeded",
                        extra={
                            "method": method,
                            "url": _sanitize_url(url),
                            "status_code": response.status_code,
                        },
                    )
                    return response

                retryable = _is_retryable_status(response.status_code)
                last_error = HttpError(
                    f"HTTP {response.status_code}",
                    status_code=response.status_code,
                    is_retryable=retryable,
                )
                if not retryable:
                    logger.warning(
                        "HTTP request failed (not retryable)",
                        extra={
                            "method": method,
                            "url": _sanitize_url(url),
                            "status_code": response.status_code,
                        },
                    )
                    raise last_error

            if attempt + 1 < attempts:
                backoff = _calculate_backoff(
                    attempt, cfg.backoff_base_seconds, cfg.backoff_max_seconds
                )
                logger.info(
                    "Waiting backoff before retry",
                    extra={"backoff_seconds": backoff, "next_attempt": attempt + 2},
                )
                await asyncio.sleep(backoff)

        logger.error(
            "HTTP request attempts exhausted",
            extra={"method": method, "url": _sanitize_url(url), "total_attempts": attempts},
        )
        raise last_error or HttpError("Request failed after all attempts")

    # Métodos de conveniência

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        """Executa GET com retry."""
        return await self._request("GET", url, **kwargs)

    async def post(
        self,
        url: str,
        json: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Executa POST (sem retry)."""
        return await self._request("POST", url, json=json, **kwargs)

    async def patch(
        self,
        url: str,
        json: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Executa PATCH (sem retry)."""
        return await self._request("PATCH", url, json=json, **kwargs)


def create_http_client(
    settings: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> HttpClient:
    """Factory para criar cliente HTTP da API de sessões.

    Args:
        settings: Configurações da aplicação. Se None, usa get_settings()
        transport: Transporte httpx alternativo (testes)

    Returns:
        HttpClient configurado conforme settings
    """
    if settings is None:
        from coach_sessions.config.settings import get_settings

        settings = get_settings()

    headers = {"User-Agent": f"{settings.service_name}/{settings.version}"}
    if settings.session_store_api_token:
        headers["Authorization"] = f"Bearer {settings.session_store_api_token}"

    config = HttpClientConfig(
        base_url=settings.session_store_base_url or "",
        timeout_seconds=float(settings.session_store_timeout_seconds),
        max_retries=settings.session_store_max_retries,
        backoff_base_seconds=float(settings.session_store_backoff_seconds),
        default_headers=headers,
        verify_ssl=not settings.is_development,
    )

    logger.info(
        "HTTP client created",
        extra={
            "timeout_seconds": config.timeout_seconds,
            "max_retries": config.max_retries,
        },
    )

    return HttpClient(config, transport=transport)

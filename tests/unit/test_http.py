"""Testes unitários para infra/http.py.

Valida cliente HTTP com retry (apenas GET), timeout e logging.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from coach_sessions.config.settings import Settings
from coach_sessions.infra.http import (
    HttpClient,
    HttpClientConfig,
    HttpError,
    _calculate_backoff,
    _is_retryable_status,
    _sanitize_url,
    create_http_client,
)


def _response(status_code: int) -> MagicMock:
    response = MagicMock(spec=httpx.Response)
    response.status_code = status_code
    response.is_success = 200 <= status_code < 300
    return response


def _client_with(*responses, max_retries: int = 2) -> tuple[HttpClient, AsyncMock]:
    client = HttpClient(HttpClientConfig(max_retries=max_retries))
    mock_httpx_client = AsyncMock()
    mock_httpx_client.is_closed = False
    mock_httpx_client.request.side_effect = list(responses)
    client._client = mock_httpx_client
    return client, mock_httpx_client


class TestHttpClientConfig:
    """Testes para HttpClientConfig."""

    def test_default_values(self) -> None:
        """Valores padrão devem ser seguros."""
        config = HttpClientConfig()
        assert config.timeout_seconds == 10.0
        assert config.max_retries == 2
        assert config.backoff_base_seconds == 0.5
        assert config.verify_ssl is True
        assert config.default_headers == {}


class TestHelpers:
    def test_sanitize_url_removes_token(self) -> None:
        """Deve remover token da URL."""
        url = "https://api.example.com/sessions?token=secret123&page=2"
        sanitized = _sanitize_url(url)
        assert "secret123" not in sanitized
        assert "token=***" in sanitized
        assert "page=2" in sanitized

    def test_sanitize_url_preserves_clean_url(self) -> None:
        url = "https://api.example.com/sessions/abc"
        assert _sanitize_url(url) == url

    @pytest.mark.parametrize(
        ("status_code", "expected"),
        [(429, True), (500, True), (503, True), (400, False), (404, False), (409, False)],
    )
    def test_is_retryable_status(self, status_code: int, expected: bool) -> None:
        assert _is_retryable_status(status_code) is expected

    def test_calculate_backoff(self) -> None:
        """Backoff deve ser exponencial e respeitar o máximo."""
        assert _calculate_backoff(0, 0.5, 10.0) == 0.5
        assert _calculate_backoff(1, 0.5, 10.0) == 1.0
        assert _calculate_backoff(2, 0.5, 10.0) == 2.0
        assert _calculate_backoff(8, 0.5, 10.0) == 10.0

    def test_error_flags(self) -> None:
        error = HttpError("Server error", status_code=500, is_retryable=True)
        assert error.status_code == 500
        assert error.is_retryable is True
        assert str(error) == "Server error"


class TestHttpClientAsync:
    """Testes assíncronos para HttpClient."""

    @pytest.mark.asyncio
    async def test_get_success(self) -> None:
        client, mock_httpx_client = _client_with(_response(200))

        response = await client.get("/sessions/abc")

        assert response.status_code == 200
        mock_httpx_client.request.assert_called_once_with("GET", "/sessions/abc")

    @pytest.mark.asyncio
    async def test_get_retries_on_5xx(self) -> None:
        client, mock_httpx_client = _client_with(_response(500), _response(502), _response(200))

        with patch("asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            response = await client.get("/sessions/abc")

        assert response.status_code == 200
        assert mock_httpx_client.request.call_count == 3
        assert [c.args[0] for c in mock_sleep.await_args_list] == [0.5, 1.0]

    @pytest.mark.asyncio
    async def test_get_retries_on_timeout(self) -> None:
        client, mock_httpx_client = _client_with(
            httpx.ReadTimeout("slow"), _response(200), max_retries=1
        )

        with patch("asyncio.sleep", new_callable=AsyncMock):
            response = await client.get("/sessions/abc")

        assert response.status_code == 200
        assert mock_httpx_client.request.call_count == 2

    @pytest.mark.asyncio
    async def test_get_exhausts_retries(self) -> None:
        client, mock_httpx_client = _client_with(
            _response(503), _response(503), _response(503)
        )

        with patch("asyncio.sleep", new_callable=AsyncMock):
            with pytest.raises(HttpError) as exc_info:
                await client.get("/sessions/abc")

        assert exc_info.value.status_code == 503
        assert exc_info.value.is_retryable is True
        assert mock_httpx_client.request.call_count == 3

    @pytest.mark.asyncio
    async def test_get_does_not_retry_4xx(self) -> None:
        client, mock_httpx_client = _client_with(_response(404))

        with pytest.raises(HttpError) as exc_info:
            await client.get("/sessions/missing")

        assert exc_info.value.status_code == 404
        assert exc_info.value.is_retryable is False
        mock_httpx_client.request.assert_called_once()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method", ["post", "patch"])
    async def test_mutations_are_attempted_once(self, method: str) -> None:
        client, mock_httpx_client = _client_with(_response(503), _response(200))

        with pytest.raises(HttpError):
            await getattr(client, method)("/sessions", json={"status": "accepted"})

        mock_httpx_client.request.assert_called_once_with(
            method.upper(), "/sessions", json={"status": "accepted"}
        )

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_not_retried(self) -> None:
        client, mock_httpx_client = _client_with(RuntimeError("bug"))

        with pytest.raises(HttpError, match="Unexpected error"):
            await client.get("/sessions/abc")

        mock_httpx_client.request.assert_called_once()

    @pytest.mark.asyncio
    async def test_close(self) -> None:
        client, mock_httpx_client = _client_with(_response(200))

        async with client:
            await client.get("/sessions/abc")

        mock_httpx_client.aclose.assert_awaited_once()


class TestCreateHttpClient:
    def test_uses_settings(self) -> None:
        settings = Settings(
            environment="production",
            session_store_base_url="https://sessions.example.com",
            session_store_api_token="tok",
            session_store_timeout_seconds=3,
            session_store_max_retries=4,
        )

        config = create_http_client(settings).config

        assert config.base_url == "https://sessions.example.com"
        assert config.timeout_seconds == 3.0
        assert config.max_retries == 4
        assert config.default_headers["Authorization"] == "Bearer tok"
        assert config.verify_ssl is True

    def test_development_without_token(self) -> None:
        config = create_http_client(Settings()).config

        assert "Authorization" not in config.default_headers
        assert config.default_headers["User-Agent"].startswith("coach_sessions/")
        assert config.verify_ssl is False

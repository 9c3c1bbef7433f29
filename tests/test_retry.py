"""Tests for retry utilities with exponential backoff."""

from unittest.mock import AsyncMock, patch

import httpx
import pytest

from codebase_context.core.errors import ProviderError
from codebase_context.core.retry import (
    RETRYABLE_NETWORK_EXCEPTIONS,
    RETRYABLE_STATUS_CODES,
    is_retryable_error,
    parse_retry_after,
    retry_with_backoff,
)


def status_error(code, headers=None):
    request = httpx.Request("POST", "https://example.test/embed")
    response = httpx.Response(code, headers=headers or {}, request=request)
    return httpx.HTTPStatusError(f"HTTP {code}", request=request, response=response)


class TestRetryableStatusCodes:
    """Tests for retryable status code constants."""

    def test_includes_rate_limit_and_server_errors(self):
        for code in (408, 429, 500, 502, 503, 504):
            assert code in RETRYABLE_STATUS_CODES

    def test_excludes_client_errors(self):
        """Auth and request errors are permanent."""
        for code in (400, 401, 403, 404):
            assert code not in RETRYABLE_STATUS_CODES

    def test_plain_oserror_not_retried(self):
        """File system errors are not network errors."""
        assert OSError not in RETRYABLE_NETWORK_EXCEPTIONS
        assert is_retryable_error(FileNotFoundError("missing")) is False


class TestIsRetryableError:
    """Tests for is_retryable_error function."""

    def test_network_errors(self):
        assert is_retryable_error(TimeoutError("timeout")) is True
        assert is_retryable_error(ConnectionError("refused")) is True
        assert is_retryable_error(httpx.ConnectError("refused")) is True

    def test_programming_errors(self):
        assert is_retryable_error(TypeError("bad type")) is False
        assert is_retryable_error(ValueError("bad value")) is False

    def test_http_status(self):
        assert is_retryable_error(status_error(503)) is True
        assert is_retryable_error(status_error(401)) is False

    def test_provider_error_uses_status_code(self):
        """A ProviderError is judged by the status code it carries."""
        assert is_retryable_error(ProviderError("boom", context={"status_code": 429})) is True
        assert is_retryable_error(ProviderError("boom", context={"status_code": 400})) is False

    def test_provider_error_uses_cause(self):
        """Without a status code, the wrapped transport error decides."""
        try:
            try:
                raise httpx.ReadTimeout("slow")
            except httpx.ReadTimeout as e:
                raise ProviderError("OpenAI batch embedding failed: slow") from e
        except ProviderError as wrapped:
            assert is_retryable_error(wrapped) is True

        assert is_retryable_error(ProviderError("connection reset")) is False

    def test_message_hints(self):
        assert is_retryable_error(RuntimeError("service temporarily unavailable")) is True
        assert is_retryable_error(RuntimeError("invalid request")) is False
        assert is_retryable_error(RuntimeError("HTTP 502 from upstream")) is True
        assert is_retryable_error(RuntimeError("something odd")) is False


class TestParseRetryAfter:
    """Tests for parse_retry_after."""

    def test_none_response(self):
        assert parse_retry_after(None) is None

    def test_seconds(self):
        assert parse_retry_after(status_error(429, {"Retry-After": "7"}).response) == 7.0

    def test_missing_header(self):
        assert parse_retry_after(status_error(429).response) is None

    def test_capped(self):
        assert parse_retry_after(status_error(429, {"Retry-After": "999999"}).response) == 3600.0

    def test_garbage(self):
        assert parse_retry_after(status_error(429, {"Retry-After": "soon"}).response) is None


class TestRetryWithBackoff:
    """Tests for retry_with_backoff."""

    @pytest.mark.asyncio
    async def test_success_first_try(self):
        calls = []

        async def ok(x):
            calls.append(x)
            return x * 2

        assert await retry_with_backoff(ok, 21) == 42
        assert calls == [21]

    @pytest.mark.asyncio
    async def test_retries_transient_errors(self):
        attempts = {"n": 0}

        async def flaky():
            attempts["n"] += 1
            if attempts["n"] < 3:
                raise httpx.ConnectError("refused")
            return "done"

        result = await retry_with_backoff(flaky, base_delay=0, jitter=0)
        assert result == "done"
        assert attempts["n"] == 3

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self):
        attempts = {"n": 0}

        async def always_down():
            attempts["n"] += 1
            raise TimeoutError("timeout")

        with pytest.raises(TimeoutError):
            await retry_with_backoff(always_down, max_retries=2, base_delay=0, jitter=0)
        assert attempts["n"] == 3

    @pytest.mark.asyncio
    async def test_permanent_error_not_retried(self):
        attempts = {"n": 0}

        async def bad_key():
            attempts["n"] += 1
            raise ProviderError("unauthorized", context={"status_code": 401})

        with pytest.raises(ProviderError):
            await retry_with_backoff(bad_key, base_delay=0, jitter=0)
        assert attempts["n"] == 1

    @pytest.mark.asyncio
    async def test_honours_retry_after(self):
        """Retry-After on the wrapped response overrides the backoff delay."""
        error = status_error(429, {"Retry-After": "1.5"})
        attempts = {"n": 0}

        async def rate_limited():
            attempts["n"] += 1
            if attempts["n"] == 1:
                raise ProviderError("rate limited", context={"status_code": 429}) from error
            return "ok"

        with patch("codebase_context.core.retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
            assert await retry_with_backoff(rate_limited, base_delay=10) == "ok"
        sleep.assert_awaited_once_with(1.5)

    @pytest.mark.asyncio
    async def test_backoff_capped(self):
        delays = []

        async def fake_sleep(delay):
            delays.append(delay)

        async def down():
            raise httpx.ReadTimeout("slow")

        with patch("codebase_context.core.retry.asyncio.sleep", fake_sleep):
            with pytest.raises(httpx.ReadTimeout):
                await retry_with_backoff(down, max_retries=3, base_delay=10, max_delay=25, jitter=0)
        assert delays == [10, 20, 25]

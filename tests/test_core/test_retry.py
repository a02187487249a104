"""
Tests for Retry Utilities

Tests for mangamotion/core/retry.py
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from mangamotion.core.exceptions import TransportError
from mangamotion.core.retry import RetryConfig, calculate_delay, retry_async_call


class TestRetryConfig:
    """Tests for RetryConfig."""

    def test_fixed_config_has_constant_delay(self):
        config = RetryConfig.fixed(3, 5.0)

        assert config.total_attempts == 3
        assert [calculate_delay(i, config) for i in range(3)] == [5.0, 5.0, 5.0]

    def test_exponential_delay_is_capped(self):
        config = RetryConfig(base_delay=1.0, max_delay=4.0, jitter=False)

        assert calculate_delay(0, config) == 1.0
        assert calculate_delay(1, config) == 2.0
        assert calculate_delay(5, config) == 4.0


class TestRetryAsyncCall:
    """Tests for retry_async_call."""

    @pytest.mark.asyncio
    async def test_returns_first_success(self, fake_sleep):
        func = AsyncMock(side_effect=[TransportError("svc", "down"), "ok"])

        result = await retry_async_call(func, config=RetryConfig.fixed(3, 5.0), sleep=fake_sleep)

        assert result == "ok"
        assert func.await_count == 2
        assert fake_sleep.delays == [5.0]

    @pytest.mark.asyncio
    async def test_raises_last_error_after_all_attempts(self, fake_sleep):
        errors = [TransportError("svc", f"failure {i}") for i in range(3)]
        func = AsyncMock(side_effect=errors)
        on_retry = MagicMock()

        with pytest.raises(TransportError) as exc_info:
            await retry_async_call(
                func,
                config=RetryConfig.fixed(3, 5.0, (TransportError,)),
                on_retry=on_retry,
                sleep=fake_sleep,
            )

        assert exc_info.value is errors[-1]
        assert func.await_count == 3
        assert on_retry.call_count == 2
        # No pause after the final attempt
        assert fake_sleep.delays == [5.0, 5.0]

    @pytest.mark.asyncio
    async def test_non_retryable_error_propagates_immediately(self, fake_sleep):
        func = AsyncMock(side_effect=ValueError("bad input"))

        with pytest.raises(ValueError):
            await retry_async_call(
                func,
                config=RetryConfig.fixed(3, 5.0, (TransportError,)),
                sleep=fake_sleep,
            )

        assert func.await_count == 1
        assert fake_sleep.delays == []

"""Unit tests for definy_core.state.retry."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from definy_core.config import load_settings
from definy_core.state.retry import RetryConfig, _compute_delay, async_retry_with_backoff

# ---------------------------------------------------------------------------
# RetryConfig
# ---------------------------------------------------------------------------


class TestRetryConfig:
    def test_default_values(self):
        config = RetryConfig()
        assert config.max_retries == 3
        assert config.base_delay == 0.1
        assert config.max_delay == 5.0
        assert config.jitter is True

    def test_zero_retries_allowed(self):
        config = RetryConfig(max_retries=0)
        assert config.max_retries == 0

    def test_from_settings(self):
        settings = load_settings(max_retries=6, retry_backoff_base=0.5, retry_max_delay=2.0)
        config = RetryConfig.from_settings(settings)
        assert config.max_retries == 6
        assert config.base_delay == 0.5
        assert config.max_delay == 2.0


# ---------------------------------------------------------------------------
# _compute_delay
# ---------------------------------------------------------------------------


class TestComputeDelay:
    def test_exponential_growth_no_jitter(self):
        config = RetryConfig(base_delay=1.0, max_delay=100.0, jitter=False)
        assert [_compute_delay(n, config) for n in range(4)] == [1.0, 2.0, 4.0, 8.0]

    def test_max_delay_cap(self):
        config = RetryConfig(base_delay=1.0, max_delay=5.0, jitter=False)
        assert _compute_delay(10, config) == 5.0

    def test_jitter_stays_within_bounds(self):
        config = RetryConfig(base_delay=10.0, max_delay=100.0, jitter=True)
        for _ in range(100):
            assert 5.0 <= _compute_delay(0, config) <= 15.0


# ---------------------------------------------------------------------------
# async_retry_with_backoff
# ---------------------------------------------------------------------------


class TestAsyncRetryWithBackoff:
    @pytest.mark.asyncio
    async def test_succeeds_first_try(self):
        fn = AsyncMock(return_value=42)
        config = RetryConfig(max_retries=3, base_delay=0.01, jitter=False)

        assert await async_retry_with_backoff(fn, config) == 42
        assert fn.await_count == 1

    @pytest.mark.asyncio
    @patch("definy_core.state.retry.asyncio.sleep", new_callable=AsyncMock)
    async def test_succeeds_after_retries(self, mock_sleep: AsyncMock):
        fn = AsyncMock(side_effect=[ValueError("busy"), ValueError("busy"), "done"])
        config = RetryConfig(max_retries=3, base_delay=0.01, jitter=False)

        result = await async_retry_with_backoff(fn, config, retryable_exceptions=(ValueError,))

        assert result == "done"
        assert fn.await_count == 3
        assert [c.args[0] for c in mock_sleep.await_args_list] == [0.01, 0.02]

    @pytest.mark.asyncio
    @patch("definy_core.state.retry.asyncio.sleep", new_callable=AsyncMock)
    async def test_exhausts_retries_raises_last(self, mock_sleep: AsyncMock):
        fn = AsyncMock(side_effect=[ValueError("first"), ValueError("second"), ValueError("third")])
        config = RetryConfig(max_retries=2, base_delay=0.01, jitter=False)

        with pytest.raises(ValueError, match="third"):
            await async_retry_with_backoff(fn, config, retryable_exceptions=(ValueError,))

        assert fn.await_count == 3
        assert mock_sleep.await_count == 2

    @pytest.mark.asyncio
    @patch("definy_core.state.retry.asyncio.sleep", new_callable=AsyncMock)
    async def test_only_retryable_exceptions_retried(self, mock_sleep: AsyncMock):
        fn = AsyncMock(side_effect=TypeError("not retryable"))
        config = RetryConfig(max_retries=3, base_delay=0.01, jitter=False)

        with pytest.raises(TypeError):
            await async_retry_with_backoff(fn, config, retryable_exceptions=(ValueError,))

        assert fn.await_count == 1
        assert mock_sleep.await_count == 0

    @pytest.mark.asyncio
    @patch("definy_core.state.retry.asyncio.sleep", new_callable=AsyncMock)
    async def test_zero_retries_fails_immediately(self, mock_sleep: AsyncMock):
        fn = AsyncMock(side_effect=ValueError("fail"))
        config = RetryConfig(max_retries=0, base_delay=0.01, jitter=False)

        with pytest.raises(ValueError, match="fail"):
            await async_retry_with_backoff(fn, config, retryable_exceptions=(ValueError,))

        assert fn.await_count == 1
        assert mock_sleep.await_count == 0

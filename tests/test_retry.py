"""Tests for the retry helper."""

import pytest

from eagledeploy.retry import RetryConfig, RetryState, retry_with_backoff


class TestRetryConfig:
    """Tests for delay calculation."""

    def test_fixed_delay(self):
        """Test backoff_factor 1.0 keeps the delay fixed."""
        config = RetryConfig(initial_delay=2.0)
        assert [config.get_delay(n) for n in (1, 2, 3)] == [2.0, 2.0, 2.0]

    def test_exponential_delay_is_capped(self):
        """Test exponential backoff honours max_delay."""
        config = RetryConfig(initial_delay=1.0, backoff_factor=2.0, max_delay=3.0)
        assert [config.get_delay(n) for n in (1, 2, 3)] == [1.0, 2.0, 3.0]


class TestRetryWithBackoff:
    """Tests for retry_with_backoff."""

    @pytest.mark.asyncio
    async def test_succeeds_after_failures(self):
        """Test the first successful attempt is returned."""
        calls = []

        async def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise ConnectionError("boom")
            return "done"

        state = RetryState(name="host")
        result = await retry_with_backoff(flaky, RetryConfig(max_attempts=3, initial_delay=0), state=state)
        assert result == "done"
        assert state.attempts == 3
        assert state.succeeded

    @pytest.mark.asyncio
    async def test_reraises_last_error(self):
        """Test the last exception propagates once attempts run out."""
        attempts = []

        async def always_fails():
            attempts.append(1)
            raise ConnectionError(f"failure {len(attempts)}")

        state = RetryState(name="host")
        with pytest.raises(ConnectionError, match="failure 2"):
            await retry_with_backoff(
                always_fails, RetryConfig(max_attempts=2, initial_delay=0), state=state
            )
        assert state.attempts == 2
        assert state.last_error == "failure 2"
        assert not state.succeeded

    @pytest.mark.asyncio
    async def test_unlisted_errors_are_not_retried(self):
        """Test only retry_on exceptions trigger another attempt."""
        attempts = []

        async def wrong_type():
            attempts.append(1)
            raise KeyError("nope")

        with pytest.raises(KeyError):
            await retry_with_backoff(
                wrong_type,
                RetryConfig(max_attempts=3, initial_delay=0),
                retry_on=(ConnectionError,),
            )
        assert len(attempts) == 1

"""
Tests for confirmation polling.

Not-found and query errors are transient; a settled failure is final.
"""
import pytest

from listing_sniper.execution import (
    ConfirmationPoller,
    ConfirmationStatus,
    RetryPolicy,
    RpcError,
)


class TestConfirmationPoller:
    """Tests for polling a signature until its outcome is known."""

    @pytest.mark.asyncio
    async def test_confirmed_on_first_attempt(self, status_provider, clock):
        poller = ConfirmationPoller(status_provider, clock)

        result = await poller.poll("SIG1", RetryPolicy.fixed(0.2, max_attempts=3))

        assert result.succeeded
        assert result.attempts == 1
        assert clock.sleeps == []

    @pytest.mark.asyncio
    async def test_confirmed_after_not_found(self, status_provider, confirmed_tx, clock):
        """Not found twice then confirmed -> CONFIRMED after 3 attempts."""
        status_provider.get_transaction.side_effect = [None, None, confirmed_tx]
        poller = ConfirmationPoller(status_provider, clock)

        result = await poller.poll("SIG1", RetryPolicy.fixed(0.2, max_attempts=20))

        assert result.status == ConfirmationStatus.CONFIRMED
        assert result.attempts == 3
        assert clock.sleeps == [0.2, 0.2]
        status_provider.get_transaction.assert_awaited_with("SIG1")

    @pytest.mark.asyncio
    async def test_failed_transaction_is_final(self, status_provider, failed_tx, clock):
        """Should stop on the first settled failure, without retrying."""
        status_provider.get_transaction.return_value = failed_tx
        poller = ConfirmationPoller(status_provider, clock)

        result = await poller.poll("SIG1", RetryPolicy.fixed(0.2, max_attempts=20))

        assert result.status == ConfirmationStatus.FAILED
        assert result.attempts == 1
        assert result.error == {"InstructionError": [2, {"Custom": 6001}]}
        assert status_provider.get_transaction.await_count == 1

    @pytest.mark.asyncio
    async def test_missing_meta_counts_as_failure(self, status_provider, clock):
        status_provider.get_transaction.return_value = {"slot": 1}
        poller = ConfirmationPoller(status_provider, clock)

        result = await poller.poll("SIG1", RetryPolicy.fixed(0.2, max_attempts=3))

        assert result.status == ConfirmationStatus.FAILED

    @pytest.mark.asyncio
    async def test_not_found_until_budget_exhausted(self, status_provider, clock):
        status_provider.get_transaction.return_value = None
        poller = ConfirmationPoller(status_provider, clock)

        result = await poller.poll("SIG1", RetryPolicy.fixed(0.2, max_attempts=3))

        assert result.status == ConfirmationStatus.NOT_FOUND
        assert result.attempts == 3
        assert status_provider.get_transaction.await_count == 3
        # No sleep after the last attempt
        assert clock.sleeps == [0.2, 0.2]

    @pytest.mark.asyncio
    async def test_query_error_is_transient(self, status_provider, confirmed_tx, clock):
        status_provider.get_transaction.side_effect = [RpcError("429 Too Many Requests"), confirmed_tx]
        poller = ConfirmationPoller(status_provider, clock)

        result = await poller.poll("SIG1", RetryPolicy.fixed(0.2, max_attempts=3))

        assert result.succeeded
        assert result.attempts == 2

    @pytest.mark.asyncio
    async def test_unexpected_error_propagates(self, status_provider, clock):
        """Only RetryableError counts as a transient query failure."""
        status_provider.get_transaction.side_effect = KeyError("result")
        poller = ConfirmationPoller(status_provider, clock)

        with pytest.raises(KeyError):
            await poller.poll("SIG1", RetryPolicy.fixed(0.2, max_attempts=3))

        assert status_provider.get_transaction.await_count == 1
        assert clock.sleeps == []

    @pytest.mark.asyncio
    async def test_default_policy_is_unbounded(self, status_provider, confirmed_tx, clock):
        status_provider.get_transaction.side_effect = [None] * 50 + [confirmed_tx]
        poller = ConfirmationPoller(status_provider, clock)

        result = await poller.poll("SIG1")

        assert result.succeeded
        assert result.attempts == 51
        assert set(clock.sleeps) == {ConfirmationPoller.DEFAULT_INTERVAL}

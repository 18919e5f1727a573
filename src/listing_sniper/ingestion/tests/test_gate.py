"""
Tests for the event gate.

The gate is the only writer of the seen-set and the only place the
execution lock is acquired.
"""
import asyncio

import pytest

from listing_sniper.ingestion import GateDecision, ListingEvent


class TestLatencyGate:
    """Tests for the propagation-delay threshold."""

    @pytest.mark.asyncio
    async def test_fresh_event_accepted(self, gate, executor, start_lifecycle, make_message):
        """Published 100ms ago with a 900ms threshold -> lifecycle starts."""
        decision = gate.handle_message(make_message("MintA", age_ms=100))

        assert decision == GateDecision.ACCEPTED
        assert executor.is_busy
        assert executor.lock.owner == "MintA"
        assert "MintA" in gate.seen_mints

        await executor.current_task
        start_lifecycle.assert_awaited_once_with("MintA")
        assert not executor.is_busy

    def test_stale_event_rejected(self, gate, executor, start_lifecycle, make_message):
        """Published 1500ms ago -> dropped, not marked seen, no lifecycle."""
        decision = gate.handle_message(make_message("MintA", age_ms=1500))

        assert decision == GateDecision.STALE
        assert not executor.is_busy
        assert "MintA" not in gate.seen_mints
        start_lifecycle.assert_not_called()

    @pytest.mark.asyncio
    async def test_threshold_is_inclusive(self, gate, executor, clock):
        now = clock.now_ms()
        event = ListingEvent(mint="MintA", chain_time_ms=now - 900, received_at_ms=now)

        decision = gate.evaluate(event)

        assert decision == GateDecision.ACCEPTED
        await executor.current_task

    @pytest.mark.asyncio
    async def test_stale_mint_can_be_accepted_later(self, gate, executor, make_message):
        gate.handle_message(make_message("MintA", age_ms=1500))

        decision = gate.handle_message(make_message("MintA", age_ms=50))

        assert decision == GateDecision.ACCEPTED
        await executor.current_task


class TestDedup:
    """Tests for the seen-set and busy rejection."""

    @pytest.mark.asyncio
    async def test_duplicate_never_restarts(self, gate, executor, start_lifecycle, make_message):
        gate.handle_message(make_message("MintA"))
        await executor.current_task

        decision = gate.handle_message(make_message("MintA"))

        assert decision == GateDecision.DUPLICATE
        assert start_lifecycle.await_count == 1

    @pytest.mark.asyncio
    async def test_busy_drops_other_mints(self, gate, executor, start_lifecycle, make_message):
        """While one lifecycle runs, new mints are dropped and not remembered."""
        release = asyncio.Event()

        async def hold(mint):
            await release.wait()

        start_lifecycle.side_effect = hold

        assert gate.handle_message(make_message("MintA")) == GateDecision.ACCEPTED
        assert gate.handle_message(make_message("MintB")) == GateDecision.BUSY
        assert "MintB" not in gate.seen_mints

        release.set()
        await executor.current_task

        assert gate.handle_message(make_message("MintB")) == GateDecision.ACCEPTED
        await executor.current_task

    @pytest.mark.asyncio
    async def test_burst_starts_exactly_one(self, gate, executor, start_lifecycle, make_message):
        """N valid events while the lock is free -> exactly one lifecycle."""
        decisions = [gate.handle_message(make_message(f"Mint{i}")) for i in range(10)]

        assert decisions.count(GateDecision.ACCEPTED) == 1
        assert decisions.count(GateDecision.BUSY) == 9

        await executor.current_task
        assert start_lifecycle.await_count == 1


class TestMessageHandling:
    """Tests for non-listing and broken messages."""

    def test_invalid_json_is_malformed(self, gate):
        assert gate.handle_message("{not json") == GateDecision.MALFORMED

    def test_missing_block_time_is_malformed(self, gate, make_message):
        raw = make_message("MintA", blockTime=None)

        assert gate.handle_message(raw) == GateDecision.MALFORMED
        assert "MintA" not in gate.seen_mints

    @pytest.mark.parametrize("block_time", [float("nan"), float("inf"), -float("inf"), 1e20])
    def test_unusable_block_time_is_malformed(self, gate, make_message, block_time):
        raw = make_message("MintZ", blockTime=block_time)

        assert gate.handle_message(raw) == GateDecision.MALFORMED
        assert "MintZ" not in gate.seen_mints
        assert gate.stats["malformed"] == 1

    def test_subscription_ack_is_ignored(self, gate, executor):
        decision = gate.handle_message('{"jsonrpc": "2.0", "id": 1, "result": 42}')

        assert decision == GateDecision.IGNORED
        assert not executor.is_busy

    @pytest.mark.asyncio
    async def test_stats_count_decisions(self, gate, executor, make_message):
        gate.handle_message(make_message("MintA"))
        await executor.current_task
        gate.handle_message(make_message("MintA"))
        gate.handle_message(make_message("MintB", age_ms=5000))
        gate.handle_message("garbage")

        stats = gate.stats

        assert stats["accepted"] == 1
        assert stats["duplicate"] == 1
        assert stats["stale"] == 1
        assert stats["malformed"] == 1
        assert stats["busy"] == 0

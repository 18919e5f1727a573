"""
Tests for SniperPipeline wiring and shutdown.
"""
import asyncio
import json

import pytest

from listing_sniper.core import PipelineConfig, SniperPipeline
from listing_sniper.ingestion import GateDecision, ListingStreamClient


def listing(mint, block_time):
    return json.dumps({
        "method": "newPairNotification",
        "params": {"blockTime": block_time, "pair": {"baseToken": {"account": mint}}},
    })


class TestPipelineConfig:
    """Tests for derived settings."""

    def test_reconnect_policy(self):
        policy = PipelineConfig(max_reconnect_attempts=4, reconnect_max_delay=8.0).reconnect_policy

        assert policy.max_attempts == 4
        assert policy.delay_for(5) == 8.0


class TestWiring:
    """Tests for how the pipeline connects its parts."""

    def test_builds_stream_from_config(self, mock_orchestrator):
        pipeline = SniperPipeline(
            mock_orchestrator,
            PipelineConfig(stream_url="wss://stream.test/", stream_api_key="k"),
        )

        assert isinstance(pipeline.stream, ListingStreamClient)
        assert pipeline.executor.lock is pipeline.lock
        assert pipeline.gate.threshold_ms == 900

    def test_stream_sees_lock(self, mock_orchestrator):
        pipeline = SniperPipeline(mock_orchestrator)

        assert not pipeline.stream._is_busy()
        pipeline.lock.try_acquire("MintA")
        assert pipeline.stream._is_busy()
        pipeline.lock.release()

    @pytest.mark.asyncio
    async def test_accepted_listing_runs_orchestrator(self, mock_orchestrator, mock_stream, clock):
        pipeline = SniperPipeline(mock_orchestrator, clock=clock, stream=mock_stream)
        block_time = (clock.now_ms() - 200) / 1000

        decision = pipeline.gate.handle_message(listing("MintA", block_time))

        assert decision == GateDecision.ACCEPTED
        assert pipeline.lock.owner == "MintA"
        await pipeline.executor.current_task
        mock_orchestrator.run.assert_awaited_once_with("MintA")
        assert not pipeline.lock.is_held

    @pytest.mark.asyncio
    async def test_start_and_stop_stream(self, mock_orchestrator, mock_stream):
        pipeline = SniperPipeline(mock_orchestrator, stream=mock_stream)

        await pipeline.start()
        await pipeline.stop()

        mock_stream.start.assert_awaited_once()
        mock_stream.stop.assert_awaited_once()


class TestShutdown:
    """Tests for the shutdown grace period."""

    @pytest.mark.asyncio
    async def test_waits_for_short_lifecycle(self, mock_orchestrator, mock_stream, clock):
        finished = []

        async def run(mint):
            await asyncio.sleep(0.01)
            finished.append(mint)

        mock_orchestrator.run.side_effect = run
        pipeline = SniperPipeline(
            mock_orchestrator,
            PipelineConfig(shutdown_grace_seconds=1.0),
            clock=clock,
            stream=mock_stream,
        )
        pipeline.gate.handle_message(listing("MintA", clock.now_ms() / 1000))

        await pipeline.stop()

        assert finished == ["MintA"]
        assert not pipeline.lock.is_held

    @pytest.mark.asyncio
    async def test_cancels_lifecycle_after_grace(self, mock_orchestrator, mock_stream, clock):
        async def run(mint):
            await asyncio.sleep(60)

        mock_orchestrator.run.side_effect = run
        pipeline = SniperPipeline(
            mock_orchestrator,
            PipelineConfig(shutdown_grace_seconds=0.01),
            clock=clock,
            stream=mock_stream,
        )
        pipeline.gate.handle_message(listing("MintA", clock.now_ms() / 1000))

        await pipeline.stop()

        assert pipeline.executor.current_task.cancelled()
        assert not pipeline.lock.is_held

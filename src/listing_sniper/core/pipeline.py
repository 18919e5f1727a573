"""
SniperPipeline - owns the shared state between ingestion and execution.

The execution lock and the seen-mint set used to be the kind of thing that
lives in module globals. Here they are fields of one coordinator:

    stream --raw message--> gate --accepted mint--> executor --> orchestrator
       ^                     |                         |
       +---- is_busy --------+------- lock ------------+

The stream only asks "is a trade running?"; the gate is the only writer of
the seen-set; the executor is the only place the lock is taken and released.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from listing_sniper.execution.lock import ExecutionLock, SingleFlightExecutor
from listing_sniper.execution.retry import RetryPolicy
from listing_sniper.ingestion.gate import EventGate
from listing_sniper.ingestion.websocket import ListingStreamClient

if TYPE_CHECKING:
    from listing_sniper.execution.clock import Clock
    from listing_sniper.execution.orchestrator import TradeOrchestrator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PipelineConfig:
    """Gate threshold, stream connection and shutdown behaviour."""

    # Latency gate
    event_timeout_ms: int = 900

    # Stream
    stream_url: str = ListingStreamClient.WS_URL
    stream_api_key: str = ""
    max_reconnect_attempts: int = 10
    reconnect_base_delay: float = 1.0
    reconnect_max_delay: float = 30.0
    ping_interval: float = 20.0
    health_check_interval: float = 30.0
    stale_after: float = 60.0

    # Shutdown
    shutdown_grace_seconds: float = 5.0

    @property
    def reconnect_policy(self) -> RetryPolicy:
        return RetryPolicy.exponential(
            base=self.reconnect_base_delay,
            cap=self.reconnect_max_delay,
            max_attempts=self.max_reconnect_attempts,
        )


class SniperPipeline:
    """
    Wires stream -> gate -> single-flight executor -> orchestrator.

    Usage:
        pipeline = SniperPipeline(orchestrator, PipelineConfig(stream_api_key=key))
        await pipeline.start()
        # ... runs until shutdown
        await pipeline.stop()
    """

    def __init__(
        self,
        orchestrator: "TradeOrchestrator",
        config: Optional[PipelineConfig] = None,
        clock: Optional["Clock"] = None,
        stream: Optional[ListingStreamClient] = None,
    ) -> None:
        """
        Args:
            orchestrator: Lifecycle runner for accepted mints
            config: Pipeline configuration
            clock: Time source for the gate (tests inject a fake one)
            stream: Pre-built stream client (created from config if omitted)
        """
        self._orchestrator = orchestrator
        self._config = config or PipelineConfig()

        self._lock = ExecutionLock()
        self._executor = SingleFlightExecutor(self._lock)
        self._gate = EventGate(
            executor=self._executor,
            start_lifecycle=orchestrator.run,
            threshold_ms=self._config.event_timeout_ms,
            clock=clock,
        )
        self._stream = stream or ListingStreamClient(
            on_message=self._gate.handle_message,
            is_busy=lambda: self._lock.is_held,
            api_key=self._config.stream_api_key,
            url=self._config.stream_url,
            ping_interval=self._config.ping_interval,
            health_check_interval=self._config.health_check_interval,
            stale_after=self._config.stale_after,
            reconnect_policy=self._config.reconnect_policy,
        )

    @property
    def lock(self) -> ExecutionLock:
        return self._lock

    @property
    def executor(self) -> SingleFlightExecutor:
        return self._executor

    @property
    def gate(self) -> EventGate:
        return self._gate

    @property
    def stream(self) -> ListingStreamClient:
        return self._stream

    async def start(self) -> None:
        """Connect the stream. Lifecycles start as listings arrive."""
        await self._stream.start()

    async def stop(self) -> None:
        """
        Close the stream, then give an in-flight lifecycle a grace period.

        The stream is closed first so no new lifecycle can start.
        """
        await self._stream.stop()

        if self._executor.is_busy:
            logger.info(
                f"Waiting up to {self._config.shutdown_grace_seconds:.1f}s for "
                f"lifecycle of {self._lock.owner} to finish"
            )
        await self._executor.drain(self._config.shutdown_grace_seconds)

"""
BackgroundTasksManager - Manages async background tasks.

Handles periodic tasks that run beside the stream and the trade pipeline:
- Statistics flush (timing snapshot to the stats sink)
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
    from listing_sniper.execution.timing import TimingRegistry
    from listing_sniper.storage import JsonStatsSink

logger = logging.getLogger(__name__)


@dataclass
class BackgroundTaskConfig:
    """Configuration for background tasks."""

    # Statistics flush
    stats_interval_seconds: float = 60
    stats_enabled: bool = True


class BackgroundTasksManager:
    """
    Manages background async tasks for the sniper.

    Tasks survive their own errors and are cancelled on stop. A final flush
    runs on stop so the last lifecycle is never lost.

    Usage:
        manager = BackgroundTasksManager(
            registry=timing_registry,
            stats_sink=JsonStatsSink("./logs"),
            config=BackgroundTaskConfig(),
        )
        await manager.start()
        # ... bot runs ...
        await manager.stop()
    """

    def __init__(
        self,
        registry: "TimingRegistry",
        stats_sink: "JsonStatsSink",
        config: Optional[BackgroundTaskConfig] = None,
    ) -> None:
        self._registry = registry
        self._stats_sink = stats_sink
        self._config = config or BackgroundTaskConfig()

        self._running = False
        self._tasks: List[asyncio.Task] = []
        self._stop_event = asyncio.Event()

    @property
    def is_running(self) -> bool:
        """Whether the manager is running."""
        return self._running

    async def start(self) -> None:
        """Start all background tasks."""
        if self._running:
            logger.warning("BackgroundTasksManager already running")
            return

        logger.info("Starting background tasks...")
        self._running = True
        self._stop_event.clear()

        if self._config.stats_enabled:
            task = asyncio.create_task(
                self._stats_flush_loop(),
                name="stats_flush",
            )
            self._tasks.append(task)
            logger.info(
                f"Started statistics flush task "
                f"(interval={self._config.stats_interval_seconds}s)"
            )

        logger.info(f"Background tasks started: {len(self._tasks)} tasks")

    async def stop(self) -> None:
        """Stop all background tasks gracefully."""
        if not self._running:
            return

        logger.info("Stopping background tasks...")
        self._running = False
        self._stop_event.set()

        # Cancel all tasks
        for task in self._tasks:
            if not task.done():
                task.cancel()

        # Wait for cancellation
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

        self._tasks.clear()

        if self._config.stats_enabled:
            await self.flush_stats()

        logger.info("Background tasks stopped")

    async def flush_stats(self) -> bool:
        """Write the timing snapshot if there is anything to write."""
        if len(self._registry) == 0:
            return False

        try:
            await self._stats_sink.write(self._registry.snapshot())
            return True
        except Exception as e:
            logger.error(f"Failed to save statistics: {e}")
            return False

    async def _stats_flush_loop(self) -> None:
        """Periodically persist timing statistics."""
        interval = self._config.stats_interval_seconds

        while self._running:
            try:
                # Wait for interval or stop
                try:
                    await asyncio.wait_for(
                        self._stop_event.wait(),
                        timeout=interval,
                    )
                    break  # Stop requested
                except asyncio.TimeoutError:
                    pass  # Continue with flush

                if not self._running:
                    break

                await self.flush_stats()

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in statistics flush: {e}")
                await asyncio.sleep(5)

"""
Execution lock and single-flight executor.

The lock is the one piece of mutable state shared between the streaming
connection and trade execution. It is acquired synchronously by the event
gate before any asynchronous work starts and released by the executor in a
finally block, so a lifecycle that returns early or raises can never leak it.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ExecutionLock:
    """Process-wide single-flight flag, remembering which mint holds it."""

    def __init__(self) -> None:
        self._owner: Optional[str] = None

    @property
    def is_held(self) -> bool:
        return self._owner is not None

    @property
    def owner(self) -> Optional[str]:
        return self._owner

    def try_acquire(self, owner: str) -> bool:
        """Take the lock if it is free. Never waits."""
        if self._owner is not None:
            return False
        self._owner = owner
        return True

    def release(self) -> None:
        if self._owner is None:
            logger.warning("Execution lock released while not held")
        self._owner = None


class SingleFlightExecutor:
    """
    Capacity-one executor for trade lifecycles.

    Submissions made while a lifecycle is running are rejected rather than
    queued: the pipeline only ever works on one token.

    Usage:
        executor = SingleFlightExecutor(lock)
        task = executor.try_submit(mint, lambda: orchestrator.run(mint))
        if task is None:
            ...  # busy, dropped
    """

    def __init__(self, lock: Optional[ExecutionLock] = None) -> None:
        self._lock = lock or ExecutionLock()
        self._task: Optional[asyncio.Task] = None

    @property
    def lock(self) -> ExecutionLock:
        return self._lock

    @property
    def is_busy(self) -> bool:
        return self._lock.is_held

    @property
    def current_task(self) -> Optional[asyncio.Task]:
        return self._task

    def try_submit(
        self,
        key: str,
        job: Callable[[], Awaitable[T]],
    ) -> Optional["asyncio.Task[Optional[T]]"]:
        """
        Start `job` in the background if nothing else is running.

        Returns the task, or None if the executor is occupied.
        """
        if not self._lock.try_acquire(key):
            logger.debug(f"Executor busy with {self._lock.owner}, dropping {key}")
            return None

        try:
            task = asyncio.create_task(self._run(key, job), name=f"lifecycle-{key}")
        except BaseException:
            self._lock.release()
            raise

        self._task = task
        return task

    async def _run(self, key: str, job: Callable[[], Awaitable[T]]) -> Optional[T]:
        try:
            return await job()
        except asyncio.CancelledError:
            logger.warning(f"Lifecycle for {key} cancelled")
            raise
        except Exception as e:
            logger.exception(f"Error executing buy/sell flow for {key}: {e}")
            return None
        finally:
            self._lock.release()
            logger.info("Processing lock released, ready for next mint")

    async def drain(self, timeout: float) -> bool:
        """
        Wait for the running lifecycle to finish, cancelling it after `timeout`.

        Returns True if it finished on its own (or nothing was running).
        """
        task = self._task
        if task is None or task.done():
            return True

        done, _ = await asyncio.wait({task}, timeout=timeout)
        if done:
            return True

        logger.warning(f"Abandoning in-flight lifecycle after {timeout:.1f}s")
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        return False

"""
WebSocket client for the new-listing stream.

Features:
    - newPairSubscribe subscription sent on every (re)connect
    - Auto-reconnect with capped exponential backoff and a bounded budget
    - Explicit ping every 20s, stale-connection check every 30s
    - Back-pressure by omission: messages are dropped while a trade runs
    - State change callbacks

The connection lifecycle is independent of trade execution. Handing a
message to the gate never waits for a trade, so frames and pings keep
flowing while a lifecycle is in progress.
"""

from __future__ import annotations

import asyncio
import json
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

import websockets
from websockets.exceptions import (
    ConnectionClosed,
    ConnectionClosedError,
    ConnectionClosedOK,
)

from listing_sniper.execution.retry import RetryPolicy

logger = logging.getLogger(__name__)


class StreamState(str, Enum):
    """Stream connection state."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSING = "closing"
    FAILED = "failed"


# Type aliases for callbacks
MessageHandler = Callable[[Union[str, bytes]], Any]
BusyCheck = Callable[[], bool]
StateCallback = Callable[[StreamState], Awaitable[None]]


class ListingStreamClient:
    """
    Resilient WebSocket client for SolanaStreaming new-pair notifications.

    Features:
        - Exponential backoff reconnection (2s -> 4s -> ... -> 30s), 10 attempts
        - Attempt counter reset on every successful connect
        - Heartbeat: ping every `ping_interval`, close if silent for `stale_after`
        - Terminal FAILED state once the reconnect budget is spent

    Usage:
        stream = ListingStreamClient(
            on_message=gate.handle_message,
            is_busy=lambda: executor.is_busy,
            api_key=api_key,
        )
        await stream.start()
        # ... later
        await stream.stop()
    """

    WS_URL = "wss://api.solanastreaming.com/"

    SUBSCRIBE_MESSAGE = {
        "jsonrpc": "2.0",
        "id": 1,
        "method": "newPairSubscribe",
        "params": {"include_pumpfun": True},
    }

    def __init__(
        self,
        on_message: MessageHandler,
        is_busy: Optional[BusyCheck] = None,
        api_key: str = "",
        url: Optional[str] = None,
        on_state_change: Optional[StateCallback] = None,
        ping_interval: float = 20.0,
        health_check_interval: float = 30.0,
        stale_after: float = 60.0,
        reconnect_policy: Optional[RetryPolicy] = None,
    ):
        """
        Initialize the stream client.

        Args:
            on_message: Synchronous handler for raw messages (the event gate)
            is_busy: Returns True while a trade lifecycle holds the execution lock
            api_key: SolanaStreaming API key, sent as X-API-KEY
            url: Optional WebSocket URL override
            on_state_change: Optional callback for connection state changes
            ping_interval: Seconds between pings
            health_check_interval: Seconds between staleness checks
            stale_after: Seconds without inbound activity before forcing a reconnect
            reconnect_policy: Reconnect budget and backoff
                (default: 10 attempts, 1s base doubling, 30s cap)
        """
        self._on_message = on_message
        self._is_busy = is_busy or (lambda: False)
        self._api_key = api_key
        self._url = url or self.WS_URL
        self._on_state_change = on_state_change

        self._ping_interval = ping_interval
        self._health_check_interval = health_check_interval
        self._stale_after = stale_after
        self._reconnect_policy = reconnect_policy or RetryPolicy.exponential(
            base=1.0, cap=30.0, max_attempts=10,
        )

        # Connection state
        self._state = StreamState.DISCONNECTED
        self._ws: Optional[Any] = None

        # Reconnection state
        self._reconnect_attempts = 0
        self._reconnect_task: Optional[asyncio.Task] = None

        # Tasks
        self._receive_task: Optional[asyncio.Task] = None
        self._ping_task: Optional[asyncio.Task] = None
        self._health_task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()

        # Heartbeat tracking (event loop time)
        self._last_activity: Optional[float] = None

    @property
    def state(self) -> StreamState:
        """Current connection state."""
        return self._state

    @property
    def is_connected(self) -> bool:
        """Whether currently connected."""
        return self._state == StreamState.CONNECTED

    @property
    def reconnect_attempts(self) -> int:
        """Reconnect attempts since the last successful connect."""
        return self._reconnect_attempts

    @property
    def last_activity(self) -> Optional[float]:
        """Event loop time of the last inbound message or pong."""
        return self._last_activity

    async def _set_state(self, state: StreamState) -> None:
        """Update state and notify callback."""
        if self._state != state:
            old_state = self._state
            self._state = state
            logger.info(f"Stream state: {old_state.value} -> {state.value}")

            if self._on_state_change:
                try:
                    await self._on_state_change(state)
                except Exception as e:
                    logger.error(f"Error in state change callback: {e}")

    def _touch(self) -> None:
        self._last_activity = asyncio.get_running_loop().time()

    async def start(self) -> None:
        """
        Start the stream client.

        This will:
        1. Connect and subscribe to new pairs
        2. Start the receive loop and heartbeat
        3. Reconnect on disconnection until the budget is spent
        """
        if self._state not in (StreamState.DISCONNECTED, StreamState.FAILED):
            logger.warning(f"Cannot start: already in state {self._state.value}")
            return

        self._stop_event.clear()
        self._reconnect_attempts = 0
        await self._connect()

    async def stop(self) -> None:
        """
        Stop the stream client gracefully.

        This will:
        1. Cancel any pending reconnect
        2. Stop the heartbeat
        3. Close the WebSocket connection
        """
        self._stop_event.set()

        if self._state == StreamState.DISCONNECTED and self._ws is None and not self._reconnect_task:
            return

        logger.info("Closing stream connection...")
        await self._set_state(StreamState.CLOSING)

        await self._cancel(self._reconnect_task)
        self._reconnect_task = None
        await self._stop_heartbeat()
        await self._cancel(self._receive_task)
        self._receive_task = None

        if self._ws:
            try:
                await self._ws.close(code=1000, reason="shutdown")
            except Exception as e:
                logger.warning(f"Error closing WebSocket: {e}")
            self._ws = None

        await self._set_state(StreamState.DISCONNECTED)
        logger.info("Stream client stopped")

    @staticmethod
    async def _cancel(task: Optional[asyncio.Task]) -> None:
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _connect(self) -> None:
        """Establish the connection and subscribe."""
        if self._stop_event.is_set():
            return

        await self._set_state(StreamState.CONNECTING)

        try:
            ws = await websockets.connect(
                self._url,
                additional_headers={"X-API-KEY": self._api_key},
                ping_interval=None,
                close_timeout=5,
            )
        except Exception as e:
            logger.error(f"Error creating WebSocket connection: {e}")
            await self._set_state(StreamState.DISCONNECTED)
            await self._schedule_reconnect()
            return

        self._ws = ws
        logger.info(f"Stream connected to {self._url}")

        try:
            await ws.send(json.dumps(self.SUBSCRIBE_MESSAGE))
        except Exception as e:
            logger.error(f"Failed to send subscription: {e}")
            self._ws = None
            try:
                await ws.close()
            except Exception as close_err:
                logger.debug(f"Error closing socket after failed subscribe: {close_err}")
            await self._set_state(StreamState.DISCONNECTED)
            await self._schedule_reconnect()
            return

        logger.info("Subscription started - monitoring new token creation...")
        self._reconnect_attempts = 0
        self._touch()
        await self._set_state(StreamState.CONNECTED)

        self._start_heartbeat(ws)
        self._receive_task = asyncio.create_task(self._receive_loop(ws), name="stream-receive")

    async def _receive_loop(self, ws: Any) -> None:
        """Main loop for receiving messages."""
        try:
            while not self._stop_event.is_set() and self._ws is ws:
                try:
                    message = await ws.recv()
                    self._touch()
                    self._dispatch(message)

                except ConnectionClosedOK as e:
                    logger.warning(f"Stream connection closed: {e}")
                    break

                except ConnectionClosedError as e:
                    logger.warning(f"Stream closed with error: {e}")
                    break

                except ConnectionClosed as e:
                    logger.warning(f"Stream connection closed: {e}")
                    break

        except asyncio.CancelledError:
            logger.debug("Receive loop cancelled")
            raise

        except Exception as e:
            logger.error(f"Error in receive loop: {e}")

        if self._stop_event.is_set():
            return

        if self._ws is ws:
            self._ws = None
        await self._stop_heartbeat()
        await self._set_state(StreamState.DISCONNECTED)
        await self._schedule_reconnect()

    def _dispatch(self, message: Union[str, bytes]) -> None:
        """Forward a message to the gate unless a trade is running."""
        if self._is_busy():
            return

        try:
            self._on_message(message)
        except Exception as e:
            logger.error(f"Error handling stream message: {e}")

    async def _schedule_reconnect(self) -> None:
        """Schedule a reconnection attempt with exponential backoff."""
        if self._stop_event.is_set():
            return

        if not self._reconnect_policy.allows(self._reconnect_attempts):
            await self._set_state(StreamState.FAILED)
            logger.error(
                f"Max reconnect attempts reached ({self._reconnect_attempts}), "
                f"stopping reconnection"
            )
            return

        self._reconnect_attempts += 1
        delay = self._reconnect_policy.delay_for(self._reconnect_attempts)

        logger.info(
            f"Preparing to reconnect (attempt {self._reconnect_attempts}), "
            f"reconnecting in {delay:.1f}s..."
        )
        self._reconnect_task = asyncio.create_task(
            self._reconnect_after(delay),
            name="stream-reconnect",
        )

    async def _reconnect_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        if not self._stop_event.is_set():
            logger.info("Reconnecting stream...")
            await self._connect()

    # =========================================================================
    # Heartbeat
    # =========================================================================

    def _start_heartbeat(self, ws: Any) -> None:
        self._ping_task = asyncio.create_task(self._ping_loop(ws), name="stream-ping")
        self._health_task = asyncio.create_task(self._health_loop(ws), name="stream-health")

    async def _stop_heartbeat(self) -> None:
        await self._cancel(self._ping_task)
        await self._cancel(self._health_task)
        self._ping_task = None
        self._health_task = None

    async def _ping_loop(self, ws: Any) -> None:
        """Send a ping every `ping_interval` while connected."""
        try:
            while not self._stop_event.is_set() and self._ws is ws:
                await asyncio.sleep(self._ping_interval)

                if self._ws is not ws or not self.is_connected:
                    break

                try:
                    pong_waiter = await ws.ping()
                    pong_waiter.add_done_callback(self._on_pong)
                    logger.debug("Sent WebSocket ping")
                except ConnectionClosed:
                    break
                except Exception as e:
                    logger.error(f"Failed to send ping: {e}")

        except asyncio.CancelledError:
            logger.debug("Ping loop cancelled")
            raise

    def _on_pong(self, waiter: "asyncio.Future") -> None:
        if waiter.cancelled() or waiter.exception() is not None:
            return
        logger.debug("Received WebSocket pong")
        self._touch()

    async def _health_loop(self, ws: Any) -> None:
        """Force a reconnect if nothing arrived for `stale_after` seconds."""
        try:
            while not self._stop_event.is_set() and self._ws is ws:
                await asyncio.sleep(self._health_check_interval)

                if self._last_activity is None:
                    continue

                elapsed = asyncio.get_running_loop().time() - self._last_activity
                if elapsed <= self._stale_after:
                    continue

                logger.warning(f"Stream may be disconnected ({elapsed:.1f}s since last message)")
                if self._ws is ws:
                    logger.info("Closing stream connection to trigger reconnect")
                    try:
                        await ws.close(code=1000, reason="stale connection")
                    except Exception as e:
                        logger.debug(f"Error closing stale socket: {e}")
                break

        except asyncio.CancelledError:
            logger.debug("Health check loop cancelled")
            raise

"""
Event gate and dedup.

Decides, per inbound message, whether to start a trade lifecycle:

    1. Not a new-pair notification      -> ignored
    2. Broken JSON / missing block time -> malformed, logged and dropped
    3. Mint already accepted once       -> duplicate, dropped silently
    4. A lifecycle is already running   -> busy, dropped silently
    5. Arrived later than the threshold -> stale, logged and dropped
    6. Otherwise                        -> mint marked seen, lock taken,
                                           lifecycle started in the background

The whole decision is synchronous so the lock check and the lock acquisition
cannot interleave with another message.
"""

from __future__ import annotations

import json
import logging
from collections import Counter
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, FrozenSet, Optional, Union

from listing_sniper.execution.clock import Clock
from listing_sniper.execution.lock import SingleFlightExecutor

from .models import ListingEvent, MalformedEventError

logger = logging.getLogger(__name__)

LifecycleStarter = Callable[[str], Awaitable[Any]]


class GateDecision(str, Enum):
    ACCEPTED = "accepted"
    IGNORED = "ignored"
    MALFORMED = "malformed"
    DUPLICATE = "duplicate"
    BUSY = "busy"
    STALE = "stale"


class EventGate:
    """
    Latency gate with a process-lifetime seen-set.

    Usage:
        gate = EventGate(executor, orchestrator.run, threshold_ms=900)
        decision = gate.handle_message(raw_text)
    """

    def __init__(
        self,
        executor: SingleFlightExecutor,
        start_lifecycle: LifecycleStarter,
        threshold_ms: float = 900,
        clock: Optional[Clock] = None,
    ) -> None:
        """
        Args:
            executor: Single-flight executor that owns the execution lock
            start_lifecycle: Coroutine function run for an accepted mint
            threshold_ms: Maximum accepted propagation delay
            clock: Time source for the local receipt timestamp
        """
        self._executor = executor
        self._start_lifecycle = start_lifecycle
        self._threshold_ms = threshold_ms
        self._clock = clock or Clock()

        self._seen_mints: set[str] = set()
        self._decisions: Counter = Counter()

    @property
    def threshold_ms(self) -> float:
        return self._threshold_ms

    @property
    def seen_mints(self) -> FrozenSet[str]:
        return frozenset(self._seen_mints)

    @property
    def stats(self) -> Dict[str, int]:
        """Count of decisions made so far, by decision."""
        return {d.value: self._decisions.get(d, 0) for d in GateDecision}

    def handle_message(self, raw: Union[str, bytes]) -> GateDecision:
        """Parse a raw feed message and gate it."""
        received_at_ms = self._clock.now_ms()

        try:
            message = json.loads(raw)
            event = ListingEvent.from_message(message, received_at_ms)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning(f"Error parsing stream message: {e}")
            return self._decide(GateDecision.MALFORMED)
        except MalformedEventError as e:
            logger.warning(f"Dropping malformed listing notification: {e}")
            return self._decide(GateDecision.MALFORMED)

        if event is None:
            return self._decide(GateDecision.IGNORED)

        return self.evaluate(event)

    def evaluate(self, event: ListingEvent) -> GateDecision:
        """Gate an already-parsed event."""
        mint = event.mint

        if mint in self._seen_mints:
            return self._decide(GateDecision.DUPLICATE)

        if self._executor.is_busy:
            return self._decide(GateDecision.BUSY)

        self._log_event(event)
        time_diff = event.time_diff_ms

        if time_diff > self._threshold_ms:
            logger.warning(
                f"New token {mint} time difference too large "
                f"({time_diff:.0f}ms > {self._threshold_ms:.0f}ms), skipping"
            )
            return self._decide(GateDecision.STALE)

        logger.info(f"Time difference acceptable ({time_diff:.0f}ms <= {self._threshold_ms:.0f}ms)")

        task = self._executor.try_submit(mint, lambda: self._start_lifecycle(mint))
        if task is None:
            return self._decide(GateDecision.BUSY)

        self._seen_mints.add(mint)
        return self._decide(GateDecision.ACCEPTED)

    def _decide(self, decision: GateDecision) -> GateDecision:
        self._decisions[decision] += 1
        return decision

    def _log_event(self, event: ListingEvent) -> None:
        logger.info(f"Detected new token: {event.mint}")
        logger.info(f"  - Name: {event.name or 'N/A'}")
        logger.info(f"  - Symbol: {event.symbol or 'N/A'}")
        logger.info(f"  - Transaction signature: {event.signature}")
        logger.info(f"  - Slot: {event.slot}")
        logger.info(f"  - AMM account: {event.amm_account}")
        logger.info(f"  - Token publish time: {event.published_at.isoformat()}")
        logger.info(f"  - Current time: {event.received_at.isoformat()}")
        logger.info(f"  - Time difference: {event.time_diff_ms:.0f}ms")

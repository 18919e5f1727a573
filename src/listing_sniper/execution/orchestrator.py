"""
TradeOrchestrator - the buy -> sell 70% -> sell 100% lifecycle.

States:
    START -> BUYING -> AWAIT_SELL70 -> SELLING70 -> AWAIT_SELL100 -> SELLING100 -> DONE
                 \\
                  -> ABORTED (buy rejected or never confirmed; nothing to sell)

Each phase has its own patience:
    - buy:       confirmation polled with a bounded budget, failure aborts
    - sell 70%:  submission retried forever, confirmation never checked
    - sell 100%: submission retried forever, confirmation checked 3 times,
                 then one remediation sell and the lifecycle ends anyway

Phase delays are measured from when the previous phase got its signature,
not from when it confirmed, so the schedule does not drift with RPC latency.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from listing_sniper.log import SUCCESS

from .clock import Clock
from .confirmation import ConfirmationPoller
from .exceptions import RetryableError, TradeApiError
from .retry import RetryPolicy
from .submitter import TradeRequest, TradeSubmitter
from .timing import LifecycleOutcome, TimingRegistry, TradeTiming

logger = logging.getLogger(__name__)

# The trade API rejects sells of a position it has not indexed yet; retry those too.
SELL_RETRY_ON = (RetryableError, TradeApiError)


class LifecycleState(str, Enum):
    START = "start"
    BUYING = "buying"
    AWAIT_SELL70 = "await_sell70"
    SELLING70 = "selling70"
    AWAIT_SELL100 = "await_sell100"
    SELLING100 = "selling100"
    DONE = "done"
    ABORTED = "aborted"


@dataclass(frozen=True)
class OrchestratorConfig:
    """Trade sizes, tolerances and the timing contract of each phase."""

    # Trade parameters
    buy_sol: float = 0.5
    buy_slippage: int = 1000
    sell1_slippage: int = 1000
    sell2_slippage: int = 1000
    priority_fee: float = 0.00000000005
    pool: str = "pump"

    # Phase delays
    first_sell_delay_ms: int = 500
    second_sell_delay_ms: int = 1500

    # Buy confirmation
    buy_confirm_wait: float = 0.2
    buy_confirm_attempts: int = 20
    confirm_interval: float = 0.2

    # Sell 70%
    partial_sell_percent: int = 70
    sell70_retry_delay: float = 1.0

    # Sell 100%
    sell100_retry_delay: float = 0.3
    sell100_confirm_wait: float = 0.7
    sell100_confirm_attempts: int = 3

    @property
    def buy_confirm_policy(self) -> RetryPolicy:
        return RetryPolicy.fixed(self.confirm_interval, max_attempts=self.buy_confirm_attempts)

    @property
    def sell70_submit_policy(self) -> RetryPolicy:
        return RetryPolicy.fixed(self.sell70_retry_delay)

    @property
    def sell100_submit_policy(self) -> RetryPolicy:
        return RetryPolicy.fixed(self.sell100_retry_delay)

    @property
    def sell100_confirm_policy(self) -> RetryPolicy:
        return RetryPolicy.fixed(self.confirm_interval, max_attempts=self.sell100_confirm_attempts)


class TradeOrchestrator:
    """
    Drives one lifecycle at a time and records its timing.

    The orchestrator does not guard against concurrent use itself; the
    SingleFlightExecutor in front of it does.

    Usage:
        orchestrator = TradeOrchestrator(submitter, poller, registry, config)
        timing = await orchestrator.run(mint)
        print(timing.outcome, timing.total_duration)
    """

    def __init__(
        self,
        submitter: TradeSubmitter,
        poller: ConfirmationPoller,
        registry: TimingRegistry,
        config: Optional[OrchestratorConfig] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._submitter = submitter
        self._poller = poller
        self._registry = registry
        self._config = config or OrchestratorConfig()
        self._clock = clock or Clock()

        self._state = LifecycleState.START
        self._transitions: List[LifecycleState] = []

    @property
    def config(self) -> OrchestratorConfig:
        return self._config

    @property
    def state(self) -> LifecycleState:
        """State of the current (or last) lifecycle."""
        return self._state

    @property
    def transitions(self) -> List[LifecycleState]:
        """States visited by the current (or last) lifecycle."""
        return list(self._transitions)

    def _transition(self, mint: str, state: LifecycleState) -> None:
        if self._transitions:
            logger.debug(f"{mint}: {self._state.value} -> {state.value}")
        self._state = state
        self._transitions.append(state)

    async def run(self, mint: str) -> TradeTiming:
        """
        Run the full lifecycle for `mint`.

        Never raises on trade failures; the outcome is recorded on the
        returned TradeTiming. Cancellation still propagates.
        """
        timing = self._registry.start(mint, self._clock.monotonic_ms())
        self._transitions = []
        self._transition(mint, LifecycleState.START)
        outcome = LifecycleOutcome.ERROR

        logger.info(f"Starting to process new mint: {mint}")

        try:
            outcome = await self._execute(mint, timing)
        except Exception as e:
            logger.exception(f"Error while processing mint {mint}: {e}")
        finally:
            timing.finish(self._clock.monotonic_ms(), outcome)
            self._report(timing)

        return timing

    async def _execute(self, mint: str, timing: TradeTiming) -> LifecycleOutcome:
        cfg = self._config
        buy_start = timing.start_time

        # BUYING
        self._transition(mint, LifecycleState.BUYING)
        confirm_started = await self._buy(mint, timing)
        if confirm_started is None:
            timing.buy_time = self._clock.monotonic_ms() - buy_start
            self._transition(mint, LifecycleState.ABORTED)
            logger.error(f"Buy failed, skipping subsequent operations: {mint}")
            return LifecycleOutcome.ABORTED

        sell70_start = self._clock.monotonic_ms()
        timing.buy_time = sell70_start - buy_start
        logger.info(f"Buy duration: {timing.buy_time:.2f}ms")

        # SELL 70%
        self._transition(mint, LifecycleState.AWAIT_SELL70)
        await self._sleep_until(
            confirm_started + cfg.first_sell_delay_ms,
            f"selling {cfg.partial_sell_percent}%: {mint}",
        )
        self._transition(mint, LifecycleState.SELLING70)
        sell70_submit_start = self._clock.monotonic_ms()
        timing.sell70_signature = await self._sell_partial(mint)

        sell70_end = self._clock.monotonic_ms()
        timing.sell70_time = sell70_end - sell70_start
        logger.info(f"Sell {cfg.partial_sell_percent}% duration: {timing.sell70_time:.2f}ms")

        # SELL 100%
        self._transition(mint, LifecycleState.AWAIT_SELL100)
        await self._sleep_until(
            sell70_submit_start + cfg.second_sell_delay_ms,
            f"selling 100%: {mint}",
        )
        self._transition(mint, LifecycleState.SELLING100)
        outcome = await self._sell_all(mint, timing)

        timing.sell100_time = self._clock.monotonic_ms() - sell70_end
        logger.info(f"Sell 100% duration: {timing.sell100_time:.2f}ms")

        self._transition(mint, LifecycleState.DONE)
        return outcome

    async def _sleep_until(self, deadline_ms: float, what: str) -> None:
        remaining = deadline_ms - self._clock.monotonic_ms()
        logger.info(f"Waiting {max(remaining, 0):.0f}ms before {what}")
        await self._clock.sleep(max(remaining, 0) / 1000)

    async def _buy(self, mint: str, timing: TradeTiming) -> Optional[float]:
        """
        Submit the buy and wait for it to settle.

        Returns the monotonic time the confirmation step began, or None if
        the buy failed.
        """
        cfg = self._config
        request = TradeRequest.buy(
            mint,
            sol_amount=cfg.buy_sol,
            slippage=cfg.buy_slippage,
            priority_fee=cfg.priority_fee,
            pool=cfg.pool,
        )

        try:
            signature = await self._submitter.submit(request)
        except Exception as e:
            logger.error(f"Buy execution failed: {mint}: {e}")
            return None

        timing.buy_signature = signature
        confirm_started = self._clock.monotonic_ms()

        logger.info(
            f"Waiting {cfg.buy_confirm_wait * 1000:.0f}ms before checking buy "
            f"transaction status: {signature}"
        )
        await self._clock.sleep(cfg.buy_confirm_wait)

        logger.info(f"Checking buy transaction status: {signature}")
        result = await self._poller.poll(signature, cfg.buy_confirm_policy)

        if not result.succeeded:
            logger.error(f"Buy failed: {mint} - transaction not confirmed ({result.status.value})")
            return None

        logger.log(SUCCESS, f"Buy confirmed: {mint} -> {signature}")
        return confirm_started

    async def _sell_partial(self, mint: str) -> str:
        """Sell the partial percentage, retrying submission until it goes through."""
        cfg = self._config
        percent = cfg.partial_sell_percent
        request = TradeRequest.sell_percent(mint, percent, cfg.sell1_slippage, cfg.pool)

        def on_retry(attempt: int, error: Exception, delay: float) -> None:
            logger.error(
                f"Sell {percent}% execution failed (attempt {attempt}), "
                f"will retry after {delay * 1000:.0f}ms: {mint}: {error}"
            )

        signature = await cfg.sell70_submit_policy.run(
            lambda: self._submitter.submit(request),
            self._clock,
            retry_on=SELL_RETRY_ON,
            on_retry=on_retry,
        )
        logger.log(SUCCESS, f"Sell {percent}% succeeded: {mint} -> {signature}")
        return signature

    async def _sell_all(self, mint: str, timing: TradeTiming) -> LifecycleOutcome:
        """
        Sell the remaining position.

        Confirmation is checked with a small budget. If it never confirms,
        one remediation sell is sent and the lifecycle ends as
        UNCONFIRMED_EXIT rather than looping.
        """
        cfg = self._config
        request = TradeRequest.sell_percent(mint, 100, cfg.sell2_slippage, cfg.pool)

        def on_retry(attempt: int, error: Exception, delay: float) -> None:
            logger.error(
                f"Sell 100% execution failed (attempt {attempt}), "
                f"will retry after {delay * 1000:.0f}ms: {mint}: {error}"
            )

        signature = await cfg.sell100_submit_policy.run(
            lambda: self._submitter.submit(request),
            self._clock,
            retry_on=SELL_RETRY_ON,
            on_retry=on_retry,
        )
        timing.sell100_signature = signature
        logger.log(SUCCESS, f"Sell 100% API call succeeded: {mint} -> {signature}")

        logger.info(
            f"Waiting {cfg.sell100_confirm_wait * 1000:.0f}ms before checking sell 100% "
            f"transaction status: {signature}"
        )
        await self._clock.sleep(cfg.sell100_confirm_wait)

        logger.info(f"Checking sell 100% transaction status: {signature}")
        result = await self._poller.poll(signature, cfg.sell100_confirm_policy)

        if result.succeeded:
            logger.log(SUCCESS, f"Sell 100% confirmed: {mint} -> {signature}")
            return LifecycleOutcome.COMPLETED

        logger.error(
            f"Sell 100% status check failed ({result.attempts} attempts), "
            f"retrying sell 100% once..."
        )
        try:
            retry_signature = await self._submitter.submit(request)
        except Exception as e:
            logger.error(f"Retry sell 100% execution failed: {mint}: {e}")
        else:
            timing.remediation_signature = retry_signature
            logger.log(SUCCESS, f"Retry sell 100% API call succeeded: {mint} -> {retry_signature}")

        logger.warning(
            f"Final sell for {mint} is unconfirmed, recorded as "
            f"{LifecycleOutcome.UNCONFIRMED_EXIT.value}; proceeding"
        )
        return LifecycleOutcome.UNCONFIRMED_EXIT

    def _report(self, timing: TradeTiming) -> None:
        outcome = timing.outcome.value if timing.outcome else "unknown"
        total = timing.total_duration or 0.0

        if timing.outcome == LifecycleOutcome.COMPLETED:
            logger.log(SUCCESS, f"Mint {timing.mint} processing completed! Total duration: {total:.2f}ms")
        elif timing.outcome == LifecycleOutcome.UNCONFIRMED_EXIT:
            logger.warning(f"Mint {timing.mint} finished with unconfirmed exit. Total duration: {total:.2f}ms")
        else:
            logger.error(f"Mint {timing.mint} finished as {outcome}. Total duration: {total:.2f}ms")

        def fmt(value: Optional[float]) -> str:
            return f"{value:.2f}ms" if value is not None else "n/a"

        logger.info("Detailed timing:")
        logger.info(f"  - Buy: {fmt(timing.buy_time)}")
        logger.info(f"  - Sell {self._config.partial_sell_percent}%: {fmt(timing.sell70_time)}")
        logger.info(f"  - Sell 100%: {fmt(timing.sell100_time)}")

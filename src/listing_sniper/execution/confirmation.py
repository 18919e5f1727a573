"""
Confirmation polling.

Asks the status provider whether a submitted transaction settled. Three
outcomes per attempt:

    - settled, meta.err is null     -> CONFIRMED, stop
    - settled, meta.err is not null -> FAILED, stop (never retried)
    - not found / RetryableError    -> transient, wait and ask again
                                       until the policy's budget runs out

Any other exception from the provider propagates.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Protocol

from listing_sniper.log import SUCCESS

from .clock import Clock
from .exceptions import RetryableError
from .retry import RetryPolicy

logger = logging.getLogger(__name__)


class StatusProvider(Protocol):
    """Anything that can look up a transaction by signature."""

    async def get_transaction(self, signature: str) -> Optional[dict]:
        ...


class ConfirmationStatus(str, Enum):
    CONFIRMED = "confirmed"
    FAILED = "failed"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class ConfirmationResult:
    """Outcome of polling one signature."""
    signature: str
    status: ConfirmationStatus
    attempts: int
    error: Optional[Any] = None

    @property
    def succeeded(self) -> bool:
        return self.status == ConfirmationStatus.CONFIRMED


class ConfirmationPoller:
    """
    Polls a StatusProvider until a transaction's outcome is definitive.

    Usage:
        poller = ConfirmationPoller(rpc_client)
        result = await poller.poll(signature, RetryPolicy.fixed(0.2, max_attempts=3))
        if result.succeeded:
            ...
    """

    DEFAULT_INTERVAL = 0.2

    def __init__(self, provider: StatusProvider, clock: Optional[Clock] = None):
        self._provider = provider
        self._clock = clock or Clock()

    async def poll(
        self,
        signature: str,
        policy: Optional[RetryPolicy] = None,
    ) -> ConfirmationResult:
        """
        Poll until confirmed, failed, or the attempt budget is exhausted.

        Args:
            signature: Transaction signature to check
            policy: Attempt budget and spacing. Defaults to unbounded, 200ms apart.
        """
        policy = policy or RetryPolicy.fixed(self.DEFAULT_INTERVAL)
        attempts = 0
        last_error: Optional[Any] = None

        while True:
            attempts += 1
            try:
                tx = await self._provider.get_transaction(signature)
            except RetryableError as e:
                logger.error(f"Failed to query transaction {signature} status (attempt {attempts}): {e}")
                last_error = str(e)
                tx = None
            else:
                if tx is not None:
                    return self._settled(signature, tx, attempts)
                logger.warning(
                    f"Transaction {signature} not found (attempt {attempts}) "
                    f"(node might not have indexed it yet)"
                )

            if not policy.allows(attempts):
                logger.warning(
                    f"Searched {attempts} times, transaction {signature} still not "
                    f"confirmed - treating as failure"
                )
                return ConfirmationResult(
                    signature=signature,
                    status=ConfirmationStatus.NOT_FOUND,
                    attempts=attempts,
                    error=last_error,
                )

            delay = policy.delay_for(attempts)
            logger.info(f"Waiting {delay * 1000:.0f}ms before retrying transaction status check...")
            await self._clock.sleep(delay)

    def _settled(self, signature: str, tx: dict, attempts: int) -> ConfirmationResult:
        meta = tx.get("meta") if isinstance(tx, dict) else None
        err = meta.get("err") if isinstance(meta, dict) else "missing meta"

        if meta is not None and err is None:
            logger.log(SUCCESS, f"Transaction {signature} confirmed successfully (attempt {attempts})")
            return ConfirmationResult(
                signature=signature,
                status=ConfirmationStatus.CONFIRMED,
                attempts=attempts,
            )

        logger.error(
            f"Transaction {signature} failed (attempt {attempts}): "
            f"meta.err = {json.dumps(err, default=str)}"
        )
        return ConfirmationResult(
            signature=signature,
            status=ConfirmationStatus.FAILED,
            attempts=attempts,
            error=err,
        )

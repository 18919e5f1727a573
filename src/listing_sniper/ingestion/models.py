"""
Data models for the ingestion layer.

A ListingEvent is built from one `newPairNotification` message of the
streaming feed. It only lives long enough for the event gate to decide
whether the listing is still worth chasing.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

NEW_PAIR_NOTIFICATION = "newPairNotification"


class MalformedEventError(ValueError):
    """Message claims to be a listing notification but is missing fields."""
    pass


@dataclass(frozen=True)
class ListingEvent:
    """
    A newly listed token.

    Attributes:
        mint: Base token mint address
        chain_time_ms: Block time reported by the chain, in milliseconds
        received_at_ms: Local wall-clock time the message arrived, in milliseconds
        signature: Signature of the pair-creation transaction
        slot: Slot the pair was created in
        amm_account: Pool / AMM account address
        name: Token name from metadata (if known)
        symbol: Token symbol from metadata (if known)
    """
    mint: str
    chain_time_ms: float
    received_at_ms: float
    signature: Optional[str] = None
    slot: Optional[int] = None
    amm_account: Optional[str] = None
    name: Optional[str] = None
    symbol: Optional[str] = None

    @property
    def time_diff_ms(self) -> float:
        """Propagation delay: local receipt time minus chain time."""
        return self.received_at_ms - self.chain_time_ms

    @property
    def published_at(self) -> datetime:
        return datetime.fromtimestamp(self.chain_time_ms / 1000, tz=timezone.utc)

    @property
    def received_at(self) -> datetime:
        return datetime.fromtimestamp(self.received_at_ms / 1000, tz=timezone.utc)

    @classmethod
    def from_message(cls, message: Any, received_at_ms: float) -> Optional["ListingEvent"]:
        """
        Build an event from a decoded feed message.

        Returns None for anything that is not a new-pair notification with a
        base token account (subscription acks, other methods). Raises
        MalformedEventError when a notification lacks a usable block time.
        """
        if not isinstance(message, dict) or message.get("method") != NEW_PAIR_NOTIFICATION:
            return None

        params = message.get("params")
        if not isinstance(params, dict):
            return None

        pair = params.get("pair")
        if not isinstance(pair, dict):
            return None

        base_token = pair.get("baseToken")
        if not isinstance(base_token, dict):
            return None

        account = base_token.get("account")
        if not isinstance(account, str) or not account.strip():
            return None

        block_time = params.get("blockTime")
        if isinstance(block_time, bool) or not isinstance(block_time, (int, float)):
            raise MalformedEventError(f"Notification for {account.strip()} has no valid blockTime: {block_time!r}")
        if not _representable(block_time):
            raise MalformedEventError(f"Notification for {account.strip()} has out-of-range blockTime: {block_time!r}")

        info = base_token.get("info")
        metadata = info.get("metadata") if isinstance(info, dict) else None
        if not isinstance(metadata, dict):
            metadata = {}

        slot = params.get("slot")

        return cls(
            mint=account.strip(),
            chain_time_ms=float(block_time) * 1000,
            received_at_ms=received_at_ms,
            signature=params.get("signature"),
            slot=slot if isinstance(slot, int) else None,
            amm_account=pair.get("ammAccount"),
            name=metadata.get("name"),
            symbol=metadata.get("symbol"),
        )


def _representable(seconds: float) -> bool:
    """True when a unix timestamp converts to a datetime."""
    try:
        if not math.isfinite(seconds):
            return False
        datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, ValueError, OSError):
        return False
    return True

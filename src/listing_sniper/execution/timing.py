"""
Per-mint timing records.

A TradeTiming is created when a lifecycle starts and filled in by the
orchestrator as each phase completes. Records are kept for the whole process
lifetime and snapshotted to the statistics sink on an interval.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional


class LifecycleOutcome(str, Enum):
    """How a lifecycle ended."""
    COMPLETED = "completed"                  # final sell confirmed
    UNCONFIRMED_EXIT = "unconfirmed_exit"    # final sell never confirmed, remediation sent
    ABORTED = "aborted"                      # buy failed, nothing to sell
    ERROR = "error"                          # unexpected exception


@dataclass
class TradeTiming:
    """
    Timing of one buy -> sell70 -> sell100 lifecycle.

    Durations are milliseconds of monotonic time. `start_time` and
    `complete_time` are on the same monotonic scale.
    """
    mint: str
    start_time: float
    buy_time: Optional[float] = None
    sell70_time: Optional[float] = None
    sell100_time: Optional[float] = None
    complete_time: Optional[float] = None
    total_duration: Optional[float] = None
    outcome: Optional[LifecycleOutcome] = None
    buy_signature: Optional[str] = None
    sell70_signature: Optional[str] = None
    sell100_signature: Optional[str] = None
    remediation_signature: Optional[str] = None

    @property
    def is_finished(self) -> bool:
        return self.total_duration is not None

    def finish(self, complete_time: float, outcome: LifecycleOutcome) -> None:
        """Close the record. Only the first call has any effect."""
        if self.is_finished:
            return
        self.complete_time = complete_time
        self.total_duration = complete_time - self.start_time
        self.outcome = outcome

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "mint": self.mint,
            "startTime": self.start_time,
            "buyTime": self.buy_time,
            "sell70Time": self.sell70_time,
            "sell100Time": self.sell100_time,
            "completeTime": self.complete_time,
            "totalDuration": self.total_duration,
            "outcome": self.outcome.value if self.outcome else None,
            "buySignature": self.buy_signature,
            "sell70Signature": self.sell70_signature,
            "sell100Signature": self.sell100_signature,
            "remediationSignature": self.remediation_signature,
        }


class TimingRegistry:
    """In-memory mapping of mint -> TradeTiming. Entries are never removed."""

    def __init__(self) -> None:
        self._timings: Dict[str, TradeTiming] = {}

    def __len__(self) -> int:
        return len(self._timings)

    def __contains__(self, mint: object) -> bool:
        return mint in self._timings

    def start(self, mint: str, start_time: float) -> TradeTiming:
        """Create and register the record for a new lifecycle."""
        if mint in self._timings:
            raise ValueError(f"Timing already recorded for {mint}")
        timing = TradeTiming(mint=mint, start_time=start_time)
        self._timings[mint] = timing
        return timing

    def get(self, mint: str) -> Optional[TradeTiming]:
        return self._timings.get(mint)

    def snapshot(self) -> List[dict]:
        """Serializable copy of every record, in insertion order."""
        return [t.to_dict() for t in self._timings.values()]

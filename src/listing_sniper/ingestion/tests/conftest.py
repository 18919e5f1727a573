"""
Ingestion layer test fixtures.

Feed messages are built here; the streaming endpoint is never contacted.
"""
import json

import pytest
from unittest.mock import AsyncMock

from listing_sniper.execution import SingleFlightExecutor
from listing_sniper.ingestion import EventGate


def new_pair_notification(mint: str, block_time: float, **extra) -> dict:
    """A newPairNotification message as sent by the streaming feed."""
    message = {
        "jsonrpc": "2.0",
        "method": "newPairNotification",
        "params": {
            "slot": 250_000_123,
            "blockTime": block_time,
            "signature": "5xCreatePairSig",
            "pair": {
                "sourceExchange": "pumpfun",
                "ammAccount": "AmmAcct111",
                "baseToken": {
                    "account": mint,
                    "info": {"metadata": {"name": "Test Token", "symbol": "TEST"}},
                },
                "quoteToken": {"account": "So11111111111111111111111111111111111111112"},
            },
        },
    }
    message["params"].update(extra)
    return message


@pytest.fixture
def make_message(clock):
    """
    Factory for raw feed messages relative to the fake clock.

    Usage:
        raw = make_message("MintA", age_ms=100)  # published 100ms ago
    """
    def _make(mint: str = "MintA", age_ms: float = 100.0, **extra) -> str:
        block_time = (clock.now_ms() - age_ms) / 1000
        return json.dumps(new_pair_notification(mint, block_time, **extra))
    return _make


@pytest.fixture
def start_lifecycle():
    """Stand-in for TradeOrchestrator.run."""
    return AsyncMock(return_value=None)


@pytest.fixture
def executor():
    return SingleFlightExecutor()


@pytest.fixture
def gate(executor, start_lifecycle, clock):
    return EventGate(executor, start_lifecycle, threshold_ms=900, clock=clock)

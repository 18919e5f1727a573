"""
Shared test fixtures for integration tests.

This file provides fixtures that span multiple components,
unlike component-specific fixtures in src/listing_sniper/{component}/tests/conftest.py
"""

import json

import pytest
from unittest.mock import AsyncMock, MagicMock

from listing_sniper.core import PipelineConfig, SniperPipeline
from listing_sniper.execution import (
    ConfirmationPoller,
    TimingRegistry,
    TradeAction,
    TradeOrchestrator,
)


# =============================================================================
# Feed Messages
# =============================================================================


@pytest.fixture
def listing(clock):
    """
    Factory for raw newPairNotification messages aged relative to the clock.

    Usage:
        raw = listing("MintA")              # published 100ms ago
        raw = listing("MintB", age_ms=2000) # too late
    """
    def _make(mint: str, age_ms: float = 100.0) -> str:
        return json.dumps({
            "jsonrpc": "2.0",
            "method": "newPairNotification",
            "params": {
                "slot": 1,
                "blockTime": (clock.now_ms() - age_ms) / 1000,
                "signature": f"create-{mint}",
                "pair": {
                    "ammAccount": f"amm-{mint}",
                    "baseToken": {"account": mint},
                },
            },
        })
    return _make


# =============================================================================
# Chain Fakes
# =============================================================================


@pytest.fixture
def chain():
    """
    Fake trade API + RPC node.

    Every submitted trade gets a signature "<action>-<mint>-<n>". Status
    lookups confirm by default; signatures starting with a prefix in
    `failed_prefixes` settle with an error. Buys block while `hold_buys`
    is an unset event.
    """
    class FakeChain:
        def __init__(self):
            self.trades = []
            self.failed_prefixes = set()
            self.hold_buys = None

        async def submit(self, request):
            if self.hold_buys is not None and request.action == TradeAction.BUY:
                await self.hold_buys.wait()
            self.trades.append(request)
            return f"{request.action.value}-{request.mint}-{len(self.trades)}"

        async def get_transaction(self, signature):
            if any(signature.startswith(p) for p in self.failed_prefixes):
                return {"meta": {"err": {"InstructionError": [0, "Custom"]}}}
            return {"meta": {"err": None}}

        def trades_for(self, mint):
            return [(t.action, t.amount) for t in self.trades if t.mint == mint]

    return FakeChain()


@pytest.fixture
def registry():
    return TimingRegistry()


@pytest.fixture
def pipeline(chain, registry, clock):
    """
    Pipeline with the real gate, executor and orchestrator.

    The stream client is built but never started.
    """
    submitter = MagicMock()
    submitter.submit = AsyncMock(side_effect=chain.submit)

    orchestrator = TradeOrchestrator(
        submitter=submitter,
        poller=ConfirmationPoller(chain, clock),
        registry=registry,
        clock=clock,
    )

    return SniperPipeline(orchestrator, PipelineConfig(), clock=clock)


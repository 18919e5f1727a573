"""
Execution layer test fixtures.

The execution layer talks to the trade API and a Solana RPC node.
All calls MUST be mocked in tests - never hit real endpoints.
"""
import pytest
from unittest.mock import AsyncMock, MagicMock

from listing_sniper.execution import (
    ConfirmationPoller,
    OrchestratorConfig,
    TimingRegistry,
    TradeOrchestrator,
)


# =============================================================================
# Settlement Records
# =============================================================================


@pytest.fixture
def confirmed_tx():
    """getTransaction result for a successful transaction."""
    return {"slot": 250_000_000, "blockTime": 1_700_000_000, "meta": {"err": None, "fee": 5000}}


@pytest.fixture
def failed_tx():
    """getTransaction result for a transaction that landed but failed."""
    return {
        "slot": 250_000_000,
        "blockTime": 1_700_000_000,
        "meta": {"err": {"InstructionError": [2, {"Custom": 6001}]}, "fee": 5000},
    }


# =============================================================================
# Collaborator Mocks
# =============================================================================


@pytest.fixture
def status_provider(confirmed_tx):
    """Status provider that confirms everything by default."""
    provider = MagicMock()
    provider.get_transaction = AsyncMock(return_value=confirmed_tx)
    return provider


@pytest.fixture
def submitter():
    """Trade submitter; tests set submit.side_effect to script signatures/errors."""
    mock = MagicMock()
    mock.submit = AsyncMock()
    return mock


@pytest.fixture
def registry():
    return TimingRegistry()


@pytest.fixture
def make_orchestrator(submitter, status_provider, registry, clock):
    """Factory for an orchestrator wired to the mocks and the fake clock."""
    def _make(config=None):
        return TradeOrchestrator(
            submitter=submitter,
            poller=ConfirmationPoller(status_provider, clock),
            registry=registry,
            config=config or OrchestratorConfig(),
            clock=clock,
        )
    return _make


@pytest.fixture
def mock_http_session():
    """
    Factory for an aiohttp-like session whose post() returns one response.

    Usage:
        session, response = mock_http_session(status=200, json_data={...})
    """
    def _make(status=200, json_data=None, body=b"", text=""):
        response = MagicMock()
        response.status = status
        response.json = AsyncMock(return_value=json_data)
        response.read = AsyncMock(return_value=body)
        response.text = AsyncMock(return_value=text)

        ctx = MagicMock()
        ctx.__aenter__ = AsyncMock(return_value=response)
        ctx.__aexit__ = AsyncMock(return_value=False)

        session = MagicMock()
        session.post = MagicMock(return_value=ctx)
        session.close = AsyncMock()
        return session, response
    return _make

"""
Core layer test fixtures.

The pipeline is exercised with a mocked orchestrator and a mocked stream;
no network connections are made.
"""
import pytest
from unittest.mock import AsyncMock, MagicMock

from listing_sniper.execution import TimingRegistry
from listing_sniper.storage import JsonStatsSink


@pytest.fixture
def mock_orchestrator():
    orchestrator = MagicMock()
    orchestrator.run = AsyncMock(return_value=None)
    return orchestrator


@pytest.fixture
def mock_stream():
    stream = MagicMock()
    stream.start = AsyncMock()
    stream.stop = AsyncMock()
    return stream


@pytest.fixture
def populated_registry():
    registry = TimingRegistry()
    timing = registry.start("MintA", 0.0)
    timing.buy_time = 210.0
    return registry


@pytest.fixture
def stats_sink(tmp_path):
    return JsonStatsSink(tmp_path / "logs")

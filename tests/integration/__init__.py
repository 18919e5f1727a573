"""
Integration tests for the Listing Sniper.

These tests run the real gate, executor, orchestrator and poller together.
Trade submission and status lookups are mocked, so no network is needed.

Run with:
    pytest tests/integration/ -v -m integration

Skip with:
    pytest -m "not integration"
"""

"""
Ingestion Layer - new-listing stream and the event gate.

This module provides:
    - ListingStreamClient: resilient WebSocket subscription to new pairs
    - EventGate: latency threshold + dedup in front of the trade executor
    - ListingEvent: a parsed new-pair notification

Usage:
    from listing_sniper.ingestion import EventGate, ListingStreamClient

    gate = EventGate(executor, orchestrator.run, threshold_ms=900)
    stream = ListingStreamClient(
        on_message=gate.handle_message,
        is_busy=lambda: executor.is_busy,
        api_key=api_key,
    )
    await stream.start()
"""

# Models
from .models import (
    ListingEvent,
    MalformedEventError,
    NEW_PAIR_NOTIFICATION,
)

# Gate
from .gate import (
    EventGate,
    GateDecision,
)

# WebSocket
from .websocket import (
    ListingStreamClient,
    StreamState,
)

__all__ = [
    # Models
    "ListingEvent",
    "MalformedEventError",
    "NEW_PAIR_NOTIFICATION",
    # Gate
    "EventGate",
    "GateDecision",
    # WebSocket
    "ListingStreamClient",
    "StreamState",
]

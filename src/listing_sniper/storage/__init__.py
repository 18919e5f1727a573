"""
Storage Layer - on-disk statistics.

Usage:
    from listing_sniper.storage import JsonStatsSink

    sink = JsonStatsSink("./logs")
    await sink.write(registry.snapshot())
"""

from .stats_sink import JsonStatsSink

__all__ = [
    "JsonStatsSink",
]

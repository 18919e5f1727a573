"""
Listing Sniper.

A latency-gated, single-flight trade pipeline for newly listed tokens.
The framework watches a streaming feed of new pairs, drops anything that
arrived too late to be worth chasing, and runs a fixed buy -> sell 70% ->
sell 100% lifecycle for one token at a time.
"""

__version__ = "0.1.0"

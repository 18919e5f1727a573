"""
Error taxonomy for the execution layer.

RetryableError covers transient I/O failures (network errors, rate limits,
RPC faults). FatalError covers definitive rejections that must not be
retried blindly.
"""

from __future__ import annotations

from typing import Optional


class SniperError(Exception):
    """Base exception for the sniper."""
    pass


class RetryableError(SniperError):
    """Transient failure: timeout, connection drop, 5xx, rate limit."""
    pass


class FatalError(SniperError):
    """Definitive failure: rejected request, bad configuration."""
    pass


class TradeSubmissionError(RetryableError):
    """The trade request could not be completed (transport or broadcast error)."""
    pass


class RpcError(RetryableError):
    """JSON-RPC call failed."""

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.code = code


class TradeApiError(FatalError):
    """Trade API answered with a non-200 status."""

    def __init__(self, status_code: int, body: str):
        super().__init__(f"Failed to get transaction data: HTTP {status_code} -> {body}")
        self.status_code = status_code
        self.body = body


class ConfigError(FatalError):
    """Missing or invalid configuration."""
    pass

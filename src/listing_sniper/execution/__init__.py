"""
Execution Layer - trade submission, confirmation and the lifecycle state machine.

This module provides:
    - TradeOrchestrator: buy -> sell 70% -> sell 100% state machine (use this!)
    - OrchestratorConfig: Trade sizes, tolerances and phase timing
    - TradeSubmitter: Build (trade API), sign and broadcast one trade
    - ConfirmationPoller: Poll settlement status of a signature
    - SolanaRpcClient: getTransaction / sendTransaction over JSON-RPC
    - KeypairSigner: Local keypair transaction signer
    - ExecutionLock / SingleFlightExecutor: At most one lifecycle at a time
    - RetryPolicy: Per-call-site retry budgets and backoff
    - TradeTiming / TimingRegistry: Per-mint timing records
    - Clock: Injectable time source

Usage:
    from listing_sniper.execution import (
        ConfirmationPoller,
        OrchestratorConfig,
        TimingRegistry,
        TradeOrchestrator,
        TradeSubmitter,
    )

    orchestrator = TradeOrchestrator(submitter, poller, TimingRegistry(), OrchestratorConfig())
    timing = await orchestrator.run(mint)
"""

from .clock import Clock

from .exceptions import (
    ConfigError,
    FatalError,
    RetryableError,
    RpcError,
    SniperError,
    TradeApiError,
    TradeSubmissionError,
)

from .retry import (
    ExponentialBackoff,
    FixedBackoff,
    RetryPolicy,
)

from .lock import (
    ExecutionLock,
    SingleFlightExecutor,
)

from .timing import (
    LifecycleOutcome,
    TimingRegistry,
    TradeTiming,
)

from .rpc import SolanaRpcClient

from .confirmation import (
    ConfirmationPoller,
    ConfirmationResult,
    ConfirmationStatus,
    StatusProvider,
)

from .submitter import (
    TradeAction,
    TradeRequest,
    TradeSubmitter,
)

from .orchestrator import (
    LifecycleState,
    OrchestratorConfig,
    TradeOrchestrator,
)

__all__ = [
    "Clock",
    # Errors
    "ConfigError",
    "FatalError",
    "RetryableError",
    "RpcError",
    "SniperError",
    "TradeApiError",
    "TradeSubmissionError",
    # Retry
    "ExponentialBackoff",
    "FixedBackoff",
    "RetryPolicy",
    # Single-flight
    "ExecutionLock",
    "SingleFlightExecutor",
    # Timing
    "LifecycleOutcome",
    "TimingRegistry",
    "TradeTiming",
    # RPC / confirmation
    "SolanaRpcClient",
    "ConfirmationPoller",
    "ConfirmationResult",
    "ConfirmationStatus",
    "StatusProvider",
    # Submission
    "TradeAction",
    "TradeRequest",
    "TradeSubmitter",
    # Orchestrator
    "LifecycleState",
    "OrchestratorConfig",
    "TradeOrchestrator",
]

"""
Listing Sniper - Main Entry Point

Watches the SolanaStreaming new-pair feed and, for each listing that arrives
within the latency threshold, runs buy -> sell 70% -> sell 100% for that one
token before looking at the next.

Usage:
    python -m listing_sniper.main [--env-file .env] [--log-level DEBUG]
    listing-sniper --log-level INFO

Configuration:
    The sniper reads configuration from:
    1. Environment variables
    2. A .env file (values already in the environment win)
    3. Command line arguments

Environment Variables:
    PRIVATE_KEY               Base58 wallet secret key (required)
    PUBLIC_KEY                Wallet public key (default: derived from PRIVATE_KEY)
    SOLANA_STREAMING_API_KEY  SolanaStreaming API key
    RPC_URL                   Solana RPC endpoint for broadcast and status checks
    STREAM_URL                Stream endpoint (default: wss://api.solanastreaming.com/)
    TRADE_API_URL             Trade API (default: https://pumpportal.fun/api/trade-local)
    BUY_SOL                   Buy size in SOL (default: 0.5)
    BUY_SLIPPAGE              Buy slippage in bps (default: 1000)
    SELL1_SLIPPAGE            Sell 70% slippage in bps (default: 1000)
    SELL2_SLIPPAGE            Sell 100% slippage in bps (default: 1000)
    PRIORITY_FEE              Buy priority fee in SOL (default: 0.00000000005)
    POOL                      pump | raydium | pump-amm | launchlab | raydium-cpmm | bonk | auto
    EVENT_TIMEOUT_MS          Latency threshold in ms (default: 900)
    FIRST_SELL_DELAY_MS       Delay before selling 70% (default: 500)
    SECOND_SELL_DELAY_MS      Delay before selling 100% (default: 1500)
    MAX_RECONNECT_ATTEMPTS    Stream reconnect budget (default: 10)
    STATS_INTERVAL_SECONDS    Statistics flush interval (default: 60)
    LOG_DIR                   Log and statistics directory (default: ./logs)
    LOG_LEVEL                 Logging level (DEBUG/INFO/WARNING/ERROR)
"""

from __future__ import annotations

import argparse
import asyncio
import atexit
import fcntl
import logging
import os
import signal
import sys
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Generator, Optional

from listing_sniper.core import (
    BackgroundTaskConfig,
    BackgroundTasksManager,
    PipelineConfig,
    SniperPipeline,
)
from listing_sniper.execution import (
    ConfigError,
    ConfirmationPoller,
    OrchestratorConfig,
    SolanaRpcClient,
    TimingRegistry,
    TradeOrchestrator,
    TradeSubmitter,
)
from listing_sniper.ingestion import ListingStreamClient
from listing_sniper.log import configure_logging
from listing_sniper.storage import JsonStatsSink

logger = logging.getLogger(__name__)

# Default PID file location
DEFAULT_PID_FILE = "/tmp/listing-sniper.pid"

POOLS = ("pump", "raydium", "pump-amm", "launchlab", "raydium-cpmm", "bonk", "auto")

DEFAULT_RPC_URL = "https://api.mainnet-beta.solana.com"


class SingletonBotError(Exception):
    """Raised when another sniper instance is already running."""
    pass


@contextmanager
def singleton_lock(pid_file: str = DEFAULT_PID_FILE) -> Generator[None, None, None]:
    """
    Context manager that ensures only one sniper instance runs at a time.

    Two instances sharing a wallet would break the one-trade-at-a-time
    guarantee, so a second instance refuses to start.

    Raises:
        SingletonBotError: If another instance is already running
    """
    pid_path = Path(pid_file)

    # Read existing PID before opening (which would truncate)
    existing_pid = None
    try:
        existing_pid = pid_path.read_text().strip()
    except FileNotFoundError:
        pass

    fp = open(pid_path, "a+")

    try:
        fcntl.flock(fp.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
    except (IOError, OSError):
        fp.close()
        if existing_pid:
            raise SingletonBotError(
                f"Another sniper instance is already running (PID: {existing_pid}). "
                f"Kill it with: kill {existing_pid}"
            )
        raise SingletonBotError("Another sniper instance is already running.")

    fp.seek(0)
    fp.truncate()
    fp.write(str(os.getpid()))
    fp.flush()

    def cleanup():
        try:
            fcntl.flock(fp.fileno(), fcntl.LOCK_UN)
            fp.close()
            pid_path.unlink(missing_ok=True)
        except OSError as e:
            logger.debug(f"PID file cleanup failed: {e}")

    atexit.register(cleanup)

    try:
        logger.info(f"Acquired singleton lock (PID: {os.getpid()}, file: {pid_file})")
        yield
    finally:
        cleanup()
        atexit.unregister(cleanup)


def _env_number(name: str, default: str, cast):
    raw = os.environ.get(name, default)
    try:
        return cast(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}")


@dataclass(frozen=True)
class SniperConfig:
    """Complete sniper configuration. Read-only after startup."""

    # Wallet
    private_key: str = ""
    public_key: str = ""

    # Trading parameters
    buy_sol: float = 0.5
    buy_slippage: int = 1000
    sell1_slippage: int = 1000
    sell2_slippage: int = 1000
    priority_fee: float = 0.00000000005
    pool: str = "pump"

    # Timing
    event_timeout_ms: int = 900
    first_sell_delay_ms: int = 500
    second_sell_delay_ms: int = 1500

    # Endpoints
    stream_url: str = ListingStreamClient.WS_URL
    stream_api_key: str = ""
    trade_api_url: str = TradeSubmitter.TRADE_LOCAL_URL
    rpc_url: str = DEFAULT_RPC_URL

    # Stream resilience
    max_reconnect_attempts: int = 10

    # Output
    log_dir: str = "./logs"
    stats_interval_seconds: float = 60

    def __repr__(self) -> str:
        return f"SniperConfig(public_key={self.public_key!r}, pool={self.pool!r}, buy_sol={self.buy_sol})"

    @classmethod
    def from_env(cls) -> "SniperConfig":
        """
        Load configuration from environment variables.

        Raises:
            ConfigError: Missing private key, unknown pool or non-numeric values
        """
        private_key = os.environ.get("PRIVATE_KEY", "").strip()
        if not private_key:
            raise ConfigError("Missing environment variable PRIVATE_KEY")

        pool = os.environ.get("POOL", "pump").strip()
        if pool not in POOLS:
            raise ConfigError(f"POOL must be one of {', '.join(POOLS)}, got {pool!r}")

        config = cls(
            private_key=private_key,
            public_key=os.environ.get("PUBLIC_KEY", "").strip(),
            buy_sol=_env_number("BUY_SOL", "0.5", float),
            buy_slippage=_env_number("BUY_SLIPPAGE", "1000", int),
            sell1_slippage=_env_number("SELL1_SLIPPAGE", "1000", int),
            sell2_slippage=_env_number("SELL2_SLIPPAGE", "1000", int),
            priority_fee=_env_number("PRIORITY_FEE", "0.00000000005", float),
            pool=pool,
            event_timeout_ms=_env_number("EVENT_TIMEOUT_MS", "900", int),
            first_sell_delay_ms=_env_number("FIRST_SELL_DELAY_MS", "500", int),
            second_sell_delay_ms=_env_number("SECOND_SELL_DELAY_MS", "1500", int),
            stream_url=os.environ.get("STREAM_URL", ListingStreamClient.WS_URL),
            stream_api_key=os.environ.get("SOLANA_STREAMING_API_KEY", ""),
            trade_api_url=os.environ.get("TRADE_API_URL", TradeSubmitter.TRADE_LOCAL_URL),
            rpc_url=os.environ.get("RPC_URL", DEFAULT_RPC_URL),
            max_reconnect_attempts=_env_number("MAX_RECONNECT_ATTEMPTS", "10", int),
            log_dir=os.environ.get("LOG_DIR", "./logs"),
            stats_interval_seconds=_env_number("STATS_INTERVAL_SECONDS", "60", float),
        )

        if config.buy_sol <= 0:
            raise ConfigError(f"BUY_SOL must be positive, got {config.buy_sol}")
        if config.event_timeout_ms < 0:
            raise ConfigError(f"EVENT_TIMEOUT_MS must not be negative, got {config.event_timeout_ms}")

        return config

    @property
    def orchestrator_config(self) -> OrchestratorConfig:
        return OrchestratorConfig(
            buy_sol=self.buy_sol,
            buy_slippage=self.buy_slippage,
            sell1_slippage=self.sell1_slippage,
            sell2_slippage=self.sell2_slippage,
            priority_fee=self.priority_fee,
            pool=self.pool,
            first_sell_delay_ms=self.first_sell_delay_ms,
            second_sell_delay_ms=self.second_sell_delay_ms,
        )

    @property
    def pipeline_config(self) -> PipelineConfig:
        return PipelineConfig(
            event_timeout_ms=self.event_timeout_ms,
            stream_url=self.stream_url,
            stream_api_key=self.stream_api_key,
            max_reconnect_attempts=self.max_reconnect_attempts,
        )

    @property
    def background_config(self) -> BackgroundTaskConfig:
        return BackgroundTaskConfig(stats_interval_seconds=self.stats_interval_seconds)


class SniperBot:
    """
    Main sniper orchestrator.

    Manages the lifecycle of all components:
    - RPC client and trade submitter
    - Pipeline (stream, gate, executor, orchestrator)
    - Background statistics flush
    """

    def __init__(self, config: SniperConfig):
        self.config = config
        self._running = False
        self._shutdown_event = asyncio.Event()

        # Components (initialized on start)
        self._rpc: Optional[SolanaRpcClient] = None
        self._submitter: Optional[TradeSubmitter] = None
        self._registry = TimingRegistry()
        self._pipeline: Optional[SniperPipeline] = None
        self._background_tasks: Optional[BackgroundTasksManager] = None

    @property
    def registry(self) -> TimingRegistry:
        return self._registry

    async def start(self) -> None:
        """Start the sniper and run until a shutdown signal arrives."""
        from listing_sniper.execution.wallet import KeypairSigner

        signer = KeypairSigner.from_base58(self.config.private_key)
        if self.config.public_key and self.config.public_key != signer.public_key:
            raise ConfigError(
                f"PUBLIC_KEY {self.config.public_key} does not match PRIVATE_KEY "
                f"({signer.public_key})"
            )

        self._log_banner(signer.public_key)

        self._running = True
        self._shutdown_event.clear()
        self._setup_signal_handlers()

        try:
            self._rpc = SolanaRpcClient(self.config.rpc_url)
            self._submitter = TradeSubmitter(signer, self._rpc, url=self.config.trade_api_url)
            orchestrator = TradeOrchestrator(
                submitter=self._submitter,
                poller=ConfirmationPoller(self._rpc),
                registry=self._registry,
                config=self.config.orchestrator_config,
            )
            self._pipeline = SniperPipeline(orchestrator, self.config.pipeline_config)
            self._background_tasks = BackgroundTasksManager(
                registry=self._registry,
                stats_sink=JsonStatsSink(self.config.log_dir),
                config=self.config.background_config,
            )

            await self._background_tasks.start()
            await self._pipeline.start()

            logger.info("Sniper started - press Ctrl+C to stop")
            await self._shutdown_event.wait()

        except Exception as e:
            logger.exception(f"Fatal error: {e}")
            raise
        finally:
            await self.stop()

    async def stop(self) -> None:
        """Stop the sniper gracefully."""
        if not self._running:
            return

        logger.info("Shutting down...")
        self._running = False
        self._shutdown_event.set()

        # Stop components in reverse order
        if self._pipeline:
            try:
                await self._pipeline.stop()
            except Exception as e:
                logger.warning(f"Error stopping pipeline: {e}")

        if self._background_tasks:
            try:
                await self._background_tasks.stop()
            except Exception as e:
                logger.warning(f"Error stopping background tasks: {e}")

        if self._submitter:
            try:
                await self._submitter.close()
            except Exception as e:
                logger.warning(f"Error closing trade submitter: {e}")

        if self._rpc:
            try:
                await self._rpc.close()
            except Exception as e:
                logger.warning(f"Error closing RPC client: {e}")

        logger.info("Shutdown complete")

    def _log_banner(self, public_key: str) -> None:
        cfg = self.config
        logger.info("=" * 60)
        logger.info("LISTING SNIPER")
        logger.info("=" * 60)
        logger.info("Configuration:")
        logger.info(f"   - Wallet public key: {public_key}")
        logger.info(f"   - Buy amount: {cfg.buy_sol} SOL")
        logger.info(f"   - Buy slippage: {cfg.buy_slippage} bps")
        logger.info(f"   - Sell1 slippage: {cfg.sell1_slippage} bps")
        logger.info(f"   - Sell2 slippage: {cfg.sell2_slippage} bps")
        logger.info(f"   - Buy priority fee: {cfg.priority_fee} SOL")
        logger.info("   - Sell priority fee: 0 SOL")
        logger.info(f"   - Pool: {cfg.pool}")
        logger.info(f"   - Time threshold: {cfg.event_timeout_ms}ms")
        logger.info(f"   - Sell 70% delay: {cfg.first_sell_delay_ms}ms")
        logger.info(f"   - Sell 100% delay: {cfg.second_sell_delay_ms}ms")
        logger.info(f"   - Stream: {cfg.stream_url}")
        logger.info(f"   - RPC: {cfg.rpc_url}")
        logger.info(f"   - Trade API: {cfg.trade_api_url}")
        logger.info("=" * 60)

    def _setup_signal_handlers(self) -> None:
        """Setup signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()

        def handle_signal(sig):
            logger.info(f"Received signal {sig}")
            self._shutdown_event.set()

        try:
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.add_signal_handler(sig, lambda s=sig: handle_signal(s))
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            pass


def load_env_file(path: str = ".env") -> None:
    """Load environment variables from .env file if it exists."""
    env_path = Path(path)
    if env_path.exists():
        logger.info(f"Loading environment from {env_path}")
        with open(env_path) as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith("#") and "=" in line:
                    key, _, value = line.partition("=")
                    value = value.strip().strip('"').strip("'")
                    os.environ.setdefault(key.strip(), value)


def parse_args(argv: Optional[list] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Listing Sniper",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--env-file",
        default=".env",
        help="Path to .env file (default: .env)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Override log level",
    )
    parser.add_argument(
        "--pid-file",
        default=DEFAULT_PID_FILE,
        help=f"Singleton PID file (default: {DEFAULT_PID_FILE})",
    )
    return parser.parse_args(argv)


async def main_async(config: SniperConfig) -> int:
    """Async main function."""
    bot = SniperBot(config)

    try:
        await bot.start()
        return 0
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return 1
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        return 1


def main(argv: Optional[list] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    load_env_file(args.env_file)

    level = args.log_level or os.environ.get("LOG_LEVEL", "INFO")
    configure_logging(level, os.environ.get("LOG_DIR", "./logs"))

    try:
        config = SniperConfig.from_env()
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    # Ensure only one sniper instance runs at a time
    try:
        with singleton_lock(args.pid_file):
            try:
                return asyncio.run(main_async(config))
            except KeyboardInterrupt:
                return 0
    except SingletonBotError as e:
        logger.error(str(e))
        print(f"\n{e}\n", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())

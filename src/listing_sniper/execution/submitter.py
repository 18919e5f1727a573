"""
Trade submission.

Builds a trade through the PumpPortal local trade API, signs it with the
wallet and broadcasts it through RPC. One call, one transaction signature.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional, Union

import aiohttp

from listing_sniper.log import SUCCESS

from .exceptions import RpcError, TradeApiError, TradeSubmissionError

if TYPE_CHECKING:
    from .rpc import SolanaRpcClient
    from .wallet import TransactionSigner

logger = logging.getLogger(__name__)


class TradeAction(str, Enum):
    BUY = "buy"
    SELL = "sell"


@dataclass(frozen=True)
class TradeRequest:
    """
    One buy or sell request.

    Attributes:
        action: buy or sell
        mint: Token mint address
        amount: SOL amount for buys, percentage string ("70%") for sells
        denominated_in_sol: Whether `amount` is in SOL
        slippage: Slippage tolerance in basis points
        priority_fee: Priority fee in SOL
        pool: Target pool (pump, raydium, pump-amm, ...)
    """
    action: TradeAction
    mint: str
    amount: Union[float, str]
    denominated_in_sol: bool
    slippage: int
    priority_fee: float
    pool: str

    @classmethod
    def buy(cls, mint: str, sol_amount: float, slippage: int, priority_fee: float, pool: str) -> "TradeRequest":
        return cls(
            action=TradeAction.BUY,
            mint=mint,
            amount=sol_amount,
            denominated_in_sol=True,
            slippage=slippage,
            priority_fee=priority_fee,
            pool=pool,
        )

    @classmethod
    def sell_percent(cls, mint: str, percent: int, slippage: int, pool: str) -> "TradeRequest":
        """Sell a percentage of holdings. Sells never pay a priority fee."""
        return cls(
            action=TradeAction.SELL,
            mint=mint,
            amount=f"{percent}%",
            denominated_in_sol=False,
            slippage=slippage,
            priority_fee=0,
            pool=pool,
        )

    def to_payload(self, public_key: str) -> dict:
        return {
            "publicKey": public_key,
            "action": self.action.value,
            "mint": self.mint,
            "amount": self.amount,
            "denominatedInSol": "true" if self.denominated_in_sol else "false",
            "slippage": self.slippage,
            "priorityFee": self.priority_fee,
            "pool": self.pool,
        }


class TradeSubmitter:
    """
    Submits trades: request unsigned tx -> sign -> broadcast.

    Raises TradeApiError when the trade API rejects the request (non-200) and
    TradeSubmissionError on transport or broadcast failures.

    Usage:
        submitter = TradeSubmitter(signer, rpc, trade_api_url)
        signature = await submitter.submit(TradeRequest.buy(mint, 0.5, 1000, 0.0001, "pump"))
    """

    TRADE_LOCAL_URL = "https://pumpportal.fun/api/trade-local"
    EXPLORER_URL = "https://solscan.io/tx/{signature}"

    def __init__(
        self,
        signer: "TransactionSigner",
        rpc: "SolanaRpcClient",
        url: Optional[str] = None,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 10.0,
    ):
        self._signer = signer
        self._rpc = rpc
        self._url = url or self.TRADE_LOCAL_URL
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    async def close(self) -> None:
        """Close the client session."""
        if self._owns_session and self._session:
            await self._session.close()
            self._session = None

    async def submit(self, request: TradeRequest) -> str:
        """
        Submit one trade and return its transaction signature.

        Raises:
            TradeApiError: Trade API answered with a non-200 status
            TradeSubmissionError: Network, signing or broadcast failure
        """
        label = request.action.value.upper()
        logger.info(f"Requesting {label} transaction data: {request.mint}")

        try:
            unsigned = await self._fetch_transaction(request)
            signed = self._signer.sign(unsigned)
            signature = await self._rpc.send_transaction(signed)

        except asyncio.CancelledError:
            raise

        except TradeApiError as e:
            logger.error(f"{label} error: {e}")
            raise

        except RpcError as e:
            logger.error(f"{label} error: {e}")
            raise TradeSubmissionError(f"Broadcast failed: {e}") from e

        except TradeSubmissionError as e:
            logger.error(f"{label} error: {e}")
            raise

        except Exception as e:
            logger.error(f"{label} error: {e}")
            raise TradeSubmissionError(str(e)) from e

        logger.log(SUCCESS, f"{label} {request.mint} transaction sent: {signature}")
        logger.info(f"Transaction link: {self.EXPLORER_URL.format(signature=signature)}")
        return signature

    async def _fetch_transaction(self, request: TradeRequest) -> bytes:
        """POST the trade request, returning the serialized unsigned transaction."""
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True

        payload = request.to_payload(self._signer.public_key)

        try:
            async with self._session.post(self._url, json=payload) as response:
                if response.status != 200:
                    text = await response.text()
                    raise TradeApiError(response.status, text)
                return await response.read()

        except asyncio.TimeoutError:
            raise TradeSubmissionError("Trade API request timed out")

        except aiohttp.ClientError as e:
            raise TradeSubmissionError(f"Trade API request failed: {e}") from e

"""
Solana JSON-RPC client.

Provides the two RPC calls the pipeline needs:
    - getTransaction: settlement status of a submitted transaction
    - sendTransaction: broadcast a signed transaction

The client does not retry on its own; every caller decides how patient to be
through its RetryPolicy.
"""

from __future__ import annotations

import asyncio
import base64
import itertools
import logging
from typing import Any, Optional

import aiohttp

from .exceptions import RpcError

logger = logging.getLogger(__name__)


class SolanaRpcClient:
    """
    Async JSON-RPC client for a Solana node.

    Usage:
        async with SolanaRpcClient(rpc_url) as rpc:
            tx = await rpc.get_transaction(signature)
            if tx is None:
                ...  # not indexed yet
    """

    def __init__(
        self,
        url: str,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 10.0,
        commitment: str = "confirmed",
    ):
        """
        Initialize the RPC client.

        Args:
            url: RPC endpoint URL
            session: Optional aiohttp session (created if not provided)
            timeout: Request timeout in seconds
            commitment: Commitment level for reads and preflight
        """
        self._url = url
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._commitment = commitment
        self._ids = itertools.count(1)

    async def __aenter__(self) -> "SolanaRpcClient":
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the client session."""
        if self._owns_session and self._session:
            await self._session.close()
            self._session = None

    async def _call(self, method: str, params: list) -> Any:
        """
        Make a single JSON-RPC call.

        Raises:
            RpcError: On transport errors, non-200 responses and RPC errors
            asyncio.CancelledError: When task is cancelled (re-raised)
        """
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True

        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params,
        }

        try:
            async with self._session.post(self._url, json=payload) as response:
                if response.status != 200:
                    text = await response.text()
                    raise RpcError(f"{method} failed: HTTP {response.status} - {text}")
                data = await response.json(content_type=None)

        except asyncio.CancelledError:
            raise

        except asyncio.TimeoutError:
            raise RpcError(f"{method} timed out")

        except aiohttp.ClientError as e:
            raise RpcError(f"{method} request failed: {e}") from e

        except ValueError as e:
            raise RpcError(f"{method} returned invalid JSON: {e}") from e

        if not isinstance(data, dict):
            raise RpcError(f"{method} returned unexpected payload: {str(data)[:200]}")

        error = data.get("error")
        if error:
            if isinstance(error, dict):
                raise RpcError(
                    f"{method} error: {error.get('message', error)}",
                    code=error.get("code"),
                )
            raise RpcError(f"{method} error: {error}")

        return data.get("result")

    async def get_transaction(self, signature: str) -> Optional[dict]:
        """
        Fetch a transaction by signature.

        Returns:
            The transaction record (with `meta.err` describing the outcome),
            or None if the node has not indexed it yet.
        """
        return await self._call(
            "getTransaction",
            [
                signature,
                {
                    "encoding": "json",
                    "commitment": self._commitment,
                    "maxSupportedTransactionVersion": 0,
                },
            ],
        )

    async def send_transaction(self, raw_transaction: bytes) -> str:
        """
        Broadcast a signed, serialized transaction.

        Returns:
            The transaction signature
        """
        encoded = base64.b64encode(raw_transaction).decode("ascii")
        result = await self._call(
            "sendTransaction",
            [
                encoded,
                {
                    "encoding": "base64",
                    "preflightCommitment": self._commitment,
                },
            ],
        )
        if not isinstance(result, str) or not result:
            raise RpcError(f"sendTransaction returned no signature: {result!r}")
        return result

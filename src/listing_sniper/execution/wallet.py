"""
Transaction signing.

The trade API returns unsigned transactions; a TransactionSigner turns them
into signed wire bytes ready for broadcast.
"""

from __future__ import annotations

import logging
from typing import Protocol

import base58
from solders.keypair import Keypair
from solders.transaction import VersionedTransaction

from .exceptions import ConfigError

logger = logging.getLogger(__name__)


class TransactionSigner(Protocol):
    """Signs serialized transactions for one wallet."""

    @property
    def public_key(self) -> str:
        ...

    def sign(self, unsigned_transaction: bytes) -> bytes:
        ...


class KeypairSigner:
    """Signer backed by a local ed25519 keypair."""

    def __init__(self, keypair: Keypair):
        self._keypair = keypair

    @classmethod
    def from_base58(cls, private_key: str) -> "KeypairSigner":
        """Build from a base58-encoded 64-byte secret key."""
        try:
            return cls(Keypair.from_bytes(base58.b58decode(private_key.strip())))
        except (ValueError, TypeError) as e:
            raise ConfigError(f"Invalid PRIVATE_KEY: {e}") from e

    @property
    def public_key(self) -> str:
        return str(self._keypair.pubkey())

    def sign(self, unsigned_transaction: bytes) -> bytes:
        """Deserialize a VersionedTransaction, sign its message, reserialize."""
        tx = VersionedTransaction.from_bytes(unsigned_transaction)
        signed = VersionedTransaction(tx.message, [self._keypair])
        return bytes(signed)

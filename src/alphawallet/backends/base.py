"""
Chain query backend interface.

The wallet core never speaks a network protocol itself; a backend
implementation (Electrum-style server, node RPC, test double) is injected.
Lookups are keyed by the address scripthash, see
``alphawallet.wallet.address.address_to_scripthash``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any

from alphawallet.constants import SAT
from alphawallet.wallet.models import UTXO


def balance_from_sats(confirmed: int, unconfirmed: int = 0) -> Decimal:
    """Confirmed plus unconfirmed satoshis, expressed in coins."""
    return Decimal(confirmed + unconfirmed) / SAT


def utxo_from_listunspent(entry: dict[str, Any], address: str) -> UTXO:
    """Map a {tx_hash, tx_pos, value, height} record onto a UTXO."""
    return UTXO(
        txid=entry["tx_hash"],
        vout=int(entry["tx_pos"]),
        value=int(entry["value"]),
        address=address,
        height=entry.get("height"),
    )


class ChainBackend(ABC):
    """Abstract chain query collaborator"""

    @abstractmethod
    async def get_balance(self, address: str) -> Decimal:
        """Confirmed + unconfirmed balance in coins"""

    @abstractmethod
    async def get_utxos(self, address: str) -> list[UTXO]:
        """Unspent outputs paying to address"""

    @abstractmethod
    async def broadcast(self, raw_tx_hex: str) -> Any:
        """Broadcast a raw transaction, returns the backend's response"""

    async def close(self) -> None:
        """Close backend connection"""
        pass

"""
Chain query backends for the Alpha wallet.
"""

from alphawallet.backends.base import ChainBackend, balance_from_sats, utxo_from_listunspent

__all__ = [
    "ChainBackend",
    "balance_from_sats",
    "utxo_from_listunspent",
]

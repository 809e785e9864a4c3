"""
alphawallet - Wallet core for the Alpha L1 chain

Provides HD key derivation, address encoding, wallet file import/export and
SegWit transaction building.
"""

__version__ = "0.3.0"

from alphawallet.errors import (
    DecryptionTimeout,
    InsufficientFunds,
    IntegrityCheckFailed,
    InvalidAddress,
    InvalidFormat,
    InvalidKey,
    MissingSigningKey,
    NeedsPassword,
    PathCollision,
    ShortfallAfterFees,
    UnsupportedVersion,
    UnsupportedWalletFormat,
    WalletError,
    WrongPassword,
)
from alphawallet.wallet.keymanager import KeyManager
from alphawallet.wallet.models import (
    UTXO,
    DerivationMode,
    Wallet,
    WalletAddress,
    WalletSource,
)

__all__ = [
    "DecryptionTimeout",
    "DerivationMode",
    "InsufficientFunds",
    "IntegrityCheckFailed",
    "InvalidAddress",
    "InvalidFormat",
    "InvalidKey",
    "KeyManager",
    "MissingSigningKey",
    "NeedsPassword",
    "PathCollision",
    "ShortfallAfterFees",
    "UTXO",
    "UnsupportedVersion",
    "UnsupportedWalletFormat",
    "Wallet",
    "WalletAddress",
    "WalletError",
    "WalletSource",
    "WrongPassword",
]

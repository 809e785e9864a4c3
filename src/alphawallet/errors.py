"""
Wallet error taxonomy.

Every failure surfaced by the wallet core is a subclass of WalletError so
callers can catch one type at the boundary.
"""

from __future__ import annotations


class WalletError(Exception):
    pass


class InvalidKey(WalletError):
    """Private key or derived scalar is out of the curve order range."""


class InvalidAddress(WalletError):
    """Bech32 address failed to decode or has an unexpected program."""


class InvalidFormat(WalletError):
    """Input is not a recognised wallet file or is malformed."""


class UnsupportedVersion(WalletError):
    """JSON wallet with a version this library does not read."""


class NeedsPassword(WalletError):
    """The wallet is encrypted and no password was supplied."""


class WrongPassword(WalletError):
    """Decryption with the supplied password failed."""


class DecryptionTimeout(WalletError):
    """Key stretching for an encrypted .dat exceeded the configured timeout."""


class IntegrityCheckFailed(WalletError):
    """A stored address does not match the key re-derived for it."""

    def __init__(self, message: str, address: str | None = None):
        super().__init__(message)
        self.address = address


class PathCollision(WalletError):
    """Two different addresses claim the same derivation path."""

    def __init__(self, message: str, path: str | None = None):
        super().__init__(message)
        self.path = path


class InsufficientFunds(WalletError):
    """Total UTXO value is below the requested amount."""


class ShortfallAfterFees(WalletError):
    """Enough coins exist but per-input fees leave part of the amount unpaid."""

    def __init__(self, message: str, remaining: int = 0):
        super().__init__(message)
        self.remaining = remaining


class UnsupportedWalletFormat(WalletError):
    """A .dat file was parsed but holds no key material this library handles."""


class MissingSigningKey(WalletError):
    """No private key is available for the address being spent."""

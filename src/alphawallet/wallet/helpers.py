"""
Path-integrity helpers for a wallet's address list.

A derivation path maps to exactly one address. Adding a second, different
address under an existing path means the wallet data is corrupt, so it is
rejected with PathCollision instead of being silently merged.
"""

from __future__ import annotations

from collections import Counter

from loguru import logger

from alphawallet.errors import PathCollision, WalletError
from alphawallet.wallet.models import Wallet, WalletAddress


class WalletAddressHelper:
    """Static helpers operating on Wallet.addresses"""

    @staticmethod
    def find_by_path(wallet: Wallet, path: str) -> WalletAddress | None:
        for addr in wallet.addresses:
            if addr.path == path:
                return addr
        return None

    @staticmethod
    def has_path(wallet: Wallet, path: str) -> bool:
        return WalletAddressHelper.find_by_path(wallet, path) is not None

    @staticmethod
    def get_default(wallet: Wallet) -> WalletAddress | None:
        return wallet.default_address

    @staticmethod
    def get_external(wallet: Wallet) -> list[WalletAddress]:
        return [a for a in wallet.addresses if not a.is_change]

    @staticmethod
    def get_change(wallet: Wallet) -> list[WalletAddress]:
        return [a for a in wallet.addresses if a.is_change]

    @staticmethod
    def add(wallet: Wallet, new_address: WalletAddress) -> Wallet:
        """
        Append an address.

        No-op when the same address is already stored under the path;
        PathCollision when a different one is.
        """
        if not new_address.path:
            raise WalletError(f"Address {new_address.address} has no derivation path")

        existing = WalletAddressHelper.find_by_path(wallet, new_address.path)
        if existing is not None:
            if existing.address == new_address.address:
                return wallet
            raise PathCollision(
                f"Path {new_address.path} already holds {existing.address}, "
                f"refusing {new_address.address}",
                path=new_address.path,
            )

        wallet.addresses.append(new_address)
        logger.debug(f"Added address {new_address.address} at {new_address.path}")
        return wallet

    @staticmethod
    def validate(wallet: Wallet) -> None:
        """Raise PathCollision if any path appears more than once."""
        counts = Counter(a.path for a in wallet.addresses if a.path)
        duplicates = sorted(path for path, count in counts.items() if count > 1)
        if duplicates:
            raise PathCollision(
                f"Duplicate derivation paths: {', '.join(duplicates)}", path=duplicates[0]
            )

    @staticmethod
    def sort_addresses(wallet: Wallet) -> Wallet:
        """External addresses first, then change, each by index."""
        wallet.addresses.sort(key=lambda a: (a.is_change, a.index))
        return wallet

"""
Address scanning engine.

Walks index 0..max_addresses-1 on the receive and change chains of each
candidate base path, asking the chain backend for every derived address'
balance. Addresses with a positive balance are collected.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

from loguru import logger

from alphawallet.backends.base import ChainBackend
from alphawallet.config import WalletSettings
from alphawallet.constants import (
    ADDRESS_PREFIX,
    DEFAULT_SCAN_MAX_ADDRESSES,
    SCAN_BASE_PATHS,
    SCAN_CHAINS,
    SCAN_YIELD_EVERY,
)
from alphawallet.crypto import KeyPair
from alphawallet.errors import WalletError
from alphawallet.wallet.address import public_key_to_address
from alphawallet.wallet.bip32 import derive_at_path, derive_child
from alphawallet.wallet.helpers import WalletAddressHelper
from alphawallet.wallet.models import Wallet, WalletAddress


class ScanState(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    COMPLETE = "complete"
    CANCELLED = "cancelled"


@dataclass
class ScannedAddress:
    index: int
    address: str
    path: str
    balance: Decimal
    private_key: str
    public_key: str
    is_change: bool = False


@dataclass
class ScanProgress:
    current: int
    total: int
    found: int
    total_balance: Decimal
    found_addresses: list[ScannedAddress]


@dataclass
class ScanResult:
    state: ScanState
    addresses: list[ScannedAddress] = field(default_factory=list)
    total_balance: Decimal = Decimal(0)
    scanned_count: int = 0


ProgressCallback = Callable[[ScanProgress], None]


class AddressScanner:
    """
    Scans a BIP32 wallet for funded addresses.

    One scanner runs one scan at a time; ``cancel()`` is honoured at the next
    index boundary.
    """

    def __init__(
        self,
        backend: ChainBackend,
        base_paths: Sequence[str] = SCAN_BASE_PATHS,
        prefix: str = ADDRESS_PREFIX,
        yield_every: int = SCAN_YIELD_EVERY,
    ):
        self.backend = backend
        self.base_paths = tuple(base_paths)
        self.prefix = prefix
        self.yield_every = yield_every
        self.state = ScanState.IDLE
        self._cancel_requested = False

    @classmethod
    def from_settings(cls, backend: ChainBackend, settings: WalletSettings) -> AddressScanner:
        return cls(backend, settings.scan_base_paths, settings.address_prefix)

    def cancel(self) -> None:
        if self.state == ScanState.SCANNING:
            logger.info("Scan cancellation requested")
            self._cancel_requested = True

    def _candidate_base_paths(self, wallet: Wallet) -> list[str]:
        if wallet.descriptor_path:
            return [f"m/{wallet.descriptor_path.removeprefix('m/')}"]
        return list(self.base_paths)

    async def scan(
        self,
        wallet: Wallet,
        max_addresses: int = DEFAULT_SCAN_MAX_ADDRESSES,
        on_progress: ProgressCallback | None = None,
    ) -> ScanResult:
        if self.state == ScanState.SCANNING:
            raise WalletError("A scan is already running")
        if max_addresses <= 0:
            self.state = ScanState.COMPLETE
            return ScanResult(state=ScanState.COMPLETE)
        if not wallet.chain_code:
            raise WalletError("No chain code found - cannot derive BIP32 addresses")

        master = bytes.fromhex(wallet.master_private_key)
        chain_code = bytes.fromhex(wallet.chain_code)

        # Chain-level keys are derived once; only the last step varies per index
        chain_keys = []
        for base_path in self._candidate_base_paths(wallet):
            account_key, account_chain = derive_at_path(master, chain_code, base_path)
            for chain in SCAN_CHAINS:
                key, cc = derive_child(account_key, account_chain, chain)
                chain_keys.append((base_path, chain, key, cc))

        self.state = ScanState.SCANNING
        self._cancel_requested = False
        found: list[ScannedAddress] = []
        total_balance = Decimal(0)
        scanned = 0
        logger.info(f"Scanning {max_addresses} indices over {len(chain_keys)} chains")

        try:
            for index in range(max_addresses):
                if self._cancel_requested:
                    self.state = ScanState.CANCELLED
                    break

                for base_path, chain, key, cc in chain_keys:
                    child, _ = derive_child(key, cc, index)
                    keypair = KeyPair.from_hex(child.hex())
                    public_key = keypair.public_key_hex()
                    address = public_key_to_address(public_key, self.prefix)

                    balance = await self.backend.get_balance(address)
                    if balance > 0:
                        path = f"{base_path}/{chain}/{index}"
                        logger.debug(f"Found {balance} at {address} ({path})")
                        found.append(
                            ScannedAddress(
                                index=index,
                                address=address,
                                path=path,
                                balance=Decimal(balance),
                                private_key=keypair.private_key_hex(),
                                public_key=public_key,
                                is_change=chain == 1,
                            )
                        )
                        total_balance += Decimal(balance)

                scanned = index + 1
                if on_progress is not None:
                    on_progress(
                        ScanProgress(
                            current=scanned,
                            total=max_addresses,
                            found=len(found),
                            total_balance=total_balance,
                            found_addresses=list(found),
                        )
                    )

                if scanned % self.yield_every == 0:
                    await asyncio.sleep(0)
            else:
                self.state = ScanState.COMPLETE
        except BaseException:
            self.state = ScanState.IDLE
            raise

        logger.info(
            f"Scan {self.state.value}: {scanned} indices, {len(found)} funded, "
            f"total {total_balance}"
        )
        return ScanResult(
            state=self.state,
            addresses=found,
            total_balance=total_balance,
            scanned_count=scanned,
        )


def apply_to_wallet(wallet: Wallet, result: ScanResult) -> Wallet:
    """
    Append the funded addresses of a completed scan to the wallet.

    Cancelled scans leave the wallet untouched.
    """
    if result.state != ScanState.COMPLETE:
        return wallet

    for scanned in result.addresses:
        WalletAddressHelper.add(
            wallet,
            WalletAddress(
                address=scanned.address,
                path=scanned.path,
                index=scanned.index,
                is_change=scanned.is_change,
                public_key=scanned.public_key,
                private_key=scanned.private_key,
            ),
        )
    if wallet.child_private_key is None and wallet.addresses:
        wallet.child_private_key = wallet.addresses[0].private_key
    return wallet

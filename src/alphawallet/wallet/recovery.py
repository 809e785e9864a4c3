"""
Key recovery by re-derivation.

Wallet backups store addresses next to the master key. On import every stored
address is matched against a key derived from the master material; an address
that cannot be reproduced aborts the import with IntegrityCheckFailed.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from loguru import logger

from alphawallet.constants import (
    ADDRESS_PREFIX,
    DEFAULT_DESCRIPTOR_PATH,
    RECOVERY_SCAN_LIMIT,
    SCAN_CHAINS,
)
from alphawallet.crypto import KeyPair
from alphawallet.errors import IntegrityCheckFailed, InvalidKey
from alphawallet.wallet.address import public_key_to_address
from alphawallet.wallet.bip32 import (
    derive_at_path,
    derive_child,
    derive_key_wif_hmac,
    wif_hmac_path,
)


@dataclass
class RecoveredKey:
    private_key: str
    public_key: str
    address: str
    path: str
    index: int
    is_change: bool = False


def _recovered(
    private_key: bytes, path: str, index: int, is_change: bool, prefix: str
) -> RecoveredKey:
    keypair = KeyPair.from_hex(private_key.hex())
    public_key = keypair.public_key_hex()
    return RecoveredKey(
        private_key=private_key.hex(),
        public_key=public_key,
        address=public_key_to_address(public_key, prefix),
        path=path,
        index=index,
        is_change=is_change,
    )


def recover_key_wif_hmac(
    master_key: str,
    address: str,
    limit: int = RECOVERY_SCAN_LIMIT,
    prefix: str = ADDRESS_PREFIX,
) -> RecoveredKey:
    """Find the wif_hmac index (0..limit-1) that produces ``address``."""
    master = bytes.fromhex(master_key)
    for index in range(limit):
        try:
            child = derive_key_wif_hmac(master, index)
        except InvalidKey:
            continue
        candidate = _recovered(child, wif_hmac_path(index), index, False, prefix)
        if candidate.address == address:
            return candidate

    raise IntegrityCheckFailed(
        f"Address {address} is not derivable from this master key (wif_hmac, {limit} indices)",
        address=address,
    )


def _split_full_path(path: str) -> tuple[int, bool]:
    parts = path.rstrip("/").split("/")
    index = int(parts[-1].rstrip("'h"))
    is_change = len(parts) >= 2 and parts[-2] == "1"
    return index, is_change


def recover_key_bip32_at_path(
    master_key: str,
    chain_code: str,
    path: str,
    address: str,
    prefix: str = ADDRESS_PREFIX,
) -> RecoveredKey:
    """Derive at ``path`` and require the result to be ``address``."""
    try:
        child, _ = derive_at_path(bytes.fromhex(master_key), bytes.fromhex(chain_code), path)
        index, is_change = _split_full_path(path)
    except ValueError as e:
        raise IntegrityCheckFailed(f"Unusable path {path!r} for {address}: {e}", address) from e

    candidate = _recovered(child, path, index, is_change, prefix)

    if candidate.address != address:
        raise IntegrityCheckFailed(
            f"Address {address} does not match key derived at {path} ({candidate.address})",
            address=address,
        )
    return candidate


def recover_key_bip32_scan(
    master_key: str,
    chain_code: str,
    address: str,
    base_paths: Iterable[str] = (DEFAULT_DESCRIPTOR_PATH,),
    limit: int = RECOVERY_SCAN_LIMIT,
    prefix: str = ADDRESS_PREFIX,
) -> RecoveredKey:
    """Search receive and change chains of each base path for ``address``."""
    try:
        master = bytes.fromhex(master_key)
        chain = bytes.fromhex(chain_code)
    except ValueError as e:
        raise IntegrityCheckFailed(f"Unusable key material for {address}: {e}", address) from e

    for base_path in base_paths:
        base = base_path[2:] if base_path.startswith("m/") else base_path
        try:
            account_key, account_chain = derive_at_path(master, chain, base)
        except ValueError as e:
            raise IntegrityCheckFailed(
                f"Unusable base path {base_path!r} for {address}: {e}", address
            ) from e

        for change in SCAN_CHAINS:
            chain_key, chain_cc = derive_child(account_key, account_chain, change)
            for index in range(limit):
                try:
                    child, _ = derive_child(chain_key, chain_cc, index)
                except InvalidKey:
                    continue
                path = f"m/{base}/{change}/{index}"
                candidate = _recovered(child, path, index, change == 1, prefix)
                if candidate.address == address:
                    logger.debug(f"Recovered {address} at {path}")
                    return candidate

    raise IntegrityCheckFailed(
        f"Address {address} is not derivable from this master key (bip32 scan)",
        address=address,
    )

"""
Caller-owned key manager.

Holds the active master key material and derives addresses from it in the
wallet's derivation mode. One instance per wallet; there is no module-level
state, so tests and multiple wallets can coexist in one process.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from loguru import logger

from alphawallet.constants import ADDRESS_PREFIX, DEFAULT_BASE_PATH
from alphawallet.crypto import KeyPair, is_valid_private_key
from alphawallet.errors import InvalidFormat, InvalidKey, WalletError
from alphawallet.wallet.address import public_key_to_address
from alphawallet.wallet.bip32 import (
    derive_at_path,
    derive_child_legacy,
    derive_key_wif_hmac,
    generate_mnemonic,
    legacy_path,
    master_key_from_seed,
    mnemonic_to_seed,
    validate_mnemonic,
    wif_hmac_path,
)
from alphawallet.wallet.models import DerivationMode, Wallet, WalletAddress, WalletSource

_HEX64 = re.compile(r"^[a-fA-F0-9]{64}$")
_MASTER_LABEL = re.compile(r"MASTER\s*PRIVATE\s*KEY", re.IGNORECASE)
_CHAIN_LABEL = re.compile(r"MASTER\s*CHAIN\s*CODE", re.IGNORECASE)
_MASTER_INLINE = re.compile(
    r"(?:Master\s*(?:Private\s*)?Key|masterPriv)[:\s]+([a-fA-F0-9]{64})", re.IGNORECASE
)
_CHAIN_INLINE = re.compile(r"(?:Chain\s*Code|chainCode)[:\s]+([a-fA-F0-9]{64})", re.IGNORECASE)
_FIVE_LEVEL = re.compile(r"^m/(\d+'/\d+'/\d+')/(\d+)/(\d+)$")
_THREE_LEVEL = re.compile(r"^m/(\d+)'/(\d+)'/(\d+)'$")


@dataclass
class DerivedAddress:
    private_key: str
    public_key: str
    address: str
    path: str
    index: int
    is_change: bool = False

    def to_wallet_address(self) -> WalletAddress:
        return WalletAddress(
            address=self.address,
            path=self.path,
            index=self.index,
            is_change=self.is_change,
            public_key=self.public_key,
            private_key=self.private_key,
        )


def parse_key_material(content: str) -> tuple[str, str | None]:
    """
    Leniently pull (master_key, chain_code) out of free-form backup text.

    Accepts "LABEL:" followed by the hex value on the next line as well as
    "Label: <hex>" on a single line.
    """
    master_key: str | None = None
    chain_code: str | None = None
    expect_master = False
    expect_chain = False

    for raw_line in content.splitlines():
        line = raw_line.strip()
        has_hex = re.search(r"[a-fA-F0-9]{64}", line) is not None

        if _MASTER_LABEL.search(line) and not has_hex:
            expect_master = True
            continue
        if _CHAIN_LABEL.search(line) and not has_hex:
            expect_chain = True
            continue

        if _HEX64.match(line):
            if expect_master:
                master_key = line.lower()
                expect_master = False
                continue
            if expect_chain:
                chain_code = line.lower()
                expect_chain = False
                continue

        master_match = _MASTER_INLINE.search(line)
        chain_match = _CHAIN_INLINE.search(line)
        if master_match:
            master_key = master_match.group(1).lower()
        if chain_match:
            chain_code = chain_match.group(1).lower()

        if not _HEX64.match(line):
            expect_master = False
            expect_chain = False

    if master_key is None:
        raise InvalidFormat("Could not find master private key in file")
    if not is_valid_private_key(master_key):
        raise InvalidKey("Invalid master private key")

    return master_key, chain_code


class KeyManager:
    """
    Active key material for one wallet.

    Construct it empty and call one of the ``init_*`` methods, or use
    ``KeyManager.from_wallet``. ``clear()`` drops all secrets.
    """

    def __init__(self, prefix: str = ADDRESS_PREFIX, base_path: str = DEFAULT_BASE_PATH):
        self.prefix = prefix
        self.base_path = base_path
        self.mnemonic: str | None = None
        self.master_key: str | None = None
        self.chain_code: str | None = None
        self.derivation_mode = DerivationMode.BIP32
        self.source: WalletSource | None = None

    @classmethod
    def from_wallet(cls, wallet: Wallet, prefix: str = ADDRESS_PREFIX) -> KeyManager:
        base_path = (
            f"m/{wallet.descriptor_path}" if wallet.descriptor_path else DEFAULT_BASE_PATH
        )
        manager = cls(prefix=prefix, base_path=base_path)
        manager.init_with_mode(
            wallet.master_private_key, wallet.chain_code, wallet.derivation_mode
        )
        manager.mnemonic = wallet.mnemonic
        manager.source = wallet.source
        return manager

    def init_from_mnemonic(self, mnemonic: str, passphrase: str = "") -> None:
        if not validate_mnemonic(mnemonic):
            raise InvalidFormat("Invalid mnemonic phrase")

        master_key, chain_code = master_key_from_seed(mnemonic_to_seed(mnemonic, passphrase))
        self.mnemonic = " ".join(mnemonic.split())
        self.master_key = master_key.hex()
        self.chain_code = chain_code.hex()
        self.derivation_mode = DerivationMode.BIP32
        self.source = WalletSource.MNEMONIC
        logger.info("Key manager initialised from mnemonic")

    def generate_new(self, word_count: int = 12) -> str:
        if word_count not in (12, 24):
            raise ValueError("word_count must be 12 or 24")
        mnemonic = generate_mnemonic(256 if word_count == 24 else 128)
        self.init_from_mnemonic(mnemonic)
        return mnemonic

    def init_from_text_content(self, content: str) -> None:
        master_key, chain_code = parse_key_material(content)
        self.mnemonic = None
        self.master_key = master_key
        self.chain_code = chain_code
        if chain_code:
            self.derivation_mode = DerivationMode.BIP32
            self.source = WalletSource.FILE_BIP32
        else:
            self.derivation_mode = DerivationMode.WIF_HMAC
            self.source = WalletSource.FILE_STANDARD
        logger.info(f"Key manager initialised from file ({self.derivation_mode.value})")

    def init_with_mode(
        self, master_key: str, chain_code: str | None, mode: DerivationMode | str
    ) -> None:
        if not is_valid_private_key(master_key):
            raise InvalidKey("Invalid master private key")
        mode = DerivationMode(mode)
        if mode != DerivationMode.WIF_HMAC and not chain_code:
            raise WalletError(f"{mode.value} mode requires chain code")

        self.mnemonic = None
        self.master_key = master_key.lower()
        self.chain_code = chain_code.lower() if chain_code else None
        self.derivation_mode = mode

    def set_derivation_mode(self, mode: DerivationMode | str) -> None:
        mode = DerivationMode(mode)
        if mode != DerivationMode.WIF_HMAC and not self.chain_code:
            raise WalletError(f"{mode.value} mode requires chain code")
        self.derivation_mode = mode

    def is_initialized(self) -> bool:
        if self.derivation_mode in (DerivationMode.BIP32, DerivationMode.LEGACY_HMAC):
            return self.master_key is not None and self.chain_code is not None
        return self.master_key is not None

    def _require_initialized(self) -> None:
        if not self.is_initialized():
            raise WalletError("Wallet not initialized")

    def _derived(self, key: bytes, path: str, index: int, is_change: bool) -> DerivedAddress:
        keypair = KeyPair.from_hex(key.hex())
        public_key = keypair.public_key_hex()
        return DerivedAddress(
            private_key=keypair.private_key_hex(),
            public_key=public_key,
            address=public_key_to_address(public_key, self.prefix),
            path=path,
            index=index,
            is_change=is_change,
        )

    def derive_address(self, index: int, is_change: bool = False) -> DerivedAddress:
        """Derive the address at ``index`` in the active derivation mode"""
        self._require_initialized()
        assert self.master_key is not None
        master = bytes.fromhex(self.master_key)

        if self.derivation_mode == DerivationMode.BIP32:
            assert self.chain_code is not None
            path = f"{self.base_path}/{1 if is_change else 0}/{index}"
            key, _ = derive_at_path(master, bytes.fromhex(self.chain_code), path)
            return self._derived(key, path, index, is_change)

        if self.derivation_mode == DerivationMode.LEGACY_HMAC:
            assert self.chain_code is not None
            key, _ = derive_child_legacy(master, bytes.fromhex(self.chain_code), index)
            return self._derived(key, legacy_path(index), index, False)

        key = derive_key_wif_hmac(master, index)
        return self._derived(key, wif_hmac_path(index), index, False)

    def derive_address_from_path(self, path: str) -> DerivedAddress:
        """
        Derive from an explicit path.

        Five-level paths (m/a'/b'/c'/chain/index) use BIP32; three-level
        hardened paths (m/44'/0'/i') resolve to the wif_hmac scheme when the
        wallet has no chain code.
        """
        self._require_initialized()
        assert self.master_key is not None
        master = bytes.fromhex(self.master_key)

        five = _FIVE_LEVEL.match(path)
        if five and self.chain_code:
            key, _ = derive_at_path(master, bytes.fromhex(self.chain_code), path)
            return self._derived(key, path, int(five.group(3)), five.group(2) == "1")

        three = _THREE_LEVEL.match(path)
        if three:
            index = int(three.group(3))
            if self.derivation_mode == DerivationMode.WIF_HMAC:
                return self._derived(derive_key_wif_hmac(master, index), path, index, False)
            assert self.chain_code is not None
            key, _ = derive_at_path(master, bytes.fromhex(self.chain_code), path)
            return self._derived(key, path, index, False)

        raise ValueError(f"Unsupported derivation path: {path}")

    def derive_key_at_path(self, path: str) -> tuple[str, str]:
        """(private_key, chain_code) hex at an arbitrary BIP32 path"""
        if not self.master_key or not self.chain_code:
            raise WalletError("Wallet not initialized")
        key, chain_code = derive_at_path(
            bytes.fromhex(self.master_key), bytes.fromhex(self.chain_code), path
        )
        return key.hex(), chain_code.hex()

    def to_wallet(self, address_count: int = 1) -> Wallet:
        """Build a Wallet holding the first ``address_count`` receive addresses"""
        self._require_initialized()
        assert self.master_key is not None

        descriptor_path = None
        if self.derivation_mode == DerivationMode.BIP32:
            descriptor_path = self.base_path.removeprefix("m/")

        wallet = Wallet(
            master_private_key=self.master_key,
            chain_code=self.chain_code,
            derivation_mode=self.derivation_mode,
            descriptor_path=descriptor_path,
            mnemonic=self.mnemonic,
            source=self.source,
        )
        for index in range(address_count):
            wallet.addresses.append(self.derive_address(index).to_wallet_address())
        if wallet.addresses:
            wallet.child_private_key = wallet.addresses[0].private_key
        return wallet

    def info(self) -> dict[str, object]:
        address0 = None
        if self.is_initialized():
            address0 = self.derive_address(0).address
        return {
            "source": self.source.value if self.source else None,
            "has_mnemonic": self.mnemonic is not None,
            "has_chain_code": self.chain_code is not None,
            "derivation_mode": self.derivation_mode.value,
            "address0": address0,
        }

    def clear(self) -> None:
        self.mnemonic = None
        self.master_key = None
        self.chain_code = None
        self.derivation_mode = DerivationMode.BIP32
        self.source = None
        logger.debug("Key manager cleared")

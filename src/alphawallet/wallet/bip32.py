"""
BIP32 HD key derivation for Alpha wallets.

Besides standard BIP32 this module carries the two non-standard schemes that
older wallets were created with:

- legacy_hmac: HMAC-SHA512(chain_code, master_key || index), left half is the key
- wif_hmac:    HMAC-SHA512 over the master key keyed by "m/44'/0'/{index}'"

Both are kept bit-exact so existing backups keep restoring to the same addresses.
"""

from __future__ import annotations

import hashlib
import hmac
import re

from coincurve import PrivateKey, PublicKey
from mnemonic import Mnemonic

from alphawallet.constants import ADDRESS_PREFIX, HARDENED_OFFSET
from alphawallet.crypto import (
    SECP256K1_N,
    add_scalars,
    base58check_encode,
    hash160,
    is_valid_private_key,
)
from alphawallet.errors import InvalidKey

XPUB_VERSION = bytes.fromhex("0488b21e")
XPRV_VERSION = bytes.fromhex("0488ade4")

_PATH_COMPONENT = re.compile(r"^(\d+)(['h]?)$")
_FULL_PATH = re.compile(r"^m/(\d+'/\d+'/\d+')/\d+/\d+$")


def master_key_from_seed(seed: bytes) -> tuple[bytes, bytes]:
    """Return (master_key, chain_code) for a BIP32 seed."""
    hmac_result = hmac.new(b"Bitcoin seed", seed, hashlib.sha512).digest()
    key_bytes = hmac_result[:32]
    chain_code = hmac_result[32:]

    key_int = int.from_bytes(key_bytes, "big")
    if key_int == 0 or key_int >= SECP256K1_N:
        raise InvalidKey("Seed produced an invalid master key")

    return key_bytes, chain_code


def derive_child(parent_key: bytes, parent_chain_code: bytes, index: int) -> tuple[bytes, bytes]:
    """Derive (child_key, child_chain_code) for a single index"""
    if not 0 <= index <= 0xFFFFFFFF:
        raise ValueError(f"Child index out of range: {index}")

    if index >= HARDENED_OFFSET:
        data = b"\x00" + parent_key + index.to_bytes(4, "big")
    else:
        pub_bytes = PrivateKey(parent_key).public_key.format(compressed=True)
        data = pub_bytes + index.to_bytes(4, "big")

    hmac_result = hmac.new(parent_chain_code, data, hashlib.sha512).digest()
    key_offset = hmac_result[:32]
    child_chain = hmac_result[32:]

    offset_int = int.from_bytes(key_offset, "big")
    if offset_int >= SECP256K1_N:
        raise InvalidKey(f"Derived offset out of range at index {index}")

    child_key = add_scalars(parent_key, key_offset)
    if not any(child_key):
        raise InvalidKey(f"Derived zero key at index {index}")

    return child_key, child_chain


def parse_path(path: str) -> list[int]:
    """
    Parse "m/84'/1'/0'/0/5" (or the same without "m/") into child indices.
    Both ' and h mark a hardened component.
    """
    path = path.strip()
    if path in ("m", ""):
        return []
    if path.startswith("m/"):
        path = path[2:]

    indices = []
    for part in path.split("/"):
        match = _PATH_COMPONENT.match(part)
        if not match:
            raise ValueError(f"Invalid path component: {part!r}")
        index = int(match.group(1))
        if index >= HARDENED_OFFSET:
            raise ValueError(f"Path component too large: {part!r}")
        if match.group(2):
            index += HARDENED_OFFSET
        indices.append(index)

    return indices


def derive_at_path(master_key: bytes, master_chain_code: bytes, path: str) -> tuple[bytes, bytes]:
    key, chain_code = master_key, master_chain_code
    for index in parse_path(path):
        key, chain_code = derive_child(key, chain_code, index)
    return key, chain_code


def derive_child_legacy(master_key: bytes, chain_code: bytes, index: int) -> tuple[bytes, bytes]:
    """legacy_hmac scheme: every child is derived directly from the master key."""
    data = master_key + index.to_bytes(4, "big")
    hmac_result = hmac.new(chain_code, data, hashlib.sha512).digest()

    child_key = hmac_result[:32]
    if not is_valid_private_key(child_key):
        raise InvalidKey(f"Legacy derivation produced an invalid key at index {index}")

    return child_key, hmac_result[32:]


def legacy_path(index: int) -> str:
    return f"m/44'/0'/0'/{index}"


def wif_hmac_path(index: int) -> str:
    return f"m/44'/0'/{index}'"


def derive_key_wif_hmac(master_key: bytes, index: int) -> bytes:
    """
    wif_hmac scheme. The path string is the HMAC key and the raw master key
    the message; the left 32 bytes are used as the child key without any
    curve addition.
    """
    hmac_result = hmac.new(
        wif_hmac_path(index).encode("utf-8"), master_key, hashlib.sha512
    ).digest()

    child_key = hmac_result[:32]
    if not is_valid_private_key(child_key):
        raise InvalidKey(f"wif_hmac derivation produced an invalid key at index {index}")

    return child_key


def extract_base_path(full_path: str) -> str | None:
    """'m/84'/1'/0'/0/5' -> "84'/1'/0'" (None when the path is not 5 levels)."""
    match = _FULL_PATH.match(full_path.replace("h", "'"))
    return match.group(1) if match else None


class HDKey:
    """
    Hierarchical Deterministic Key.
    Implements BIP32 private derivation and xpub serialization.
    """

    def __init__(
        self,
        private_key: PrivateKey,
        chain_code: bytes,
        depth: int = 0,
        parent_fingerprint: bytes = b"\x00\x00\x00\x00",
        child_index: int = 0,
    ):
        self._private_key = private_key
        self._public_key = private_key.public_key
        self.chain_code = chain_code
        self.depth = depth
        self.parent_fingerprint = parent_fingerprint
        self.child_index = child_index

    @property
    def private_key(self) -> PrivateKey:
        return self._private_key

    @property
    def public_key(self) -> PublicKey:
        return self._public_key

    @classmethod
    def from_seed(cls, seed: bytes) -> HDKey:
        """Create master HD key from seed"""
        key_bytes, chain_code = master_key_from_seed(seed)
        return cls(PrivateKey(key_bytes), chain_code)

    @classmethod
    def from_master(cls, master_key: bytes | str, chain_code: bytes | str) -> HDKey:
        if isinstance(master_key, str):
            master_key = bytes.fromhex(master_key)
        if isinstance(chain_code, str):
            chain_code = bytes.fromhex(chain_code)
        if not is_valid_private_key(master_key):
            raise InvalidKey("Master key out of range")
        if len(chain_code) != 32:
            raise InvalidKey(f"Invalid chain code length: {len(chain_code)}")
        return cls(PrivateKey(master_key), chain_code)

    def derive(self, path: str) -> HDKey:
        """Derive a descendant key from path notation (e.g. "m/84'/1'/0'/0/0")"""
        key = self
        for index in parse_path(path):
            key = key._derive_child(index)
        return key

    def _derive_child(self, index: int) -> HDKey:
        child_key, child_chain = derive_child(self.get_private_key_bytes(), self.chain_code, index)
        return HDKey(
            PrivateKey(child_key),
            child_chain,
            depth=self.depth + 1,
            parent_fingerprint=self.fingerprint(),
            child_index=index,
        )

    def fingerprint(self) -> bytes:
        return hash160(self.get_public_key_bytes())[:4]

    def get_private_key_bytes(self) -> bytes:
        return self._private_key.secret

    def get_public_key_bytes(self, compressed: bool = True) -> bytes:
        return self._public_key.format(compressed=compressed)

    def get_address(self, prefix: str = ADDRESS_PREFIX) -> str:
        """Get P2WPKH (native SegWit v0) address for this key"""
        from alphawallet.wallet.address import public_key_to_address

        return public_key_to_address(self.get_public_key_bytes().hex(), prefix)

    def _serialize(self, version: bytes, key_data: bytes) -> str:
        payload = (
            version
            + bytes([self.depth])
            + self.parent_fingerprint
            + self.child_index.to_bytes(4, "big")
            + self.chain_code
            + key_data
        )
        return base58check_encode(payload)

    def to_xpub(self) -> str:
        return self._serialize(XPUB_VERSION, self.get_public_key_bytes())

    def to_xprv(self) -> str:
        return self._serialize(XPRV_VERSION, b"\x00" + self.get_private_key_bytes())


def generate_mnemonic(strength: int = 128) -> str:
    """New English BIP39 mnemonic (128 bits = 12 words, 256 bits = 24 words)."""
    return Mnemonic("english").generate(strength=strength)


def validate_mnemonic(mnemonic: str) -> bool:
    return Mnemonic("english").check(" ".join(mnemonic.split()))


def mnemonic_to_seed(mnemonic: str, passphrase: str = "") -> bytes:
    return Mnemonic.to_seed(" ".join(mnemonic.split()), passphrase=passphrase)

"""
Curve and encoding primitives for the Alpha wallet.
"""

from __future__ import annotations

import hashlib

import base58
from coincurve import PrivateKey, PublicKey

from alphawallet.errors import InvalidFormat, InvalidKey

BASE58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"

# secp256k1 curve order
SECP256K1_N = int("FFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141", 16)
SECP256K1_HALF_N = SECP256K1_N // 2

WIF_VERSION = 0x80


def sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def hash256(data: bytes) -> bytes:
    """SHA256(SHA256(data))"""
    return hashlib.sha256(hashlib.sha256(data).digest()).digest()


def hash160(data: bytes) -> bytes:
    """RIPEMD160(SHA256(data))"""
    h = hashlib.new("ripemd160")
    h.update(hashlib.sha256(data).digest())
    return h.digest()


def _key_to_int(key: bytes | str) -> int:
    if isinstance(key, str):
        try:
            key = bytes.fromhex(key)
        except ValueError as e:
            raise InvalidKey(f"Private key is not valid hex: {e}") from e
    if len(key) != 32:
        raise InvalidKey(f"Invalid private key length: {len(key)}")
    return int.from_bytes(key, "big")


def is_valid_private_key(key: bytes | str) -> bool:
    """True when 0 < key < n."""
    try:
        value = _key_to_int(key)
    except InvalidKey:
        return False
    return 0 < value < SECP256K1_N


def add_scalars(a: bytes, b: bytes) -> bytes:
    """(a + b) mod n as 32 big-endian bytes."""
    total = (int.from_bytes(a, "big") + int.from_bytes(b, "big")) % SECP256K1_N
    return total.to_bytes(32, "big")


def private_key_from_bytes(key: bytes | str) -> PrivateKey:
    if not is_valid_private_key(key):
        raise InvalidKey("Private key out of range")
    if isinstance(key, str):
        key = bytes.fromhex(key)
    return PrivateKey(key)


def public_key_from_private(key: bytes | str) -> bytes:
    """Compressed (33 byte) public key for a private key."""
    return private_key_from_bytes(key).public_key.format(compressed=True)


class KeyPair:
    """Thin wrapper around a coincurve key with hex accessors."""

    def __init__(self, private_key: PrivateKey | None = None):
        if private_key is None:
            private_key = PrivateKey()
        self._private_key = private_key
        self._public_key = private_key.public_key

    @classmethod
    def from_hex(cls, private_key_hex: str) -> KeyPair:
        return cls(private_key_from_bytes(private_key_hex))

    @property
    def private_key(self) -> PrivateKey:
        return self._private_key

    @property
    def public_key(self) -> PublicKey:
        return self._public_key

    def private_key_hex(self) -> str:
        return self._private_key.secret.hex()

    def public_key_bytes(self) -> bytes:
        return self._public_key.format(compressed=True)

    def public_key_hex(self) -> str:
        return self.public_key_bytes().hex()


def base58_encode(data: bytes) -> str:
    num = int.from_bytes(data, "big")

    result = ""
    while num > 0:
        num, remainder = divmod(num, 58)
        result = BASE58_ALPHABET[remainder] + result

    for byte in data:
        if byte == 0:
            result = BASE58_ALPHABET[0] + result
        else:
            break

    return result


def base58_decode(text: str) -> bytes:
    try:
        return base58.b58decode(text)
    except ValueError as e:
        raise InvalidFormat(f"Invalid base58 string: {e}") from e


def base58check_encode(payload: bytes) -> str:
    return base58_encode(payload + hash256(payload)[:4])


def base58check_decode(text: str) -> bytes:
    try:
        return base58.b58decode_check(text)
    except ValueError as e:
        raise InvalidFormat(f"Base58check decode failed: {e}") from e


def private_key_to_wif(private_key_hex: str) -> str:
    """Uncompressed-flag WIF, as accepted by the node's importprivkey."""
    if not is_valid_private_key(private_key_hex):
        raise InvalidKey("Private key out of range")
    return base58check_encode(bytes([WIF_VERSION]) + bytes.fromhex(private_key_hex))


def wif_to_private_key(wif: str) -> str:
    payload = base58check_decode(wif)
    if payload[0] != WIF_VERSION or len(payload) not in (33, 34):
        raise InvalidKey("Not a mainnet WIF private key")
    return payload[1:33].hex()


def der_decode_signature(signature: bytes) -> tuple[int, int]:
    """Split a DER ECDSA signature into (r, s)."""
    if len(signature) < 8 or signature[0] != 0x30 or signature[1] != len(signature) - 2:
        raise InvalidFormat("Malformed DER signature")

    offset = 2
    values = []
    for _ in range(2):
        if signature[offset] != 0x02:
            raise InvalidFormat("Malformed DER integer")
        length = signature[offset + 1]
        offset += 2
        values.append(int.from_bytes(signature[offset : offset + length], "big"))
        offset += length

    if offset != len(signature):
        raise InvalidFormat("Trailing bytes in DER signature")
    return values[0], values[1]


def _der_integer(value: int) -> bytes:
    body = value.to_bytes(max(1, (value.bit_length() + 7) // 8), "big")
    # Keep the integer positive
    if body[0] & 0x80:
        body = b"\x00" + body
    return b"\x02" + bytes([len(body)]) + body


def der_encode_signature(r: int, s: int) -> bytes:
    body = _der_integer(r) + _der_integer(s)
    return b"\x30" + bytes([len(body)]) + body


def normalize_low_s(signature: bytes) -> bytes:
    """Return the DER signature with s replaced by n - s when s > n/2."""
    r, s = der_decode_signature(signature)
    if s > SECP256K1_HALF_N:
        s = SECP256K1_N - s
    return der_encode_signature(r, s)


def is_low_s(signature: bytes) -> bool:
    _, s = der_decode_signature(signature)
    return s <= SECP256K1_HALF_N


def verify_raw_ecdsa(message_hash: bytes, signature_der: bytes, pubkey_bytes: bytes) -> bool:
    """Verify a DER signature over an already hashed message."""
    try:
        pubkey = PublicKey(pubkey_bytes)
        return pubkey.verify(signature_der, message_hash, hasher=None)
    except Exception:
        return False

"""
Alpha address generation utilities.

Addresses are BIP173 bech32 (not bech32m) with the "alpha" human readable
part. Only witness version 0 / 20-byte programs (P2WPKH) are produced.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass

import bech32

from alphawallet.constants import ADDRESS_PREFIX
from alphawallet.crypto import hash160
from alphawallet.errors import InvalidAddress

CHARSET = "qpzry9x8gf2tvdw0s3jn54khce6mua7l"
_GENERATOR = [0x3B6A57B2, 0x26508E6D, 0x1EA119FA, 0x3D4233DD, 0x2A1462B3]


@dataclass(frozen=True)
class DecodedAddress:
    hrp: str
    witness_version: int
    program: bytes


def bech32_polymod(values: list[int]) -> int:
    chk = 1
    for v in values:
        b = chk >> 25
        chk = (chk & 0x1FFFFFF) << 5 ^ v
        for i in range(5):
            chk ^= _GENERATOR[i] if ((b >> i) & 1) else 0
    return chk


def bech32_hrp_expand(hrp: str) -> list[int]:
    return [ord(x) >> 5 for x in hrp] + [0] + [ord(x) & 31 for x in hrp]


def bech32_create_checksum(hrp: str, data: list[int]) -> list[int]:
    values = bech32_hrp_expand(hrp) + data
    polymod = bech32_polymod(values + [0, 0, 0, 0, 0, 0]) ^ 1
    return [(polymod >> 5 * (5 - i)) & 31 for i in range(6)]


def convertbits(data: bytes | list[int], frombits: int, tobits: int, pad: bool = True) -> list[int]:
    """Regroup a sequence of frombits-wide values into tobits-wide values"""
    acc = 0
    bits = 0
    ret = []
    maxv = (1 << tobits) - 1
    max_acc = (1 << (frombits + tobits - 1)) - 1

    for value in data:
        if value < 0 or value >> frombits:
            raise ValueError("Invalid value for bit conversion")
        acc = ((acc << frombits) | value) & max_acc
        bits += frombits
        while bits >= tobits:
            bits -= tobits
            ret.append((acc >> bits) & maxv)

    if pad:
        if bits:
            ret.append((acc << (tobits - bits)) & maxv)
    elif bits >= frombits or ((acc << (tobits - bits)) & maxv):
        raise ValueError("Invalid bits")

    return ret


def create_bech32(hrp: str, witness_version: int, program: bytes) -> str:
    data = [witness_version] + convertbits(program, 8, 5)
    combined = data + bech32_create_checksum(hrp, data)
    return hrp + "1" + "".join(CHARSET[d] for d in combined)


def decode_bech32(address: str) -> DecodedAddress:
    """Decode and checksum-verify a bech32 segwit address of any HRP."""
    hrp, data = bech32.bech32_decode(address)
    if hrp is None or data is None:
        raise InvalidAddress(f"Invalid bech32 address: {address}")

    witness_version, program = bech32.decode(hrp, address)
    if witness_version is None or program is None:
        raise InvalidAddress(f"Invalid witness program in address: {address}")

    return DecodedAddress(hrp=hrp, witness_version=witness_version, program=bytes(program))


def is_valid_address(address: str, prefix: str = ADDRESS_PREFIX) -> bool:
    try:
        decoded = decode_bech32(address)
    except InvalidAddress:
        return False
    return decoded.hrp == prefix and decoded.witness_version == 0 and len(decoded.program) == 20


def public_key_to_address(pubkey_hex: str, prefix: str = ADDRESS_PREFIX) -> str:
    """Convert a compressed public key to a P2WPKH address."""
    pubkey_bytes = bytes.fromhex(pubkey_hex)

    if len(pubkey_bytes) != 33:
        raise ValueError(f"Invalid compressed pubkey length: {len(pubkey_bytes)}")

    return create_bech32(prefix, 0, hash160(pubkey_bytes))


def address_to_script_pubkey(address: str) -> bytes:
    """P2WPKH scriptPubKey (OP_0 <20-byte-hash>) for an address"""
    decoded = decode_bech32(address)
    if decoded.witness_version != 0 or len(decoded.program) != 20:
        raise InvalidAddress(
            f"Unsupported witness program: v{decoded.witness_version}, "
            f"{len(decoded.program)} bytes"
        )
    return bytes([0x00, 0x14]) + decoded.program


def address_to_scripthash(address: str) -> str:
    """Electrum-style scripthash: reversed SHA256 of the scriptPubKey, hex."""
    script = address_to_script_pubkey(address)
    return hashlib.sha256(script).digest()[::-1].hex()

"""
Tests for the bech32 address codec and scripthash.
"""

import hashlib

import pytest

from alphawallet.errors import InvalidAddress
from alphawallet.wallet.address import (
    address_to_script_pubkey,
    address_to_scripthash,
    create_bech32,
    decode_bech32,
    is_valid_address,
    public_key_to_address,
)

GENERATOR_PUBKEY = "0279be667ef9dcbbac55a06295ce870b07029bfcdb2dce28d959f2815b16f81798"
GENERATOR_PROGRAM = bytes.fromhex("751e76e8199196d454941c45d1b3a323f1433bd6")


class TestBech32:
    def test_bip173_vector(self):
        decoded = decode_bech32("BC1QW508D6QEJXTDG4Y5R3ZARVARY0C5XW7KV8F3T4")
        assert decoded.hrp == "bc"
        assert decoded.witness_version == 0
        assert decoded.program == GENERATOR_PROGRAM

    def test_encode_matches_vector(self):
        assert create_bech32("bc", 0, GENERATOR_PROGRAM) == (
            "bc1qw508d6qejxtdg4y5r3zarvary0c5xw7kv8f3t4"
        )

    def test_alpha_round_trip(self):
        address = public_key_to_address(GENERATOR_PUBKEY)
        assert address.startswith("alpha1q")
        decoded = decode_bech32(address)
        assert decoded.hrp == "alpha"
        assert decoded.program == GENERATOR_PROGRAM

    def test_custom_prefix(self):
        address = public_key_to_address(GENERATOR_PUBKEY, "tb")
        assert address.startswith("tb1q")
        assert not is_valid_address(address)
        assert is_valid_address(address, prefix="tb")

    def test_tampered_checksum(self):
        address = public_key_to_address(GENERATOR_PUBKEY)
        last = "q" if address[-1] != "q" else "p"
        with pytest.raises(InvalidAddress):
            decode_bech32(address[:-1] + last)
        assert not is_valid_address(address[:-1] + last)

    def test_mixed_case_rejected(self):
        address = public_key_to_address(GENERATOR_PUBKEY)
        with pytest.raises(InvalidAddress):
            decode_bech32(address[:6] + address[6:].upper())

    def test_invalid_character(self):
        with pytest.raises(InvalidAddress):
            decode_bech32("alpha1qb0000000")

    def test_missing_separator(self):
        with pytest.raises(InvalidAddress):
            decode_bech32("alphaqqqqqqqqqq")

    def test_invalid_v0_program_length(self):
        address = create_bech32("alpha", 0, b"\x01" * 25)
        with pytest.raises(InvalidAddress):
            decode_bech32(address)

    def test_uppercase_decodes_to_lowercase_hrp(self):
        address = public_key_to_address(GENERATOR_PUBKEY)
        assert decode_bech32(address.upper()).hrp == "alpha"

    def test_uncompressed_pubkey_rejected(self):
        with pytest.raises(ValueError):
            public_key_to_address("04" + "11" * 64)


class TestScripts:
    def test_script_pubkey(self):
        address = public_key_to_address(GENERATOR_PUBKEY)
        assert address_to_script_pubkey(address) == b"\x00\x14" + GENERATOR_PROGRAM

    def test_scripthash_is_reversed_sha256(self):
        address = public_key_to_address(GENERATOR_PUBKEY)
        script = b"\x00\x14" + GENERATOR_PROGRAM
        assert address_to_scripthash(address) == hashlib.sha256(script).digest()[::-1].hex()

    def test_non_p2wpkh_program_rejected(self):
        address = create_bech32("alpha", 0, b"\x01" * 32)
        with pytest.raises(InvalidAddress):
            address_to_script_pubkey(address)

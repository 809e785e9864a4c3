"""
Tests for curve and encoding primitives.
"""

import pytest
from coincurve import PrivateKey

from alphawallet.crypto import (
    SECP256K1_HALF_N,
    SECP256K1_N,
    KeyPair,
    add_scalars,
    base58_decode,
    base58_encode,
    base58check_decode,
    base58check_encode,
    der_decode_signature,
    der_encode_signature,
    hash160,
    hash256,
    is_low_s,
    is_valid_private_key,
    normalize_low_s,
    private_key_from_bytes,
    private_key_to_wif,
    public_key_from_private,
    verify_raw_ecdsa,
    wif_to_private_key,
)
from alphawallet.errors import InvalidFormat, InvalidKey

KEY_ONE = "00" * 31 + "01"
GENERATOR_PUBKEY = "0279be667ef9dcbbac55a06295ce870b07029bfcdb2dce28d959f2815b16f81798"


class TestHashes:
    def test_hash256_empty(self):
        expected = bytes.fromhex("5df6e0e2761359d30a8275058e299fcc0381534545f55cf43e41983f5d4c9456")
        assert hash256(b"") == expected

    def test_hash160_of_generator(self):
        pubkey = bytes.fromhex(GENERATOR_PUBKEY)
        assert hash160(pubkey).hex() == "751e76e8199196d454941c45d1b3a323f1433bd6"


class TestPrivateKeyValidation:
    def test_zero_is_invalid(self):
        assert not is_valid_private_key("00" * 32)

    def test_curve_order_is_invalid(self):
        assert not is_valid_private_key(SECP256K1_N.to_bytes(32, "big"))

    def test_order_minus_one_is_valid(self):
        assert is_valid_private_key((SECP256K1_N - 1).to_bytes(32, "big"))

    def test_wrong_length_is_invalid(self):
        assert not is_valid_private_key("01" * 31)

    def test_non_hex_is_invalid(self):
        assert not is_valid_private_key("zz" * 32)

    def test_private_key_from_bytes_rejects_zero(self):
        with pytest.raises(InvalidKey):
            private_key_from_bytes(b"\x00" * 32)

    def test_add_scalars_wraps_at_order(self):
        n_minus_one = (SECP256K1_N - 1).to_bytes(32, "big")
        assert add_scalars(n_minus_one, bytes.fromhex(KEY_ONE)) == b"\x00" * 32
        assert add_scalars(bytes.fromhex(KEY_ONE), bytes.fromhex(KEY_ONE))[-1] == 2

    def test_public_key_of_one_is_generator(self):
        assert public_key_from_private(KEY_ONE).hex() == GENERATOR_PUBKEY


class TestKeyPair:
    def test_from_hex_round_trip(self):
        keypair = KeyPair.from_hex(KEY_ONE)
        assert keypair.private_key_hex() == KEY_ONE
        assert keypair.public_key_hex() == GENERATOR_PUBKEY

    def test_random_key_is_compressed(self):
        keypair = KeyPair()
        assert len(keypair.public_key_bytes()) == 33


class TestBase58:
    def test_leading_zeros_preserved(self):
        assert base58_encode(b"\x00\x00\x01") == "112"
        assert base58_decode("112") == b"\x00\x00\x01"

    def test_invalid_character(self):
        with pytest.raises(InvalidFormat):
            base58_decode("0OIl")

    def test_check_round_trip(self):
        payload = bytes(range(20))
        assert base58check_decode(base58check_encode(payload)) == payload

    def test_check_too_short(self):
        with pytest.raises(InvalidFormat):
            base58check_decode("11")

    def test_check_detects_corruption(self):
        encoded = base58check_encode(b"alpha wallet")
        corrupted = encoded[:-1] + ("2" if encoded[-1] != "2" else "3")
        with pytest.raises(InvalidFormat):
            base58check_decode(corrupted)


class TestWIF:
    def test_known_uncompressed_wif(self):
        assert private_key_to_wif(KEY_ONE) == "5HpHagT65TZzG1PH3CSu63k8DbpvD8s5ip4nEB3kEsreAnchuDf"

    def test_wif_round_trip(self):
        key = "e8f32e723decf4051aefac8e2c93c9c5b214313817cdb01a1494b917c8436b35"
        assert wif_to_private_key(private_key_to_wif(key)) == key

    def test_wif_rejects_invalid_key(self):
        with pytest.raises(InvalidKey):
            private_key_to_wif("00" * 32)


class TestSignatures:
    def test_der_round_trip(self):
        r, s = 0x80 << 248, 12345
        assert der_decode_signature(der_encode_signature(r, s)) == (r, s)

    def test_high_s_is_normalized(self):
        high = der_encode_signature(1, SECP256K1_N - 1)
        assert not is_low_s(high)
        low = normalize_low_s(high)
        assert der_decode_signature(low) == (1, 1)
        assert is_low_s(low)

    def test_low_s_unchanged(self):
        sig = der_encode_signature(7, SECP256K1_HALF_N)
        assert normalize_low_s(sig) == sig

    def test_malformed_der(self):
        with pytest.raises(InvalidFormat):
            der_decode_signature(b"\x31\x00")

    def test_verify_raw_ecdsa(self):
        key = PrivateKey()
        digest = hash256(b"message")
        sig = key.sign(digest, hasher=None)
        pubkey = key.public_key.format(compressed=True)
        assert verify_raw_ecdsa(digest, sig, pubkey)
        assert not verify_raw_ecdsa(hash256(b"other"), sig, pubkey)

"""
Tests for transaction signing utilities.
"""

import pytest
from coincurve import PrivateKey

from alphawallet.crypto import hash160, is_low_s, verify_raw_ecdsa
from alphawallet.wallet.signing import (
    RawTransaction,
    RawTxInput,
    RawTxOutput,
    TransactionSigningError,
    compute_sighash_bip143,
    create_p2wpkh_script_code,
    decode_transaction,
    encode_varint,
    read_varint,
    serialize_witness,
    sign_p2wpkh_input,
)


def _transaction() -> RawTransaction:
    return RawTransaction(
        version=(2).to_bytes(4, "little"),
        marker_flag=True,
        inputs=[RawTxInput(b"\x11" * 32, 1, b"", b"\xfe\xff\xff\xff")],
        outputs=[RawTxOutput(50_000, b"\x00\x14" + b"\x22" * 20)],
        locktime=b"\x00\x00\x00\x00",
    )


class TestVarint:
    def test_read_single_byte(self):
        assert read_varint(bytes([0x05, 0xFF]), 0) == (5, 1)

    def test_read_two_bytes(self):
        assert read_varint(bytes([0xFD, 0x01, 0x00]), 0) == (1, 3)

    def test_read_four_bytes(self):
        assert read_varint(bytes([0xFE, 0x01, 0x00, 0x00, 0x00]), 0) == (1, 5)

    def test_encode_boundaries(self):
        assert encode_varint(0xFC) == b"\xfc"
        assert encode_varint(0xFD) == b"\xfd\xfd\x00"
        assert encode_varint(0x10000) == b"\xfe\x00\x00\x01\x00"
        assert encode_varint(2**32) == b"\xff" + (2**32).to_bytes(8, "little")


class TestScriptCode:
    def test_p2wpkh_script_code(self):
        pubkey = PrivateKey().public_key.format(compressed=True)
        script = create_p2wpkh_script_code(pubkey)
        assert script == b"\x76\xa9\x14" + hash160(pubkey) + b"\x88\xac"
        assert len(script) == 25

    def test_serialize_witness(self):
        assert serialize_witness([b"\x01\x02", b"\x03"]) == b"\x02\x02\x01\x02\x01\x03"


class TestSighash:
    def test_depends_on_value(self):
        tx = _transaction()
        script_code = create_p2wpkh_script_code(b"\x02" + b"\x33" * 32)
        first = compute_sighash_bip143(tx, 0, script_code, 100_000)
        second = compute_sighash_bip143(tx, 0, script_code, 100_001)
        assert len(first) == 32
        assert first != second

    def test_index_out_of_range(self):
        with pytest.raises(TransactionSigningError):
            compute_sighash_bip143(_transaction(), 3, b"", 0)


class TestSignInput:
    def test_signature_is_low_s_and_verifies(self):
        key = PrivateKey()
        pubkey = key.public_key.format(compressed=True)
        tx = _transaction()
        script_code = create_p2wpkh_script_code(pubkey)

        for _ in range(5):
            signature = sign_p2wpkh_input(tx, 0, script_code, 60_000, key)
            assert signature[-1] == 0x01
            der = signature[:-1]
            assert is_low_s(der)
            sighash = compute_sighash_bip143(tx, 0, script_code, 60_000)
            assert verify_raw_ecdsa(sighash, der, pubkey)


class TestDecode:
    def test_decode_truncated(self):
        with pytest.raises(TransactionSigningError):
            decode_transaction(bytes.fromhex("02000000000101"))

    def test_decode_trailing_bytes(self):
        raw = (
            (2).to_bytes(4, "little")
            + b"\x01"
            + b"\x11" * 32
            + (0).to_bytes(4, "little")
            + b"\x00"
            + b"\xff\xff\xff\xff"
            + b"\x01"
            + (1000).to_bytes(8, "little")
            + b"\x00"
            + b"\x00\x00\x00\x00"
        )
        tx = decode_transaction(raw)
        assert not tx.marker_flag
        assert tx.outputs[0].value == 1000
        with pytest.raises(TransactionSigningError):
            decode_transaction(raw + b"\x00")

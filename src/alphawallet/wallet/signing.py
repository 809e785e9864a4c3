"""
Transaction signing utilities for P2WPKH inputs.
"""

from __future__ import annotations

from dataclasses import dataclass

from coincurve import PrivateKey

from alphawallet.constants import SIGHASH_ALL
from alphawallet.crypto import hash160, hash256, normalize_low_s
from alphawallet.errors import WalletError


class TransactionSigningError(WalletError):
    pass


@dataclass
class RawTxInput:
    txid_le: bytes
    vout: int
    script: bytes
    sequence: bytes
    witness: list[bytes] | None = None


@dataclass
class RawTxOutput:
    value: int
    script: bytes


@dataclass
class RawTransaction:
    version: bytes
    marker_flag: bool
    inputs: list[RawTxInput]
    outputs: list[RawTxOutput]
    locktime: bytes
    raw: bytes = b""


def read_varint(data: bytes, offset: int) -> tuple[int, int]:
    first = data[offset]
    offset += 1

    if first < 0xFD:
        return first, offset
    if first == 0xFD:
        value = int.from_bytes(data[offset : offset + 2], "little")
        return value, offset + 2
    if first == 0xFE:
        value = int.from_bytes(data[offset : offset + 4], "little")
        return value, offset + 4
    value = int.from_bytes(data[offset : offset + 8], "little")
    return value, offset + 8


def encode_varint(value: int) -> bytes:
    if value < 0xFD:
        return bytes([value])
    if value <= 0xFFFF:
        return b"\xfd" + value.to_bytes(2, "little")
    if value <= 0xFFFFFFFF:
        return b"\xfe" + value.to_bytes(4, "little")
    return b"\xff" + value.to_bytes(8, "little")


def decode_transaction(tx_bytes: bytes) -> RawTransaction:
    """Parse a serialized (segwit or legacy) transaction"""
    try:
        offset = 0
        version = tx_bytes[offset : offset + 4]
        offset += 4

        marker_flag = False
        if tx_bytes[offset] == 0x00 and tx_bytes[offset + 1] == 0x01:
            marker_flag = True
            offset += 2

        input_count, offset = read_varint(tx_bytes, offset)
        inputs: list[RawTxInput] = []

        for _ in range(input_count):
            txid_le = tx_bytes[offset : offset + 32]
            offset += 32

            vout = int.from_bytes(tx_bytes[offset : offset + 4], "little")
            offset += 4

            script_len, offset = read_varint(tx_bytes, offset)
            script = tx_bytes[offset : offset + script_len]
            offset += script_len

            sequence = tx_bytes[offset : offset + 4]
            offset += 4

            inputs.append(RawTxInput(txid_le, vout, script, sequence))

        output_count, offset = read_varint(tx_bytes, offset)
        outputs: list[RawTxOutput] = []

        for _ in range(output_count):
            value = int.from_bytes(tx_bytes[offset : offset + 8], "little")
            offset += 8

            script_len, offset = read_varint(tx_bytes, offset)
            script = tx_bytes[offset : offset + script_len]
            offset += script_len

            outputs.append(RawTxOutput(value, script))

        if marker_flag:
            for inp in inputs:
                stack_count, offset = read_varint(tx_bytes, offset)
                inp.witness = []
                for _ in range(stack_count):
                    item_len, offset = read_varint(tx_bytes, offset)
                    inp.witness.append(tx_bytes[offset : offset + item_len])
                    offset += item_len

        locktime = tx_bytes[offset : offset + 4]
        if len(locktime) != 4 or offset + 4 != len(tx_bytes):
            raise ValueError("Unexpected end of transaction data")

        return RawTransaction(version, marker_flag, inputs, outputs, locktime, tx_bytes)

    except Exception as e:
        raise TransactionSigningError(f"Failed to parse transaction: {e}") from e


def serialize_outputs(outputs: list[RawTxOutput]) -> bytes:
    return b"".join(
        out.value.to_bytes(8, "little") + encode_varint(len(out.script)) + out.script
        for out in outputs
    )


def compute_sighash_bip143(
    tx: RawTransaction,
    input_index: int,
    script_code: bytes,
    value: int,
    sighash_type: int = SIGHASH_ALL,
) -> bytes:
    """BIP143 signature hash for a segwit v0 input."""
    try:
        if input_index >= len(tx.inputs):
            raise TransactionSigningError("Input index out of range")

        hash_prevouts = hash256(
            b"".join(inp.txid_le + inp.vout.to_bytes(4, "little") for inp in tx.inputs)
        )
        hash_sequence = hash256(b"".join(inp.sequence for inp in tx.inputs))
        hash_outputs = hash256(serialize_outputs(tx.outputs))

        target_input = tx.inputs[input_index]

        preimage = (
            tx.version
            + hash_prevouts
            + hash_sequence
            + target_input.txid_le
            + target_input.vout.to_bytes(4, "little")
            + encode_varint(len(script_code))
            + script_code
            + value.to_bytes(8, "little")
            + target_input.sequence
            + hash_outputs
            + tx.locktime
            + sighash_type.to_bytes(4, "little")
        )

        return hash256(preimage)

    except TransactionSigningError:
        raise
    except Exception as e:
        raise TransactionSigningError(f"Failed to compute sighash: {e}") from e


def sign_p2wpkh_input(
    tx: RawTransaction,
    input_index: int,
    script_code: bytes,
    value: int,
    private_key: PrivateKey,
    sighash_type: int = SIGHASH_ALL,
) -> bytes:
    """Sign a P2WPKH input using coincurve.

    Args:
        tx: The transaction to sign
        input_index: Index of the input to sign
        script_code: The scriptCode for signing (P2PKH script for P2WPKH)
        value: The value of the input being spent (in satoshis)
        private_key: coincurve PrivateKey instance
        sighash_type: Sighash type (default SIGHASH_ALL = 1)

    Returns:
        Low-S DER signature with the sighash type byte appended
    """
    sighash = compute_sighash_bip143(tx, input_index, script_code, value, sighash_type)

    # sighash is already SHA256d, hasher=None signs it as is
    signature = normalize_low_s(private_key.sign(sighash, hasher=None))

    return signature + bytes([sighash_type])


def create_p2wpkh_script_code(pubkey_bytes: bytes) -> bytes:
    """OP_DUP OP_HASH160 <20-byte-pubkeyhash> OP_EQUALVERIFY OP_CHECKSIG"""
    return b"\x76\xa9\x14" + hash160(pubkey_bytes) + b"\x88\xac"


def serialize_witness(stack: list[bytes]) -> bytes:
    return encode_varint(len(stack)) + b"".join(
        encode_varint(len(item)) + item for item in stack
    )

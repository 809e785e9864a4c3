"""
UTXO selection and SegWit transaction construction.

Selection produces one single-input transaction per consumed UTXO, each
paying the flat FEE. Change at or below DUST is left to the miner.
"""

from __future__ import annotations

from decimal import ROUND_FLOOR, Decimal

from loguru import logger

from alphawallet.backends.base import ChainBackend
from alphawallet.constants import (
    DUST,
    FEE,
    SAT,
    SIGHASH_ALL,
    TX_LOCKTIME,
    TX_SEQUENCE,
    TX_VERSION,
)
from alphawallet.crypto import hash256, private_key_from_bytes
from alphawallet.errors import (
    InsufficientFunds,
    InvalidAddress,
    MissingSigningKey,
    ShortfallAfterFees,
    WalletError,
)
from alphawallet.wallet.address import address_to_script_pubkey, decode_bech32
from alphawallet.wallet.models import (
    UTXO,
    PlannedTransaction,
    SignedTransaction,
    TransactionPlan,
    TxOutput,
    Wallet,
)
from alphawallet.wallet.signing import (
    RawTransaction,
    RawTxInput,
    RawTxOutput,
    create_p2wpkh_script_code,
    encode_varint,
    serialize_outputs,
    serialize_witness,
    sign_p2wpkh_input,
)


def coins_to_sats(amount: Decimal | float | str) -> int:
    return int((Decimal(str(amount)) * SAT).to_integral_value(rounding=ROUND_FLOOR))


def sats_to_coins(value: int) -> Decimal:
    return Decimal(value) / SAT


def collect_utxos_for_amount(
    utxos: list[UTXO],
    amount: int,
    recipient: str,
    sender: str,
    fee: int = FEE,
    dust: int = DUST,
) -> TransactionPlan:
    """
    Greedy smallest-first selection.

    A UTXO that covers the remaining amount plus fee closes the plan with the
    surplus as change; otherwise its whole value minus fee goes to the
    recipient and the walk continues. UTXOs not worth more than the fee are
    skipped.
    """
    sorted_utxos = sorted(utxos, key=lambda u: u.value)
    total_available = sum(u.value for u in sorted_utxos)

    if total_available < amount:
        return TransactionPlan(
            error=InsufficientFunds(
                f"Insufficient funds. Available: {sats_to_coins(total_available)}, "
                f"required: {sats_to_coins(amount)}"
            )
        )

    transactions: list[PlannedTransaction] = []
    remaining = amount

    for utxo in sorted_utxos:
        if remaining <= 0:
            break

        if utxo.value >= remaining + fee:
            send_amount = remaining
            change = utxo.value - remaining - fee
            remaining = 0
        else:
            send_amount = utxo.value - fee
            if send_amount <= 0:
                continue
            change = 0
            remaining -= send_amount

        outputs = [TxOutput(address=recipient, value=send_amount)]
        if change > dust:
            outputs.append(TxOutput(address=sender, value=change))
        else:
            change = 0

        transactions.append(
            PlannedTransaction(
                input=utxo,
                outputs=outputs,
                fee=fee,
                change_amount=change,
                change_address=sender,
            )
        )

    if remaining > 0:
        return TransactionPlan(
            error=ShortfallAfterFees(
                f"Unable to collect enough UTXOs. Short by {sats_to_coins(remaining)} after fees",
                remaining=remaining,
            )
        )

    return TransactionPlan(transactions=transactions)


def _unsigned_transaction(plan_tx: PlannedTransaction) -> RawTransaction:
    return RawTransaction(
        version=TX_VERSION.to_bytes(4, "little"),
        marker_flag=True,
        inputs=[
            RawTxInput(
                txid_le=bytes.fromhex(plan_tx.input.txid)[::-1],
                vout=plan_tx.input.vout,
                script=b"",
                sequence=TX_SEQUENCE.to_bytes(4, "little"),
            )
        ],
        outputs=[
            RawTxOutput(value=out.value, script=address_to_script_pubkey(out.address))
            for out in plan_tx.outputs
        ],
        locktime=TX_LOCKTIME.to_bytes(4, "little"),
    )


def serialize_transaction(tx: RawTransaction, include_witness: bool = True) -> bytes:
    body = encode_varint(len(tx.inputs)) + b"".join(
        inp.txid_le
        + inp.vout.to_bytes(4, "little")
        + encode_varint(len(inp.script))
        + inp.script
        + inp.sequence
        for inp in tx.inputs
    )
    body += encode_varint(len(tx.outputs)) + serialize_outputs(tx.outputs)

    if not include_witness:
        return tx.version + body + tx.locktime

    witnesses = b"".join(serialize_witness(inp.witness or []) for inp in tx.inputs)
    return tx.version + b"\x00\x01" + body + witnesses + tx.locktime


def compute_txid(tx: RawTransaction) -> str:
    """Double SHA256 of the witness-stripped serialization, byte-reversed."""
    return hash256(serialize_transaction(tx, include_witness=False))[::-1].hex()


def build_segwit_transaction(
    plan_tx: PlannedTransaction, private_key_hex: str
) -> SignedTransaction:
    private_key = private_key_from_bytes(private_key_hex)
    pubkey_bytes = private_key.public_key.format(compressed=True)

    tx = _unsigned_transaction(plan_tx)
    signature = sign_p2wpkh_input(
        tx,
        0,
        create_p2wpkh_script_code(pubkey_bytes),
        plan_tx.input.value,
        private_key,
        SIGHASH_ALL,
    )
    tx.inputs[0].witness = [signature, pubkey_bytes]

    raw = serialize_transaction(tx)
    return SignedTransaction(txid=compute_txid(tx), raw=raw.hex())


def select_signing_key(wallet: Wallet, address: str) -> str:
    """
    Key of the address being spent, else the designated first-address key.
    The master key is never used for signing.
    """
    for entry in wallet.addresses:
        if entry.address == address and entry.private_key:
            return entry.private_key

    if wallet.child_private_key:
        logger.debug(f"No key stored for {address}, using first-address key")
        return wallet.child_private_key

    raise MissingSigningKey(f"No private key available for address: {address}")


def create_and_sign_transaction(wallet: Wallet, plan_tx: PlannedTransaction) -> SignedTransaction:
    private_key_hex = select_signing_key(wallet, plan_tx.input.address)
    return build_segwit_transaction(plan_tx, private_key_hex)


async def create_transaction_plan(
    wallet: Wallet,
    backend: ChainBackend,
    to_address: str,
    amount: Decimal | float | str,
    from_address: str | None = None,
    fee: int = FEE,
    dust: int = DUST,
) -> TransactionPlan:
    try:
        decode_bech32(to_address)
    except InvalidAddress as e:
        return TransactionPlan(error=InvalidAddress(f"Invalid recipient address: {e}"))

    if from_address is None:
        if not wallet.addresses:
            return TransactionPlan(error=WalletError("Wallet has no addresses"))
        from_address = wallet.addresses[0].address

    amount_sats = coins_to_sats(amount)
    utxos = await backend.get_utxos(from_address)
    if not utxos:
        return TransactionPlan(
            error=InsufficientFunds(f"No UTXOs available for address: {from_address}")
        )

    logger.debug(f"Planning {amount_sats} sats from {len(utxos)} UTXOs of {from_address}")
    return collect_utxos_for_amount(utxos, amount_sats, to_address, from_address, fee, dust)


async def send(
    wallet: Wallet,
    backend: ChainBackend,
    to_address: str,
    amount: Decimal | float | str,
    from_address: str | None = None,
) -> list[SignedTransaction]:
    """Plan, sign and broadcast. Raises the plan's error if planning failed."""
    plan = await create_transaction_plan(wallet, backend, to_address, amount, from_address)
    if plan.error is not None:
        raise plan.error

    results = []
    for plan_tx in plan.transactions:
        signed = create_and_sign_transaction(wallet, plan_tx)
        signed.broadcast_result = await backend.broadcast(signed.raw)
        logger.info(f"Broadcast {signed.txid}")
        results.append(signed)

    return results

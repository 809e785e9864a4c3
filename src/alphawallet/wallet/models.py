"""
Wallet data models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from alphawallet.crypto import is_valid_private_key
from alphawallet.errors import InvalidKey, WalletError


class DerivationMode(str, Enum):
    BIP32 = "bip32"
    LEGACY_HMAC = "legacy_hmac"
    WIF_HMAC = "wif_hmac"


class WalletSource(str, Enum):
    MNEMONIC = "mnemonic"
    FILE_BIP32 = "file_bip32"
    FILE_STANDARD = "file_standard"
    DAT_DESCRIPTOR = "dat_descriptor"
    DAT_HD = "dat_hd"
    DAT_LEGACY = "dat_legacy"


def utc_now_iso() -> str:
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


@dataclass
class WalletAddress:
    """A derived receive or change address"""

    address: str
    path: str | None
    index: int = 0
    is_change: bool = False
    public_key: str | None = None
    private_key: str | None = None
    created_at: str = field(default_factory=utc_now_iso)


@dataclass
class Wallet:
    """
    Master key material plus the ordered list of addresses derived from it.

    bip32 and legacy_hmac wallets need a chain code; wif_hmac wallets only
    carry the master key.
    """

    master_private_key: str
    chain_code: str | None = None
    derivation_mode: DerivationMode = DerivationMode.BIP32
    descriptor_path: str | None = None
    addresses: list[WalletAddress] = field(default_factory=list)
    mnemonic: str | None = None
    source: WalletSource | None = None
    # Key of the designated first address, used when an address has no own key
    child_private_key: str | None = None

    def __post_init__(self) -> None:
        self.derivation_mode = DerivationMode(self.derivation_mode)
        if self.source is not None:
            self.source = WalletSource(self.source)

        if not is_valid_private_key(self.master_private_key):
            raise InvalidKey("Invalid master private key")
        self.master_private_key = self.master_private_key.lower()

        if self.chain_code is not None:
            if len(self.chain_code) != 64:
                raise InvalidKey("Chain code must be 32 bytes")
            self.chain_code = self.chain_code.lower()
        elif self.derivation_mode in (DerivationMode.BIP32, DerivationMode.LEGACY_HMAC):
            raise WalletError(f"{self.derivation_mode.value} wallets require a chain code")

    @property
    def is_bip32(self) -> bool:
        return self.derivation_mode == DerivationMode.BIP32

    @property
    def default_address(self) -> WalletAddress | None:
        return self.addresses[0] if self.addresses else None

    def wipe(self) -> None:
        """Overwrite secret material held by this object"""
        self.master_private_key = ""
        self.chain_code = None
        self.mnemonic = None
        self.child_private_key = None
        for addr in self.addresses:
            addr.private_key = None


@dataclass(frozen=True)
class UTXO:
    txid: str
    vout: int
    value: int
    address: str
    height: int | None = None


@dataclass
class TxOutput:
    address: str
    value: int


@dataclass
class PlannedTransaction:
    """One single-input transaction produced by UTXO selection"""

    input: UTXO
    outputs: list[TxOutput]
    fee: int
    change_amount: int
    change_address: str


@dataclass
class TransactionPlan:
    """
    Result of UTXO selection.

    On failure ``transactions`` is empty and ``error`` holds the typed error.
    """

    transactions: list[PlannedTransaction] = field(default_factory=list)
    error: WalletError | None = None

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def total_fee(self) -> int:
        return sum(tx.fee for tx in self.transactions)

    @property
    def total_sent(self) -> int:
        return sum(tx.outputs[0].value for tx in self.transactions)


@dataclass
class SignedTransaction:
    txid: str
    raw: str
    broadcast_result: object | None = None

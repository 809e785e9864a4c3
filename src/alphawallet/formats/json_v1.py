"""
JSON v1 wallet backup format.

The document always carries ``firstAddress``; on import the address is
re-derived from the key material and must match before the wallet is
accepted. Encrypted documents keep the secrets only inside ``encrypted``.
"""

from __future__ import annotations

import json
import secrets
from typing import Any

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from alphawallet.constants import (
    ADDRESS_PREFIX,
    JSON_KDF_ITERATIONS,
    JSON_SALT_PREFIX,
    JSON_VERSION,
    JSON_WARNING,
    LEGACY_JSON_DESCRIPTOR_PATH,
)
from alphawallet.crypto import KeyPair, is_valid_private_key
from alphawallet.errors import (
    IntegrityCheckFailed,
    InvalidFormat,
    InvalidKey,
    NeedsPassword,
    UnsupportedVersion,
    WrongPassword,
)
from alphawallet.formats.cipher import json_format_key, openssl_decrypt, openssl_encrypt
from alphawallet.wallet.address import public_key_to_address
from alphawallet.wallet.bip32 import (
    derive_at_path,
    derive_child_legacy,
    derive_key_wif_hmac,
    legacy_path,
    wif_hmac_path,
)
from alphawallet.wallet.helpers import WalletAddressHelper
from alphawallet.wallet.models import (
    DerivationMode,
    Wallet,
    WalletAddress,
    WalletSource,
    utc_now_iso,
)
from alphawallet.wallet.recovery import recover_key_bip32_at_path


class JSONModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)


class WalletJSONAddress(JSONModel):
    address: str
    public_key: str = Field(default="", alias="publicKey")
    path: str
    index: int = 0
    is_change: bool | None = Field(default=None, alias="isChange")


class WalletJSONEncrypted(JSONModel):
    master_private_key: str = Field(alias="masterPrivateKey")
    mnemonic: str | None = None
    salt: str
    iterations: int = Field(default=JSON_KDF_ITERATIONS, gt=0)


class WalletJSON(JSONModel):
    """Wire model of a JSON v1 wallet file (camelCase on the wire)"""

    version: str
    generated: str = Field(default_factory=utc_now_iso)
    warning: str = JSON_WARNING
    master_private_key: str | None = Field(default=None, alias="masterPrivateKey")
    chain_code: str | None = Field(default=None, alias="chainCode")
    mnemonic: str | None = None
    derivation_mode: DerivationMode = Field(alias="derivationMode")
    source: WalletSource
    first_address: WalletJSONAddress = Field(alias="firstAddress")
    descriptor_path: str | None = Field(default=None, alias="descriptorPath")
    encrypted: WalletJSONEncrypted | None = None
    addresses: list[WalletJSONAddress] | None = None

    @model_validator(mode="after")
    def check_key_material(self) -> WalletJSON:
        if self.encrypted is None and not self.master_private_key:
            raise ValueError("missing master private key")
        return self

    def to_json(self, indent: int = 2) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True, indent=indent)


def generate_json_salt() -> str:
    return JSON_SALT_PREFIX + secrets.token_hex(16)


def encrypt_with_password(data: str, password: str, salt: str, iterations: int) -> str:
    return openssl_encrypt(data, json_format_key(password, salt, iterations))


def decrypt_with_password(encrypted: str, password: str, salt: str, iterations: int) -> str:
    return openssl_decrypt(encrypted, json_format_key(password, salt, iterations))


def determine_derivation_mode(
    chain_code: str | None, current: DerivationMode | None = None
) -> DerivationMode:
    """Without a chain code only wif_hmac derivation is possible; legacy_hmac is kept."""
    if not chain_code:
        return DerivationMode.WIF_HMAC
    if current == DerivationMode.LEGACY_HMAC:
        return DerivationMode.LEGACY_HMAC
    return DerivationMode.BIP32


def determine_source(
    wallet: Wallet, mnemonic: str | None = None, import_source: str | None = None
) -> WalletSource:
    if mnemonic:
        return WalletSource.MNEMONIC
    if import_source == "dat":
        if wallet.descriptor_path:
            return WalletSource.DAT_DESCRIPTOR
        if wallet.chain_code:
            return WalletSource.DAT_HD
        return WalletSource.DAT_LEGACY
    if wallet.chain_code:
        return WalletSource.FILE_BIP32
    return WalletSource.FILE_STANDARD


def generate_address_for_json(
    master_key: str,
    chain_code: str | None,
    derivation_mode: DerivationMode | str,
    index: int,
    descriptor_path: str | None = None,
    prefix: str = ADDRESS_PREFIX,
) -> WalletJSONAddress:
    """
    Receive address ``index`` as recorded in JSON files: BIP32 at
    m/<descriptor_path>/0/<index> (44'/0'/0' when unset), legacy_hmac at
    m/44'/0'/0'/<index>, otherwise wif_hmac.
    """
    master = bytes.fromhex(master_key)
    mode = DerivationMode(derivation_mode)
    if mode == DerivationMode.BIP32 and chain_code:
        path = f"m/{descriptor_path or LEGACY_JSON_DESCRIPTOR_PATH}/0/{index}"
        key, _ = derive_at_path(master, bytes.fromhex(chain_code), path)
    elif mode == DerivationMode.LEGACY_HMAC and chain_code:
        path = legacy_path(index)
        key, _ = derive_child_legacy(master, bytes.fromhex(chain_code), index)
    else:
        path = wif_hmac_path(index)
        key = derive_key_wif_hmac(master, index)

    public_key = KeyPair.from_hex(key.hex()).public_key_hex()
    return WalletJSONAddress(
        address=public_key_to_address(public_key, prefix),
        public_key=public_key,
        path=path,
        index=index,
    )


def serialize_wallet_json(
    wallet: Wallet,
    password: str | None = None,
    include_all_addresses: bool = False,
    address_count: int = 1,
    import_source: str | None = None,
    prefix: str = ADDRESS_PREFIX,
) -> str:
    """Serialize ``wallet`` as a JSON v1 document"""
    mnemonic = wallet.mnemonic
    mode = determine_derivation_mode(wallet.chain_code, wallet.derivation_mode)
    source = wallet.source or determine_source(wallet, mnemonic, import_source)

    def derive(index: int) -> WalletJSONAddress:
        return generate_address_for_json(
            wallet.master_private_key,
            wallet.chain_code,
            mode,
            index,
            wallet.descriptor_path,
            prefix,
        )

    doc = WalletJSON(
        version=JSON_VERSION,
        master_private_key=wallet.master_private_key,
        chain_code=wallet.chain_code,
        mnemonic=mnemonic,
        derivation_mode=mode,
        source=source,
        first_address=derive(0),
        descriptor_path=wallet.descriptor_path,
    )

    if password:
        salt = generate_json_salt()
        doc.encrypted = WalletJSONEncrypted(
            master_private_key=encrypt_with_password(
                wallet.master_private_key, password, salt, JSON_KDF_ITERATIONS
            ),
            mnemonic=(
                encrypt_with_password(mnemonic, password, salt, JSON_KDF_ITERATIONS)
                if mnemonic
                else None
            ),
            salt=salt,
            iterations=JSON_KDF_ITERATIONS,
        )
        doc.master_private_key = None
        doc.mnemonic = None

    if include_all_addresses and wallet.addresses:
        doc.addresses = [
            WalletJSONAddress(
                address=addr.address,
                public_key=addr.public_key or "",
                path=addr.path or wif_hmac_path(position),
                index=addr.index,
                is_change=addr.is_change,
            )
            for position, addr in enumerate(wallet.addresses)
        ]
    elif address_count > 1:
        doc.addresses = [derive(i) for i in range(1, address_count)]

    return doc.to_json()


def is_json_wallet_format(content: str) -> bool:
    try:
        data = json.loads(content)
    except (ValueError, TypeError):
        return False
    return (
        isinstance(data, dict)
        and data.get("version") == JSON_VERSION
        and bool(data.get("masterPrivateKey") or data.get("encrypted"))
    )


def _load_document(content: str) -> WalletJSON:
    try:
        raw: Any = json.loads(content)
    except ValueError as e:
        raise InvalidFormat(f"Wallet JSON is not valid JSON: {e}") from e
    if not isinstance(raw, dict):
        raise InvalidFormat("Wallet JSON must be an object")

    version = raw.get("version")
    if version != JSON_VERSION:
        raise UnsupportedVersion(
            f"Unsupported wallet JSON version: {version}. Expected {JSON_VERSION}"
        )

    try:
        return WalletJSON.model_validate(raw)
    except ValidationError as e:
        raise InvalidFormat(f"Invalid wallet JSON: {e}") from e


def parse_wallet_json(
    content: str, password: str | None = None, prefix: str = ADDRESS_PREFIX
) -> Wallet:
    """Decode, decrypt and verify a JSON v1 wallet."""
    doc = _load_document(content)
    mnemonic = doc.mnemonic

    if doc.encrypted is not None:
        if not password:
            raise NeedsPassword("This wallet is encrypted, a password is required")
        enc = doc.encrypted
        master_key = decrypt_with_password(
            enc.master_private_key, password, enc.salt, enc.iterations
        )
        if enc.mnemonic:
            try:
                mnemonic = decrypt_with_password(enc.mnemonic, password, enc.salt, enc.iterations)
            except WrongPassword:
                logger.warning("Master key decrypted but the mnemonic did not, ignoring it")
                mnemonic = None
    else:
        assert doc.master_private_key is not None
        master_key = doc.master_private_key

    master_key = master_key.strip().lower()
    if not is_valid_private_key(master_key):
        raise InvalidKey("Invalid master private key in wallet JSON")
    if doc.chain_code is not None and len(doc.chain_code) != 64:
        raise InvalidFormat("Invalid chain code in wallet JSON")

    try:
        verify = generate_address_for_json(
            master_key, doc.chain_code, doc.derivation_mode, 0, doc.descriptor_path, prefix
        )
    except ValueError as e:
        raise InvalidFormat(f"Cannot derive first address: {e}") from e

    if verify.address != doc.first_address.address:
        raise IntegrityCheckFailed(
            f"Wallet verification failed: derived address ({verify.address}) "
            f"does not match expected ({doc.first_address.address})",
            address=doc.first_address.address,
        )

    mode = DerivationMode(doc.derivation_mode)
    if mode != DerivationMode.WIF_HMAC and not doc.chain_code:
        mode = DerivationMode.WIF_HMAC

    wallet = Wallet(
        master_private_key=master_key,
        chain_code=doc.chain_code,
        derivation_mode=mode,
        descriptor_path=doc.descriptor_path,
        mnemonic=mnemonic,
        source=WalletSource(doc.source),
    )

    first = doc.first_address
    WalletAddressHelper.add(
        wallet,
        WalletAddress(
            address=first.address,
            path=first.path,
            index=first.index,
            is_change=bool(first.is_change),
            public_key=first.public_key or verify.public_key,
        ),
    )
    # Listed addresses get the same check as firstAddress; a repeat of it is a no-op
    for entry in doc.addresses or []:
        WalletAddressHelper.add(
            wallet, _verify_listed_address(entry, master_key, doc.chain_code, mode, prefix)
        )

    logger.info(f"Imported JSON wallet ({doc.source}, {mode.value})")
    return wallet


def _verify_listed_address(
    entry: WalletJSONAddress,
    master_key: str,
    chain_code: str | None,
    mode: DerivationMode,
    prefix: str,
) -> WalletAddress:
    if mode == DerivationMode.BIP32 and chain_code:
        recovered = recover_key_bip32_at_path(
            master_key, chain_code, entry.path, entry.address, prefix
        )
        return WalletAddress(
            address=recovered.address,
            path=recovered.path,
            index=recovered.index,
            is_change=recovered.is_change,
            public_key=recovered.public_key,
            private_key=recovered.private_key,
        )

    expected = generate_address_for_json(master_key, chain_code, mode, entry.index, prefix=prefix)
    if expected.address != entry.address:
        raise IntegrityCheckFailed(
            f"Wallet verification failed: address {entry.address} at index {entry.index} "
            f"does not match derived ({expected.address})",
            address=entry.address,
        )
    return WalletAddress(
        address=expected.address,
        path=expected.path,
        index=entry.index,
        is_change=bool(entry.is_change),
        public_key=expected.public_key,
    )

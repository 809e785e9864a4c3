"""
Labeled text backup format.

Layout is shared with the web wallet backup so files written by
either side restore in the other:

    UNICITY WALLET DETAILS
    ===========================

    MASTER PRIVATE KEY (keep secret!):
    <hex>
    ...
    YOUR ADDRESSES:
    Address 1: alpha1... (Path: m/84'/1'/0'/0/0)

The encrypted variant replaces the key sections with
"ENCRYPTED MASTER KEY (password protected):" followed by an OpenSSL
envelope keyed with PBKDF2-SHA1.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime

from loguru import logger

from alphawallet.constants import (
    ADDRESS_PREFIX,
    DEFAULT_DESCRIPTOR_PATH,
    RECOVERY_SCAN_LIMIT,
    SCAN_BASE_PATHS,
    TEXT_HEADER,
    TEXT_SEPARATOR,
)
from alphawallet.crypto import is_valid_private_key, private_key_to_wif
from alphawallet.errors import (
    IntegrityCheckFailed,
    InvalidFormat,
    InvalidKey,
    NeedsPassword,
    UnsupportedWalletFormat,
)
from alphawallet.formats.cipher import openssl_decrypt, openssl_encrypt, text_format_key
from alphawallet.wallet.bip32 import extract_base_path, parse_path, wif_hmac_path
from alphawallet.wallet.models import (
    DerivationMode,
    Wallet,
    WalletAddress,
    WalletSource,
)
from alphawallet.wallet.recovery import (
    RecoveredKey,
    recover_key_bip32_at_path,
    recover_key_bip32_scan,
    recover_key_wif_hmac,
)

BIP32_TYPE_LINE = "WALLET TYPE: BIP32 hierarchical deterministic wallet"
DESCRIPTOR_TYPE_LINE = "WALLET TYPE: Alpha descriptor wallet"
STANDARD_TYPE_LINE = "WALLET TYPE: Standard wallet (HMAC-based)"

PLAINTEXT_STATUS = (
    "ENCRYPTION STATUS: Not encrypted\n"
    "This key is in plaintext and not protected. Anyone with this file can access your wallet."
)
ENCRYPTED_STATUS = (
    "ENCRYPTION STATUS: Encrypted with password\n"
    "To use this key, you will need the password you set in the wallet."
)
FOOTER_WARNING = (
    "WARNING: Keep your master private key safe and secure.\n"
    "Anyone with your master private key can access all your funds."
)

_ENCRYPTED_KEY_RE = re.compile(r"ENCRYPTED MASTER KEY \(password protected\):\s*([^\n]+)")
_MASTER_KEY_RE = re.compile(r"MASTER PRIVATE KEY \(keep secret!\):\s*([^\n]+)")
_CHAIN_CODE_RE = re.compile(
    r"MASTER CHAIN CODE \(for (?:BIP32 HD|Alpha) wallet compatibility\):\s*([^\n]+)"
)
_DESCRIPTOR_PATH_RE = re.compile(r"DESCRIPTOR PATH:\s*([^\n]+)")
_ADDRESS_SECTION_RE = re.compile(r"YOUR ADDRESSES:\s*\n([\s\S]*?)(?:\n\nGenerated on:|$)")
_ADDRESS_LINE_RE = re.compile(r"Address\s+(\d+):\s+(\w+)(?:\s*\(Path:\s*([^)]*)\))?")
_CHAIN_CODE_HEX_RE = re.compile(r"[0-9a-fA-F]{64}")


@dataclass
class TextAddress:
    index: int
    address: str
    path: str | None = None


@dataclass
class WalletTextData:
    master_private_key: str
    chain_code: str | None
    descriptor_path: str | None
    is_bip32: bool
    is_encrypted: bool
    addresses: list[TextAddress] = field(default_factory=list)


def encrypt_for_text_format(master_private_key: str, password: str) -> str:
    return openssl_encrypt(master_private_key, text_format_key(password))


def decrypt_from_text_format(encrypted_key: str, password: str) -> str:
    return openssl_decrypt(encrypted_key, text_format_key(password))


def is_wallet_text_format(content: str) -> bool:
    return TEXT_HEADER in content and (
        "MASTER PRIVATE KEY" in content or "ENCRYPTED MASTER KEY" in content
    )


def _format_addresses(addresses: list[WalletAddress], is_bip32: bool) -> str:
    lines = []
    for position, addr in enumerate(addresses):
        path = addr.path
        if not path:
            if is_bip32:
                path = f"m/84'/1'/0'/{1 if addr.is_change else 0}/{addr.index}"
            else:
                path = wif_hmac_path(addr.index)
        lines.append(f"Address {position + 1}: {addr.address} (Path: {path})")
    return "\n".join(lines)


def _generated_on() -> str:
    return datetime.now().strftime("%m/%d/%Y, %I:%M:%S %p")


def _wrap(body: str, addresses_text: str) -> str:
    return (
        f"{TEXT_HEADER}\n{TEXT_SEPARATOR}\n\n"
        f"{body}\n\n"
        f"YOUR ADDRESSES:\n{addresses_text}\n\n"
        f"Generated on: {_generated_on()}\n\n"
        f"{FOOTER_WARNING}"
    )


def _require_text_mode(wallet: Wallet) -> None:
    # The text layout has no field for the derivation mode
    if wallet.derivation_mode == DerivationMode.LEGACY_HMAC:
        raise UnsupportedWalletFormat(
            "legacy_hmac wallets cannot be written as text backups, export as JSON instead"
        )


def serialize_wallet_text(wallet: Wallet) -> str:
    """Plaintext backup of ``wallet``"""
    _require_text_mode(wallet)
    is_bip32 = wallet.chain_code is not None
    wif = private_key_to_wif(wallet.master_private_key)

    sections = [
        f"MASTER PRIVATE KEY (keep secret!):\n{wallet.master_private_key}",
        f"MASTER PRIVATE KEY IN WIF FORMAT (for importprivkey command):\n{wif}",
    ]
    if is_bip32:
        sections += [
            f"MASTER CHAIN CODE (for BIP32 HD wallet compatibility):\n{wallet.chain_code}",
            f"DESCRIPTOR PATH: {wallet.descriptor_path or DEFAULT_DESCRIPTOR_PATH}",
            BIP32_TYPE_LINE,
        ]
    else:
        sections.append(STANDARD_TYPE_LINE)
    sections.append(PLAINTEXT_STATUS)

    return _wrap("\n\n".join(sections), _format_addresses(wallet.addresses, is_bip32))


def serialize_encrypted_wallet_text(wallet: Wallet, password: str) -> str:
    """Backup with the master key encrypted under ``password``"""
    _require_text_mode(wallet)
    is_bip32 = wallet.chain_code is not None
    encrypted = encrypt_for_text_format(wallet.master_private_key, password)

    sections = [f"ENCRYPTED MASTER KEY (password protected):\n{encrypted}"]
    if is_bip32:
        sections += [
            f"MASTER CHAIN CODE (for BIP32 HD wallet compatibility):\n{wallet.chain_code}",
            BIP32_TYPE_LINE,
        ]
    else:
        sections.append(STANDARD_TYPE_LINE)
    sections.append(ENCRYPTED_STATUS)

    return _wrap("\n\n".join(sections), _format_addresses(wallet.addresses, is_bip32))


def _extract(pattern: re.Pattern[str], content: str) -> str | None:
    match = pattern.search(content)
    return match.group(1).strip() if match else None


def parse_wallet_text(content: str) -> WalletTextData:
    """Parse the labeled sections; the master key is still encrypted if is_encrypted."""
    content = content.replace("\r\n", "\n")
    is_encrypted = "ENCRYPTED MASTER KEY" in content

    if is_encrypted:
        master_key = _extract(_ENCRYPTED_KEY_RE, content)
        if not master_key:
            raise InvalidFormat("Could not find the encrypted master key in the backup file")
    else:
        master_key = _extract(_MASTER_KEY_RE, content)
        if not master_key:
            raise InvalidFormat("Could not find the master private key in the backup file")

    chain_code = _extract(_CHAIN_CODE_RE, content)
    if chain_code is not None and not _CHAIN_CODE_HEX_RE.fullmatch(chain_code):
        raise InvalidFormat("Invalid master chain code in the backup file")

    descriptor_path = _extract(_DESCRIPTOR_PATH_RE, content)
    if descriptor_path is not None:
        try:
            parse_path(descriptor_path)
        except ValueError as e:
            raise InvalidFormat(f"Invalid descriptor path in the backup file: {e}") from e
    is_bip32 = BIP32_TYPE_LINE in content or DESCRIPTOR_TYPE_LINE in content or bool(chain_code)

    addresses = []
    section = _ADDRESS_SECTION_RE.search(content)
    if section and section.group(1):
        for line in section.group(1).strip().split("\n"):
            line = line.strip()
            if not line:
                continue
            match = _ADDRESS_LINE_RE.fullmatch(line)
            if not match or int(match.group(1)) != len(addresses) + 1:
                raise IntegrityCheckFailed(f"Unrecognised line in address section: {line!r}")
            path = match.group(3)
            if path is not None:
                path = path.strip()
            if path in ("undefined", ""):
                path = None
            addresses.append(
                TextAddress(index=int(match.group(1)) - 1, address=match.group(2), path=path)
            )

    return WalletTextData(
        master_private_key=master_key,
        chain_code=chain_code.lower() if chain_code else None,
        descriptor_path=descriptor_path,
        is_bip32=is_bip32,
        is_encrypted=is_encrypted,
        addresses=addresses,
    )


def _recover(
    data: WalletTextData,
    master_key: str,
    addr: TextAddress,
    limit: int,
    prefix: str,
) -> RecoveredKey:
    if data.chain_code is None:
        return recover_key_wif_hmac(master_key, addr.address, limit, prefix)

    if addr.path and addr.path.startswith("m/"):
        return recover_key_bip32_at_path(
            master_key, data.chain_code, addr.path, addr.address, prefix
        )

    base_paths = [data.descriptor_path] if data.descriptor_path else []
    base_paths += [p for p in SCAN_BASE_PATHS if p.removeprefix("m/") not in base_paths]
    return recover_key_bip32_scan(
        master_key, data.chain_code, addr.address, base_paths, limit, prefix
    )


def import_wallet_text(
    content: str,
    password: str | None = None,
    recovery_limit: int = RECOVERY_SCAN_LIMIT,
    prefix: str = ADDRESS_PREFIX,
) -> Wallet:
    """
    Restore a Wallet from a text backup.

    Every listed address is re-derived from the master key; a single
    mismatch raises IntegrityCheckFailed and nothing is returned.
    """
    data = parse_wallet_text(content)
    master_key = data.master_private_key

    if data.is_encrypted:
        if not password:
            raise NeedsPassword("This is an encrypted wallet, a password is required")
        master_key = decrypt_from_text_format(master_key, password)

    master_key = master_key.strip().lower()
    if not is_valid_private_key(master_key):
        raise InvalidKey("Invalid master private key in backup file")

    addresses = []
    for addr in data.addresses:
        recovered = _recover(data, master_key, addr, recovery_limit, prefix)
        addresses.append(
            WalletAddress(
                address=recovered.address,
                path=recovered.path,
                index=recovered.index,
                is_change=recovered.is_change,
                public_key=recovered.public_key,
                private_key=recovered.private_key,
            )
        )

    descriptor_path = data.descriptor_path
    if not descriptor_path and data.chain_code and addresses and addresses[0].path:
        descriptor_path = extract_base_path(addresses[0].path)

    if data.chain_code:
        mode, source = DerivationMode.BIP32, WalletSource.FILE_BIP32
    else:
        mode, source = DerivationMode.WIF_HMAC, WalletSource.FILE_STANDARD
        descriptor_path = None

    wallet = Wallet(
        master_private_key=master_key,
        chain_code=data.chain_code,
        derivation_mode=mode,
        descriptor_path=descriptor_path,
        addresses=addresses,
        source=source,
        child_private_key=addresses[0].private_key if addresses else None,
    )
    logger.info(f"Restored {mode.value} wallet from text with {len(addresses)} verified addresses")
    return wallet

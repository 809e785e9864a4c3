"""
Legacy node wallet (.dat) import.

The file is an SQLite database, but only a handful of records matter, so the
raw bytes are searched for record-key markers instead of reading the schema:

- ``walletdescriptorkey``   unencrypted descriptor private key (DER wrapped)
- ``key``                   unencrypted legacy private key
- ``mkey``                  encrypted wallet marker; CMasterKey blobs
- ``walletdescriptor``      descriptor text (wpkh receive descriptor, its id)
- ``walletdescriptorckey``  encrypted descriptor private key, by descriptor id
- ``xpub``                  depth-0 extended public key carrying the chain code
- ``hdchain``               pre-descriptor HD wallet marker

``scan_wallet_records`` is a pure function returning tagged records; the async
``import_wallet_dat`` does the (slow) password stretch and builds a Wallet.
"""

from __future__ import annotations

import asyncio
import re
from collections.abc import Iterator
from dataclasses import dataclass, field

from loguru import logger

from alphawallet.constants import (
    ADDRESS_PREFIX,
    DAT_DECRYPT_TIMEOUT,
    DAT_MAX_ITERATIONS,
    DAT_MIN_ITERATIONS,
    DAT_YIELD_EVERY,
    DEFAULT_DESCRIPTOR_PATH,
)
from alphawallet.crypto import (
    BASE58_ALPHABET,
    base58check_decode,
    hash256,
    is_valid_private_key,
)
from alphawallet.errors import (
    DecryptionTimeout,
    InvalidFormat,
    NeedsPassword,
    UnsupportedWalletFormat,
    WrongPassword,
)
from alphawallet.formats.cipher import aes_cbc_decrypt, stretch_passphrase
from alphawallet.wallet.keymanager import KeyManager
from alphawallet.wallet.models import DerivationMode, Wallet, WalletSource

SQLITE_MAGIC = b"SQLite format 3"
# Btree magic 0x00053162 in the metadata page header, stored in host byte order
BDB_MAGIC_OFFSET = 12
BDB_MAGICS = (bytes.fromhex("00053162"), bytes.fromhex("62310500"))

DESCRIPTOR_KEY_MARKER = b"walletdescriptorkey"
DESCRIPTOR_CKEY_MARKER = b"walletdescriptorckey"
DESCRIPTOR_MARKER = b"walletdescriptor"
LEGACY_KEY_MARKER = b"key"
MKEY_MARKER = b"mkey"
HDCHAIN_MARKER = b"hdchain"
XPUB_MARKER = b"xpub"

# SEQUENCE tail + INTEGER 1 + OCTET STRING(32) of a DER ECPrivateKey
DESCRIPTOR_KEY_PREFIX = bytes.fromhex("d30201010420")
LEGACY_KEY_PREFIX = bytes.fromhex("0420")

KEY_SEARCH_WINDOW = 200
CKEY_SEARCH_WINDOW = 100

_XPUB_RE = re.compile(r"xpub[1-9A-HJ-NP-Za-km-z]{100,}")
_ORIGIN_PATH_RE = re.compile(r"\[[\da-fA-F]+/(\d+['h]/\d+['h]/\d+['h])\]")
_INLINE_PATH_RE = re.compile(r"xpub[1-9A-HJ-NP-Za-km-z]+/(\d+['h]/\d+['h]/\d+['h])/0/\*")


@dataclass(frozen=True)
class DescriptorKey:
    private_key: str
    offset: int


@dataclass(frozen=True)
class LegacyKey:
    private_key: str
    offset: int


@dataclass(frozen=True)
class EncryptedMasterKey:
    """A CMasterKey candidate: 48-byte ciphertext, 8-byte salt, method, rounds."""

    encrypted_key: bytes
    salt: bytes
    derivation_method: int
    iterations: int
    position: int


WalletRecord = DescriptorKey | LegacyKey | EncryptedMasterKey


@dataclass
class WpkhDescriptor:
    descriptor_id: bytes
    descriptor: str
    xpub: str
    descriptor_path: str | None


@dataclass
class WalletDatInfo:
    is_encrypted: bool
    is_descriptor_wallet: bool
    has_hd_chain: bool
    records: list[WalletRecord] = field(default_factory=list)
    chain_code: str | None = None
    descriptor: WpkhDescriptor | None = None

    @property
    def descriptor_keys(self) -> list[str]:
        return [r.private_key for r in self.records if isinstance(r, DescriptorKey)]

    @property
    def legacy_keys(self) -> list[str]:
        return [r.private_key for r in self.records if isinstance(r, LegacyKey)]

    @property
    def master_key_records(self) -> list[EncryptedMasterKey]:
        return [r for r in self.records if isinstance(r, EncryptedMasterKey)]

    @property
    def descriptor_path(self) -> str | None:
        return self.descriptor.descriptor_path if self.descriptor else None

    @property
    def source(self) -> WalletSource:
        if self.is_descriptor_wallet:
            return WalletSource.DAT_DESCRIPTOR
        if self.has_hd_chain:
            return WalletSource.DAT_HD
        return WalletSource.DAT_LEGACY


def is_sqlite_database(data: bytes) -> bool:
    return len(data) >= 16 and data[:16].startswith(SQLITE_MAGIC)


def is_bdb_database(data: bytes) -> bool:
    magic = data[BDB_MAGIC_OFFSET : BDB_MAGIC_OFFSET + 4]
    return magic in BDB_MAGICS


def is_encrypted_wallet_dat(data: bytes) -> bool:
    return MKEY_MARKER in data


def _find_all(data: bytes, marker: bytes) -> Iterator[int]:
    pos = data.find(marker)
    while pos != -1:
        yield pos
        pos = data.find(marker, pos + 1)


def find_descriptor_keys(data: bytes) -> list[DescriptorKey]:
    keys = []
    for index in _find_all(data, DESCRIPTOR_KEY_MARKER):
        start = index + len(DESCRIPTOR_KEY_MARKER)
        limit = min(start + KEY_SEARCH_WINDOW, len(data) - 40)
        pos = data.find(DESCRIPTOR_KEY_PREFIX, start)
        while pos != -1 and pos < limit:
            candidate = data[pos + 6 : pos + 38]
            if is_valid_private_key(candidate):
                keys.append(DescriptorKey(candidate.hex(), pos + 6))
                break
            pos = data.find(DESCRIPTOR_KEY_PREFIX, pos + 1)
    return keys


def find_legacy_keys(data: bytes) -> list[LegacyKey]:
    keys: list[LegacyKey] = []
    seen = set()
    for index in _find_all(data, LEGACY_KEY_MARKER):
        limit = min(index + KEY_SEARCH_WINDOW, len(data) - 34)
        pos = data.find(LEGACY_KEY_PREFIX, index)
        while pos != -1 and pos < limit:
            candidate = data[pos + 2 : pos + 34]
            if is_valid_private_key(candidate):
                if pos not in seen:
                    seen.add(pos)
                    keys.append(LegacyKey(candidate.hex(), pos + 2))
                break
            pos = data.find(LEGACY_KEY_PREFIX, pos + 1)
    return keys


def find_cmaster_keys(data: bytes) -> list[EncryptedMasterKey]:
    """
    Every plausible CMasterKey serialization:
    0x30 <48 bytes> 0x08 <8 byte salt> <u32 method> <u32 iterations>
    """
    results = []
    pos = data.find(b"\x30")
    while pos != -1 and pos < len(data) - 70:
        salt_len_pos = pos + 1 + 48
        if data[salt_len_pos] == 0x08:
            method_pos = salt_len_pos + 1 + 8
            iter_pos = method_pos + 4
            iterations = int.from_bytes(data[iter_pos : iter_pos + 4], "little")
            if DAT_MIN_ITERATIONS <= iterations <= DAT_MAX_ITERATIONS:
                results.append(
                    EncryptedMasterKey(
                        encrypted_key=data[pos + 1 : pos + 49],
                        salt=data[salt_len_pos + 1 : salt_len_pos + 9],
                        derivation_method=int.from_bytes(
                            data[method_pos : method_pos + 4], "little"
                        ),
                        iterations=iterations,
                        position=pos,
                    )
                )
        pos = data.find(b"\x30", pos + 1)
    return results


def scan_wallet_records(data: bytes) -> list[WalletRecord]:
    """
    Pure byte scan for key material.

    Plaintext keys are only reported for unencrypted files; encrypted files
    yield their CMasterKey candidates instead.
    """
    if is_encrypted_wallet_dat(data):
        return list(find_cmaster_keys(data))
    records: list[WalletRecord] = []
    records.extend(find_descriptor_keys(data))
    records.extend(find_legacy_keys(data))
    return records


def _read_compact_size(data: bytes, pos: int) -> tuple[int, int]:
    first = data[pos]
    if first < 0xFD:
        return first, pos + 1
    if first == 0xFD:
        return int.from_bytes(data[pos + 1 : pos + 3], "little"), pos + 3
    return int.from_bytes(data[pos + 1 : pos + 5], "little"), pos + 5


def _printable_prefix(raw: bytes) -> str:
    chars = []
    for byte in raw:
        if not 32 <= byte <= 126:
            break
        chars.append(chr(byte))
    return "".join(chars)


def _descriptor_path(descriptor: str) -> str | None:
    match = _ORIGIN_PATH_RE.search(descriptor) or _INLINE_PATH_RE.search(descriptor)
    return match.group(1).replace("h", "'") if match else None


def find_wpkh_descriptor(data: bytes) -> WpkhDescriptor | None:
    """Locate the native segwit receive descriptor (wpkh(... /0/*))."""
    for index in _find_all(data, DESCRIPTOR_MARKER):
        id_start = index + len(DESCRIPTOR_MARKER)
        value_pos = id_start + 32
        if value_pos >= len(data):
            break

        length, text_pos = _read_compact_size(data, value_pos)
        descriptor = _printable_prefix(data[text_pos : text_pos + length])
        if not descriptor.startswith("wpkh(") or "/0/*)" not in descriptor:
            continue

        xpub = _XPUB_RE.search(descriptor)
        if xpub is None:
            continue

        return WpkhDescriptor(
            descriptor_id=data[id_start : id_start + 32],
            descriptor=descriptor,
            xpub=xpub.group(0),
            descriptor_path=_descriptor_path(descriptor),
        )
    return None


def find_descriptor_path(data: bytes) -> str | None:
    """Account path from the first "wpkh([fingerprint/a'/b'/c']" origin."""
    pos = data.find(b"wpkh([")
    if pos == -1:
        return None
    return _descriptor_path(_printable_prefix(data[pos : pos + 300]))


def chain_code_from_xpub(xpub: str, require_master: bool = True) -> str | None:
    """Chain code (payload bytes 13..45) of an xpub, None if unusable."""
    try:
        payload = base58check_decode(xpub)
    except InvalidFormat:
        return None
    if len(payload) != 78:
        return None
    if require_master and payload[4] != 0:
        return None
    return payload[13:45].hex()


def find_master_chain_code(data: bytes) -> str | None:
    """Chain code of the first valid depth-0 xpub in the file"""
    alphabet = BASE58_ALPHABET.encode("ascii")
    for index in _find_all(data, XPUB_MARKER):
        end = index + 4
        while end < len(data) and end - index < 120 and data[end] in alphabet:
            end += 1
        if end - index <= 100:
            continue
        chain_code = chain_code_from_xpub(data[index:end].decode("ascii"))
        if chain_code is not None:
            return chain_code
    return None


def find_encrypted_key_for_descriptor(
    data: bytes, descriptor_id: bytes
) -> tuple[bytes, bytes] | None:
    """(pubkey, ciphertext) of the walletdescriptorckey record for descriptor_id."""
    for index in _find_all(data, DESCRIPTOR_CKEY_MARKER):
        id_start = index + len(DESCRIPTOR_CKEY_MARKER)
        if data[id_start : id_start + 32] != descriptor_id:
            continue

        pubkey_len, key_pos = _read_compact_size(data, id_start + 32)
        pubkey = data[key_pos : key_pos + pubkey_len]

        start = key_pos + pubkey_len
        limit = min(start + CKEY_SEARCH_WINDOW, len(data) - 50)
        for search_pos in range(start, limit):
            value_len = data[search_pos]
            if 32 <= value_len <= 64:
                return pubkey, data[search_pos + 1 : search_pos + 1 + value_len]
    return None


def parse_wallet_dat(data: bytes) -> WalletDatInfo:
    if not is_sqlite_database(data):
        raise InvalidFormat("Invalid wallet.dat file - not an SQLite database")

    is_encrypted = is_encrypted_wallet_dat(data)
    records = scan_wallet_records(data)
    descriptor = find_wpkh_descriptor(data)
    if descriptor is not None and descriptor.descriptor_path is None:
        descriptor.descriptor_path = find_descriptor_path(data)

    chain_code = None
    if descriptor is not None:
        chain_code = chain_code_from_xpub(descriptor.xpub)
    if chain_code is None:
        chain_code = find_master_chain_code(data)

    is_descriptor_wallet = (
        any(isinstance(r, DescriptorKey) for r in records)
        or DESCRIPTOR_KEY_MARKER in data
        or DESCRIPTOR_CKEY_MARKER in data
    )

    return WalletDatInfo(
        is_encrypted=is_encrypted,
        is_descriptor_wallet=is_descriptor_wallet,
        has_hd_chain=HDCHAIN_MARKER in data,
        records=records,
        chain_code=chain_code,
        descriptor=descriptor,
    )


async def decrypt_cmaster_key(
    record: EncryptedMasterKey,
    password: str,
    yield_every: int = DAT_YIELD_EVERY,
) -> bytes:
    """Stretch the password and decrypt one CMasterKey; must yield 32 bytes."""
    key, iv = await stretch_passphrase(password, record.salt, record.iterations, yield_every)
    master_key = aes_cbc_decrypt(record.encrypted_key, key, iv)
    if len(master_key) != 32:
        raise WrongPassword("Master key decryption failed - incorrect password")
    return master_key


def decrypt_private_key(ciphertext: bytes, pubkey: bytes, master_key: bytes) -> str:
    """Decrypt a ckey value; IV is the first 16 bytes of SHA256d(pubkey)."""
    return aes_cbc_decrypt(ciphertext, master_key, hash256(pubkey)[:16]).hex()


async def _unlock_master_key(
    info: WalletDatInfo, password: str, yield_every: int
) -> bytes:
    candidates = info.master_key_records
    if not candidates:
        raise UnsupportedWalletFormat("Encrypted wallet but no CMasterKey structures found")

    for record in candidates:
        try:
            master_key = await decrypt_cmaster_key(record, password, yield_every)
        except WrongPassword:
            logger.debug(f"CMasterKey candidate at offset {record.position} did not decrypt")
            continue
        logger.debug(f"Unlocked CMasterKey at offset {record.position}")
        return master_key

    raise WrongPassword("Failed to decrypt wallet.dat - the password may be incorrect")


async def decrypt_wallet_dat(
    data: bytes,
    info: WalletDatInfo,
    password: str,
    yield_every: int = DAT_YIELD_EVERY,
) -> str:
    """Return the BIP32 master private key of an encrypted descriptor wallet."""
    if info.descriptor is None:
        raise UnsupportedWalletFormat("Encrypted wallet has no wpkh receive descriptor")

    master_key = await _unlock_master_key(info, password, yield_every)

    found = find_encrypted_key_for_descriptor(data, info.descriptor.descriptor_id)
    if found is None:
        raise UnsupportedWalletFormat("No encrypted key record for the wpkh descriptor")

    pubkey, ciphertext = found
    private_key = decrypt_private_key(ciphertext, pubkey, master_key)
    if not is_valid_private_key(private_key):
        raise UnsupportedWalletFormat("Decrypted descriptor key is not a valid private key")
    return private_key


async def import_wallet_dat(
    data: bytes,
    password: str | None = None,
    timeout: float | None = DAT_DECRYPT_TIMEOUT,
    yield_every: int = DAT_YIELD_EVERY,
    prefix: str = ADDRESS_PREFIX,
) -> Wallet:
    """
    Restore a Wallet from .dat bytes.

    Key priority: descriptor key, then legacy key. Encrypted files need the
    wallet passphrase; the stretch is bounded by ``timeout`` seconds.
    """
    if is_bdb_database(data):
        raise InvalidFormat("Berkeley DB wallet.dat files are not supported")

    info = parse_wallet_dat(data)

    if info.is_encrypted:
        if not password:
            raise NeedsPassword("This wallet.dat file is encrypted, a password is required")
        try:
            master_key = await asyncio.wait_for(
                decrypt_wallet_dat(data, info, password, yield_every), timeout
            )
        except TimeoutError as e:
            raise DecryptionTimeout(f"wallet.dat decryption exceeded {timeout}s") from e
    elif info.descriptor_keys:
        master_key = info.descriptor_keys[0]
    elif info.legacy_keys:
        master_key = info.legacy_keys[0]
    else:
        raise UnsupportedWalletFormat("No valid private keys found in wallet.dat file")

    mode = DerivationMode.BIP32 if info.chain_code else DerivationMode.WIF_HMAC
    descriptor_path = None
    if info.chain_code:
        descriptor_path = info.descriptor_path or DEFAULT_DESCRIPTOR_PATH
    wallet = Wallet(
        master_private_key=master_key,
        chain_code=info.chain_code,
        derivation_mode=mode,
        descriptor_path=descriptor_path,
        source=info.source,
    )

    first = KeyManager.from_wallet(wallet, prefix=prefix).derive_address(0)
    wallet.addresses.append(first.to_wallet_address())
    wallet.child_private_key = first.private_key

    logger.info(
        f"Imported {info.source.value} wallet.dat "
        f"({'encrypted' if info.is_encrypted else 'unencrypted'}, {mode.value})"
    )
    return wallet

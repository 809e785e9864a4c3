"""
Wallet file import/export.

``import_wallet`` detects the format of the given content, restores the
wallet and reports failures through ``ImportResult.error`` instead of
raising. ``export_wallet`` writes the text or JSON backup formats.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from loguru import logger

from alphawallet.config import WalletSettings, get_settings
from alphawallet.errors import InvalidFormat, WalletError
from alphawallet.formats.dat import (
    import_wallet_dat,
    is_bdb_database,
    is_encrypted_wallet_dat,
    is_sqlite_database,
)
from alphawallet.formats.json_v1 import (
    is_json_wallet_format,
    parse_wallet_json,
    serialize_wallet_json,
)
from alphawallet.formats.text import (
    import_wallet_text,
    is_wallet_text_format,
    serialize_encrypted_wallet_text,
    serialize_wallet_text,
)
from alphawallet.wallet.keymanager import KeyManager
from alphawallet.wallet.models import DerivationMode, Wallet, WalletSource

ContentType = Literal["dat", "json", "text"]
ExportFormat = Literal["text", "json"]


@dataclass
class ImportResult:
    wallet: Wallet | None = None
    source: WalletSource | None = None
    derivation_mode: DerivationMode | None = None
    mnemonic: str | None = None
    message: str = ""
    error: WalletError | None = None

    @property
    def success(self) -> bool:
        return self.error is None and self.wallet is not None


def detect_content_type(content: str | bytes) -> ContentType:
    """Classify raw file content as dat, json or text."""
    if isinstance(content, bytes):
        if is_sqlite_database(content) or is_bdb_database(content):
            return "dat"
        try:
            content = content.decode("utf-8")
        except UnicodeDecodeError:
            return "dat"

    if content.lstrip().startswith("{") and is_json_wallet_format(content):
        return "json"
    return "text"


def _import_text(content: str, password: str | None, settings: WalletSettings) -> Wallet:
    if is_wallet_text_format(content):
        return import_wallet_text(
            content, password, settings.recovery_scan_limit, settings.address_prefix
        )

    # Bare key material without the labeled layout: nothing to verify against
    manager = KeyManager(prefix=settings.address_prefix, base_path=settings.default_base_path)
    manager.init_from_text_content(content)
    wallet = manager.to_wallet(address_count=1)
    manager.clear()
    return wallet


async def import_wallet(
    content: str | bytes,
    password: str | None = None,
    content_type: ContentType | None = None,
    settings: WalletSettings | None = None,
) -> ImportResult:
    """
    Restore a wallet from dat, JSON or text content.

    Never raises WalletError; the error is returned in the result.
    """
    settings = settings or get_settings()
    content_type = content_type or detect_content_type(content)

    try:
        if content_type == "dat":
            if isinstance(content, str):
                raise InvalidFormat("wallet.dat content must be bytes")
            wallet = await import_wallet_dat(
                content,
                password,
                timeout=settings.decrypt_timeout,
                yield_every=settings.decrypt_yield_every,
                prefix=settings.address_prefix,
            )
            if is_encrypted_wallet_dat(content):
                message = "Encrypted wallet.dat decrypted and imported successfully!"
            else:
                kind = "descriptor wallet" if wallet.descriptor_path else "wallet.dat"
                message = f"Wallet imported successfully from Alpha {kind}!"
        else:
            text = content.decode("utf-8") if isinstance(content, bytes) else content
            if content_type == "json":
                wallet = parse_wallet_json(text, password, settings.address_prefix)
            else:
                wallet = _import_text(text, password, settings)
            message = "Wallet restored successfully!"
    except UnicodeDecodeError as e:
        logger.warning(f"Wallet import failed: {e}")
        return ImportResult(error=InvalidFormat(f"Wallet file is not valid UTF-8: {e}"))
    except WalletError as e:
        logger.warning(f"Wallet import failed: {e}")
        return ImportResult(error=e)

    return ImportResult(
        wallet=wallet,
        source=wallet.source,
        derivation_mode=wallet.derivation_mode,
        mnemonic=wallet.mnemonic,
        message=message,
    )


def export_wallet(
    wallet: Wallet,
    format: ExportFormat = "text",
    password: str | None = None,
    include_all_addresses: bool = False,
    address_count: int = 1,
    settings: WalletSettings | None = None,
) -> str:
    if format == "json":
        prefix = (settings or get_settings()).address_prefix
        return serialize_wallet_json(
            wallet,
            password,
            include_all_addresses=include_all_addresses,
            address_count=address_count,
            prefix=prefix,
        )
    if format == "text":
        if password:
            return serialize_encrypted_wallet_text(wallet, password)
        return serialize_wallet_text(wallet)
    raise ValueError(f"Unsupported export format: {format}")


__all__ = [
    "ContentType",
    "ExportFormat",
    "ImportResult",
    "detect_content_type",
    "export_wallet",
    "import_wallet",
]

"""
Tests for format detection and the import/export entry points.
"""

import json

import pytest

from alphawallet.config import WalletSettings
from alphawallet.errors import IntegrityCheckFailed, InvalidFormat, NeedsPassword, WrongPassword
from alphawallet.formats import detect_content_type, export_wallet, import_wallet
from alphawallet.wallet.models import DerivationMode, WalletSource

SQLITE_HEADER = b"SQLite format 3\x00" + b"\x00" * 84


@pytest.fixture
def settings() -> WalletSettings:
    return WalletSettings(recovery_scan_limit=10)


@pytest.fixture
def legacy_dat(master_key) -> bytes:
    return (
        SQLITE_HEADER
        + b"key"
        + b"\x21"
        + b"\x02" * 33
        + b"\x04\x20"
        + bytes.fromhex(master_key)
        + b"\x00" * 200
    )


class TestDetection:
    def test_sqlite_bytes(self, legacy_dat):
        assert detect_content_type(legacy_dat) == "dat"

    def test_berkeley_db_bytes(self):
        assert detect_content_type(b"\x00" * 12 + b"\x62\x31\x05\x00" + b"\x00" * 20) == "dat"

    def test_json(self, bip32_wallet):
        content = export_wallet(bip32_wallet, "json")
        assert detect_content_type(content) == "json"
        assert detect_content_type(content.encode()) == "json"

    def test_text(self, bip32_wallet):
        assert detect_content_type(export_wallet(bip32_wallet, "text")) == "text"

    def test_undecodable_bytes(self):
        assert detect_content_type(b"\xff\xfe\xfd") == "dat"


class TestImport:
    @pytest.mark.asyncio
    async def test_text(self, bip32_wallet, settings):
        result = await import_wallet(export_wallet(bip32_wallet, "text"), settings=settings)

        assert result.success
        assert result.message == "Wallet restored successfully!"
        assert result.source == WalletSource.FILE_BIP32
        assert result.derivation_mode == DerivationMode.BIP32
        assert len(result.wallet.addresses) == 3

    @pytest.mark.asyncio
    async def test_json_bytes(self, bip32_wallet, settings):
        content = export_wallet(bip32_wallet, "json", password="pw").encode()
        result = await import_wallet(content, password="pw", settings=settings)

        assert result.success
        assert result.mnemonic == bip32_wallet.mnemonic
        assert result.source == WalletSource.MNEMONIC

    @pytest.mark.asyncio
    async def test_dat(self, legacy_dat, settings):
        result = await import_wallet(legacy_dat, settings=settings)

        assert result.success
        assert result.source == WalletSource.DAT_LEGACY
        assert result.derivation_mode == DerivationMode.WIF_HMAC
        assert result.message == "Wallet imported successfully from Alpha wallet.dat!"

    @pytest.mark.asyncio
    async def test_bare_key_material(self, master_key, chain_code, settings):
        content = f"Master Private Key: {master_key}\nChain Code: {chain_code}\n"
        result = await import_wallet(content, settings=settings)

        assert result.success
        assert result.source == WalletSource.FILE_BIP32
        assert result.wallet.addresses[0].path == "m/84'/1'/0'/0/0"

    @pytest.mark.asyncio
    async def test_errors_are_returned(self, bip32_wallet, wif_hmac_wallet, settings):
        encrypted = export_wallet(bip32_wallet, "text", password="pw")

        missing = await import_wallet(encrypted, settings=settings)
        assert isinstance(missing.error, NeedsPassword)
        assert missing.wallet is None
        assert not missing.success

        wrong = await import_wallet(encrypted, password="bad", settings=settings)
        assert isinstance(wrong.error, WrongPassword)

        tampered = export_wallet(bip32_wallet, "text").replace(
            bip32_wallet.addresses[2].address, wif_hmac_wallet.addresses[0].address
        )
        result = await import_wallet(tampered, settings=settings)
        assert isinstance(result.error, IntegrityCheckFailed)

    @pytest.mark.asyncio
    async def test_malformed_text_is_returned(self, bip32_wallet, settings):
        second = bip32_wallet.addresses[1]
        content = (
            export_wallet(bip32_wallet, "text")
            .replace(f" (Path: {second.path})", "")
            .replace("DESCRIPTOR PATH: 84'/1'/0'", "DESCRIPTOR PATH: 84'/1'/0`")
        )
        result = await import_wallet(content, settings=settings)
        assert isinstance(result.error, InvalidFormat)
        assert result.wallet is None

        skipped = export_wallet(bip32_wallet, "text").replace("Address 2:", "Address 2;")
        result = await import_wallet(skipped, settings=settings)
        assert isinstance(result.error, IntegrityCheckFailed)

    @pytest.mark.asyncio
    async def test_tampered_json_listing_is_returned(self, bip32_wallet, settings):
        doc = json.loads(export_wallet(bip32_wallet, "json", include_all_addresses=True))
        doc["addresses"][2]["address"] = bip32_wallet.addresses[0].address
        result = await import_wallet(json.dumps(doc), settings=settings)
        assert isinstance(result.error, IntegrityCheckFailed)

    @pytest.mark.asyncio
    async def test_dat_requires_bytes(self, settings):
        result = await import_wallet("not bytes", content_type="dat", settings=settings)
        assert isinstance(result.error, InvalidFormat)

    @pytest.mark.asyncio
    async def test_garbage_bytes(self, settings):
        result = await import_wallet(b"\xff\xfe\xfd" * 10, settings=settings)
        assert isinstance(result.error, InvalidFormat)

    @pytest.mark.asyncio
    async def test_custom_prefix(self, bip32_wallet):
        content = export_wallet(bip32_wallet, "json")
        result = await import_wallet(content, settings=WalletSettings(address_prefix="tb"))
        # firstAddress was written with the alpha prefix
        assert isinstance(result.error, IntegrityCheckFailed)


class TestExport:
    def test_text_formats(self, bip32_wallet):
        assert "MASTER PRIVATE KEY (keep secret!)" in export_wallet(bip32_wallet, "text")
        assert "ENCRYPTED MASTER KEY" in export_wallet(bip32_wallet, "text", password="pw")

    def test_json_address_count(self, bip32_wallet):
        content = export_wallet(bip32_wallet, "json", address_count=2)
        assert bip32_wallet.addresses[1].address in content

    def test_unknown_format(self, bip32_wallet):
        with pytest.raises(ValueError):
            export_wallet(bip32_wallet, "xml")

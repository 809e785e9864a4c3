"""
Tests for the alpha-wallet CLI.
"""

import json
import sys

import pytest
from loguru import logger
from typer.testing import CliRunner

from alphawallet.cli import app
from alphawallet.formats import export_wallet
from alphawallet.wallet.address import address_to_scripthash

runner = CliRunner()


@pytest.fixture(autouse=True)
def restore_logging():
    yield
    logger.remove()
    logger.add(sys.stderr)


class TestScripthash:
    def test_valid_address(self, bip32_wallet):
        address = bip32_wallet.addresses[0].address
        result = runner.invoke(app, ["scripthash", address])
        assert result.exit_code == 0
        assert address_to_scripthash(address) in result.stdout

    def test_invalid_address(self):
        result = runner.invoke(app, ["scripthash", "alpha1qbogus"])
        assert result.exit_code == 1


class TestGenerate:
    def test_prints_mnemonic_and_addresses(self):
        result = runner.invoke(app, ["generate", "--words", "12", "--addresses", "2"])
        assert result.exit_code == 0
        assert "GENERATED MNEMONIC" in result.stdout
        assert "m/84'/1'/0'/0/1" in result.stdout

    def test_rejects_word_count(self):
        result = runner.invoke(app, ["generate", "--words", "13"])
        assert result.exit_code == 1

    def test_writes_json_backup(self, tmp_path):
        output = tmp_path / "wallet.json"
        result = runner.invoke(app, ["generate", "--output", str(output), "--addresses", "2"])
        assert result.exit_code == 0
        doc = json.loads(output.read_text())
        assert doc["version"] == "1.0"
        assert doc["source"] == "mnemonic"
        assert len(doc["addresses"]) == 1


class TestWalletFileCommands:
    def test_info(self, tmp_path, bip32_wallet):
        wallet_file = tmp_path / "backup.txt"
        wallet_file.write_text(export_wallet(bip32_wallet, "text"))

        result = runner.invoke(app, ["info", str(wallet_file)])

        assert result.exit_code == 0
        assert "bip32" in result.stdout
        for addr in bip32_wallet.addresses:
            assert addr.address in result.stdout

    def test_info_missing_file(self, tmp_path):
        result = runner.invoke(app, ["info", str(tmp_path / "missing.dat")])
        assert result.exit_code == 1

    def test_verify(self, tmp_path, bip32_wallet):
        wallet_file = tmp_path / "backup.json"
        wallet_file.write_text(export_wallet(bip32_wallet, "json", password="pw"))

        result = runner.invoke(app, ["verify", str(wallet_file), "--password", "pw"])

        assert result.exit_code == 0
        assert "Wallet restored successfully!" in result.stdout
        assert "Verified 1 address(es)" in result.stdout

    def test_verify_needs_password(self, tmp_path, bip32_wallet):
        wallet_file = tmp_path / "backup.json"
        wallet_file.write_text(export_wallet(bip32_wallet, "json", password="pw"))

        result = runner.invoke(app, ["verify", str(wallet_file)], env={"ALPHA_WALLET_PASSWORD": ""})
        assert result.exit_code == 1

    def test_export_text_to_json(self, tmp_path, bip32_wallet):
        source = tmp_path / "backup.txt"
        source.write_text(export_wallet(bip32_wallet, "text"))
        target = tmp_path / "out" / "backup.json"

        result = runner.invoke(
            app,
            ["export", str(source), "--format", "json", "--output", str(target), "--all-addresses"],
        )

        assert result.exit_code == 0
        doc = json.loads(target.read_text())
        assert doc["masterPrivateKey"] == bip32_wallet.master_private_key
        assert [a["address"] for a in doc["addresses"]] == [
            a.address for a in bip32_wallet.addresses
        ]

    def test_export_with_new_password(self, tmp_path, bip32_wallet):
        source = tmp_path / "backup.json"
        source.write_text(export_wallet(bip32_wallet, "json"))

        result = runner.invoke(
            app, ["export", str(source), "--format", "text", "--new-password", "x"]
        )

        assert result.exit_code == 0
        assert "ENCRYPTED MASTER KEY" in result.stdout
        assert bip32_wallet.master_private_key not in result.stdout

    def test_export_unknown_format(self, tmp_path, bip32_wallet):
        source = tmp_path / "backup.txt"
        source.write_text(export_wallet(bip32_wallet, "text"))
        result = runner.invoke(app, ["export", str(source), "--format", "xml"])
        assert result.exit_code == 1

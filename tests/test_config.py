"""
Tests for wallet settings.
"""

import pytest
from pydantic import ValidationError

from alphawallet.config import WalletSettings, get_settings


class TestWalletSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("ALPHA_WALLET_FEE", raising=False)
        settings = WalletSettings()
        assert settings.address_prefix == "alpha"
        assert settings.fee == 10_000
        assert settings.dust_threshold == 546
        assert settings.default_base_path == "m/84'/1'/0'"
        assert settings.scan_base_paths[0] == "m/84'/1'/0'"
        assert len(settings.scan_base_paths) == 4
        assert settings.decrypt_timeout == 120.0

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("ALPHA_WALLET_FEE", "2000")
        monkeypatch.setenv("ALPHA_WALLET_ADDRESS_PREFIX", "talpha")
        monkeypatch.setenv("ALPHA_WALLET_SCAN_BASE_PATHS", '["m/44\'/0\'/0\'"]')
        settings = get_settings()
        assert settings.fee == 2000
        assert settings.address_prefix == "talpha"
        assert settings.scan_base_paths == ["m/44'/0'/0'"]

    def test_rejects_uppercase_prefix(self):
        with pytest.raises(ValidationError):
            WalletSettings(address_prefix="ALPHA")

    def test_rejects_relative_base_path(self):
        with pytest.raises(ValidationError):
            WalletSettings(default_base_path="84'/1'/0'")

    def test_trailing_slash_stripped(self):
        assert WalletSettings(default_base_path="m/44'/0'/0'/").default_base_path == "m/44'/0'/0'"

    def test_negative_fee(self):
        with pytest.raises(ValidationError):
            WalletSettings(fee=-1)

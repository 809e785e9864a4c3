"""
Pytest configuration and fixtures for alphawallet tests.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

import pytest

from alphawallet.backends.base import ChainBackend, balance_from_sats, utxo_from_listunspent
from alphawallet.wallet.keymanager import KeyManager
from alphawallet.wallet.models import UTXO, Wallet


class MockChainBackend(ChainBackend):
    """
    In-memory chain backend keyed by address.

    ``listunspent`` takes Electrum-style records; balances not given explicitly
    are summed from the address UTXOs.
    """

    def __init__(
        self,
        balances: dict[str, Decimal] | None = None,
        utxos: dict[str, list[UTXO]] | None = None,
        listunspent: dict[str, list[dict[str, Any]]] | None = None,
    ):
        self.balances = balances or {}
        self.utxos = utxos or {}
        for address, records in (listunspent or {}).items():
            self.utxos.setdefault(address, []).extend(
                utxo_from_listunspent(record, address) for record in records
            )
        self.balance_calls: list[str] = []
        self.broadcasts: list[str] = []

    async def get_balance(self, address: str) -> Decimal:
        self.balance_calls.append(address)
        if address in self.balances:
            return self.balances[address]
        return balance_from_sats(sum(u.value for u in self.utxos.get(address, [])))

    async def get_utxos(self, address: str) -> list[UTXO]:
        return list(self.utxos.get(address, []))

    async def broadcast(self, raw_tx_hex: str) -> str:
        self.broadcasts.append(raw_tx_hex)
        return "ok"


@pytest.fixture
def test_mnemonic() -> str:
    """Test mnemonic (BIP39 test vector)"""
    return (
        "abandon abandon abandon abandon abandon abandon "
        "abandon abandon abandon abandon abandon about"
    )


@pytest.fixture
def master_key() -> str:
    """Master key of BIP32 test vector 1"""
    return "e8f32e723decf4051aefac8e2c93c9c5b214313817cdb01a1494b917c8436b35"


@pytest.fixture
def chain_code() -> str:
    """Chain code of BIP32 test vector 1"""
    return "873dff81c02f525623fd1fe5167eac3a55a049de3d314bb42ee227ffed37d508"


@pytest.fixture
def key_manager(test_mnemonic: str) -> KeyManager:
    manager = KeyManager()
    manager.init_from_mnemonic(test_mnemonic)
    return manager


@pytest.fixture
def bip32_wallet(key_manager: KeyManager) -> Wallet:
    """Mnemonic wallet with three receive addresses at m/84'/1'/0'/0/i"""
    return key_manager.to_wallet(address_count=3)


@pytest.fixture
def wif_hmac_wallet(master_key: str) -> Wallet:
    manager = KeyManager()
    manager.init_with_mode(master_key, None, "wif_hmac")
    return manager.to_wallet(address_count=2)


@pytest.fixture
def mock_backend() -> MockChainBackend:
    return MockChainBackend()


@pytest.fixture
def backend_factory() -> type[MockChainBackend]:
    return MockChainBackend

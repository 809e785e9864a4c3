"""
Tests for BIP32 derivation and the legacy derivation schemes.
"""

import hashlib
import hmac

import pytest

from alphawallet.errors import InvalidKey
from alphawallet.wallet.address import public_key_to_address
from alphawallet.wallet.bip32 import (
    HDKey,
    derive_at_path,
    derive_child,
    derive_child_legacy,
    derive_key_wif_hmac,
    extract_base_path,
    generate_mnemonic,
    legacy_path,
    master_key_from_seed,
    mnemonic_to_seed,
    parse_path,
    validate_mnemonic,
    wif_hmac_path,
)

VECTOR1_SEED = bytes.fromhex("000102030405060708090a0b0c0d0e0f")


class TestMasterKey:
    def test_vector1_master(self, master_key, chain_code):
        key, cc = master_key_from_seed(VECTOR1_SEED)
        assert key.hex() == master_key
        assert cc.hex() == chain_code

    def test_vector1_serialization(self):
        root = HDKey.from_seed(VECTOR1_SEED)
        assert root.to_xprv() == (
            "xprv9s21ZrQH143K3QTDL4LXw2F7HEK3wJUD2nW2nRk4stbPy6cq3jPPqjiChkVvvNK"
            "mPGJxWUtg6LnF5kejMRNNU3TGtRBeJgk33yuGBxrMPHi"
        )
        assert root.to_xpub() == (
            "xpub661MyMwAqRbcFtXgS5sYJABqqG9YLmC4Q1Rdap9gSE8NqtwybGhePY2gZ29ESFj"
            "qJoCu1Rupje8YtGqsefD265TMg7usUDFdp6W1EGMcet8"
        )

    def test_vector1_hardened_child(self):
        child = HDKey.from_seed(VECTOR1_SEED).derive("m/0'")
        assert child.depth == 1
        assert child.to_xpub() == (
            "xpub68Gmy5EdvgibQVfPdqkBBCHxA5htiqg55crXYuXoQRKfDBFA1WEjWgP6LHhwBZe"
            "NK1VTsfTFUHCdrfp1bgwQ9xv5ski8PX9rL2dZXvgGDnw"
        )

    def test_hd_key_matches_functional_derivation(self, master_key, chain_code):
        path = "m/84'/1'/0'/0/3"
        key, cc = derive_at_path(bytes.fromhex(master_key), bytes.fromhex(chain_code), path)
        hd = HDKey.from_master(master_key, chain_code).derive(path)
        assert hd.get_private_key_bytes() == key
        assert hd.chain_code == cc


class TestPathParsing:
    def test_prime_and_h_are_equivalent(self):
        assert parse_path("m/84'/1'/0'/0/5") == parse_path("84h/1h/0h/0/5")

    def test_hardened_offset(self):
        assert parse_path("m/0'/1") == [0x80000000, 1]

    def test_root(self):
        assert parse_path("m") == []

    def test_invalid_component(self):
        with pytest.raises(ValueError):
            parse_path("m/84'/x/0")

    def test_derive_child_index_range(self, master_key, chain_code):
        with pytest.raises(ValueError):
            derive_child(bytes.fromhex(master_key), bytes.fromhex(chain_code), 2**32)

    def test_extract_base_path(self):
        assert extract_base_path("m/84'/1'/0'/0/5") == "84'/1'/0'"
        assert extract_base_path("m/44h/0h/0h/1/2") == "44'/0'/0'"
        assert extract_base_path("m/44'/0'/3'") is None


class TestMnemonic:
    def test_bip39_seed_vector(self, test_mnemonic):
        seed = mnemonic_to_seed(test_mnemonic)
        assert seed.hex() == (
            "5eb00bbddcf069084889a8ab9155568165f5c453ccb85e70811aaed6f6da5fc1"
            "9a5ac40b389cd370d086206dec8aa6c43daea6690f20ad3d8d48b2d2ce9e38e4"
        )

    def test_bip84_first_address(self, test_mnemonic):
        root = HDKey.from_seed(mnemonic_to_seed(test_mnemonic))
        key = root.derive("m/84'/0'/0'/0/0")
        pubkey = key.get_public_key_bytes().hex()
        assert pubkey == "0330d54fd0dd420a6e5f8d3624f5f3482cae350f79d5f0753bf5beef9c2d91af3c"
        assert public_key_to_address(pubkey, "bc") == "bc1qcr8te4kr609gcawutmrza0j4xv80jy8z306fyu"
        assert key.get_address().startswith("alpha1q")

    def test_generate_and_validate(self):
        mnemonic = generate_mnemonic(256)
        assert len(mnemonic.split()) == 24
        assert validate_mnemonic(mnemonic)

    def test_invalid_checksum(self, test_mnemonic):
        assert not validate_mnemonic(test_mnemonic.replace("about", "abandon"))


class TestLegacySchemes:
    def test_legacy_hmac_matches_definition(self, master_key, chain_code):
        master = bytes.fromhex(master_key)
        cc = bytes.fromhex(chain_code)
        expected = hmac.new(cc, master + (5).to_bytes(4, "big"), hashlib.sha512).digest()
        key, child_cc = derive_child_legacy(master, cc, 5)
        assert key == expected[:32]
        assert child_cc == expected[32:]
        assert legacy_path(5) == "m/44'/0'/0'/5"

    def test_wif_hmac_keyed_by_path(self, master_key):
        master = bytes.fromhex(master_key)
        expected = hmac.new(b"m/44'/0'/2'", master, hashlib.sha512).digest()[:32]
        assert derive_key_wif_hmac(master, 2) == expected
        assert wif_hmac_path(2) == "m/44'/0'/2'"

    def test_wif_hmac_indices_differ(self, master_key):
        master = bytes.fromhex(master_key)
        assert derive_key_wif_hmac(master, 0) != derive_key_wif_hmac(master, 1)

    def test_from_master_rejects_bad_chain_code(self, master_key):
        with pytest.raises(InvalidKey):
            HDKey.from_master(master_key, "00" * 16)

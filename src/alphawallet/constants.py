"""
Alpha L1 wallet constants.

Amounts are in satoshis unless the name says otherwise.
"""

from __future__ import annotations

# 1 ALPHA = 100,000,000 satoshis
SAT = 100_000_000

# Flat fee charged per spent input (one input per transaction)
FEE = 10_000

# Change at or below this value is dropped and left to the miner
DUST = 546

# Bech32 human readable part for Alpha addresses
ADDRESS_PREFIX = "alpha"

# Transaction fields
TX_VERSION = 2
TX_SEQUENCE = 0xFFFFFFFE
TX_LOCKTIME = 0
SIGHASH_ALL = 0x01

HARDENED_OFFSET = 0x80000000

# Derivation defaults (descriptor paths never carry the "m/" prefix)
DEFAULT_BASE_PATH = "m/84'/1'/0'"
DEFAULT_DESCRIPTOR_PATH = "84'/1'/0'"
LEGACY_JSON_DESCRIPTOR_PATH = "44'/0'/0'"

# Base paths tried when scanning a wallet without a known descriptor path
SCAN_BASE_PATHS = (
    "m/84'/1'/0'",
    "m/84'/0'/0'",
    "m/44'/1'/0'",
    "m/44'/0'/0'",
)
SCAN_CHAINS = (0, 1)
DEFAULT_SCAN_MAX_ADDRESSES = 200
SCAN_YIELD_EVERY = 10

# Number of indices tried when recovering the key for an imported address
RECOVERY_SCAN_LIMIT = 100

# Text backup format
TEXT_HEADER = "UNICITY WALLET DETAILS"
TEXT_SEPARATOR = "==========================="
TEXT_KDF_SALT = "alpha_wallet_salt"
TEXT_KDF_ITERATIONS = 100_000

# JSON backup format
JSON_VERSION = "1.0"
JSON_SALT_PREFIX = "unicity_wallet_json_"
JSON_KDF_ITERATIONS = 100_000
JSON_WARNING = "Keep this file secure! Anyone with this data can access your funds."

# Legacy .dat decryption
DAT_MIN_ITERATIONS = 1_000
DAT_MAX_ITERATIONS = 10_000_000
DAT_YIELD_EVERY = 1_000
DAT_DECRYPT_TIMEOUT = 120.0

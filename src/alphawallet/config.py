"""
Configuration management using pydantic-settings.
"""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from alphawallet.constants import (
    ADDRESS_PREFIX,
    DAT_DECRYPT_TIMEOUT,
    DAT_YIELD_EVERY,
    DEFAULT_BASE_PATH,
    DEFAULT_SCAN_MAX_ADDRESSES,
    DUST,
    FEE,
    RECOVERY_SCAN_LIMIT,
    SCAN_BASE_PATHS,
)


class WalletSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="ALPHA_WALLET_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    address_prefix: str = ADDRESS_PREFIX

    fee: int = Field(default=FEE, ge=0)  # sats, flat per transaction
    dust_threshold: int = Field(default=DUST, ge=0)

    default_base_path: str = DEFAULT_BASE_PATH
    scan_max_addresses: int = Field(default=DEFAULT_SCAN_MAX_ADDRESSES, ge=0)
    scan_base_paths: list[str] = Field(default_factory=lambda: list(SCAN_BASE_PATHS))
    recovery_scan_limit: int = Field(default=RECOVERY_SCAN_LIMIT, gt=0)

    decrypt_timeout: float = Field(default=DAT_DECRYPT_TIMEOUT, gt=0)
    decrypt_yield_every: int = Field(default=DAT_YIELD_EVERY, gt=0)

    log_level: str = "INFO"

    @field_validator("address_prefix")
    @classmethod
    def lowercase_prefix(cls, v: str) -> str:
        if not v or v != v.lower():
            raise ValueError("address_prefix must be a non-empty lowercase string")
        return v

    @field_validator("default_base_path")
    @classmethod
    def absolute_path(cls, v: str) -> str:
        if not v.startswith("m/"):
            raise ValueError("default_base_path must start with m/")
        return v.rstrip("/")


def get_settings() -> WalletSettings:
    return WalletSettings()

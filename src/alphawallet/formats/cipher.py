"""
Password-based encryption used by the wallet backup formats.

Text and JSON backups wrap secrets in the OpenSSL "Salted__" envelope
(EVP_BytesToKey with MD5, AES-256-CBC, PKCS7), using a PBKDF2-derived hex
string as the passphrase. Legacy .dat files use Bitcoin Core's iterated
SHA-512 key stretching.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import hashlib
import secrets

from Crypto.Cipher import AES
from Crypto.Util.Padding import pad, unpad

from alphawallet.constants import (
    DAT_YIELD_EVERY,
    JSON_KDF_ITERATIONS,
    TEXT_KDF_ITERATIONS,
    TEXT_KDF_SALT,
)
from alphawallet.errors import WrongPassword

OPENSSL_MAGIC = b"Salted__"


def evp_bytes_to_key(
    passphrase: bytes, salt: bytes, key_len: int = 32, iv_len: int = 16
) -> tuple[bytes, bytes]:
    """OpenSSL EVP_BytesToKey with MD5 and a single iteration."""
    derived = b""
    block = b""
    while len(derived) < key_len + iv_len:
        block = hashlib.md5(block + passphrase + salt).digest()
        derived += block
    return derived[:key_len], derived[key_len : key_len + iv_len]


def openssl_encrypt(plaintext: str, passphrase: str, salt: bytes | None = None) -> str:
    if salt is None:
        salt = secrets.token_bytes(8)
    key, iv = evp_bytes_to_key(passphrase.encode("utf-8"), salt)
    ciphertext = AES.new(key, AES.MODE_CBC, iv).encrypt(pad(plaintext.encode("utf-8"), 16))
    return base64.b64encode(OPENSSL_MAGIC + salt + ciphertext).decode("ascii")


def openssl_decrypt(encoded: str, passphrase: str) -> str:
    """Decrypt an OpenSSL envelope; any failure surfaces as WrongPassword."""
    try:
        raw = base64.b64decode(encoded.strip(), validate=True)
    except (binascii.Error, ValueError) as e:
        raise WrongPassword(f"Encrypted data is not valid base64: {e}") from e

    if not raw.startswith(OPENSSL_MAGIC) or len(raw) < 32 or (len(raw) - 16) % 16:
        raise WrongPassword("Encrypted data is not an OpenSSL salted envelope")

    salt = raw[8:16]
    key, iv = evp_bytes_to_key(passphrase.encode("utf-8"), salt)
    try:
        plaintext = unpad(AES.new(key, AES.MODE_CBC, iv).decrypt(raw[16:]), 16)
        text = plaintext.decode("utf-8")
    except (ValueError, UnicodeDecodeError) as e:
        raise WrongPassword("Failed to decrypt, the password may be incorrect") from e

    if not text:
        raise WrongPassword("Failed to decrypt, the password may be incorrect")
    return text


def text_format_key(password: str) -> str:
    """PBKDF2-HMAC-SHA1 key for the text backup, as a hex passphrase."""
    return hashlib.pbkdf2_hmac(
        "sha1",
        password.encode("utf-8"),
        TEXT_KDF_SALT.encode("utf-8"),
        TEXT_KDF_ITERATIONS,
        dklen=32,
    ).hex()


def json_format_key(password: str, salt: str, iterations: int = JSON_KDF_ITERATIONS) -> str:
    """PBKDF2-HMAC-SHA256 key for the JSON backup, as a hex passphrase."""
    return hashlib.pbkdf2_hmac(
        "sha256", password.encode("utf-8"), salt.encode("utf-8"), iterations, dklen=32
    ).hex()


async def stretch_passphrase(
    password: str,
    salt: bytes,
    iterations: int,
    yield_every: int = DAT_YIELD_EVERY,
) -> tuple[bytes, bytes]:
    """
    Bitcoin Core CCrypter key derivation (method 0).

    digest = SHA512(password || salt), then rehashed iterations - 1 times;
    key = digest[0:32], iv = digest[32:48]. Yields to the event loop every
    ``yield_every`` rounds.
    """
    digest = hashlib.sha512(password.encode("utf-8") + salt).digest()
    for i in range(1, iterations):
        digest = hashlib.sha512(digest).digest()
        if i % yield_every == 0:
            await asyncio.sleep(0)
    return digest[:32], digest[32:48]


def aes_cbc_decrypt(ciphertext: bytes, key: bytes, iv: bytes) -> bytes:
    """AES-256-CBC with PKCS7; padding errors raise WrongPassword."""
    if not ciphertext or len(ciphertext) % 16:
        raise WrongPassword("Ciphertext length is not a multiple of the block size")
    try:
        return unpad(AES.new(key, AES.MODE_CBC, iv).decrypt(ciphertext), 16)
    except ValueError as e:
        raise WrongPassword("Decryption failed") from e


def aes_cbc_encrypt(plaintext: bytes, key: bytes, iv: bytes) -> bytes:
    return AES.new(key, AES.MODE_CBC, iv).encrypt(pad(plaintext, 16))

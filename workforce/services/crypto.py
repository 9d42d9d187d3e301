from __future__ import annotations

import logging
import os
from functools import lru_cache

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from workforce.settings import get_settings

logger = logging.getLogger("workforce.crypto")

KEY_LENGTH = 32
IV_LENGTH = 16
TOKEN_SEPARATOR = ":"
SELF_TEST_PLAINTEXT = "12345678Z"


class EncryptionFailure(Exception):
    pass


class FieldCipher:
    """AES-256-CBC codec for nullable PII strings.

    Tokens look like ``<iv hex>:<ciphertext hex>``. ``encrypt`` raises on a
    broken key; ``decrypt`` never raises and answers ``None`` for anything it
    cannot read, except values without a separator, which are legacy plaintext
    and come back unchanged.
    """

    def __init__(self, key: str | bytes | None) -> None:
        if isinstance(key, str):
            key = key.encode("utf-8")
        self._key = key or b""

    @property
    def key_is_valid(self) -> bool:
        return len(self._key) == KEY_LENGTH

    def _require_key(self) -> bytes:
        if not self.key_is_valid:
            raise EncryptionFailure(
                f"Encryption key must be exactly {KEY_LENGTH} bytes (got {len(self._key)})."
            )
        return self._key

    def encrypt(self, plaintext: str | None) -> str | None:
        if not plaintext:
            return None

        key = self._require_key()
        iv = os.urandom(IV_LENGTH)
        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()
        try:
            encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
            ciphertext = encryptor.update(padded) + encryptor.finalize()
        except ValueError as exc:
            raise EncryptionFailure("Field encryption failed.") from exc
        return f"{iv.hex()}{TOKEN_SEPARATOR}{ciphertext.hex()}"

    def decrypt(self, token: str | None) -> str | None:
        if not token:
            return None
        if TOKEN_SEPARATOR not in token:
            return token

        iv_hex, cipher_hex = token.split(TOKEN_SEPARATOR, 1)
        try:
            key = self._require_key()
            iv = bytes.fromhex(iv_hex)
            ciphertext = bytes.fromhex(cipher_hex)
            decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
            padded = decryptor.update(ciphertext) + decryptor.finalize()
            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            raw = unpadder.update(padded) + unpadder.finalize()
            return raw.decode("utf-8")
        except (EncryptionFailure, ValueError, TypeError) as exc:
            logger.warning(
                "field_decrypt_failed",
                extra={"error": exc.__class__.__name__, "token_length": len(token)},
            )
            return None

    def self_test(self) -> bool:
        try:
            token = self.encrypt(SELF_TEST_PLAINTEXT)
        except EncryptionFailure:
            return False
        return token is not None and self.decrypt(token) == SELF_TEST_PLAINTEXT


@lru_cache
def get_field_cipher() -> FieldCipher:
    return FieldCipher(get_settings().encryption_key)


def run_startup_self_test(cipher: FieldCipher | None = None) -> None:
    codec = cipher or get_field_cipher()
    if not codec.self_test():
        logger.error("field_cipher_self_test_failed", extra={"key_is_valid": codec.key_is_valid})
        raise RuntimeError("Field encryption self-test failed; check ENCRYPTION_KEY.")
    logger.info("field_cipher_self_test_ok")

"""
Token vault for Google refresh tokens stored at rest.

AES-256-GCM (authenticated, tamper-evident) with a fresh 128-bit nonce per
call. Serialized as three hex fields: ``nonce:tag:ciphertext``.
"""
import os
from functools import lru_cache

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from shared.config import settings

KEY_LENGTH = 32    # 256 bits
NONCE_LENGTH = 16  # 128 bits
TAG_LENGTH = 16    # 128 bits


class TokenDecryptionError(ValueError):
    """Raised when a stored token is malformed or fails authentication."""


class TokenVault:
    def __init__(self, key: bytes):
        if len(key) != KEY_LENGTH:
            raise ValueError(f"Encryption key must be {KEY_LENGTH} bytes ({KEY_LENGTH * 2} hex characters)")
        self._aesgcm = AESGCM(key)

    @classmethod
    def from_hex(cls, hex_key: str) -> "TokenVault":
        if not hex_key:
            raise ValueError("FATAL ERROR: ENCRYPTION_KEY is not set in the environment!")
        try:
            key = bytes.fromhex(hex_key)
        except ValueError as e:
            raise ValueError("ENCRYPTION_KEY must be a hex string") from e
        return cls(key)

    def encrypt(self, plaintext: str) -> str:
        nonce = os.urandom(NONCE_LENGTH)
        sealed = self._aesgcm.encrypt(nonce, plaintext.encode("utf-8"), None)
        # AESGCM appends the tag to the ciphertext
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return f"{nonce.hex()}:{tag.hex()}:{ciphertext.hex()}"

    def decrypt(self, encrypted: str) -> str:
        if not encrypted or not isinstance(encrypted, str):
            raise TokenDecryptionError("Invalid encrypted string")

        parts = encrypted.split(":")
        if len(parts) != 3:
            raise TokenDecryptionError('Invalid encrypted format. Expected "nonce:tag:ciphertext"')

        try:
            nonce, tag, ciphertext = (bytes.fromhex(part) for part in parts)
        except ValueError as e:
            raise TokenDecryptionError("Encrypted fields must be hex") from e

        if len(nonce) != NONCE_LENGTH or len(tag) != TAG_LENGTH:
            raise TokenDecryptionError("Invalid nonce or tag length")

        try:
            plaintext = self._aesgcm.decrypt(nonce, ciphertext + tag, None)
        except InvalidTag as e:
            raise TokenDecryptionError("Encrypted token failed authentication") from e
        return plaintext.decode("utf-8")


@lru_cache(maxsize=1)
def get_token_vault() -> TokenVault:
    """Process-wide vault built from ENCRYPTION_KEY. Raises ValueError when misconfigured."""
    return TokenVault.from_hex(settings.ENCRYPTION_KEY)

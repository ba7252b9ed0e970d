# socialflow/infrastructure/token_cipher.py
import os
import secrets
from functools import lru_cache
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

TOKEN_ENCRYPTION_KEY = os.getenv("TOKEN_ENCRYPTION_KEY")

KDF_SALT = b"socialflow.connected-account.tokens"
IV_BYTES = 12
DELIMITER = ":"


class CipherConfigurationError(RuntimeError):
    pass


class TokenDecryptionError(ValueError):
    pass


@lru_cache(maxsize=8)
def derive_key(secret: str) -> bytes:
    # cached: one scrypt run per secret
    kdf = Scrypt(salt=KDF_SALT, length=32, n=2**14, r=8, p=1)
    return kdf.derive(secret.encode())


class TokenCipher:
    """
    Symmetric encryption for provider tokens at rest.

    Output format is ``<ivHex>:<cipherHex>``; the cipher part carries the
    AES-GCM tag so a ciphertext produced under another key fails to decrypt.
    """

    def __init__(self, secret: Optional[str]):
        if not secret:
            raise CipherConfigurationError("TOKEN_ENCRYPTION_KEY is not configured")
        self._aead = AESGCM(derive_key(secret))

    def encrypt(self, plaintext: str) -> str:
        iv = secrets.token_bytes(IV_BYTES)
        ct = self._aead.encrypt(iv, plaintext.encode("utf-8"), None)
        return f"{iv.hex()}{DELIMITER}{ct.hex()}"

    def decrypt(self, ciphertext: str) -> str:
        if not ciphertext or DELIMITER not in ciphertext:
            raise TokenDecryptionError("ciphertext is missing the iv delimiter")
        iv_hex, ct_hex = ciphertext.split(DELIMITER, 1)
        try:
            iv = bytes.fromhex(iv_hex)
            ct = bytes.fromhex(ct_hex)
        except ValueError as e:
            raise TokenDecryptionError(f"ciphertext is not hex encoded: {e}") from e
        if len(iv) != IV_BYTES:
            raise TokenDecryptionError(f"iv must be {IV_BYTES} bytes, got {len(iv)}")
        try:
            plain = self._aead.decrypt(iv, ct, None)
        except InvalidTag as e:
            raise TokenDecryptionError("ciphertext was not produced under this key") from e
        return plain.decode("utf-8")

    def encrypt_optional(self, plaintext: Optional[str]) -> Optional[str]:
        if plaintext is None:
            return None
        return self.encrypt(plaintext)

    def decrypt_optional(self, ciphertext: Optional[str]) -> Optional[str]:
        if not ciphertext:
            return None
        return self.decrypt(ciphertext)


@lru_cache(maxsize=1)
def get_token_cipher() -> TokenCipher:
    """Process-wide cipher keyed from TOKEN_ENCRYPTION_KEY; raises if the key is absent."""
    return TokenCipher(os.getenv("TOKEN_ENCRYPTION_KEY", TOKEN_ENCRYPTION_KEY or ""))

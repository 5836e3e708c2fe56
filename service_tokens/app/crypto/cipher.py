"""
Authenticated encryption primitive for token payloads.
"""

import os
from typing import Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC


NONCE_SIZE = 12
TAG_SIZE = 16
KEY_SIZE = 32

# Fixed so every process derives the same key from the same secret.
KDF_SALT = b"service_tokens.key_version.v1"
DEFAULT_KDF_ITERATIONS = 100_000


class DecryptionError(Exception):
    """Ciphertext did not authenticate under the given key."""


def derive_key(secret: Union[str, bytes], iterations: int = DEFAULT_KDF_ITERATIONS) -> bytes:
    """Derive a 256-bit AES key from an opaque secret."""
    if isinstance(secret, str):
        secret = secret.encode("utf-8")
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_SIZE,
        salt=KDF_SALT,
        iterations=iterations,
    )
    return kdf.derive(secret)


class AeadCipher:
    """AES-256-GCM with a random 96-bit nonce.

    Output layout is ``nonce || ciphertext || tag``; no associated data.
    """

    def encrypt(self, plaintext: bytes, key: bytes) -> bytes:
        nonce = os.urandom(NONCE_SIZE)
        return nonce + AESGCM(key).encrypt(nonce, plaintext, None)

    def decrypt(self, ciphertext: bytes, key: bytes) -> bytes:
        if len(ciphertext) < NONCE_SIZE + TAG_SIZE:
            raise DecryptionError("Ciphertext is too short")
        nonce, body = ciphertext[:NONCE_SIZE], ciphertext[NONCE_SIZE:]
        try:
            return AESGCM(key).decrypt(nonce, body, None)
        except InvalidTag as exc:
            raise DecryptionError("Ciphertext failed authentication") from exc

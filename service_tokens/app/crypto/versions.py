"""
Ordered table of key versions used for token encryption.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from shared.config import RESERVED_CLAIM_NAMES
from shared.errors import ConfigurationError, InvalidVersionError
from shared.logging import get_logger
from .cipher import AeadCipher, DecryptionError, DEFAULT_KDF_ITERATIONS, derive_key


@dataclass(frozen=True)
class KeyVersion:
    """One generation of encryption key plus its ordered claim schema."""

    encryption_key: Union[str, bytes]
    claim_names: Tuple[str, ...]

    def __post_init__(self):
        names = tuple(self.claim_names)
        object.__setattr__(self, "claim_names", names)
        if not self.encryption_key:
            raise ConfigurationError("Key version has an empty encryption key")
        if any(not isinstance(name, str) or not name for name in names):
            raise ConfigurationError(
                "Claim names must be non-empty strings",
                details={"claim_names": list(names)},
            )
        if len(set(names)) != len(names):
            raise ConfigurationError(
                "Claim names must be unique",
                details={"claim_names": list(names)},
            )
        reserved = [name for name in names if name in RESERVED_CLAIM_NAMES]
        if reserved:
            raise ConfigurationError(
                "Claim names are reserved",
                details={"claim_names": reserved},
            )

    def __repr__(self) -> str:
        return f"KeyVersion(claim_names={self.claim_names!r})"


class CipherVersionTable:
    """Key versions in attempt order; the head is the active version.

    Tokens carry no version tag, so decryption probes every version in
    order and the first key that authenticates decides the claim schema.
    """

    def __init__(
        self,
        versions: Iterable[KeyVersion],
        cipher: Optional[AeadCipher] = None,
        *,
        kdf_iterations: int = DEFAULT_KDF_ITERATIONS,
    ):
        self.cipher = cipher or AeadCipher()
        self.logger = get_logger("tokens.versions")
        self._entries: List[Tuple[KeyVersion, bytes]] = [
            (version, derive_key(version.encryption_key, kdf_iterations))
            for version in versions
        ]

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def versions(self) -> Sequence[KeyVersion]:
        return tuple(version for version, _ in self._entries)

    def current_version(self) -> KeyVersion:
        """Return the active version used for new tokens."""
        if not self._entries:
            raise ConfigurationError()
        return self._entries[0][0]

    def encrypt(self, plaintext: bytes) -> bytes:
        """Encrypt under the active version."""
        if not self._entries:
            raise ConfigurationError()
        _, key = self._entries[0]
        return self.cipher.encrypt(plaintext, key)

    def decrypt(self, ciphertext: bytes) -> Tuple[bytes, KeyVersion]:
        """Return the plaintext and the first version whose key authenticates."""
        for index, (version, key) in enumerate(self._entries):
            try:
                plaintext = self.cipher.decrypt(ciphertext, key)
            except DecryptionError:
                continue
            if index:
                self.logger.debug("Token decrypted by retired key version", version_index=index)
            return plaintext, version

        raise InvalidVersionError(details={"versions_tried": len(self._entries)})

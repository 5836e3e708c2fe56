"""
Key versions and authenticated encryption.
"""

from .cipher import AeadCipher, DecryptionError, derive_key
from .versions import CipherVersionTable, KeyVersion

__all__ = ["AeadCipher", "DecryptionError", "derive_key", "CipherVersionTable", "KeyVersion"]

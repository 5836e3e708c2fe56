"""
Token revocation registry.
"""

from .store import RevocationStore, identifier_key

__all__ = ["RevocationStore", "identifier_key"]

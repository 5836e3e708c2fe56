"""
Validated-token cache.
"""

from .lru_cache import ValidatedTokenCache

__all__ = ["ValidatedTokenCache"]

"""
Token lifecycle orchestration.
"""

from .engine import TokenEngine
from .models import ParsedClaims

__all__ = ["TokenEngine", "ParsedClaims"]

"""
Token lifecycle application package.
"""

from .factory import build_token_engine
from .lifecycle.engine import TokenEngine
from .lifecycle.models import ParsedClaims

__all__ = ["TokenEngine", "ParsedClaims", "build_token_engine"]

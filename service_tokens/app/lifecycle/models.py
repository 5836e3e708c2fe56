"""
Data models for parsed tokens.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Mapping

from ..revocation.store import identifier_key


@dataclass(frozen=True)
class ParsedClaims:
    """Claims recovered from a valid token. Never mutated after creation."""

    id: bytes
    created_at: int
    expires_at: int
    claims: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "claims", MappingProxyType(dict(self.claims)))

    @property
    def identifier_key(self) -> str:
        """Text form of the identifier used by the revocation registry."""
        return identifier_key(self.id)

    def __getitem__(self, name: str) -> Any:
        return self.claims[name]

    def get(self, name: str, default: Any = None) -> Any:
        return self.claims.get(name, default)

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.claims,
            "id": self.id,
            "created_at": self.created_at,
            "expires_at": self.expires_at,
        }

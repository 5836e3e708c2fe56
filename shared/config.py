"""
Shared configuration management for the token service.
"""

from typing import List, Optional

from pydantic import BaseModel, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Field names ParsedClaims.to_dict adds next to the claims.
RESERVED_CLAIM_NAMES = ("id", "created_at", "expires_at")


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="TOKENS_",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # External services
    redis_url: str = Field(default="redis://localhost:6379/0")


class KeyVersionConfig(BaseModel):
    """One generation of encryption key plus its ordered claim schema."""

    encryption_key: SecretStr
    claim_names: List[str] = Field(default_factory=list)

    @field_validator("encryption_key")
    @classmethod
    def validate_encryption_key(cls, v: SecretStr) -> SecretStr:
        if not v.get_secret_value():
            raise ValueError("encryption_key must not be empty")
        return v

    @field_validator("claim_names")
    @classmethod
    def validate_claim_names(cls, v: List[str]) -> List[str]:
        if any(not name for name in v):
            raise ValueError("claim names must be non-empty strings")
        if len(set(v)) != len(v):
            raise ValueError("claim names must be unique")
        reserved = [name for name in v if name in RESERVED_CLAIM_NAMES]
        if reserved:
            raise ValueError(f"claim names are reserved: {reserved}")
        return v


class TokenServiceConfig(BaseConfig):
    """Token service configuration.

    ``versions`` is read from ``TOKENS_VERSIONS`` as JSON, newest first:
    ``[{"encryption_key": "...", "claim_names": ["user_id", "scope"]}]``.
    """

    namespace: str
    versions: List[KeyVersionConfig] = Field(min_length=1)

    # Validated-result cache
    cache_max_size: int = Field(default=10_000, ge=1)
    cache_ttl_seconds: Optional[float] = Field(default=None, gt=0)

    # Key derivation and identifiers
    kdf_iterations: int = Field(default=100_000, ge=1)
    node_id: int = Field(default=0, ge=0, le=1023)

    default_ttl_seconds: int = Field(default=3600, gt=0)

    @field_validator("namespace")
    @classmethod
    def validate_namespace(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("namespace must not be empty")
        return v


def get_config(namespace: Optional[str] = None, **overrides) -> TokenServiceConfig:
    """Get token service configuration, letting explicit values win over the environment."""
    if namespace is not None:
        overrides["namespace"] = namespace
    return TokenServiceConfig(**overrides)

"""
Token lifecycle orchestration: create, parse and revoke.
"""

import time
from typing import Any, Callable, Mapping, Optional, TYPE_CHECKING

from shared.errors import (
    REVOKE_NOOP_ERRORS,
    ExpiredTokenError,
    MalformedPayloadError,
    MalformedTokenError,
    MissingClaimError,
    RevokedTokenError,
    TokenError,
    ValidationError,
)
from shared.logging import get_logger
from ..cache.lru_cache import ValidatedTokenCache
from ..codec.base62 import Base62Codec, base62
from ..codec.payload import PayloadCodec, payload_codec
from ..crypto.versions import CipherVersionTable, KeyVersion
from ..ids.snowflake import ID_SIZE, SnowflakeGenerator
from ..revocation.store import RevocationStore
from .models import ParsedClaims

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


class TokenEngine:
    """Issue, validate and revoke encrypted bearer tokens.

    All collaborators are injected so tests can swap any of them. Each call
    is independent; the only shared mutable state is the validated cache.
    """

    def __init__(
        self,
        version_table: CipherVersionTable,
        revocation_store: RevocationStore,
        cache: ValidatedTokenCache,
        id_generator: SnowflakeGenerator,
        *,
        codec: Optional[PayloadCodec] = None,
        transport: Optional[Base62Codec] = None,
        metrics: Optional["MetricsCollector"] = None,
        default_ttl: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.version_table = version_table
        self.revocation_store = revocation_store
        self.cache = cache
        self.id_generator = id_generator
        self.codec = codec or payload_codec
        self.transport = transport or base62
        self.metrics = metrics
        self.default_ttl = default_ttl
        self._clock = clock
        # Incremented after each recorded revocation; parse caches only if unchanged across its store check.
        self._revocation_generation = 0
        self.logger = get_logger("tokens.engine")

    def _now(self) -> int:
        return int(self._clock())

    def _count(self, metric_name: str, **labels) -> None:
        if self.metrics:
            self.metrics.increment_counter(metric_name, **labels)

    async def create(self, claims: Mapping[str, Any], *, ttl: Optional[int] = None) -> str:
        """Create a token carrying the active version's claims.

        Args:
            claims: Mapping holding at least every claim name of the active version.
            ttl: Lifetime in seconds, must be positive. Falls back to ``default_ttl``.

        Returns:
            Printable token string.
        """
        if ttl is None:
            ttl = self.default_ttl
        if not isinstance(ttl, int) or isinstance(ttl, bool) or ttl <= 0:
            raise ValidationError("ttl must be a positive integer", details={"ttl": ttl})

        version = self.version_table.current_version()

        identifier = self.id_generator.create()
        expires_at = self._now() + ttl

        values = []
        for name in version.claim_names:
            if name not in claims:
                raise MissingClaimError(name)
            values.append(claims[name])

        payload = self.codec.encode(identifier, expires_at, values)
        token = self.transport.encode(self.version_table.encrypt(payload))

        self._count("tokens_created_total")
        self.logger.debug("Token created", expires_at=expires_at, claims=len(values))
        return token

    def _decode(self, token: str) -> ParsedClaims:
        """Decrypt and deserialize a token that is not cached."""
        ciphertext = self.transport.decode(token)
        plaintext, version = self.version_table.decrypt(ciphertext)
        payload = self.codec.decode(plaintext)
        return self._build_claims(payload, version)

    def _build_claims(self, payload: list, version: KeyVersion) -> ParsedClaims:
        identifier, expires_at, *values = payload

        if not isinstance(identifier, bytes) or len(identifier) != ID_SIZE:
            raise MalformedPayloadError("Token identifier is invalid")
        if not isinstance(expires_at, int) or isinstance(expires_at, bool):
            raise MalformedPayloadError("Token expiry is invalid")
        if len(values) != len(version.claim_names):
            raise MalformedPayloadError(
                "Token claims do not match the key version",
                details={"expected": len(version.claim_names), "actual": len(values)},
            )

        info = self.id_generator.parse(identifier)
        return ParsedClaims(
            id=identifier,
            created_at=info.timestamp,
            expires_at=expires_at,
            claims=dict(zip(version.claim_names, values)),
        )

    async def parse(self, token: str, *, unsafe: bool = False) -> ParsedClaims:
        """Validate a token and return its claims.

        Expiry is checked on every call. With ``unsafe`` the revocation
        check is skipped and the result is not cached.
        """
        try:
            if not isinstance(token, str):
                raise MalformedTokenError("Token must be a string")

            parsed = self.cache.get(token)
            is_cached = parsed is not None

            if is_cached:
                self._count("token_cache_events_total", event="hit")
            else:
                self._count("token_cache_events_total", event="miss")
                parsed = self._decode(token)

            if parsed.expires_at < self._now():
                if is_cached:
                    self.cache.delete(token)
                raise ExpiredTokenError(details={"expires_at": parsed.expires_at})

            if not unsafe and not is_cached:
                generation = self._revocation_generation
                if await self.revocation_store.check_and_prune(parsed.identifier_key):
                    raise RevokedTokenError(details={"token_id": parsed.identifier_key})
                if generation == self._revocation_generation:
                    self.cache.set(token, parsed)

        except TokenError as exc:
            self._count("tokens_parsed_total", result=exc.code)
            self.logger.debug("Token rejected", code=exc.code)
            raise

        self._count("tokens_parsed_total", result="ok")
        return parsed

    async def revoke(self, token: str) -> bool:
        """Revoke a token until its natural expiry.

        Returns:
            True when a revocation was recorded, False when the token was
            already unusable (malformed, unknown version, expired or revoked).
        """
        try:
            parsed = await self.parse(token, unsafe=True)
        except REVOKE_NOOP_ERRORS as exc:
            self._count("tokens_revoked_total", result="noop")
            self.logger.debug("Nothing to revoke", code=exc.code)
            return False

        await self.revocation_store.add(parsed.identifier_key, parsed.expires_at)
        self._revocation_generation += 1
        self.cache.delete(token)

        self._count("tokens_revoked_total", result="revoked")
        return True

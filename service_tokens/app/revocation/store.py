"""
Redis-backed registry of revoked token identifiers.
"""

import base64
import time
from typing import Callable, Optional, TYPE_CHECKING

import redis.asyncio as redis
from redis.exceptions import RedisError

from shared.errors import StoreUnavailableError
from shared.logging import get_logger

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


KEY_PREFIX = "@service_tokens:"


def identifier_key(identifier: bytes) -> str:
    """Text form of a token identifier used as the sorted-set member."""
    return base64.b64encode(identifier).decode("ascii")


class RevocationStore:
    """Namespaced sorted set mapping identifier -> revocation expiry.

    Entries are pruned lazily on every check; there is no background sweep.
    """

    def __init__(
        self,
        redis_client: redis.Redis,
        namespace: str,
        *,
        metrics: Optional["MetricsCollector"] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._redis = redis_client
        self.namespace = namespace
        self.key = f"{KEY_PREFIX}{namespace}:revoked"
        self.metrics = metrics
        self._clock = clock
        self.logger = get_logger("tokens.revocation")

    def _now(self) -> int:
        return int(self._clock())

    def _observe(self, operation: str, started: float) -> None:
        if self.metrics:
            self.metrics.observe_histogram(
                "revocation_store_duration_seconds",
                time.perf_counter() - started,
                operation=operation,
            )

    async def check_and_prune(self, member: str) -> bool:
        """Return whether ``member`` is revoked and drop lapsed entries.

        The score lookup and the prune go out as one MULTI/EXEC batch; the
        lookup sees the set as it was before the prune.
        """
        now = self._now()
        started = time.perf_counter()
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.zscore(self.key, member)
                # Exclusive bound: a token is still valid during its expiry second.
                pipe.zremrangebyscore(self.key, "-inf", f"({now}")
                score, pruned = await pipe.execute()
        except RedisError as exc:
            self.logger.error("Revocation check failed", key=self.key, error=str(exc))
            raise StoreUnavailableError(details={"operation": "check", "error": str(exc)}) from exc
        finally:
            self._observe("check", started)

        if pruned:
            self.logger.debug("Pruned lapsed revocations", key=self.key, count=pruned)

        return score is not None

    async def add(self, member: str, expires_at: int) -> None:
        """Record a revocation that lapses at ``expires_at``."""
        started = time.perf_counter()
        try:
            await self._redis.zadd(self.key, {member: expires_at})
        except RedisError as exc:
            self.logger.error("Revocation write failed", key=self.key, error=str(exc))
            raise StoreUnavailableError(details={"operation": "add", "error": str(exc)}) from exc
        finally:
            self._observe("add", started)

        self.logger.info("Token revoked", key=self.key, token_id=member, expires_at=expires_at)

    async def size(self) -> int:
        """Number of revocation records currently stored."""
        try:
            return int(await self._redis.zcard(self.key))
        except RedisError as exc:
            raise StoreUnavailableError(details={"operation": "size", "error": str(exc)}) from exc

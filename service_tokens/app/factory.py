"""
Build a token engine from configuration.
"""

import time
from typing import Callable, Optional

import redis.asyncio as redis

from shared.config import TokenServiceConfig
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from .cache.lru_cache import ValidatedTokenCache
from .crypto.versions import CipherVersionTable, KeyVersion
from .ids.snowflake import SnowflakeGenerator
from .lifecycle.engine import TokenEngine
from .revocation.store import RevocationStore


def build_version_table(config: TokenServiceConfig) -> CipherVersionTable:
    """Create the version table, newest version first."""
    versions = [
        KeyVersion(
            encryption_key=version.encryption_key.get_secret_value(),
            claim_names=tuple(version.claim_names),
        )
        for version in config.versions
    ]
    return CipherVersionTable(versions, kdf_iterations=config.kdf_iterations)


def build_token_engine(
    config: TokenServiceConfig,
    redis_client: Optional[redis.Redis] = None,
    *,
    metrics: Optional[MetricsCollector] = None,
    clock: Callable[[], float] = time.time,
) -> TokenEngine:
    """Wire a `TokenEngine` from configuration.

    A Redis client is created from ``config.redis_url`` when none is given.
    Creating the client does not connect; the first revocation check does.
    """
    logger = get_logger("tokens.factory")

    if redis_client is None:
        redis_client = redis.from_url(
            config.redis_url,
            socket_connect_timeout=5,
            socket_timeout=5,
            health_check_interval=30,
        )

    engine = TokenEngine(
        version_table=build_version_table(config),
        revocation_store=RevocationStore(redis_client, config.namespace, metrics=metrics, clock=clock),
        cache=ValidatedTokenCache(
            max_size=config.cache_max_size,
            ttl_seconds=config.cache_ttl_seconds,
        ),
        id_generator=SnowflakeGenerator(node_id=config.node_id, clock=clock),
        metrics=metrics,
        default_ttl=config.default_ttl_seconds,
        clock=clock,
    )

    logger.info(
        "Token engine configured",
        namespace=config.namespace,
        versions=len(config.versions),
        cache_max_size=config.cache_max_size,
    )
    return engine

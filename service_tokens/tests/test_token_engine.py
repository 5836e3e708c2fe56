"""
Unit tests for the token lifecycle engine.
"""

import asyncio
import pytest
from unittest.mock import AsyncMock, patch

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_tokens.app.cache.lru_cache import ValidatedTokenCache
from service_tokens.app.codec.base62 import ALPHABET, base62
from service_tokens.app.crypto.versions import CipherVersionTable, KeyVersion
from service_tokens.app.ids.snowflake import SnowflakeGenerator
from service_tokens.app.lifecycle.engine import TokenEngine
from service_tokens.app.lifecycle.models import ParsedClaims
from service_tokens.app.revocation.store import RevocationStore
from shared.errors import (
    ConfigurationError,
    ExpiredTokenError,
    InvalidVersionError,
    MalformedPayloadError,
    MalformedTokenError,
    MissingClaimError,
    RevokedTokenError,
    StoreUnavailableError,
    ValidationError,
)
from shared.metrics import MetricsCollector
from shared.test_helpers import FrozenClock, InMemorySortedSetRedis, TestDataFactory


NOW = 1_700_000_000


def make_engine(redis_client, clock, versions=None, **kwargs):
    """Build an engine around shared collaborators."""
    if versions is None:
        versions = [
            KeyVersion(version.encryption_key, tuple(version.claim_names))
            for version in TestDataFactory.create_key_versions()
        ]
    table = CipherVersionTable(versions, kdf_iterations=TestDataFactory.KDF_ITERATIONS)
    return TokenEngine(
        table,
        RevocationStore(redis_client, "test", clock=clock),
        ValidatedTokenCache(max_size=100),
        SnowflakeGenerator(clock=clock),
        clock=clock,
        **kwargs,
    )


def tamper(token: str) -> str:
    """Replace one character in the middle of a token with another alphabet character."""
    index = len(token) // 2
    replacement = ALPHABET[(ALPHABET.index(token[index]) + 1) % len(ALPHABET)]
    return token[:index] + replacement + token[index + 1:]


class TestTokenEngine:
    """Test cases for TokenEngine."""

    @pytest.fixture
    def clock(self):
        return FrozenClock(now=float(NOW))

    @pytest.fixture
    def redis_client(self):
        return InMemorySortedSetRedis()

    @pytest.fixture
    def engine(self, redis_client, clock):
        """Create TokenEngine instance."""
        return make_engine(redis_client, clock)

    @pytest.fixture
    def claims(self):
        return TestDataFactory.create_claims()

    # create

    @pytest.mark.asyncio
    async def test_create_returns_printable_token(self, engine, claims):
        """Test tokens are base-62 text."""
        token = await engine.create(claims, ttl=60)

        assert isinstance(token, str)
        assert token
        assert set(token) <= set(ALPHABET)

    @pytest.mark.asyncio
    async def test_create_does_not_touch_store_or_cache(self, engine, redis_client, claims):
        """Test creation is purely local."""
        await engine.create(claims, ttl=60)

        assert redis_client.calls == []
        assert len(engine.cache) == 0

    @pytest.mark.asyncio
    async def test_create_missing_claim(self, engine):
        """Test an absent claim raises MissingClaimError without substitution."""
        with pytest.raises(MissingClaimError) as exc_info:
            await engine.create({"user_id": 1, "scope": []}, ttl=60)

        assert exc_info.value.claim == "tenant_id"
        assert exc_info.value.details == {"claim": "tenant_id"}

    @pytest.mark.asyncio
    async def test_create_accepts_none_value(self, engine):
        """Test a present None claim is encoded as-is."""
        token = await engine.create({"user_id": None, "tenant_id": "t", "scope": None}, ttl=60)
        parsed = await engine.parse(token)

        assert parsed["user_id"] is None
        assert parsed.claims == {"user_id": None, "tenant_id": "t", "scope": None}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("ttl", [0, -5, 1.5, "60", True])
    async def test_create_invalid_ttl(self, engine, claims, ttl):
        """Test ttl must be a positive integer."""
        with pytest.raises(ValidationError):
            await engine.create(claims, ttl=ttl)

    @pytest.mark.asyncio
    async def test_create_uses_default_ttl(self, redis_client, clock, claims):
        """Test the configured default lifetime applies when ttl is omitted."""
        engine = make_engine(redis_client, clock, default_ttl=300)
        parsed = await engine.parse(await engine.create(claims))

        assert parsed.expires_at == NOW + 300

    @pytest.mark.asyncio
    async def test_create_without_any_ttl(self, engine, claims):
        """Test omitting ttl with no default is a validation error."""
        with pytest.raises(ValidationError):
            await engine.create(claims)

    @pytest.mark.asyncio
    async def test_create_without_versions(self, redis_client, clock, claims):
        """Test an empty version table cannot mint tokens."""
        engine = make_engine(redis_client, clock, versions=[])
        with pytest.raises(ConfigurationError):
            await engine.create(claims, ttl=60)

    # parse

    @pytest.mark.asyncio
    async def test_round_trip(self, engine, claims):
        """Test parse returns the input claims plus derived fields."""
        token = await engine.create(claims, ttl=60)
        parsed = await engine.parse(token)

        assert isinstance(parsed, ParsedClaims)
        assert dict(parsed.claims) == claims
        assert parsed.expires_at == NOW + 60
        assert parsed.created_at == NOW
        assert len(parsed.id) == 8

    @pytest.mark.asyncio
    async def test_round_trip_ignores_extra_claims(self, engine, claims):
        """Test only the active version's claim names are embedded."""
        token = await engine.create({**claims, "ignored": "x"}, ttl=60)
        parsed = await engine.parse(token)

        assert "ignored" not in parsed.claims

    @pytest.mark.asyncio
    async def test_binary_claim_round_trip(self, engine):
        """Test binary claim values come back as bytes."""
        token = await engine.create({"user_id": b"\x00\x01", "tenant_id": "t", "scope": []}, ttl=60)
        parsed = await engine.parse(token)

        assert parsed["user_id"] == b"\x00\x01"

    @pytest.mark.asyncio
    async def test_expiry_boundary(self, engine, clock, claims):
        """Test a one-second token is rejected two seconds later."""
        token = await engine.create(claims, ttl=1)
        clock.advance(2)

        with pytest.raises(ExpiredTokenError):
            await engine.parse(token)

    @pytest.mark.asyncio
    async def test_valid_during_expiry_second(self, engine, clock, claims):
        """Test a token is still accepted at exactly its expiry time."""
        token = await engine.create(claims, ttl=1)
        clock.advance(1)

        parsed = await engine.parse(token)
        assert parsed.expires_at == NOW + 1

    @pytest.mark.asyncio
    async def test_expiry_checked_on_cache_hit(self, engine, clock, claims):
        """Test cached tokens still expire and are evicted."""
        token = await engine.create(claims, ttl=5)
        await engine.parse(token)
        assert engine.cache.has(token)

        clock.advance(6)
        with pytest.raises(ExpiredTokenError):
            await engine.parse(token)

        assert engine.cache.has(token) is False

    @pytest.mark.asyncio
    async def test_cache_hit_skips_store(self, engine, redis_client, claims):
        """Test the second parse is served from cache with no store call."""
        token = await engine.create(claims, ttl=60)

        first = await engine.parse(token)
        calls_after_first = len(redis_client.calls)
        second = await engine.parse(token)

        assert calls_after_first == 1
        assert len(redis_client.calls) == calls_after_first
        assert second == first
        assert second is first

    @pytest.mark.asyncio
    async def test_cache_hit_skips_decryption(self, engine, claims):
        """Test cached tokens do not run the version probe again."""
        token = await engine.create(claims, ttl=60)
        await engine.parse(token)

        with patch.object(engine.version_table, "decrypt") as mock_decrypt:
            await engine.parse(token)
            mock_decrypt.assert_not_called()

    @pytest.mark.asyncio
    async def test_malformed_token(self, engine):
        """Test text outside the alphabet raises MalformedTokenError."""
        with pytest.raises(MalformedTokenError):
            await engine.parse("not a token!")

    @pytest.mark.asyncio
    async def test_non_string_token(self, engine):
        """Test non-string input raises MalformedTokenError."""
        with pytest.raises(MalformedTokenError):
            await engine.parse(None)

    @pytest.mark.asyncio
    async def test_tampered_token(self, engine, claims):
        """Test a modified token never yields claims."""
        token = await engine.create(claims, ttl=60)

        with pytest.raises((MalformedTokenError, InvalidVersionError)):
            await engine.parse(tamper(token))

    @pytest.mark.asyncio
    async def test_tampered_ciphertext_byte(self, engine, claims):
        """Test flipping one ciphertext byte fails authentication."""
        token = await engine.create(claims, ttl=60)
        raw = bytearray(base62.decode(token))
        raw[-1] ^= 0x80

        with pytest.raises(InvalidVersionError):
            await engine.parse(base62.encode(bytes(raw)))

    @pytest.mark.asyncio
    async def test_foreign_key_token(self, redis_client, clock, engine, claims):
        """Test a token from an unknown key raises InvalidVersionError."""
        foreign = make_engine(redis_client, clock, versions=[KeyVersion("foreign", ("user_id",))])
        token = await foreign.create(claims, ttl=60)

        with pytest.raises(InvalidVersionError):
            await engine.parse(token)

    @pytest.mark.asyncio
    async def test_claim_count_mismatch(self, redis_client, clock):
        """Test a payload that does not fit the deciding version is rejected."""
        writer = make_engine(redis_client, clock, versions=[KeyVersion("shared-key", ("a", "b"))])
        reader = make_engine(redis_client, clock, versions=[KeyVersion("shared-key", ("a",))])
        token = await writer.create({"a": 1, "b": 2}, ttl=60)

        with pytest.raises(MalformedPayloadError):
            await reader.parse(token)

    @pytest.mark.asyncio
    async def test_version_rotation(self, redis_client, clock, claims):
        """Test old tokens parse after a new version is prepended."""
        v1 = KeyVersion("secret-v1", ("user_id", "scope"))
        v2 = KeyVersion("secret-v2", ("user_id", "tenant_id", "scope"))

        old_engine = make_engine(redis_client, clock, versions=[v1])
        old_token = await old_engine.create(claims, ttl=60)

        rotated = make_engine(redis_client, clock, versions=[v2, v1])
        parsed = await rotated.parse(old_token)
        assert dict(parsed.claims) == {"user_id": claims["user_id"], "scope": claims["scope"]}

        new_token = await rotated.create(claims, ttl=60)
        assert dict((await rotated.parse(new_token)).claims) == claims

        with pytest.raises(InvalidVersionError):
            await old_engine.parse(new_token)

    @pytest.mark.asyncio
    async def test_store_unavailable_fails_closed(self, engine, redis_client, claims):
        """Test an unreachable store rejects the parse and caches nothing."""
        token = await engine.create(claims, ttl=60)
        redis_client.fail = True

        with pytest.raises(StoreUnavailableError):
            await engine.parse(token)

        assert engine.cache.has(token) is False

    # revoke

    @pytest.mark.asyncio
    async def test_revoke_then_parse(self, engine, claims):
        """Test a revoked token is rejected."""
        token = await engine.create(claims, ttl=60)

        assert await engine.revoke(token) is True
        with pytest.raises(RevokedTokenError):
            await engine.parse(token)

    @pytest.mark.asyncio
    async def test_revoke_records_token_expiry(self, engine, redis_client, claims):
        """Test the record is scored by the token's own expiry."""
        token = await engine.create(claims, ttl=60)
        parsed = await engine.parse(token, unsafe=True)

        await engine.revoke(token)

        key = engine.revocation_store.key
        assert redis_client.data[key] == {parsed.identifier_key: float(NOW + 60)}

    @pytest.mark.asyncio
    async def test_revoke_evicts_cached_token(self, engine, redis_client, claims):
        """Test revocation takes effect even after the token was cached."""
        token = await engine.create(claims, ttl=60)
        await engine.parse(token)
        assert engine.cache.has(token)

        await engine.revoke(token)

        assert engine.cache.has(token) is False
        with pytest.raises(RevokedTokenError):
            await engine.parse(token)

    @pytest.mark.asyncio
    async def test_revoke_during_inflight_parse_is_not_cached(self, engine, claims):
        """Test a parse that checked the store before a revoke does not cache the token."""
        token = await engine.create(claims, ttl=600)
        check = engine.revocation_store.check_and_prune
        checked = asyncio.Event()
        release = asyncio.Event()

        async def slow_check(member):
            revoked = await check(member)
            checked.set()
            await release.wait()
            return revoked

        with patch.object(engine.revocation_store, "check_and_prune", side_effect=slow_check):
            inflight = asyncio.create_task(engine.parse(token))
            await checked.wait()
            assert await engine.revoke(token) is True
            release.set()
            parsed = await inflight

        assert parsed.expires_at == NOW + 600
        assert engine.cache.has(token) is False
        with pytest.raises(RevokedTokenError):
            await engine.parse(token)

    @pytest.mark.asyncio
    async def test_revoke_twice(self, engine, redis_client, claims):
        """Test revoking twice leaves the same single record."""
        token = await engine.create(claims, ttl=60)

        await engine.revoke(token)
        snapshot = dict(redis_client.data[engine.revocation_store.key])
        await engine.revoke(token)

        assert redis_client.data[engine.revocation_store.key] == snapshot
        with pytest.raises(RevokedTokenError):
            await engine.parse(token)

    @pytest.mark.asyncio
    async def test_revoked_until_natural_expiry(self, engine, clock, claims):
        """Test a revoked token stays revoked through its expiry second, then expires."""
        token = await engine.create(claims, ttl=10)
        await engine.revoke(token)

        clock.advance(10)
        with pytest.raises(RevokedTokenError):
            await engine.parse(token)

        clock.advance(1)
        with pytest.raises(ExpiredTokenError):
            await engine.parse(token)

    @pytest.mark.asyncio
    async def test_lapsed_revocation_is_pruned(self, engine, redis_client, clock, claims):
        """Test a lapsed record is removed by a later check and new tokens are unaffected."""
        old_token = await engine.create(claims, ttl=10)
        await engine.revoke(old_token)
        assert await engine.revocation_store.size() == 1

        clock.advance(11)
        new_token = await engine.create(claims, ttl=60)
        parsed = await engine.parse(new_token)

        assert parsed.expires_at == NOW + 71
        assert await engine.revocation_store.size() == 0

    @pytest.mark.asyncio
    async def test_unsafe_bypasses_revocation(self, engine, redis_client, claims):
        """Test unsafe parse returns claims of a revoked token without caching them."""
        token = await engine.create(claims, ttl=60)
        await engine.revoke(token)
        calls = len(redis_client.calls)

        parsed = await engine.parse(token, unsafe=True)

        assert dict(parsed.claims) == claims
        assert len(redis_client.calls) == calls
        assert engine.cache.has(token) is False
        with pytest.raises(RevokedTokenError):
            await engine.parse(token)

    @pytest.mark.asyncio
    async def test_revoke_malformed_is_noop(self, engine, redis_client):
        """Test revoking garbage does nothing."""
        assert await engine.revoke("not a token!") is False
        assert await engine.revoke(base62.encode(b"\x01" * 40)) is False
        assert redis_client.calls == []

    @pytest.mark.asyncio
    async def test_revoke_expired_is_noop(self, engine, redis_client, clock, claims):
        """Test revoking an expired token does nothing."""
        token = await engine.create(claims, ttl=1)
        clock.advance(5)

        assert await engine.revoke(token) is False
        assert redis_client.calls == []

    @pytest.mark.asyncio
    async def test_revoke_store_unavailable_propagates(self, engine, redis_client, claims):
        """Test store failures during revocation are not suppressed."""
        token = await engine.create(claims, ttl=60)
        redis_client.fail = True

        with pytest.raises(StoreUnavailableError):
            await engine.revoke(token)

    @pytest.mark.asyncio
    async def test_revoke_unexpected_error_propagates(self, engine, claims):
        """Test errors outside the token taxonomy escape revoke."""
        token = await engine.create(claims, ttl=60)

        with patch.object(engine, "parse", new_callable=AsyncMock) as mock_parse:
            mock_parse.side_effect = RuntimeError("boom")
            with pytest.raises(RuntimeError):
                await engine.revoke(token)

    @pytest.mark.asyncio
    async def test_revoke_already_revoked_error_is_noop(self, engine, claims):
        """Test a RevokedTokenError from parse is treated as nothing to do."""
        token = await engine.create(claims, ttl=60)

        with patch.object(engine, "parse", new_callable=AsyncMock) as mock_parse:
            mock_parse.side_effect = RevokedTokenError()
            assert await engine.revoke(token) is False

    # metrics

    @pytest.mark.asyncio
    async def test_metrics_are_recorded(self, redis_client, clock, claims):
        """Test lifecycle counters when a collector is attached."""
        metrics = MetricsCollector("tokens")
        engine = make_engine(redis_client, clock, metrics=metrics)

        token = await engine.create(claims, ttl=60)
        await engine.parse(token)
        await engine.parse(token)
        await engine.revoke(token)
        with pytest.raises(RevokedTokenError):
            await engine.parse(token)

        assert metrics.sample_value("tokens_created_total") == 1
        assert metrics.sample_value("token_cache_events_total", event="hit") == 2
        assert metrics.sample_value("tokens_parsed_total", result="ok") == 3
        assert metrics.sample_value("tokens_parsed_total", result="TOKEN_REVOKED") == 1
        assert metrics.sample_value("tokens_revoked_total", result="revoked") == 1

"""
Token Service package.

Issues, validates and revokes compact encrypted bearer tokens. It is a
library consumed by a host process; there is no HTTP surface.

- app.lifecycle: `TokenEngine` with `create`, `parse` and `revoke`.
- app.crypto: Key versions and the authenticated cipher.
- app.codec: MessagePack payload codec and base-62 text transport.
- app.ids: Time-ordered snowflake identifiers.
- app.revocation: Redis sorted-set revocation registry.
- app.cache: Bounded LRU cache of validated tokens.
- app.factory: Wiring from `shared.config.TokenServiceConfig`.

Design notes:
- Module import must not perform network calls; the Redis client is
  created lazily by the factory and only used inside awaited operations.
- Use the shared/ utilities for logging, metrics, config and errors.
"""

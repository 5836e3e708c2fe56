"""
MessagePack codec for token payload tuples.
"""

from typing import Any, List, Sequence

import msgpack

from shared.errors import MalformedPayloadError


def _normalize(value: Any) -> Any:
    """Normalize binary buffers to ``bytes`` so comparisons are stable."""
    if isinstance(value, (bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, list):
        return [_normalize(item) for item in value]
    if isinstance(value, dict):
        return {_normalize(key): _normalize(item) for key, item in value.items()}
    return value


class PayloadCodec:
    """Serialize the ordered tuple ``[id, expires_at, *claim_values]``."""

    def encode(self, identifier: bytes, expires_at: int, claim_values: Sequence[Any]) -> bytes:
        payload = [bytes(identifier), int(expires_at)]
        payload.extend(claim_values)
        try:
            return msgpack.packb(payload, use_bin_type=True)
        except (TypeError, ValueError, OverflowError) as exc:
            raise MalformedPayloadError(
                "Claim values are not serializable",
                details={"error": str(exc)},
            ) from exc

    def decode(self, blob: bytes) -> List[Any]:
        """Decode a payload blob; raises ``MalformedPayloadError`` on invalid input."""
        try:
            payload = msgpack.unpackb(blob, raw=False, use_list=True, strict_map_key=False)
        except (msgpack.UnpackException, ValueError, TypeError) as exc:
            raise MalformedPayloadError(details={"error": str(exc)}) from exc

        if not isinstance(payload, list) or len(payload) < 2:
            raise MalformedPayloadError("Token payload must be a list of at least two values")

        return _normalize(payload)


payload_codec = PayloadCodec()

"""
Time-ordered 64-bit identifiers for tokens.
"""

import threading
import time
from dataclasses import dataclass
from typing import Callable


# 2020-01-01T00:00:00Z
DEFAULT_EPOCH_MS = 1_577_836_800_000

TIMESTAMP_BITS = 42
NODE_BITS = 10
SEQUENCE_BITS = 12

MAX_NODE_ID = (1 << NODE_BITS) - 1
MAX_SEQUENCE = (1 << SEQUENCE_BITS) - 1
MAX_TIMESTAMP = (1 << TIMESTAMP_BITS) - 1

ID_SIZE = 8


@dataclass(frozen=True)
class SnowflakeInfo:
    """Fields recovered from an identifier."""

    timestamp_ms: int
    node_id: int
    sequence: int

    @property
    def timestamp(self) -> int:
        """Creation time in whole epoch seconds."""
        return self.timestamp_ms // 1000


class SnowflakeGenerator:
    """Generate 8-byte big-endian snowflake ids.

    Layout: 42 bits of milliseconds since ``epoch_ms``, 10 bits of node id,
    12 bits of per-millisecond sequence.
    """

    def __init__(
        self,
        node_id: int = 0,
        *,
        epoch_ms: int = DEFAULT_EPOCH_MS,
        clock: Callable[[], float] = time.time,
    ):
        if not 0 <= node_id <= MAX_NODE_ID:
            raise ValueError(f"node_id must be between 0 and {MAX_NODE_ID}")
        self.node_id = node_id
        self.epoch_ms = epoch_ms
        self._clock = clock
        self._lock = threading.Lock()
        self._last_ms = -1
        self._sequence = 0

    def _now_ms(self) -> int:
        return int(self._clock() * 1000) - self.epoch_ms

    def create(self) -> bytes:
        """Create a new identifier."""
        with self._lock:
            now_ms = self._now_ms()
            # Never go backwards; reuse the last millisecond if the clock steps back.
            if now_ms < self._last_ms:
                now_ms = self._last_ms

            if now_ms == self._last_ms:
                self._sequence = (self._sequence + 1) & MAX_SEQUENCE
                if self._sequence == 0:
                    # Sequence exhausted for this millisecond; borrow the next one.
                    now_ms = self._last_ms + 1
            else:
                self._sequence = 0

            if not 0 <= now_ms <= MAX_TIMESTAMP:
                raise ValueError("Clock is outside the identifier timestamp range")

            self._last_ms = now_ms
            value = (
                (now_ms << (NODE_BITS + SEQUENCE_BITS))
                | (self.node_id << SEQUENCE_BITS)
                | self._sequence
            )

        return value.to_bytes(ID_SIZE, "big")

    def parse(self, identifier: bytes) -> SnowflakeInfo:
        """Recover the embedded fields of an identifier."""
        if not isinstance(identifier, (bytes, bytearray)) or len(identifier) != ID_SIZE:
            raise ValueError(f"Identifier must be {ID_SIZE} bytes")

        value = int.from_bytes(identifier, "big")
        return SnowflakeInfo(
            timestamp_ms=(value >> (NODE_BITS + SEQUENCE_BITS)) + self.epoch_ms,
            node_id=(value >> SEQUENCE_BITS) & MAX_NODE_ID,
            sequence=value & MAX_SEQUENCE,
        )

"""
Binary payload codec and printable text transport.
"""

from .base62 import Base62Codec, base62
from .payload import PayloadCodec, payload_codec

__all__ = ["Base62Codec", "base62", "PayloadCodec", "payload_codec"]

"""
Base-62 text transport for binary tokens.
"""

from typing import Dict

from shared.errors import MalformedTokenError


ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ"


class Base62Codec:
    """Bijective radix conversion between bytes and a printable alphabet.

    Every leading zero byte is written as one leading ``alphabet[0]``
    character, so byte strings of any length and content round-trip.
    """

    def __init__(self, alphabet: str = ALPHABET):
        if len(set(alphabet)) != len(alphabet) or len(alphabet) < 2:
            raise ValueError("Alphabet must contain at least two unique characters")
        self.alphabet = alphabet
        self.base = len(alphabet)
        self._index: Dict[str, int] = {char: i for i, char in enumerate(alphabet)}

    def encode(self, data: bytes) -> str:
        """Encode bytes as a printable string."""
        zeros = len(data) - len(data.lstrip(b"\x00"))
        number = int.from_bytes(data[zeros:], "big")

        digits = []
        while number:
            number, remainder = divmod(number, self.base)
            digits.append(self.alphabet[remainder])

        return self.alphabet[0] * zeros + "".join(reversed(digits))

    def decode(self, text: str) -> bytes:
        """Decode a printable string back to bytes."""
        if not isinstance(text, str):
            raise MalformedTokenError("Token must be a string")

        zero_char = self.alphabet[0]
        zeros = len(text) - len(text.lstrip(zero_char))

        number = 0
        for char in text[zeros:]:
            value = self._index.get(char)
            if value is None:
                raise MalformedTokenError(
                    "Token contains characters outside the alphabet",
                    details={"character": repr(char)},
                )
            number = number * self.base + value

        body = number.to_bytes((number.bit_length() + 7) // 8, "big") if number else b""
        return b"\x00" * zeros + body


base62 = Base62Codec()

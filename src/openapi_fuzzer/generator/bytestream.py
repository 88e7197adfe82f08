"""Finite byte source that primitive values are decoded from.

Every decoder is deterministic given the underlying bytes. Once the data
runs out, decoders fall back to zero bytes instead of raising, so a
generation call always completes.
"""

import math
import random
import string
import struct
from typing import Sequence, TypeVar

T = TypeVar("T")

ALPHANUMERIC = (string.ascii_letters + string.digits).encode("ascii")

_ALPHANUMERIC_INDEX = {byte: i for i, byte in enumerate(ALPHANUMERIC)}

DEFAULT_STREAM_SIZE = 1024

_MAX_CAPACITY = 1 << 64


class ByteStream:
    """Consumes bytes from the front of a fixed buffer."""

    def __init__(self, data: bytes):
        self._data = bytes(data)
        self._pos = 0

    @classmethod
    def random(cls, size: int = DEFAULT_STREAM_SIZE, rng: random.Random | None = None) -> "ByteStream":
        """Build a stream of ``size`` alphanumeric bytes drawn from ``rng``."""
        rng = rng or random.Random()
        return cls(bytes(rng.choices(ALPHANUMERIC, k=size)))

    @classmethod
    def from_seed(cls, seed: int | str, size: int = DEFAULT_STREAM_SIZE) -> "ByteStream":
        return cls.random(size, random.Random(seed))

    def __len__(self) -> int:
        return len(self._data) - self._pos

    @property
    def exhausted(self) -> bool:
        return self._pos >= len(self._data)

    def take(self, n: int) -> bytes:
        """Return up to ``n`` bytes; fewer when the stream runs dry."""
        chunk = self._data[self._pos : self._pos + n]
        self._pos += len(chunk)
        return chunk

    def _fixed(self, n: int) -> bytes:
        return self.take(n).ljust(n, b"\x00")

    def int_in_range(self, lo: int, hi: int) -> int:
        """Inclusive range; returns ``lo`` when no bytes are left."""
        if hi < lo:
            raise ValueError(f"empty range [{lo}, {hi}]")
        span = hi - lo
        if span == 0:
            return lo
        acc = 0
        capacity = 1
        # Alphanumeric bytes count as base-62 digits, anything else as base 256.
        # Keep reading until the digits can express every value in the span.
        while capacity <= span and capacity < _MAX_CAPACITY:
            chunk = self.take(1)
            if not chunk:
                break
            digit = _ALPHANUMERIC_INDEX.get(chunk[0])
            if digit is None:
                acc, capacity = acc * 256 + chunk[0], capacity * 256
            else:
                acc, capacity = acc * len(ALPHANUMERIC) + digit, capacity * len(ALPHANUMERIC)
        return lo + acc % (span + 1)

    def integer(self) -> int:
        return struct.unpack("<q", self._fixed(8))[0]

    def number(self) -> float | None:
        value = struct.unpack("<d", self._fixed(8))[0]
        # JSON has no NaN or infinity.
        return value if math.isfinite(value) else None

    def boolean(self) -> bool:
        return self._fixed(1)[0] & 1 == 1

    def string(self, max_length: int = 64) -> str:
        """Length prefix, then that many bytes, keeping the valid UTF-8 prefix."""
        length = self.int_in_range(0, min(max_length, len(self)))
        raw = self.take(length)
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as e:
            return raw[: e.start].decode("utf-8")

    def choice(self, options: Sequence[T]) -> T:
        if not options:
            raise ValueError("cannot choose from an empty sequence")
        return options[self.int_in_range(0, len(options) - 1)]

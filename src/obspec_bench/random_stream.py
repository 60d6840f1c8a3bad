"""Deterministic pseudo-random payloads for benchmarks."""

from __future__ import annotations

import io


def seeded_byte(seed: int) -> int:
    """One step of a 16-bit multiply-with-carry pair, truncated to a byte."""
    seed &= 0xFFFFFFFF
    z = seed >> 16
    w = seed & 0xFFFF
    z = (36969 * (z & 0xFFFF) + (z >> 16)) & 0xFFFF
    w = (18000 * (w & 0xFFFF) + (w >> 16)) & 0xFFFF
    return ((z << 16) + w) & 0xFF


class RandomStream(io.RawIOBase):
    """
    A read-only stream of `length` reproducible pseudo-random bytes.

    The byte at position `p` depends only on `seed + p`, so any range can be
    regenerated without reading what precedes it.
    """

    def __init__(self, seed: int, length: int) -> None:
        super().__init__()
        if length < 0:
            raise ValueError(f"length must be non-negative, got {length}")
        self._seed = seed
        self._length = length
        self._cursor = 0

    @property
    def length(self) -> int:
        return self._length

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return True

    def readinto(self, b) -> int:
        view = memoryview(b).cast("B")
        n = max(0, min(len(view), self._length - self._cursor))
        start = self._seed + self._cursor
        view[:n] = bytes(seeded_byte(start + i) for i in range(n))
        self._cursor += n
        return n

    def seek(self, offset: int, whence: int = io.SEEK_SET, /) -> int:
        if whence == io.SEEK_SET:
            position = offset
        elif whence == io.SEEK_CUR:
            position = self._cursor + offset
        elif whence == io.SEEK_END:
            position = self._length + offset
        else:
            raise ValueError(f"Invalid whence value: {whence}")
        if not 0 <= position <= self._length:
            raise ValueError(
                f"Cannot seek to {position}, outside the stream's {self._length} bytes"
            )
        self._cursor = position
        return position

    def tell(self) -> int:
        return self._cursor


__all__ = ["RandomStream", "seeded_byte"]

"""Immutable windows of object bytes."""

from __future__ import annotations

from dataclasses import dataclass

DEFAULT_CHUNK_SIZE = 16 * 1024


@dataclass(frozen=True)
class ChunkBuffer:
    """
    A window of object bytes starting at `offset`.

    The buffer holds object bytes `[offset, offset + valid_bytes)`. Anything in
    `data` past `valid_bytes` is never handed out. Buffers are replaced, not
    refilled.
    """

    data: bytes
    offset: int
    valid_bytes: int

    def __post_init__(self) -> None:
        if not 0 <= self.valid_bytes <= len(self.data):
            raise ValueError(
                f"valid_bytes must be within [0, {len(self.data)}], "
                f"got {self.valid_bytes}"
            )

    @classmethod
    def empty(cls, offset: int = 0) -> ChunkBuffer:
        return cls(b"", offset, 0)

    @property
    def capacity(self) -> int:
        return len(self.data)

    @property
    def end(self) -> int:
        """Object offset one past the last valid byte."""
        return self.offset + self.valid_bytes

    def read_at(
        self, position: int, dest: bytearray | memoryview, dest_offset: int, want: int
    ) -> int:
        """
        Copy up to `want` bytes at object offset `position` into `dest`.

        Returns the number of bytes copied. 0 means the buffer does not hold
        `position`, not that the object has ended.
        """
        end = self.end
        if want <= 0 or position < self.offset or position >= end:
            return 0
        start = position - self.offset
        n = min(want, end - position)
        dest[dest_offset : dest_offset + n] = self.data[start : start + n]
        return n


__all__ = ["DEFAULT_CHUNK_SIZE", "ChunkBuffer"]

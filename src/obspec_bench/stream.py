"""Seekable read streams over remote objects."""

from __future__ import annotations

from typing import TYPE_CHECKING

from obspec_bench.buffer import DEFAULT_CHUNK_SIZE, ChunkBuffer
from obspec_bench.errors import ContractViolation
from obspec_bench.session import RemoteObjectSession

if TYPE_CHECKING:
    from collections.abc import Buffer

    from obspec_bench.handle import StoreHandle


class SeekableObjectStream:
    """
    A read-only, seekable file-like view of a remote object.

    Reads are served from a single [ChunkBuffer][obspec_bench.buffer.ChunkBuffer]
    of `chunk_size` bytes. When the cursor leaves the buffer, the next chunk
    is fetched through a [RemoteObjectSession][obspec_bench.session.RemoteObjectSession],
    so sequential reads inside one chunk make no requests at all and purely
    sequential reads keep streaming from one response.

    Nothing is fetched until the first read or size query. Streams must be
    closed, either explicitly or by using them as a context manager; one
    stream should not be shared between threads.
    """

    def __init__(
        self,
        handle: StoreHandle,
        key: str,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        """
        Create a stream over an object.

        Parameters
        ----------
        handle
            The store the object lives in.
        key
            The full object key, prefix included.
        chunk_size
            Number of bytes fetched per chunk.
        """
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        self._session = RemoteObjectSession(handle, key)
        self._chunk_size = chunk_size
        self._buffer = ChunkBuffer.empty()
        self._cursor = 0
        self._closed = False

    def _check_open(self) -> None:
        if self._closed:
            raise ContractViolation("I/O operation on closed file")

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def key(self) -> str:
        return self._session.key

    @property
    def length(self) -> int:
        """Size of the object in bytes."""
        self._check_open()
        return self._session.total_bytes

    @property
    def position(self) -> int:
        return self.tell()

    @position.setter
    def position(self, value: int) -> None:
        self.seek(value)

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return True

    def writable(self) -> bool:
        return False

    def readinto(self, b: Buffer, /) -> int:
        """
        Read bytes into a pre-allocated, writable buffer.

        Returns
        -------
        int
            Number of bytes read. Fewer than `len(b)` only at the end of the
            object, and 0 at or past it.
        """
        self._check_open()
        view = memoryview(b).cast("B")
        to_read = max(0, min(len(view), self._session.total_bytes - self._cursor))
        copied = 0
        while to_read > 0:
            n = self._buffer.read_at(self._cursor, view, copied, to_read)
            to_read -= n
            self._cursor += n
            copied += n
            if to_read > 0 and (n == 0 or self._cursor >= self._buffer.end):
                self._buffer = self._session.get_chunk(self._cursor, self._chunk_size)
        return copied

    def read(self, size: int = -1, /) -> bytes:
        """
        Read up to `size` bytes from the object.

        Parameters
        ----------
        size
            Number of bytes to read. If -1, read from current position to end.

        Returns
        -------
        bytes
            The data read from the object.
        """
        self._check_open()
        remaining = max(0, self._session.total_bytes - self._cursor)
        if size is None or size < 0 or size > remaining:
            size = remaining
        data = bytearray(size)
        n = self.readinto(data)
        del data[n:]
        return bytes(data)

    def readall(self) -> bytes:
        """Read from the current position to the end of the object."""
        return self.read()

    def seek(self, offset: int, whence: int = 0, /) -> int:
        """
        Move the stream position.

        Parameters
        ----------
        offset
            Position offset.
        whence
            Reference point: 0=start (SEEK_SET), 1=current (SEEK_CUR), 2=end (SEEK_END).

        Returns
        -------
        int
            The new absolute position. Positions past the end are allowed.

        Raises
        ------
        ContractViolation
            If the new position would be negative.
        """
        self._check_open()
        if whence == 0:  # SEEK_SET
            position = offset
        elif whence == 1:  # SEEK_CUR
            position = self._cursor + offset
        elif whence == 2:  # SEEK_END
            position = self._session.total_bytes + offset
        else:
            raise ValueError(f"Invalid whence value: {whence}")

        if position < 0:
            raise ContractViolation(
                f"Cannot seek to {position}, before the beginning of the object"
            )
        self._cursor = position
        return position

    def tell(self) -> int:
        """Return the current position in bytes from the start of the object."""
        self._check_open()
        return self._cursor

    def write(self, b: Buffer, /) -> int:
        raise ContractViolation("Object streams are read-only")

    def truncate(self, size: int | None = None, /) -> int:
        raise ContractViolation("Object streams are read-only")

    def close(self) -> None:
        """Close the stream and release its session. Later calls do nothing."""
        if self._closed:
            return
        self._closed = True
        self._buffer = ChunkBuffer.empty()
        self._session.close()

    def __enter__(self) -> "SeekableObjectStream":
        """Enter the context manager."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit the context manager and close the stream."""
        self.close()


__all__ = ["SeekableObjectStream"]

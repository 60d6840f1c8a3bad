"""Range-fetch sessions over a single remote object."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator
from typing import TYPE_CHECKING, TypeVar

from obspec_bench.buffer import ChunkBuffer
from obspec_bench.errors import (
    ContractViolation,
    FatalReadError,
    TransientFetchError,
)

if TYPE_CHECKING:
    from obspec import GetResult

    from obspec_bench.handle import StoreHandle

logger = logging.getLogger(__name__)

T = TypeVar("T")


class _RangeResponse:
    """Forward-only reader over the chunks of one `get()` response."""

    def __init__(self, result: GetResult, start: int) -> None:
        self._chunks: Iterator = iter(result)
        self._pending = memoryview(b"")
        self.position = start

    def readinto(self, view: memoryview) -> int:
        """Fill `view` from the response; short only when the response ends."""
        filled = 0
        while filled < len(view):
            if not self._pending:
                chunk = next(self._chunks, None)
                if chunk is None:
                    break
                self._pending = memoryview(chunk).cast("B")
                continue
            n = min(len(view) - filled, len(self._pending))
            view[filled : filled + n] = self._pending[:n]
            self._pending = self._pending[n:]
            filled += n
        self.position += filled
        return filled

    def close(self) -> None:
        self._pending = memoryview(b"")
        close = getattr(self._chunks, "close", None)
        if close is not None:
            close()


class RemoteObjectSession:
    """
    Owns the range fetches made against one object.

    The backend only streams forward, so a read at any offset other than the
    live response's position closes that response and requests the range
    `[offset, total_bytes)` instead. The first request is unranged and
    establishes the object's size.

    A failed fetch is retried exactly once after the session reopens. The
    lock allows a single fetch at a time; it does not make a stream safe to
    share between threads.
    """

    def __init__(self, handle: StoreHandle, key: str) -> None:
        self._handle = handle
        self._key = key
        self._response: _RangeResponse | None = None
        self._total_bytes: int | None = None
        self._lock = threading.Lock()
        self._closed = False

    @property
    def key(self) -> str:
        return self._key

    @property
    def is_open(self) -> bool:
        return self._response is not None

    @property
    def total_bytes(self) -> int:
        """Size of the object, opening the session if it has not been yet."""
        if self._total_bytes is None:
            self._retrying(self._ensure_open, 0)
        assert self._total_bytes is not None
        return self._total_bytes

    def _open(self, start: int) -> None:
        """Replace the live response with one positioned at `start`."""
        self._discard()
        options = {}
        if start != 0 and self._total_bytes is not None:
            options["range"] = (start, self._total_bytes)
        else:
            start = 0
        logger.debug("Opening %s at offset %d", self._key, start)
        try:
            result = self._handle.client.get(self._key, options=options)
            self._total_bytes = result.meta["size"]
            self._response = _RangeResponse(result, start)
        except Exception as exc:
            raise TransientFetchError(
                f"Could not open {self._key} at offset {start}: {exc}"
            ) from exc

    def _discard(self) -> None:
        """Close the live response. Callers hold the lock."""
        response, self._response = self._response, None
        if response is not None:
            response.close()

    def _ensure_open(self) -> None:
        if self._total_bytes is None:
            with self._lock:
                self._open(0)

    def _fetch(self, offset: int, capacity: int) -> ChunkBuffer:
        self._ensure_open()
        assert self._total_bytes is not None
        if offset >= self._total_bytes:
            return ChunkBuffer.empty(offset)
        with self._lock:
            if self._response is None or self._response.position != offset:
                self._open(offset)
            assert self._response is not None
            data = bytearray(capacity)
            try:
                n = self._response.readinto(memoryview(data))
            except Exception as exc:
                raise TransientFetchError(
                    f"Reading {self._key} at offset {offset} failed: {exc}"
                ) from exc
            if n == 0 and capacity > 0:
                raise TransientFetchError(
                    f"Response for {self._key} ended at offset {offset} "
                    f"before the object's {self._total_bytes} bytes"
                )
        logger.debug("Fetched %d bytes of %s at offset %d", n, self._key, offset)
        return ChunkBuffer(bytes(data), offset, n)

    def _retrying(self, fetch: Callable[[], T], offset: int) -> T:
        """Run `fetch`, reopening and running it once more if it fails."""
        if self._closed:
            raise ContractViolation("I/O operation on closed session")
        try:
            return fetch()
        except TransientFetchError as exc:
            logger.warning(
                "Fetch of s3://%s/%s at offset %d failed, reopening once: %s",
                self._handle.bucket,
                self._key,
                offset,
                exc,
            )
            with self._lock:
                self._discard()
        try:
            result = fetch()
        except TransientFetchError as exc:
            with self._lock:
                self._discard()
            logger.error(
                "Retried fetch of s3://%s/%s at offset %d failed: %s",
                self._handle.bucket,
                self._key,
                offset,
                exc,
            )
            raise FatalReadError(self._handle.bucket, self._key, offset) from exc
        logger.info(
            "Retried fetch of s3://%s/%s at offset %d succeeded",
            self._handle.bucket,
            self._key,
            offset,
        )
        return result

    def get_chunk(self, offset: int, capacity: int) -> ChunkBuffer:
        """
        Fetch up to `capacity` bytes of the object starting at `offset`.

        Parameters
        ----------
        offset
            Object offset of the first byte to fetch.
        capacity
            Size of the returned buffer.

        Returns
        -------
        ChunkBuffer
            The fetched bytes. At or past the end of the object the buffer has
            no valid bytes.

        Raises
        ------
        FatalReadError
            If the fetch fails, and fails again after the session reopens.
        """
        return self._retrying(lambda: self._fetch(offset, capacity), offset)

    def close(self) -> None:
        """Release the live response. Safe to call more than once."""
        self._closed = True
        with self._lock:
            self._discard()


__all__ = ["RemoteObjectSession"]

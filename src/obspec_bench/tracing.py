"""Request tracing for store clients.

This module provides a wrapper that records the requests a client makes,
for benchmark statistics and for checking how many fetches a read pattern
costs.
"""

from __future__ import annotations

import time
from collections.abc import Generator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Literal, TypedDict

if TYPE_CHECKING:
    from obspec import Attributes, GetOptions, GetResult, PutResult

    from obspec_bench.handle import StoreClient

Method = Literal["get", "put", "delete"]


class _TraceInfo(TypedDict, total=False):
    """Info collected during a traced operation."""

    start: int
    length: int


@dataclass
class RequestRecord:
    """Record of a single client request.

    Note
    ----
    For ``get`` the ``duration`` covers opening the response only; the body
    streams afterwards as the caller consumes it.
    """

    path: str
    start: int
    length: int
    end: int  # start + length
    timestamp: float
    duration: float | None = None
    method: Method = "get"
    failed: bool = False


@dataclass
class RequestTrace:
    """Collection of request records with analysis methods."""

    requests: list[RequestRecord] = field(default_factory=list)

    def add(
        self,
        path: str,
        start: int,
        length: int,
        timestamp: float,
        duration: float | None = None,
        method: Method = "get",
        failed: bool = False,
    ) -> None:
        """Add a request record."""
        self.requests.append(
            RequestRecord(
                path=path,
                start=start,
                length=length,
                end=start + length,
                timestamp=timestamp,
                duration=duration,
                method=method,
                failed=failed,
            )
        )

    def clear(self) -> None:
        """Clear all recorded requests."""
        self.requests.clear()

    def by_method(self, method: Method) -> list[RequestRecord]:
        """Records of one request kind, in the order they were made."""
        return [r for r in self.requests if r.method == method]

    @property
    def total_bytes(self) -> int:
        """Total bytes requested."""
        return sum(r.length for r in self.requests)

    @property
    def total_requests(self) -> int:
        """Total number of requests."""
        return len(self.requests)

    def summary(self) -> dict[str, Any]:
        """Get summary statistics."""
        if not self.requests:
            return {
                "total_requests": 0,
                "total_bytes": 0,
                "unique_files": 0,
                "failed_requests": 0,
            }

        paths = set(r.path for r in self.requests)
        durations = [r.duration for r in self.requests if r.duration is not None]

        return {
            "total_requests": len(self.requests),
            "total_bytes": self.total_bytes,
            "unique_files": len(paths),
            "failed_requests": sum(r.failed for r in self.requests),
            "requests_by_method": {
                m: len(self.by_method(m)) for m in ("get", "put", "delete")
            },
            "mean_duration": sum(durations) / len(durations) if durations else None,
        }


def _payload_size(file: Any) -> int:
    """Byte count of an upload body without moving a stream's position."""
    try:
        return len(memoryview(file))
    except TypeError:
        pass
    if hasattr(file, "seek") and hasattr(file, "tell"):
        position = file.tell()
        size = file.seek(0, 2)
        file.seek(position)
        return size
    return 0


class TracingStore:
    """
    A wrapper that traces all requests made to an underlying client.

    Examples
    --------
    ```python
    from obstore.store import MemoryStore
    from obspec_bench import ResourceStore
    from obspec_bench.tracing import RequestTrace, TracingStore

    trace = RequestTrace()
    store = ResourceStore("s3://bucket/", client=TracingStore(MemoryStore(), trace))
    # ... do operations ...
    print(trace.summary())
    ```
    """

    def __init__(
        self,
        store: StoreClient,
        trace: RequestTrace,
        *,
        on_request: Callable[[RequestRecord], None] | None = None,
    ) -> None:
        """
        Create a tracing wrapper around a client.

        Parameters
        ----------
        store
            Any object implementing [Get][obspec.Get], [Put][obspec.Put] and
            [Delete][obspec.Delete].
        trace
            RequestTrace instance to record requests to.
        on_request
            Optional callback called for each request (e.g., for logging).
        """
        self._store = store
        self._trace = trace
        self._on_request = on_request

    def __getattr__(self, name: str) -> Any:
        """Forward unknown attributes to the underlying client."""
        return getattr(self._store, name)

    @contextmanager
    def _record(self, path: str, method: Method) -> Generator[_TraceInfo, None, None]:
        """Context manager to record a request with automatic timing.

        Records are saved even if the operation raises an exception.
        """
        info: _TraceInfo = {}
        failed = True
        start_time = time.time()
        try:
            yield info
            failed = False
        finally:
            self._trace.add(
                path=path,
                start=info.get("start", 0),
                length=info.get("length", 0),
                timestamp=start_time,
                duration=time.time() - start_time,
                method=method,
                failed=failed,
            )
            if self._on_request:
                self._on_request(self._trace.requests[-1])

    def get(self, path: str, *, options: GetOptions | None = None) -> GetResult:
        """Open a file or byte range (delegates to underlying client)."""
        with self._record(path, "get") as info:
            byte_range = (options or {}).get("range")
            info["start"] = byte_range[0] if byte_range else 0
            result = self._store.get(path, options=options)
            end = byte_range[1] if byte_range else result.meta["size"]
            info["length"] = end - info["start"]
            return result

    def put(
        self,
        path: str,
        file: Any,
        *,
        attributes: Attributes | None = None,
        **kwargs: Any,
    ) -> PutResult:
        """Upload a file (delegates to underlying client)."""
        with self._record(path, "put") as info:
            info["length"] = _payload_size(file)
            return self._store.put(path, file, attributes=attributes, **kwargs)

    def delete(self, paths: str) -> None:
        """Delete a file (delegates to underlying client)."""
        with self._record(paths, "delete"):
            return self._store.delete(paths)


__all__ = [
    "RequestRecord",
    "RequestTrace",
    "TracingStore",
]

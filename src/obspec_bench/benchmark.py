"""Write-then-read latency and throughput benchmark.

Writes a number of synthetic files of randomized size to a store, reads each
one back in full through [SeekableObjectStream][obspec_bench.stream.SeekableObjectStream]
and reports per-file latencies with averages.

```
obspec-bench s3x://my-bucket/bench 100 1048576
```
"""

from __future__ import annotations

import argparse
import json
import logging
import random
import time
import uuid
from dataclasses import asdict, dataclass, field
from time import perf_counter
from typing import Any

from obspec_bench.buffer import DEFAULT_CHUNK_SIZE
from obspec_bench.handle import StoreHandle
from obspec_bench.random_stream import RandomStream
from obspec_bench.store import ResourceStore
from obspec_bench.tracing import RequestTrace, TracingStore

logger = logging.getLogger(__name__)

DEFAULT_READ_SIZE = 8192


@dataclass
class FileTiming:
    """Timing of one file's write and read."""

    name: str
    size: int
    write_seconds: float = 0.0
    read_seconds: float = 0.0
    bytes_read: int = 0


@dataclass
class BenchmarkResults:
    """Container for all benchmark results."""

    location: str
    files: list[FileTiming] = field(default_factory=list)
    timestamp: str = field(default_factory=lambda: time.strftime("%Y-%m-%d %H:%M:%S"))

    @property
    def bytes_written(self) -> int:
        return sum(f.size for f in self.files)

    @property
    def bytes_read(self) -> int:
        return sum(f.bytes_read for f in self.files)

    @property
    def average_write_latency_us(self) -> float:
        if not self.files:
            return 0.0
        return sum(f.write_seconds for f in self.files) / len(self.files) * 1e6

    @property
    def average_read_latency_us(self) -> float:
        if not self.files:
            return 0.0
        return sum(f.read_seconds for f in self.files) / len(self.files) * 1e6

    @property
    def write_kb_per_second(self) -> float:
        seconds = sum(f.write_seconds for f in self.files)
        return self.bytes_written / seconds / 1000 if seconds else 0.0

    @property
    def read_kb_per_second(self) -> float:
        seconds = sum(f.read_seconds for f in self.files)
        return self.bytes_read / seconds / 1000 if seconds else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "location": self.location,
            "timestamp": self.timestamp,
            "n_files": len(self.files),
            "bytes_written": self.bytes_written,
            "bytes_read": self.bytes_read,
            "average_write_latency_us": self.average_write_latency_us,
            "average_read_latency_us": self.average_read_latency_us,
            "write_kb_per_second": self.write_kb_per_second,
            "read_kb_per_second": self.read_kb_per_second,
            "files": [asdict(f) for f in self.files],
        }


def file_size(rng: random.Random, bytes_per_file: int) -> int:
    """A size between half and one and a half times `bytes_per_file`."""
    if bytes_per_file <= 0:
        return 0
    return bytes_per_file - bytes_per_file // 2 + rng.randrange(bytes_per_file)


def run_benchmark(
    store: ResourceStore,
    files: int,
    bytes_per_file: int,
    *,
    location: str = "",
    seed: int | None = None,
    read_size: int = DEFAULT_READ_SIZE,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    cleanup: bool = True,
) -> BenchmarkResults:
    """
    Write `files` synthetic files to `store`, then read each back in full.

    Parameters
    ----------
    store
        The store to benchmark.
    files
        Number of files to write and read.
    bytes_per_file
        Average file size. Actual sizes vary uniformly between half and one
        and a half times this.
    location
        Label for the results.
    seed
        Seed for file sizes; payload `i` always uses seed `i`.
    read_size
        Size of each `read()` call when reading back.
    chunk_size
        Chunk size of the read streams.
    cleanup
        Delete the files afterwards.
    """
    rng = random.Random(seed)
    results = BenchmarkResults(location=location)

    for index in range(files):
        timing = FileTiming(name=uuid.uuid4().hex, size=file_size(rng, bytes_per_file))
        with RandomStream(index, timing.size) as source:
            timing.write_seconds = store.write_resource(source, None, timing.name)
        logger.info("Write Latency: %dus", timing.write_seconds * 1e6)
        results.files.append(timing)

    for timing in results.files:
        elapsed = 0.0
        start = perf_counter()
        with store.open_resource(timing.name, chunk_size) as stream:
            elapsed += perf_counter() - start
            while True:
                start = perf_counter()
                data = stream.read(read_size)
                elapsed += perf_counter() - start
                if not data:
                    break
                timing.bytes_read += len(data)
        timing.read_seconds = elapsed
        logger.info("Read Latency: %dus", timing.read_seconds * 1e6)

    if cleanup:
        for timing in results.files:
            store.delete_resource(timing.name)

    return results


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="obspec-bench",
        description="Benchmark object store write and read latency.",
        epilog=(
            "Location schemes: s3:// no encryption, s3e:// server-managed "
            "encryption, s3k:// key-service encryption (unsupported), "
            "s3x:// customer-provided key encryption."
        ),
    )
    parser.add_argument(
        "location", help="Target location, e.g. s3://my_bucket_name/myobjectkey"
    )
    parser.add_argument("files", type=int, help="Number of files to write then read")
    parser.add_argument(
        "bytes_per_file",
        type=int,
        help="Average bytes per file; sizes vary from 50%% to 150%% of this",
    )
    parser.add_argument("--seed", type=int, default=None, help="Seed for file sizes")
    parser.add_argument(
        "--chunk-size", type=int, default=DEFAULT_CHUNK_SIZE, help="Read chunk size"
    )
    parser.add_argument(
        "--read-size", type=int, default=DEFAULT_READ_SIZE, help="Bytes per read call"
    )
    parser.add_argument(
        "--keep", action="store_true", help="Do not delete the files afterwards"
    )
    parser.add_argument(
        "--json", action="store_true", help="Print the summary as JSON"
    )
    parser.add_argument(
        "--trace", action="store_true", help="Record and report every store request"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(message)s",
    )

    trace = None
    client = None
    if args.trace:
        trace = RequestTrace()
        client = TracingStore(StoreHandle.from_location(args.location).client, trace)

    with ResourceStore(args.location, client, chunk_size=args.chunk_size) as store:
        results = run_benchmark(
            store,
            args.files,
            args.bytes_per_file,
            location=args.location,
            seed=args.seed,
            read_size=args.read_size,
            chunk_size=args.chunk_size,
            cleanup=not args.keep,
        )

    if args.json:
        output = results.to_dict()
        if trace is not None:
            output["trace"] = trace.summary()
        print(json.dumps(output, indent=2))
    else:
        print(f"Average Write Latency: {results.average_write_latency_us:.0f}us")
        print(f"Average Read Latency: {results.average_read_latency_us:.0f}us")
        print(f"Average Write KB/sec: {results.write_kb_per_second:.0f}")
        print(f"Average Read KB/sec: {results.read_kb_per_second:.0f}")
        if trace is not None:
            for name, value in trace.summary().items():
                print(f"{name}: {value}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

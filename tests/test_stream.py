"""Tests for SeekableObjectStream."""

import random
from io import BytesIO
from unittest.mock import patch

import pytest
from obstore.store import MemoryStore

from obspec_bench.errors import ContractViolation, FatalReadError
from obspec_bench.handle import StoreHandle
from obspec_bench.session import RemoteObjectSession
from obspec_bench.stream import SeekableObjectStream


@pytest.fixture
def stream(handle):
    with SeekableObjectStream(handle, "data/obj", chunk_size=16_384) as s:
        yield s


def test_stream_is_lazy(handle, mock_store):
    with SeekableObjectStream(handle, "data/obj"):
        pass
    assert mock_store.get_calls == []


def test_length(stream, payload):
    assert stream.length == len(payload)


def test_basic_operations(stream, payload):
    assert stream.read(5) == payload[:5]
    assert stream.tell() == 5

    stream.seek(600)
    assert stream.read(5) == payload[600:605]

    stream.seek(-5, 1)
    assert stream.read(5) == payload[600:605]

    stream.seek(0)
    assert stream.readall() == payload


def test_seek_end(stream, payload):
    stream.seek(-2, 2)
    assert stream.read(2) == payload[-2:]


def test_seek_to_end_then_read_returns_nothing(stream):
    assert stream.seek(0, 2) == 50_000
    assert stream.read(10) == b""
    assert stream.readinto(bytearray(10)) == 0


def test_seek_before_start_is_rejected(stream):
    with pytest.raises(ContractViolation):
        stream.seek(-1)
    with pytest.raises(ContractViolation):
        stream.seek(-1, 1)
    with pytest.raises(ContractViolation):
        stream.seek(-50_001, 2)
    assert stream.tell() == 0


def test_invalid_whence(stream):
    with pytest.raises(ValueError):
        stream.seek(0, 3)


def test_seek_does_not_fetch(handle, mock_store):
    with SeekableObjectStream(handle, "data/obj") as stream:
        stream.seek(1234)
        stream.seek(10, 1)
        assert stream.tell() == 1244
    assert mock_store.get_calls == []


@pytest.mark.parametrize("position", [50_000, 50_001, 1 << 33])
def test_read_past_end_returns_nothing(stream, position):
    stream.seek(position)
    assert stream.tell() == position
    assert stream.read(100) == b""
    assert stream.read() == b""
    assert stream.tell() == position


def test_read_is_clamped_at_end(stream, payload):
    stream.seek(49_990)
    assert stream.read(100) == payload[49_990:]
    assert stream.tell() == 50_000


@pytest.mark.parametrize("position", [0, 49_990, 50_000, 1 << 33])
def test_huge_read_size_is_clamped(stream, payload, position):
    stream.seek(position)
    assert stream.read(1 << 40) == payload[position:]
    assert stream.tell() == max(position, len(payload))


def test_position_property(stream, payload):
    stream.position = 100
    assert stream.position == 100
    assert stream.read(3) == payload[100:103]


def test_readinto(stream, payload):
    buf = bytearray(20)
    stream.seek(10)
    assert stream.readinto(buf) == 20
    assert buf == payload[10:30]


def test_readinto_memoryview_slice(stream, payload):
    buf = bytearray(30)
    assert stream.readinto(memoryview(buf)[10:]) == 20
    assert buf[:10] == bytes(10)
    assert buf[10:] == payload[:20]


def test_random_access_matches_reference(stream, payload):
    """Any (offset, length) read equals the same slice of the full object."""
    rng = random.Random(0)
    ref = BytesIO(payload)
    for _ in range(200):
        offset = rng.randrange(0, 52_000)
        length = rng.randrange(0, 40_000)
        stream.seek(offset)
        ref.seek(offset)
        assert stream.read(length) == ref.read(length)
        assert stream.tell() == ref.tell()


@pytest.mark.parametrize("chunk_size", [1, 7, 4096, 16_384, 50_000, 100_000])
@pytest.mark.parametrize("read_size", [1, 999, 16_384])
def test_sequential_reads(handle, payload, chunk_size, read_size):
    if chunk_size == 1 and read_size > 1:
        pytest.skip("slow and covered by read_size=1")
    ref = BytesIO(payload)
    with SeekableObjectStream(handle, "data/obj", chunk_size) as stream:
        while True:
            data = stream.read(read_size)
            assert data == ref.read(read_size)
            if not data:
                break


class TestChunkFetches:
    """Refills happen only when the buffer cannot serve the cursor."""

    def test_sequential_scenario(self, handle, mock_store, payload):
        """50,000 bytes read 10,000 at a time from 16 KiB chunks."""
        with patch.object(
            RemoteObjectSession,
            "get_chunk",
            autospec=True,
            side_effect=RemoteObjectSession.get_chunk,
        ) as spy:
            with SeekableObjectStream(handle, "data/obj", 16_384) as stream:
                reads = [stream.read(10_000) for _ in range(6)]

        assert [call.args[1] for call in spy.call_args_list] == [
            0,
            16_384,
            32_768,
            49_152,
        ]
        assert [len(r) for r in reads] == [10_000] * 5 + [0]
        assert b"".join(reads) == payload
        # A purely sequential scan streams from a single response
        assert len(mock_store.get_calls) == 1

    def test_reads_within_chunk_make_no_requests(self, handle, mock_store):
        with patch.object(
            RemoteObjectSession,
            "get_chunk",
            autospec=True,
            side_effect=RemoteObjectSession.get_chunk,
        ) as spy:
            with SeekableObjectStream(handle, "data/obj", 16_384) as stream:
                for _ in range(100):
                    stream.read(100)
                stream.seek(50)
                stream.read(1000)
        assert spy.call_count == 1

    def test_seek_outside_chunk_refetches(self, handle, mock_store, payload):
        with SeekableObjectStream(handle, "data/obj", 16_384) as stream:
            stream.read(10)
            stream.seek(40_000)
            assert stream.read(10) == payload[40_000:40_010]
        assert mock_store.get_calls[-1] == ("data/obj", {"range": (40_000, 50_000)})


def test_transient_failure_is_invisible(handle, mock_store, payload):
    mock_store.fail_reads = 1
    with SeekableObjectStream(handle, "data/obj") as stream:
        assert stream.read() == payload


def test_persistent_failure_surfaces(handle, mock_store):
    with SeekableObjectStream(handle, "data/obj") as stream:
        stream.read(10)
        mock_store.fail_reads = 2
        stream.seek(30_000)
        with pytest.raises(FatalReadError) as excinfo:
            stream.read(10)
        assert excinfo.value.key == "data/obj"
        assert excinfo.value.offset == 30_000


def test_stream_is_read_only(stream):
    assert stream.readable()
    assert stream.seekable()
    assert not stream.writable()
    with pytest.raises(ContractViolation):
        stream.write(b"nope")
    with pytest.raises(ContractViolation):
        stream.truncate(0)


def test_closed_stream_rejects_operations(handle, mock_store):
    stream = SeekableObjectStream(handle, "data/obj")
    stream.read(10)
    stream.close()
    assert stream.closed
    assert mock_store.open_responses == 0
    for op in (
        lambda: stream.read(1),
        lambda: stream.readinto(bytearray(1)),
        lambda: stream.seek(0),
        lambda: stream.tell(),
        lambda: stream.length,
    ):
        with pytest.raises(ContractViolation):
            op()


def test_close_is_idempotent(handle):
    stream = SeekableObjectStream(handle, "data/obj")
    stream.read(10)
    stream.close()
    stream.close()


def test_context_manager_closes_on_error(handle, mock_store):
    with pytest.raises(RuntimeError):
        with SeekableObjectStream(handle, "data/obj") as stream:
            stream.read(10)
            raise RuntimeError("boom")
    assert stream.closed
    assert mock_store.open_responses == 0


def test_invalid_chunk_size(handle):
    with pytest.raises(ValueError):
        SeekableObjectStream(handle, "data/obj", chunk_size=0)


def test_memory_store(payload):
    """Reads through obstore's MemoryStore, including ranged reopens."""
    memstore = MemoryStore()
    memstore.put("prefix/obj", payload)
    handle = StoreHandle.from_location("s3://bucket/prefix", memstore)

    with SeekableObjectStream(handle, "prefix/obj", 4096) as stream:
        assert stream.length == len(payload)
        assert stream.read(100) == payload[:100]
        stream.seek(30_000)
        assert stream.read(10_000) == payload[30_000:40_000]
        stream.seek(-5, 2)
        assert stream.read() == payload[-5:]
        stream.seek(7)
        assert stream.read(3) == payload[7:10]

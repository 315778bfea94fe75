"""Tests for the async JsonStream API."""

import asyncio
import io
import json
import threading
from dataclasses import dataclass
from pathlib import Path

import pytest

from jsonframe import (
    AccessMode,
    ForbiddenOperationError,
    InvalidArgumentError,
    InvalidJsonDocumentError,
    JsonStream,
    StreamClosedError,
)

OPTIMIZED_MESSAGE = "Do not call any async method when using optimized constructor"

# ─────────────────────────────────────────────────────────────────────
# Fixtures
# ─────────────────────────────────────────────────────────────────────


@pytest.fixture
def sample_stream() -> JsonStream:
    """A generic stream holding 100 documents, positioned at 0."""
    stream = JsonStream(io.BytesIO())
    for i in range(100):
        stream.write_object({"line": i, "data": f"content_{i}"})
    stream.seek(0)
    return stream


@pytest.fixture
def optimized_stream(tmp_path: Path) -> JsonStream:
    """A stream created through JsonStream.open()."""
    path = tmp_path / "optimized.jf"
    stream = JsonStream.open(path, AccessMode.READ_AND_WRITE)
    yield stream
    stream.close()


# ─────────────────────────────────────────────────────────────────────
# Basic async reads and writes
# ─────────────────────────────────────────────────────────────────────


class TestAsyncReadWrite:
    """Tests for aread_*/awrite_* methods."""

    async def test_write_then_read(self):
        """Async writes read back in order."""
        buffer = io.BytesIO()
        stream = JsonStream(buffer)

        info = await stream.awrite_string('{"a":1}')
        assert info.offset == 0
        assert buffer.getvalue() == b'00000007{"a":1}'

        stream.seek(0)
        assert await stream.aread_string() == '{"a":1}'
        assert stream.position == 15

    async def test_read_bytes(self, sample_stream: JsonStream):
        """aread_bytes returns raw payloads."""
        payload = await sample_stream.aread_bytes()
        assert payload == b'{"line":0,"data":"content_0"}'

    async def test_typed_reads(self):
        """aread_json/array/token mirror the sync variants."""
        stream = JsonStream(io.BytesIO())
        await stream.awrite_json({"a": 1})
        await stream.awrite_array([1, 2])
        await stream.awrite_token(3.5)
        stream.seek(0)

        assert await stream.aread_json() == {"a": 1}
        assert await stream.aread_array() == [1, 2]
        assert await stream.aread_token() == 3.5
        assert await stream.aread_token() is None

    async def test_read_object_dataclass(self):
        """aread_object shapes into a dataclass."""

        @dataclass
        class Event:
            name: str
            count: int = 0

        stream = JsonStream(io.BytesIO())
        await stream.awrite_object(Event("start", 2))
        stream.seek(0)
        assert await stream.aread_object(Event) == Event("start", 2)

    async def test_end_of_stream(self):
        """Async reads past the end return the sentinel repeatedly."""
        stream = JsonStream(io.BytesIO(b"00000002{}"))
        assert await stream.aread_json() == {}
        for _ in range(3):
            assert await stream.aread_bytes() is None
            assert await stream.aread_object(list) == []
        assert stream.position == 10

    async def test_validation_failure_writes_nothing(self):
        """Invalid JSON is refused before any I/O."""
        buffer = io.BytesIO()
        stream = JsonStream(buffer)
        with pytest.raises(json.JSONDecodeError):
            await stream.awrite_bytes(b"NOT PASS")
        assert buffer.getvalue() == b""

    async def test_empty_payload(self):
        """Empty payloads are rejected."""
        buffer = io.BytesIO()
        stream = JsonStream(buffer)
        with pytest.raises(InvalidArgumentError) as exc:
            await stream.awrite_bytes(b"", False)
        assert exc.value.param_name == "data"
        assert buffer.getvalue() == b""

    async def test_malformed_document(self):
        """Short payloads raise InvalidJsonDocumentError."""
        stream = JsonStream(io.BytesIO(b"00000009{}"))
        with pytest.raises(InvalidJsonDocumentError) as exc:
            await stream.aread_bytes()
        assert exc.value.position == 8

    async def test_aflush(self, tmp_path: Path):
        """aflush pushes buffered bytes to the file."""
        path = tmp_path / "flush.jf"
        stream = JsonStream(open(path, "wb", buffering=1 << 20))
        await stream.awrite_json({"a": 1})
        await stream.aflush()
        assert path.read_bytes() == b'00000007{"a":1}'
        await stream.aclose()


# ─────────────────────────────────────────────────────────────────────
# Mode and optimized-path restrictions
# ─────────────────────────────────────────────────────────────────────


class TestAsyncRestrictions:
    """Tests for ForbiddenOperationError on async methods."""

    @pytest.mark.parametrize(
        "method,args",
        [
            ("aread_bytes", ()),
            ("aread_string", ()),
            ("aread_object", ()),
            ("aread_json", ()),
            ("aread_array", ()),
            ("aread_token", ()),
            ("awrite_bytes", (b"{}",)),
            ("awrite_string", ("{}",)),
            ("awrite_object", ({},)),
            ("awrite_json", ({},)),
            ("awrite_array", ([],)),
            ("awrite_token", (1,)),
            ("aflush", ()),
            ("aclose", ()),
        ],
    )
    async def test_optimized_forbids_async(
        self, optimized_stream: JsonStream, method: str, args: tuple
    ):
        """Every async method fails on an optimized stream."""
        with pytest.raises(ForbiddenOperationError, match=OPTIMIZED_MESSAGE):
            await getattr(optimized_stream, method)(*args)

        assert optimized_stream.position == 0
        assert not optimized_stream.closed

    async def test_optimized_forbids_regardless_of_mode(self, tmp_path: Path):
        """The optimized restriction wins over mode checks."""
        path = tmp_path / "wo.jf"
        with JsonStream.open(path, AccessMode.WRITE_ONLY) as stream:
            with pytest.raises(ForbiddenOperationError, match=OPTIMIZED_MESSAGE):
                await stream.aread_bytes()

    async def test_optimized_forbids_async_context(self, optimized_stream: JsonStream):
        """async with and async_stream() are refused too."""
        with pytest.raises(ForbiddenOperationError):
            async with optimized_stream:
                pass
        with pytest.raises(ForbiddenOperationError):
            optimized_stream.async_stream()

    async def test_sync_still_allowed_on_optimized(self, optimized_stream: JsonStream):
        """Sync methods keep working on an optimized stream."""
        optimized_stream.write_json({"a": 1})
        optimized_stream.seek(0)
        assert optimized_stream.read_json() == {"a": 1}

    async def test_read_in_write_only(self):
        """Async reads respect WriteOnly mode."""
        buffer = io.BytesIO(b"00000002{}")
        stream = JsonStream(buffer, mode=AccessMode.WRITE_ONLY)
        with pytest.raises(ForbiddenOperationError, match="Can't read in WriteOnly mode"):
            await stream.aread_json()
        assert buffer.tell() == 0

    async def test_write_in_read_only(self):
        """Async writes respect ReadOnly mode."""
        buffer = io.BytesIO()
        stream = JsonStream(buffer, mode=AccessMode.READ_ONLY)
        with pytest.raises(ForbiddenOperationError, match="Can't write in ReadOnly mode"):
            await stream.awrite_object({"a": 1})
        assert buffer.getvalue() == b""


# ─────────────────────────────────────────────────────────────────────
# Lifecycle
# ─────────────────────────────────────────────────────────────────────


class TestAsyncLifecycle:
    """Tests for aclose and async context management."""

    async def test_async_with_closes(self):
        """Leaving async with closes the stream and buffer."""
        buffer = io.BytesIO()
        async with JsonStream(buffer) as stream:
            await stream.awrite_json({"a": 1})
        assert stream.closed
        assert buffer.closed

    async def test_aclose_twice(self):
        """aclose is idempotent."""
        stream = JsonStream(io.BytesIO())
        await stream.aclose()
        await stream.aclose()
        assert stream.closed

    async def test_use_after_aclose(self):
        """Operations after aclose raise StreamClosedError."""
        stream = JsonStream(io.BytesIO())
        await stream.aclose()
        with pytest.raises(StreamClosedError):
            await stream.aread_bytes()
        with pytest.raises(StreamClosedError):
            await stream.awrite_json({})


# ─────────────────────────────────────────────────────────────────────
# Async iteration
# ─────────────────────────────────────────────────────────────────────


class TestAiter:
    """Tests for aiter_bytes()/aiter_objects()."""

    async def test_aiter_objects(self, sample_stream: JsonStream):
        """Iterates every document."""
        items = [item async for item in sample_stream.aiter_objects()]
        assert len(items) == 100
        assert items[0]["line"] == 0
        assert items[99]["line"] == 99

    async def test_aiter_bytes(self, sample_stream: JsonStream):
        """Iterates raw payloads."""
        payloads = [p async for p in sample_stream.aiter_bytes()]
        assert len(payloads) == 100
        assert b'"line":0' in payloads[0]

    async def test_aiter_from_middle(self, sample_stream: JsonStream):
        """Iteration starts at the current position."""
        for _ in range(95):
            sample_stream.read_bytes()
        items = [item async for item in sample_stream.aiter_objects()]
        assert [i["line"] for i in items] == [95, 96, 97, 98, 99]

    async def test_aiter_empty(self):
        """Empty streams yield nothing."""
        stream = JsonStream(io.BytesIO())
        assert [item async for item in stream.aiter_objects()] == []

    async def test_explicit_aclose(self, sample_stream: JsonStream):
        """The generator can be closed early."""
        gen = sample_stream.aiter_objects()
        items = []
        async for item in gen:
            items.append(item)
            if len(items) >= 5:
                await gen.aclose()
                break
        assert len(items) == 5

    async def test_unicode_content(self):
        """Unicode documents decode correctly."""
        stream = JsonStream(io.BytesIO())
        await stream.awrite_object({"emoji": "🎉", "chinese": "中文"})
        await stream.awrite_object({"arabic": "العربية"})
        stream.seek(0)

        items = [item async for item in stream.aiter_objects()]
        assert items[0]["emoji"] == "🎉"
        assert items[0]["chinese"] == "中文"
        assert items[1]["arabic"] == "العربية"

    async def test_very_long_document(self):
        """Large documents round-trip."""
        stream = JsonStream(io.BytesIO())
        await stream.awrite_object({"data": "x" * 100_000})
        await stream.awrite_object({"small": "doc"})
        stream.seek(0)

        items = [item async for item in stream.aiter_objects()]
        assert len(items[0]["data"]) == 100_000
        assert items[1]["small"] == "doc"


class TestAsyncDocumentStream:
    """Tests for the async_stream() context manager."""

    async def test_basic_stream(self, sample_stream: JsonStream):
        """Yields every document and tracks the count."""
        async with sample_stream.async_stream() as docs:
            items = [item async for item in docs]

        assert len(items) == 100
        assert docs.yielded_count == 100
        assert docs.closed
        assert not sample_stream.closed

    async def test_stream_with_limit(self, sample_stream: JsonStream):
        """Limit caps the number of documents."""
        async with sample_stream.async_stream(limit=10) as docs:
            items = [item async for item in docs]

        assert len(items) == 10
        assert docs.yielded_count == 10
        assert await sample_stream.aread_json() == {"line": 10, "data": "content_10"}

    async def test_zero_limit(self, sample_stream: JsonStream):
        """limit=0 reads nothing."""
        async with sample_stream.async_stream(limit=0) as docs:
            items = [item async for item in docs]
        assert items == []
        assert sample_stream.position == 0

    async def test_stream_raw(self, sample_stream: JsonStream):
        """as_json=False yields bytes."""
        async with sample_stream.async_stream(as_json=False) as docs:
            items = [item async for item in docs]
        assert isinstance(items[0], bytes)

    async def test_stream_typed(self, sample_stream: JsonStream):
        """target shapes each document."""

        @dataclass
        class Line:
            line: int
            data: str = ""

        async with sample_stream.async_stream(target=Line, limit=2) as docs:
            items = [item async for item in docs]
        assert items == [Line(0, "content_0"), Line(1, "content_1")]

    async def test_position_tracking(self, sample_stream: JsonStream):
        """Position advances as documents are yielded."""
        async with sample_stream.async_stream(limit=3) as docs:
            assert docs.start_position == 0
            positions = []
            async for _ in docs:
                positions.append(docs.position)

        assert positions == sorted(positions)
        assert positions[0] > 0

    async def test_break_early(self, sample_stream: JsonStream):
        """Breaking out still closes the context."""
        count = 0
        async with sample_stream.async_stream() as docs:
            async for _ in docs:
                count += 1
                if count >= 10:
                    break

        assert count == 10
        assert docs.closed

    async def test_exception_during_iteration(self, sample_stream: JsonStream):
        """An exception in the body still closes the context."""
        with pytest.raises(ValueError):
            async with sample_stream.async_stream() as docs:
                async for _ in docs:
                    raise ValueError("test error")
        assert docs.closed

    async def test_closed_stream_on_entry(self):
        """Entering on a closed JsonStream raises."""
        stream = JsonStream(io.BytesIO())
        stream.close()
        with pytest.raises(StreamClosedError):
            async with stream.async_stream():
                pass


# ─────────────────────────────────────────────────────────────────────
# Concurrency
# ─────────────────────────────────────────────────────────────────────


class TestAsyncConcurrency:
    """Tests for concurrent async calls on one stream."""

    async def test_gathered_writes(self):
        """Gathered async writes produce whole, readable documents."""
        stream = JsonStream(io.BytesIO())
        await asyncio.gather(*(stream.awrite_object({"n": i}) for i in range(50)))

        stream.seek(0)
        numbers = sorted(doc["n"] for doc in stream)
        assert numbers == list(range(50))

    async def test_separate_streams(self):
        """Independent streams run concurrently."""
        streams = [JsonStream(io.BytesIO()) for _ in range(3)]

        async def fill(stream: JsonStream, count: int) -> int:
            for i in range(count):
                await stream.awrite_object({"i": i})
            stream.seek(0)
            return len([doc async for doc in stream.aiter_objects()])

        results = await asyncio.gather(*(fill(s, n) for s, n in zip(streams, (10, 20, 30))))
        assert results == [10, 20, 30]

    async def test_cancelled_write_keeps_lock(self):
        """A cancelled write finishes before the next async call starts."""
        started = threading.Event()
        release = threading.Event()

        class SlowFirstWrite(io.BytesIO):
            calls = 0

            def write(self, data):
                SlowFirstWrite.calls += 1
                if SlowFirstWrite.calls == 1:
                    started.set()
                    release.wait(5)
                return super().write(data)

        buffer = SlowFirstWrite()
        stream = JsonStream(buffer)

        first = asyncio.create_task(stream.awrite_string('{"a":1}'))
        await asyncio.to_thread(started.wait, 5)
        first.cancel()
        second = asyncio.create_task(stream.awrite_string("[2]"))
        await asyncio.sleep(0.05)
        assert not second.done()

        release.set()
        await second
        with pytest.raises(asyncio.CancelledError):
            await first

        assert buffer.getvalue() == b'00000007{"a":1}00000003[2]'

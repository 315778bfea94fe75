"""Core framing engine: read and write length-prefixed JSON documents."""

from __future__ import annotations

import asyncio
import logging
import os
import threading
from pathlib import Path
from typing import IO, Any, AsyncIterator, Callable, Iterator, Mapping, TypeVar, Union

from .async_stream import AsyncDocumentStream
from .codec import DEFAULT_DOCUMENT_SIZE_LENGTH, decode_size, encode_size
from .exceptions import (
    ForbiddenOperationError,
    InvalidArgumentError,
    InvalidJsonDocumentError,
    StreamClosedError,
)
from .models import AccessMode, DocumentInfo
from .serialization import DEFAULT_CODEC, JsonCodec

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_BUFFER_SIZE = 64 * 1024

_UNSET = object()

_FILE_MODES = {
    AccessMode.READ_ONLY: "rb",
    AccessMode.WRITE_ONLY: "ab",
    AccessMode.READ_AND_WRITE: "r+b",
}


class JsonStream:
    """A sequence of JSON documents framed by fixed-width size descriptors.

    Each document is stored as its payload length, written as zero-padded
    ASCII digits of ``document_size_length`` bytes, followed by the UTF-8
    JSON payload. Documents are read back in the order they were written.

    Synchronous reads and writes are serialized by a per-stream lock, so a
    document transfer is never interleaved with another one from a
    different thread. Async variants (``aread_*``, ``awrite_*``) run the
    same transfer in a worker thread; they are only available on streams
    wrapping a caller-supplied file object, not on streams created with
    :meth:`open`.

    Example:
        >>> with JsonStream.open("events.jsonl8", AccessMode.WRITE_ONLY) as out:
        ...     out.write_object({"event": "start"})
        >>> with JsonStream.open("events.jsonl8") as src:
        ...     for event in src:
        ...         process(event)
    """

    def __init__(
        self,
        stream: IO[bytes],
        document_size_length: int = DEFAULT_DOCUMENT_SIZE_LENGTH,
        mode: Union[AccessMode, str] = AccessMode.READ_AND_WRITE,
        *,
        codec: JsonCodec | None = None,
    ) -> None:
        """Wrap an open binary file object.

        Args:
            stream: Binary file object supporting read/write/tell/flush/close
            document_size_length: Width of every size descriptor in bytes
            mode: Which operations are permitted
            codec: JSON settings used for object reads/writes and validation

        Raises:
            InvalidArgumentError: If stream is None or document_size_length < 1
        """
        if stream is None:
            raise InvalidArgumentError("stream", "A stream is required.")
        if document_size_length < 1:
            raise InvalidArgumentError(
                "document_size_length",
                "Please reserve at least one byte to represent the size of the document.",
            )

        self._stream = stream
        self._document_size_length = document_size_length
        self._mode = AccessMode(mode)
        self._codec = codec or DEFAULT_CODEC
        self._optimized = False
        self._closed = False
        self._lock = threading.Lock()
        self._async_lock = asyncio.Lock()

    @classmethod
    def open(
        cls,
        file_path: Union[str, Path],
        mode: Union[AccessMode, str] = AccessMode.READ_ONLY,
        document_size_length: int = DEFAULT_DOCUMENT_SIZE_LENGTH,
        *,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
        codec: JsonCodec | None = None,
    ) -> "JsonStream":
        """Open a file for sequential document access.

        The file is opened with a dedicated buffer and a sequential-access
        hint. Streams opened this way do not allow async methods.

        READ_ONLY requires an existing file. WRITE_ONLY appends to the file,
        creating it if needed. READ_AND_WRITE creates the file if needed and
        starts at offset 0; writes happen at the current position.

        Args:
            file_path: Path to the framed file
            mode: Which operations are permitted
            document_size_length: Width of every size descriptor in bytes
            buffer_size: I/O buffer size in bytes
            codec: JSON settings used for object reads/writes and validation

        Raises:
            FileNotFoundError: If mode is READ_ONLY and the file is missing
            InvalidArgumentError: If document_size_length < 1
        """
        access = AccessMode(mode)
        if document_size_length < 1:
            raise InvalidArgumentError(
                "document_size_length",
                "Please reserve at least one byte to represent the size of the document.",
            )

        path = Path(file_path)
        if access is AccessMode.READ_AND_WRITE and not path.exists():
            path.touch()

        handle = open(path, _FILE_MODES[access], buffering=buffer_size)
        _advise_sequential(handle)
        logger.debug(f"Opened {path} as {access.value} (buffer_size={buffer_size})")

        instance = cls(handle, document_size_length, access, codec=codec)
        instance._optimized = True
        return instance

    # ─────────────────────────────────────────────────────────────────────
    # Properties
    # ─────────────────────────────────────────────────────────────────────

    @property
    def document_size_length(self) -> int:
        """Width of every size descriptor in bytes."""
        return self._document_size_length

    @property
    def mode(self) -> AccessMode:
        """Which operations are permitted."""
        return self._mode

    @property
    def optimized(self) -> bool:
        """True if the stream was created with :meth:`open`."""
        return self._optimized

    @property
    def codec(self) -> JsonCodec:
        """JSON settings used by this stream."""
        return self._codec

    @property
    def closed(self) -> bool:
        """Whether the stream has been closed."""
        return self._closed

    @property
    def position(self) -> int:
        """Current byte offset in the underlying file object."""
        self._check_open()
        return self._stream.tell()

    def seek(self, offset: int) -> int:
        """Move the cursor to an absolute byte offset.

        The offset should point at a size descriptor, typically one taken
        from ``position`` or a :class:`DocumentInfo`.

        Returns:
            The new position
        """
        self._check_open()
        if offset < 0:
            raise InvalidArgumentError("offset", "Offset cannot be negative.")
        with self._lock:
            return self._stream.seek(offset)

    # ─────────────────────────────────────────────────────────────────────
    # Reading
    # ─────────────────────────────────────────────────────────────────────

    def read_bytes(self) -> bytes | None:
        """Read the next document's payload.

        Returns:
            The payload, or None at end of stream

        Raises:
            InvalidDocumentSizeLengthError: If the size descriptor is truncated
                or not a number
            InvalidJsonDocumentError: If the payload is shorter than declared
        """
        self._check_readable()
        with self._lock:
            return self._read_document()

    def read_string(self) -> str | None:
        """Read the next document as UTF-8 text, or None at end of stream."""
        self._check_readable()
        return _to_string(self.read_bytes())

    def read_object(self, target: Any = None) -> Any:
        """Read and parse the next document.

        Args:
            target: Shape to decode into (see :meth:`JsonCodec.decode`)

        Returns:
            The decoded value, or ``codec.default_for(target)`` at end of
            stream (the codec is not called in that case)

        Raises:
            json.JSONDecodeError: If the payload is not valid JSON
        """
        self._check_readable()
        return self._to_object(self.read_string(), target)

    def read_json(self) -> dict[str, Any] | None:
        """Read the next document as a JSON object, or None at end of stream."""
        self._check_readable()
        return self._to_object(self.read_string(), dict, default=None)

    def read_array(self) -> list[Any] | None:
        """Read the next document as a JSON array, or None at end of stream."""
        self._check_readable()
        return self._to_object(self.read_string(), list, default=None)

    def read_token(self) -> Any:
        """Read the next document as any JSON value, or None at end of stream."""
        self._check_readable()
        return self._to_object(self.read_string(), None)

    # ─────────────────────────────────────────────────────────────────────
    # Writing
    # ─────────────────────────────────────────────────────────────────────

    def write_bytes(self, data: bytes, validate: bool = True) -> DocumentInfo:
        """Append one document.

        Args:
            data: UTF-8 JSON payload, at least one byte
            validate: Parse the payload first and refuse invalid JSON

        Returns:
            Where the document was written

        Raises:
            InvalidArgumentError: If data is None or empty, or too large
                for the size descriptor
            json.JSONDecodeError: If validate is set and data is not JSON;
                nothing is written in that case
            UnicodeDecodeError: If validate is set and data is not UTF-8
        """
        self._check_writable()
        payload = self._prepare_payload(data, validate)
        with self._lock:
            return self._write_document(payload)

    def write_string(self, text: str, validate: bool = True) -> DocumentInfo:
        """Append one document given as JSON text."""
        self._check_writable()
        return self.write_bytes(_to_bytes(text), validate)

    def write_object(self, value: Any) -> DocumentInfo:
        """Serialize a value with the stream's codec and append it."""
        self._check_writable()
        return self.write_string(self._codec.encode(value), validate=False)

    def write_json(self, obj: Mapping[str, Any]) -> DocumentInfo:
        """Append a JSON object."""
        self._check_writable()
        _require(obj, "obj", Mapping, "a mapping")
        return self.write_object(obj)

    def write_array(self, items: list[Any] | tuple[Any, ...]) -> DocumentInfo:
        """Append a JSON array."""
        self._check_writable()
        _require(items, "items", (list, tuple), "a list or tuple")
        return self.write_object(items)

    def write_token(self, value: Any) -> DocumentInfo:
        """Append any JSON value other than a bare null."""
        self._check_writable()
        if value is None:
            raise InvalidArgumentError("value", "Document value cannot be None.")
        return self.write_object(value)

    def flush(self) -> None:
        """Push buffered writes down to the underlying file object."""
        self._check_open()
        with self._lock:
            self._stream.flush()

    # ─────────────────────────────────────────────────────────────────────
    # Async API
    # ─────────────────────────────────────────────────────────────────────

    async def aread_bytes(self) -> bytes | None:
        """Async version of :meth:`read_bytes`."""
        self._check_async()
        self._check_readable()
        return await self._run_exclusive(self._read_document)

    async def aread_string(self) -> str | None:
        """Async version of :meth:`read_string`."""
        self._check_async()
        self._check_readable()
        return _to_string(await self.aread_bytes())

    async def aread_object(self, target: Any = None) -> Any:
        """Async version of :meth:`read_object`."""
        self._check_async()
        self._check_readable()
        return self._to_object(await self.aread_string(), target)

    async def aread_json(self) -> dict[str, Any] | None:
        """Async version of :meth:`read_json`."""
        self._check_async()
        self._check_readable()
        return self._to_object(await self.aread_string(), dict, default=None)

    async def aread_array(self) -> list[Any] | None:
        """Async version of :meth:`read_array`."""
        self._check_async()
        self._check_readable()
        return self._to_object(await self.aread_string(), list, default=None)

    async def aread_token(self) -> Any:
        """Async version of :meth:`read_token`."""
        self._check_async()
        self._check_readable()
        return self._to_object(await self.aread_string(), None)

    async def awrite_bytes(self, data: bytes, validate: bool = True) -> DocumentInfo:
        """Async version of :meth:`write_bytes`."""
        self._check_async()
        self._check_writable()
        payload = self._prepare_payload(data, validate)
        return await self._run_exclusive(self._write_document, payload)

    async def awrite_string(self, text: str, validate: bool = True) -> DocumentInfo:
        """Async version of :meth:`write_string`."""
        self._check_async()
        self._check_writable()
        return await self.awrite_bytes(_to_bytes(text), validate)

    async def awrite_object(self, value: Any) -> DocumentInfo:
        """Async version of :meth:`write_object`."""
        self._check_async()
        self._check_writable()
        return await self.awrite_string(self._codec.encode(value), validate=False)

    async def awrite_json(self, obj: Mapping[str, Any]) -> DocumentInfo:
        """Async version of :meth:`write_json`."""
        self._check_async()
        self._check_writable()
        _require(obj, "obj", Mapping, "a mapping")
        return await self.awrite_object(obj)

    async def awrite_array(self, items: list[Any] | tuple[Any, ...]) -> DocumentInfo:
        """Async version of :meth:`write_array`."""
        self._check_async()
        self._check_writable()
        _require(items, "items", (list, tuple), "a list or tuple")
        return await self.awrite_object(items)

    async def awrite_token(self, value: Any) -> DocumentInfo:
        """Async version of :meth:`write_token`."""
        self._check_async()
        self._check_writable()
        if value is None:
            raise InvalidArgumentError("value", "Document value cannot be None.")
        return await self.awrite_object(value)

    async def aflush(self) -> None:
        """Async version of :meth:`flush`."""
        self._check_async()
        self._check_open()
        await self._run_exclusive(self._stream.flush)

    # ─────────────────────────────────────────────────────────────────────
    # Iteration
    # ─────────────────────────────────────────────────────────────────────

    def iter_bytes(self) -> Iterator[bytes]:
        """Iterate payloads from the current position to end of stream."""
        while True:
            payload = self.read_bytes()
            if payload is None:
                return
            yield payload

    def iter_strings(self) -> Iterator[str]:
        """Iterate documents as text from the current position."""
        for payload in self.iter_bytes():
            yield payload.decode("utf-8")

    def iter_objects(self, target: Any = None) -> Iterator[Any]:
        """Iterate decoded documents from the current position."""
        for payload in self.iter_bytes():
            yield self._codec.decode(payload.decode("utf-8"), target)

    def __iter__(self) -> Iterator[Any]:
        return self.iter_objects()

    async def aiter_bytes(self) -> AsyncIterator[bytes]:
        """Async iterate payloads from the current position."""
        while True:
            payload = await self.aread_bytes()
            if payload is None:
                return
            yield payload

    async def aiter_objects(self, target: Any = None) -> AsyncIterator[Any]:
        """Async iterate decoded documents from the current position."""
        async for payload in self.aiter_bytes():
            yield self._codec.decode(payload.decode("utf-8"), target)

    def async_stream(
        self,
        *,
        target: Any = None,
        limit: int | None = None,
        as_json: bool = True,
    ) -> AsyncDocumentStream:
        """Create an async context manager iterating this stream.

        Args:
            target: Shape to decode documents into (ignored if as_json=False)
            limit: Maximum number of documents to yield (None = unlimited)
            as_json: If True, yield decoded values; if False, raw payloads

        Example:
            >>> async with stream.async_stream(limit=100) as docs:
            ...     async for doc in docs:
            ...         await handle(doc)
        """
        self._check_async()
        return AsyncDocumentStream(self, target=target, limit=limit, as_json=as_json)

    # ─────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────────

    def close(self) -> None:
        """Flush pending writes and close the underlying file object.

        Calling close more than once is a no-op.
        """
        if self._closed:
            return
        self._closed = True
        with self._lock:
            try:
                if not getattr(self._stream, "closed", False):
                    self._stream.flush()
            finally:
                self._stream.close()
        logger.debug(f"Closed {self!r}")

    async def aclose(self) -> None:
        """Async version of :meth:`close`."""
        self._check_async()
        if self._closed:
            return
        await self._run_exclusive(self.close)

    def __enter__(self) -> "JsonStream":
        """Enter context manager."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        """Exit context manager and close the stream."""
        self.close()

    async def __aenter__(self) -> "JsonStream":
        """Enter async context manager."""
        self._check_async()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        """Exit async context manager and close the stream."""
        await self.aclose()

    def __repr__(self) -> str:
        return (
            f"JsonStream({getattr(self._stream, 'name', self._stream)!r}, "
            f"mode={self._mode.value}, document_size_length={self._document_size_length})"
        )

    # ─────────────────────────────────────────────────────────────────────
    # Internals
    # ─────────────────────────────────────────────────────────────────────

    def _check_open(self) -> None:
        if self._closed:
            raise StreamClosedError()

    def _check_readable(self) -> None:
        if not self._mode.can_read:
            raise ForbiddenOperationError(f"Can't read in {self._mode.value} mode")
        self._check_open()

    def _check_writable(self) -> None:
        if not self._mode.can_write:
            raise ForbiddenOperationError(f"Can't write in {self._mode.value} mode")
        self._check_open()

    def _check_async(self) -> None:
        if self._optimized:
            raise ForbiddenOperationError(
                "Do not call any async method when using optimized constructor"
            )

    async def _run_exclusive(self, func: Callable[..., T], *args: Any) -> T:
        """Run a blocking call in a worker thread under the async lock.

        A worker thread cannot be interrupted, so if the awaiting task is
        cancelled the lock is held until the thread finishes. The next
        async call never starts while the file is still being touched.
        """
        async with self._async_lock:
            worker = asyncio.ensure_future(asyncio.to_thread(func, *args))
            try:
                return await asyncio.shield(worker)
            except asyncio.CancelledError:
                await asyncio.wait({worker})
                raise

    def _prepare_payload(self, data: bytes, validate: bool) -> bytes:
        if data is None:
            raise InvalidArgumentError("data", "Document bytes cannot be None.")
        if len(data) == 0:
            raise InvalidArgumentError("data", "Cannot write an empty document.")
        payload = bytes(data)
        if validate:
            self._codec.validate(payload)
        return payload

    def _to_object(self, text: str | None, target: Any, default: Any = _UNSET) -> Any:
        if text is None:
            return self._codec.default_for(target) if default is _UNSET else default
        return self._codec.decode(text, target)

    def _read_exactly(self, size: int) -> bytes:
        """Read up to ``size`` bytes, stopping early only at end of data."""
        chunks: list[bytes] = []
        remaining = size
        while remaining > 0:
            chunk = self._stream.read(remaining)
            if not chunk:
                break
            chunks.append(chunk)
            remaining -= len(chunk)
        return b"".join(chunks)

    def _read_document(self) -> bytes | None:
        width = self._document_size_length
        start = self._stream.tell()
        size = decode_size(self._read_exactly(width), width)
        if size is None:
            logger.debug(f"End of stream at offset {start}")
            return None

        position = start + width
        if size == 0:
            logger.warning(f"Empty document at offset {start}")
            raise InvalidJsonDocumentError(
                f"Empty json document at position {position}.", position
            )

        payload = self._read_exactly(size)
        if len(payload) != size:
            logger.warning(
                f"Document at offset {start} declares {size} bytes, only {len(payload)} available"
            )
            raise InvalidJsonDocumentError(
                f"Can't read all bytes of the json document at position {position}.",
                position,
            )
        return payload

    def _write_document(self, payload: bytes) -> DocumentInfo:
        width = self._document_size_length
        frame = encode_size(len(payload), width) + payload
        offset = self._stream.tell()

        view = memoryview(frame)
        while view:
            # raw (unbuffered) writers may accept only part of the frame
            written = self._stream.write(view)
            view = view[len(view) if written is None else written :]

        logger.debug(f"Wrote document at offset {offset} ({len(payload)} bytes)")
        return DocumentInfo(offset=offset, size=len(payload), document_size_length=width)


def _to_string(payload: bytes | None) -> str | None:
    return None if payload is None else payload.decode("utf-8")


def _to_bytes(text: str) -> bytes:
    if text is None:
        raise InvalidArgumentError("text", "Document text cannot be None.")
    if text == "":
        raise InvalidArgumentError("text", "Cannot write an empty document.")
    return text.encode("utf-8")


def _require(value: Any, name: str, kinds: Any, description: str) -> None:
    if value is None:
        raise InvalidArgumentError(name, "Document value cannot be None.")
    if not isinstance(value, kinds):
        raise InvalidArgumentError(name, f"Expected {description}, got {type(value).__name__}.")


def _advise_sequential(handle: IO[bytes]) -> None:
    """Tell the OS the file will be read front to back."""
    if not hasattr(os, "posix_fadvise"):
        return
    try:
        os.posix_fadvise(handle.fileno(), 0, 0, os.POSIX_FADV_SEQUENTIAL)
    except OSError as e:
        logger.debug(f"posix_fadvise not applied: {e}")

"""Async iteration context manager for jsonframe."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, AsyncIterator

from .exceptions import StreamClosedError

if TYPE_CHECKING:
    from .stream import JsonStream


class AsyncDocumentStream:
    """Async context manager iterating the documents of a JsonStream.

    Provides:
    - A closed-stream check on entry
    - Cleanup of the underlying generator on exit (even on break/exception)
    - Progress tracking (position, yielded_count)

    Leaving the context does not close the JsonStream itself.

    Example:
        >>> async with stream.async_stream(limit=1000) as docs:
        ...     async for doc in docs:
        ...         await process(doc)
        ...     print(f"Processed {docs.yielded_count} documents")
    """

    def __init__(
        self,
        stream: "JsonStream",
        *,
        target: Any = None,
        limit: int | None = None,
        as_json: bool = True,
    ) -> None:
        """Initialize async document stream context.

        Args:
            stream: The JsonStream to iterate over
            target: Shape to decode documents into (see JsonCodec.decode)
            limit: Maximum number of documents to yield (None = unlimited)
            as_json: If True, yield decoded values; if False, raw payloads
        """
        self._stream = stream
        self._target = target
        self._limit = limit
        self._as_json = as_json

        self._closed = False
        self._yielded_count = 0
        self._iterator: AsyncIterator[Any] | None = None
        self._start_position = 0

    async def __aenter__(self) -> "AsyncDocumentStream":
        """Enter async context.

        Raises:
            StreamClosedError: If the JsonStream was already closed
        """
        if self._stream.closed:
            raise StreamClosedError()
        self._start_position = self._stream.position
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        """Exit async context, ensuring cleanup."""
        self._closed = True
        if self._iterator is not None:
            await self._iterator.aclose()
            self._iterator = None

    def __aiter__(self) -> AsyncIterator[Any]:
        """Return async iterator."""
        self._iterator = self._iterate()
        return self._iterator

    async def _iterate(self) -> AsyncIterator[Any]:
        """Internal iteration logic."""
        if self._closed or self._limit == 0:
            return

        if self._as_json:
            source = self._stream.aiter_objects(self._target)
        else:
            source = self._stream.aiter_bytes()

        try:
            async for item in source:
                self._yielded_count += 1
                yield item
                if self._limit is not None and self._yielded_count >= self._limit:
                    return
        finally:
            await source.aclose()

    @property
    def position(self) -> int:
        """Byte offset of the next document to be read."""
        return self._stream.position

    @property
    def start_position(self) -> int:
        """Byte offset when the context was entered."""
        return self._start_position

    @property
    def yielded_count(self) -> int:
        """Number of documents yielded so far."""
        return self._yielded_count

    @property
    def closed(self) -> bool:
        """Whether the context has been exited."""
        return self._closed

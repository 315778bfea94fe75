"""jsonframe: a stream of JSON documents framed by fixed-width size descriptors.

Example:
    >>> from jsonframe import AccessMode, JsonStream
    >>> with JsonStream.open("events.jf", AccessMode.WRITE_ONLY) as out:
    ...     out.write_object({"event": "start"})
    ...     out.write_object({"event": "stop"})
    >>>
    >>> # Sequential read back, in write order
    >>> with JsonStream.open("events.jf") as src:
    ...     for event in src:
    ...         process(event)
    >>>
    >>> # Any binary file object works, and enables the async API
    >>> stream = JsonStream(io.BytesIO())
    >>> await stream.awrite_json({"a": 1})
    >>> stream.seek(0)
    >>> async with stream.async_stream() as docs:
    ...     async for doc in docs:
    ...         await process(doc)
"""

from .async_stream import AsyncDocumentStream
from .codec import DEFAULT_DOCUMENT_SIZE_LENGTH, decode_size, encode_size, max_document_size
from .exceptions import (
    ForbiddenOperationError,
    InvalidArgumentError,
    InvalidDocumentSizeLengthError,
    InvalidJsonDocumentError,
    JsonFrameError,
    StreamClosedError,
)
from .models import AccessMode, DocumentInfo, StreamInfo
from .serialization import DEFAULT_CODEC, JsonCodec
from .stream import DEFAULT_BUFFER_SIZE, JsonStream

__version__ = "0.1.0"
__all__ = [
    # Core
    "JsonStream",
    "AccessMode",
    "DocumentInfo",
    "StreamInfo",
    "DEFAULT_BUFFER_SIZE",
    # Size descriptors
    "encode_size",
    "decode_size",
    "max_document_size",
    "DEFAULT_DOCUMENT_SIZE_LENGTH",
    # Serialization
    "JsonCodec",
    "DEFAULT_CODEC",
    # Async Streaming
    "AsyncDocumentStream",
    # Exceptions
    "JsonFrameError",
    "InvalidArgumentError",
    "ForbiddenOperationError",
    "StreamClosedError",
    "InvalidDocumentSizeLengthError",
    "InvalidJsonDocumentError",
]
